"""Image and naming utilities for the media pipeline."""

import io
import re
import secrets
import time
from pathlib import PurePosixPath
from typing import Optional, Tuple

from PIL import Image, ImageOps

from .models import DEFAULT_BASE_URL

MAX_BASENAME_LENGTH = 100
RANDOM_SUFFIX_BOUND = 1_000_000_000

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")

_PIL_FORMATS = {"jpeg": "JPEG", "png": "PNG", "webp": "WEBP"}

# Legacy subtypes some browsers still send
MIME_SUBTYPE_ALIASES = {"pjpeg": "jpeg", "x-png": "png"}


def split_upload_name(filename: str) -> Tuple[str, str]:
    """
    Split a client-supplied filename into stem and lower-cased extension.

    Directory components (either separator) are dropped, so
    ``"../../etc/Photo.JPG"`` becomes ``("Photo", "jpg")``.

    Returns:
        Tuple of (stem, extension without the dot)
    """
    name = PurePosixPath(filename.replace("\\", "/")).name
    if name.startswith(".") and name.count(".") == 1:
        # ".jpg" is all extension
        return "", name[1:].lower()
    path = PurePosixPath(name)
    return path.stem, path.suffix.lstrip(".").lower()


def normalize_mime_type(content_type: str) -> str:
    """
    Reduce a declared Content-Type to a lowercase ``type/subtype``.

    Parameters are dropped and legacy aliases such as ``image/pjpeg`` map
    to their standard subtype.
    """
    mime_type = content_type.split(";", 1)[0].strip().lower()
    major, _, subtype = mime_type.partition("/")
    if not subtype:
        return major
    return f"{major}/{MIME_SUBTYPE_ALIASES.get(subtype, subtype)}"


def sanitize_basename(stem: str) -> str:
    """Replace every character outside [A-Za-z0-9] with a dash."""
    sanitized = _UNSAFE_CHARS.sub("-", stem)[:MAX_BASENAME_LENGTH]
    return sanitized or "image"


def generate_unique_filename(
    original_name: str,
    timestamp_ms: Optional[int] = None,
    random_suffix: Optional[int] = None,
) -> str:
    """
    Build ``<millisecond-timestamp>-<random-int>-<sanitized-basename>.<ext>``.

    Args:
        original_name: Filename declared by the client
        timestamp_ms: Override for the timestamp (defaults to now)
        random_suffix: Override for the random component

    Returns:
        Filename safe to create inside the originals directory
    """
    stem, ext = split_upload_name(original_name)
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if random_suffix is None:
        random_suffix = secrets.randbelow(RANDOM_SUFFIX_BOUND)
    name = f"{timestamp_ms}-{random_suffix}-{sanitize_basename(stem)}"
    return f"{name}.{ext}" if ext else name


def fits_within(width: int, height: int, max_width: int, max_height: int) -> bool:
    return width <= max_width and height <= max_height


def fit_inside_dimensions(
    width: int, height: int, max_width: int, max_height: int
) -> Tuple[int, int]:
    """
    Compute the largest size that fits the box while keeping the aspect ratio.

    Never upscales: an image already inside the box keeps its size.
    """
    if fits_within(width, height, max_width, max_height):
        return width, height

    scale = min(max_width / width, max_height / height)
    new_width = min(max_width, max(1, round(width * scale)))
    new_height = min(max_height, max(1, round(height * scale)))
    return new_width, new_height


def prepare_for_format(img: "Image.Image", output_format: str) -> "Image.Image":
    """
    Convert an image to a mode the output format can store.

    JPEG has no alpha channel, so transparency is flattened onto white.
    """
    if getattr(img, "is_animated", False):
        img.seek(0)

    has_alpha = img.mode in ("RGBA", "LA") or (
        img.mode == "P" and "transparency" in img.info
    )

    if output_format == "jpeg":
        if has_alpha:
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        if img.mode != "RGB":
            return img.convert("RGB")
        return img

    if has_alpha:
        return img.convert("RGBA") if img.mode != "RGBA" else img
    if img.mode not in ("RGB", "L"):
        return img.convert("RGB")
    return img


def resize_to_fit(img: "Image.Image", max_width: int, max_height: int) -> "Image.Image":
    """Downscale an image to fit inside the box (fit-inside, no enlargement)."""
    target = fit_inside_dimensions(img.width, img.height, max_width, max_height)
    if target == img.size:
        return img.copy()
    return img.resize(target, Image.Resampling.LANCZOS)


def cover_crop(img: "Image.Image", size: int) -> "Image.Image":
    """Scale to cover a size x size square and crop the center."""
    return ImageOps.fit(
        img, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5)
    )


def encode_image(
    img: "Image.Image", output_format: str, quality: int, progressive: bool = True
) -> bytes:
    """Encode an image into bytes of the requested format."""
    pil_format = _PIL_FORMATS.get(output_format)
    if pil_format is None:
        raise ValueError(f"Unsupported output format: {output_format}")

    buffer = io.BytesIO()
    if pil_format == "JPEG":
        img.save(
            buffer,
            format=pil_format,
            quality=quality,
            progressive=progressive,
            optimize=True,
        )
    elif pil_format == "PNG":
        img.save(buffer, format=pil_format, optimize=True)
    else:
        img.save(buffer, format=pil_format, quality=quality)
    return buffer.getvalue()


def build_image_url(base_url: Optional[str], filename: str, kind: str = "original") -> str:
    """
    Map a stored filename to its public URL.

    Thumbnails live under ``/uploads/thumbnails``; originals and processed
    renditions share ``/uploads/images``.
    """
    base = (base_url or DEFAULT_BASE_URL).rstrip("/")
    folder = "thumbnails" if kind == "thumbnail" else "images"
    return f"{base}/uploads/{folder}/{filename}"
