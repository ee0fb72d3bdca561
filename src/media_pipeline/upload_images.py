#!/usr/bin/env python3
"""
Local Image Upload CLI

Reads images from disk → Validates → Stores originals → Derives display
renditions and thumbnails. Prints the same JSON envelope an HTTP handler
would return.
"""

import sys
import json
import argparse
import mimetypes
from pathlib import Path
from typing import List, Optional, Sequence

from .core import (
    ApiResponse,
    ConfigurationError,
    MediaPipelineError,
    PipelineConfig,
    RawFile,
    get_logger,
    set_debug_logging,
)
from .core.factories import UploadPipelineFactory
from .processors.common import log_configuration

PROCESSOR_NAMES = {
    "serial": "Serial",
    "multithread": "Multithreaded",
    "asyncio": "AsyncIO",
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for the local upload tool.

    Returns:
        An `argparse.Namespace` object containing the parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Upload images into the catalog media store"
    )
    add_upload_arguments(parser)
    return parser.parse_args(argv)


def add_upload_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("files", nargs="+", help="Image files to upload")
    parser.add_argument(
        "--upload-dir", default=None, help="Root upload directory (env: UPLOAD_DIR)"
    )
    parser.add_argument(
        "--base-url", default=None, help="Base URL for generated links (env: BASE_URL)"
    )
    parser.add_argument(
        "--processor",
        type=str,
        default=None,
        choices=sorted(PROCESSOR_NAMES),
        help="Processing strategy to use (default: serial)",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Worker count")
    parser.add_argument("--max-width", type=int, default=1200, help="Display width bound")
    parser.add_argument("--max-height", type=int, default=1200, help="Display height bound")
    parser.add_argument("--quality", type=int, default=85, help="Display JPEG/WebP quality")
    parser.add_argument(
        "--format",
        dest="output_format",
        default="jpeg",
        choices=["jpeg", "png", "webp"],
        help="Output format for derivatives",
    )
    parser.add_argument("--thumbnail-size", type=int, default=300, help="Thumbnail edge")
    parser.add_argument(
        "--no-thumbnail", action="store_true", help="Skip thumbnail generation"
    )
    parser.add_argument(
        "--metrics", action="store_true", help="Log per-request timing metrics"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Merge command-line options over the environment configuration."""
    config = PipelineConfig.from_env()
    values = config.model_dump()

    if args.upload_dir:
        values["storage"]["root_dir"] = args.upload_dir
    if args.base_url:
        values["base_url"] = args.base_url
    if args.processor:
        values["processor"] = args.processor
    if args.concurrency:
        values["concurrency"] = args.concurrency
    values["debug"] = args.debug
    if args.metrics:
        values["collect_metrics"] = True
    values["derivatives"].update(
        max_width=args.max_width,
        max_height=args.max_height,
        quality=args.quality,
        output_format=args.output_format,
        make_thumbnail=not args.no_thumbnail,
        thumbnail_size=args.thumbnail_size,
    )

    try:
        return PipelineConfig.model_validate(values)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid options: {exc}") from exc


def read_raw_file(path: Path) -> RawFile:
    """Load a file the way a multipart client would declare it."""
    content_type, _ = mimetypes.guess_type(path.name)
    content = path.read_bytes()
    return RawFile(
        filename=path.name,
        content_type=content_type or "application/octet-stream",
        content=content,
        size=len(content),
    )


def run_upload(args: argparse.Namespace) -> ApiResponse:
    logger = get_logger("cli")
    config = build_config(args)
    if config.debug:
        set_debug_logging()

    log_configuration(config, PROCESSOR_NAMES[config.processor])
    pipeline = UploadPipelineFactory.create_pipeline(config)

    raw_files: List[RawFile] = [read_raw_file(Path(name)) for name in args.files]
    logger.info(f"Uploading {len(raw_files)} file(s)")

    if len(raw_files) == 1:
        return pipeline.upload_single_response(raw_files[0])
    try:
        return pipeline.process_batch(raw_files).to_api_response()
    except MediaPipelineError as exc:
        return ApiResponse(success=False, error=str(exc))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the upload script.

    Returns the process exit code: 0 when at least one image was stored.
    """
    logger = get_logger("cli")
    try:
        args = parse_args(argv)
        response = run_upload(args)
    except KeyboardInterrupt:
        logger.warning("Upload interrupted by user.")
        return 130
    except (ConfigurationError, OSError) as e:
        logger.error(f"Upload failed: {e}")
        return 1

    print(json.dumps(response.model_dump(), indent=2))
    return 0 if response.success else 1


if __name__ == "__main__":
    sys.exit(main())
