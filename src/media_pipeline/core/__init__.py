"""Core utilities and shared components for the media pipeline."""

from .image_utils import (
    build_image_url,
    cover_crop,
    encode_image,
    fit_inside_dimensions,
    generate_unique_filename,
    normalize_mime_type,
    resize_to_fit,
    sanitize_basename,
)
from .logging_config import (
    get_logger,
    set_debug_logging,
    setup_logger,
)
from .exceptions import (
    BatchLimitExceededError,
    ConfigurationError,
    FailureReason,
    ImageProcessingError,
    MediaPipelineError,
    NoFileProvidedError,
    StorageError,
    TooLargeError,
    UnsupportedTypeError,
    UploadCancelledError,
    UploadProcessingError,
    UploadRejectedError,
)
from .models import (
    ApiResponse,
    BatchResult,
    DerivativeOptions,
    DerivedAsset,
    ImageMetadata,
    PipelineConfig,
    ProcessingOutcome,
    RawFile,
    Rendition,
    StorageConfig,
    StoredOriginal,
    UploadedImage,
    UploadLimits,
    UploadSettings,
)

__all__ = [
    "ApiResponse",
    "BatchResult",
    "DerivativeOptions",
    "DerivedAsset",
    "ImageMetadata",
    "PipelineConfig",
    "ProcessingOutcome",
    "RawFile",
    "Rendition",
    "StorageConfig",
    "StoredOriginal",
    "UploadedImage",
    "UploadLimits",
    "UploadSettings",
    "build_image_url",
    "cover_crop",
    "encode_image",
    "fit_inside_dimensions",
    "generate_unique_filename",
    "normalize_mime_type",
    "resize_to_fit",
    "sanitize_basename",
    "setup_logger",
    "get_logger",
    "set_debug_logging",
    "MediaPipelineError",
    "UploadRejectedError",
    "UnsupportedTypeError",
    "TooLargeError",
    "BatchLimitExceededError",
    "NoFileProvidedError",
    "StorageError",
    "ImageProcessingError",
    "UploadProcessingError",
    "UploadCancelledError",
    "ConfigurationError",
    "FailureReason",
]
