"""Exception hierarchy for the media pipeline.

Every error carries a ``reason`` code so per-file failures can be reported
without exposing internals. ``str(error)`` is always safe to show to a user.
"""

from __future__ import annotations

from enum import Enum


class FailureReason(str, Enum):
    """Reason codes attached to rejected or failed files."""

    UNSUPPORTED_TYPE = "unsupported_type"
    TOO_LARGE = "too_large"
    BATCH_LIMIT_EXCEEDED = "batch_limit_exceeded"
    NO_FILE_PROVIDED = "no_file_provided"
    IO_ERROR = "io_error"
    CANCELLED = "cancelled"
    CONFIGURATION = "configuration"


PROCESSING_ERROR_MESSAGE = "Error processing uploaded image"
CANCELLED_MESSAGE = "Upload cancelled"


class MediaPipelineError(Exception):
    """Base exception for all media pipeline errors."""

    reason: FailureReason = FailureReason.IO_ERROR


class ConfigurationError(MediaPipelineError):
    """Error raised for invalid configuration options."""

    reason = FailureReason.CONFIGURATION


class UploadRejectedError(MediaPipelineError):
    """A file was refused before anything was written to disk."""

    def __init__(self, message: str, filename: str = ""):
        super().__init__(message)
        self.filename = filename


class UnsupportedTypeError(UploadRejectedError):
    """Extension or MIME type outside the allow-list."""

    reason = FailureReason.UNSUPPORTED_TYPE


class TooLargeError(UploadRejectedError):
    """File exceeds the configured maximum size."""

    reason = FailureReason.TOO_LARGE


class BatchLimitExceededError(UploadRejectedError):
    """File arrived past the per-request file limit."""

    reason = FailureReason.BATCH_LIMIT_EXCEEDED


class NoFileProvidedError(UploadRejectedError):
    """The request carried no file at all."""

    reason = FailureReason.NO_FILE_PROVIDED


class StorageError(MediaPipelineError):
    """Error raised when writing or removing files fails."""


class ImageProcessingError(MediaPipelineError):
    """Error raised when decoding, resizing or encoding an image fails."""


class UploadProcessingError(MediaPipelineError):
    """A single upload failed after it was accepted; its files were removed."""


class UploadCancelledError(MediaPipelineError):
    """The request was abandoned while the file was being processed."""

    reason = FailureReason.CANCELLED
