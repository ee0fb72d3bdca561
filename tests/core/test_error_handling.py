# tests/core/test_error_handling.py

import errno
from unittest import mock

import pytest
from PIL import UnidentifiedImageError

from media_pipeline.core.exceptions import (
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
from media_pipeline.core.error_handling import (
    with_error_handling,
    BatchOperationContextManager,
)


# --- Tests for Custom Exceptions ---

def test_custom_exception_inheritance():
    """Every pipeline error shares one base."""
    for cls in (
        ConfigurationError,
        UnsupportedTypeError,
        TooLargeError,
        BatchLimitExceededError,
        NoFileProvidedError,
        StorageError,
        ImageProcessingError,
        UploadProcessingError,
        UploadCancelledError,
    ):
        assert issubclass(cls, MediaPipelineError)


@pytest.mark.parametrize("cls,reason", [
    (UnsupportedTypeError, FailureReason.UNSUPPORTED_TYPE),
    (TooLargeError, FailureReason.TOO_LARGE),
    (BatchLimitExceededError, FailureReason.BATCH_LIMIT_EXCEEDED),
    (NoFileProvidedError, FailureReason.NO_FILE_PROVIDED),
])
def test_rejections_carry_reason_and_filename(cls, reason):
    error = cls("nope", "a.bmp")

    assert isinstance(error, UploadRejectedError)
    assert error.reason is reason
    assert error.filename == "a.bmp"
    assert str(error) == "nope"


def test_server_side_errors_are_io_errors():
    assert StorageError("x").reason is FailureReason.IO_ERROR
    assert ImageProcessingError("x").reason is FailureReason.IO_ERROR
    assert UploadCancelledError("x").reason is FailureReason.CANCELLED


# --- Tests for @with_error_handling decorator ---

@pytest.fixture
def mock_logger():
    """Mock the logger the decorator looks up."""
    with mock.patch('media_pipeline.core.error_handling.logging') as mock_logging:
        mock_log_instance = mock.Mock()
        mock_logging.getLogger.return_value = mock_log_instance
        yield mock_log_instance


def test_with_error_handling_passes_return_value():
    @with_error_handling
    def ok():
        return 42

    assert ok() == 42


def test_with_error_handling_passes_pipeline_errors_through(mock_logger):
    @with_error_handling
    def rejecting():
        raise UnsupportedTypeError("bad type")

    with pytest.raises(UnsupportedTypeError):
        rejecting()

    mock_logger.error.assert_not_called()


def test_with_error_handling_maps_disk_errors_to_storage_error(mock_logger):
    @with_error_handling
    def disk_full():
        raise OSError(errno.ENOSPC, "No space left on device")

    with pytest.raises(StorageError) as excinfo:
        disk_full()

    assert isinstance(excinfo.value.__cause__, OSError)
    args, kwargs = mock_logger.error.call_args
    assert kwargs.get('exc_info') is True


def test_with_error_handling_maps_permission_errors(mock_logger):
    @with_error_handling
    def denied():
        raise PermissionError(errno.EACCES, "Permission denied")

    with pytest.raises(StorageError):
        denied()


def test_with_error_handling_maps_unidentified_image(mock_logger):
    @with_error_handling
    def undecodable():
        raise UnidentifiedImageError("cannot identify image file")

    with pytest.raises(ImageProcessingError, match="Failed to decode image"):
        undecodable()


def test_with_error_handling_maps_truncated_image(mock_logger):
    @with_error_handling
    def truncated():
        raise OSError("image file is truncated")

    with pytest.raises(ImageProcessingError):
        truncated()


def test_with_error_handling_maps_value_errors(mock_logger):
    @with_error_handling
    def bad_value():
        raise ValueError("Unsupported output format: tiff")

    with pytest.raises(ImageProcessingError, match="tiff"):
        bad_value()


def test_with_error_handling_reraises_other_errors(mock_logger):
    @with_error_handling
    def broken():
        raise RuntimeError("unexpected")

    with pytest.raises(RuntimeError):
        broken()

    mock_logger.error.assert_called_once()


# --- Tests for BatchOperationContextManager ---

def test_batch_context_logs_success(mock_logger):
    with BatchOperationContextManager("Upload batch"):
        pass

    mock_logger.info.assert_any_call("Upload batch completed successfully.")


def test_batch_context_collects_errors(mock_logger):
    with BatchOperationContextManager("Upload batch") as manager:
        manager.add_error("Only image files are allowed", item_identifier="a.txt")
        manager.add_error("Error processing uploaded image", item_identifier="b.jpg")

    assert manager.errors == [
        {"item": "a.txt", "error": "Only image files are allowed"},
        {"item": "b.jpg", "error": "Error processing uploaded image"},
    ]
    mock_logger.warning.assert_called_once_with("Upload batch completed with 2 error(s).")
    assert mock_logger.error.call_count == 2


def test_batch_context_does_not_swallow_exceptions(mock_logger):
    with pytest.raises(KeyError):
        with BatchOperationContextManager("Upload batch"):
            raise KeyError("boom")

    mock_logger.error.assert_called_once()


def test_batch_context_uses_named_logger():
    with mock.patch('logging.getLogger') as mock_get_logger:
        BatchOperationContextManager()

    mock_get_logger.assert_called_once_with(
        "media_pipeline.core.error_handling.BatchOperationContextManager"
    )
