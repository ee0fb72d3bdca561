# src/media_pipeline/core/error_handling.py

import functools
import logging
from typing import Any, Dict, List

from PIL import Image, UnidentifiedImageError

from .exceptions import ImageProcessingError, MediaPipelineError, StorageError


def with_error_handling(func):
    """
    A decorator to wrap functions with standardized error handling.

    Pipeline errors pass through untouched. Pillow decode failures become
    ``ImageProcessingError`` and operating system errors become
    ``StorageError``; anything else is logged and re-raised as is.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + '.' + func.__name__)
        try:
            return func(*args, **kwargs)
        except MediaPipelineError:
            raise
        except (UnidentifiedImageError, Image.DecompressionBombError, SyntaxError) as e:
            logger.error(f"Image decode error in '{func.__name__}': {e}", exc_info=True)
            raise ImageProcessingError(f"Failed to decode image in {func.__name__}: {e}") from e
        except OSError as e:
            # Pillow raises OSError for truncated data too; errno tells them apart.
            logger.error(f"I/O error in '{func.__name__}': {e}", exc_info=True)
            if e.errno is None:
                raise ImageProcessingError(f"Image data error in {func.__name__}: {e}") from e
            raise StorageError(f"Storage operation failed in {func.__name__}: {e}") from e
        except ValueError as e:
            logger.error(f"Invalid value in '{func.__name__}': {e}", exc_info=True)
            raise ImageProcessingError(f"Image transformation error in {func.__name__}: {e}") from e
        except Exception as e:
            logger.error(
                f"Error in '{func.__name__}': {e}",
                exc_info=True
            )
            raise
    return wrapper


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name="Batch Operation"):
        self.operation_name = operation_name
        self.errors: List[Dict[str, Any]] = []
        self.logger = logging.getLogger(self.__class__.__module__ + '.' + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                item_identifier = error_detail.get('item', 'Unknown item')
                error_message = error_detail.get('error', 'Unknown error')
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{item_identifier}': {error_message}"
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")

        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item"):
        """
        Call this method within the 'with' block to report an error for a specific item.

        Args:
            error_message (str): The error message or exception string.
            item_identifier (str): A string identifying the item that failed (e.g., filename).
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")
