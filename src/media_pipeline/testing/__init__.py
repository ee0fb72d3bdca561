"""Testing utilities and fakes for the media pipeline."""

from .fakes import (
    FakeLogger,
    FlakyFileStore,
    create_test_image,
    list_stored_files,
    make_raw_file,
    make_test_config,
)

__all__ = [
    "FakeLogger",
    "FlakyFileStore",
    "create_test_image",
    "list_stored_files",
    "make_raw_file",
    "make_test_config",
]
