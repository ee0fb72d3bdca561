"""Protocol definitions for dependency injection and testability."""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol

from .models import ProcessingOutcome, RawFile


class FileStoreProtocol(Protocol):
    """Protocol for the filesystem operations the pipeline performs."""

    def ensure_directory(self, path: Path) -> None:
        """Create a directory and its parents if missing."""
        ...

    def write(self, path: Path, data: bytes, exclusive: bool = False) -> None:
        """Write bytes so that readers never observe a partial file."""
        ...

    def read(self, path: Path) -> bytes:
        """Read a whole file."""
        ...

    def remove(self, path: Path) -> bool:
        """Remove a file, returning False when it was already absent."""
        ...

    def exists(self, path: Path) -> bool:
        """Check whether a file exists."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


class ProcessingService(ABC):
    """Abstract service for processing uploaded files."""

    @abstractmethod
    def run(
        self,
        raw_file: RawFile,
        position: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessingOutcome:
        """Process a single file, raising on failure after cleaning up."""
        ...

    @abstractmethod
    def process_file(
        self,
        raw_file: RawFile,
        position: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessingOutcome:
        """Process a single file, never raising for per-file failures."""
        ...

    @abstractmethod
    def discard(self, outcome: ProcessingOutcome) -> None:
        """Remove every artifact recorded on an outcome."""
        ...


ProcessBatchFunction = Callable[
    [List[RawFile], ProcessingService, Optional[threading.Event]],
    List[ProcessingOutcome],
]
