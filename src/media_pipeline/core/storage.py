"""Local filesystem store used for originals and derivatives."""

import os
import uuid
from pathlib import Path

from .logging_config import get_logger


class LocalFileStore:
    """
    Filesystem-backed store with all-or-nothing writes.

    Data is written to a hidden temporary sibling, flushed, and renamed into
    place, so a crash or a full disk never leaves a truncated file under the
    final name. With ``exclusive=True`` the final name is claimed first with
    ``O_EXCL``; a name that already exists raises ``FileExistsError`` and is
    left untouched.
    """

    def __init__(self, fsync: bool = True):
        self._fsync = fsync
        self._logger = get_logger("storage")

    def ensure_directory(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def write(self, path: Path, data: bytes, exclusive: bool = False) -> None:
        path = Path(path)
        claimed = False
        if exclusive:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            os.close(fd)
            claimed = True

        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
        try:
            with open(tmp_path, "wb") as handle:
                handle.write(data)
                handle.flush()
                if self._fsync:
                    os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            self._discard(tmp_path)
            if claimed:
                self._discard(path)
            raise

        self._logger.debug(f"Wrote {len(data)} bytes to {path}")

    def read(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def remove(self, path: Path) -> bool:
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        return True

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def _discard(self, path: Path) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._logger.warning(f"Could not remove partial file {path}: {exc}")
