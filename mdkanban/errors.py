"""
Exception types raised by the board storage engine.

Resource-level failures (a path that cannot be read or written, a target
directory that is not usable) are raised.  Item-level failures met during
bulk scans are caught by the scanning code, logged and skipped.
"""

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


class StorageError(Exception):
    """Base class for every error raised by ``mdkanban``."""


class StorageIOError(StorageError):
    """A filesystem primitive failed.  ``path`` is the path that was attempted."""

    def __init__(self, message: str, path: Optional[PathLike] = None):
        self.path = str(path) if path is not None else None
        if self.path:
            message = f"{message}: {self.path}"
        super().__init__(message)


class StorageNotFoundError(StorageIOError):
    """An expected file or directory does not exist."""


class StorageValidationError(StorageError, ValueError):
    """A directory path was empty, malformed or not writable."""


class FrontmatterParseError(StorageError, ValueError):
    """A metadata block could not be parsed."""

    def __init__(self, message: str, path: Optional[PathLike] = None):
        self.path = str(path) if path is not None else None
        if self.path:
            message = f"{message} ({self.path})"
        super().__init__(message)


class TaskSaveError(StorageError):
    """Saving, moving or deleting a task failed."""


class ColumnSaveError(StorageError):
    """Writing column or board metadata failed."""
