"""Error taxonomy for filesystem operations.

Each error also derives from the closest built-in exception so callers
that already catch ``FileNotFoundError`` or ``FileExistsError`` keep working.
"""

from __future__ import annotations

import errno


class VFSError(Exception):
    """Base class for every error the filesystem reports."""

    code: int | None = None

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        return self.message


class NotFound(VFSError, FileNotFoundError):
    """Path does not resolve (missing segment or descent through a file)."""

    code = errno.ENOENT


class WrongKind(VFSError, OSError):
    """Operation needed a file but found a directory, or the reverse."""

    code = errno.EINVAL


class IsADirectory(WrongKind, IsADirectoryError):
    code = errno.EISDIR


class NotADirectory(WrongKind, NotADirectoryError):
    code = errno.ENOTDIR


class AlreadyExists(VFSError, FileExistsError):
    """Create or move targeted an occupied destination."""

    code = errno.EEXIST


class InvalidPath(VFSError, ValueError):
    """Input is not a usable path (non-string, NUL byte, root misuse)."""

    code = errno.EINVAL


class SyncError(VFSError):
    """The storage backend failed to persist or load records.

    Transport and database failures land here so the UI can surface them
    separately from routine lookup failures.
    """

    code = errno.EIO


class UnsavedChanges(VFSError):
    """An editor tab with unsaved edits was closed without discarding."""
