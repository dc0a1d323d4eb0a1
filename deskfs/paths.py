"""Path normalization and helpers.

Canonical paths are absolute, use single slashes, and have no trailing
slash except for the root itself. Every other module keys the tree with
the output of :func:`normalize`.
"""

from __future__ import annotations

import re

from .errors import InvalidPath

ROOT = "/"

_SLASH_RUN = re.compile(r"/+")


def normalize(path: str, resolve_dots: bool = True) -> str:
    """Normalize a raw path to its canonical form.

    Args:
        path: Raw path (e.g., "home//user/./docs/").
        resolve_dots: If True, "." segments are dropped and ".." removes the
            previous segment, clamping at the root. If False, both are kept as
            literal names, matching data written by older clients.

    Returns:
        Canonical absolute path (e.g., "/home/user/docs").

    Raises:
        InvalidPath: If path is not a string or contains a NUL character.
    """
    if not isinstance(path, str):
        raise InvalidPath(f"Expected str path, got {type(path).__name__}")
    if "\x00" in path:
        raise InvalidPath(f"Path contains NUL character: {path!r}", path)

    if not resolve_dots:
        path = _SLASH_RUN.sub("/", "/" + path)
        if len(path) > 1:
            path = path.rstrip("/") or ROOT
        return path

    parts: list[str] = []
    for part in path.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return ROOT + "/".join(parts)


def split(path: str) -> list[str]:
    """Return the non-empty segments of a canonical path ("/" -> [])."""
    return [part for part in path.split("/") if part]


def parent(path: str) -> str:
    """Return the parent of a canonical path. The root is its own parent."""
    parts = split(path)
    if len(parts) <= 1:
        return ROOT
    return ROOT + "/".join(parts[:-1])


def basename(path: str) -> str:
    """Return the final segment of a canonical path ("" for the root)."""
    parts = split(path)
    return parts[-1] if parts else ""


def join(*parts: str, resolve_dots: bool = True) -> str:
    """Join path pieces and normalize the result."""
    return normalize("/".join(parts), resolve_dots=resolve_dots)


def resolve(path: str, cwd: str = ROOT, resolve_dots: bool = True) -> str:
    """Resolve path (relative or absolute) against a working directory.

    Args:
        path: File or directory path. "~" is not expanded here.
        cwd: Canonical working directory used for relative paths.
        resolve_dots: Passed through to :func:`normalize`.

    Returns:
        Canonical absolute path.
    """
    if isinstance(path, str) and not path.startswith("/"):
        path = f"{cwd}/{path}"
    return normalize(path, resolve_dots=resolve_dots)


def is_within(path: str, ancestor: str) -> bool:
    """Return True if canonical ``path`` equals or lies under ``ancestor``."""
    if ancestor == ROOT:
        return True
    return path == ancestor or path.startswith(ancestor + "/")


def relative_to(path: str, ancestor: str) -> str:
    """Return ``path`` relative to ``ancestor`` ("" when they are equal)."""
    if path == ancestor:
        return ""
    if ancestor == ROOT:
        return path[1:]
    return path[len(ancestor) + 1 :]
