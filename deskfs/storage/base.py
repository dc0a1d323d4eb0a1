"""Storage backend interface.

A backend persists the flat record view of the tree. The engine computes
every mutation against its in-memory snapshot first, turns it into a batch
of changes, and only publishes the new snapshot once the backend accepted
the whole batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence, Union, runtime_checkable

from ..base import FileRecord


@dataclass(frozen=True)
class Upsert:
    """Insert or replace the record at ``record.path``."""

    record: FileRecord


@dataclass(frozen=True)
class Remove:
    """Delete the record at ``path`` and every record below it."""

    path: str


@dataclass(frozen=True)
class Rename:
    """Move the record at ``src`` and everything below it to ``dst``."""

    src: str
    dst: str
    modified_at: str


Change = Union[Upsert, Remove, Rename]


@dataclass(frozen=True)
class ChangeEvent:
    """Notification that records changed in a backend.

    Listeners treat this as "something changed, re-fetch", never as a diff.

    Attributes:
        owner: Owner whose records changed.
        origin: Opaque token of the writer that applied the batch (may be None).
        paths: Paths named by the batch, for logging.
    """

    owner: str
    origin: Any
    paths: tuple[str, ...]


Listener = Callable[[ChangeEvent], None]


@runtime_checkable
class StorageBackend(Protocol):
    """Minimal interface the engine dispatches to."""

    owner: str

    def load(self) -> list[FileRecord]:
        """Return every record for the owner, parents before children."""
        ...

    def apply(self, changes: Sequence[Change], origin: Any = None) -> None:
        """Apply a batch of changes all-or-nothing.

        Raises:
            SyncError: If the batch could not be persisted.
        """
        ...

    def touch(self, path: str, accessed_at: str) -> None:
        """Record an access time. Advisory only."""
        ...

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener and return a function that removes it."""
        ...


class ChangeFeed:
    """Listener registry shared by the bundled backends."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)


def change_paths(changes: Sequence[Change]) -> tuple[str, ...]:
    paths: list[str] = []
    for change in changes:
        if isinstance(change, Upsert):
            paths.append(change.record.path)
        elif isinstance(change, Remove):
            paths.append(change.path)
        else:
            paths.extend((change.src, change.dst))
    return tuple(paths)


def rebase(path: str, src: str, dst: str) -> str:
    """Rewrite ``path`` from under ``src`` to the same place under ``dst``."""
    return dst + path[len(src) :]
