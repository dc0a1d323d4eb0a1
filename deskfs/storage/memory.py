"""In-memory storage backend."""

from __future__ import annotations

import logging
import threading
from collections.abc import MutableMapping
from dataclasses import replace
from typing import Any, Callable, Sequence

from ..base import FileRecord
from ..errors import SyncError
from ..paths import is_within
from .base import Change, ChangeEvent, ChangeFeed, Listener, Remove, Rename, Upsert, change_paths, rebase

logger = logging.getLogger(__name__)


class MemoryStore:
    """Record store over any ``MutableMapping[str, FileRecord]``.

    Records are keyed by canonical path. If the mapping also has a
    ``commit()`` method (e.g. shelve-like stores), it is called once after
    every applied batch and every access-time update, so changes are
    persisted immediately.

    Batches from different threads are applied one at a time. Change events
    are published after the store lock is released.

    Useful for tests and for running the desktop without a database.
    """

    def __init__(
        self,
        state: MutableMapping[str, FileRecord] | None = None,
        owner: str = "local",
    ) -> None:
        self.records: MutableMapping[str, FileRecord] = state if state is not None else {}
        self.owner = owner
        self._feed = ChangeFeed()
        self._lock = threading.Lock()

    def load(self) -> list[FileRecord]:
        with self._lock:
            return [replace(self.records[path]) for path in sorted(self.records)]

    def apply(self, changes: Sequence[Change], origin: Any = None) -> None:
        with self._lock:
            # Stage on a copy so a bad batch never leaves half the rows written
            staged: dict[str, FileRecord] = dict(self.records)
            for change in changes:
                if isinstance(change, Upsert):
                    staged[change.record.path] = replace(change.record, owner=self.owner)
                elif isinstance(change, Remove):
                    for path in [p for p in staged if is_within(p, change.path)]:
                        del staged[path]
                elif isinstance(change, Rename):
                    self._rename(staged, change)
                else:
                    raise TypeError(f"Unknown change: {change!r}")

            try:
                removed = [path for path in self.records if path not in staged]
                for path in removed:
                    del self.records[path]
                for path, record in staged.items():
                    if self.records.get(path) is not record:
                        self.records[path] = record
                self._commit()
            except (OSError, KeyError, ValueError) as e:
                raise SyncError(f"Failed to persist records: {e}") from e

        paths = change_paths(changes)
        logger.debug("memory store applied %d change(s): %s", len(changes), paths)
        self._feed.publish(ChangeEvent(owner=self.owner, origin=origin, paths=paths))

    def touch(self, path: str, accessed_at: str) -> None:
        with self._lock:
            record = self.records.get(path)
            if record is None:
                raise SyncError(f"No such record: {path}", path)
            try:
                self.records[path] = replace(record, accessed_at=accessed_at)
                self._commit()
            except (OSError, KeyError, ValueError) as e:
                raise SyncError(f"Failed to record access time: {e}", path) from e

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._feed.subscribe(listener)

    def _commit(self) -> None:
        commit = getattr(self.records, "commit", None)
        if callable(commit):
            commit()

    @staticmethod
    def _rename(staged: dict[str, FileRecord], change: Rename) -> None:
        if change.src not in staged:
            raise SyncError(f"No such record: {change.src}", change.src)
        moving = [p for p in staged if is_within(p, change.src)]
        records = {p: staged.pop(p) for p in moving}
        for old_path, record in records.items():
            new_path = rebase(old_path, change.src, change.dst)
            parent = record.parent
            if parent is not None and is_within(parent, change.src):
                parent = rebase(parent, change.src, change.dst)
            elif old_path == change.src:
                parent = new_path.rsplit("/", 1)[0] or "/"
            updated = replace(record, path=new_path, parent=parent)
            if old_path == change.src:
                updated = replace(
                    updated,
                    name=new_path.rsplit("/", 1)[-1],
                    modified_at=change.modified_at,
                )
            staged[new_path] = updated
