"""Virtual filesystem engine.

Provides VirtualFS, the single entry point for reading and mutating the
desktop's file tree. Every mutation is validated against the current
snapshot, persisted through a storage backend as one batch, and only then
published as a new immutable snapshot.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Iterator, Mapping

from . import paths
from .base import FileInfo, FileRecord, Node, NodeKind, now_iso
from .errors import (
    AlreadyExists,
    InvalidPath,
    IsADirectory,
    NotADirectory,
    NotFound,
    SyncError,
    VFSError,
    WrongKind,
)
from .seed import default_tree
from .storage.base import Change, ChangeEvent, Remove, Rename, StorageBackend, Upsert
from .storage.memory import MemoryStore
from .tree import Snapshot, iter_tree, lookup, rebuild, sorted_children, with_child, without_child

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Snapshot], None]


@dataclass(frozen=True)
class Result:
    """Outcome of a mutation.

    Truthy on success. Routine failures (missing path, wrong kind, occupied
    destination, backend failure) are carried in ``error`` instead of raised.

    Attributes:
        ok: True if the mutation was committed.
        snapshot: New snapshot on success, the unchanged current one on failure.
        error: The reason for failure, if any.
    """

    ok: bool
    snapshot: Snapshot
    error: VFSError | None = None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> Snapshot:
        """Return the snapshot, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.snapshot


def build_tree(records: Iterable[FileRecord]) -> Node:
    """Re-hydrate a root node from flat records.

    Records whose parent is missing or is not a directory are skipped (with
    their descendants) and logged.
    """
    by_path: dict[str, FileRecord] = {record.path: record for record in records}
    root_record = by_path.pop(paths.ROOT, None)
    children: dict[str, dict[str, Node]] = defaultdict(dict)

    # Deepest first, so a directory's children are complete before it is built
    for path in sorted(by_path, key=lambda p: p.count("/"), reverse=True):
        record = by_path[path]
        parent = paths.parent(path)
        if parent != paths.ROOT:
            parent_record = by_path.get(parent)
            if parent_record is None or parent_record.kind != NodeKind.DIRECTORY.value:
                logger.warning("skipping orphan record %s", path)
                children.pop(path, None)
                continue
        name = paths.basename(path)
        if record.name != name:
            record = replace(record, name=name)
        node = record.to_node(children.pop(path, None))
        children[parent][name] = node

    if root_record is None or root_record.kind != NodeKind.DIRECTORY.value:
        return Node.directory("", children.get(paths.ROOT))
    return replace(root_record, name="").to_node(children.get(paths.ROOT))


def tree_records(owner: str, root: Node) -> list[FileRecord]:
    """Flatten a tree into records, parents before children."""
    records = [FileRecord.from_node(owner, paths.ROOT, root, None)]
    for rel, node in iter_tree(root):
        path = paths.ROOT + rel
        records.append(FileRecord.from_node(owner, path, node, paths.parent(path)))
    return records


class VirtualFS:
    """Path-addressed virtual filesystem with immutable snapshots.

    Reads never block on the backend. Writes run one at a time under a
    re-entrant lock; each one either commits a new snapshot (and the
    matching backend batch) or changes nothing. A change made through
    another engine on the same backend is re-fetched as soon as this
    engine is not in the middle of a write.

    Example:
        >>> vfs = VirtualFS(username="user")
        >>> result = vfs.create_file("/home/user/a.txt", "x")
        >>> vfs.read_file("/home/user/a.txt")
        'x'
        >>> vfs.list_directory("/home/user")[:2]
        ['Desktop', 'Documents']
    """

    def __init__(
        self,
        backend: StorageBackend | None = None,
        username: str = "user",
        resolve_dots: bool = True,
        allow_overwrite: bool = False,
        seed: bool = True,
    ):
        """Initialize the engine and load the tree from the backend.

        Args:
            backend: Storage backend. Defaults to a fresh MemoryStore.
            username: Owner of the default home directory.
            resolve_dots: Resolve "." and ".." during normalization.
                False keeps them as literal names (legacy behavior).
            allow_overwrite: Let create_file() replace an existing file
                instead of failing with AlreadyExists (legacy behavior).
            seed: Populate the default tree when the backend is empty.

        Raises:
            SyncError: If the initial load or seeding fails.
        """
        self.username = username
        self.error: VFSError | None = None
        self._backend = backend if backend is not None else MemoryStore(owner=username)
        self._resolve_dots = resolve_dots
        self._allow_overwrite = allow_overwrite
        self._lock = threading.RLock()
        self._depth = 0
        self._stale = False
        self._listeners: list[SnapshotListener] = []
        self._token = object()
        self._snapshot = Snapshot(Node.directory(""), 0, resolve_dots)

        records = self._backend.load()
        if records:
            self._snapshot = Snapshot(build_tree(records), 1, resolve_dots)
        elif seed:
            self.reset(default_tree(username)).unwrap()
        self._unsubscribe = self._backend.subscribe(self._on_backend_change)

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def snapshot(self) -> Snapshot:
        """The current immutable snapshot."""
        return self._snapshot

    @property
    def root(self) -> Node:
        return self._snapshot.root

    def normalize(self, path: str) -> str:
        return paths.normalize(path, resolve_dots=self._resolve_dots)

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with every newly published snapshot.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self) -> Snapshot:
        """Replace the whole tree with what the backend currently holds.

        Consumers must re-resolve nodes by path afterwards; no node object
        from an earlier snapshot is reused.

        Raises:
            SyncError: If the backend cannot be read. The tree is unchanged.
        """
        with self._writing():
            return self._reload()

    def reset(self, root: Node) -> Result:
        """Replace the backend contents and the tree with ``root``."""
        if not root.is_dir:
            raise ValueError("Root must be a directory")
        with self._writing():
            changes: list[Change] = [Remove(paths.ROOT)]
            changes.extend(Upsert(r) for r in tree_records(self._backend.owner, root))
            return self._commit(root, changes)

    def close(self) -> None:
        """Stop listening to backend change events."""
        self._unsubscribe()

    def __enter__(self) -> "VirtualFS":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_node(self, path: str) -> Node | None:
        """Resolve a path to its node, or None if it does not resolve.

        Raises:
            InvalidPath: If path is not a string.
        """
        return self._snapshot.get_node(path)

    def exists(self, path: str) -> bool:
        return self._snapshot.exists(path)

    def is_directory(self, path: str) -> bool:
        return self._snapshot.is_directory(path)

    def is_file(self, path: str) -> bool:
        return self._snapshot.is_file(path)

    def list_directory(self, path: str) -> list[str] | None:
        """List child names, directories first then by name.

        Returns:
            Names, or None if path is not a directory.
        """
        return self._snapshot.list_directory(path)

    def list_detailed(self, path: str) -> list[FileInfo] | None:
        return self._snapshot.list_detailed(path)

    def get_info(self, path: str) -> FileInfo | None:
        return self._snapshot.get_info(path)

    def walk(self, path: str = paths.ROOT) -> Iterator[tuple[str, Node]]:
        return self._snapshot.walk(path)

    def read_file(self, path: str) -> str | None:
        """Read a file's text content.

        The access time is recorded through the backend; failing to record
        it never fails the read.

        Returns:
            Content ("" if never set), or None for directories and missing paths.
        """
        content = self._snapshot.read_file(path)
        if content is not None:
            canonical = self.normalize(path)
            try:
                self._backend.touch(canonical, now_iso())
            except SyncError as e:
                logger.warning("could not record access time for %s: %s", canonical, e)
        return content

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create_file(
        self,
        path: str,
        content: str = "",
        metadata: Mapping[str, Any] | None = None,
    ) -> Result:
        """Create a file under an existing directory.

        Args:
            path: File path. Its parent must exist and be a directory.
            content: Text content.
            metadata: Free-form metadata stored with the file.

        Returns:
            Result; fails with AlreadyExists if the name is taken (unless the
            engine allows overwriting files), NotFound or NotADirectory if the
            parent is unusable.

        Raises:
            TypeError: If content is not a str.
        """
        return self._create_leaf(path, content, metadata, NodeKind.FILE)

    def update_file(self, path: str, content: str) -> Result:
        """Replace the content of an existing file."""
        _check_content(content)
        with self._writing():
            try:
                canonical = self.normalize(path)
                node = lookup(self.root, canonical)
                if node is None:
                    raise NotFound(f"No such file: '{canonical}'", canonical)
                if node.is_dir:
                    raise IsADirectory(f"Is a directory: '{canonical}'", canonical)
                if not node.is_file:
                    raise WrongKind(f"Not a regular file: '{canonical}'", canonical)
            except VFSError as e:
                return self._fail("update_file", e)

            updated = node.evolve(content=content, modified_at=now_iso())
            parent = paths.parent(canonical)
            root = rebuild(self.root, paths.split(parent), lambda d: with_child(d, updated))
            return self._commit(root, self._upserts(root, canonical))

    def write_file(self, path: str, content: str, mode: str = "w") -> Result:
        """Create or update a file.

        Args:
            path: File path.
            content: Text to write.
            mode: 'w' to replace the content, 'a' to append to it.
        """
        _check_content(content)
        if mode not in ("w", "a"):
            raise ValueError(f"Invalid mode: {mode}")
        with self._writing():
            try:
                node = self.get_node(path)
            except InvalidPath as e:
                return self._fail("write_file", e)
            if node is None:
                return self.create_file(path, content)
            if mode == "a" and not node.is_dir:
                content = (node.content or "") + content
            return self.update_file(path, content)

    def create_directory(self, path: str, metadata: Mapping[str, Any] | None = None) -> Result:
        """Create an empty directory under an existing directory."""
        with self._writing():
            try:
                canonical, parent, _ = self._parent_of(path)
                name = paths.basename(canonical)
                if name in parent.children:
                    raise AlreadyExists(f"File exists: '{canonical}'", canonical)
            except VFSError as e:
                return self._fail("create_directory", e)

            now = now_iso()
            node = Node.directory(name, metadata=metadata, now=now)
            parent_path = paths.parent(canonical)
            root = rebuild(self.root, paths.split(parent_path), lambda d: with_child(d, node, now))
            return self._commit(root, self._upserts(root, parent_path, canonical))

    def make_directories(self, path: str) -> Result:
        """Create a directory and any missing ancestors (like ``mkdir -p``).

        Succeeds without change if the directory already exists.
        """
        with self._writing():
            try:
                canonical = self.normalize(path)
            except InvalidPath as e:
                return self._fail("make_directories", e)
            result = Result(True, self._snapshot)
            current = paths.ROOT
            for part in paths.split(canonical):
                current = paths.join(current, part, resolve_dots=self._resolve_dots)
                node = lookup(self.root, current)
                if node is None:
                    result = self.create_directory(current)
                    if not result:
                        return result
                elif not node.is_dir:
                    return self._fail(
                        "make_directories",
                        NotADirectory(f"Not a directory: '{current}'", current),
                    )
            return result

    def delete_node(self, path: str) -> Result:
        """Remove a file or a directory with its whole subtree."""
        with self._writing():
            try:
                canonical, _, node = self._parent_of(path)
                if node is None:
                    raise NotFound(f"No such file or directory: '{canonical}'", canonical)
            except VFSError as e:
                return self._fail("delete_node", e)

            now = now_iso()
            name = paths.basename(canonical)
            parent_path = paths.parent(canonical)
            root = rebuild(self.root, paths.split(parent_path), lambda d: without_child(d, name, now))
            changes: list[Change] = [Remove(canonical)]
            changes.extend(self._upserts(root, parent_path))
            return self._commit(root, changes)

    def move_item(self, src: str, dst: str) -> Result:
        """Move or rename a file or directory.

        The destination's parent must exist and the destination itself must
        be free. A directory cannot be moved into its own subtree.
        """
        with self._writing():
            try:
                src_path, _, node = self._parent_of(src)
                if node is None:
                    raise NotFound(f"No such file or directory: '{src_path}'", src_path)
                dst_path, dst_parent, occupant = self._parent_of(dst)
                if paths.is_within(dst_path, src_path):
                    raise InvalidPath(
                        f"Cannot move '{src_path}' into itself: '{dst_path}'", dst_path
                    )
                if occupant is not None:
                    raise AlreadyExists(f"File exists: '{dst_path}'", dst_path)
            except VFSError as e:
                return self._fail("move_item", e)

            now = now_iso()
            moved = node.evolve(name=paths.basename(dst_path), modified_at=now)
            src_parent = paths.parent(src_path)
            dst_parent_path = paths.parent(dst_path)
            src_name = paths.basename(src_path)
            root = rebuild(self.root, paths.split(src_parent), lambda d: without_child(d, src_name, now))
            root = rebuild(root, paths.split(dst_parent_path), lambda d: with_child(d, moved, now))

            changes: list[Change] = [Rename(src_path, dst_path, now)]
            parents = [src_parent] if src_parent == dst_parent_path else [src_parent, dst_parent_path]
            changes.extend(self._upserts(root, *parents))
            return self._commit(root, changes)

    def copy_item(self, src: str, dst: str) -> Result:
        """Copy a file, or a directory recursively.

        Directory entries are copied one by one from the snapshot taken when
        the copy started. The first failing entry stops the copy and its
        result is returned; entries already copied are left in place.
        """
        with self._writing():
            try:
                src_path = self.normalize(src)
                dst_path = self.normalize(dst)
                node = lookup(self.root, src_path)
                if node is None:
                    raise NotFound(f"No such file or directory: '{src_path}'", src_path)
                if node.is_dir and paths.is_within(dst_path, src_path):
                    raise InvalidPath(
                        f"Cannot copy '{src_path}' into itself: '{dst_path}'", dst_path
                    )
            except VFSError as e:
                return self._fail("copy_item", e)

            result = self._copy(node, dst_path)
            if result:
                logger.debug("copied %s -> %s", src_path, dst_path)
                return Result(True, self._snapshot)
            return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _copy(self, node: Node, dst: str) -> Result:
        if not node.is_dir:
            return self._create_leaf(dst, node.content or "", node.metadata, node.kind)
        result = self.create_directory(dst, metadata=node.metadata)
        for child in sorted_children(node):
            if not result:
                break
            result = self._copy(child, paths.join(dst, child.name, resolve_dots=self._resolve_dots))
        return result

    def _create_leaf(
        self,
        path: str,
        content: str,
        metadata: Mapping[str, Any] | None,
        kind: NodeKind,
    ) -> Result:
        _check_content(content)
        with self._writing():
            try:
                canonical, _, existing = self._parent_of(path)
                if existing is not None:
                    if not self._allow_overwrite:
                        raise AlreadyExists(f"File exists: '{canonical}'", canonical)
                    if existing.is_dir:
                        raise IsADirectory(f"Is a directory: '{canonical}'", canonical)
            except VFSError as e:
                return self._fail("create_file", e)

            now = now_iso()
            if existing is not None:
                node = existing.evolve(
                    kind=kind,
                    content=content,
                    modified_at=now,
                    metadata=metadata if metadata is not None else existing.metadata,
                )
            else:
                node = Node.file(paths.basename(canonical), content, metadata, now=now)
                if kind is not NodeKind.FILE:
                    node = node.evolve(kind=kind)
            parent_path = paths.parent(canonical)
            root = rebuild(self.root, paths.split(parent_path), lambda d: with_child(d, node, now))
            return self._commit(root, self._upserts(root, parent_path, canonical))

    def _parent_of(self, path: str) -> tuple[str, Node, Node | None]:
        """Resolve ``path``'s parent directory.

        Returns:
            (canonical path, parent directory node, existing node or None).

        Raises:
            InvalidPath: If path is the root or not a string.
            NotFound: If the parent does not exist.
            NotADirectory: If the parent is not a directory.
        """
        canonical = self.normalize(path)
        if canonical == paths.ROOT:
            raise InvalidPath("Operation not permitted on '/'", canonical)
        parent_path = paths.parent(canonical)
        parent = lookup(self.root, parent_path)
        if parent is None:
            raise NotFound(f"No such directory: '{parent_path}'", parent_path)
        if not parent.is_dir:
            raise NotADirectory(f"Not a directory: '{parent_path}'", parent_path)
        return canonical, parent, parent.children.get(paths.basename(canonical))

    def _upserts(self, root: Node, *targets: str) -> list[Change]:
        owner = self._backend.owner
        changes: list[Change] = []
        for path in targets:
            node = lookup(root, path)
            parent = None if path == paths.ROOT else paths.parent(path)
            changes.append(Upsert(FileRecord.from_node(owner, path, node, parent)))
        return changes

    def _commit(self, root: Node, changes: list[Change]) -> Result:
        try:
            self._backend.apply(changes, origin=self._token)
        except SyncError as e:
            logger.error("backend rejected %d change(s): %s", len(changes), e)
            self.error = e
            return Result(False, self._snapshot, e)
        self.error = None
        return Result(True, self._publish(root))

    def _publish(self, root: Node) -> Snapshot:
        snapshot = Snapshot(root, self._snapshot.version + 1, self._resolve_dots)
        self._snapshot = snapshot
        logger.debug("published snapshot v%d", snapshot.version)
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    def _fail(self, operation: str, error: VFSError) -> Result:
        logger.debug("%s failed: %s", operation, error)
        return Result(False, self._snapshot, error)

    def _on_backend_change(self, event: ChangeEvent) -> None:
        # Our own batches are already reflected in the published snapshot
        if event.origin is self._token:
            return
        logger.debug("backend changed for %s (%s), re-fetching", event.owner, event.paths)
        self._stale = True
        self._drain()

    @contextmanager
    def _writing(self) -> Iterator[None]:
        """Hold the engine lock for one mutation, then apply pending re-fetches."""
        try:
            with self._lock:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
        finally:
            self._drain()

    def _drain(self) -> None:
        # Never blocks on the lock; its current holder drains when leaving _writing()
        while self._stale and self._lock.acquire(blocking=False):
            try:
                if self._depth or not self._stale:
                    return
                self._depth += 1
                try:
                    self._reload()
                except SyncError as e:
                    logger.error("re-fetch after backend change failed: %s", e)
                    self.error = e
                finally:
                    self._depth -= 1
            finally:
                self._lock.release()

    def _reload(self) -> Snapshot:
        self._stale = False
        records = self._backend.load()
        logger.debug("refreshing %s from %d record(s)", self.username, len(records))
        return self._publish(build_tree(records))


def _check_content(content: object) -> None:
    if not isinstance(content, str):
        raise TypeError(f"Expected str, got {type(content).__name__}")
