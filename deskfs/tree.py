"""Immutable tree snapshots and path-copy helpers.

Lookups walk from the root one segment at a time, so they cost O(depth).
Writers never touch an existing node: :func:`rebuild` copies only the
directories on the path to the change and shares everything else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

from . import paths
from .base import FileInfo, Node


def lookup(root: Node, path: str) -> Node | None:
    """Resolve a canonical path against a root node.

    Returns None if a segment is missing or an intermediate segment is not
    a directory.
    """
    node = root
    for part in paths.split(path):
        if not node.is_dir:
            return None
        node = node.children.get(part)
        if node is None:
            return None
    return node


def sort_key(node: Node) -> tuple[bool, str, str]:
    """Directories first, then case-insensitive name, then exact name."""
    return (not node.is_dir, node.name.casefold(), node.name)


def sorted_children(directory: Node) -> list[Node]:
    return sorted(directory.children.values(), key=sort_key)


def iter_tree(node: Node, prefix: str = "") -> Iterator[tuple[str, Node]]:
    """Yield ``(relative_path, node)`` for every descendant, depth-first."""
    if not node.is_dir:
        return
    for child in sorted_children(node):
        rel = f"{prefix}/{child.name}" if prefix else child.name
        yield rel, child
        yield from iter_tree(child, rel)


def file_info(path: str, node: Node) -> FileInfo:
    return FileInfo(
        name=node.name,
        path=path,
        kind=node.kind.value,
        size=node.size,
        created_at=node.created_at,
        modified_at=node.modified_at,
        permissions=node.permissions,
    )


def with_child(directory: Node, child: Node, modified_at: str | None = None) -> Node:
    """Return a copy of ``directory`` with ``child`` inserted or replaced."""
    children = dict(directory.children)
    children[child.name] = child
    if modified_at is None:
        return directory.evolve(children=children)
    return directory.evolve(children=children, modified_at=modified_at)


def without_child(directory: Node, name: str, modified_at: str | None = None) -> Node:
    """Return a copy of ``directory`` with the entry ``name`` removed."""
    children = dict(directory.children)
    del children[name]
    if modified_at is None:
        return directory.evolve(children=children)
    return directory.evolve(children=children, modified_at=modified_at)


def rebuild(root: Node, parts: Sequence[str], mutate: Callable[[Node], Node]) -> Node:
    """Apply ``mutate`` to the directory at ``parts`` and copy its ancestors.

    Args:
        root: Root of the current tree.
        parts: Segments of an existing directory path (may be empty for root).
        mutate: Returns the replacement for that directory.

    Returns:
        New root. Subtrees off the path are shared with ``root``.
    """
    if not parts:
        return mutate(root)
    head = parts[0]
    child = root.children[head]
    return with_child(root, rebuild(child, parts[1:], mutate))


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of the tree at one point in time.

    Holding a snapshot is always safe: later mutations build new roots and
    never change the nodes reachable from this one.

    Attributes:
        root: Root directory node.
        version: Monotonic counter, incremented for each published snapshot.
        resolve_dots: Path normalization mode used by the read methods.
    """

    root: Node
    version: int = 0
    resolve_dots: bool = True

    def _normalize(self, path: str) -> str:
        return paths.normalize(path, resolve_dots=self.resolve_dots)

    def get_node(self, path: str) -> Node | None:
        return lookup(self.root, self._normalize(path))

    def exists(self, path: str) -> bool:
        return self.get_node(path) is not None

    def is_directory(self, path: str) -> bool:
        node = self.get_node(path)
        return node is not None and node.is_dir

    def is_file(self, path: str) -> bool:
        node = self.get_node(path)
        return node is not None and node.is_file

    def list_directory(self, path: str) -> list[str] | None:
        """Child names, directories first then by name; None if not a directory."""
        node = self.get_node(path)
        if node is None or not node.is_dir:
            return None
        return [child.name for child in sorted_children(node)]

    def list_detailed(self, path: str) -> list[FileInfo] | None:
        """Child entries with metadata, in the same order as list_directory()."""
        canonical = self._normalize(path)
        node = lookup(self.root, canonical)
        if node is None or not node.is_dir:
            return None
        return [
            file_info(paths.join(canonical, child.name, resolve_dots=self.resolve_dots), child)
            for child in sorted_children(node)
        ]

    def get_info(self, path: str) -> FileInfo | None:
        canonical = self._normalize(path)
        node = lookup(self.root, canonical)
        if node is None:
            return None
        return file_info(canonical, node)

    def read_file(self, path: str) -> str | None:
        """Content of a file-like leaf; None for directories and missing paths."""
        node = self.get_node(path)
        if node is None or node.is_dir:
            return None
        return node.content or ""

    def walk(self, path: str = paths.ROOT) -> Iterator[tuple[str, Node]]:
        node = self.get_node(path)
        if node is None:
            return iter(())
        return iter_tree(node)
