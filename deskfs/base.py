"""Node and record dataclasses.

Defines the immutable tree node used by snapshots, the flat record shape
exchanged with storage backends, and the row type returned to file browsers.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

FILE_PERMISSIONS = "644"
DIR_PERMISSIONS = "755"
DEFAULT_UID = 1000
DEFAULT_GID = 1000


def now_iso() -> str:
    """Get current UTC timestamp as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


class NodeKind(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    # Stored but never dereferenced; behaves as an opaque file-like leaf.
    SYMLINK = "symlink"



@dataclass(frozen=True)
class Node:
    """A single file or directory in an immutable tree.

    Nodes are never mutated after construction. Mutations build new nodes
    along the changed path and share every untouched subtree, so a root
    held by a reader keeps describing the state it was taken from.

    Attributes:
        name: Final path segment ("" for the root).
        kind: File, directory or symlink.
        content: Text content (files and symlinks only).
        children: Read-only mapping of child name to node (directories only).
        created_at: ISO 8601 timestamp when the node was created (UTC).
        modified_at: ISO 8601 timestamp of the last content or structural change.
        accessed_at: ISO 8601 timestamp of the last read, if any.
        metadata: Free-form metadata carried through copies.
        permissions: Octal permission string. Informational only.
        owner_uid: Numeric owner id. Informational only.
        group_gid: Numeric group id. Informational only.
    """

    name: str
    kind: NodeKind
    content: str | None = None
    children: Mapping[str, "Node"] | None = None
    created_at: str = ""
    modified_at: str = ""
    accessed_at: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)
    permissions: str = FILE_PERMISSIONS
    owner_uid: int = DEFAULT_UID
    group_gid: int = DEFAULT_GID

    def __post_init__(self) -> None:
        if "/" in self.name:
            raise ValueError(f"Node name may not contain '/': {self.name!r}")
        if self.kind is NodeKind.DIRECTORY:
            if self.content is not None:
                raise ValueError("Directories do not carry content")
            children = dict(self.children or {})
            for key, child in children.items():
                if key != child.name:
                    raise ValueError(f"Child key {key!r} != name {child.name!r}")
            object.__setattr__(self, "children", MappingProxyType(children))
        else:
            if self.children is not None:
                raise ValueError("Files do not carry children")
            if self.content is None:
                object.__setattr__(self, "content", "")
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def file(
        cls,
        name: str,
        content: str = "",
        metadata: Mapping[str, Any] | None = None,
        now: str | None = None,
    ) -> "Node":
        now = now or now_iso()
        return cls(
            name=name,
            kind=NodeKind.FILE,
            content=content,
            created_at=now,
            modified_at=now,
            metadata=metadata or {},
        )

    @classmethod
    def directory(
        cls,
        name: str,
        children: Mapping[str, "Node"] | None = None,
        metadata: Mapping[str, Any] | None = None,
        now: str | None = None,
    ) -> "Node":
        now = now or now_iso()
        return cls(
            name=name,
            kind=NodeKind.DIRECTORY,
            children=children or {},
            created_at=now,
            modified_at=now,
            metadata=metadata or {},
            permissions=DIR_PERMISSIONS,
        )

    @property
    def is_dir(self) -> bool:
        return self.kind is NodeKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        return self.kind is NodeKind.FILE

    @property
    def size(self) -> int:
        """UTF-8 byte length of the content (0 for directories)."""
        if self.content is None:
            return 0
        return len(self.content.encode("utf-8"))

    def evolve(self, **changes: Any) -> "Node":
        """Return a copy of this node with the given fields replaced."""
        return replace(self, **changes)


@dataclass
class FileRecord:
    """Flat, path-keyed row exchanged with storage backends.

    Attributes:
        owner: Identity that owns the row (paths are unique per owner).
        path: Canonical absolute path.
        name: Display name (final path segment).
        kind: "file", "directory" or "symlink".
        content: Text content ("" for directories).
        metadata: Free-form JSON-compatible metadata.
        permissions: Octal permission string.
        owner_uid: Numeric owner id.
        group_gid: Numeric group id.
        size: Byte size of content.
        created_at: ISO 8601 creation timestamp (UTC).
        modified_at: ISO 8601 modification timestamp (UTC).
        accessed_at: ISO 8601 access timestamp (UTC).
        parent: Canonical path of the parent directory (None for the root).
    """

    owner: str
    path: str
    name: str
    kind: str
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    permissions: str = FILE_PERMISSIONS
    owner_uid: int = DEFAULT_UID
    group_gid: int = DEFAULT_GID
    size: int = 0
    created_at: str = ""
    modified_at: str = ""
    accessed_at: str = ""
    parent: str | None = None

    @classmethod
    def from_node(cls, owner: str, path: str, node: Node, parent: str | None) -> "FileRecord":
        return cls(
            owner=owner,
            path=path,
            name=node.name,
            kind=node.kind.value,
            content=node.content or "",
            metadata=dict(node.metadata),
            permissions=node.permissions,
            owner_uid=node.owner_uid,
            group_gid=node.group_gid,
            size=node.size,
            created_at=node.created_at,
            modified_at=node.modified_at,
            accessed_at=node.accessed_at,
            parent=parent,
        )

    def to_node(self, children: Mapping[str, Node] | None = None) -> Node:
        """Build a node from this record (children only for directories)."""
        kind = NodeKind(self.kind)
        is_dir = kind is NodeKind.DIRECTORY
        return Node(
            name=self.name,
            kind=kind,
            content=None if is_dir else (self.content or ""),
            children=(children or {}) if is_dir else None,
            created_at=self.created_at,
            modified_at=self.modified_at,
            accessed_at=self.accessed_at,
            metadata=self.metadata or {},
            permissions=self.permissions,
            owner_uid=self.owner_uid,
            group_gid=self.group_gid,
        )


@dataclass
class FileInfo:
    """Complete entry information for UI display.

    Attributes:
        name: File or directory name (basename).
        path: Full canonical path.
        kind: "file", "directory" or "symlink".
        size: Size in bytes (0 for directories).
        created_at: ISO 8601 timestamp when created (UTC).
        modified_at: ISO 8601 timestamp when last modified (UTC).
        permissions: Octal permission string.
    """

    name: str
    path: str
    kind: str
    size: int
    created_at: str
    modified_at: str
    permissions: str

    @property
    def is_dir(self) -> bool:
        return self.kind == NodeKind.DIRECTORY.value
