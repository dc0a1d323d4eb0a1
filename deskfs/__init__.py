"""deskfs: In-memory virtual filesystem for the desktop simulator."""

from .base import FileInfo, FileRecord, Node, NodeKind
from .config import MemoryStoreConfig, StoreConfig, TableStoreConfig, VFSConfig, connect_store, open_vfs
from .editor import EditorSession
from .errors import (
    AlreadyExists,
    InvalidPath,
    NotFound,
    SyncError,
    UnsavedChanges,
    VFSError,
    WrongKind,
)
from .paths import normalize
from .seed import default_tree
from .shell import Shell
from .storage import MemoryStore, StorageBackend, TableStore
from .tree import Snapshot
from .vfs import Result, VirtualFS

__all__ = [
    "AlreadyExists",
    "connect_store",
    "default_tree",
    "EditorSession",
    "FileInfo",
    "FileRecord",
    "InvalidPath",
    "MemoryStore",
    "MemoryStoreConfig",
    "Node",
    "NodeKind",
    "normalize",
    "NotFound",
    "open_vfs",
    "Result",
    "Shell",
    "Snapshot",
    "StorageBackend",
    "StoreConfig",
    "SyncError",
    "TableStore",
    "TableStoreConfig",
    "UnsavedChanges",
    "VFSConfig",
    "VFSError",
    "VirtualFS",
    "WrongKind",
]
