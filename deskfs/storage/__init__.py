from .base import Change, ChangeEvent, Remove, Rename, StorageBackend, Upsert
from .memory import MemoryStore
from .table import FileSystemRow, TableStore

__all__ = [
    "Change",
    "ChangeEvent",
    "FileSystemRow",
    "MemoryStore",
    "Remove",
    "Rename",
    "StorageBackend",
    "TableStore",
    "Upsert",
]
