"""Configuration for filesystem storage.

Provides configuration dataclasses, the connect_store factory for choosing
a storage backend, and open_vfs for building a ready engine from a config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .storage.base import StorageBackend
from .storage.memory import MemoryStore
from .storage.table import TableStore
from .vfs import VirtualFS


@dataclass
class MemoryStoreConfig:
    """Configuration for in-memory storage.

    Attributes:
        type: Always "memory".
    """

    type: Literal["memory"] = "memory"


@dataclass
class TableStoreConfig:
    """Configuration for the persisted ``file_system`` table.

    Attributes:
        type: Always "table".
        url: SQLAlchemy database URL (default: private in-memory SQLite).
        owner: Owner identity scoping every row. Defaults to the username.
        echo: Log emitted SQL.
    """

    type: Literal["table"] = "table"
    url: str = "sqlite://"
    owner: str = ""
    echo: bool = False


# Type alias for all store configs
StoreConfig = MemoryStoreConfig | TableStoreConfig


@dataclass
class VFSConfig:
    """Configuration for a VirtualFS instance.

    Attributes:
        username: Owner of the default home directory.
        store: Storage backend configuration.
        resolve_dots: Resolve "." and ".." in paths (False keeps them literal).
        allow_overwrite: Let create_file() replace existing files.
        seed: Populate the default tree when the store is empty.
    """

    username: str = "user"
    store: StoreConfig = field(default_factory=MemoryStoreConfig)
    resolve_dots: bool = True
    allow_overwrite: bool = False
    seed: bool = True


def connect_store(
    type: Literal["memory", "table"] = "memory",
    **kwargs,
) -> StoreConfig:
    """Configure storage.

    Args:
        type: Storage type.
            - "memory": Records held in a mapping for the life of the process.
            - "table": Rows in a SQL ``file_system`` table via SQLAlchemy.
        **kwargs: Additional configuration for the storage type.
            For type="table":
                - url (str): Optional. Database URL (default "sqlite://").
                - owner (str): Optional. Row owner (default: the username).
                - echo (bool): Optional. Log SQL (default: False).

    Returns:
        StoreConfig for open_vfs().

    Examples:
        >>> connect_store(type="memory")
        MemoryStoreConfig(type='memory')

        >>> connect_store(type="table", url="sqlite:///desktop.db", owner="alice")
        TableStoreConfig(type='table', url='sqlite:///desktop.db', owner='alice', echo=False)
    """
    if type == "memory":
        if kwargs:
            raise ValueError(
                f"Unexpected arguments for memory store: {list(kwargs.keys())}"
            )
        return MemoryStoreConfig()

    elif type == "table":
        url = kwargs.pop("url", "sqlite://")
        owner = kwargs.pop("owner", "")
        echo = kwargs.pop("echo", False)

        if kwargs:
            raise ValueError(
                f"Unexpected arguments for table store: {list(kwargs.keys())}"
            )

        if not url:
            raise ValueError("Table store requires a 'url' parameter")

        return TableStoreConfig(url=url, owner=owner, echo=echo)

    else:
        raise ValueError(
            f"Unsupported store type: {type}. Use 'memory' or 'table'."
        )


def open_backend(config: VFSConfig) -> StorageBackend:
    """Build the storage backend described by ``config.store``."""
    store = config.store
    if isinstance(store, TableStoreConfig):
        return TableStore(store.url, owner=store.owner or config.username, echo=store.echo)
    return MemoryStore(owner=config.username)


def open_vfs(config: VFSConfig | None = None) -> VirtualFS:
    """Build a VirtualFS from a config, seeding an empty store.

    Raises:
        SyncError: If the store cannot be prepared or loaded.
    """
    config = config or VFSConfig()
    return VirtualFS(
        open_backend(config),
        username=config.username,
        resolve_dots=config.resolve_dots,
        allow_overwrite=config.allow_overwrite,
        seed=config.seed,
    )
