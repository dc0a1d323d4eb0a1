"""SQLAlchemy-backed storage for per-owner filesystem rows.

Each filesystem entry is one row in the ``file_system`` table, unique per
``(user_id, path)``. Rows keep a stable ``id`` so a rename only rewrites
paths; the ``parent_id`` of descendants stays valid.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Callable, Sequence

import sqlalchemy as sql
import sqlalchemy.orm as orm
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from ..base import DEFAULT_GID, DEFAULT_UID, FILE_PERMISSIONS, FileRecord
from ..errors import SyncError
from ..paths import ROOT
from .base import Change, ChangeEvent, ChangeFeed, Listener, Remove, Rename, Upsert, change_paths, rebase

logger = logging.getLogger(__name__)

Base = orm.declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


class FileSystemRow(Base):
    __tablename__ = "file_system"
    __table_args__ = (sql.UniqueConstraint("user_id", "path", name="uq_file_system_user_path"),)

    # Lookup info.
    id = sql.Column(sql.String(32), primary_key=True, default=_new_id)
    user_id = sql.Column(sql.String, nullable=False, index=True)
    path = sql.Column(sql.String, nullable=False)
    name = sql.Column(sql.String, nullable=False)
    type = sql.Column(sql.String, nullable=False)  # file, directory or symlink
    parent_id = sql.Column(sql.String(32), sql.ForeignKey("file_system.id"), nullable=True)

    # Filesystem data.
    content = sql.Column(sql.Text, nullable=False, default="")
    meta = sql.Column("metadata", sql.JSON, default=dict)
    permissions = sql.Column(sql.String, nullable=False, default=FILE_PERMISSIONS)
    owner_uid = sql.Column(sql.Integer, nullable=False, default=DEFAULT_UID)
    group_gid = sql.Column(sql.Integer, nullable=False, default=DEFAULT_GID)
    size = sql.Column(sql.Integer, nullable=False, default=0)
    created_at = sql.Column(sql.String, nullable=False, default="")
    modified_at = sql.Column(sql.String, nullable=False, default="")
    accessed_at = sql.Column(sql.String, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<{self.name} ({self.id}) @ {self.path}>"


def create_engine(url: str, echo: bool = False) -> sql.Engine:
    """Create an engine, sharing one connection for in-memory SQLite."""
    parsed = sql.engine.make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:"):
        return sql.create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return sql.create_engine(url, echo=echo)


class TableStore:
    """Record store over the ``file_system`` table.

    Every batch runs in a single transaction. Database failures are
    reported as :class:`SyncError` and leave the table unchanged. Sessions
    from different threads run one at a time.

    Args:
        engine: SQLAlchemy engine or database URL (e.g. "sqlite:///fs.db").
        owner: Owner identity; every query is scoped to it.
        echo: Echo SQL when a URL is given.
    """

    def __init__(self, engine: sql.Engine | str, owner: str, echo: bool = False) -> None:
        if not owner:
            raise ValueError("TableStore requires an owner")
        if isinstance(engine, str):
            engine = create_engine(engine, echo=echo)
        self.engine = engine
        self.owner = owner
        self._sessions = orm.sessionmaker(bind=engine, expire_on_commit=False)
        self._feed = ChangeFeed()
        self._lock = threading.Lock()
        try:
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            raise SyncError(f"Failed to prepare file_system table: {e}") from e

    def load(self) -> list[FileRecord]:
        query = (
            sql.select(FileSystemRow)
            .where(FileSystemRow.user_id == self.owner)
            .order_by(FileSystemRow.path)
        )
        try:
            with self._lock, self._sessions() as session:
                rows = session.execute(query).scalars().all()
        except SQLAlchemyError as e:
            raise SyncError(f"Failed to load file_system rows: {e}") from e

        paths_by_id = {row.id: row.path for row in rows}
        return [self._to_record(row, paths_by_id.get(row.parent_id)) for row in rows]

    def apply(self, changes: Sequence[Change], origin: Any = None) -> None:
        try:
            with self._lock, self._sessions.begin() as session:
                for change in changes:
                    if isinstance(change, Upsert):
                        self._upsert(session, change.record)
                    elif isinstance(change, Remove):
                        self._remove(session, change.path)
                    elif isinstance(change, Rename):
                        self._rename(session, change)
                    else:
                        raise TypeError(f"Unknown change: {change!r}")
        except SQLAlchemyError as e:
            logger.error("file_system batch failed for %s: %s", self.owner, e)
            raise SyncError(f"Failed to persist records: {e}") from e

        paths = change_paths(changes)
        logger.debug("table store applied %d change(s): %s", len(changes), paths)
        self._feed.publish(ChangeEvent(owner=self.owner, origin=origin, paths=paths))

    def touch(self, path: str, accessed_at: str) -> None:
        try:
            with self._lock, self._sessions.begin() as session:
                row = self._get(session, path)
                if row is None:
                    raise SyncError(f"No such record: {path}", path)
                row.accessed_at = accessed_at
        except SQLAlchemyError as e:
            raise SyncError(f"Failed to update accessed_at: {e}") from e

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._feed.subscribe(listener)

    # -------------------------------------------------------------------------
    # Row helpers
    # -------------------------------------------------------------------------

    def _get(self, session: orm.Session, path: str) -> FileSystemRow | None:
        query = sql.select(FileSystemRow).where(
            FileSystemRow.user_id == self.owner,
            FileSystemRow.path == path,
        )
        return session.execute(query).scalar_one_or_none()

    def _subtree(self, path: str) -> sql.ColumnElement[bool]:
        owned = FileSystemRow.user_id == self.owner
        if path == ROOT:
            return owned
        return sql.and_(
            owned,
            sql.or_(
                FileSystemRow.path == path,
                FileSystemRow.path.startswith(path + "/", autoescape=True),
            ),
        )

    def _parent_id(self, session: orm.Session, parent: str | None) -> str | None:
        if parent is None:
            return None
        row = self._get(session, parent)
        if row is None:
            raise SyncError(f"Parent record missing: {parent}", parent)
        return row.id

    def _upsert(self, session: orm.Session, record: FileRecord) -> None:
        row = self._get(session, record.path)
        if row is None:
            row = FileSystemRow(id=_new_id(), user_id=self.owner, path=record.path)
            session.add(row)
        row.name = record.name
        row.type = record.kind
        row.content = record.content
        row.meta = dict(record.metadata)
        row.permissions = record.permissions
        row.owner_uid = record.owner_uid
        row.group_gid = record.group_gid
        row.size = record.size
        row.created_at = record.created_at
        row.modified_at = record.modified_at
        row.accessed_at = record.accessed_at
        row.parent_id = self._parent_id(session, record.parent)
        session.flush()

    def _remove(self, session: orm.Session, path: str) -> None:
        statement = (
            sql.delete(FileSystemRow)
            .where(self._subtree(path))
            .execution_options(synchronize_session=False)
        )
        session.execute(statement)

    def _rename(self, session: orm.Session, change: Rename) -> None:
        top = self._get(session, change.src)
        if top is None:
            raise SyncError(f"No such record: {change.src}", change.src)
        dst_parent = change.dst.rsplit("/", 1)[0] or ROOT
        parent_id = self._parent_id(session, dst_parent)

        rows = session.execute(sql.select(FileSystemRow).where(self._subtree(change.src))).scalars().all()
        for row in rows:
            row.path = rebase(row.path, change.src, change.dst)
        top.name = change.dst.rsplit("/", 1)[-1]
        top.modified_at = change.modified_at
        top.parent_id = parent_id
        session.flush()

    def _to_record(self, row: FileSystemRow, parent: str | None) -> FileRecord:
        return FileRecord(
            owner=row.user_id,
            path=row.path,
            name=row.name,
            kind=row.type,
            content=row.content or "",
            metadata=dict(row.meta or {}),
            permissions=row.permissions,
            owner_uid=row.owner_uid,
            group_gid=row.group_gid,
            size=row.size,
            created_at=row.created_at,
            modified_at=row.modified_at,
            accessed_at=row.accessed_at,
            parent=parent,
        )
