"""SQLAlchemy-backed resource provider — one ``Session`` per worker.

Each handle wraps its own session, so a worker's uncommitted changes are
invisible to the others and are rolled back when the handle is released.
Sessions are synchronous; every handle call yields to the event loop once
before touching the database, which is where cancellation is observed.

This module provides:

* ``PoolBase`` / ``WorkRecordTable`` -- declarative model of a work record
* ``create_pool_engine``             -- engine factory with SQLite pragmas
* ``seed_records``                   -- bulk insert records for items
* ``SqlResourceProvider``            -- ResourceProvider over a sessionmaker

Example::

    engine = create_pool_engine("sqlite:///pool.db")
    provider = SqlResourceProvider(engine)
    provider.create_tables()
    seed_records(engine, {1: {"url": "https://example.org"}})

    async def fetch(record: WorkRecordTable) -> WorkRecordTable:
        record.payload["status_code"] = 200
        record.status = "done"
        return record

    await run_pool([1], 1, resources=provider, process=fetch)
"""

from __future__ import annotations

import asyncio
import datetime
from collections.abc import Mapping
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, Text, event
from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from drainpool.core.errors import CommitError, RecordNotFoundError
from drainpool.core.logging import get_logger
from drainpool.core.settings import PoolSettings

logger = get_logger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class PoolBase(DeclarativeBase):
    """Declarative base for drainpool tables."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
        dict: JSON,
    }


class WorkRecordTable(PoolBase):
    """State associated with one work item."""

    __tablename__ = "work_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    payload: Mapped[dict[str, Any]] = mapped_column(MutableDict.as_mutable(JSON), default=dict)
    status: Mapped[str] = mapped_column(default="pending")
    attempts: Mapped[int] = mapped_column(default=0)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"WorkRecordTable(id={self.id}, status={self.status!r}, attempts={self.attempts})"


def create_pool_engine(url: str = "sqlite:///drainpool.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite engines get WAL journaling and foreign keys turned on.
    """
    if not url.startswith("sqlite"):
        return _sa_create_engine(url, echo=echo, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = _sa_create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def seed_records(engine: Engine, records: Mapping[int, Mapping[str, Any]]) -> int:
    """Insert one pending ``WorkRecordTable`` row per item; returns the row count."""
    with Session(engine) as session, session.begin():
        session.add_all(
            WorkRecordTable(id=item, payload=dict(payload)) for item, payload in records.items()
        )
    return len(records)


class SqlHandle:
    """ResourceHandle over one SQLAlchemy session."""

    def __init__(self, session: Session, provider: SqlResourceProvider | None = None) -> None:
        self._session = session
        self._provider = provider
        self._released = False

    async def lookup(self, item: int) -> WorkRecordTable:
        await asyncio.sleep(0)
        record = self._session.get(WorkRecordTable, item)
        if record is None:
            raise RecordNotFoundError(item)
        return record

    async def commit(self) -> None:
        await asyncio.sleep(0)
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise CommitError(f"session commit failed: {exc}", cause=exc) from exc

    def release(self) -> None:
        if self._released:
            raise RuntimeError("session handle released twice")
        self._released = True
        self._session.close()
        if self._provider is not None:
            self._provider.released += 1

    @property
    def session(self) -> Session:
        return self._session


class SqlResourceProvider:
    """Hands each worker a fresh session from one ``sessionmaker``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._factory = sessionmaker(bind=engine, expire_on_commit=False)
        self.acquired = 0
        self.released = 0

    @classmethod
    def from_settings(cls, settings: PoolSettings, **engine_kwargs: Any) -> SqlResourceProvider:
        """Provider over an engine for ``settings.database_url``."""
        return cls(create_pool_engine(settings.database_url, **engine_kwargs))

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_tables(self) -> None:
        PoolBase.metadata.create_all(self._engine)

    def acquire(self) -> SqlHandle:
        self.acquired += 1
        logger.debug("sql.session_acquired", open=self.acquired - self.released)
        return SqlHandle(self._factory(), self)

    @property
    def open_handles(self) -> int:
        return self.acquired - self.released

