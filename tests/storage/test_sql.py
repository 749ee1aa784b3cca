"""Tests for the SQLAlchemy resource provider (file-backed SQLite)."""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from drainpool.core.errors import RecordNotFoundError
from drainpool.core.settings import PoolSettings
from drainpool.execution.outcomes import GroupFailed, GroupSucceeded
from drainpool.execution.pool import run_pool
from drainpool.storage.protocols import ResourceProvider
from drainpool.storage.sql import (
    SqlResourceProvider,
    WorkRecordTable,
    create_pool_engine,
    seed_records,
)


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def engine(tmp_path):
    engine = create_pool_engine(f"sqlite:///{tmp_path / 'pool.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def provider(engine):
    provider = SqlResourceProvider(engine)
    provider.create_tables()
    seed_records(engine, {i: {"url": f"https://example.org/{i}"} for i in range(6)})
    return provider


async def _fetch(record: WorkRecordTable) -> WorkRecordTable:
    record.payload["status_code"] = 200
    record.status = "done"
    record.attempts += 1
    return record


def _rows(engine) -> list[WorkRecordTable]:
    with Session(engine) as session:
        return list(session.query(WorkRecordTable).order_by(WorkRecordTable.id))


# ── Tests ────────────────────────────────────────────────────────────────


class TestSqlProvider:
    def test_satisfies_protocol(self, provider):
        assert isinstance(provider, ResourceProvider)

    def test_wal_journal_mode(self, engine):
        with engine.connect() as conn:
            mode = conn.exec_driver_sql("PRAGMA journal_mode").scalar()
        assert mode.lower() == "wal"

    @pytest.mark.asyncio
    async def test_lookup_missing(self, provider):
        handle = provider.acquire()
        try:
            with pytest.raises(RecordNotFoundError):
                await handle.lookup(999)
        finally:
            handle.release()
        assert provider.open_handles == 0

    @pytest.mark.asyncio
    async def test_release_rolls_back_uncommitted(self, provider, engine):
        handle = provider.acquire()
        record = await handle.lookup(0)
        record.status = "dirty"
        handle.release()
        assert _rows(engine)[0].status == "pending"

    def test_double_release(self, provider):
        handle = provider.acquire()
        handle.release()
        with pytest.raises(RuntimeError):
            handle.release()


class TestSqlEpisode:
    @pytest.mark.asyncio
    async def test_structured_episode_commits_every_record(self, provider, engine):
        result = await run_pool(range(6), 3, resources=provider, process=_fetch)

        assert isinstance(result, GroupSucceeded)
        rows = _rows(engine)
        assert [r.status for r in rows] == ["done"] * 6
        assert all(r.payload["status_code"] == 200 for r in rows)
        assert all(r.attempts == 1 for r in rows)
        assert provider.acquired == 3
        assert provider.open_handles == 0

    @pytest.mark.asyncio
    async def test_missing_row_fails_episode(self, provider):
        result = await run_pool([0, 1, 42], 1, resources=provider, process=_fetch)

        assert isinstance(result, GroupFailed)
        assert result.error.items == [42]
        assert provider.open_handles == 0


class TestSqlSettings:
    def test_from_settings(self, tmp_path):
        settings = PoolSettings(database_url=f"sqlite:///{tmp_path / 'settings.db'}")
        provider = SqlResourceProvider.from_settings(settings)
        try:
            provider.create_tables()
            assert seed_records(provider.engine, {1: {}}) == 1
        finally:
            provider.engine.dispose()
