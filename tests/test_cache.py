"""Tests for StatementCache and exclusive handle borrowing."""

from __future__ import annotations

import pytest

from rowspine.cache import StatementCache, StatementHandle
from rowspine.errors import (
    EngineError,
    ForeignHandleError,
    HandleBusyError,
    HandleExpiredError,
    is_retryable,
)
from tests._support.fakes import FakeEngine

SQL = 'SELECT "id", "name", "age" FROM "person" WHERE "id" = ?'
OTHER_SQL = 'DELETE FROM "person" WHERE "id" = ?'


class TestGetOrPrepare:
    def test_prepares_once(self, fake_engine: FakeEngine, fake_cache: StatementCache) -> None:
        first = fake_cache.get_or_prepare(SQL)
        second = fake_cache.get_or_prepare(SQL)
        assert first is second
        assert fake_engine.count("prepare") == 1

    def test_distinct_sql_distinct_handles(self, fake_cache: StatementCache) -> None:
        assert fake_cache.get_or_prepare(SQL) is not fake_cache.get_or_prepare(OTHER_SQL)
        assert len(fake_cache) == 2
        assert SQL in fake_cache
        assert "SELECT 1" not in fake_cache

    def test_stats(self, fake_cache: StatementCache) -> None:
        fake_cache.get_or_prepare(SQL)
        fake_cache.get_or_prepare(SQL)
        fake_cache.get_or_prepare(OTHER_SQL)
        stats = fake_cache.stats()
        assert (stats.hits, stats.misses, stats.prepared, stats.live) == (1, 2, 2, 2)
        assert stats.to_dict()["hits"] == 1

    def test_prepare_failure_caches_nothing(self, fake_cache: StatementCache) -> None:
        with pytest.raises(EngineError):
            fake_cache.get_or_prepare("SELECT syntax error")
        assert len(fake_cache) == 0


class TestClear:
    def test_handle_expires(self, fake_cache: StatementCache) -> None:
        handle = fake_cache.get_or_prepare(SQL)
        fake_cache.clear()
        assert handle.expired
        with pytest.raises(HandleExpiredError) as exc_info:
            with handle.borrow():
                pass
        assert is_retryable(exc_info.value)
        with pytest.raises(HandleExpiredError):
            handle.statement

    def test_finalizes_statements(self, fake_engine: FakeEngine, fake_cache: StatementCache) -> None:
        fake_cache.get_or_prepare(SQL)
        fake_cache.get_or_prepare(OTHER_SQL)
        fake_cache.clear()
        assert fake_engine.count("finalize") == 2
        assert all(s.finalized for s in fake_engine.prepared)
        assert len(fake_cache) == 0

    def test_reprepares_after_clear(self, fake_engine: FakeEngine, fake_cache: StatementCache) -> None:
        old = fake_cache.get_or_prepare(SQL)
        fake_cache.clear()
        new = fake_cache.get_or_prepare(SQL)
        assert new is not old
        assert not new.expired
        assert fake_engine.count("prepare") == 2
        assert fake_cache.stats().prepared == 2


class TestBorrow:
    def test_exclusive(self, fake_cache: StatementCache) -> None:
        handle = fake_cache.get_or_prepare(SQL)
        with handle.borrow() as borrowed:
            assert borrowed is handle
            assert handle.busy
            with pytest.raises(HandleBusyError):
                with handle.borrow():
                    pass
        assert not handle.busy

    def test_released_on_error(self, fake_cache: StatementCache) -> None:
        handle = fake_cache.get_or_prepare(SQL)
        with pytest.raises(RuntimeError):
            with handle.borrow():
                raise RuntimeError("boom")
        with handle.borrow():
            pass

    def test_repr_tracks_state(self, fake_cache: StatementCache) -> None:
        handle = fake_cache.get_or_prepare(SQL)
        assert "live" in repr(handle)
        fake_cache.clear()
        assert "expired" in repr(handle)


class TestValidate:
    def test_accepts_own_handle(self, fake_cache: StatementCache) -> None:
        handle = fake_cache.get_or_prepare(SQL)
        assert fake_cache.validate(handle) is handle

    def test_rejects_foreign_handle(self, fake_cache: StatementCache) -> None:
        other = StatementCache(FakeEngine())
        with pytest.raises(ForeignHandleError):
            fake_cache.validate(other.get_or_prepare(SQL))

    def test_rejects_expired_handle(self, fake_cache: StatementCache) -> None:
        handle = fake_cache.get_or_prepare(SQL)
        fake_cache.clear()
        with pytest.raises(HandleExpiredError):
            fake_cache.validate(handle)

    def test_handles_from_hand_built_cache(self, fake_engine: FakeEngine) -> None:
        handle = StatementHandle(SQL, fake_engine, object())
        assert StatementCache(fake_engine).validate(handle) is handle
