"""
Prepared-statement cache for one connection scope.

``StatementCache`` owns every statement handle prepared on its engine, keyed
by canonical SQL text. The second request for the same SQL returns the same
handle without asking the engine to prepare again.

Architecture:
    ::

        StatementCache(engine)
        ├── get_or_prepare(sql) → StatementHandle   (prepare on miss)
        ├── validate(handle)                        (same engine, still live)
        ├── clear()                                 (expire + finalize all)
        └── stats() → CacheStats

        StatementHandle
        └── borrow(): exclusive, released on every exit path

Unlike the key/value caches used elsewhere, there is no size bound and no
TTL: the number of distinct statements is the number of (model, operation)
pairs in the process.

Examples:
    >>> cache = StatementCache(engine)
    >>> handle = cache.get_or_prepare('DELETE FROM "person" WHERE "id" = ?')
    >>> with handle.borrow():
    ...     binder.bind(handle, fields, [1])
    ...     engine.execute(handle.statement)
    >>> cache.clear()
    >>> handle.borrow()  # raises HandleExpiredError

Guardrails:
    ❌ DON'T: Keep a handle across ``clear()`` or ``Session.close()``
    ✅ DO: Ask the cache again; ``HandleExpiredError`` is retryable

    ❌ DON'T: Share a cache (or its handles) between connections
    ✅ DO: One cache per engine; ``validate`` rejects foreign handles
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from rowspine.errors import ForeignHandleError, HandleBusyError, HandleExpiredError
from rowspine.logging import get_logger
from rowspine.protocols import Engine

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheStats:
    """Counters for one cache since it was created."""

    hits: int
    misses: int
    prepared: int
    live: int

    def to_dict(self) -> dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "prepared": self.prepared, "live": self.live}


class StatementHandle:
    """A prepared statement owned by a :class:`StatementCache`.

    The engine statement is reachable only while the handle is live. Binder,
    engine and mapper use it inside ``borrow()``.
    """

    __slots__ = ("sql", "engine", "_statement", "_expired", "_busy")

    def __init__(self, sql: str, engine: Engine, statement: Any) -> None:
        self.sql = sql
        self.engine = engine
        self._statement = statement
        self._expired = False
        self._busy = False

    @property
    def statement(self) -> Any:
        """The engine's prepared statement.

        Raises:
            HandleExpiredError: The owning cache was cleared.
        """
        self._check_live()
        return self._statement

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def busy(self) -> bool:
        return self._busy

    @contextmanager
    def borrow(self) -> Iterator[StatementHandle]:
        """Borrow the handle exclusively for one call.

        Raises:
            HandleExpiredError: The owning cache was cleared.
            HandleBusyError: Another call holds the borrow.
        """
        self._check_live()
        if self._busy:
            raise HandleBusyError("Statement handle is already borrowed").with_context(sql=self.sql)
        self._busy = True
        try:
            yield self
        finally:
            self._busy = False

    def _check_live(self) -> None:
        if self._expired:
            raise HandleExpiredError("Statement handle used after its cache was cleared").with_context(
                sql=self.sql
            )

    def _expire(self) -> Any:
        self._expired = True
        statement, self._statement = self._statement, None
        return statement

    def __repr__(self) -> str:
        state = "expired" if self._expired else ("busy" if self._busy else "live")
        return f"StatementHandle({self.sql!r}, {state})"


class StatementCache:
    """Canonical SQL → live :class:`StatementHandle`, for one engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._handles: dict[str, StatementHandle] = {}
        self._hits = 0
        self._misses = 0
        self._prepared = 0

    def get_or_prepare(self, sql: str) -> StatementHandle:
        """Return the live handle for ``sql``, preparing it on first use.

        Raises:
            EngineError: The engine could not prepare ``sql``; nothing is cached.
        """
        handle = self._handles.get(sql)
        if handle is not None:
            self._hits += 1
            return handle

        self._misses += 1
        statement = self.engine.prepare(sql)
        handle = StatementHandle(sql, self.engine, statement)
        self._handles[sql] = handle
        self._prepared += 1
        logger.debug("statement_prepared", sql=sql, live=len(self._handles))
        return handle

    def validate(self, handle: StatementHandle) -> StatementHandle:
        """Check that ``handle`` came from this cache's engine and is live.

        Raises:
            ForeignHandleError: The handle was prepared on another engine.
            HandleExpiredError: The handle was released by ``clear()``.
        """
        if handle.engine is not self.engine:
            raise ForeignHandleError("Statement handle belongs to a different connection").with_context(
                sql=handle.sql
            )
        handle._check_live()
        return handle

    def clear(self) -> None:
        """Expire and finalize every handle. Later use raises ``HandleExpiredError``."""
        handles = list(self._handles.values())
        self._handles.clear()
        statements = [handle._expire() for handle in handles]
        for statement in statements:
            self.engine.finalize(statement)
        logger.debug("statement_cache_cleared", released=len(handles))

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            prepared=self._prepared,
            live=len(self._handles),
        )

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, sql: object) -> bool:
        return sql in self._handles

    def __repr__(self) -> str:
        return f"StatementCache(live={len(self._handles)}, engine={self.engine!r})"


__all__ = [
    "CacheStats",
    "StatementCache",
    "StatementHandle",
]
