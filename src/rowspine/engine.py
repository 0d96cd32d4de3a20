"""SQLite engine adapter.

Wraps a :class:`sqlite3.Connection` behind the small statement-level API the
mapping layer consumes::

    prepare(sql)                          -> PreparedStatement
    clear_bindings(stmt)
    bind_parameter(stmt, index, value)    (1-based index, native values only)
    execute(stmt)                         -> rows affected
    query(stmt)                           -> RowIterator
    RowIterator.next()                    -> RowView | None
    RowView.column(index)                 -> native value

Each prepared statement owns a dedicated cursor and its own parameter slots.
sqlite3 keeps compiled statements in a per-connection LRU keyed by SQL text
(``cached_statements``), so re-executing a prepared statement reuses the
compiled program instead of parsing the SQL again.

Every ``sqlite3.Error`` is re-raised as :class:`~rowspine.errors.EngineError`
(constraint failures as :class:`~rowspine.errors.ConstraintViolationError`)
with the original exception chained.

Usage::

    engine = SqliteEngine(":memory:")
    stmt = engine.prepare('SELECT "name" FROM "person" WHERE "id" = ?')
    engine.clear_bindings(stmt)
    engine.bind_parameter(stmt, 1, 7)
    rows = engine.query(stmt)
    while (row := rows.next()) is not None:
        print(row.column(0))
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Any

from rowspine.errors import ConstraintViolationError, EngineError, RowExpiredError
from rowspine.logging import get_logger
from rowspine.settings import RowspineSettings
from rowspine.types import INT64_MAX, INT64_MIN
from rowspine.util import split_queries

logger = get_logger(__name__)

_NATIVE_TYPES = (type(None), int, float, str, bytes)


def _decode_text(data: bytes) -> str | bytes:
    """TEXT as ``str``; text that is not valid UTF-8 is handed back as ``bytes``."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data


def _utf8_length(value: str) -> int:
    try:
        return len(value.encode("utf-8"))
    except UnicodeEncodeError as exc:
        raise EngineError(f"Cannot bind text that is not valid UTF-8: {exc.reason}", cause=exc) from exc


def _engine_error(exc: sqlite3.Error, sql: str | None = None) -> EngineError:
    if isinstance(exc, sqlite3.IntegrityError):
        error: EngineError = ConstraintViolationError(str(exc), cause=exc)
    else:
        error = EngineError(str(exc), cause=exc)
    if sql is not None:
        error.with_context(sql=sql)
    return error


class PreparedStatement:
    """A statement prepared on one engine: SQL text, cursor and parameter slots."""

    __slots__ = ("sql", "engine", "_cursor", "_slots", "_finalized")

    def __init__(self, sql: str, engine: SqliteEngine, cursor: sqlite3.Cursor) -> None:
        self.sql = sql
        self.engine = engine
        self._cursor = cursor
        self._slots: dict[int, Any] = {}
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def parameters(self) -> tuple[Any, ...]:
        """Bound values in slot order. Slots must be contiguous from 1."""
        count = len(self._slots)
        if count and max(self._slots) != count:
            missing = sorted(set(range(1, max(self._slots) + 1)) - set(self._slots))
            raise EngineError(f"Parameter slots {missing} are not bound").with_context(sql=self.sql)
        return tuple(self._slots[i] for i in range(1, count + 1))

    def _release(self, close_cursor: bool) -> None:
        if not self._finalized:
            self._finalized = True
            self._slots.clear()
            if close_cursor:
                self._cursor.close()

    def __repr__(self) -> str:
        state = "finalized" if self._finalized else "ready"
        return f"PreparedStatement({self.sql!r}, {state})"


class RowView:
    """Read-only view of the current row. Invalid once the iterator advances."""

    __slots__ = ("_values", "_names", "_valid")

    def __init__(self, values: tuple[Any, ...], names: tuple[str, ...]) -> None:
        self._values = values
        self._names = names
        self._valid = True

    @property
    def column_count(self) -> int:
        self._check()
        return len(self._values)

    @property
    def column_names(self) -> tuple[str, ...]:
        self._check()
        return self._names

    def column(self, index: int) -> Any:
        self._check()
        if not 0 <= index < len(self._values):
            raise EngineError(f"Column index {index} out of range for a row of {len(self._values)} columns")
        return self._values[index]

    def _invalidate(self) -> None:
        self._valid = False

    def _check(self) -> None:
        if not self._valid:
            raise RowExpiredError("Row view used after the iterator moved past its row")

    def __repr__(self) -> str:
        return f"RowView({dict(zip(self._names, self._values))!r})" if self._valid else "RowView(<expired>)"


class RowIterator:
    """Forward-only iterator over a statement's result rows."""

    def __init__(self, statement: PreparedStatement, cursor: sqlite3.Cursor) -> None:
        self._statement = statement
        self._cursor = cursor
        self._names = tuple(d[0] for d in cursor.description or ())
        self._current: RowView | None = None
        self._done = False

    @property
    def column_names(self) -> tuple[str, ...]:
        return self._names

    @property
    def done(self) -> bool:
        return self._done

    def next(self) -> RowView | None:
        """Advance to the next row; ``None`` once the result set is exhausted."""
        self._release_current()
        if self._done:
            return None
        if self._statement.finalized:
            self._done = True
            raise EngineError("Statement finalized during iteration").with_context(sql=self._statement.sql)
        try:
            values = self._cursor.fetchone()
        except sqlite3.Error as exc:
            self._done = True
            raise _engine_error(exc, self._statement.sql) from exc
        if values is None:
            self._done = True
            return None
        self._current = RowView(tuple(values), self._names)
        return self._current

    def close(self) -> None:
        self._release_current()
        self._done = True

    def _release_current(self) -> None:
        if self._current is not None:
            self._current._invalidate()
            self._current = None

    def __iter__(self) -> Iterator[RowView]:
        return self

    def __next__(self) -> RowView:
        row = self.next()
        if row is None:
            raise StopIteration
        return row


class SqliteEngine:
    """One SQLite connection exposed through the statement-level API.

    Parameters:
        database: Path to the database file, or ``":memory:"``.
        timeout: Seconds to wait for a locked database.
        cached_statements: sqlite3's compiled statement cache size.
        foreign_keys: Enable foreign key enforcement.
    """

    def __init__(
        self,
        database: str = ":memory:",
        *,
        timeout: float = 5.0,
        cached_statements: int = 128,
        foreign_keys: bool = True,
    ) -> None:
        self.database = database
        try:
            self._conn = sqlite3.connect(database, timeout=timeout, cached_statements=cached_statements)
            self._conn.text_factory = _decode_text
            if foreign_keys:
                self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise _engine_error(exc) from exc
        self._closed = False
        logger.debug("engine_opened", database=database)

    @classmethod
    def from_settings(cls, settings: RowspineSettings | None = None) -> SqliteEngine:
        settings = settings or RowspineSettings()
        return cls(
            settings.database,
            timeout=settings.timeout,
            cached_statements=settings.cached_statements,
            foreign_keys=settings.foreign_keys,
        )

    # -- Statement API -----------------------------------------------------

    def prepare(self, sql: str) -> PreparedStatement:
        """Prepare a single SQL statement.

        Raises:
            EngineError: The connection is closed or ``sql`` is not one
                complete statement.
        """
        self._check_open()
        text = sql.strip()
        if not text or not sqlite3.complete_statement(text if text.endswith(";") else text + ";"):
            raise EngineError(f"Incomplete SQL statement: {sql!r}").with_context(sql=sql)
        return PreparedStatement(sql, self, self._conn.cursor())

    def clear_bindings(self, statement: PreparedStatement) -> None:
        self._check_statement(statement)
        statement._slots.clear()

    def bind_parameter(self, statement: PreparedStatement, index: int, value: Any) -> None:
        """Bind a native value to the 1-based parameter ``index``.

        Raises:
            EngineError: ``value`` is not a native SQLite value, or exceeds the
                engine's storage limits (64-bit integers, maximum length).
        """
        self._check_statement(statement)
        if index < 1:
            raise EngineError(f"Parameter index must be >= 1, got {index}")
        if isinstance(value, bool) or not isinstance(value, _NATIVE_TYPES):
            raise EngineError(f"Cannot bind {type(value).__name__}: not a native SQLite value")
        if isinstance(value, int) and not INT64_MIN <= value <= INT64_MAX:
            raise EngineError(f"Integer {value} exceeds the 64-bit INTEGER storage limit")
        if isinstance(value, (str, bytes)):
            size = len(value) if isinstance(value, bytes) else _utf8_length(value)
            if size > self._max_length():
                raise EngineError(f"Value of {size} bytes exceeds the SQLite length limit")
        statement._slots[index] = value

    def execute(self, statement: PreparedStatement) -> int:
        """Run a write statement; returns the number of rows affected."""
        self._check_statement(statement)
        params = statement.parameters()
        try:
            statement._cursor.execute(statement.sql, params)
        except sqlite3.Error as exc:
            raise _engine_error(exc, statement.sql) from exc
        return max(statement._cursor.rowcount, 0)

    def query(self, statement: PreparedStatement) -> RowIterator:
        """Run a read statement; rows are fetched lazily from the iterator."""
        self._check_statement(statement)
        params = statement.parameters()
        try:
            cursor = statement._cursor.execute(statement.sql, params)
        except sqlite3.Error as exc:
            raise _engine_error(exc, statement.sql) from exc
        return RowIterator(statement, cursor)

    def finalize(self, statement: PreparedStatement) -> None:
        """Release a prepared statement. Further use raises ``EngineError``."""
        if statement.engine is not self:
            raise EngineError("Statement was prepared on a different connection").with_context(sql=statement.sql)
        statement._release(close_cursor=not self._closed)

    # -- Connection --------------------------------------------------------

    def execute_script(self, script: str) -> None:
        """Run each ``;``-separated statement of ``script`` in order."""
        self._check_open()
        for sql in split_queries(script):
            try:
                self._conn.execute(sql)
            except sqlite3.Error as exc:
                raise _engine_error(exc, sql) from exc

    def commit(self) -> None:
        self._check_open()
        try:
            self._conn.commit()
        except sqlite3.Error as exc:
            raise _engine_error(exc) from exc

    def rollback(self) -> None:
        self._check_open()
        try:
            self._conn.rollback()
        except sqlite3.Error as exc:
            raise _engine_error(exc) from exc

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._conn.close()
            logger.debug("engine_closed", database=self.database)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def raw(self) -> sqlite3.Connection:
        """The underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    # -- Internals ---------------------------------------------------------

    def _max_length(self) -> int:
        return self._conn.getlimit(sqlite3.SQLITE_LIMIT_LENGTH)

    def _check_open(self) -> None:
        if self._closed:
            raise EngineError(f"Connection to {self.database!r} is closed")

    def _check_statement(self, statement: PreparedStatement) -> None:
        self._check_open()
        if statement.engine is not self:
            raise EngineError("Statement was prepared on a different connection").with_context(sql=statement.sql)
        if statement.finalized:
            raise EngineError("Statement is finalized").with_context(sql=statement.sql)

    def __enter__(self) -> SqliteEngine:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SqliteEngine({self.database!r}{', closed' if self._closed else ''})"


__all__ = [
    "PreparedStatement",
    "RowIterator",
    "RowView",
    "SqliteEngine",
]
