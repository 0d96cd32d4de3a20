"""CRUD over typed models for one connection scope.

``Session`` pairs an engine with its own :class:`StatementCache` and runs
each call through the same pipeline::

    ┌─────────────────────────────────────────────────────────────────────┐
    │                              Session                                │
    │                                                                     │
    │   StatementBuilder.build(schema, kind)      BUILT                   │
    │   StatementCache.get_or_prepare(sql)        PREPARED                │
    │   with handle.borrow():                                             │
    │       Binder.bind_model / bind_key          BOUND                   │
    │       engine.execute  → rows affected       EXECUTED                │
    │       engine.query    → RowMapper           ITERATING               │
    │                                             DONE | FAILED           │
    └─────────────────────────────────────────────────────────────────────┘

``schema`` arguments accept a :class:`ModelSchema` or a dataclass type (its
schema is derived once through :func:`model_schema`).

Usage:
    >>> with connect() as session:
    ...     session.execute_script('CREATE TABLE "person" ("id" INTEGER PRIMARY KEY, "name" TEXT, "age" INTEGER)')
    ...     session.insert(Person, Person(1, "Ada", None))
    ...     session.select_by_key(Person, 1)
    Person(id=1, name='Ada', age=None)

Transactions follow sqlite3's defaults: writes are pending until
:meth:`Session.commit`. Closing a session without committing discards them
when the session owns its engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from rowspine.binder import Binder
from rowspine.builder import BuiltStatement, OperationKind, StatementBuilder
from rowspine.cache import StatementCache, StatementHandle
from rowspine.engine import SqliteEngine
from rowspine.errors import EngineError, RowspineError
from rowspine.logging import get_logger
from rowspine.mapper import RowMapper
from rowspine.operation import Operation, OperationState
from rowspine.protocols import Engine
from rowspine.schema import ModelSchema, model_schema
from rowspine.settings import RowspineSettings

logger = get_logger(__name__)


class Session:
    """One connection scope: an engine, its statement cache and the CRUD API.

    Parameters:
        engine: Any object satisfying the :class:`~rowspine.protocols.Engine` protocol.
        owns_engine: Close the engine when the session closes.
        builder: Statement builder to use (a fresh one by default).
    """

    def __init__(
        self,
        engine: Engine,
        *,
        owns_engine: bool = False,
        builder: StatementBuilder | None = None,
    ) -> None:
        self.engine = engine
        self.cache = StatementCache(engine)
        self.builder = builder or StatementBuilder()
        self.binder = Binder(self.builder)
        self.mapper = RowMapper()
        self.last_operation: Operation | None = None
        self._owns_engine = owns_engine
        self._closed = False

    # -- CRUD --------------------------------------------------------------

    def insert(self, schema: ModelSchema | type, model: Any) -> None:
        """Insert ``model`` as a new row.

        Raises:
            FieldBindError: A field value could not be encoded or bound.
            ConstraintViolationError: The engine rejected the row (duplicate key...).
        """
        schema = _schema_of(schema)
        self._write(
            schema,
            OperationKind.INSERT,
            lambda handle: self.binder.bind_model(handle, schema, OperationKind.INSERT, model),
        )

    def select_by_key(self, schema: ModelSchema | type, key_values: Any) -> Any | None:
        """Return the model stored under ``key_values``, or ``None``.

        ``key_values`` is a tuple in primary-key order, a mapping of key names,
        or a bare value for a single-key schema.
        """
        schema = _schema_of(schema)
        built, operation = self._start(schema, OperationKind.SELECT_BY_KEY)
        try:
            handle = self._prepare(built, operation)
            with handle.borrow():
                self.binder.bind_key(handle, schema, key_values)
                operation.advance(OperationState.BOUND)
                rows = self.engine.query(handle.statement)
                operation.advance(OperationState.ITERATING)
                try:
                    row = rows.next()
                    model = None if row is None else self.mapper.map_row(schema, row)
                finally:
                    rows.close()
            operation.rows_read = 0 if model is None else 1
            operation.advance(OperationState.DONE)
        except Exception as exc:
            self._failed(operation, exc)
            raise
        self._completed(operation)
        return model

    def select_all(self, schema: ModelSchema | type) -> Iterator[Any]:
        """Lazily yield every row of the table as a model, in primary-key order.

        The statement is built and prepared immediately; rows are read as the
        iterator advances. The statement stays borrowed until the iterator is
        exhausted or closed.
        """
        schema = _schema_of(schema)
        built, operation = self._start(schema, OperationKind.SELECT_ALL)
        try:
            handle = self._prepare(built, operation)
        except Exception as exc:
            self._failed(operation, exc)
            raise
        return self._iterate(schema, handle, operation)

    def update_by_key(self, schema: ModelSchema | type, model: Any) -> int:
        """Overwrite the row keyed by ``model``'s primary key; returns rows affected (0 if missing)."""
        schema = _schema_of(schema)
        return self._write(
            schema,
            OperationKind.UPDATE_BY_KEY,
            lambda handle: self.binder.bind_model(handle, schema, OperationKind.UPDATE_BY_KEY, model),
        )

    def delete_by_key(self, schema: ModelSchema | type, key_values: Any) -> int:
        """Delete the row under ``key_values``; returns rows affected."""
        schema = _schema_of(schema)
        return self._write(
            schema,
            OperationKind.DELETE_BY_KEY,
            lambda handle: self.binder.bind_key(handle, schema, key_values),
        )

    # -- Connection scope --------------------------------------------------

    def execute_script(self, script: str) -> None:
        """Run a ``;``-separated SQL script (DDL, fixtures)."""
        self._check_open()
        self.engine.execute_script(script)

    def commit(self) -> None:
        self._check_open()
        self.engine.commit()

    def rollback(self) -> None:
        self._check_open()
        self.engine.rollback()

    def close(self) -> None:
        """Release every cached statement; close the engine if the session owns it."""
        if self._closed:
            return
        self._closed = True
        try:
            self.cache.clear()
        finally:
            if self._owns_engine:
                self.engine.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Session({self.engine!r}, statements={len(self.cache)}{', closed' if self._closed else ''})"

    # -- Pipeline ----------------------------------------------------------

    def _start(self, schema: ModelSchema, kind: OperationKind) -> tuple[BuiltStatement, Operation]:
        self._check_open()
        built = self.builder.build(schema, kind)
        operation = Operation(kind=kind, table=schema.table_name, sql=built.sql)
        self.last_operation = operation
        return built, operation

    def _prepare(self, built: BuiltStatement, operation: Operation) -> StatementHandle:
        handle = self.cache.validate(self.cache.get_or_prepare(built.sql))
        operation.advance(OperationState.PREPARED)
        return handle

    def _write(self, schema: ModelSchema, kind: OperationKind, bind: Any) -> int:
        built, operation = self._start(schema, kind)
        try:
            handle = self._prepare(built, operation)
            with handle.borrow():
                bind(handle)
                operation.advance(OperationState.BOUND)
                rows = self.engine.execute(handle.statement)
                operation.advance(OperationState.EXECUTED)
            operation.rows_affected = rows
            operation.advance(OperationState.DONE)
        except Exception as exc:
            self._failed(operation, exc)
            raise
        self._completed(operation)
        return rows

    def _iterate(self, schema: ModelSchema, handle: StatementHandle, operation: Operation) -> Iterator[Any]:
        try:
            with handle.borrow():
                rows = self.engine.query(handle.statement)
                operation.advance(OperationState.ITERATING)
                try:
                    while (row := rows.next()) is not None:
                        model = self.mapper.map_row(schema, row)
                        operation.rows_read += 1
                        yield model
                finally:
                    rows.close()
            operation.advance(OperationState.DONE)
        except Exception as exc:
            self._failed(operation, exc)
            raise
        except GeneratorExit:
            operation.advance(OperationState.DONE)
            raise
        self._completed(operation)

    def _failed(self, operation: Operation, exc: Exception) -> None:
        operation.fail()
        if isinstance(exc, RowspineError):
            if exc.context.table is None:
                exc.with_context(table=operation.table)
            if exc.context.operation is None:
                exc.with_context(operation=operation.kind.value)
        logger.debug("operation_failed", error=exc.__class__.__name__, **operation.to_dict())

    def _completed(self, operation: Operation) -> None:
        logger.debug("operation_completed", **operation.to_dict())

    def _check_open(self) -> None:
        if self._closed:
            raise EngineError("Session is closed")


def _schema_of(schema: ModelSchema | type) -> ModelSchema:
    if isinstance(schema, ModelSchema):
        return schema
    return model_schema(schema)


def connect(settings: RowspineSettings | None = None) -> Session:
    """Open a session on a new :class:`SqliteEngine` built from settings."""
    engine = SqliteEngine.from_settings(settings)
    return Session(engine, owns_engine=True)


# -- Module-level API ------------------------------------------------------


def insert(session: Session, schema: ModelSchema | type, model: Any) -> None:
    session.insert(schema, model)


def select_by_key(session: Session, schema: ModelSchema | type, key_values: Any) -> Any | None:
    return session.select_by_key(schema, key_values)


def select_all(session: Session, schema: ModelSchema | type) -> Iterator[Any]:
    return session.select_all(schema)


def update_by_key(session: Session, schema: ModelSchema | type, model: Any) -> int:
    return session.update_by_key(schema, model)


def delete_by_key(session: Session, schema: ModelSchema | type, key_values: Any) -> int:
    return session.delete_by_key(schema, key_values)


__all__ = [
    "Session",
    "connect",
    "delete_by_key",
    "insert",
    "select_all",
    "select_by_key",
    "update_by_key",
]
