"""Canonical SQL for the CRUD shapes of a model schema.

``StatementBuilder.build(schema, kind)`` is a pure function of its inputs:
the same schema and operation kind always produce byte-identical SQL, which
is what lets :class:`~rowspine.cache.StatementCache` key prepared statements
by their text.

Parameter order is part of the contract. ``BuiltStatement.params`` lists the
field descriptors in exactly the order their placeholders appear, and the
binder fills slots in that order::

    INSERT          all column fields, schema order
    SELECT_BY_KEY   key fields, schema order
    DELETE_BY_KEY   key fields, schema order
    UPDATE_BY_KEY   non-key fields (SET), then key fields (WHERE)
    SELECT_ALL      no parameters

Examples:
    >>> builder = StatementBuilder()
    >>> builder.sql(person_schema, OperationKind.UPDATE_BY_KEY)
    'UPDATE "person" SET "name" = ?, "age" = ? WHERE "id" = ?'
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from rowspine.dialect import SQLiteDialect
from rowspine.errors import UnsupportedShapeError
from rowspine.schema import FieldDescriptor, ModelSchema


class OperationKind(str, Enum):
    """Statement shapes the builder can derive."""

    INSERT = "insert"
    SELECT_BY_KEY = "select_by_key"
    UPDATE_BY_KEY = "update_by_key"
    DELETE_BY_KEY = "delete_by_key"
    SELECT_ALL = "select_all"

    @property
    def requires_key(self) -> bool:
        return self in _KEYED_KINDS

    @property
    def returns_rows(self) -> bool:
        return self in (OperationKind.SELECT_BY_KEY, OperationKind.SELECT_ALL)


_KEYED_KINDS = frozenset(
    {OperationKind.SELECT_BY_KEY, OperationKind.UPDATE_BY_KEY, OperationKind.DELETE_BY_KEY}
)


@dataclass(frozen=True)
class BuiltStatement:
    """Canonical SQL plus the fields bound to its placeholders, in order."""

    kind: OperationKind
    table: str
    sql: str
    params: tuple[FieldDescriptor, ...]

    @property
    def param_count(self) -> int:
        return len(self.params)


class StatementBuilder:
    """Derives canonical SQL from a :class:`ModelSchema`.

    Results are memoised per ``(schema, kind)``; schemas are immutable so the
    memo never goes stale.
    """

    def __init__(self, dialect: SQLiteDialect | None = None) -> None:
        self.dialect = dialect or SQLiteDialect()
        self._built: dict[tuple[ModelSchema, OperationKind], BuiltStatement] = {}

    def build(self, schema: ModelSchema, kind: OperationKind) -> BuiltStatement:
        """Return the statement for ``kind`` on ``schema``.

        Raises:
            UnsupportedShapeError: ``kind`` needs primary-key fields the schema
                lacks, or an update has no non-key column to set.
        """
        kind = OperationKind(kind)
        memo_key = (schema, kind)
        built = self._built.get(memo_key)
        if built is None:
            built = self._build(schema, kind)
            self._built[memo_key] = built
        return built

    def sql(self, schema: ModelSchema, kind: OperationKind) -> str:
        return self.build(schema, kind).sql

    def bind_order(self, schema: ModelSchema, kind: OperationKind) -> tuple[FieldDescriptor, ...]:
        return self.build(schema, kind).params

    # -- Shapes ------------------------------------------------------------

    def _build(self, schema: ModelSchema, kind: OperationKind) -> BuiltStatement:
        keys = schema.primary_key_fields()
        if kind.requires_key and not keys:
            raise UnsupportedShapeError(schema.table_name, kind.value, "schema has no primary key field")

        q = self.dialect.quote_identifier
        table = q(schema.table_name)
        columns = schema.fields()
        column_list = ", ".join(q(d.name) for d in columns)

        if kind is OperationKind.INSERT:
            sql = f"INSERT INTO {table} ({column_list}) VALUES ({self.dialect.placeholders(len(columns))})"
            params = columns
        elif kind is OperationKind.SELECT_ALL:
            sql = f"SELECT {column_list} FROM {table}"
            if keys:
                sql += " ORDER BY " + ", ".join(q(d.name) for d in keys)
            params = ()
        elif kind is OperationKind.SELECT_BY_KEY:
            sql = f"SELECT {column_list} FROM {table} WHERE {self._where(keys)}"
            params = keys
        elif kind is OperationKind.DELETE_BY_KEY:
            sql = f"DELETE FROM {table} WHERE {self._where(keys)}"
            params = keys
        elif kind is OperationKind.UPDATE_BY_KEY:
            values = schema.non_key_fields()
            if not values:
                raise UnsupportedShapeError(schema.table_name, kind.value, "schema has no non-key column to set")
            assignments = ", ".join(f"{q(d.name)} = {self.dialect.placeholder(i)}" for i, d in enumerate(values))
            sql = f"UPDATE {table} SET {assignments} WHERE {self._where(keys, offset=len(values))}"
            params = values + keys
        else:  # pragma: no cover - exhaustive over OperationKind
            raise UnsupportedShapeError(schema.table_name, str(kind), "unknown operation kind")

        return BuiltStatement(kind=kind, table=schema.table_name, sql=sql, params=tuple(params))

    def _where(self, keys: tuple[FieldDescriptor, ...], offset: int = 0) -> str:
        q = self.dialect.quote_identifier
        return " AND ".join(
            f"{q(d.name)} = {self.dialect.placeholder(offset + i)}" for i, d in enumerate(keys)
        )


_DEFAULT_BUILDER = StatementBuilder()


def build_sql(schema: ModelSchema, kind: OperationKind) -> str:
    """Canonical SQL for ``kind`` on ``schema`` (shared default builder)."""
    return _DEFAULT_BUILDER.sql(schema, kind)


def bind_order(schema: ModelSchema, kind: OperationKind) -> tuple[FieldDescriptor, ...]:
    """Fields bound to ``kind``'s placeholders, in placeholder order."""
    return _DEFAULT_BUILDER.bind_order(schema, kind)


__all__ = [
    "BuiltStatement",
    "OperationKind",
    "StatementBuilder",
    "bind_order",
    "build_sql",
]
