"""Bind typed field values into a statement's positional parameters.

The binder trusts the order it is given: slot ``i + 1`` receives
``fields[i].codec.encode(values[i])``. Callers take that order from
:func:`rowspine.builder.bind_order` so it always matches the placeholders of
the canonical SQL.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from rowspine.builder import OperationKind, StatementBuilder
from rowspine.cache import StatementHandle
from rowspine.errors import BindError, CodecError, EngineError, FieldBindError, SchemaError
from rowspine.schema import FieldDescriptor, ModelSchema


class Binder:
    """Encodes values through field codecs and binds them on the handle's engine."""

    def __init__(self, builder: StatementBuilder | None = None) -> None:
        self.builder = builder or StatementBuilder()

    def bind(
        self,
        handle: StatementHandle,
        fields: Sequence[FieldDescriptor],
        values: Sequence[Any],
    ) -> None:
        """Bind ``values[i]`` through ``fields[i]`` into parameter slot ``i + 1``.

        Existing bindings are cleared first, so a failed bind never leaves a
        mix of old and new values behind for the next execute.

        Raises:
            HandleExpiredError: The handle's cache was cleared.
            BindError: ``values`` and ``fields`` differ in length.
            FieldBindError: A codec or the engine rejected one field's value.
        """
        statement = handle.statement
        if len(values) != len(fields):
            raise BindError(
                f"Expected {len(fields)} values for {[d.name for d in fields]}, got {len(values)}"
            ).with_context(sql=handle.sql)

        engine = handle.engine
        engine.clear_bindings(statement)
        for index, (descriptor, value) in enumerate(zip(fields, values), start=1):
            try:
                native = descriptor.codec.encode(value)
                engine.bind_parameter(statement, index, native)
            except (CodecError, EngineError) as exc:
                engine.clear_bindings(statement)
                raise FieldBindError(descriptor, exc).with_context(sql=handle.sql) from exc

    def bind_model(
        self,
        handle: StatementHandle,
        schema: ModelSchema,
        kind: OperationKind,
        model: Any,
    ) -> None:
        """Bind the fields ``kind`` needs, read from ``model`` in bind order."""
        fields = self.builder.bind_order(schema, kind)
        try:
            values = schema.values_of(model, fields)
        except (AttributeError, SchemaError) as exc:
            raise BindError(f"Cannot read fields of {type(model).__name__}: {exc}", cause=exc).with_context(
                table=schema.table_name, operation=OperationKind(kind).value
            ) from exc
        self.bind(handle, fields, values)

    def bind_key(self, handle: StatementHandle, schema: ModelSchema, key_values: Any) -> None:
        """Bind primary-key values for a keyed statement (see :func:`key_values_for`)."""
        keys = schema.primary_key_fields()
        self.bind(handle, keys, key_values_for(schema, key_values))


def key_values_for(schema: ModelSchema, key_values: Any) -> list[Any]:
    """Normalize a key to a list in primary-key order.

    Accepts a mapping of key names, a tuple/list in key order, or a bare value
    when the schema has a single key field.

    Raises:
        BindError: Missing or unknown key names, or a wrong number of values.
    """
    keys = schema.primary_key_fields()
    names = [d.name for d in keys]

    if isinstance(key_values, Mapping):
        unknown = sorted(set(key_values) - set(names))
        missing = [n for n in names if n not in key_values]
        if unknown or missing:
            raise BindError(
                f"Key for table {schema.table_name!r} must name {names}; missing {missing}, unknown {unknown}"
            ).with_context(table=schema.table_name)
        return [key_values[n] for n in names]

    if isinstance(key_values, (tuple, list)):
        values = list(key_values)
    elif len(keys) == 1:
        values = [key_values]
    else:
        raise BindError(
            f"Table {schema.table_name!r} has a composite key {names}; pass a tuple or mapping"
        ).with_context(table=schema.table_name)

    if len(values) != len(keys):
        raise BindError(
            f"Expected {len(keys)} key values for {names}, got {len(values)}"
        ).with_context(table=schema.table_name)
    return values


__all__ = ["Binder", "key_values_for"]
