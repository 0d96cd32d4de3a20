"""Turn result rows into model instances.

A row is checked as a whole before any value is decoded (column count, then
column names when the engine reports them). Decoding stops at the first field
that fails, and the model factory only runs once every column has decoded,
so a caller either gets a complete instance or a :class:`MapError`.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from rowspine.errors import (
    CodecError,
    ColumnCountMismatchError,
    ColumnOrderMismatchError,
    FieldDecodeError,
)
from rowspine.logging import get_logger
from rowspine.protocols import Row
from rowspine.schema import ModelSchema

logger = get_logger(__name__)


class RowMapper:
    """Decodes rows with the codecs of a :class:`ModelSchema`."""

    def map_row(self, schema: ModelSchema, row: Row) -> Any:
        """Build one model instance from the current row.

        Raises:
            ColumnCountMismatchError: The row's width differs from ``schema.fields()``.
            ColumnOrderMismatchError: Reported column names differ from the schema's.
            FieldDecodeError: A column failed to decode; names the field.
        """
        fields = schema.fields()
        if row.column_count != len(fields):
            raise ColumnCountMismatchError(schema.table_name, len(fields), row.column_count)

        names = list(row.column_names or ())
        expected = schema.column_names()
        if names and names != expected:
            raise ColumnOrderMismatchError(schema.table_name, expected, names)

        values: dict[str, Any] = {}
        for index, descriptor in enumerate(fields):
            native = row.column(index)
            try:
                values[descriptor.name] = descriptor.codec.decode(native)
            except CodecError as exc:
                logger.warning(
                    "row_decode_failed",
                    table=schema.table_name,
                    field=descriptor.name,
                    error=exc.__class__.__name__,
                )
                raise FieldDecodeError(descriptor, exc).with_context(table=schema.table_name) from exc
        return schema.build(values)

    def map_rows(self, schema: ModelSchema, rows: Iterable[Row]) -> Iterator[Any]:
        """Lazily map each row; stops at the first row that fails."""
        for row in rows:
            yield self.map_row(schema, row)


__all__ = ["RowMapper"]
