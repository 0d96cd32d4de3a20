"""SQLite SQL fragments used by the statement builder.

Identifiers are always double-quoted so that column names which happen to be
keywords (``order``, ``group``) never change the meaning of a statement, and
so that the generated text is the same no matter which names a model uses.

Examples:
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.quote_identifier('order')
    '"order"'
"""

from __future__ import annotations

from rowspine.errors import SchemaError


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders, double-quoted identifiers."""

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    # -- Identifiers -------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        if not name or "\x00" in name:
            raise SchemaError(f"Invalid SQL identifier {name!r}")
        return '"' + name.replace('"', '""') + '"'


__all__ = [
    "SQLiteDialect",
]
