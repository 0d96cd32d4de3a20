"""Small SQL text helpers."""

from __future__ import annotations


def split_queries(script: str) -> list[str]:
    """Split a ``;``-separated script into trimmed, non-empty statements.

    The split is purely textual: a ``;`` inside a string literal or a trigger
    body also ends a statement. Intended for simple DDL/bootstrap scripts.

    Examples:
        >>> split_queries("CREATE TABLE a (x); ; INSERT INTO a VALUES (1);")
        ['CREATE TABLE a (x)', 'INSERT INTO a VALUES (1)']
    """
    return [query.strip() for query in script.split(";") if query.strip()]


__all__ = ["split_queries"]
