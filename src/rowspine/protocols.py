"""
Structural protocols for the engine collaborator.

The mapping layer never imports sqlite3 directly: the cache, binder, mapper
and session depend on these shapes only. :class:`rowspine.engine.SqliteEngine`
is the shipped implementation; tests substitute recording fakes.

Architecture:
    ::

        protocols.py
        ├── Engine       : prepare / bind_parameter / execute / query
        ├── RowSource    : RowIterator: next() -> RowView | None
        └── Row          : RowView: column(index), column_count

Guardrails:
    ❌ DON'T: Reach into an engine's statement object from the mapping layer
    ✅ DO: Pass it back to the engine that prepared it
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Row(Protocol):
    """One result row, valid only while it is the iterator's current row.

    ``column_names`` may be empty when the engine does not report names.
    """

    @property
    def column_count(self) -> int: ...

    @property
    def column_names(self) -> tuple[str, ...]: ...

    def column(self, index: int) -> Any: ...


@runtime_checkable
class RowSource(Protocol):
    """Forward-only result iterator."""

    def next(self) -> Row | None: ...

    def close(self) -> None: ...


@runtime_checkable
class Engine(Protocol):
    """Statement-level API of an embedded SQL engine connection.

    ``statement`` arguments are the opaque objects returned by ``prepare``
    on the same engine. Failures raise :class:`~rowspine.errors.EngineError`.
    """

    def prepare(self, sql: str) -> Any: ...

    def clear_bindings(self, statement: Any) -> None: ...

    def bind_parameter(self, statement: Any, index: int, value: Any) -> None: ...

    def execute(self, statement: Any) -> int: ...

    def query(self, statement: Any) -> RowSource: ...

    def finalize(self, statement: Any) -> None: ...

    def execute_script(self, script: str) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


__all__ = ["Engine", "Row", "RowSource"]
