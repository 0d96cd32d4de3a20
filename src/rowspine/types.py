"""Value types stored through rowspine codecs.

``IntegerId`` is a table-bound integer identifier: ``IntegerId[Person]`` and
``IntegerId[Order]`` are distinct types, so an order id can never be passed
where a person id is expected, while both are stored as a plain SQLite
``INTEGER``.

``TimeScale`` selects the unit an INTEGER timestamp or duration column is
counted in.

Examples:
    >>> PersonId = IntegerId["Person"]
    >>> PersonId(7) == PersonId(7)
    True
    >>> PersonId(7) == IntegerId["Order"](7)
    False
    >>> int(PersonId(7))
    7
"""

from __future__ import annotations

import functools
from enum import Enum
from typing import Any, ClassVar

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class TimeScale(int, Enum):
    """Ticks per second for INTEGER-backed timestamps and durations."""

    SECONDS = 1
    MILLISECONDS = 1_000
    MICROSECONDS = 1_000_000
    NANOSECONDS = 1_000_000_000


@functools.total_ordering
class IntegerId:
    """Integer primary/foreign key bound to a model type.

    Subscript with the model to get the id type for that model. Id types are
    keyed by the model's ``module.qualname``, so two models that share a bare
    name still get distinct id types. A string subscript is a forward
    reference used as the key as written: ``IntegerId["app.models.Person"]``
    is ``IntegerId[Person]`` for a ``Person`` defined in ``app.models``.
    """

    __slots__ = ("_value",)

    model: ClassVar[Any] = None
    _bound: ClassVar[dict[Any, type[IntegerId]]] = {}

    def __init__(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{type(self).__name__} requires an int, got {type(value).__name__}")
        self._value = value

    def __class_getitem__(cls, model: Any) -> type[IntegerId]:
        if isinstance(model, str):
            key = model
        else:
            key = f"{model.__module__}.{model.__qualname__}"
        bound = IntegerId._bound.get(key)
        if bound is None:
            label = key.rsplit(".", 1)[-1]
            bound = type(f"IntegerId[{label}]", (IntegerId,), {"__slots__": (), "model": key})
            IntegerId._bound[key] = bound
        return bound

    @classmethod
    def model_name(cls) -> str | None:
        return cls.model

    @classmethod
    def from_row(cls, row: Any, column: str = "id") -> IntegerId:
        """Read the id from the named column of a row view."""
        names = list(row.column_names)
        return cls(row.column(names.index(column)))

    @property
    def value(self) -> int:
        return self._value

    def __int__(self) -> int:
        return self._value

    def __index__(self) -> int:
        return self._value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntegerId) or type(other) is not type(self):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, IntegerId) or type(other) is not type(self):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash((type(self).model_name(), self._value))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value})"


__all__ = [
    "INT64_MAX",
    "INT64_MIN",
    "IntegerId",
    "TimeScale",
]
