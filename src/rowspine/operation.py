"""Per-call operation state.

Every session call walks one :class:`Operation` through a fixed lifecycle.
Transitions are enforced via ``OPERATION_VALID_TRANSITIONS``; the
:func:`validate_operation_transition` function and ``Operation.advance()``
apply the rules.

Valid transition graph::

    BUILT     → PREPARED | FAILED
    PREPARED  → BOUND | ITERATING | FAILED     (SELECT_ALL binds nothing)
    BOUND     → EXECUTED | ITERATING | FAILED
    EXECUTED  → DONE | FAILED
    ITERATING → DONE | FAILED
    DONE      → (terminal)
    FAILED    → (terminal)

Nothing is retried internally. A caller that gets a retryable error (an
expired handle) starts a new operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from rowspine.builder import OperationKind
from rowspine.errors import InvalidTransitionError


class OperationState(str, Enum):
    """Lifecycle of one session call."""

    BUILT = "built"
    PREPARED = "prepared"
    BOUND = "bound"
    EXECUTED = "executed"
    ITERATING = "iterating"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (OperationState.DONE, OperationState.FAILED)


OPERATION_VALID_TRANSITIONS: dict[OperationState, frozenset[OperationState]] = {
    OperationState.BUILT: frozenset({OperationState.PREPARED, OperationState.FAILED}),
    OperationState.PREPARED: frozenset({
        OperationState.BOUND,
        OperationState.ITERATING,
        OperationState.FAILED,
    }),
    OperationState.BOUND: frozenset({
        OperationState.EXECUTED,
        OperationState.ITERATING,
        OperationState.FAILED,
    }),
    OperationState.EXECUTED: frozenset({OperationState.DONE, OperationState.FAILED}),
    OperationState.ITERATING: frozenset({OperationState.DONE, OperationState.FAILED}),
    OperationState.DONE: frozenset(),
    OperationState.FAILED: frozenset(),
}


def validate_operation_transition(current: OperationState, target: OperationState) -> None:
    """Raise :class:`~rowspine.errors.InvalidTransitionError` if *current → target* is illegal.

    Example:
        >>> validate_operation_transition(OperationState.BOUND, OperationState.EXECUTED)
        >>> validate_operation_transition(OperationState.DONE, OperationState.BOUND)
        Traceback (most recent call last):
        InvalidTransitionError: Invalid operation transition: done → bound
    """
    allowed = OPERATION_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value)


@dataclass
class Operation:
    """Tracking record for one call: what ran, where it got to, what it did."""

    kind: OperationKind
    table: str
    sql: str
    state: OperationState = OperationState.BUILT
    rows_affected: int | None = None
    rows_read: int = 0

    def advance(self, target: OperationState) -> None:
        """Move to ``target``.

        Raises:
            InvalidTransitionError: If *self.state → target* is illegal.
        """
        validate_operation_transition(self.state, target)
        self.state = target

    def fail(self) -> None:
        """Move to FAILED unless the operation already ended."""
        if not self.state.terminal:
            self.advance(OperationState.FAILED)

    def to_dict(self) -> dict[str, object]:
        return {
            "operation": self.kind.value,
            "table": self.table,
            "state": self.state.value,
            "rows_affected": self.rows_affected,
            "rows_read": self.rows_read,
        }


__all__ = [
    "OPERATION_VALID_TRANSITIONS",
    "Operation",
    "OperationState",
    "validate_operation_transition",
]
