"""Tests for the per-call operation state machine."""

from __future__ import annotations

import pytest

from rowspine.builder import OperationKind
from rowspine.errors import InvalidTransitionError
from rowspine.operation import (
    OPERATION_VALID_TRANSITIONS,
    Operation,
    OperationState,
    validate_operation_transition,
)


def _operation() -> Operation:
    return Operation(kind=OperationKind.INSERT, table="person", sql='INSERT INTO "person" ...')


class TestTransitions:
    def test_every_state_has_an_entry(self) -> None:
        assert set(OPERATION_VALID_TRANSITIONS) == set(OperationState)

    def test_terminal_states_are_final(self) -> None:
        for state in (OperationState.DONE, OperationState.FAILED):
            assert state.terminal
            assert OPERATION_VALID_TRANSITIONS[state] == frozenset()

    def test_every_live_state_can_fail(self) -> None:
        for state in OperationState:
            if not state.terminal:
                validate_operation_transition(state, OperationState.FAILED)

    @pytest.mark.parametrize(
        "current, target",
        [
            (OperationState.BUILT, OperationState.BOUND),
            (OperationState.PREPARED, OperationState.EXECUTED),
            (OperationState.EXECUTED, OperationState.ITERATING),
            (OperationState.DONE, OperationState.PREPARED),
            (OperationState.FAILED, OperationState.DONE),
        ],
    )
    def test_illegal(self, current: OperationState, target: OperationState) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_operation_transition(current, target)
        assert exc_info.value.current == current.value
        assert exc_info.value.target == target.value


class TestOperation:
    def test_write_path(self) -> None:
        op = _operation()
        for state in (OperationState.PREPARED, OperationState.BOUND, OperationState.EXECUTED, OperationState.DONE):
            op.advance(state)
        assert op.state is OperationState.DONE

    def test_select_all_skips_bound(self) -> None:
        op = _operation()
        op.advance(OperationState.PREPARED)
        op.advance(OperationState.ITERATING)
        op.advance(OperationState.DONE)

    def test_fail_is_idempotent_after_end(self) -> None:
        op = _operation()
        op.fail()
        op.fail()
        assert op.state is OperationState.FAILED

    def test_done_cannot_fail(self) -> None:
        op = _operation()
        op.state = OperationState.DONE
        op.fail()
        assert op.state is OperationState.DONE

    def test_to_dict(self) -> None:
        op = _operation()
        op.rows_affected = 1
        assert op.to_dict() == {
            "operation": "insert",
            "table": "person",
            "state": "built",
            "rows_affected": 1,
            "rows_read": 0,
        }
