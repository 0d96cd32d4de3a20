"""
Structured error types for rowspine.

Every failure raised by the mapping layer is a :class:`RowspineError`
subclass carrying a category, an explicit retry flag, structured context
(table, field, operation, SQL) and the chained underlying cause.

Manifesto:
    - **Typed Error Hierarchy:** One family per stage of an operation
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Identification:** Codec, bind and map errors name the field
    - **Error Chaining:** Engine exceptions are kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        RowspineError                             │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  SchemaError        BuilderError          CodecError             │
        │  (setup time)       (setup time)          (per value)            │
        │       │                  │                     │                 │
        │  DuplicateField    UnsupportedShape      TypeMismatch            │
        │  NoPrimaryKey                            NullViolation           │
        │                                          RangeOverflow           │
        │                                                                  │
        │  BindError          MapError              CacheError             │
        │  (per operation)    (per row)             (handle lifetime)      │
        │       │                  │                     │                 │
        │  FieldBindError    ColumnCountMismatch   HandleExpired           │
        │                    ColumnOrderMismatch   HandleBusy              │
        │                    FieldDecodeError      ForeignHandle           │
        │                                                                  │
        │  EngineError        StateError                                   │
        │       │                  │                                       │
        │  ConstraintViolation InvalidTransitionError                      │
        │  RowExpiredError                                                 │
        └─────────────────────────────────────────────────────────────────┘

Propagation:
    SchemaError and BuilderError are configuration defects and surface when a
    model is declared. Codec, bind and map errors are raised per operation and
    the caller decides what to do (skip the row, fix the input). A
    HandleExpiredError is retryable: prepare the statement again.

Examples:
    >>> err = TypeMismatchError("expected INTEGER, got TEXT", expected="INTEGER", actual="TEXT")
    >>> err.category
    <ErrorCategory.CODEC: 'CODEC'>
    >>> err.retryable
    False

    >>> HandleExpiredError("statement released").retryable
    True

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context, rowspine
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rowspine.schema import FieldDescriptor


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Setup-time defects (never retryable)
    SCHEMA = "SCHEMA"  # Model declaration, statement shape

    # Per-operation data errors
    CODEC = "CODEC"  # Value conversion
    BIND = "BIND"  # Parameter binding
    MAPPING = "MAPPING"  # Row decoding

    # Resource lifetime
    CACHE = "CACHE"  # Prepared statement handles

    # Underlying engine
    ENGINE = "ENGINE"  # sqlite3 failures, invalid SQL, constraints

    # Internal errors
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"  # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields relevant to the failure are set; ``to_dict()`` drops the
    rest so the context can be passed straight into a structured log call.

    Attributes:
        table: Table of the model involved
        field: Name of the field whose value failed
        operation: Operation kind (``insert``, ``select_by_key``...)
        sql: Canonical SQL text of the statement
        metadata: Additional key-value pairs
    """

    table: str | None = None
    field: str | None = None
    operation: str | None = None
    sql: str | None = None

    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table", "field", "operation", "sql"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RowspineError(Exception):
    """
    Base exception for all rowspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers never have to guess how an error should be handled.

    Examples:
        >>> error = RowspineError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RowspineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise CodecError("bad value").with_context(
                table="person", operation="insert"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# SCHEMA / BUILDER ERRORS (setup time, never retryable)
# =============================================================================


class SchemaError(RowspineError):
    """Invalid model definition."""

    default_category = ErrorCategory.SCHEMA


class DuplicateFieldError(SchemaError):
    """Two field descriptors share a name."""

    def __init__(self, table: str, name: str):
        self.table = table
        self.name = name
        super().__init__(
            f"Duplicate field {name!r} in schema for table {table!r}",
            context=ErrorContext(table=table, field=name),
        )


class NoPrimaryKeyError(SchemaError):
    """A keyed schema was requested but no field is a primary key."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(
            f"Schema for table {table!r} has no primary key field",
            context=ErrorContext(table=table),
        )


class BuilderError(RowspineError):
    """A statement shape cannot be derived from a schema."""

    default_category = ErrorCategory.SCHEMA


class UnsupportedShapeError(BuilderError):
    """The operation kind needs columns the schema does not have."""

    def __init__(self, table: str, operation: str, reason: str):
        self.table = table
        self.operation = operation
        super().__init__(
            f"Cannot build {operation} for table {table!r}: {reason}",
            context=ErrorContext(table=table, operation=operation),
        )


# =============================================================================
# CODEC ERRORS (per value)
# =============================================================================


class CodecError(RowspineError):
    """A value could not be converted to or from its native representation."""

    default_category = ErrorCategory.CODEC

    def __init__(self, message: str, *, value: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class TypeMismatchError(CodecError):
    """The native storage class does not match the codec's expected shape."""

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        actual: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class NullViolationError(CodecError):
    """NULL met a field that is not nullable."""


class RangeOverflowError(CodecError):
    """A value lies outside the range the codec can represent."""


# =============================================================================
# BIND / MAP ERRORS (per operation)
# =============================================================================


class BindError(RowspineError):
    """Binding parameters into a prepared statement failed."""

    default_category = ErrorCategory.BIND


class FieldBindError(BindError):
    """Binding one field's value failed, either in its codec or in the engine."""

    def __init__(self, descriptor: FieldDescriptor, cause: BaseException):
        self.descriptor = descriptor
        super().__init__(
            f"Failed to bind field {descriptor.name!r}: {cause}",
            context=ErrorContext(field=descriptor.name),
            cause=cause,
        )

    @property
    def field_name(self) -> str:
        return self.descriptor.name


class MapError(RowspineError):
    """A result row could not be turned into a model instance."""

    default_category = ErrorCategory.MAPPING


class ColumnCountMismatchError(MapError):
    """The row exposes a different number of columns than the schema has fields."""

    def __init__(self, table: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Row for table {table!r} has {actual} columns, schema expects {expected}",
            context=ErrorContext(table=table),
        )


class ColumnOrderMismatchError(MapError):
    """The row's column names differ from the schema's field order."""

    def __init__(self, table: str, expected: list[str], actual: list[str]):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Row for table {table!r} has columns {actual}, schema expects {expected}",
            context=ErrorContext(table=table),
        )


class FieldDecodeError(MapError):
    """A column value failed to decode through its field's codec."""

    def __init__(self, descriptor: FieldDescriptor, cause: CodecError):
        self.descriptor = descriptor
        super().__init__(
            f"Failed to decode field {descriptor.name!r}: {cause}",
            context=ErrorContext(field=descriptor.name),
            cause=cause,
        )

    @property
    def field_name(self) -> str:
        return self.descriptor.name


# =============================================================================
# CACHE ERRORS (handle lifetime)
# =============================================================================


class CacheError(RowspineError):
    """Invalid use of a prepared statement handle."""

    default_category = ErrorCategory.CACHE


class HandleExpiredError(CacheError):
    """The handle was released by ``StatementCache.clear()``. Re-prepare it."""

    default_retryable = True


class HandleBusyError(CacheError):
    """The handle is already borrowed by an in-flight operation."""


class ForeignHandleError(CacheError):
    """The handle belongs to a different connection."""


# =============================================================================
# ENGINE / STATE ERRORS
# =============================================================================


class EngineError(RowspineError):
    """The underlying engine rejected a call."""

    default_category = ErrorCategory.ENGINE


class ConstraintViolationError(EngineError):
    """The engine rejected a write on a constraint (duplicate key, NOT NULL...)."""


class RowExpiredError(EngineError):
    """A row view was read after the iterator moved past its row."""


class StateError(RowspineError):
    """Internal operation state was driven through an illegal transition."""


class InvalidTransitionError(StateError):
    """Illegal operation state transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid operation transition: {current} → {target}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, RowspineError):
        return error.retryable
    return False


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, RowspineError):
        return error.category
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RowspineError",
    # Setup time
    "SchemaError",
    "DuplicateFieldError",
    "NoPrimaryKeyError",
    "BuilderError",
    "UnsupportedShapeError",
    # Codec
    "CodecError",
    "TypeMismatchError",
    "NullViolationError",
    "RangeOverflowError",
    # Bind / map
    "BindError",
    "FieldBindError",
    "MapError",
    "ColumnCountMismatchError",
    "ColumnOrderMismatchError",
    "FieldDecodeError",
    # Cache
    "CacheError",
    "HandleExpiredError",
    "HandleBusyError",
    "ForeignHandleError",
    # Engine / state
    "EngineError",
    "ConstraintViolationError",
    "RowExpiredError",
    "StateError",
    "InvalidTransitionError",
    # Utilities
    "is_retryable",
    "categorize_error",
]
