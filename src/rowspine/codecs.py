"""Field codecs: typed value <-> SQLite native value.

A codec converts one field's Python value into one of SQLite's storage
classes and back.  Codecs are pure and stateless; the same instance is shared
by every schema that uses it.

Native values::

    None   NULL
    int    INTEGER  (64-bit signed)
    float  REAL
    str    TEXT
    bytes  BLOB

Contract:
    - ``encode`` accepts every value of the codec's typed domain.
    - ``decode`` raises :class:`~rowspine.errors.TypeMismatchError` when the
      storage class is wrong, :class:`~rowspine.errors.NullViolationError` when
      NULL reaches a non-nullable codec, and
      :class:`~rowspine.errors.RangeOverflowError` when a value does not fit.
      Nothing is wrapped or truncated silently.
    - ``decode(encode(v)) == v`` for every representable ``v``.

Nullability is layered: wrap any codec in :class:`Nullable` to admit ``None``.

Object columns hold a serialised document: :class:`JsonCodec` as TEXT and
:class:`BsonCodec` as a BLOB, each optionally bound to a target type.

Examples:
    >>> IntegerCodec("int8").decode(300)
    Traceback (most recent call last):
    ...
    rowspine.errors.RangeOverflowError: 300 does not fit in int8
    >>> Nullable(TextCodec()).decode(None) is None
    True
"""

from __future__ import annotations

import math
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

import bson
from bson.codec_options import CodecOptions
from bson.errors import BSONError
from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from rowspine.errors import (
    CodecError,
    NullViolationError,
    RangeOverflowError,
    SchemaError,
    TypeMismatchError,
)
from rowspine.types import INT64_MAX, INT64_MIN, IntegerId, TimeScale

NativeValue = None | int | float | str | bytes

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICROS = TimeScale.MICROSECONDS.value

INTEGER_WIDTHS: dict[str, tuple[int, int]] = {
    "int8": (-(2**7), 2**7 - 1),
    "int16": (-(2**15), 2**15 - 1),
    "int32": (-(2**31), 2**31 - 1),
    "int64": (INT64_MIN, INT64_MAX),
    "uint8": (0, 2**8 - 1),
    "uint16": (0, 2**16 - 1),
    "uint32": (0, 2**32 - 1),
}


def storage_class(native: Any) -> str:
    """SQLite storage class name of a native value (type name otherwise)."""
    if native is None:
        return "NULL"
    if isinstance(native, bool):
        return "bool"
    if isinstance(native, int):
        return "INTEGER"
    if isinstance(native, float):
        return "REAL"
    if isinstance(native, str):
        return "TEXT"
    if isinstance(native, (bytes, bytearray, memoryview)):
        return "BLOB"
    return type(native).__name__


@runtime_checkable
class FieldCodec(Protocol):
    """Contract every codec satisfies."""

    @property
    def storage(self) -> str:
        """Storage class written by ``encode`` (``INTEGER``, ``TEXT``...)."""
        ...

    @property
    def nullable(self) -> bool:
        ...

    def encode(self, value: Any) -> NativeValue:
        ...

    def decode(self, native: NativeValue) -> Any:
        ...


class _Codec:
    """Shared checks for the concrete codecs."""

    storage: str = "NULL"
    nullable: bool = False

    def _reject_null(self, value: Any, direction: str) -> None:
        if value is None:
            raise NullViolationError(f"Cannot {direction} NULL with non-nullable {self!r}")

    def _expect_native(self, native: Any, *kinds: type) -> None:
        self._reject_null(native, "decode")
        if isinstance(native, bool) or not isinstance(native, kinds):
            raise TypeMismatchError(
                f"{self!r} expected {self.storage}, got {storage_class(native)}",
                expected=self.storage,
                actual=storage_class(native),
                value=native,
            )

    def _expect_value(self, value: Any, *kinds: type) -> None:
        self._reject_null(value, "encode")
        if not isinstance(value, kinds) or (isinstance(value, bool) and bool not in kinds):
            raise TypeMismatchError(
                f"{self!r} cannot encode {type(value).__name__}",
                expected=" | ".join(k.__name__ for k in kinds),
                actual=type(value).__name__,
                value=value,
            )


def _check_int64(value: int, what: str) -> int:
    if not INT64_MIN <= value <= INT64_MAX:
        raise RangeOverflowError(f"{what} {value} does not fit in a 64-bit INTEGER", value=value)
    return value


# =============================================================================
# Scalar codecs
# =============================================================================


@dataclass(frozen=True, repr=False)
class IntegerCodec(_Codec):
    """Integer of a fixed width stored as INTEGER."""

    width: str = "int64"
    storage = "INTEGER"

    def __post_init__(self) -> None:
        if self.width not in INTEGER_WIDTHS:
            raise SchemaError(f"Unknown integer width {self.width!r}")

    def _check_range(self, value: int) -> int:
        low, high = INTEGER_WIDTHS[self.width]
        if not low <= value <= high:
            raise RangeOverflowError(f"{value} does not fit in {self.width}", value=value)
        return value

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, int)
        return self._check_range(value)

    def decode(self, native: NativeValue) -> int:
        self._expect_native(native, int)
        return self._check_range(native)

    def __repr__(self) -> str:
        return f"IntegerCodec({self.width})"


@dataclass(frozen=True, repr=False)
class BooleanCodec(_Codec):
    """``bool`` stored as INTEGER 0/1."""

    storage = "INTEGER"

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, bool)
        return 1 if value else 0

    def decode(self, native: NativeValue) -> bool:
        self._expect_native(native, int)
        if native not in (0, 1):
            raise RangeOverflowError(f"Boolean column holds {native}, expected 0 or 1", value=native)
        return native == 1

    def __repr__(self) -> str:
        return "BooleanCodec()"


@dataclass(frozen=True, repr=False)
class RealCodec(_Codec):
    """``float`` stored as REAL. INTEGER natives widen to float on decode."""

    storage = "REAL"

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, float, int)
        if isinstance(value, int):
            return self._widen(value)
        # SQLite stores NaN as NULL
        if math.isnan(value):
            raise RangeOverflowError("NaN cannot be stored in a REAL column", value=value)
        return value

    def _widen(self, value: int) -> float:
        try:
            widened = float(value)
        except OverflowError as exc:
            raise RangeOverflowError(
                f"Integer of {value.bit_length()} bits is too large for a REAL column", value=value, cause=exc
            ) from exc
        if widened != value:
            raise RangeOverflowError(f"{value} has no exact REAL representation", value=value)
        return widened

    def decode(self, native: NativeValue) -> float:
        self._expect_native(native, float, int)
        return float(native)

    def __repr__(self) -> str:
        return "RealCodec()"


@dataclass(frozen=True, repr=False)
class TextCodec(_Codec):
    storage = "TEXT"

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, str)
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise TypeMismatchError(
                f"{self!r} cannot encode text that is not valid UTF-8: {exc.reason}",
                expected="UTF-8 str",
                actual="str",
                value=value,
                cause=exc,
            ) from exc
        return value

    def decode(self, native: NativeValue) -> str:
        self._expect_native(native, str)
        return native

    def __repr__(self) -> str:
        return "TextCodec()"


@dataclass(frozen=True, repr=False)
class BlobCodec(_Codec):
    storage = "BLOB"

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, bytes, bytearray, memoryview)
        return bytes(value)

    def decode(self, native: NativeValue) -> bytes:
        self._expect_native(native, bytes)
        return native

    def __repr__(self) -> str:
        return "BlobCodec()"


# =============================================================================
# Wrapper codecs
# =============================================================================


@dataclass(frozen=True, repr=False)
class IntegerIdCodec(_Codec):
    """Typed :class:`~rowspine.types.IntegerId` stored as INTEGER."""

    id_type: type[IntegerId]
    storage = "INTEGER"

    def encode(self, value: Any) -> NativeValue:
        self._reject_null(value, "encode")
        if type(value) is not self.id_type:
            raise TypeMismatchError(
                f"{self!r} cannot encode {value!r}",
                expected=self.id_type.__name__,
                actual=type(value).__name__,
                value=value,
            )
        return _check_int64(value.value, "Id")

    def decode(self, native: NativeValue) -> IntegerId:
        self._expect_native(native, int)
        return self.id_type(native)

    def __repr__(self) -> str:
        return f"IntegerIdCodec({self.id_type.__name__})"


@dataclass(frozen=True, repr=False)
class TimestampCodec(_Codec):
    """Timezone-aware ``datetime`` stored as an INTEGER count since the epoch.

    The scale picks the unit: ``SECONDS`` matches SQLite's ``unixepoch()``.
    Encoding floors to the scale; decoding floors to whole microseconds, the
    resolution of ``datetime``. Decoded values are in UTC.
    """

    scale: TimeScale = TimeScale.SECONDS
    storage = "INTEGER"

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, datetime)
        if value.tzinfo is None or value.utcoffset() is None:
            raise TypeMismatchError(
                f"{self!r} requires a timezone-aware datetime",
                expected="aware datetime",
                actual="naive datetime",
                value=value,
            )
        micros = (value - _EPOCH) // timedelta(microseconds=1)
        return _check_int64(micros * self.scale // _MICROS, "Timestamp")

    def decode(self, native: NativeValue) -> datetime:
        self._expect_native(native, int)
        micros = native * _MICROS // self.scale
        try:
            return _EPOCH + timedelta(microseconds=micros)
        except OverflowError as exc:
            raise RangeOverflowError(
                f"{native} {self.scale.name.lower()} is outside the datetime range",
                value=native,
                cause=exc,
            ) from exc

    def __repr__(self) -> str:
        return f"TimestampCodec({self.scale.name})"


@dataclass(frozen=True, repr=False)
class DurationCodec(_Codec):
    """``timedelta`` stored as an INTEGER count of the scale's unit.

    Encoding truncates toward zero, so negative durations keep their sign.
    """

    scale: TimeScale = TimeScale.SECONDS
    storage = "INTEGER"

    def encode(self, value: Any) -> NativeValue:
        self._expect_value(value, timedelta)
        micros = value // timedelta(microseconds=1)
        ticks = abs(micros) * self.scale // _MICROS
        return _check_int64(ticks if micros >= 0 else -ticks, "Duration")

    def decode(self, native: NativeValue) -> timedelta:
        self._expect_native(native, int)
        micros = abs(native) * _MICROS // self.scale
        try:
            duration = timedelta(microseconds=micros)
        except OverflowError as exc:
            raise RangeOverflowError(
                f"{native} {self.scale.name.lower()} is outside the timedelta range",
                value=native,
                cause=exc,
            ) from exc
        return duration if native >= 0 else -duration

    def __repr__(self) -> str:
        return f"DurationCodec({self.scale.name})"


_BSON_OPTIONS: CodecOptions = CodecOptions(tz_aware=True, tzinfo=UTC)


@dataclass(frozen=True, repr=False)
class _ObjectCodec(_Codec):
    """Serialised object column, optionally bound to a target type.

    With ``type_`` set, values are serialised and validated back through a
    pydantic ``TypeAdapter`` for that type. Without it any value the format
    can hold is accepted. Either way ``encode`` refuses a value that would
    not read back equal, such as a tuple (read back as a list) or a dict
    with non-string keys.
    """

    type_: Any = None
    _adapter: TypeAdapter = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            adapter = TypeAdapter(Any if self.type_ is None else self.type_)
        except PydanticSchemaGenerationError as exc:
            raise SchemaError(f"{self!r} has no serialisation schema: {exc}", cause=exc) from exc
        object.__setattr__(self, "_adapter", adapter)

    @property
    def target(self) -> str:
        if self.type_ is None:
            return ""
        return self.type_.__qualname__ if isinstance(self.type_, type) else repr(self.type_)

    def _check_round_trip(self, value: Any, native: NativeValue) -> NativeValue:
        try:
            restored = self.decode(native)
        except CodecError as exc:
            raise RangeOverflowError(
                f"{self!r} cannot read back {type(value).__name__}: {exc.message}",
                value=value,
                cause=exc,
            ) from exc
        if restored != value:
            raise RangeOverflowError(
                f"{self!r} would not read back an equal {type(value).__name__}",
                value=value,
            )
        return native

    def _invalid(self, native: NativeValue, what: str, exc: Exception) -> TypeMismatchError:
        return TypeMismatchError(
            f"{self!r} found {self.storage} that is not {what}: {exc}",
            expected=what,
            actual=self.storage,
            value=native,
            cause=exc,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target})"


@dataclass(frozen=True, repr=False)
class JsonCodec(_ObjectCodec):
    """JSON document stored as TEXT.

    Examples:
        >>> JsonCodec(dict[str, int]).encode({"a": 1})
        '{"a":1}'
        >>> JsonCodec().encode((1, 2))
        Traceback (most recent call last):
        ...
        rowspine.errors.RangeOverflowError: JsonCodec() would not read back an equal tuple
    """

    storage = "TEXT"

    def encode(self, value: Any) -> NativeValue:
        self._reject_null(value, "encode")
        try:
            text = self._adapter.dump_json(value, warnings="error").decode("utf-8")
        except (PydanticSerializationError, ValueError, TypeError) as exc:
            raise CodecError(
                f"{self!r} cannot serialise {type(value).__name__}: {exc}", value=value, cause=exc
            ) from exc
        return self._check_round_trip(value, text)

    def decode(self, native: NativeValue) -> Any:
        self._expect_native(native, str)
        try:
            return self._adapter.validate_json(native, strict=True)
        except ValidationError as exc:
            raise self._invalid(native, f"JSON {self.target}" if self.target else "JSON", exc) from exc


@dataclass(frozen=True, repr=False)
class BsonCodec(_ObjectCodec):
    """BSON document stored as a BLOB.

    Untyped, the value must be a mapping (a BSON document). Typed, the value
    is dumped through pydantic and must dump to a mapping. Datetimes read
    back timezone-aware in UTC at millisecond precision, so finer values are
    refused on encode.
    """

    storage = "BLOB"

    def encode(self, value: Any) -> NativeValue:
        self._reject_null(value, "encode")
        if self.type_ is None:
            self._expect_value(value, Mapping)
            document = value
        else:
            try:
                document = self._adapter.dump_python(value, warnings="error")
            except (PydanticSerializationError, ValueError, TypeError) as exc:
                raise CodecError(
                    f"{self!r} cannot serialise {type(value).__name__}: {exc}", value=value, cause=exc
                ) from exc
            if not isinstance(document, Mapping):
                raise TypeMismatchError(
                    f"{self!r} needs a value that dumps to a document, got {type(document).__name__}",
                    expected="Mapping",
                    actual=type(document).__name__,
                    value=value,
                )
        try:
            data = bson.encode(document, codec_options=_BSON_OPTIONS)
        except OverflowError as exc:
            raise RangeOverflowError(
                f"{self!r} cannot store an integer wider than 64 bits", value=value, cause=exc
            ) from exc
        except (BSONError, TypeError, ValueError) as exc:
            raise CodecError(
                f"{self!r} cannot serialise {type(value).__name__}: {exc}", value=value, cause=exc
            ) from exc
        return self._check_round_trip(value, data)

    def decode(self, native: NativeValue) -> Any:
        self._expect_native(native, bytes)
        try:
            document = bson.decode(native, codec_options=_BSON_OPTIONS)
        except BSONError as exc:
            raise self._invalid(native, "a BSON document", exc) from exc
        if self.type_ is None:
            return document
        try:
            return self._adapter.validate_python(document)
        except ValidationError as exc:
            raise self._invalid(native, f"a BSON {self.target}", exc) from exc


@dataclass(frozen=True, repr=False)
class Nullable:
    """Admit ``None`` (NULL) around any other codec."""

    inner: FieldCodec = field()
    nullable = True

    @property
    def storage(self) -> str:
        return self.inner.storage

    def encode(self, value: Any) -> NativeValue:
        if value is None:
            return None
        return self.inner.encode(value)

    def decode(self, native: NativeValue) -> Any:
        if native is None:
            return None
        return self.inner.decode(native)

    def __repr__(self) -> str:
        return f"Nullable({self.inner!r})"


# =============================================================================
# Annotation resolution
# =============================================================================

_SCALAR_CODECS: list[tuple[type, FieldCodec]] = [
    # bool before int: bool is an int subclass
    (bool, BooleanCodec()),
    (int, IntegerCodec()),
    (float, RealCodec()),
    (str, TextCodec()),
    (bytes, BlobCodec()),
    (datetime, TimestampCodec(TimeScale.MICROSECONDS)),
    (timedelta, DurationCodec(TimeScale.MICROSECONDS)),
]


def codec_for_annotation(annotation: Any) -> FieldCodec:
    """Resolve the default codec for a field type annotation.

    ``X | None`` and ``Optional[X]`` resolve to ``Nullable(codec(X))``;
    ``dict``/``list`` (bare or parameterised) resolve to :class:`JsonCodec`
    bound to that annotation.

    Raises:
        SchemaError: No codec is known for the annotation.
    """
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        members = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(members) != 1:
            raise SchemaError(f"No codec for union annotation {annotation!r}")
        inner = codec_for_annotation(members[0])
        return inner if isinstance(inner, Nullable) else Nullable(inner)

    if origin in (dict, list) or annotation in (dict, list):
        return JsonCodec(annotation)

    if isinstance(annotation, type):
        if issubclass(annotation, IntegerId) and annotation is not IntegerId:
            return IntegerIdCodec(annotation)
        for kind, codec in _SCALAR_CODECS:
            if annotation is kind:
                return codec

    raise SchemaError(f"No codec for annotation {annotation!r}")


__all__ = [
    "BlobCodec",
    "BooleanCodec",
    "BsonCodec",
    "DurationCodec",
    "FieldCodec",
    "INTEGER_WIDTHS",
    "IntegerCodec",
    "IntegerIdCodec",
    "JsonCodec",
    "NativeValue",
    "Nullable",
    "RealCodec",
    "TextCodec",
    "TimestampCodec",
    "codec_for_annotation",
    "storage_class",
]
