"""Model schemas: the static, ordered description of a table-backed model.

A :class:`ModelSchema` is built once per model type and shared by reference.
Its field order is the single order used everywhere else: the column list
emitted by :mod:`rowspine.builder`, the parameter slots filled by
:mod:`rowspine.binder` and the columns read by :mod:`rowspine.mapper`.

Schemas are usually derived from a dataclass::

    @dataclass
    class Person:
        __table__ = "people"

        id: int = column(primary_key=True)
        name: str
        age: int | None = None
        cached_label: str = column(ignore=True, default="")

    PERSON = model_schema(Person, keyed=True)

or declared explicitly for other record types::

    ModelSchema(
        "people",
        [
            FieldDescriptor("id", IntegerCodec(), FieldRole.PRIMARY_KEY),
            FieldDescriptor("name", TextCodec()),
        ],
        model_type=dict,
    )

All validation happens here, at construction: duplicate names, a missing
primary key for keyed schemas, nullable key fields and fields without a codec
are rejected before any SQL is run.
"""

from __future__ import annotations

import dataclasses
import threading
import typing
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from rowspine.codecs import FieldCodec, Nullable, codec_for_annotation
from rowspine.errors import DuplicateFieldError, NoPrimaryKeyError, SchemaError

_METADATA_KEY = "rowspine"


class FieldRole(str, Enum):
    """Role a model field plays in SQL."""

    PRIMARY_KEY = "primary_key"
    REGULAR = "regular"
    IGNORED = "ignored"  # Not a column: never bound, never read


@dataclass(frozen=True)
class FieldDescriptor:
    """One field of a model: name, codec and role.

    ``nullable`` defaults to the codec's own nullability; passing
    ``nullable=True`` wraps a plain codec in :class:`~rowspine.codecs.Nullable`.
    """

    name: str
    codec: FieldCodec
    role: FieldRole = FieldRole.REGULAR
    nullable: bool | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise SchemaError("Field name must not be empty")
        codec_nullable = bool(getattr(self.codec, "nullable", False))
        if self.nullable is None:
            object.__setattr__(self, "nullable", codec_nullable)
        elif self.nullable and not codec_nullable:
            object.__setattr__(self, "codec", Nullable(self.codec))
        elif not self.nullable and codec_nullable:
            raise SchemaError(
                f"Field {self.name!r} is declared non-nullable but its codec {self.codec!r} admits NULL"
            )
        if self.role is FieldRole.PRIMARY_KEY and self.nullable:
            raise SchemaError(f"Primary key field {self.name!r} cannot be nullable")

    @property
    def is_primary_key(self) -> bool:
        return self.role is FieldRole.PRIMARY_KEY

    @property
    def is_column(self) -> bool:
        return self.role is not FieldRole.IGNORED

    def __repr__(self) -> str:
        flags = [self.role.value]
        if self.nullable:
            flags.append("nullable")
        return f"FieldDescriptor({self.name!r}, {self.codec!r}, {', '.join(flags)})"


class ModelSchema:
    """Immutable description of a model's table and ordered fields.

    Parameters:
        table_name: Table the model is stored in.
        fields: Field descriptors in column order. ``IGNORED`` descriptors may be
            listed; they are kept out of :meth:`fields`.
        model_type: Factory called with one keyword argument per column field
            to build a model instance. Defaults to ``dict``.
        keyed: Require at least one primary-key field.

    Raises:
        DuplicateFieldError: Two descriptors share a name.
        NoPrimaryKeyError: ``keyed`` is set and no field is a primary key.
        SchemaError: Empty table name or no column fields.
    """

    __slots__ = ("_table_name", "_fields", "_ignored", "_keys", "_by_name", "_model_type")

    def __init__(
        self,
        table_name: str,
        fields: Iterable[FieldDescriptor],
        *,
        model_type: Callable[..., Any] = dict,
        keyed: bool = False,
    ) -> None:
        if not table_name:
            raise SchemaError("Table name must not be empty")
        descriptors = tuple(fields)

        by_name: dict[str, FieldDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in by_name:
                raise DuplicateFieldError(table_name, descriptor.name)
            by_name[descriptor.name] = descriptor

        columns = tuple(d for d in descriptors if d.is_column)
        if not columns:
            raise SchemaError(f"Schema for table {table_name!r} has no column fields").with_context(
                table=table_name
            )
        keys = tuple(d for d in columns if d.is_primary_key)
        if keyed and not keys:
            raise NoPrimaryKeyError(table_name)

        self._table_name = table_name
        self._fields = columns
        self._ignored = tuple(d for d in descriptors if not d.is_column)
        self._keys = keys
        self._by_name = by_name
        self._model_type = model_type

    # -- Introspection -----------------------------------------------------

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def model_type(self) -> Callable[..., Any]:
        return self._model_type

    @property
    def keyed(self) -> bool:
        """Whether keyed statement shapes are available."""
        return bool(self._keys)

    def fields(self) -> tuple[FieldDescriptor, ...]:
        """Column fields in schema order (ignored fields excluded)."""
        return self._fields

    def primary_key_fields(self) -> tuple[FieldDescriptor, ...]:
        return self._keys

    def non_key_fields(self) -> tuple[FieldDescriptor, ...]:
        return tuple(d for d in self._fields if not d.is_primary_key)

    def ignored_fields(self) -> tuple[FieldDescriptor, ...]:
        return self._ignored

    def column_names(self) -> list[str]:
        return [d.name for d in self._fields]

    def field(self, name: str) -> FieldDescriptor:
        try:
            return self._by_name[name]
        except KeyError:
            raise SchemaError(f"Table {self._table_name!r} has no field {name!r}") from None

    # -- Model access ------------------------------------------------------

    def values_of(self, model: Any, fields: Iterable[FieldDescriptor]) -> list[Any]:
        """Read the given fields from a model (attribute or mapping access)."""
        fields = tuple(fields)
        if isinstance(model, Mapping):
            missing = [d.name for d in fields if d.name not in model]
            if missing:
                raise SchemaError(f"Model for table {self._table_name!r} is missing fields {missing}")
            return [model[d.name] for d in fields]
        return [getattr(model, d.name) for d in fields]

    def build(self, values: Mapping[str, Any]) -> Any:
        """Construct a model instance from decoded column values."""
        return self._model_type(**values)

    def __repr__(self) -> str:
        return f"ModelSchema({self._table_name!r}, columns={self.column_names()})"


# =============================================================================
# Dataclass derivation
# =============================================================================


def column(
    *,
    primary_key: bool = False,
    ignore: bool = False,
    codec: FieldCodec | None = None,
    nullable: bool | None = None,
    **field_kwargs: Any,
) -> Any:
    """Declare rowspine options on a dataclass field.

    Wraps :func:`dataclasses.field`; remaining keyword arguments
    (``default``, ``default_factory``...) are passed through.
    """
    if primary_key and ignore:
        raise SchemaError("A field cannot be both a primary key and ignored")
    role = FieldRole.PRIMARY_KEY if primary_key else FieldRole.IGNORED if ignore else FieldRole.REGULAR
    metadata = dict(field_kwargs.pop("metadata", None) or {})
    metadata[_METADATA_KEY] = {"role": role, "codec": codec, "nullable": nullable}
    return dataclasses.field(metadata=metadata, **field_kwargs)


_SCHEMAS: dict[tuple[type, bool], ModelSchema] = {}
_SCHEMAS_LOCK = threading.Lock()


def model_schema(model_type: type, *, keyed: bool = False) -> ModelSchema:
    """Return the schema for a dataclass, deriving it on first use.

    Field order is declaration order. The table name is the ``__table__``
    class attribute, or the lower-cased class name. Fields declared with
    ``init=False`` are treated as ignored. The result is cached per
    ``(model_type, keyed)`` for the life of the process.
    """
    cache_key = (model_type, keyed)
    schema = _SCHEMAS.get(cache_key)
    if schema is not None:
        return schema
    with _SCHEMAS_LOCK:
        schema = _SCHEMAS.get(cache_key)
        if schema is None:
            schema = _derive_schema(model_type, keyed)
            _SCHEMAS[cache_key] = schema
    return schema


def _derive_schema(model_type: type, keyed: bool) -> ModelSchema:
    if not dataclasses.is_dataclass(model_type) or not isinstance(model_type, type):
        raise SchemaError(f"{model_type!r} is not a dataclass type")
    table = getattr(model_type, "__table__", None) or model_type.__name__.lower()

    try:
        hints = typing.get_type_hints(model_type)
    except NameError as exc:
        raise SchemaError(
            f"Cannot resolve field annotations of {model_type.__name__}: {exc}", cause=exc
        ).with_context(table=table) from exc

    descriptors = []
    for f in dataclasses.fields(model_type):
        options = f.metadata.get(_METADATA_KEY, {})
        role = options.get("role", FieldRole.REGULAR)
        if not f.init:
            role = FieldRole.IGNORED

        if role is FieldRole.IGNORED:
            if f.init and _has_no_default(f):
                raise SchemaError(
                    f"Ignored field {f.name!r} of {model_type.__name__} needs a default"
                ).with_context(table=table, field=f.name)
            descriptors.append(FieldDescriptor(f.name, _NO_CODEC, FieldRole.IGNORED))
            continue

        codec = options.get("codec")
        if codec is None:
            try:
                codec = codec_for_annotation(hints[f.name])
            except SchemaError as exc:
                raise exc.with_context(table=table, field=f.name)
        descriptors.append(FieldDescriptor(f.name, codec, role, options.get("nullable")))

    return ModelSchema(table, descriptors, model_type=model_type, keyed=keyed)


def _has_no_default(f: dataclasses.Field) -> bool:
    return f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING


class _NoCodec:
    """Codec slot for ignored fields, which never reach SQL."""

    storage = "NULL"
    nullable = True

    def encode(self, value: Any) -> None:
        raise SchemaError("Ignored fields are never encoded")

    def decode(self, native: Any) -> None:
        raise SchemaError("Ignored fields are never decoded")

    def __repr__(self) -> str:
        return "NoCodec()"


_NO_CODEC = _NoCodec()


__all__ = [
    "FieldDescriptor",
    "FieldRole",
    "ModelSchema",
    "column",
    "model_schema",
]
