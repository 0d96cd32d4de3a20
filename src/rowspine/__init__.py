"""
rowspine - typed row mapping, statement binding and statement caching over SQLite.

Modules:
- rowspine.codecs: Field codecs between typed values and SQLite storage classes
- rowspine.schema: Model schemas derived from dataclasses
- rowspine.builder: Canonical CRUD SQL per (schema, operation)
- rowspine.cache: Prepared-statement cache and exclusive handle borrowing
- rowspine.binder / rowspine.mapper: Values into parameters, rows into models
- rowspine.engine: sqlite3 adapter
- rowspine.session: The CRUD API
"""

__version__ = "0.1.0"

from rowspine.binder import Binder
from rowspine.builder import BuiltStatement, OperationKind, StatementBuilder, bind_order, build_sql
from rowspine.cache import CacheStats, StatementCache, StatementHandle
from rowspine.codecs import (
    BlobCodec,
    BooleanCodec,
    BsonCodec,
    DurationCodec,
    FieldCodec,
    IntegerCodec,
    IntegerIdCodec,
    JsonCodec,
    Nullable,
    RealCodec,
    TextCodec,
    TimestampCodec,
    codec_for_annotation,
)
from rowspine.engine import SqliteEngine
from rowspine.errors import *  # noqa: F403
from rowspine.errors import __all__ as _errors_all
from rowspine.mapper import RowMapper
from rowspine.operation import Operation, OperationState
from rowspine.schema import FieldDescriptor, FieldRole, ModelSchema, column, model_schema
from rowspine.session import Session, connect
from rowspine.settings import RowspineSettings
from rowspine.types import IntegerId, TimeScale
from rowspine.util import split_queries

__all__ = [
    "__version__",
    "Binder",
    "BlobCodec",
    "BooleanCodec",
    "BsonCodec",
    "BuiltStatement",
    "CacheStats",
    "DurationCodec",
    "FieldCodec",
    "FieldDescriptor",
    "FieldRole",
    "IntegerCodec",
    "IntegerId",
    "IntegerIdCodec",
    "JsonCodec",
    "ModelSchema",
    "Nullable",
    "Operation",
    "OperationKind",
    "OperationState",
    "RealCodec",
    "RowMapper",
    "RowspineSettings",
    "Session",
    "SqliteEngine",
    "StatementBuilder",
    "StatementCache",
    "StatementHandle",
    "TextCodec",
    "TimeScale",
    "TimestampCodec",
    "bind_order",
    "build_sql",
    "codec_for_annotation",
    "column",
    "connect",
    "model_schema",
    "split_queries",
    *_errors_all,
]
