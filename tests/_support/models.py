"""Dataclass models used across the test suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from rowspine.codecs import BsonCodec, IntegerCodec
from rowspine.schema import column
from rowspine.types import IntegerId

PERSON_DDL = 'CREATE TABLE "person" ("id" INTEGER PRIMARY KEY, "name" TEXT NOT NULL, "age" INTEGER)'


@dataclass
class Person:
    id: int = column(primary_key=True)
    name: str = ""
    age: int | None = None


@dataclass
class Membership:
    """Composite key, keyword column names, an ignored field."""

    __table__ = "membership"

    group: str = column(primary_key=True)
    user: IntegerId[Person] = column(primary_key=True)
    order: int = column(codec=IntegerCodec("int16"), default=0)
    note: str | None = None
    label: str = column(ignore=True, default="unsaved")


MEMBERSHIP_DDL = (
    'CREATE TABLE "membership" ("group" TEXT, "user" INTEGER, "order" INTEGER, "note" TEXT, '
    'PRIMARY KEY ("group", "user"))'
)


@dataclass
class Event:
    id: IntegerId[Event] = column(primary_key=True)
    at: datetime
    took: timedelta = timedelta(0)
    payload: dict = field(default_factory=dict)
    flags: bytes = b""
    active: bool = True
    score: float = 0.0


EVENT_DDL = (
    'CREATE TABLE "event" ("id" INTEGER PRIMARY KEY, "at" INTEGER NOT NULL, "took" INTEGER, '
    '"payload" TEXT, "flags" BLOB, "active" INTEGER, "score" REAL)'
)


@dataclass
class LogLine:
    """No primary key: only INSERT and SELECT_ALL are available."""

    __table__ = "log_line"

    message: str
    level: int = 20


@dataclass
class Document:
    """A BSON body stored as a BLOB."""

    id: int = column(primary_key=True)
    body: dict = column(codec=BsonCodec(), default_factory=dict)


DOCUMENT_DDL = 'CREATE TABLE "document" ("id" INTEGER PRIMARY KEY, "body" BLOB NOT NULL)'
