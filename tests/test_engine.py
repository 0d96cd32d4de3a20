"""Tests for the sqlite3 engine adapter."""

from __future__ import annotations

import sqlite3

import pytest

from rowspine.engine import SqliteEngine
from rowspine.errors import ConstraintViolationError, EngineError, RowExpiredError
from rowspine.protocols import Engine, Row, RowSource
from rowspine.settings import RowspineSettings
from tests._support.models import PERSON_DDL


@pytest.fixture
def people(engine: SqliteEngine) -> SqliteEngine:
    engine.execute_script(
        PERSON_DDL + """;
        INSERT INTO "person" VALUES (1, 'Ada', 36);
        INSERT INTO "person" VALUES (2, 'Grace', NULL);
        """
    )
    return engine


def _insert(engine: SqliteEngine, *values: object) -> int:
    stmt = engine.prepare('INSERT INTO "person" ("id", "name", "age") VALUES (?, ?, ?)')
    engine.clear_bindings(stmt)
    for index, value in enumerate(values, start=1):
        engine.bind_parameter(stmt, index, value)
    return engine.execute(stmt)


class TestProtocol:
    def test_engine_satisfies_protocol(self, engine: SqliteEngine) -> None:
        assert isinstance(engine, Engine)

    def test_rows_satisfy_protocols(self, people: SqliteEngine) -> None:
        rows = people.query(people.prepare('SELECT "id" FROM "person"'))
        assert isinstance(rows, RowSource)
        assert isinstance(rows.next(), Row)


class TestPrepare:
    def test_rejects_incomplete_sql(self, engine: SqliteEngine) -> None:
        with pytest.raises(EngineError):
            engine.prepare("SELECT 'unterminated")

    def test_rejects_empty_sql(self, engine: SqliteEngine) -> None:
        with pytest.raises(EngineError):
            engine.prepare("   ")

    def test_invalid_sql_fails_on_execute(self, engine: SqliteEngine) -> None:
        stmt = engine.prepare("SELEC 1")
        with pytest.raises(EngineError) as exc_info:
            engine.query(stmt)
        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
        assert exc_info.value.context.sql == "SELEC 1"


class TestBindAndExecute:
    def test_rows_affected(self, people: SqliteEngine) -> None:
        assert _insert(people, 3, "Linus", None) == 1
        stmt = people.prepare('DELETE FROM "person" WHERE "age" IS NULL')
        assert people.execute(stmt) == 2

    def test_reexecute_with_new_bindings(self, people: SqliteEngine) -> None:
        stmt = people.prepare('UPDATE "person" SET "age" = ? WHERE "id" = ?')
        for key in (1, 2, 99):
            people.clear_bindings(stmt)
            people.bind_parameter(stmt, 1, 50)
            people.bind_parameter(stmt, 2, key)
            assert people.execute(stmt) == (0 if key == 99 else 1)

    def test_duplicate_key_is_constraint_violation(self, people: SqliteEngine) -> None:
        with pytest.raises(ConstraintViolationError) as exc_info:
            _insert(people, 1, "Ada again", None)
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)

    @pytest.mark.parametrize("value", [True, 1.5j, [1], object()])
    def test_rejects_non_native(self, engine: SqliteEngine, value: object) -> None:
        stmt = engine.prepare("SELECT ?")
        with pytest.raises(EngineError):
            engine.bind_parameter(stmt, 1, value)

    @pytest.mark.parametrize("value", [2**63, -(2**63) - 1])
    def test_rejects_wide_integers(self, engine: SqliteEngine, value: int) -> None:
        with pytest.raises(EngineError):
            engine.bind_parameter(engine.prepare("SELECT ?"), 1, value)

    def test_rejects_values_over_length_limit(self, engine: SqliteEngine) -> None:
        engine.raw.setlimit(sqlite3.SQLITE_LIMIT_LENGTH, 16)
        with pytest.raises(EngineError):
            engine.bind_parameter(engine.prepare("SELECT ?"), 1, "x" * 17)

    def test_length_limit_counts_utf8_bytes(self, engine: SqliteEngine) -> None:
        engine.raw.setlimit(sqlite3.SQLITE_LIMIT_LENGTH, 16)
        stmt = engine.prepare("SELECT ?")
        engine.bind_parameter(stmt, 1, "\u00e9" * 8)
        with pytest.raises(EngineError, match="18 bytes"):
            engine.bind_parameter(stmt, 1, "\u00e9" * 9)

    def test_rejects_lone_surrogate(self, engine: SqliteEngine) -> None:
        with pytest.raises(EngineError) as exc_info:
            engine.bind_parameter(engine.prepare("SELECT ?"), 1, "\ud800")
        assert isinstance(exc_info.value.__cause__, UnicodeEncodeError)

    def test_rejects_index_zero(self, engine: SqliteEngine) -> None:
        with pytest.raises(EngineError):
            engine.bind_parameter(engine.prepare("SELECT ?"), 0, 1)

    def test_gap_in_slots(self, engine: SqliteEngine) -> None:
        stmt = engine.prepare("SELECT ?, ?")
        engine.bind_parameter(stmt, 2, 1)
        with pytest.raises(EngineError):
            engine.query(stmt)

    def test_wrong_parameter_count(self, engine: SqliteEngine) -> None:
        stmt = engine.prepare("SELECT ?, ?")
        engine.bind_parameter(stmt, 1, 1)
        with pytest.raises(EngineError):
            engine.query(stmt)

    def test_statement_from_other_engine(self, engine: SqliteEngine) -> None:
        with SqliteEngine() as other:
            stmt = other.prepare("SELECT 1")
            with pytest.raises(EngineError):
                engine.execute(stmt)


class TestRows:
    def test_iterates_rows(self, people: SqliteEngine) -> None:
        rows = people.query(people.prepare('SELECT "id", "name", "age" FROM "person" ORDER BY "id"'))
        assert rows.column_names == ("id", "name", "age")
        first = rows.next()
        assert first is not None
        assert (first.column(0), first.column(1), first.column(2)) == (1, "Ada", 36)
        second = rows.next()
        assert second is not None and second.column(2) is None
        assert rows.next() is None
        assert rows.done
        assert rows.next() is None

    def test_view_expires_on_advance(self, people: SqliteEngine) -> None:
        rows = people.query(people.prepare('SELECT "id" FROM "person"'))
        first = rows.next()
        rows.next()
        with pytest.raises(RowExpiredError):
            first.column(0)

    def test_view_expires_on_close(self, people: SqliteEngine) -> None:
        rows = people.query(people.prepare('SELECT "id" FROM "person"'))
        row = rows.next()
        rows.close()
        with pytest.raises(RowExpiredError):
            row.column_count
        assert rows.next() is None

    def test_python_iteration(self, people: SqliteEngine) -> None:
        rows = people.query(people.prepare('SELECT "name" FROM "person" ORDER BY "id"'))
        assert [row.column(0) for row in rows] == ["Ada", "Grace"]

    def test_invalid_utf8_text_reads_as_bytes(self, engine: SqliteEngine) -> None:
        row = engine.query(engine.prepare("SELECT CAST(X'FF' AS TEXT), 'ok'")).next()
        assert row.column(0) == b"\xff"
        assert row.column(1) == "ok"

    def test_column_out_of_range(self, people: SqliteEngine) -> None:
        row = people.query(people.prepare('SELECT "id" FROM "person"')).next()
        with pytest.raises(EngineError):
            row.column(1)

    def test_finalized_during_iteration(self, people: SqliteEngine) -> None:
        stmt = people.prepare('SELECT "id" FROM "person"')
        rows = people.query(stmt)
        people.finalize(stmt)
        with pytest.raises(EngineError):
            rows.next()
        with pytest.raises(EngineError):
            people.query(stmt)


class TestConnection:
    def test_closed_engine(self) -> None:
        engine = SqliteEngine()
        stmt = engine.prepare("SELECT 1")
        engine.close()
        assert engine.closed
        with pytest.raises(EngineError):
            engine.prepare("SELECT 1")
        engine.finalize(stmt)
        assert stmt.finalized

    def test_rollback_discards(self, people: SqliteEngine) -> None:
        people.commit()
        _insert(people, 3, "Linus", None)
        people.rollback()
        rows = people.query(people.prepare('SELECT COUNT(*) FROM "person"'))
        assert rows.next().column(0) == 2

    def test_script_error(self, engine: SqliteEngine) -> None:
        with pytest.raises(EngineError) as exc_info:
            engine.execute_script("CREATE TABLE t (x); INSERT INTO missing VALUES (1)")
        assert exc_info.value.context.sql == "INSERT INTO missing VALUES (1)"

    def test_foreign_keys_enabled(self, engine: SqliteEngine) -> None:
        assert engine.raw.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_from_settings(self, tmp_path) -> None:
        settings = RowspineSettings(database=str(tmp_path / "app.db"), foreign_keys=False)
        with SqliteEngine.from_settings(settings) as engine:
            assert engine.database.endswith("app.db")
            assert engine.raw.execute("PRAGMA foreign_keys").fetchone()[0] == 0
