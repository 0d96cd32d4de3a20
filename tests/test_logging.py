"""
Tests for the logging module.

Tests verify:
- configure_logging filters below the configured level
- LogContext binds and unbinds context vars
- Library modules emit their structured events
"""

import json
import logging

import pytest
import structlog
from structlog.testing import capture_logs

from rowspine.cache import StatementCache
from rowspine.errors import FieldDecodeError
from rowspine.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from rowspine.mapper import RowMapper
from rowspine.schema import model_schema
from tests._support.fakes import FakeEngine, FakeRow
from tests._support.models import Person


class TestConfigureLogging:
    def test_json_output_filters_debug(self, caplog):
        caplog.set_level(logging.DEBUG)
        configure_logging(level="INFO", json_format=True, service="inventory")
        logger = get_logger("tests.logging")
        logger.debug("hidden")
        logger.info("rows_loaded", table="person", count=2)

        messages = [r.getMessage() for r in caplog.records if r.name == "tests.logging"]
        assert len(messages) == 1
        record = json.loads(messages[0])
        assert record["event"] == "rows_loaded"
        assert record["count"] == 2
        assert record["service.name"] == "inventory"
        assert record["log.level"] == "info"
        assert "@timestamp" in record


class TestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_log_context_is_scoped(self):
        with LogContext(table="person", operation="insert"):
            assert structlog.contextvars.get_contextvars() == {"table": "person", "operation": "insert"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_bind_context(self):
        bind_context(database=":memory:")
        assert structlog.contextvars.get_contextvars()["database"] == ":memory:"


class TestLibraryEvents:
    def test_statement_prepared_and_cleared(self):
        cache = StatementCache(FakeEngine())
        with capture_logs() as logs:
            cache.get_or_prepare("SELECT 1")
            cache.get_or_prepare("SELECT 1")
            cache.clear()
        events = [entry["event"] for entry in logs]
        assert events == ["statement_prepared", "statement_cache_cleared"]
        assert logs[0]["sql"] == "SELECT 1"
        assert logs[1]["released"] == 1

    def test_row_decode_failed_is_a_warning(self):
        with capture_logs() as logs:
            with pytest.raises(FieldDecodeError):
                RowMapper().map_row(model_schema(Person), FakeRow((1, "Ada", "old")))
        assert logs == [
            {
                "event": "row_decode_failed",
                "log_level": "warning",
                "table": "person",
                "field": "age",
                "error": "TypeMismatchError",
            }
        ]
