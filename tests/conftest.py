"""
Shared pytest fixtures and configuration for rowspine tests.

This module provides:
- An in-memory ``SqliteEngine`` and a ``Session`` over it
- The ``Person`` schema and a session with its table created
- A recording ``FakeEngine`` and a cache over it

Usage:
    Fixtures are auto-discovered by pytest. Simply use them as function
    arguments (pytest injects them automatically).
"""

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

# Ensure rowspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rowspine.cache import StatementCache
from rowspine.engine import SqliteEngine
from rowspine.schema import ModelSchema, model_schema
from rowspine.session import Session
from tests._support.fakes import FakeEngine
from tests._support.models import PERSON_DDL, Person


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo any configure_logging() a test performed."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Engines and sessions
# =============================================================================


@pytest.fixture
def engine() -> Iterator[SqliteEngine]:
    """In-memory SQLite engine."""
    e = SqliteEngine(":memory:")
    yield e
    e.close()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_cache(fake_engine: FakeEngine) -> StatementCache:
    return StatementCache(fake_engine)


@pytest.fixture
def person_schema() -> ModelSchema:
    return model_schema(Person)


@pytest.fixture
def session(engine: SqliteEngine) -> Iterator[Session]:
    """Open session with the ``person`` table created."""
    s = Session(engine)
    s.execute_script(PERSON_DDL)
    yield s
    s.close()
