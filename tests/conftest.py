"""
Pytest fixtures for the incentive engine test suite.

Provides:
- Structured logging configured once per session, LogContext cleared per test
- Entity and data store fixtures (builders live in tests/helpers.py)
- The bundled optica sample plan and dataset
- A file-backed SQLite database for the SQLAlchemy data store

SQLite databases live under pytest's tmp_path rather than in memory so the
orchestrator's worker threads each get a real connection to the same file.
"""

import json
import logging
from io import StringIO
from pathlib import Path

import pytest

from incentive_config.loader import load_dataset, load_plan
from incentive_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from incentive_kernel.domain.facts import Entity
from incentive_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from incentive_services.data_access import InMemoryDataAccess

SAMPLES = Path(__file__).resolve().parent.parent / "incentive_config" / "samples"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture incentive_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.run_calculation(...)
            logs = captured_logs()
            assert any(r["message"] == "calculation_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("incentive_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Entities and stores
# =============================================================================


@pytest.fixture
def store_entity() -> Entity:
    return Entity(
        entity_id="store-017",
        external_id="MX-017",
        attributes={"is_certified": True, "region": "cdmx"},
        display_name="Tienda Polanco",
    )


@pytest.fixture
def in_memory_store():
    """Empty in-memory data store."""
    return InMemoryDataAccess()


# =============================================================================
# Sample files
# =============================================================================


@pytest.fixture(scope="session")
def optica_plan():
    return load_plan(SAMPLES / "optica_plan.yaml")


@pytest.fixture(scope="session")
def optica_dataset():
    return load_dataset(SAMPLES / "optica_dataset.yaml")


@pytest.fixture
def optica_store(optica_plan, optica_dataset):
    return InMemoryDataAccess.from_dataset(optica_dataset, [optica_plan])


# =============================================================================
# SQLite database
# =============================================================================


@pytest.fixture
def sqlite_session_factory(tmp_path):
    """Fresh file-backed SQLite database with every table created."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'incentives.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()
