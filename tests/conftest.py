"""
Pytest fixtures for the cashbox test suite.

Provides:
- In-memory SQLite engine and session factory (tables created per test)
- Deterministic clock
- Storage tiers, facade and a loaded lifecycle controller
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest

from cashbox_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    make_session_factory,
)
from cashbox_kernel.domain.clock import DeterministicClock
from cashbox_kernel.domain.rows import Branch
from cashbox_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from cashbox_kernel.services.archive_store import ArchiveStore
from cashbox_kernel.services.kv_store import InMemoryKeyValueStore
from cashbox_kernel.services.local_row_store import LocalRowStore
from cashbox_kernel.services.row_store import RowStore
from cashbox_services.shift_lifecycle import ShiftLifecycleController

TEST_ADMIN_CODE = "4321"
START_TIME = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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
    Capture cashbox logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, controller):
            controller.request_close(row_id)
            logs = captured_logs()
            assert any(r["message"] == "shift_close_requested" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("cashbox")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite:///:memory:")
    create_tables(eng)
    yield eng
    drop_tables(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


# =============================================================================
# Domain and services
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(START_TIME)


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def local_store(kv):
    return LocalRowStore(kv)


@pytest.fixture
def archive_store(session_factory):
    return ArchiveStore(session_factory)


@pytest.fixture
def row_store(local_store, archive_store):
    return RowStore(local_store, archive_store)


def _verify_test_code(code):
    return code == TEST_ADMIN_CODE


@pytest.fixture
def make_controller(row_store, clock):
    """Factory for controllers sharing the test's stores and clock."""

    def _make(branch=Branch.CORNICHE, employee_name="سارة", **kwargs):
        kwargs.setdefault("admin_verifier", _verify_test_code)
        ctrl = ShiftLifecycleController(
            row_store, clock, branch, employee_name, **kwargs
        )
        ctrl.load()
        return ctrl

    return _make


@pytest.fixture
def controller(make_controller):
    return make_controller()
