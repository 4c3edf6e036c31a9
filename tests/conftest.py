"""
Pytest fixtures for the fleet kernel test suite.

Provides:
- A database engine created ONCE per suite (SQLite file by default)
- Per-test sessions isolated by an outer transaction that is rolled back
- Committing session factories for concurrency tests (DELETE cleanup)
- Test data factories for cars, reports and assignment requests

Environment Variables:
- DATABASE_URL: SQLAlchemy URL to run the suite against (e.g. a
  PostgreSQL test database).  If not set, a SQLite file under the pytest
  temp directory is used.
"""

import json
import logging
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import delete
from sqlalchemy.orm import Session

from fleet_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from fleet_kernel.db.immutability import register_immutability_listeners
from fleet_kernel.domain.clock import DeterministicClock
from fleet_kernel.domain.dtos import ReportDraft
from fleet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fleet_kernel.models import (
    Car,
    CarAssignment,
    CarAssignmentRequest,
    IncomeSource,
    WeeklyReport,
)
from fleet_kernel.services import (
    AssignmentRequestService,
    CarAssignmentService,
    MileageService,
    ReportService,
    StatisticsService,
)


# Test actor IDs for all test operations
TEST_OWNER_ID = uuid4()
TEST_DRIVER_ID = uuid4()

# Children first, so foreign keys never block cleanup.
_CLEANUP_ORDER = (IncomeSource, WeeklyReport, CarAssignmentRequest, CarAssignment, Car)


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
    Capture fleet_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, report_service):
            report_service.submit(report_id)
            logs = captured_logs()
            assert any(r["message"] == "report_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fleet_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: mark test as using real commits from several threads"
    )


def get_database_url(tmp_dir) -> str:
    """Database URL from environment, or a SQLite file in the temp directory."""
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_dir / 'fleet_test.db'}"


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine(tmp_path_factory):
    """Engine shared by the whole suite."""
    engine = init_engine_from_url(
        get_database_url(tmp_path_factory.mktemp("db")),
        pool_size=5,
        max_overflow=10,
    )
    yield engine
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create tables once and register ORM immutability listeners."""
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    drop_tables()


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection with
    ``join_transaction_mode="create_savepoint"``: ``session.commit()``
    inside a test only releases a savepoint, and the outer transaction is
    rolled back at teardown, undoing every data change of the test.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


def _delete_all_rows(session_factory) -> None:
    with session_factory() as cleanup:
        for model in _CLEANUP_ORDER:
            cleanup.execute(delete(model))
        cleanup.commit()


@pytest.fixture(scope="function")
def session_factory(db_tables, db_engine):
    """Factory of sessions that really commit.

    For concurrency tests only: every thread opens its own session.  Rows
    are deleted at teardown.  Must not be combined with the ``session``
    fixture, whose open transaction holds the SQLite write lock.
    """
    factory = get_session_factory()
    _delete_all_rows(factory)
    yield factory
    _delete_all_rows(factory)


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 6, 3, 9, 0, 0, tzinfo=timezone.utc))


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def report_service(session, deterministic_clock) -> ReportService:
    return ReportService(session, deterministic_clock)


@pytest.fixture
def request_service(session, deterministic_clock) -> AssignmentRequestService:
    return AssignmentRequestService(session, deterministic_clock)


@pytest.fixture
def car_service(session, deterministic_clock) -> CarAssignmentService:
    return CarAssignmentService(session, deterministic_clock)


@pytest.fixture
def mileage_service(session, deterministic_clock) -> MileageService:
    return MileageService(session, deterministic_clock)


@pytest.fixture
def statistics_service(session, deterministic_clock) -> StatisticsService:
    return StatisticsService(session, deterministic_clock)


@pytest.fixture
def owner_id() -> UUID:
    return TEST_OWNER_ID


@pytest.fixture
def driver_id() -> UUID:
    return TEST_DRIVER_ID


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_car(car_service, owner_id):
    """Factory fixture to register test cars."""

    def _create(initial_mileage: int = 10000, owner: UUID | None = None, vin: str | None = None):
        return car_service.register_car(
            vin=vin or f"VIN{uuid4().hex[:14].upper()}",
            make="Toyota",
            model="Corolla",
            year=2019,
            owner_id=owner or owner_id,
            initial_mileage=initial_mileage,
        )

    return _create


@pytest.fixture
def car(create_car):
    return create_car()


def make_draft(
    car_id: UUID,
    week_start: date = date(2024, 6, 3),
    **overrides,
) -> ReportDraft:
    """A weekly report draft with some ride-share income."""
    values = {
        "car_id": car_id,
        "week_start_date": week_start,
        "week_end_date": week_start + timedelta(days=6),
        "ride_share_income": Decimal("300"),
    }
    values.update(overrides)
    return ReportDraft(**values)


@pytest.fixture
def create_report(report_service, driver_id, deterministic_clock):
    """Factory fixture to create draft reports; ticks the clock after each."""

    def _create(car_id: UUID, driver: UUID | None = None, **overrides):
        report = report_service.create(make_draft(car_id, **overrides), driver or driver_id)
        deterministic_clock.tick()
        return report

    return _create


@pytest.fixture
def approved_report(report_service, owner_id):
    """Factory fixture: create, submit and approve a report in one call."""

    def _approve(report_id: UUID):
        report_service.submit(report_id)
        return report_service.approve(report_id, owner_id)

    return _approve
