"""
fleet_services.workflow_service -- Workflow orchestration over kernel services.

Responsibility:
    Wires the kernel services from a FleetConfig and composes them into
    the multi-step operations callers need: approve a request and assign
    the car in one transaction, run transitions with an opt-in single
    retry on conflict, and compute statistics with the configured default
    window.

Architecture position:
    Services layer.  May import from fleet_engines/, fleet_kernel/ and
    fleet_config/.  The kernel never imports from here.

Invariants enforced:
    - One session per workflow service; every kernel service shares it, so
      a composed operation commits or rolls back as a unit in the caller's
      ``session_scope()``.
    - retry_on_conflict() retries at most once and only on ConflictError.
      The retry re-reads the row, so a transition that truly lost the race
      surfaces as InvalidStateError on the second attempt.
    - retry_on_store_error() retries only StoreError with retryable=True,
      for a bounded number of attempts.

Failure modes:
    - Every kernel exception propagates unchanged (after the optional retry).
"""

from __future__ import annotations

import time
from datetime import date, datetime
from typing import Any, Callable, Mapping, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_config import FleetConfig
from fleet_engines.statistics import (
    CarStatistics,
    OwnerPerformanceMetrics,
    PerformanceMetrics,
    ReportWindow,
)
from fleet_kernel.db.engine import init_engine_from_url
from fleet_kernel.db.immutability import register_immutability_listeners
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import (
    AssignmentInfo,
    AssignmentRequestInfo,
    ReportDraft,
    ReportInfo,
)
from fleet_kernel.exceptions import ConflictError, StoreError
from fleet_kernel.logging_config import LogContext, configure_logging, get_logger
from fleet_kernel.services.assignment_request_service import AssignmentRequestService
from fleet_kernel.services.car_assignment_service import CarAssignmentService
from fleet_kernel.services.mileage_service import MileageService
from fleet_kernel.services.report_service import ReportService
from fleet_kernel.services.statistics_service import StatisticsService

logger = get_logger("services.workflow")

T = TypeVar("T")


# =============================================================================
# Retry helpers
# =============================================================================


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    retry: bool = True,
    label: str = "transition",
) -> T:
    """Run ``operation``; on ConflictError run it once more if ``retry``."""
    try:
        return operation()
    except ConflictError as exc:
        if not retry:
            raise
        logger.info(
            "conflict_retry",
            extra={"operation": label, "entity_id": exc.entity_id},
        )
        return operation()


def retry_on_store_error(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    backoff_seconds: float = 0.1,
    label: str = "operation",
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times while it raises a
    retryable StoreError.

    ``operation`` must own its transaction (typically a ``session_scope()``
    block), since a failed attempt leaves its session unusable.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    attempt = 1
    while True:
        try:
            return operation()
        except StoreError as exc:
            if not exc.retryable or attempt >= max_attempts:
                raise
            logger.warning(
                "store_error_retry",
                extra={"operation": label, "attempt": attempt, "detail": exc.detail},
            )
            time.sleep(backoff_seconds * attempt)
            attempt += 1


# =============================================================================
# Bootstrap
# =============================================================================


def init_from_config(config: FleetConfig) -> None:
    """Configure logging, the engine and the immutability listeners from config."""
    configure_logging(level=config.logging.level)
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    register_immutability_listeners()


# =============================================================================
# Workflow service
# =============================================================================


class FleetWorkflowService:
    """
    Facade over the kernel services, configured from a FleetConfig.

    Contract:
        Flushes only; the caller commits.  ``retry`` flags opt a single
        transition into one re-read-and-retry on ConflictError.
    """

    def __init__(
        self,
        session: Session,
        config: FleetConfig | None = None,
        clock: Clock | None = None,
    ):
        self._config = config or FleetConfig()
        self._clock = clock or SystemClock()
        reports_cfg = self._config.reports

        self.session = session
        self.reports = ReportService(
            session,
            self._clock,
            placeholder_increment=reports_cfg.mileage_placeholder_increment,
            enforce_continuity=reports_cfg.enforce_continuity,
            default_currency=reports_cfg.default_currency,
        )
        self.requests = AssignmentRequestService(
            session,
            self._clock,
            upsert_max_attempts=self._config.assignment_requests.upsert_max_attempts,
        )
        self.cars = CarAssignmentService(session, self._clock)
        self.mileage = MileageService(
            session,
            self._clock,
            placeholder_increment=reports_cfg.mileage_placeholder_increment,
        )
        self.statistics = StatisticsService(
            session,
            self._clock,
            default_currency=reports_cfg.default_currency,
            strict_currency=self._config.statistics.strict_currency,
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def create_report(self, draft: ReportDraft, driver_id: UUID) -> ReportInfo:
        return self.reports.create(draft, driver_id)

    def submit_report(self, report_id: UUID, retry: bool = False) -> ReportInfo:
        return retry_on_conflict(
            lambda: self.reports.submit(report_id), retry=retry, label="report_submit",
        )

    def approve_report(
        self, report_id: UUID, approver_id: UUID, retry: bool = False,
    ) -> ReportInfo:
        return retry_on_conflict(
            lambda: self.reports.approve(report_id, approver_id),
            retry=retry,
            label="report_approve",
        )

    def reject_report(
        self,
        report_id: UUID,
        rejecter_id: UUID,
        reason: str | None = None,
        retry: bool = False,
    ) -> ReportInfo:
        return retry_on_conflict(
            lambda: self.reports.reject(report_id, rejecter_id, reason),
            retry=retry,
            label="report_reject",
        )

    # ------------------------------------------------------------------
    # Assignment requests
    # ------------------------------------------------------------------

    def request_assignment(
        self,
        car_id: UUID,
        driver_id: UUID,
        fields: Mapping[str, Any] | None = None,
    ) -> AssignmentRequestInfo:
        return self.requests.create_or_update(car_id, driver_id, fields)

    def approve_request_and_assign(
        self,
        request_id: UUID,
        owner_id: UUID,
        notes: str | None = None,
    ) -> tuple[AssignmentRequestInfo, AssignmentInfo]:
        """
        Approve a pending request and hand the car to its driver.

        Both writes share the session: if the assignment fails, rolling
        back the caller's transaction also undoes the approval.
        """
        with LogContext.bind(actor_id=owner_id, request_id=request_id):
            request = self.requests.approve(request_id, owner_id)
            assignment = self.cars.assign_driver(
                request.car_id, request.driver_id, assigned_by=owner_id, notes=notes,
            )
            logger.info(
                "assignment_request_fulfilled",
                extra={"car_id": str(request.car_id), "driver_id": str(request.driver_id)},
            )
        return request, assignment

    def expire_stale_requests(self, as_of: datetime | date | None = None) -> list[UUID]:
        return self.requests.expire_stale_requests(as_of)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def default_window(self, today: date | None = None) -> ReportWindow:
        """Trailing window of ``statistics.default_trailing_months``."""
        return ReportWindow.trailing_months(
            today or self._clock.today(),
            self._config.statistics.default_trailing_months,
        )

    def car_statistics(
        self, car_id: UUID, window: ReportWindow | None = None,
    ) -> CarStatistics:
        return self.statistics.car_statistics(car_id, window or self.default_window())

    def driver_statistics(
        self, driver_id: UUID, window: ReportWindow | None = None,
    ) -> CarStatistics:
        return self.statistics.driver_statistics(driver_id, window or self.default_window())

    def driver_performance(self, driver_id: UUID) -> PerformanceMetrics:
        return self.statistics.driver_performance(driver_id, self._clock.today())

    def owner_statistics(
        self, owner_id: UUID, window: ReportWindow | None = None,
    ) -> CarStatistics:
        return self.statistics.owner_statistics(owner_id, window or self.default_window())

    def owner_performance(self, owner_id: UUID) -> OwnerPerformanceMetrics:
        return self.statistics.owner_performance(owner_id, self._clock.today())
