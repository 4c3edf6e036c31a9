"""
ReportService -- weekly report lifecycle management.

Responsibility:
    Creates, edits and deletes draft weekly reports, manages their
    itemised income sources, and drives the lifecycle
    draft -> submitted -> approved | rejected.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, selectors/
    and the pure mileage engine (through MileageService).

Invariants enforced:
    - Only drafts are editable or deletable (ReportNotEditableError).
    - Every status change is a conditional write through
      LedgerStore.conditional_update: the row moves only if it still holds
      the expected source status.
    - A state that already forbids the action is InvalidReportTransitionError;
      a state that changed between our read and our write is
      ReportTransitionConflictError.  Timestamps of a losing attempt are
      never written.
    - Approving a report raises the car's cached current_mileage to
      max(current, end_mileage) in the same transaction, with a single
      guarded UPDATE so a concurrent writer is never overwritten.
    - end_mileage is frozen once a later report of the car exists.
    - New reports start where the car's ledger ends (mileage continuity),
      unless continuity enforcement is switched off.

Failure modes:
    - CarNotFoundError / ReportNotFoundError / IncomeSourceNotFoundError.
    - ReportValidationError on malformed fields, an unknown or read-only
      field in update(), or a submit with no recorded income.
    - InvalidReportTransitionError, ReportNotEditableError,
      ReportTransitionConflictError as above.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import (
    REPORT_EDITABLE_FIELDS,
    REPORT_INCOME_FIELDS,
    REPORT_MONEY_FIELDS,
    IncomeSourceInfo,
    ReportDraft,
    ReportInfo,
)
from fleet_kernel.domain.lifecycle import (
    EDITABLE_REPORT_STATUSES,
    ReportAction,
    ReportStatus,
    next_report_status,
    source_status_for,
)
from fleet_kernel.domain.validation import (
    validate_income_source,
    validate_report_fields,
)
from fleet_kernel.exceptions import (
    CarNotFoundError,
    IncomeSourceNotFoundError,
    InvalidReportTransitionError,
    ReportNotEditableError,
    ReportNotFoundError,
    ReportTransitionConflictError,
    ReportValidationError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.car import Car
from fleet_kernel.models.weekly_report import IncomeSource, WeeklyReport
from fleet_kernel.selectors.report_selector import ReportSelector
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.mileage_service import MileageService

logger = get_logger("services.report_service")

_REPORT_FIELD_NAMES = (
    "week_start_date",
    "week_end_date",
    "start_mileage",
    "end_mileage",
    "currency",
    *REPORT_MONEY_FIELDS,
)


class ReportService(BaseService[WeeklyReport]):
    """
    Weekly report lifecycle.

    Contract:
        Every method flushes within the caller's transaction and returns a
        frozen ReportInfo / IncomeSourceInfo.

    Non-goals:
        - Does NOT check who the acting driver is; identities are opaque
          and authorization is the caller's concern.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        placeholder_increment: int = 1,
        enforce_continuity: bool = True,
        default_currency: str = "XAF",
    ):
        super().__init__(session, clock)
        self._mileage = MileageService(
            session, self._clock, placeholder_increment=placeholder_increment,
        )
        self._reports = ReportSelector(session)
        self._placeholder_increment = placeholder_increment
        self._enforce_continuity = enforce_continuity
        self._default_currency = default_currency

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, report_id: UUID) -> WeeklyReport:
        report = self._store.get(WeeklyReport, report_id)
        if report is None:
            raise ReportNotFoundError(str(report_id))
        return report

    def _load_draft(self, report_id: UUID) -> WeeklyReport:
        report = self._load(report_id)
        if ReportStatus(report.status) not in EDITABLE_REPORT_STATUSES:
            raise ReportNotEditableError(str(report_id), report.status)
        return report

    def _load_income_source(self, source_id: UUID) -> IncomeSource:
        source = self._store.get(IncomeSource, source_id)
        if source is None:
            raise IncomeSourceNotFoundError(str(source_id))
        return source

    def _has_later_reports(self, report: WeeklyReport) -> bool:
        chain = self._reports.prior_reports(report.car_id)
        return bool(chain) and chain[-1].id != report.id

    def get(self, report_id: UUID) -> ReportInfo:
        return self._load(report_id).to_dto()

    def list_for_car(
        self,
        car_id: UUID,
        year: int | None = None,
        month: int | None = None,
    ) -> list[ReportInfo]:
        """A car's reports, newest week first, optionally within a year or month."""
        return self._reports.list_by_car(car_id, year, month)

    def list_for_driver(
        self,
        driver_id: UUID,
        statuses: Iterable[ReportStatus] | None = None,
    ) -> list[ReportInfo]:
        return self._reports.list_by_driver(driver_id, statuses)

    def list_income_sources(self, report_id: UUID) -> list[IncomeSourceInfo]:
        self._load(report_id)
        return self._reports.income_sources(report_id)

    # ------------------------------------------------------------------
    # Draft editing
    # ------------------------------------------------------------------

    def create(self, draft: ReportDraft, driver_id: UUID) -> ReportInfo:
        """
        Insert a new draft report.

        Omitted start_mileage is filled from the mileage resolver; omitted
        end_mileage becomes start + placeholder increment.  Does not touch
        the car's current_mileage.
        """
        car = self._store.get(Car, draft.car_id)
        if car is None:
            raise CarNotFoundError(str(draft.car_id))

        bounds = self._mileage.resolve_bounds(draft.car_id)
        start = draft.start_mileage
        if start is None:
            start = bounds.start_mileage
        elif self._enforce_continuity and start != bounds.start_mileage:
            raise ReportValidationError(
                "start_mileage",
                f"{start} breaks mileage continuity; next report starts at "
                f"{bounds.start_mileage}",
            )
        end = draft.end_mileage
        if end is None:
            end = start + self._placeholder_increment

        fields = validate_report_fields({
            "week_start_date": draft.week_start_date,
            "week_end_date": draft.week_end_date,
            "start_mileage": start,
            "end_mileage": end,
            "currency": draft.currency or self._default_currency,
            **{name: getattr(draft, name) for name in REPORT_MONEY_FIELDS},
        })

        now = self._clock.now()
        report = WeeklyReport(
            car_id=draft.car_id,
            driver_id=driver_id,
            status=ReportStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
            **fields,
        )
        self._store.insert(report)

        with LogContext.bind(car_id=draft.car_id, report_id=report.id):
            logger.info(
                "report_created",
                extra={
                    "driver_id": str(driver_id),
                    "week_start_date": fields["week_start_date"],
                    "start_mileage": start,
                    "end_mileage": end,
                },
            )
        return report.to_dto()

    def update(self, report_id: UUID, fields: Mapping[str, Any]) -> ReportInfo:
        """
        Change fields of a draft report and revalidate the whole record.

        Raises:
            ReportValidationError: Unknown or read-only field (id, car_id,
                driver_id, status, timestamps), or invalid values.  With
                continuity enforcement on, start_mileage may not change, and
                end_mileage may not change once a later report of the car
                exists.
            ReportNotEditableError: The report is not a draft.
        """
        for name in fields:
            if name not in REPORT_EDITABLE_FIELDS:
                raise ReportValidationError(name, "is not an editable report field")

        report = self._load_draft(report_id)

        if (
            self._enforce_continuity
            and "start_mileage" in fields
            and fields["start_mileage"] != report.start_mileage
        ):
            raise ReportValidationError(
                "start_mileage", "is derived from the car's mileage history",
            )
        if (
            self._enforce_continuity
            and "end_mileage" in fields
            and fields["end_mileage"] != report.end_mileage
            and self._has_later_reports(report)
        ):
            raise ReportValidationError(
                "end_mileage", "a later report of this car already starts from it",
            )

        merged = {name: getattr(report, name) for name in _REPORT_FIELD_NAMES}
        merged.update(fields)
        normalized = validate_report_fields(merged)

        changed = []
        for name in _REPORT_FIELD_NAMES:
            if getattr(report, name) != normalized[name]:
                setattr(report, name, normalized[name])
                changed.append(name)
        if changed:
            report.updated_at = self._clock.now()
            self._store.flush("update_report")

        with LogContext.bind(car_id=report.car_id, report_id=report_id):
            logger.info("report_updated", extra={"fields": sorted(changed)})
        return report.to_dto()

    def delete_draft(self, report_id: UUID) -> None:
        """Hard-delete a draft and its income sources, freeing its mileage range."""
        report = self._load_draft(report_id)
        car_id = report.car_id
        self._store.delete(report)
        with LogContext.bind(car_id=car_id, report_id=report_id):
            logger.info("report_deleted")

    # ------------------------------------------------------------------
    # Lifecycle transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        report: WeeklyReport,
        action: ReportAction,
        values: dict[str, Any],
    ) -> None:
        """Pre-check the current state, then compare-and-swap on status."""
        expected = source_status_for(action)
        current = ReportStatus(report.status)
        target = next_report_status(current, action)
        if target is None:
            raise InvalidReportTransitionError(str(report.id), current.value, action.value)

        now = self._clock.now()
        applied = self._store.conditional_update(
            WeeklyReport,
            report.id,
            expected.value,
            {"status": target.value, "updated_at": now, **values},
        )
        if not applied:
            logger.warning(
                "report_transition_conflict",
                extra={
                    "report_id": str(report.id),
                    "action": action.value,
                    "expected_status": expected.value,
                },
            )
            raise ReportTransitionConflictError(
                str(report.id), expected.value, target.value,
            )

    def submit(self, report_id: UUID) -> ReportInfo:
        """
        draft -> submitted.

        Precondition: the report records some income (an income field or
        an income source above zero).
        """
        report = self._load(report_id)
        if report.status == ReportStatus.DRAFT.value and not _has_income(report):
            raise ReportValidationError("income", "report records no income")

        self._transition(
            report, ReportAction.SUBMIT, {"submitted_at": self._clock.now()},
        )
        with LogContext.bind(car_id=report.car_id, report_id=report_id):
            logger.info("report_submitted", extra={"driver_id": str(report.driver_id)})
        return report.to_dto()

    def approve(self, report_id: UUID, approver_id: UUID) -> ReportInfo:
        """submitted -> approved; raises the car's cached mileage."""
        report = self._load(report_id)
        self._transition(
            report,
            ReportAction.APPROVE,
            {"approved_at": self._clock.now(), "approved_by": approver_id},
        )

        car = self._store.get(Car, report.car_id)
        if car is None:
            raise CarNotFoundError(str(report.car_id))
        self._store.raise_if_lower(
            Car, car.id, "current_mileage", report.end_mileage,
            {"updated_at": self._clock.now()},
        )

        with LogContext.bind(actor_id=approver_id, car_id=report.car_id, report_id=report_id):
            logger.info(
                "report_approved",
                extra={"current_mileage": car.current_mileage},
            )
        return report.to_dto()

    def reject(
        self,
        report_id: UUID,
        rejecter_id: UUID,
        reason: str | None = None,
    ) -> ReportInfo:
        """submitted -> rejected."""
        report = self._load(report_id)
        self._transition(
            report,
            ReportAction.REJECT,
            {
                "rejected_at": self._clock.now(),
                "rejected_by": rejecter_id,
                "rejection_reason": reason,
            },
        )
        with LogContext.bind(actor_id=rejecter_id, car_id=report.car_id, report_id=report_id):
            logger.info("report_rejected", extra={"reason": reason})
        return report.to_dto()

    # ------------------------------------------------------------------
    # Income sources
    # ------------------------------------------------------------------

    def add_income_source(
        self,
        report_id: UUID,
        source_type: str,
        amount: Decimal | int | str,
        notes: str | None = None,
    ) -> IncomeSourceInfo:
        report = self._load_draft(report_id)
        kind, value = validate_income_source(source_type, amount)

        source = IncomeSource(
            source_type=kind.value,
            amount=value,
            notes=notes,
            created_at=self._clock.now(),
            updated_at=self._clock.now(),
        )
        report.income_sources.append(source)
        self._store.flush("add_income_source")

        with LogContext.bind(report_id=report_id):
            logger.info(
                "income_source_added",
                extra={"source_type": kind.value, "amount": value},
            )
        return source.to_dto()

    def update_income_source(
        self,
        source_id: UUID,
        source_type: str | None = None,
        amount: Decimal | int | str | None = None,
        notes: str | None = None,
    ) -> IncomeSourceInfo:
        source = self._load_income_source(source_id)
        self._load_draft(source.weekly_report_id)

        kind, value = validate_income_source(
            source_type if source_type is not None else source.source_type,
            amount if amount is not None else source.amount,
        )
        source.source_type = kind.value
        source.amount = value
        if notes is not None:
            source.notes = notes
        source.updated_at = self._clock.now()
        self._store.flush("update_income_source")

        logger.info("income_source_updated", extra={"income_source_id": str(source_id)})
        return source.to_dto()

    def delete_income_source(self, source_id: UUID) -> None:
        source = self._load_income_source(source_id)
        report = self._load_draft(source.weekly_report_id)
        report.income_sources.remove(source)
        self._store.flush("delete_income_source")

        logger.info("income_source_deleted", extra={"income_source_id": str(source_id)})

    def calculate_total_earnings(self, report_id: UUID) -> Decimal:
        """Sum of the report's itemised income source amounts."""
        report = self._load(report_id)
        return sum((s.amount for s in report.income_sources), ZERO)


def _has_income(report: WeeklyReport) -> bool:
    if any(getattr(report, name) > ZERO for name in REPORT_INCOME_FIELDS):
        return True
    return any(source.amount > ZERO for source in report.income_sources)
