"""
Tests for ReportService (fleet_kernel.services.report_service).

Covers:
- create() with resolver-derived and explicit mileage, continuity checks
- update() of draft fields, read-only fields, and non-draft reports
- delete_draft() and the mileage range it frees
- submit/approve/reject lifecycle, invalid transitions, and the conflict
  raised when the row moved between our read and our write
- approve() raising the car's cached current_mileage

Test infrastructure:
- session fixture (outer transaction rolled back after each test)
- DeterministicClock, ticked between report creations
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from fleet_kernel.domain.dtos import ReportDraft
from fleet_kernel.domain.lifecycle import ReportStatus
from fleet_kernel.exceptions import (
    CarNotFoundError,
    InvalidReportTransitionError,
    ReportNotEditableError,
    ReportNotFoundError,
    ReportTransitionConflictError,
    ReportValidationError,
)
from fleet_kernel.models import Car, WeeklyReport
from fleet_kernel.services import ReportService


def make_draft(car_id, **overrides):
    values = {
        "car_id": car_id,
        "week_start_date": date(2024, 6, 3),
        "week_end_date": date(2024, 6, 9),
        "ride_share_income": Decimal("300"),
    }
    values.update(overrides)
    return ReportDraft(**values)


# =============================================================================
# Creation and mileage continuity
# =============================================================================


class TestCreate:
    def test_first_report_starts_at_initial_mileage(self, create_car, create_report):
        car = create_car(initial_mileage=10000)
        report = create_report(car.id)

        assert report.status == ReportStatus.DRAFT
        assert report.start_mileage == 10000
        assert report.end_mileage == 10001
        assert report.currency == "XAF"

    def test_weekly_cycle_carries_mileage_forward(
        self, session, create_car, create_report, report_service, owner_id,
    ):
        car = create_car(initial_mileage=10000)
        first = create_report(car.id)
        report_service.update(first.id, {"end_mileage": 10150})
        report_service.submit(first.id)
        approved = report_service.approve(first.id, owner_id)

        assert approved.status == ReportStatus.APPROVED
        assert session.get(Car, car.id).current_mileage == 10150

        second = create_report(car.id, week_start=date(2024, 6, 10))
        assert second.start_mileage == 10150
        assert second.end_mileage == 10151

    def test_draft_ranges_count_toward_next_start(self, create_car, create_report):
        car = create_car(initial_mileage=500)
        create_report(car.id, end_mileage=700)
        second = create_report(car.id, week_start=date(2024, 6, 10))
        assert second.start_mileage == 700

    def test_explicit_matching_start_accepted(self, create_car, create_report):
        car = create_car(initial_mileage=2000)
        report = create_report(car.id, start_mileage=2000, end_mileage=2300)
        assert (report.start_mileage, report.end_mileage) == (2000, 2300)

    def test_explicit_start_off_chain_rejected(self, create_car, create_report):
        car = create_car(initial_mileage=2000)
        with pytest.raises(ReportValidationError) as exc_info:
            create_report(car.id, start_mileage=1990, end_mileage=2300)
        assert exc_info.value.field == "start_mileage"

    def test_explicit_start_allowed_without_continuity_enforcement(
        self, session, deterministic_clock, create_car, driver_id,
    ):
        car = create_car(initial_mileage=2000)
        service = ReportService(session, deterministic_clock, enforce_continuity=False)
        report = service.create(
            make_draft(car.id, start_mileage=2500, end_mileage=2600), driver_id,
        )
        assert report.start_mileage == 2500

    def test_placeholder_increment_is_configurable(
        self, session, deterministic_clock, create_car, driver_id,
    ):
        car = create_car(initial_mileage=100)
        service = ReportService(session, deterministic_clock, placeholder_increment=0)
        report = service.create(make_draft(car.id), driver_id)
        assert report.end_mileage == report.start_mileage == 100

    def test_end_below_start_rejected(self, create_car, create_report):
        car = create_car(initial_mileage=100)
        with pytest.raises(ReportValidationError):
            create_report(car.id, end_mileage=50)

    def test_negative_amount_rejected(self, create_car, create_report):
        car = create_car()
        with pytest.raises(ReportValidationError):
            create_report(car.id, gas_expense=Decimal("-1"))

    def test_explicit_currency_kept(self, create_car, create_report):
        car = create_car()
        assert create_report(car.id, currency="USD").currency == "USD"

    def test_unknown_car(self, report_service, driver_id):
        with pytest.raises(CarNotFoundError):
            report_service.create(make_draft(uuid4()), driver_id)

    def test_create_does_not_touch_current_mileage(self, session, create_car, create_report):
        car = create_car(initial_mileage=100)
        create_report(car.id, end_mileage=900)
        assert session.get(Car, car.id).current_mileage == 100

    def test_create_logs_with_report_context(self, captured_logs, create_car, create_report):
        car = create_car()
        report = create_report(car.id)
        created = [r for r in captured_logs() if r["message"] == "report_created"]
        assert created
        assert created[0]["report_id"] == str(report.id)
        assert created[0]["car_id"] == str(car.id)


# =============================================================================
# Draft editing
# =============================================================================


class TestUpdate:
    def test_update_money_and_end_mileage(self, create_car, create_report, report_service):
        car = create_car(initial_mileage=100)
        report = create_report(car.id)
        updated = report_service.update(
            report.id, {"end_mileage": 400, "gas_expense": Decimal("12.50")},
        )
        assert updated.end_mileage == 400
        assert updated.gas_expense == Decimal("12.50")
        assert updated.mileage == 300

    @pytest.mark.parametrize("field", ["status", "car_id", "driver_id", "approved_at", "id"])
    def test_read_only_fields_rejected(self, create_car, create_report, report_service, field):
        car = create_car()
        report = create_report(car.id)
        with pytest.raises(ReportValidationError) as exc_info:
            report_service.update(report.id, {field: None})
        assert exc_info.value.field == field

    def test_start_mileage_change_rejected(self, create_car, create_report, report_service):
        car = create_car(initial_mileage=100)
        report = create_report(car.id)
        with pytest.raises(ReportValidationError):
            report_service.update(report.id, {"start_mileage": 150, "end_mileage": 200})

    def test_unchanged_start_mileage_accepted(self, create_car, create_report, report_service):
        car = create_car(initial_mileage=100)
        report = create_report(car.id)
        updated = report_service.update(report.id, {"start_mileage": 100, "end_mileage": 180})
        assert updated.end_mileage == 180

    def test_end_mileage_frozen_once_a_later_report_exists(
        self, create_car, create_report, report_service, mileage_service,
    ):
        car = create_car(initial_mileage=10000)
        first = create_report(car.id)
        second = create_report(car.id, week_start=date(2024, 6, 10))

        with pytest.raises(ReportValidationError) as exc_info:
            report_service.update(first.id, {"end_mileage": 10150})
        assert exc_info.value.field == "end_mileage"

        assert report_service.get(first.id).end_mileage == 10001
        assert report_service.get(second.id).start_mileage == 10001
        assert mileage_service.check_continuity(car.id) is None

    def test_latest_report_end_mileage_still_editable(
        self, create_car, create_report, report_service, mileage_service,
    ):
        car = create_car(initial_mileage=10000)
        create_report(car.id)
        latest = create_report(car.id, week_start=date(2024, 6, 10))

        updated = report_service.update(latest.id, {"end_mileage": 10300})

        assert updated.end_mileage == 10300
        assert mileage_service.check_continuity(car.id) is None

    def test_other_fields_of_earlier_report_still_editable(
        self, create_car, create_report, report_service,
    ):
        car = create_car(initial_mileage=10000)
        first = create_report(car.id)
        create_report(car.id, week_start=date(2024, 6, 10))

        updated = report_service.update(
            first.id, {"end_mileage": 10001, "gas_expense": Decimal("20")},
        )
        assert updated.gas_expense == Decimal("20")

    def test_end_mileage_edit_allowed_without_continuity_enforcement(
        self, session, deterministic_clock, create_car, create_report,
    ):
        service = ReportService(session, deterministic_clock, enforce_continuity=False)
        car = create_car(initial_mileage=10000)
        first = create_report(car.id)
        create_report(car.id, week_start=date(2024, 6, 10))

        assert service.update(first.id, {"end_mileage": 10150}).end_mileage == 10150

    def test_invalid_merge_rejected(self, create_car, create_report, report_service):
        car = create_car(initial_mileage=100)
        report = create_report(car.id)
        with pytest.raises(ReportValidationError):
            report_service.update(report.id, {"end_mileage": 99})
        assert report_service.get(report.id).end_mileage == 101

    def test_submitted_report_not_editable(self, create_car, create_report, report_service):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        with pytest.raises(ReportNotEditableError):
            report_service.update(report.id, {"gas_expense": Decimal("1")})

    def test_unknown_report(self, report_service):
        with pytest.raises(ReportNotFoundError):
            report_service.update(uuid4(), {"gas_expense": Decimal("1")})


class TestDeleteDraft:
    def test_delete_frees_mileage_range(self, create_car, create_report, report_service):
        car = create_car(initial_mileage=100)
        report = create_report(car.id, end_mileage=300)
        report_service.delete_draft(report.id)

        with pytest.raises(ReportNotFoundError):
            report_service.get(report.id)
        assert create_report(car.id).start_mileage == 100

    def test_submitted_report_cannot_be_deleted(self, create_car, create_report, report_service):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        with pytest.raises(ReportNotEditableError):
            report_service.delete_draft(report.id)


# =============================================================================
# Lifecycle transitions
# =============================================================================


class TestTransitions:
    def test_submit_stamps_submitted_at(self, create_car, create_report, report_service, deterministic_clock):
        car = create_car()
        report = create_report(car.id)
        submitted = report_service.submit(report.id)
        assert submitted.status == ReportStatus.SUBMITTED
        assert submitted.submitted_at == deterministic_clock.now()

    def test_submit_requires_income(self, create_car, create_report, report_service):
        car = create_car()
        report = create_report(car.id, ride_share_income=Decimal("0"))
        with pytest.raises(ReportValidationError) as exc_info:
            report_service.submit(report.id)
        assert exc_info.value.field == "income"
        assert report_service.get(report.id).status == ReportStatus.DRAFT

    def test_submit_accepts_income_sources_only(self, create_car, create_report, report_service):
        car = create_car()
        report = create_report(car.id, ride_share_income=Decimal("0"))
        report_service.add_income_source(report.id, "rentals", Decimal("80"))
        assert report_service.submit(report.id).status == ReportStatus.SUBMITTED

    def test_approve_records_approver(self, create_car, create_report, report_service, owner_id):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        approved = report_service.approve(report.id, owner_id)
        assert approved.approved_by == owner_id
        assert approved.approved_at is not None
        assert approved.rejected_at is None

    def test_reject_with_reason(self, create_car, create_report, report_service, owner_id):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        rejected = report_service.reject(report.id, owner_id, "odometer photo missing")
        assert rejected.status == ReportStatus.REJECTED
        assert rejected.rejected_by == owner_id
        assert rejected.rejection_reason == "odometer photo missing"

    def test_reject_without_reason(self, create_car, create_report, report_service, owner_id):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        assert report_service.reject(report.id, owner_id).rejection_reason is None

    def test_draft_cannot_be_approved(self, create_car, create_report, report_service, owner_id):
        car = create_car()
        report = create_report(car.id)
        with pytest.raises(InvalidReportTransitionError) as exc_info:
            report_service.approve(report.id, owner_id)
        assert exc_info.value.current_status == "draft"

    def test_approved_cannot_be_rejected(self, create_car, create_report, approved_report, report_service, owner_id):
        car = create_car()
        report = create_report(car.id)
        approved_report(report.id)
        with pytest.raises(InvalidReportTransitionError):
            report_service.reject(report.id, owner_id)

    def test_double_submit_is_invalid_state(self, create_car, create_report, report_service):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        with pytest.raises(InvalidReportTransitionError):
            report_service.submit(report.id)

    def test_conflict_when_row_moved_after_read(
        self, session, create_car, create_report, report_service, owner_id,
    ):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)

        # Keep the stale ORM copy alive in the identity map.
        held = session.get(WeeklyReport, report.id)
        session.execute(
            update(WeeklyReport)
            .where(WeeklyReport.id == report.id)
            .values(status=ReportStatus.APPROVED.value)
            .execution_options(synchronize_session=False)
        )
        assert held.status == ReportStatus.SUBMITTED.value

        with pytest.raises(ReportTransitionConflictError) as exc_info:
            report_service.reject(report.id, owner_id, "late")
        assert exc_info.value.expected_status == "submitted"

        current = report_service.get(report.id)
        assert current.status == ReportStatus.APPROVED
        assert current.rejected_at is None
        assert current.rejection_reason is None

    def test_approve_never_lowers_current_mileage(
        self, session, create_car, create_report, report_service, owner_id,
    ):
        car = create_car(initial_mileage=100)
        first = create_report(car.id, end_mileage=500)
        second = create_report(car.id, week_start=date(2024, 6, 10), end_mileage=600)

        for report in (second, first):
            report_service.submit(report.id)
            report_service.approve(report.id, owner_id)

        assert session.get(Car, car.id).current_mileage == 600

    def test_approve_keeps_higher_mileage_written_by_another_transaction(
        self, session, create_car, create_report, report_service, owner_id,
    ):
        car = create_car(initial_mileage=100)
        report = create_report(car.id, end_mileage=150)
        report_service.submit(report.id)

        # Another approval already raised the odometer; our ORM copy is stale.
        held = session.get(Car, car.id)
        session.execute(
            update(Car)
            .where(Car.id == car.id)
            .values(current_mileage=300)
            .execution_options(synchronize_session=False)
        )
        assert held.current_mileage == 100

        report_service.approve(report.id, owner_id)

        assert held.current_mileage == 300
        assert session.get(Car, car.id).current_mileage == 300

    def test_transitions_logged(self, captured_logs, create_car, create_report, report_service, owner_id):
        car = create_car()
        report = create_report(car.id)
        report_service.submit(report.id)
        report_service.approve(report.id, owner_id)

        messages = [r["message"] for r in captured_logs()]
        assert "report_submitted" in messages
        approved = [r for r in captured_logs() if r["message"] == "report_approved"]
        assert approved[0]["actor_id"] == str(owner_id)


# =============================================================================
# Listings
# =============================================================================


class TestListings:
    def test_list_for_car_by_month(self, create_car, create_report, report_service):
        car = create_car()
        may = create_report(car.id, week_start=date(2024, 5, 27))
        june = create_report(car.id, week_start=date(2024, 6, 3))

        assert [r.id for r in report_service.list_for_car(car.id)] == [june.id, may.id]
        assert [r.id for r in report_service.list_for_car(car.id, 2024, 5)] == [may.id]
        assert report_service.list_for_car(car.id, 2023) == []

    def test_list_for_driver_by_status(
        self, create_car, create_report, approved_report, report_service, driver_id,
    ):
        car = create_car()
        approved = create_report(car.id)
        approved_report(approved.id)
        draft = create_report(car.id, week_start=date(2024, 6, 10))
        create_report(car.id, driver=uuid4(), week_start=date(2024, 6, 17))

        assert {r.id for r in report_service.list_for_driver(driver_id)} == {approved.id, draft.id}
        drafts = report_service.list_for_driver(driver_id, [ReportStatus.DRAFT])
        assert [r.id for r in drafts] == [draft.id]

    def test_list_income_sources(self, create_car, create_report, report_service):
        report = create_report(create_car().id)
        report_service.add_income_source(report.id, "rentals", Decimal("10"))
        report_service.add_income_source(report.id, "ride_share", Decimal("5"))

        sources = report_service.list_income_sources(report.id)
        assert sorted(s.amount for s in sources) == [Decimal("5"), Decimal("10")]

    def test_income_sources_of_unknown_report(self, report_service):
        with pytest.raises(ReportNotFoundError):
            report_service.list_income_sources(uuid4())
