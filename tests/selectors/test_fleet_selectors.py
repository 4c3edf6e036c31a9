"""
Tests for the read-side selectors (fleet_kernel.selectors).

Covers:
- CarSelector: cars per owner and per driver, the active assignment
- RequestSelector: the pending request of a pair, listings per owner,
  driver and car, newest first
- ReportSelector: list_by_car year and month filters, list_by_driver
  status filter, income sources of a report
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from fleet_kernel.domain.lifecycle import ReportStatus, RequestStatus
from fleet_kernel.selectors import CarSelector, ReportSelector, RequestSelector


class TestCarSelector:
    def test_list_for_owner(self, session, create_car, owner_id):
        first = create_car()
        second = create_car()
        create_car(owner=uuid4())

        cars = CarSelector(session).list_for_owner(owner_id)
        assert {c.id for c in cars} == {first.id, second.id}

    def test_list_for_driver_follows_current_holder(
        self, session, create_car, car_service, driver_id, owner_id,
    ):
        held = create_car()
        handed_over = create_car()
        create_car()
        car_service.assign_driver(held.id, driver_id, owner_id)
        car_service.assign_driver(handed_over.id, driver_id, owner_id)
        car_service.assign_driver(handed_over.id, uuid4(), owner_id)

        cars = CarSelector(session).list_for_driver(driver_id)
        assert [c.id for c in cars] == [held.id]

    def test_active_assignment(self, session, car, car_service, driver_id, owner_id):
        selector = CarSelector(session)
        assert selector.active_assignment(car.id) is None

        car_service.assign_driver(car.id, driver_id, owner_id)
        assert selector.active_assignment(car.id).driver_id == driver_id

        car_service.unassign_car(car.id)
        assert selector.active_assignment(car.id) is None
        assert len(selector.assignment_history(car.id)) == 1


class TestRequestSelector:
    def test_pending_for_pair(self, session, car, request_service, driver_id, owner_id):
        selector = RequestSelector(session)
        assert selector.pending_for(car.id, driver_id) is None

        request = request_service.create_or_update(car.id, driver_id)
        assert selector.pending_for(car.id, driver_id).id == request.id
        assert selector.pending_for(car.id, uuid4()) is None

        request_service.reject(request.id, owner_id)
        assert selector.pending_for(car.id, driver_id) is None

    def test_list_for_owner_newest_first_and_by_status(
        self, session, create_car, request_service, deterministic_clock, driver_id, owner_id,
    ):
        car = create_car()
        older = request_service.create_or_update(car.id, driver_id)
        deterministic_clock.tick()
        newer = request_service.create_or_update(car.id, uuid4())
        request_service.create_or_update(create_car(owner=uuid4()).id, driver_id)
        request_service.reject(older.id, owner_id)

        selector = RequestSelector(session)
        assert [r.id for r in selector.list_for_owner(owner_id)] == [newer.id, older.id]
        pending = selector.list_for_owner(owner_id, RequestStatus.PENDING)
        assert [r.id for r in pending] == [newer.id]

    def test_list_for_driver_spans_cars(
        self, session, create_car, request_service, deterministic_clock, driver_id,
    ):
        first = request_service.create_or_update(create_car().id, driver_id)
        deterministic_clock.tick()
        second = request_service.create_or_update(create_car().id, driver_id)
        request_service.create_or_update(create_car().id, uuid4())

        requests = RequestSelector(session).list_for_driver(driver_id)
        assert [r.id for r in requests] == [second.id, first.id]


class TestReportSelector:
    def test_list_by_car_year_and_month(self, session, create_car, create_report):
        car = create_car(initial_mileage=0)
        create_report(car.id, week_start=date(2023, 12, 25), end_mileage=10)
        january = create_report(car.id, week_start=date(2024, 1, 29), end_mileage=20)
        february = create_report(car.id, week_start=date(2024, 2, 5), end_mileage=30)

        selector = ReportSelector(session)
        assert len(selector.list_by_car(car.id)) == 3
        assert [r.id for r in selector.list_by_car(car.id, year=2024)] == [february.id, january.id]
        assert [r.id for r in selector.list_by_car(car.id, year=2024, month=1)] == [january.id]
        assert selector.list_by_car(car.id, year=2024, month=3) == []

    def test_month_without_year_ignored(self, session, create_car, create_report):
        car = create_car()
        create_report(car.id, week_start=date(2024, 6, 3))
        assert len(ReportSelector(session).list_by_car(car.id, month=1)) == 1

    def test_list_by_driver_status_filter(
        self, session, create_car, create_report, approved_report, driver_id,
    ):
        car = create_car()
        approved = create_report(car.id)
        approved_report(approved.id)
        create_report(car.id, week_start=date(2024, 6, 10))

        selector = ReportSelector(session)
        assert len(selector.list_by_driver(driver_id)) == 2
        only_approved = selector.list_by_driver(driver_id, [ReportStatus.APPROVED])
        assert [r.id for r in only_approved] == [approved.id]

    def test_income_sources(self, session, create_car, create_report, report_service):
        report = create_report(create_car().id)
        source = report_service.add_income_source(report.id, "rentals", Decimal("25"))

        sources = ReportSelector(session).income_sources(report.id)
        assert [s.id for s in sources] == [source.id]
        assert sources[0].amount == Decimal("25")
