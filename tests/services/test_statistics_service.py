"""
Tests for StatisticsService (fleet_kernel.services.statistics_service).

Covers per-car rollups with and without a window, per-driver and
per-owner rollups, driver and owner performance, currency handling and
unknown cars.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fleet_engines.statistics import ReportWindow
from fleet_kernel.exceptions import CarNotFoundError, CurrencyMismatchError
from fleet_kernel.services import StatisticsService


class TestCarStatistics:
    def test_single_report(self, create_car, create_report, statistics_service):
        car = create_car(initial_mileage=1000)
        create_report(
            car.id,
            end_mileage=1150,
            maintenance_expenses=Decimal("50"),
            gas_expense=Decimal("20"),
            ride_share_income=Decimal("300"),
            driver_earnings=Decimal("100"),
        )
        stats = statistics_service.car_statistics(car.id)

        assert stats.total_reports == 1
        assert stats.total_mileage == 150
        assert stats.total_expenses == Decimal("50")
        assert stats.total_gas_expenses == Decimal("20")
        assert stats.total_profit == Decimal("300")
        assert stats.average_weekly_profit == Decimal("300.00")
        assert stats.total_driver_earnings == Decimal("100")

    def test_no_reports(self, create_car, statistics_service):
        car = create_car()
        stats = statistics_service.car_statistics(car.id)
        assert stats.total_reports == 0
        assert stats.average_weekly_profit == Decimal("0.00")

    def test_includes_every_status(
        self, create_car, create_report, approved_report, report_service, statistics_service, owner_id,
    ):
        car = create_car(initial_mileage=0)
        approved = create_report(car.id, end_mileage=100, taxi_income=Decimal("10"))
        approved_report(approved.id)
        rejected = create_report(car.id, week_start=date(2024, 6, 10), end_mileage=150)
        report_service.submit(rejected.id)
        report_service.reject(rejected.id, owner_id)
        create_report(car.id, week_start=date(2024, 6, 17), end_mileage=160)

        stats = statistics_service.car_statistics(car.id)
        assert stats.total_reports == 3
        assert stats.total_mileage == 160

    def test_window(self, create_car, create_report, statistics_service):
        car = create_car(initial_mileage=0)
        create_report(car.id, week_start=date(2024, 1, 1), end_mileage=10, taxi_income=Decimal("1"))
        create_report(car.id, week_start=date(2024, 5, 6), end_mileage=30, taxi_income=Decimal("2"))
        create_report(car.id, week_start=date(2024, 6, 3), end_mileage=60, taxi_income=Decimal("4"))

        stats = statistics_service.car_statistics(car.id, ReportWindow.for_month(2024, 5))
        assert stats.total_reports == 1
        assert stats.total_taxi_income == Decimal("2")
        assert stats.total_mileage == 20

    def test_other_cars_excluded(self, create_car, create_report, statistics_service):
        car = create_car()
        other = create_car()
        create_report(other.id, taxi_income=Decimal("999"))
        assert statistics_service.car_statistics(car.id).total_reports == 0

    def test_unknown_car(self, statistics_service):
        with pytest.raises(CarNotFoundError):
            statistics_service.car_statistics(uuid4())

    def test_mixed_currency(self, session, deterministic_clock, create_car, create_report):
        car = create_car()
        create_report(car.id, currency="XAF")
        create_report(car.id, week_start=date(2024, 6, 10), currency="USD")

        lenient = StatisticsService(session, deterministic_clock)
        assert lenient.car_statistics(car.id).mixed_currency is True

        strict = StatisticsService(session, deterministic_clock, strict_currency=True)
        with pytest.raises(CurrencyMismatchError):
            strict.car_statistics(car.id)


class TestDriverStatistics:
    def test_spans_cars(self, create_car, create_report, statistics_service, driver_id):
        first = create_car(initial_mileage=0)
        second = create_car(initial_mileage=0)
        create_report(first.id, end_mileage=40, rental_income=Decimal("10"))
        create_report(second.id, end_mileage=60, rental_income=Decimal("30"))
        create_report(second.id, driver=uuid4(), week_start=date(2024, 6, 10), end_mileage=70)

        stats = statistics_service.driver_statistics(driver_id)
        assert stats.total_reports == 2
        assert stats.total_mileage == 100
        assert stats.total_rental_income == Decimal("40")
        assert stats.average_weekly_rental_income == Decimal("20.00")

    def test_performance(self, create_car, create_report, approved_report, statistics_service, driver_id):
        car = create_car(initial_mileage=0)
        report = create_report(car.id, end_mileage=200, driver_earnings=Decimal("100"))
        approved_report(report.id)
        create_report(
            car.id, week_start=date(2024, 6, 10), end_mileage=400, driver_earnings=Decimal("50"),
        )

        metrics = statistics_service.driver_performance(driver_id, today=date(2024, 6, 20))
        assert metrics.total_reports == 2
        assert metrics.average_weekly_earnings == Decimal("75.00")
        assert metrics.earnings_per_km == Decimal("0.38")
        assert metrics.submission_rate == Decimal("50.00")
        assert metrics.last_30_days_mileage == 400


class TestOwnerStatistics:
    def test_spans_every_owned_car(self, create_car, create_report, statistics_service, owner_id):
        first = create_car(initial_mileage=0)
        second = create_car(initial_mileage=0)
        foreign = create_car(initial_mileage=0, owner=uuid4())
        create_report(first.id, end_mileage=40, ride_share_income=Decimal("100"))
        create_report(
            second.id, end_mileage=60, ride_share_income=Decimal("0"), rental_income=Decimal("50"),
        )
        create_report(foreign.id, end_mileage=90, ride_share_income=Decimal("999"))

        stats = statistics_service.owner_statistics(owner_id)
        assert stats.total_reports == 2
        assert stats.total_mileage == 100
        assert stats.total_profit == Decimal("150")
        assert stats.average_weekly_profit == Decimal("75.00")

    def test_window(self, create_car, create_report, statistics_service, owner_id):
        car = create_car(initial_mileage=0)
        create_report(car.id, week_start=date(2024, 4, 1), end_mileage=10, taxi_income=Decimal("1"))
        create_report(car.id, week_start=date(2024, 6, 3), end_mileage=30, taxi_income=Decimal("2"))

        stats = statistics_service.owner_statistics(owner_id, ReportWindow.for_month(2024, 6))
        assert stats.total_reports == 1
        assert stats.total_taxi_income == Decimal("2")

    def test_owner_without_cars(self, statistics_service):
        stats = statistics_service.owner_statistics(uuid4())
        assert stats.total_reports == 0
        assert stats.total_profit == Decimal("0")


class TestOwnerPerformance:
    def test_utilization_and_active_drivers(
        self, create_car, create_report, approved_report, statistics_service, owner_id, driver_id,
    ):
        busy = create_car(initial_mileage=0)
        create_car(initial_mileage=0)
        other_driver = uuid4()
        report = create_report(busy.id, end_mileage=200, ride_share_income=Decimal("300"))
        approved_report(report.id)
        create_report(
            busy.id, driver=other_driver, week_start=date(2024, 6, 10),
            end_mileage=300, ride_share_income=Decimal("0"), rental_income=Decimal("100"),
        )

        metrics = statistics_service.owner_performance(owner_id, today=date(2024, 6, 20))
        assert metrics.total_cars == 2
        assert metrics.total_reports == 2
        assert metrics.average_weekly_revenue == Decimal("200.00")
        assert metrics.revenue_per_km == Decimal("1.33")
        assert metrics.submission_rate == Decimal("50.00")
        assert metrics.car_utilization == Decimal("50.00")
        assert metrics.active_drivers == 2

    def test_owner_without_cars(self, statistics_service):
        metrics = statistics_service.owner_performance(uuid4(), today=date(2024, 6, 20))
        assert metrics.total_cars == 0
        assert metrics.active_drivers == 0
