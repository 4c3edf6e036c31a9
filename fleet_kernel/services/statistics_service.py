"""
StatisticsService -- loads report sets and runs the statistics engine.

Responsibility:
    Selects the reports of a car, a driver or every car of an owner,
    optionally bounded by a ReportWindow, and folds them with ``fleet_engines.statistics``.

Architecture position:
    Kernel > Services (read-only).  Imports the pure statistics engine.

Failure modes:
    - CarNotFoundError for car_statistics() on an unknown car.
    - CurrencyMismatchError in strict currency mode.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_engines.statistics import (
    CarStatistics,
    OwnerPerformanceMetrics,
    PerformanceMetrics,
    ReportWindow,
    aggregate,
    owner_performance_metrics,
    performance_metrics,
)
from fleet_kernel.domain.clock import Clock
from fleet_kernel.exceptions import CarNotFoundError
from fleet_kernel.models.weekly_report import WeeklyReport
from fleet_kernel.selectors.car_selector import CarSelector
from fleet_kernel.selectors.report_selector import ReportSelector
from fleet_kernel.services.base import BaseService


class StatisticsService(BaseService[WeeklyReport]):
    """Report rollups per car, per driver and per owner."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_currency: str = "XAF",
        strict_currency: bool = False,
    ):
        super().__init__(session, clock)
        self._cars = CarSelector(session)
        self._reports = ReportSelector(session)
        self._default_currency = default_currency
        self._strict_currency = strict_currency

    def car_statistics(
        self, car_id: UUID, window: ReportWindow | None = None,
    ) -> CarStatistics:
        if self._cars.get(car_id) is None:
            raise CarNotFoundError(str(car_id))

        if window is None:
            reports = self._reports.list_by_car(car_id)
        else:
            reports = self._reports.list_in_window([car_id], window.start, window.end)
        return aggregate(
            reports,
            window=window,
            default_currency=self._default_currency,
            strict_currency=self._strict_currency,
        )

    def driver_statistics(
        self, driver_id: UUID, window: ReportWindow | None = None,
    ) -> CarStatistics:
        return aggregate(
            self._reports.list_by_driver(driver_id),
            window=window,
            default_currency=self._default_currency,
            strict_currency=self._strict_currency,
        )

    def driver_performance(
        self, driver_id: UUID, today: date | None = None,
    ) -> PerformanceMetrics:
        return performance_metrics(
            self._reports.list_by_driver(driver_id),
            today=today or self._clock.today(),
        )

    def owner_statistics(
        self, owner_id: UUID, window: ReportWindow | None = None,
    ) -> CarStatistics:
        """Rollup over every report of every car the owner holds."""
        car_ids = [c.id for c in self._cars.list_for_owner(owner_id)]
        start, end = (window.start, window.end) if window is not None else (None, None)
        return aggregate(
            self._reports.list_in_window(car_ids, start, end),
            window=window,
            default_currency=self._default_currency,
            strict_currency=self._strict_currency,
        )

    def owner_performance(
        self, owner_id: UUID, today: date | None = None,
    ) -> OwnerPerformanceMetrics:
        car_ids = [c.id for c in self._cars.list_for_owner(owner_id)]
        return owner_performance_metrics(
            self._reports.list_in_window(car_ids),
            car_ids=car_ids,
            today=today or self._clock.today(),
        )
