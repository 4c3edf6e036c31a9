"""
Module: fleet_engines.statistics
Responsibility:
    Fold a set of weekly reports into totals and per-report averages for
    mileage, expenses and income, optionally bounded by a date window, and
    derive driver and owner performance metrics.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fleet_kernel/domain and fleet_kernel/db/types.

Invariants enforced:
    - Purity: no clock access.  "today" is always a parameter.
    - Decimal-only arithmetic; averages are rounded with round_money().
    - Profit is the income sum (ride-share + rental + taxi).  Driver
      earnings and expenses are reported alongside it, not subtracted.
    - Currency tags are never converted.  The result carries the first
      report's tag; ``mixed_currency`` records whether others occurred.

Failure modes:
    - CurrencyMismatchError when strict_currency=True and the filtered set
      carries more than one currency tag.
    - ValueError from ReportWindow factories on invalid arguments.

Usage:
    from fleet_engines.statistics import ReportWindow, aggregate

    window = ReportWindow.trailing_months(today=date(2024, 6, 15), months=3)
    stats = aggregate(reports, window=window, default_currency="XAF")
    stats.total_profit, stats.average_weekly_mileage
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from fleet_engines.tracer import traced_engine
from fleet_kernel.db.types import ZERO, round_money
from fleet_kernel.domain.dtos import ReportInfo
from fleet_kernel.domain.lifecycle import ReportStatus
from fleet_kernel.exceptions import CurrencyMismatchError
from fleet_kernel.logging_config import get_logger

logger = get_logger("engines.statistics")

RECENT_ACTIVITY_DAYS = 30

_SUBMITTED_STATUSES = frozenset({ReportStatus.SUBMITTED, ReportStatus.APPROVED})


# =============================================================================
# Aggregation window
# =============================================================================


@dataclass(frozen=True)
class ReportWindow:
    """
    Inclusive date range over report week_start_date.

    Guarantees:
        - ``start`` / ``end`` of None mean unbounded on that side.
        - end >= start when both are given.
    """

    start: date | None
    end: date | None
    label: str = "custom"

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError(f"window end {self.end} is before start {self.start}")

    def contains(self, day: date) -> bool:
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None

    @classmethod
    def all_time(cls) -> ReportWindow:
        return cls(None, None, "all_time")

    @classmethod
    def year_to_date(cls, today: date) -> ReportWindow:
        return cls(date(today.year, 1, 1), today, "year_to_date")

    @classmethod
    def trailing_months(cls, today: date, months: int) -> ReportWindow:
        """Window from the same day ``months`` calendar months ago up to today."""
        if months < 1:
            raise ValueError("months must be >= 1")
        month_index = today.year * 12 + (today.month - 1) - months
        year, month = divmod(month_index, 12)
        month += 1
        day = min(today.day, calendar.monthrange(year, month)[1])
        return cls(date(year, month, day), today, f"trailing_{months}_months")

    @classmethod
    def for_year(cls, year: int) -> ReportWindow:
        return cls(date(year, 1, 1), date(year, 12, 31), f"year_{year}")

    @classmethod
    def for_month(cls, year: int, month: int) -> ReportWindow:
        if not 1 <= month <= 12:
            raise ValueError(f"month must be 1..12, got {month}")
        last_day = calendar.monthrange(year, month)[1]
        return cls(date(year, month, 1), date(year, month, last_day), f"month_{year}_{month:02d}")


# =============================================================================
# Aggregate statistics
# =============================================================================


@dataclass(frozen=True)
class CarStatistics:
    """
    Totals and per-report averages over a filtered report set.

    Averages divide by total_reports (one report per week by convention).
    """

    total_reports: int
    currency: str
    mixed_currency: bool
    total_mileage: int
    average_weekly_mileage: Decimal
    total_expenses: Decimal
    average_weekly_expenses: Decimal
    total_gas_expenses: Decimal
    average_weekly_gas_expenses: Decimal
    total_ride_share_income: Decimal
    average_weekly_ride_share_income: Decimal
    total_rental_income: Decimal
    average_weekly_rental_income: Decimal
    total_taxi_income: Decimal
    average_weekly_taxi_income: Decimal
    total_driver_earnings: Decimal
    average_weekly_driver_earnings: Decimal
    total_profit: Decimal
    average_weekly_profit: Decimal
    window: ReportWindow | None = None

    @property
    def average_weekly_income(self) -> Decimal:
        return (
            self.average_weekly_ride_share_income
            + self.average_weekly_rental_income
            + self.average_weekly_taxi_income
        )


def _average(total: Decimal, count: int) -> Decimal:
    if count == 0:
        return round_money(ZERO)
    return round_money(total / Decimal(count))


def _sum(reports: Sequence[ReportInfo], field: str) -> Decimal:
    return sum((getattr(r, field) for r in reports), ZERO)


def filter_reports(
    reports: Sequence[ReportInfo], window: ReportWindow | None,
) -> list[ReportInfo]:
    """Keep reports whose week_start_date falls in the window (all if None)."""
    if window is None:
        return list(reports)
    return [r for r in reports if window.contains(r.week_start_date)]


@traced_engine(
    "statistics",
    "1.0",
    fingerprint_fields=("default_currency", "strict_currency"),
)
def aggregate(
    reports: Sequence[ReportInfo],
    window: ReportWindow | None = None,
    default_currency: str = "XAF",
    strict_currency: bool = False,
) -> CarStatistics:
    """
    Fold reports into CarStatistics.

    Example:
        one report with maintenance 50, gas 20, ride-share 300, earnings 100
        -> total_expenses 50, total_gas_expenses 20, total_profit 300,
           average_weekly_profit 300

    Raises:
        CurrencyMismatchError: strict_currency and more than one tag present.
    """
    selected = filter_reports(reports, window)
    count = len(selected)

    currencies: list[str] = []
    for report in selected:
        if report.currency not in currencies:
            currencies.append(report.currency)
    mixed = len(currencies) > 1
    if mixed:
        if strict_currency:
            raise CurrencyMismatchError(currencies)
        logger.warning(
            "statistics_mixed_currency",
            extra={"currencies": currencies, "report_count": count},
        )
    currency = currencies[0] if currencies else default_currency

    total_mileage = sum(r.mileage for r in selected)
    maintenance = _sum(selected, "maintenance_expenses")
    gas = _sum(selected, "gas_expense")
    ride_share = _sum(selected, "ride_share_income")
    rental = _sum(selected, "rental_income")
    taxi = _sum(selected, "taxi_income")
    earnings = _sum(selected, "driver_earnings")
    profit = ride_share + rental + taxi

    return CarStatistics(
        total_reports=count,
        currency=currency,
        mixed_currency=mixed,
        total_mileage=total_mileage,
        average_weekly_mileage=_average(Decimal(total_mileage), count),
        total_expenses=maintenance,
        average_weekly_expenses=_average(maintenance, count),
        total_gas_expenses=gas,
        average_weekly_gas_expenses=_average(gas, count),
        total_ride_share_income=ride_share,
        average_weekly_ride_share_income=_average(ride_share, count),
        total_rental_income=rental,
        average_weekly_rental_income=_average(rental, count),
        total_taxi_income=taxi,
        average_weekly_taxi_income=_average(taxi, count),
        total_driver_earnings=earnings,
        average_weekly_driver_earnings=_average(earnings, count),
        total_profit=profit,
        average_weekly_profit=_average(profit, count),
        window=window,
    )


# =============================================================================
# Driver performance
# =============================================================================


@dataclass(frozen=True)
class PerformanceMetrics:
    """Per-driver activity figures over every report the driver filed."""

    total_reports: int
    average_weekly_earnings: Decimal
    average_weekly_mileage: Decimal
    earnings_per_km: Decimal
    last_30_days_earnings: Decimal
    last_30_days_mileage: int
    submission_rate: Decimal


@traced_engine("performance_metrics", "1.0", fingerprint_fields=("today",))
def performance_metrics(
    reports: Sequence[ReportInfo],
    today: date,
) -> PerformanceMetrics:
    """
    Driver performance over a report set.

    - Earnings are driver_earnings; mileage is end - start.
    - Last-30-days covers reports whose week_start_date >= today - 30 days.
    - submission_rate is the percentage of reports that are submitted or
      approved.
    """
    count = len(reports)
    if count == 0:
        zero = round_money(ZERO)
        return PerformanceMetrics(
            total_reports=0,
            average_weekly_earnings=zero,
            average_weekly_mileage=zero,
            earnings_per_km=zero,
            last_30_days_earnings=ZERO,
            last_30_days_mileage=0,
            submission_rate=zero,
        )

    earnings = _sum(reports, "driver_earnings")
    mileage = sum(r.mileage for r in reports)

    cutoff = today - timedelta(days=RECENT_ACTIVITY_DAYS)
    recent = [r for r in reports if r.week_start_date >= cutoff]

    submitted = sum(1 for r in reports if r.status in _SUBMITTED_STATUSES)

    return PerformanceMetrics(
        total_reports=count,
        average_weekly_earnings=_average(earnings, count),
        average_weekly_mileage=_average(Decimal(mileage), count),
        earnings_per_km=(
            round_money(earnings / Decimal(mileage)) if mileage > 0 else round_money(ZERO)
        ),
        last_30_days_earnings=_sum(recent, "driver_earnings"),
        last_30_days_mileage=sum(r.mileage for r in recent),
        submission_rate=round_money(Decimal(submitted) * 100 / Decimal(count)),
    )


# =============================================================================
# Owner performance
# =============================================================================


@dataclass(frozen=True)
class OwnerPerformanceMetrics:
    """Fleet-wide activity figures over every report of an owner's cars."""

    total_cars: int
    total_reports: int
    average_weekly_revenue: Decimal
    average_weekly_mileage: Decimal
    revenue_per_km: Decimal
    last_30_days_revenue: Decimal
    last_30_days_mileage: int
    submission_rate: Decimal
    car_utilization: Decimal
    active_drivers: int


def _revenue(reports: Sequence[ReportInfo]) -> Decimal:
    return (
        _sum(reports, "ride_share_income")
        + _sum(reports, "rental_income")
        + _sum(reports, "taxi_income")
    )


@traced_engine("owner_performance_metrics", "1.0", fingerprint_fields=("today",))
def owner_performance_metrics(
    reports: Sequence[ReportInfo],
    car_ids: Sequence[UUID],
    today: date,
) -> OwnerPerformanceMetrics:
    """
    Owner performance over the reports of ``car_ids``.

    - Revenue is the income sum (ride-share + rental + taxi), the same
      figure aggregate() reports as profit.
    - Last-30-days covers reports whose week_start_date >= today - 30 days.
    - car_utilization is the percentage of the owner's cars with a recent
      report; active_drivers counts distinct drivers of recent reports.
    - Reports of cars outside ``car_ids`` are ignored.
    """
    fleet = set(car_ids)
    zero = round_money(ZERO)
    if not fleet:
        return OwnerPerformanceMetrics(
            total_cars=0,
            total_reports=0,
            average_weekly_revenue=zero,
            average_weekly_mileage=zero,
            revenue_per_km=zero,
            last_30_days_revenue=ZERO,
            last_30_days_mileage=0,
            submission_rate=zero,
            car_utilization=zero,
            active_drivers=0,
        )

    owned = [r for r in reports if r.car_id in fleet]
    count = len(owned)
    revenue = _revenue(owned)
    mileage = sum(r.mileage for r in owned)

    cutoff = today - timedelta(days=RECENT_ACTIVITY_DAYS)
    recent = [r for r in owned if r.week_start_date >= cutoff]
    submitted = sum(1 for r in owned if r.status in _SUBMITTED_STATUSES)

    return OwnerPerformanceMetrics(
        total_cars=len(fleet),
        total_reports=count,
        average_weekly_revenue=_average(revenue, count),
        average_weekly_mileage=_average(Decimal(mileage), count),
        revenue_per_km=round_money(revenue / Decimal(mileage)) if mileage > 0 else zero,
        last_30_days_revenue=_revenue(recent),
        last_30_days_mileage=sum(r.mileage for r in recent),
        submission_rate=(
            round_money(Decimal(submitted) * 100 / Decimal(count)) if count else zero
        ),
        car_utilization=round_money(
            Decimal(len({r.car_id for r in recent})) * 100 / Decimal(len(fleet))
        ),
        active_drivers=len({r.driver_id for r in recent}),
    )
