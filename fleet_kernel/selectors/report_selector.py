"""
Module: fleet_kernel.selectors.report_selector
Responsibility: Read-only queries over weekly reports and their income
    sources.
Architecture position: Kernel > Selectors.

Ordering:
    - Listings are ordered by week_start_date descending (newest week first).
    - prior_reports() is ordered by creation (created_at, then start_mileage),
      the order the mileage continuity check walks.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import IncomeSourceInfo, ReportInfo
from fleet_kernel.domain.lifecycle import ReportStatus
from fleet_kernel.models.weekly_report import IncomeSource, WeeklyReport
from fleet_kernel.selectors.base import BaseSelector


class ReportSelector(BaseSelector[WeeklyReport]):
    """Queries over weekly reports."""

    def get(self, report_id: UUID) -> ReportInfo | None:
        report = self.session.get(WeeklyReport, report_id)
        return report.to_dto() if report is not None else None

    def list_by_car(
        self,
        car_id: UUID,
        year: int | None = None,
        month: int | None = None,
    ) -> list[ReportInfo]:
        """
        Reports for a car, optionally restricted to a year or a year/month
        of week_start_date.  ``month`` without ``year`` is ignored.
        """
        stmt = select(WeeklyReport).where(WeeklyReport.car_id == car_id)
        if year is not None:
            if month is not None:
                start = date(year, month, 1)
                end = date(year, month, calendar.monthrange(year, month)[1])
            else:
                start, end = date(year, 1, 1), date(year, 12, 31)
            stmt = stmt.where(
                WeeklyReport.week_start_date >= start,
                WeeklyReport.week_start_date <= end,
            )
        stmt = stmt.order_by(WeeklyReport.week_start_date.desc(), WeeklyReport.created_at.desc())
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def list_by_driver(
        self,
        driver_id: UUID,
        statuses: Iterable[ReportStatus] | None = None,
    ) -> list[ReportInfo]:
        stmt = select(WeeklyReport).where(WeeklyReport.driver_id == driver_id)
        if statuses is not None:
            stmt = stmt.where(WeeklyReport.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(WeeklyReport.week_start_date.desc(), WeeklyReport.created_at.desc())
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def list_in_window(
        self,
        car_ids: Iterable[UUID],
        start: date | None = None,
        end: date | None = None,
    ) -> list[ReportInfo]:
        """Reports of the given cars whose week_start_date is in [start, end]."""
        ids = list(car_ids)
        if not ids:
            return []
        stmt = select(WeeklyReport).where(WeeklyReport.car_id.in_(ids))
        if start is not None:
            stmt = stmt.where(WeeklyReport.week_start_date >= start)
        if end is not None:
            stmt = stmt.where(WeeklyReport.week_start_date <= end)
        stmt = stmt.order_by(WeeklyReport.week_start_date.desc(), WeeklyReport.created_at.desc())
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def prior_reports(
        self, car_id: UUID, exclude_id: UUID | None = None,
    ) -> list[ReportInfo]:
        """Every report of a car, any status, in creation order."""
        stmt = select(WeeklyReport).where(WeeklyReport.car_id == car_id)
        if exclude_id is not None:
            stmt = stmt.where(WeeklyReport.id != exclude_id)
        stmt = stmt.order_by(WeeklyReport.created_at, WeeklyReport.start_mileage)
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def income_sources(self, report_id: UUID) -> list[IncomeSourceInfo]:
        stmt = (
            select(IncomeSource)
            .where(IncomeSource.weekly_report_id == report_id)
            .order_by(IncomeSource.created_at)
        )
        return [s.to_dto() for s in self.session.execute(stmt).scalars()]
