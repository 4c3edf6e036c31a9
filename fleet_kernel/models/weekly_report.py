"""
Module: fleet_kernel.models.weekly_report
Responsibility: ORM persistence for weekly reports and their itemised
    income sources.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Check constraints mirror the field rules: end_mileage >= start_mileage,
      week_end_date >= week_start_date, every amount >= 0, status in the
      lifecycle set.
    - Status transitions are only ever applied through
      LedgerStore.conditional_update (compare-and-swap on status).
    - Approved reports are frozen (ORM listener in db/immutability.py).

Failure modes:
    - IntegrityError if a check constraint is violated by a write that
      bypassed service validation.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.dtos import IncomeSourceInfo, IncomeSourceType, ReportInfo
from fleet_kernel.domain.lifecycle import ReportStatus


class WeeklyReport(TrackedBase):
    """A driver's mileage and money figures for one car-week."""

    __tablename__ = "weekly_reports"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved', 'rejected')",
            name="ck_weekly_reports_valid_status",
        ),
        CheckConstraint(
            "end_mileage >= start_mileage", name="ck_weekly_reports_mileage_range",
        ),
        CheckConstraint(
            "week_end_date >= week_start_date", name="ck_weekly_reports_week_range",
        ),
        CheckConstraint(
            "driver_earnings >= 0 AND maintenance_expenses >= 0 "
            "AND gas_expense >= 0 AND ride_share_income >= 0 "
            "AND rental_income >= 0 AND taxi_income >= 0",
            name="ck_weekly_reports_non_negative_amounts",
        ),
        Index("ix_weekly_reports_car_created", "car_id", "created_at"),
        Index("ix_weekly_reports_driver_week", "driver_id", "week_start_date"),
        Index("ix_weekly_reports_car_week", "car_id", "week_start_date"),
    )

    car_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cars.id"), nullable=False,
    )
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    week_start_date: Mapped[date] = mapped_column(nullable=False)
    week_end_date: Mapped[date] = mapped_column(nullable=False)
    start_mileage: Mapped[int] = mapped_column(nullable=False)
    end_mileage: Mapped[int] = mapped_column(nullable=False)

    driver_earnings: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    maintenance_expenses: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    gas_expense: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    ride_share_income: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    rental_income: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    taxi_income: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False, default=Decimal("0"),
    )
    currency: Mapped[str] = mapped_column(String(8), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReportStatus.DRAFT.value,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    income_sources: Mapped[list["IncomeSource"]] = relationship(
        "IncomeSource",
        back_populates="report",
        order_by="IncomeSource.created_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WeeklyReport {self.id} car={self.car_id} "
            f"{self.week_start_date} status={self.status}>"
        )

    def to_dto(self) -> ReportInfo:
        """Convert ORM model to frozen domain DTO."""
        return ReportInfo(
            id=self.id,
            car_id=self.car_id,
            driver_id=self.driver_id,
            week_start_date=self.week_start_date,
            week_end_date=self.week_end_date,
            start_mileage=self.start_mileage,
            end_mileage=self.end_mileage,
            driver_earnings=self.driver_earnings,
            maintenance_expenses=self.maintenance_expenses,
            gas_expense=self.gas_expense,
            ride_share_income=self.ride_share_income,
            rental_income=self.rental_income,
            taxi_income=self.taxi_income,
            currency=self.currency,
            status=ReportStatus(self.status),
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            created_at=self.created_at,
            income_sources=tuple(s.to_dto() for s in self.income_sources),
        )


class IncomeSource(TrackedBase):
    """Itemised income line on a weekly report."""

    __tablename__ = "income_sources"

    __table_args__ = (
        CheckConstraint(
            "source_type IN ('rentals', 'ride_share')",
            name="ck_income_sources_valid_type",
        ),
        CheckConstraint("amount >= 0", name="ck_income_sources_non_negative"),
        Index("ix_income_sources_report", "weekly_report_id"),
    )

    weekly_report_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("weekly_reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    report: Mapped[WeeklyReport] = relationship(
        "WeeklyReport", back_populates="income_sources",
    )

    def __repr__(self) -> str:
        return f"<IncomeSource {self.source_type} {self.amount}>"

    def to_dto(self) -> IncomeSourceInfo:
        return IncomeSourceInfo(
            id=self.id,
            weekly_report_id=self.weekly_report_id,
            source_type=IncomeSourceType(self.source_type),
            amount=self.amount,
            notes=self.notes,
            created_at=self.created_at,
        )
