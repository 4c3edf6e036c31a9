"""
Domain DTOs (``fleet_kernel.domain.dtos``).

Frozen value objects passed between services, selectors, and engines.
ORM models convert to these via ``to_dto()`` so that no layer above the
kernel ever holds a live ORM instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from fleet_kernel.domain.lifecycle import ReportStatus, RequestStatus


class CarStatus(str, Enum):
    """Operational status of a car."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class IncomeSourceType(str, Enum):
    """Itemised income categories on a weekly report."""

    RENTALS = "rentals"
    RIDE_SHARE = "ride_share"


# Monetary columns on a weekly report, in display order.
REPORT_MONEY_FIELDS: tuple[str, ...] = (
    "driver_earnings",
    "maintenance_expenses",
    "gas_expense",
    "ride_share_income",
    "rental_income",
    "taxi_income",
)

REPORT_INCOME_FIELDS: tuple[str, ...] = (
    "ride_share_income",
    "rental_income",
    "taxi_income",
)

# Fields a driver may change while a report is a draft.
REPORT_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "week_start_date",
    "week_end_date",
    "start_mileage",
    "end_mileage",
    "currency",
    *REPORT_MONEY_FIELDS,
})

REQUEST_EDITABLE_FIELDS: frozenset[str] = frozenset({
    "available_start_date",
    "available_end_date",
    "max_hours_per_week",
    "driver_notes",
})


@dataclass(frozen=True)
class CarInfo:
    """Read-only view of a car."""

    id: UUID
    vin: str
    make: str
    model: str
    year: int
    initial_mileage: int
    current_mileage: int
    owner_id: UUID
    driver_id: UUID | None
    status: CarStatus


@dataclass(frozen=True)
class IncomeSourceInfo:
    """Read-only view of an itemised income line."""

    id: UUID
    weekly_report_id: UUID
    source_type: IncomeSourceType
    amount: Decimal
    notes: str | None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ReportInfo:
    """Read-only view of a weekly report."""

    id: UUID
    car_id: UUID
    driver_id: UUID
    week_start_date: date
    week_end_date: date
    start_mileage: int
    end_mileage: int
    driver_earnings: Decimal
    maintenance_expenses: Decimal
    gas_expense: Decimal
    ride_share_income: Decimal
    rental_income: Decimal
    taxi_income: Decimal
    currency: str
    status: ReportStatus
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    income_sources: tuple[IncomeSourceInfo, ...] = field(default_factory=tuple)

    @property
    def mileage(self) -> int:
        """Distance covered during the report week."""
        return self.end_mileage - self.start_mileage

    @property
    def total_income(self) -> Decimal:
        """Ride-share + rental + taxi income."""
        return self.ride_share_income + self.rental_income + self.taxi_income


@dataclass(frozen=True)
class ReportDraft:
    """
    Driver input for a new weekly report.

    ``start_mileage`` and ``end_mileage`` may be omitted; the report service
    fills them from the mileage continuity resolver.
    """

    car_id: UUID
    week_start_date: date
    week_end_date: date
    start_mileage: int | None = None
    end_mileage: int | None = None
    driver_earnings: Decimal = Decimal("0")
    maintenance_expenses: Decimal = Decimal("0")
    gas_expense: Decimal = Decimal("0")
    ride_share_income: Decimal = Decimal("0")
    rental_income: Decimal = Decimal("0")
    taxi_income: Decimal = Decimal("0")
    currency: str | None = None


@dataclass(frozen=True)
class AssignmentInfo:
    """Read-only view of a driver-to-car assignment period."""

    id: UUID
    car_id: UUID
    driver_id: UUID
    assigned_by: UUID
    assigned_at: datetime
    unassigned_at: datetime | None
    notes: str | None = None

    @property
    def is_active(self) -> bool:
        return self.unassigned_at is None


@dataclass(frozen=True)
class AssignmentRequestInfo:
    """Read-only view of a car assignment request."""

    id: UUID
    car_id: UUID
    driver_id: UUID
    owner_id: UUID
    available_start_date: date | None
    available_end_date: date | None
    max_hours_per_week: int | None
    driver_notes: str | None
    status: RequestStatus
    reviewed_at: datetime | None = None
    reviewed_by: UUID | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
