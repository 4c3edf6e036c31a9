"""
Module: fleet_kernel.models.assignment_request
Responsibility: ORM persistence for driver requests to be assigned a car.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Single pending request per (car_id, driver_id): partial unique index
      ``ix_car_assignment_requests_pending_unique`` (status = 'pending').
      The service treats a violation as "switch to the update path".
    - Terminal statuses (approved, rejected, withdrawn, expired) are frozen
      (ORM listener in db/immutability.py).

Failure modes:
    - IntegrityError on a second pending insert for the same pair.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.dtos import AssignmentRequestInfo
from fleet_kernel.domain.lifecycle import RequestStatus


class CarAssignmentRequest(TrackedBase):
    """A driver's request to be assigned a specific car."""

    __tablename__ = "car_assignment_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'withdrawn', 'expired')",
            name="ck_car_assignment_requests_valid_status",
        ),
        CheckConstraint(
            "available_end_date IS NULL OR available_start_date IS NULL "
            "OR available_end_date >= available_start_date",
            name="ck_car_assignment_requests_window",
        ),
        Index(
            "ix_car_assignment_requests_pending_unique",
            "car_id", "driver_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("ix_car_assignment_requests_owner", "owner_id", "created_at"),
        Index("ix_car_assignment_requests_expiry", "status", "available_end_date"),
    )

    car_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cars.id"), nullable=False,
    )
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    available_start_date: Mapped[date | None] = mapped_column(nullable=True)
    available_end_date: Mapped[date | None] = mapped_column(nullable=True)
    max_hours_per_week: Mapped[int | None] = mapped_column(nullable=True)
    driver_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RequestStatus.PENDING.value,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CarAssignmentRequest {self.id} car={self.car_id} "
            f"driver={self.driver_id} status={self.status}>"
        )

    def to_dto(self) -> AssignmentRequestInfo:
        """Convert ORM model to frozen domain DTO."""
        return AssignmentRequestInfo(
            id=self.id,
            car_id=self.car_id,
            driver_id=self.driver_id,
            owner_id=self.owner_id,
            available_start_date=self.available_start_date,
            available_end_date=self.available_end_date,
            max_hours_per_week=self.max_hours_per_week,
            driver_notes=self.driver_notes,
            status=RequestStatus(self.status),
            reviewed_at=self.reviewed_at,
            reviewed_by=self.reviewed_by,
            rejection_reason=self.rejection_reason,
            created_at=self.created_at,
        )
