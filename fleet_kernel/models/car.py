"""
Module: fleet_kernel.models.car
Responsibility: ORM persistence for cars and the history of driver
    assignments to them.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - initial_mileage is write-once (ORM listener in db/immutability.py).
    - current_mileage is a cache of the report ledger; it only moves up
      (services raise it with max()).
    - At most one CarAssignment per car has unassigned_at IS NULL
      (partial unique index).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.dtos import AssignmentInfo, CarInfo, CarStatus


class Car(TrackedBase):
    """A leased vehicle; aggregate root for its reports and requests."""

    __tablename__ = "cars"

    __table_args__ = (
        CheckConstraint("initial_mileage >= 0", name="ck_cars_initial_mileage"),
        CheckConstraint(
            "current_mileage >= initial_mileage", name="ck_cars_current_mileage",
        ),
        CheckConstraint(
            "status IN ('available', 'assigned', 'maintenance', 'retired')",
            name="ck_cars_valid_status",
        ),
        Index("ix_cars_owner", "owner_id"),
        Index("ix_cars_driver", "driver_id"),
    )

    vin: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    make: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    initial_mileage: Mapped[int] = mapped_column(nullable=False, default=0)
    current_mileage: Mapped[int] = mapped_column(nullable=False, default=0)
    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    driver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CarStatus.AVAILABLE.value,
    )

    def __repr__(self) -> str:
        return f"<Car {self.id} {self.make} {self.model} status={self.status}>"

    def to_dto(self) -> CarInfo:
        """Convert ORM model to frozen domain DTO."""
        return CarInfo(
            id=self.id,
            vin=self.vin,
            make=self.make,
            model=self.model,
            year=self.year,
            initial_mileage=self.initial_mileage,
            current_mileage=self.current_mileage,
            owner_id=self.owner_id,
            driver_id=self.driver_id,
            status=CarStatus(self.status),
        )


class CarAssignment(TrackedBase):
    """One period during which a driver held a car."""

    __tablename__ = "car_assignments"

    __table_args__ = (
        Index(
            "ix_car_assignments_active_unique",
            "car_id",
            unique=True,
            postgresql_where=text("unassigned_at IS NULL"),
            sqlite_where=text("unassigned_at IS NULL"),
        ),
        Index("ix_car_assignments_driver", "driver_id"),
    )

    car_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cars.id", ondelete="CASCADE"), nullable=False,
    )
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assigned_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(nullable=False)
    unassigned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<CarAssignment car={self.car_id} driver={self.driver_id} "
            f"active={self.unassigned_at is None}>"
        )

    def to_dto(self) -> AssignmentInfo:
        return AssignmentInfo(
            id=self.id,
            car_id=self.car_id,
            driver_id=self.driver_id,
            assigned_by=self.assigned_by,
            assigned_at=self.assigned_at,
            unassigned_at=self.unassigned_at,
            notes=self.notes,
        )
