"""
Module: fleet_kernel.selectors.car_selector
Responsibility: Read-only queries over cars and their assignment history.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import AssignmentInfo, CarInfo
from fleet_kernel.models.car import Car, CarAssignment
from fleet_kernel.selectors.base import BaseSelector


class CarSelector(BaseSelector[Car]):
    """Queries over cars."""

    def get(self, car_id: UUID) -> CarInfo | None:
        car = self.session.get(Car, car_id)
        return car.to_dto() if car is not None else None

    def list_for_owner(self, owner_id: UUID) -> list[CarInfo]:
        stmt = select(Car).where(Car.owner_id == owner_id).order_by(Car.created_at)
        return [c.to_dto() for c in self.session.execute(stmt).scalars()]

    def list_for_driver(self, driver_id: UUID) -> list[CarInfo]:
        """Cars the driver currently holds."""
        stmt = select(Car).where(Car.driver_id == driver_id).order_by(Car.created_at)
        return [c.to_dto() for c in self.session.execute(stmt).scalars()]

    def active_assignment(self, car_id: UUID) -> AssignmentInfo | None:
        stmt = select(CarAssignment).where(
            CarAssignment.car_id == car_id,
            CarAssignment.unassigned_at.is_(None),
        )
        assignment = self.session.execute(stmt).scalars().first()
        return assignment.to_dto() if assignment is not None else None

    def assignment_history(self, car_id: UUID) -> list[AssignmentInfo]:
        stmt = (
            select(CarAssignment)
            .where(CarAssignment.car_id == car_id)
            .order_by(CarAssignment.assigned_at.desc())
        )
        return [a.to_dto() for a in self.session.execute(stmt).scalars()]
