"""
Module: fleet_kernel.selectors.request_selector
Responsibility: Read-only queries over car assignment requests.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import AssignmentRequestInfo
from fleet_kernel.domain.lifecycle import RequestStatus
from fleet_kernel.models.assignment_request import CarAssignmentRequest
from fleet_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector[CarAssignmentRequest]):
    """Queries over car assignment requests, newest first."""

    def get(self, request_id: UUID) -> AssignmentRequestInfo | None:
        request = self.session.get(CarAssignmentRequest, request_id)
        return request.to_dto() if request is not None else None

    def pending_for(self, car_id: UUID, driver_id: UUID) -> AssignmentRequestInfo | None:
        """The single pending request for a (car, driver) pair, if any."""
        stmt = select(CarAssignmentRequest).where(
            CarAssignmentRequest.car_id == car_id,
            CarAssignmentRequest.driver_id == driver_id,
            CarAssignmentRequest.status == RequestStatus.PENDING.value,
        )
        request = self.session.execute(stmt).scalars().first()
        return request.to_dto() if request is not None else None

    def list_for_owner(
        self, owner_id: UUID, status: RequestStatus | None = None,
    ) -> list[AssignmentRequestInfo]:
        stmt = select(CarAssignmentRequest).where(CarAssignmentRequest.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(CarAssignmentRequest.status == status.value)
        stmt = stmt.order_by(CarAssignmentRequest.created_at.desc())
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def list_for_driver(self, driver_id: UUID) -> list[AssignmentRequestInfo]:
        stmt = (
            select(CarAssignmentRequest)
            .where(CarAssignmentRequest.driver_id == driver_id)
            .order_by(CarAssignmentRequest.created_at.desc())
        )
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def list_for_car(self, car_id: UUID) -> list[AssignmentRequestInfo]:
        stmt = (
            select(CarAssignmentRequest)
            .where(CarAssignmentRequest.car_id == car_id)
            .order_by(CarAssignmentRequest.created_at.desc())
        )
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def stale_pending_ids(self, as_of: date) -> list[UUID]:
        """Pending requests whose availability ended before ``as_of``."""
        stmt = (
            select(CarAssignmentRequest.id)
            .where(
                CarAssignmentRequest.status == RequestStatus.PENDING.value,
                CarAssignmentRequest.available_end_date.is_not(None),
                CarAssignmentRequest.available_end_date < as_of,
            )
            .order_by(CarAssignmentRequest.created_at)
        )
        return list(self.session.execute(stmt).scalars())
