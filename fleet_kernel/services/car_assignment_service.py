"""
CarAssignmentService -- car registration and driver assignment.

Responsibility:
    Registers cars (the minimal row the mileage resolver needs) and
    records which driver currently holds each car.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, selectors/.

Invariants enforced:
    - At most one active assignment per car (partial unique index on
      unassigned_at IS NULL).  The previous assignment is closed before
      the new one is inserted.
    - Assigning the driver who already holds the car is a no-op.
    - A registered car starts with current_mileage == initial_mileage.

Failure modes:
    - CarNotFoundError if the car does not exist.
    - CarValidationError on a negative initial mileage or empty identity
      fields.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import AssignmentInfo, CarInfo, CarStatus
from fleet_kernel.domain.validation import validate_initial_mileage
from fleet_kernel.exceptions import CarNotFoundError, CarValidationError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.car import Car, CarAssignment
from fleet_kernel.selectors.car_selector import CarSelector
from fleet_kernel.services.base import BaseService

logger = get_logger("services.car_assignment_service")


class CarAssignmentService(BaseService[Car]):
    """Cars and their driver assignments."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._cars = CarSelector(session)

    def _load_car(self, car_id: UUID) -> Car:
        car = self._store.get(Car, car_id)
        if car is None:
            raise CarNotFoundError(str(car_id))
        return car

    def _active(self, car_id: UUID) -> CarAssignment | None:
        return self._store.fetch_first(
            select(CarAssignment).where(
                CarAssignment.car_id == car_id,
                CarAssignment.unassigned_at.is_(None),
            )
        )

    def register_car(
        self,
        vin: str,
        make: str,
        model: str,
        year: int,
        owner_id: UUID,
        initial_mileage: int = 0,
    ) -> CarInfo:
        mileage = validate_initial_mileage(initial_mileage)
        for name, value in (("vin", vin), ("make", make), ("model", model)):
            if not isinstance(value, str) or not value.strip():
                raise CarValidationError(name, "is required")

        now = self._clock.now()
        car = Car(
            vin=vin.strip(),
            make=make.strip(),
            model=model.strip(),
            year=year,
            owner_id=owner_id,
            initial_mileage=mileage,
            current_mileage=mileage,
            status=CarStatus.AVAILABLE.value,
            created_at=now,
            updated_at=now,
        )
        self._store.insert(car)

        with LogContext.bind(car_id=car.id, actor_id=owner_id):
            logger.info("car_registered", extra={"initial_mileage": mileage})
        return car.to_dto()

    def get_active_assignment(self, car_id: UUID) -> AssignmentInfo | None:
        self._load_car(car_id)
        return self._cars.active_assignment(car_id)

    def assignment_history(self, car_id: UUID) -> list[AssignmentInfo]:
        """Every assignment of the car, newest first."""
        self._load_car(car_id)
        return self._cars.assignment_history(car_id)

    def cars_for_owner(self, owner_id: UUID) -> list[CarInfo]:
        return self._cars.list_for_owner(owner_id)

    def cars_for_driver(self, driver_id: UUID) -> list[CarInfo]:
        """Cars the driver currently holds."""
        return self._cars.list_for_driver(driver_id)

    def assign_driver(
        self,
        car_id: UUID,
        driver_id: UUID,
        assigned_by: UUID,
        notes: str | None = None,
    ) -> AssignmentInfo:
        """
        Make ``driver_id`` the car's active driver.

        Idempotent for the driver who already holds the car.
        """
        car = self._load_car(car_id)
        active = self._active(car_id)

        if active is not None and active.driver_id == driver_id:
            logger.info(
                "car_assignment_unchanged",
                extra={"car_id": str(car_id), "driver_id": str(driver_id)},
            )
            return active.to_dto()

        now = self._clock.now()
        if active is not None:
            active.unassigned_at = now
            active.updated_at = now
            self._store.flush("close_assignment")

        assignment = CarAssignment(
            car_id=car_id,
            driver_id=driver_id,
            assigned_by=assigned_by,
            assigned_at=now,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self._store.insert(assignment)

        car.driver_id = driver_id
        car.status = CarStatus.ASSIGNED.value
        car.updated_at = now
        self._store.flush("assign_driver")

        with LogContext.bind(car_id=car_id, actor_id=assigned_by):
            logger.info(
                "car_assigned",
                extra={
                    "driver_id": str(driver_id),
                    "previous_driver_id": str(active.driver_id) if active else None,
                },
            )
        return assignment.to_dto()

    def unassign_car(self, car_id: UUID) -> AssignmentInfo | None:
        """Close the active assignment and free the car.  None if unassigned."""
        car = self._load_car(car_id)
        active = self._active(car_id)

        now = self._clock.now()
        if active is not None:
            active.unassigned_at = now
            active.updated_at = now
        car.driver_id = None
        car.status = CarStatus.AVAILABLE.value
        car.updated_at = now
        self._store.flush("unassign_car")

        with LogContext.bind(car_id=car_id):
            logger.info(
                "car_unassigned",
                extra={"driver_id": str(active.driver_id) if active else None},
            )
        return active.to_dto() if active is not None else None
