"""
MileageService -- loads a car's history and runs the continuity resolver.

Responsibility:
    Bridges the pure ``fleet_engines.mileage`` functions and the database:
    loads the car and every report recorded against it, and maintains the
    car's cached ``current_mileage``.

Architecture position:
    Kernel > Services.  Imports the pure engine; never writes reports.

Invariants enforced:
    - A missing car is an error (CarNotFoundError), never a zero-based
      fallback.
    - ``current_mileage`` only moves up.

Failure modes:
    - CarNotFoundError if the car does not exist.
    - MileageContinuityError from check_continuity(strict=True).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from fleet_engines.mileage import (
    MileageBounds,
    check_continuity,
    derived_current_mileage,
    resolve_bounds,
)
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.lifecycle import ReportStatus
from fleet_kernel.exceptions import CarNotFoundError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.car import Car
from fleet_kernel.selectors.report_selector import ReportSelector
from fleet_kernel.services.base import BaseService

logger = get_logger("services.mileage")


class MileageService(BaseService[Car]):
    """Mileage continuity for one car at a time."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        placeholder_increment: int = 1,
    ):
        super().__init__(session, clock)
        self._reports = ReportSelector(session)
        self._placeholder_increment = placeholder_increment

    def _load_car(self, car_id: UUID) -> Car:
        car = self._store.get(Car, car_id)
        if car is None:
            raise CarNotFoundError(str(car_id))
        return car

    def resolve_bounds(self, car_id: UUID) -> MileageBounds:
        """Start and placeholder end for the car's next weekly report."""
        car = self._load_car(car_id)
        prior = self._reports.prior_reports(car_id)
        bounds = resolve_bounds(
            car=car.to_dto(),
            prior_reports=prior,
            placeholder_increment=self._placeholder_increment,
        )
        logger.debug(
            "mileage_bounds_resolved",
            extra={
                "car_id": str(car_id),
                "prior_report_count": len(prior),
                "start_mileage": bounds.start_mileage,
            },
        )
        return bounds

    def check_continuity(self, car_id: UUID, strict: bool = False) -> UUID | None:
        """First report of the car that breaks the chain, or None."""
        car = self._load_car(car_id)
        return check_continuity(
            initial_mileage=car.initial_mileage,
            reports=self._reports.prior_reports(car_id),
            strict=strict,
        )

    def refresh_current_mileage(self, car_id: UUID) -> int:
        """
        Recompute the cached odometer from approved reports.

        The cache is raised to the derived value, never lowered.
        """
        car = self._load_car(car_id)
        approved = [
            r for r in self._reports.prior_reports(car_id)
            if r.status == ReportStatus.APPROVED
        ]
        derived = derived_current_mileage(car.to_dto(), approved)
        previous = car.current_mileage
        if self._store.raise_if_lower(
            Car, car_id, "current_mileage", derived,
            {"updated_at": self._clock.now()},
        ):
            logger.info(
                "car_mileage_refreshed",
                extra={
                    "car_id": str(car_id),
                    "previous_mileage": previous,
                    "current_mileage": derived,
                },
            )
        return car.current_mileage
