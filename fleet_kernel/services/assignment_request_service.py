"""
AssignmentRequestService -- car assignment request lifecycle management.

Responsibility:
    Records a driver's request to be assigned a car, and drives the
    lifecycle pending -> approved | rejected | withdrawn | expired.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, selectors/.

Invariants enforced:
    - At most one pending request per (car, driver).  create_or_update()
      updates the pending request in place or inserts a new one; the
      insert runs in a SAVEPOINT and a violation of the partial unique
      index switches to the update path, for a bounded number of attempts.
    - Only the car owner recorded on the request may approve or reject it;
      only the requesting driver may withdraw it.
    - Every status change is a conditional write on status = 'pending'.
    - expire_stale_requests() is idempotent: rows that already left
      pending are skipped, not errors.

Failure modes:
    - CarNotFoundError, AssignmentRequestNotFoundError.
    - RequestValidationError on malformed availability fields.
    - UnauthorizedActorError when the actor does not match.
    - InvalidRequestTransitionError when the request is no longer pending.
    - RequestTransitionConflictError when a conditional write hits zero rows
      (or create_or_update exhausts its attempts).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import REQUEST_EDITABLE_FIELDS, AssignmentRequestInfo
from fleet_kernel.domain.lifecycle import (
    RequestAction,
    RequestStatus,
    next_request_status,
)
from fleet_kernel.domain.validation import validate_request_fields
from fleet_kernel.exceptions import (
    AssignmentRequestNotFoundError,
    CarNotFoundError,
    InvalidRequestTransitionError,
    RequestTransitionConflictError,
    RequestValidationError,
    UnauthorizedActorError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.assignment_request import CarAssignmentRequest
from fleet_kernel.models.car import Car
from fleet_kernel.selectors.request_selector import RequestSelector
from fleet_kernel.services.base import BaseService

logger = get_logger("services.assignment_request_service")

_PENDING = RequestStatus.PENDING.value


class AssignmentRequestService(BaseService[CarAssignmentRequest]):
    """Car assignment request lifecycle."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        upsert_max_attempts: int = 3,
    ):
        super().__init__(session, clock)
        if upsert_max_attempts < 1:
            raise ValueError("upsert_max_attempts must be >= 1")
        self._selector = RequestSelector(session)
        self._upsert_max_attempts = upsert_max_attempts

    def _load(self, request_id: UUID) -> CarAssignmentRequest:
        request = self._store.get(CarAssignmentRequest, request_id)
        if request is None:
            raise AssignmentRequestNotFoundError(str(request_id))
        return request

    def get(self, request_id: UUID) -> AssignmentRequestInfo:
        return self._load(request_id).to_dto()

    def list_for_owner(
        self, owner_id: UUID, status: RequestStatus | None = None,
    ) -> list[AssignmentRequestInfo]:
        """Requests on the owner's cars, newest first, optionally by status."""
        return self._selector.list_for_owner(owner_id, status)

    def list_for_driver(self, driver_id: UUID) -> list[AssignmentRequestInfo]:
        return self._selector.list_for_driver(driver_id)

    def list_for_car(self, car_id: UUID) -> list[AssignmentRequestInfo]:
        return self._selector.list_for_car(car_id)

    # ------------------------------------------------------------------
    # Create or update
    # ------------------------------------------------------------------

    def create_or_update(
        self,
        car_id: UUID,
        driver_id: UUID,
        fields: Mapping[str, Any] | None = None,
    ) -> AssignmentRequestInfo:
        """
        Upsert the single pending request for (car, driver).

        ``fields`` may carry available_start_date, available_end_date,
        max_hours_per_week and driver_notes.  owner_id comes from the car.
        """
        fields = dict(fields or {})
        for name in fields:
            if name not in REQUEST_EDITABLE_FIELDS:
                raise RequestValidationError(name, "is not an editable request field")

        car = self._store.get(Car, car_id)
        if car is None:
            raise CarNotFoundError(str(car_id))

        for attempt in range(1, self._upsert_max_attempts + 1):
            existing = self._selector.pending_for(car_id, driver_id)

            if existing is not None:
                merged = {name: getattr(existing, name) for name in REQUEST_EDITABLE_FIELDS}
                merged.update(fields)
                validate_request_fields(merged)

                applied = self._store.conditional_update(
                    CarAssignmentRequest,
                    existing.id,
                    _PENDING,
                    {**fields, "updated_at": self._clock.now()},
                )
                if applied:
                    with LogContext.bind(car_id=car_id, request_id=existing.id):
                        logger.info(
                            "assignment_request_updated",
                            extra={"driver_id": str(driver_id), "attempt": attempt},
                        )
                    return self._load(existing.id).to_dto()
                # It left pending between our read and our write; a new
                # pending request may now be inserted.
                continue

            validate_request_fields(fields)
            now = self._clock.now()
            request = CarAssignmentRequest(
                car_id=car_id,
                driver_id=driver_id,
                owner_id=car.owner_id,
                status=_PENDING,
                created_at=now,
                updated_at=now,
                **fields,
            )
            try:
                with self.session.begin_nested():
                    self._store.insert(request)
            except IntegrityError:
                logger.info(
                    "assignment_request_upsert_collision",
                    extra={
                        "car_id": str(car_id),
                        "driver_id": str(driver_id),
                        "attempt": attempt,
                    },
                )
                continue

            with LogContext.bind(car_id=car_id, request_id=request.id):
                logger.info(
                    "assignment_request_created",
                    extra={"driver_id": str(driver_id), "owner_id": str(car.owner_id)},
                )
            return request.to_dto()

        logger.warning(
            "assignment_request_upsert_exhausted",
            extra={
                "car_id": str(car_id),
                "driver_id": str(driver_id),
                "attempts": self._upsert_max_attempts,
            },
        )
        raise RequestTransitionConflictError(
            f"car={car_id},driver={driver_id}", _PENDING, _PENDING,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        request: CarAssignmentRequest,
        action: RequestAction,
        values: dict[str, Any],
    ) -> None:
        current = RequestStatus(request.status)
        target = next_request_status(current, action)
        if target is None:
            raise InvalidRequestTransitionError(str(request.id), current.value, action.value)

        applied = self._store.conditional_update(
            CarAssignmentRequest,
            request.id,
            _PENDING,
            {"status": target.value, "updated_at": self._clock.now(), **values},
        )
        if not applied:
            logger.warning(
                "request_transition_conflict",
                extra={"request_id": str(request.id), "action": action.value},
            )
            raise RequestTransitionConflictError(str(request.id), _PENDING, target.value)

    def approve(self, request_id: UUID, owner_id: UUID) -> AssignmentRequestInfo:
        request = self._load(request_id)
        if request.owner_id != owner_id:
            raise UnauthorizedActorError(str(owner_id), "approve", str(request_id))

        self._transition(
            request,
            RequestAction.APPROVE,
            {"reviewed_at": self._clock.now(), "reviewed_by": owner_id},
        )
        with LogContext.bind(actor_id=owner_id, car_id=request.car_id, request_id=request_id):
            logger.info("assignment_request_approved", extra={"driver_id": str(request.driver_id)})
        return request.to_dto()

    def reject(
        self,
        request_id: UUID,
        owner_id: UUID,
        reason: str | None = None,
    ) -> AssignmentRequestInfo:
        request = self._load(request_id)
        if request.owner_id != owner_id:
            raise UnauthorizedActorError(str(owner_id), "reject", str(request_id))

        self._transition(
            request,
            RequestAction.REJECT,
            {
                "reviewed_at": self._clock.now(),
                "reviewed_by": owner_id,
                "rejection_reason": reason,
            },
        )
        with LogContext.bind(actor_id=owner_id, car_id=request.car_id, request_id=request_id):
            logger.info("assignment_request_rejected", extra={"reason": reason})
        return request.to_dto()

    def withdraw(self, request_id: UUID, driver_id: UUID) -> AssignmentRequestInfo:
        request = self._load(request_id)
        if request.driver_id != driver_id:
            raise UnauthorizedActorError(str(driver_id), "withdraw", str(request_id))

        self._transition(request, RequestAction.WITHDRAW, {})
        with LogContext.bind(actor_id=driver_id, car_id=request.car_id, request_id=request_id):
            logger.info("assignment_request_withdrawn")
        return request.to_dto()

    def expire_stale_requests(self, as_of: datetime | date | None = None) -> list[UUID]:
        """
        Move pending requests whose available_end_date is before ``as_of``
        (a date, or the date of a datetime; default the clock's today) to
        expired.

        Returns:
            Ids actually expired by this call.  Rows that left pending
            concurrently are skipped.
        """
        if as_of is None:
            cutoff = self._clock.today()
        elif isinstance(as_of, datetime):
            cutoff = as_of.date()
        else:
            cutoff = as_of

        target = next_request_status(RequestStatus.PENDING, RequestAction.EXPIRE)
        expired: list[UUID] = []
        skipped = 0
        for request_id in self._selector.stale_pending_ids(cutoff):
            applied = self._store.conditional_update(
                CarAssignmentRequest,
                request_id,
                _PENDING,
                {"status": target.value, "updated_at": self._clock.now()},
            )
            if applied:
                expired.append(request_id)
            else:
                skipped += 1

        logger.info(
            "assignment_requests_expired",
            extra={"as_of": cutoff, "expired_count": len(expired), "skipped_count": skipped},
        )
        return expired
