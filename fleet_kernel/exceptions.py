"""
Typed Exception Hierarchy for the Fleet Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from FleetKernelError:

    FleetKernelError (base)
    |
    +-- ValidationError
    |   +-- ReportValidationError
    |   +-- RequestValidationError
    |   +-- CarValidationError
    |
    +-- NotFoundError
    |   +-- CarNotFoundError
    |   +-- ReportNotFoundError
    |   +-- IncomeSourceNotFoundError
    |   +-- AssignmentRequestNotFoundError
    |
    +-- InvalidStateError
    |   +-- InvalidReportTransitionError
    |   +-- ReportNotEditableError
    |   +-- InvalidRequestTransitionError
    |   +-- RequestNotEditableError
    |
    +-- ConflictError
    |   +-- ReportTransitionConflictError
    |   +-- RequestTransitionConflictError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedActorError
    |
    +-- CurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- MileageContinuityError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- StoreError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------
Validation      | REPORT_VALIDATION_FAILED      | Negative amount, end < start, ...
                | REQUEST_VALIDATION_FAILED     | Bad availability window / hours
                | CAR_VALIDATION_FAILED         | Negative initial mileage, ...
----------------|-------------------------------|-----------------------------------
Not found       | CAR_NOT_FOUND                 | Car ID doesn't exist
                | REPORT_NOT_FOUND              | Report ID doesn't exist
                | INCOME_SOURCE_NOT_FOUND       | Income source ID doesn't exist
                | ASSIGNMENT_REQUEST_NOT_FOUND  | Request ID doesn't exist
----------------|-------------------------------|-----------------------------------
Invalid state   | INVALID_REPORT_TRANSITION     | Action not allowed from status
                | REPORT_NOT_EDITABLE           | Mutating a non-draft report
                | INVALID_REQUEST_TRANSITION    | Action not allowed from status
                | REQUEST_NOT_EDITABLE          | Updating a non-pending request
----------------|-------------------------------|-----------------------------------
Conflict        | REPORT_TRANSITION_CONFLICT    | Conditional write hit 0 rows
                | REQUEST_TRANSITION_CONFLICT   | Conditional write hit 0 rows
----------------|-------------------------------|-----------------------------------
Authorization   | UNAUTHORIZED_ACTOR            | Actor is not the row's owner/driver
----------------|-------------------------------|-----------------------------------
Currency        | CURRENCY_MISMATCH             | Mixed currencies, strict mode
----------------|-------------------------------|-----------------------------------
Mileage         | MILEAGE_CONTINUITY_BROKEN     | Report ranges overlap or gap
----------------|-------------------------------|-----------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | ORM write to a frozen record
----------------|-------------------------------|-----------------------------------
Store           | STORE_ERROR                   | Connectivity / driver failure

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONFLICT vs INVALID STATE:

    try:
        report_service.approve(report_id, approver_id)
    except ConflictError:
        # Someone else moved the row between our read and our write.
        # Re-fetch and show the current state (or retry once).
        report = report_selector.get(report_id)
    except InvalidStateError as e:
        # The row was already past the required state when we read it.
        show_status(e.current_status)

2. STORE ERRORS are the only class eligible for caller-directed retry:

    except StoreError as e:
        if e.retryable:
            schedule_retry()
"""


class FleetKernelError(Exception):
    """
    Base exception for all fleet kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FLEET_KERNEL_ERROR"


# Validation exceptions


class ValidationError(FleetKernelError):
    """Malformed input. Recoverable by the caller; never retried."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class ReportValidationError(ValidationError):
    """Weekly report field failed validation."""

    code: str = "REPORT_VALIDATION_FAILED"


class RequestValidationError(ValidationError):
    """Assignment request field failed validation."""

    code: str = "REQUEST_VALIDATION_FAILED"


class CarValidationError(ValidationError):
    """Car field failed validation."""

    code: str = "CAR_VALIDATION_FAILED"


# Not-found exceptions


class NotFoundError(FleetKernelError):
    """Referenced entity is absent."""

    code: str = "NOT_FOUND"

    entity_type: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class CarNotFoundError(NotFoundError):
    """Car with given ID was not found."""

    code: str = "CAR_NOT_FOUND"
    entity_type = "Car"


class ReportNotFoundError(NotFoundError):
    """Weekly report with given ID was not found."""

    code: str = "REPORT_NOT_FOUND"
    entity_type = "WeeklyReport"


class IncomeSourceNotFoundError(NotFoundError):
    """Income source with given ID was not found."""

    code: str = "INCOME_SOURCE_NOT_FOUND"
    entity_type = "IncomeSource"


class AssignmentRequestNotFoundError(NotFoundError):
    """Car assignment request with given ID was not found."""

    code: str = "ASSIGNMENT_REQUEST_NOT_FOUND"
    entity_type = "CarAssignmentRequest"


# Invalid-state exceptions


class InvalidStateError(FleetKernelError):
    """Operation attempted against a row not in the required source state."""

    code: str = "INVALID_STATE"


class InvalidReportTransitionError(InvalidStateError):
    """Report lifecycle does not allow the action from the current status."""

    code: str = "INVALID_REPORT_TRANSITION"

    def __init__(self, report_id: str, current_status: str, action: str):
        self.report_id = report_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} report {report_id} in status '{current_status}'"
        )


class ReportNotEditableError(InvalidStateError):
    """Report fields may only change while the report is a draft."""

    code: str = "REPORT_NOT_EDITABLE"

    def __init__(self, report_id: str, current_status: str):
        self.report_id = report_id
        self.current_status = current_status
        super().__init__(
            f"Report {report_id} is '{current_status}'; only drafts are editable"
        )


class InvalidRequestTransitionError(InvalidStateError):
    """Assignment request lifecycle does not allow the action."""

    code: str = "INVALID_REQUEST_TRANSITION"

    def __init__(self, request_id: str, current_status: str, action: str):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} assignment request {request_id} "
            f"in status '{current_status}'"
        )


class RequestNotEditableError(InvalidStateError):
    """Assignment requests may only be updated while pending."""

    code: str = "REQUEST_NOT_EDITABLE"

    def __init__(self, request_id: str, current_status: str):
        self.request_id = request_id
        self.current_status = current_status
        super().__init__(
            f"Assignment request {request_id} is '{current_status}'; "
            "only pending requests are editable"
        )


# Conflict exceptions


class ConflictError(FleetKernelError):
    """
    A conditional write affected zero rows.

    Another actor changed the row's status between our read and our write.
    Distinguished from InvalidStateError so callers may re-fetch and retry once.
    """

    code: str = "CONFLICT"

    entity_type: str = "Entity"

    def __init__(self, entity_id: str, expected_status: str, target_status: str):
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.target_status = target_status
        super().__init__(
            f"{self.entity_type} {entity_id} is no longer '{expected_status}'; "
            f"transition to '{target_status}' was not applied"
        )


class ReportTransitionConflictError(ConflictError):
    """Concurrent modification of a weekly report's status."""

    code: str = "REPORT_TRANSITION_CONFLICT"
    entity_type = "WeeklyReport"


class RequestTransitionConflictError(ConflictError):
    """Concurrent modification of an assignment request's status."""

    code: str = "REQUEST_TRANSITION_CONFLICT"
    entity_type = "CarAssignmentRequest"


# Authorization-shaped preconditions


class AuthorizationError(FleetKernelError):
    """Base exception for actor precondition failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedActorError(AuthorizationError):
    """Actor is not allowed to perform the action on this row."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, action: str, entity_id: str):
        self.actor_id = actor_id
        self.action = action
        self.entity_id = entity_id
        super().__init__(f"Actor {actor_id} may not {action} {entity_id}")


# Currency exceptions


class CurrencyError(FleetKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class CurrencyMismatchError(CurrencyError):
    """Aggregation window mixes currency tags and strict mode is on."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currencies: list[str]):
        self.currencies = currencies
        super().__init__(
            f"Cannot aggregate reports with mixed currencies: {', '.join(currencies)}"
        )


# Mileage exceptions


class MileageContinuityError(FleetKernelError):
    """A car's report ranges overlap or leave a gap."""

    code: str = "MILEAGE_CONTINUITY_BROKEN"

    def __init__(self, report_id: str, expected_start: int, actual_start: int):
        self.report_id = report_id
        self.expected_start = expected_start
        self.actual_start = actual_start
        super().__init__(
            f"Report {report_id} starts at {actual_start}, "
            f"expected {expected_start}"
        )


# Immutability exceptions


class ImmutabilityError(FleetKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete a frozen record through the ORM."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# Store exceptions


class StoreError(FleetKernelError):
    """
    Ledger store transport failure (connectivity, driver error).

    The only error class eligible for caller-directed retry.
    """

    code: str = "STORE_ERROR"

    retryable: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Ledger store failure during {operation}: {detail}")
