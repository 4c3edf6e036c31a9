"""
ORM-Level Immutability Enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements produced by
a flush reach the database.  Listeners registered here inspect attribute
history and raise ImmutabilityViolationError for writes to frozen records:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Lifecycle transitions do not go through a flush: they are single Core
``UPDATE ... WHERE status = :expected`` statements issued by
LedgerStore.conditional_update, which these listeners never see.  What the
listeners catch is application code editing a frozen row through the ORM.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | When frozen                       | Scope
------------------------|-----------------------------------|--------------------
WeeklyReport            | status = approved or rejected     | every field
WeeklyReport            | status != draft                   | DELETE
IncomeSource            | parent report status != draft     | UPDATE and DELETE
CarAssignmentRequest    | terminal status                   | every field
Car                     | always                            | initial_mileage

updated_at is audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from fleet_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # TESTS ONLY
    from fleet_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, select
from sqlalchemy.orm.attributes import get_history

from fleet_kernel.exceptions import ImmutabilityViolationError
from fleet_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at"})


def _changed_fields(target, mapper) -> list[str]:
    changed = []
    for attr in mapper.column_attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def _previous_status(target) -> str | None:
    """Status as loaded from the database, before any pending change."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(entity_type, str(target.id), reason)


def _check_weekly_report_immutability(mapper, connection, target):
    """Approved and rejected reports are final; no field may change afterwards."""
    from fleet_kernel.domain.lifecycle import TERMINAL_REPORT_STATUSES

    status = _previous_status(target)
    if status is None or status not in {s.value for s in TERMINAL_REPORT_STATUSES}:
        return

    changed = _changed_fields(target, mapper)
    if changed:
        _block(
            "WeeklyReport", target, "UPDATE",
            f"{status} report; attempted to change {', '.join(sorted(changed))}",
        )


def _check_weekly_report_delete(mapper, connection, target):
    """Only drafts may be deleted."""
    from fleet_kernel.domain.lifecycle import ReportStatus

    status = _previous_status(target)
    if status is not None and status != ReportStatus.DRAFT.value:
        _block("WeeklyReport", target, "DELETE", f"report is '{status}'")


def _parent_report_status(connection, report_id) -> str | None:
    from fleet_kernel.models.weekly_report import WeeklyReport

    return connection.execute(
        select(WeeklyReport.status).where(WeeklyReport.id == report_id)
    ).scalar_one_or_none()


def _check_income_source_immutability(mapper, connection, target):
    """Income lines follow their report: editable only while it is a draft."""
    from fleet_kernel.domain.lifecycle import ReportStatus

    if not _changed_fields(target, mapper):
        return
    status = _parent_report_status(connection, target.weekly_report_id)
    if status is not None and status != ReportStatus.DRAFT.value:
        _block("IncomeSource", target, "UPDATE", f"parent report is '{status}'")


def _check_income_source_delete(mapper, connection, target):
    from fleet_kernel.domain.lifecycle import ReportStatus

    status = _parent_report_status(connection, target.weekly_report_id)
    if status is not None and status != ReportStatus.DRAFT.value:
        _block("IncomeSource", target, "DELETE", f"parent report is '{status}'")


def _check_assignment_request_immutability(mapper, connection, target):
    """Terminal requests are final."""
    from fleet_kernel.domain.lifecycle import TERMINAL_REQUEST_STATUSES

    status = _previous_status(target)
    if status is None or status not in {s.value for s in TERMINAL_REQUEST_STATUSES}:
        return

    changed = _changed_fields(target, mapper)
    if changed:
        _block(
            "CarAssignmentRequest", target, "UPDATE",
            f"request is '{status}'; attempted to change {', '.join(sorted(changed))}",
        )


def _check_car_initial_mileage(mapper, connection, target):
    """initial_mileage anchors every mileage derivation and is write-once."""
    if get_history(target, "initial_mileage").deleted:
        _block("Car", target, "UPDATE", "initial_mileage is write-once")


_LISTENERS = (
    ("WeeklyReport", "before_update", _check_weekly_report_immutability),
    ("WeeklyReport", "before_delete", _check_weekly_report_delete),
    ("IncomeSource", "before_update", _check_income_source_immutability),
    ("IncomeSource", "before_delete", _check_income_source_delete),
    ("CarAssignmentRequest", "before_update", _check_assignment_request_immutability),
    ("Car", "before_update", _check_car_initial_mileage),
)


def _models() -> dict:
    from fleet_kernel import models

    return {
        "WeeklyReport": models.WeeklyReport,
        "IncomeSource": models.IncomeSource,
        "CarAssignmentRequest": models.CarAssignmentRequest,
        "Car": models.Car,
    }


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already present is skipped.
    """
    targets = _models()
    for model_name, event_name, listener in _LISTENERS:
        target = targets[model_name]
        if not event.contains(target, event_name, listener):
            event.listen(target, event_name, listener)

    logger.info("immutability_listeners_registered", extra={"count": len(_LISTENERS)})


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to write a frozen row directly.
    """
    targets = _models()
    for model_name, event_name, listener in _LISTENERS:
        _safe_remove_listener(targets[model_name], event_name, listener)
