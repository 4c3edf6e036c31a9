"""
Lifecycle state machines (``fleet_kernel.domain.lifecycle``).

Responsibility
--------------
Explicit tagged-state enums and transition tables for the two workflow
lifecycles: weekly reports and car assignment requests.  Each table maps
(from-state, action) to exactly one to-state; any pair absent from the
table is an illegal transition.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Terminal states have no outgoing edges.
* ``draft`` is the only editable report state; ``pending`` is the only
  editable request state.
"""

from __future__ import annotations

from enum import Enum


# =========================================================================
# Weekly report lifecycle
# =========================================================================


class ReportStatus(str, Enum):
    """Weekly report lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReportAction(str, Enum):
    """Actions that move a weekly report between states."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


REPORT_TRANSITIONS: dict[tuple[ReportStatus, ReportAction], ReportStatus] = {
    (ReportStatus.DRAFT, ReportAction.SUBMIT): ReportStatus.SUBMITTED,
    (ReportStatus.SUBMITTED, ReportAction.APPROVE): ReportStatus.APPROVED,
    (ReportStatus.SUBMITTED, ReportAction.REJECT): ReportStatus.REJECTED,
}

TERMINAL_REPORT_STATUSES: frozenset[ReportStatus] = frozenset({
    ReportStatus.APPROVED,
    ReportStatus.REJECTED,
})

EDITABLE_REPORT_STATUSES: frozenset[ReportStatus] = frozenset({
    ReportStatus.DRAFT,
})


# =========================================================================
# Car assignment request lifecycle
# =========================================================================


class RequestStatus(str, Enum):
    """Car assignment request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class RequestAction(str, Enum):
    """Actions that move an assignment request between states."""

    APPROVE = "approve"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    EXPIRE = "expire"


REQUEST_TRANSITIONS: dict[tuple[RequestStatus, RequestAction], RequestStatus] = {
    (RequestStatus.PENDING, RequestAction.APPROVE): RequestStatus.APPROVED,
    (RequestStatus.PENDING, RequestAction.REJECT): RequestStatus.REJECTED,
    (RequestStatus.PENDING, RequestAction.WITHDRAW): RequestStatus.WITHDRAWN,
    (RequestStatus.PENDING, RequestAction.EXPIRE): RequestStatus.EXPIRED,
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.WITHDRAWN,
    RequestStatus.EXPIRED,
})


# =========================================================================
# Lookups
# =========================================================================


def next_report_status(
    current: ReportStatus, action: ReportAction,
) -> ReportStatus | None:
    """Return the target state, or None if the transition is illegal."""
    return REPORT_TRANSITIONS.get((current, action))


def next_request_status(
    current: RequestStatus, action: RequestAction,
) -> RequestStatus | None:
    """Return the target state, or None if the transition is illegal."""
    return REQUEST_TRANSITIONS.get((current, action))


def source_status_for(action: ReportAction) -> ReportStatus:
    """The single report state from which ``action`` is legal."""
    for (from_state, table_action) in REPORT_TRANSITIONS:
        if table_action == action:
            return from_state
    raise KeyError(action)
