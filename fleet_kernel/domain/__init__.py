"""Pure domain layer: lifecycles, DTOs, validation, clock."""

from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.dtos import (
    AssignmentInfo,
    AssignmentRequestInfo,
    CarInfo,
    CarStatus,
    IncomeSourceInfo,
    IncomeSourceType,
    ReportDraft,
    ReportInfo,
)
from fleet_kernel.domain.lifecycle import (
    REPORT_TRANSITIONS,
    REQUEST_TRANSITIONS,
    ReportAction,
    ReportStatus,
    RequestAction,
    RequestStatus,
)

__all__ = [
    "AssignmentInfo",
    "AssignmentRequestInfo",
    "CarInfo",
    "CarStatus",
    "Clock",
    "DeterministicClock",
    "IncomeSourceInfo",
    "IncomeSourceType",
    "REPORT_TRANSITIONS",
    "REQUEST_TRANSITIONS",
    "ReportAction",
    "ReportDraft",
    "ReportInfo",
    "ReportStatus",
    "RequestAction",
    "RequestStatus",
    "SystemClock",
]
