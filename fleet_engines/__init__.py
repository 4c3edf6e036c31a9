"""
Module: fleet_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines: the mileage continuity resolver and the report
    statistics aggregator.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fleet_kernel/domain, fleet_kernel/db/types and
    fleet_kernel/exceptions (and sibling engine modules).
    MUST NOT import fleet_kernel services/selectors or fleet_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates must be passed in as explicit parameters.
    - Decimal-only arithmetic for money.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from fleet_engines.mileage import resolve_bounds
    from fleet_engines.statistics import ReportWindow, aggregate
"""

from fleet_engines.mileage import (
    MileageBounds,
    check_continuity,
    derived_current_mileage,
    resolve_bounds,
)
from fleet_engines.statistics import (
    CarStatistics,
    OwnerPerformanceMetrics,
    PerformanceMetrics,
    ReportWindow,
    aggregate,
    filter_reports,
    owner_performance_metrics,
    performance_metrics,
)
from fleet_engines.tracer import traced_engine

__all__ = [
    "CarStatistics",
    "MileageBounds",
    "OwnerPerformanceMetrics",
    "PerformanceMetrics",
    "ReportWindow",
    "aggregate",
    "check_continuity",
    "derived_current_mileage",
    "filter_reports",
    "owner_performance_metrics",
    "performance_metrics",
    "resolve_bounds",
    "traced_engine",
]
