"""
fleet_engines.mileage -- Mileage continuity resolver.

Responsibility:
    Derive the odometer range of a car's next weekly report from its
    initial mileage and the ranges already recorded against it, and verify
    that a recorded sequence is contiguous.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Callers (MileageService)
    load the car and its reports and pass them in.

Invariants enforced:
    - next start = car.initial_mileage + sum(end - start) over that car's
      prior reports, whatever their status.  Reports of other cars are
      ignored.
    - The result depends only on the inputs; the order of prior_reports
      does not change the sum.

Failure modes:
    - ValueError if placeholder_increment is negative.
    - MileageContinuityError from check_continuity(strict=True).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import UUID

from fleet_engines.tracer import traced_engine
from fleet_kernel.domain.dtos import CarInfo, ReportInfo
from fleet_kernel.exceptions import MileageContinuityError


@dataclass(frozen=True)
class MileageBounds:
    """Suggested odometer range for a new report."""

    start_mileage: int
    end_mileage: int


def _covered_distance(car_id: UUID, reports: Iterable[ReportInfo]) -> int:
    return sum(
        r.end_mileage - r.start_mileage for r in reports if r.car_id == car_id
    )


@traced_engine("mileage_resolver", "1.0", fingerprint_fields=("placeholder_increment",))
def resolve_bounds(
    car: CarInfo,
    prior_reports: Sequence[ReportInfo],
    placeholder_increment: int = 1,
) -> MileageBounds:
    """
    Compute the start (and a placeholder end) for the car's next report.

    Example:
        initial_mileage=10000, no reports        -> (10000, 10001)
        one prior report 10000..10150            -> (10150, 10151)
    """
    if placeholder_increment < 0:
        raise ValueError("placeholder_increment must be >= 0")

    start = car.initial_mileage + _covered_distance(car.id, prior_reports)
    return MileageBounds(start_mileage=start, end_mileage=start + placeholder_increment)


def derived_current_mileage(car: CarInfo, reports: Iterable[ReportInfo]) -> int:
    """Odometer reading implied by the ledger: initial plus every recorded range."""
    return car.initial_mileage + _covered_distance(car.id, reports)


@traced_engine("mileage_continuity", "1.0", fingerprint_fields=("initial_mileage", "strict"))
def check_continuity(
    initial_mileage: int,
    reports: Sequence[ReportInfo],
    strict: bool = False,
) -> UUID | None:
    """
    Walk reports in creation order and find the first broken link.

    Each report must start where the previous one ended (the first one at
    initial_mileage).

    Returns:
        The id of the first report whose start does not match, or None
        when the sequence is contiguous.

    Raises:
        MileageContinuityError: In strict mode, instead of returning an id.
    """
    expected = initial_mileage
    for report in reports:
        if report.start_mileage != expected:
            if strict:
                raise MileageContinuityError(
                    str(report.id), expected, report.start_mileage,
                )
            return report.id
        expected = report.end_mileage
    return None
