"""Selectors for the fleet kernel (read side)."""

from fleet_kernel.selectors.car_selector import CarSelector
from fleet_kernel.selectors.report_selector import ReportSelector
from fleet_kernel.selectors.request_selector import RequestSelector

__all__ = [
    "CarSelector",
    "ReportSelector",
    "RequestSelector",
]
