"""Domain models for the fleet kernel."""

from fleet_kernel.models.assignment_request import CarAssignmentRequest
from fleet_kernel.models.car import Car, CarAssignment
from fleet_kernel.models.weekly_report import IncomeSource, WeeklyReport

__all__ = [
    "Car",
    "CarAssignment",
    "CarAssignmentRequest",
    "IncomeSource",
    "WeeklyReport",
]
