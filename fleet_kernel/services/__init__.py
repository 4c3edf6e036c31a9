"""Write-side services for the fleet kernel."""

from fleet_kernel.services.assignment_request_service import AssignmentRequestService
from fleet_kernel.services.car_assignment_service import CarAssignmentService
from fleet_kernel.services.mileage_service import MileageService
from fleet_kernel.services.report_service import ReportService
from fleet_kernel.services.statistics_service import StatisticsService

__all__ = [
    "AssignmentRequestService",
    "CarAssignmentService",
    "MileageService",
    "ReportService",
    "StatisticsService",
]
