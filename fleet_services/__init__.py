"""
fleet_services -- Package init and public API.

Responsibility:
    Orchestration over the kernel services: configuration-driven wiring,
    composed multi-step workflows and retry policy.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        fleet_services/ -> fleet_engines/  (allowed)
        fleet_services/ -> fleet_kernel/   (allowed)
        fleet_services/ -> fleet_config/   (allowed)
        fleet_kernel/   -> fleet_services/ (FORBIDDEN)
"""

from fleet_services.workflow_service import (
    FleetWorkflowService,
    init_from_config,
    retry_on_conflict,
    retry_on_store_error,
)

__all__ = [
    "FleetWorkflowService",
    "init_from_config",
    "retry_on_conflict",
    "retry_on_store_error",
]
