"""
FleetConfig schema.

Frozen dataclasses describing the runtime configuration.  YAML documents
are parsed into these types by ``fleet_config.loader``; every section has
defaults so a partial document is valid.
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///fleet_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class ReportConfig:
    """Weekly report behaviour."""

    default_currency: str = "XAF"
    mileage_placeholder_increment: int = 1
    enforce_continuity: bool = True


@dataclass(frozen=True)
class StatisticsConfig:
    default_trailing_months: int = 3
    strict_currency: bool = False


@dataclass(frozen=True)
class AssignmentRequestConfig:
    # Insert/update attempts before a create_or_update race is surfaced.
    upsert_max_attempts: int = 3


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FleetConfig:
    """
    Complete runtime configuration.

    ``checksum`` is the SHA-256 of the canonical JSON form of the source
    document (see ``loader.compute_checksum``), used to tie log traces to
    the exact configuration in force.
    """

    config_id: str = "fleet-default"
    version: int = 1
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    reports: ReportConfig = field(default_factory=ReportConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)
    assignment_requests: AssignmentRequestConfig = field(
        default_factory=AssignmentRequestConfig,
    )
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
