"""
fleet_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits above ``fleet_kernel`` and below
    ``fleet_services`` and ``scripts``.  The kernel MUST NEVER import from
    ``fleet_config``; services are handed plain values (placeholder
    increment, attempt counts, default currency) by their callers.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Resolution order for the document: explicit ``config_path`` argument,
      then ``FLEET_CONFIG_PATH``, then ``sets/default.yaml``.
    - ``FLEET_DATABASE_URL``, when set, replaces ``database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration document does not exist.
    - ``ValueError`` -- a key has the wrong type or an out-of-range value.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``FLEET_CONFIG_TRACE`` log entry with config_id, version and checksum.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from fleet_config.loader import load_config_file
from fleet_config.schema import (
    AssignmentRequestConfig,
    DatabaseConfig,
    FleetConfig,
    LoggingConfig,
    ReportConfig,
    StatisticsConfig,
)

_logger = logging.getLogger("fleet_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "FLEET_CONFIG_PATH"
DATABASE_URL_ENV = "FLEET_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> FleetConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned ``FleetConfig`` has passed type and range validation.
        - A ``FLEET_CONFIG_TRACE`` log entry is emitted on every successful
          call.

    Non-goals:
        - No caching across calls; callers hold the returned config.

    Args:
        config_path: Override path to a YAML document.

    Raises:
        FileNotFoundError: If the document does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_config_file(path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=database_url),
        )

    _logger.info(
        "FLEET_CONFIG_TRACE",
        extra={
            "trace_type": "FLEET_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "database_url_overridden": bool(database_url),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DATABASE_URL_ENV",
    "AssignmentRequestConfig",
    "DatabaseConfig",
    "FleetConfig",
    "LoggingConfig",
    "ReportConfig",
    "StatisticsConfig",
    "get_active_config",
]
