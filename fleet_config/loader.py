"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the frozen
``fleet_config.schema`` dataclasses.  The single public entry point for
runtime config is ``fleet_config.get_active_config()``; this module is
the parsing layer beneath it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Missing keys take the dataclass default; keys with the wrong type or
  unknown keys raise ``ValueError`` naming the offending path.
* ``compute_checksum`` is a deterministic SHA-256 of canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Document or section not a mapping, bad value types  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import (
    AssignmentRequestConfig,
    DatabaseConfig,
    FleetConfig,
    LoggingConfig,
    ReportConfig,
    StatisticsConfig,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "reports": ReportConfig,
    "statistics": StatisticsConfig,
    "assignment_requests": AssignmentRequestConfig,
    "logging": LoggingConfig,
}

_SCALAR_TYPES: dict[str, type] = {"str": str, "int": int, "bool": bool}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _check_type(path: str, value: Any, expected: type) -> Any:
    # bool is an int subclass; keep them apart in both directions.
    if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValueError(f"{path}: expected int, got {value!r}")
    if expected is bool and not isinstance(value, bool):
        raise ValueError(f"{path}: expected bool, got {value!r}")
    if expected is str and not isinstance(value, str):
        raise ValueError(f"{path}: expected str, got {value!r}")
    return value


def _parse_section(name: str, cls: type, raw: Any) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(raw).__name__}")

    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ValueError(f"{name}: unknown keys {', '.join(unknown)}")

    values = {
        key: _check_type(f"{name}.{key}", value, _SCALAR_TYPES[known[key].type])
        for key, value in raw.items()
    }
    return cls(**values)


def parse_config(data: dict[str, Any], checksum: str = "") -> FleetConfig:
    """Parse a loaded YAML document into a FleetConfig."""
    sections = {
        name: _parse_section(name, cls, data.get(name))
        for name, cls in _SECTIONS.items()
    }

    unknown = sorted(set(data) - set(_SECTIONS) - {"config_id", "version"})
    if unknown:
        raise ValueError(f"unknown top-level keys {', '.join(unknown)}")

    config_id = _check_type("config_id", data.get("config_id", "fleet-default"), str)
    version = _check_type("version", data.get("version", 1), int)

    parsed = FleetConfig(
        config_id=config_id,
        version=version,
        checksum=checksum,
        **sections,
    )
    _validate(parsed)
    return parsed


def _validate(config: FleetConfig) -> None:
    if not config.reports.default_currency.strip():
        raise ValueError("reports.default_currency must not be empty")
    if config.reports.mileage_placeholder_increment < 0:
        raise ValueError("reports.mileage_placeholder_increment must be >= 0")
    if config.statistics.default_trailing_months < 1:
        raise ValueError("statistics.default_trailing_months must be >= 1")
    if config.assignment_requests.upsert_max_attempts < 1:
        raise ValueError("assignment_requests.upsert_max_attempts must be >= 1")


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config_file(path: Path) -> FleetConfig:
    """Load, checksum and parse one YAML configuration document."""
    data = load_yaml_file(path)
    return parse_config(data, checksum=compute_checksum(data))
