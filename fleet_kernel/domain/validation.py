"""
Field validation for weekly reports and assignment requests.

Pure functions, zero I/O.  Each validator normalizes its input (amounts to
Decimal, mileage to int) and raises a typed ValidationError subclass on the
first violated rule.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from fleet_kernel.db.types import ZERO, to_money
from fleet_kernel.domain.dtos import REPORT_MONEY_FIELDS, IncomeSourceType
from fleet_kernel.exceptions import (
    CarValidationError,
    ReportValidationError,
    RequestValidationError,
)

MAX_HOURS_PER_WEEK = 168
MAX_CURRENCY_LENGTH = 8


def _money(field: str, value: Any) -> Decimal:
    try:
        amount = to_money(value)
    except (TypeError, InvalidOperation) as exc:
        raise ReportValidationError(field, f"not a monetary amount ({value!r})") from exc
    if not amount.is_finite():
        raise ReportValidationError(field, "must be a finite amount")
    if amount < ZERO:
        raise ReportValidationError(field, "must be >= 0")
    return amount


def _mileage(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ReportValidationError(field, f"must be an integer odometer reading ({value!r})")
    if value < 0:
        raise ReportValidationError(field, "must be >= 0")
    return value


def validate_report_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate and normalize a complete set of weekly report fields.

    Rules:
        - week_start_date and week_end_date are required dates,
          week_end_date >= week_start_date.
        - start_mileage and end_mileage are non-negative integers,
          end_mileage >= start_mileage.
        - Every monetary field is >= 0 (missing means zero).
        - currency is a non-empty tag of at most 8 characters.

    Returns:
        A new dict with normalized values.

    Raises:
        ReportValidationError: On the first violated rule.
    """
    normalized = dict(fields)

    week_start = fields.get("week_start_date")
    week_end = fields.get("week_end_date")
    if not isinstance(week_start, date):
        raise ReportValidationError("week_start_date", "is required")
    if not isinstance(week_end, date):
        raise ReportValidationError("week_end_date", "is required")
    if week_end < week_start:
        raise ReportValidationError(
            "week_end_date", f"{week_end} is before week_start_date {week_start}",
        )

    start = _mileage("start_mileage", fields.get("start_mileage"))
    end = _mileage("end_mileage", fields.get("end_mileage"))
    if end < start:
        raise ReportValidationError(
            "end_mileage", f"{end} is below start_mileage {start}",
        )
    normalized["start_mileage"] = start
    normalized["end_mileage"] = end

    for name in REPORT_MONEY_FIELDS:
        normalized[name] = _money(name, fields.get(name))

    currency = fields.get("currency")
    if not isinstance(currency, str) or not currency.strip():
        raise ReportValidationError("currency", "is required")
    if len(currency.strip()) > MAX_CURRENCY_LENGTH:
        raise ReportValidationError("currency", f"longer than {MAX_CURRENCY_LENGTH} characters")
    normalized["currency"] = currency.strip()

    return normalized


def validate_income_source(source_type: Any, amount: Any) -> tuple[IncomeSourceType, Decimal]:
    """Validate an itemised income line."""
    try:
        kind = IncomeSourceType(source_type)
    except ValueError as exc:
        raise ReportValidationError("source_type", f"unknown income source {source_type!r}") from exc
    return kind, _money("amount", amount)


def validate_request_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate assignment request availability fields.

    Rules:
        - available_end_date (when given) >= available_start_date (when given).
        - max_hours_per_week (when given) is an integer in 1..168.
    """
    start = fields.get("available_start_date")
    end = fields.get("available_end_date")
    if start is not None and not isinstance(start, date):
        raise RequestValidationError("available_start_date", "must be a date")
    if end is not None and not isinstance(end, date):
        raise RequestValidationError("available_end_date", "must be a date")
    if start is not None and end is not None and end < start:
        raise RequestValidationError(
            "available_end_date", f"{end} is before available_start_date {start}",
        )

    hours = fields.get("max_hours_per_week")
    if hours is not None:
        if isinstance(hours, bool) or not isinstance(hours, int):
            raise RequestValidationError("max_hours_per_week", "must be an integer")
        if not 1 <= hours <= MAX_HOURS_PER_WEEK:
            raise RequestValidationError(
                "max_hours_per_week", f"must be between 1 and {MAX_HOURS_PER_WEEK}",
            )

    return dict(fields)


def validate_initial_mileage(value: Any) -> int:
    """A car's odometer reading at intake."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise CarValidationError("initial_mileage", "must be a non-negative integer")
    return value
