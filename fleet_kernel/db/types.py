"""
Module: fleet_kernel.db.types
Responsibility: Annotated type aliases and column types shared by every model.
    Centralizes money precision, rounding and timestamp handling so that every
    model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Monetary amounts use Decimal stored as
      Numeric(38, 9); round_money() is the only rounding function.
    - Timestamps are always timezone-aware on the Python side, even on
      backends (SQLite) that drop tzinfo on storage.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Opaque currency tag (never converted)
Currency = Annotated[str, String(8)]

# Short status / code strings
ShortCode = Annotated[str, String(50)]

# Long free text (notes, rejection reasons)
LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that normalizes to UTC.

    Contract:
        Values are bound as UTC.  Naive values coming back from backends
        without timezone support are tagged as UTC on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def to_money(value: Decimal | int | str | None) -> Decimal:
    """
    Coerce an input amount to Decimal.

    Floats are rejected; None is treated as zero (unset amount).

    Raises:
        TypeError: If value is a float.
        decimal.InvalidOperation: If a string is not numeric.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for financial values.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "0"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def utc_datetime(value: datetime) -> datetime:
    """Return value as an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
