"""
Veyro Payroll - Money Helpers

All monetary values are Decimal. Calculations keep full precision and
values are rounded to cents once, when persisted or exported.
"""

import decimal
from decimal import Decimal
from typing import Any, Iterable, Optional

from app.config import settings

ZERO = Decimal("0")
CENT = Decimal("0.01")
MONTHS_IN_YEAR = Decimal("12")


def rounding_mode() -> str:
    """Configured decimal rounding constant (e.g. ROUND_HALF_UP)."""
    mode = settings.money_rounding.upper()
    if not hasattr(decimal, mode) or not mode.startswith("ROUND_"):
        raise ValueError(f"Unknown rounding mode: {settings.money_rounding}")
    return getattr(decimal, mode)


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """
    Convert an input value to Decimal.

    Floats are rejected: binary floating point cannot carry currency.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"{field} must be a Decimal, int or numeric string, got {type(value).__name__}")
    if isinstance(value, int):
        return Decimal(value)
    try:
        return Decimal(str(value).strip())
    except decimal.InvalidOperation as e:
        raise ValueError(f"{field} is not a valid amount: {value!r}") from e


def quantize_money(value: Optional[Decimal]) -> Decimal:
    """Round to cents using the configured rounding mode."""
    if value is None:
        return ZERO.quantize(CENT)
    return value.quantize(CENT, rounding=rounding_mode())


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def format_money(value: Decimal) -> str:
    """Plain two-decimal string used in exports (no thousands separator)."""
    return f"{quantize_money(value):.2f}"
