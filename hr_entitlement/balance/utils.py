"""Numeric helpers shared by the balance ledgers."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from hr_entitlement.common.constants import BALANCE_PRECISION, ZERO


def coerce_days(value: Any) -> Optional[Decimal]:
    """Return ``value`` as a finite Decimal, or None when it is not a number.

    Booleans and strings are not day counts even though Python would
    happily convert them.
    """
    if value is None or isinstance(value, (bool, str)):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
    else:
        return None
    return result if result.is_finite() else None


def sum_days(values: Iterable[Any]) -> Decimal:
    """Sum day counts, treating anything non-numeric as zero."""
    total = ZERO
    for value in values:
        days = coerce_days(value)
        if days is not None:
            total += days
    return total


def round_balance(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(BALANCE_PRECISION, rounding=ROUND_HALF_UP)
