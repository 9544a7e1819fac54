"""Numeric coercion helpers."""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1


def to_number(value: Any) -> float | int:
    """Coerce an API value to a finite number.

    Numbers pass through, booleans become 1/0 and numeric strings are parsed.
    Anything missing, unparseable or non-finite becomes 0.

    Args:
        value: Raw value from an API record

    Returns:
        int or float, never NaN or infinite
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        # SQLite integers are signed 64-bit
        if SQLITE_INT_MIN <= value <= SQLITE_INT_MAX:
            return value
        try:
            return float(value)
        except OverflowError:
            return 0
    if isinstance(value, float):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            parsed = float(text)
        except ValueError:
            return 0
        return parsed if math.isfinite(parsed) else 0
    return 0


def round2(value: float) -> float:
    """Round to 2 decimals, half away from zero, on the shortest decimal repr."""
    quantized = Decimal(repr(float(value))).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(quantized)
