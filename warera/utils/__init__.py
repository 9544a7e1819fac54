"""
WarEra Utilities Package

Contains shared helpers for timestamps, numbers and class decorators.
"""

from warera.utils.dates import day_bounds, normalize_timestamp, parse_timestamp, resolve_period
from warera.utils.decorators import singleton
from warera.utils.numbers import round2, to_number

__all__ = [
    "day_bounds",
    "normalize_timestamp",
    "parse_timestamp",
    "resolve_period",
    "round2",
    "singleton",
    "to_number",
]
