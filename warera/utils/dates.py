"""Timestamp normalization and date-range helpers.

All stored timestamps use one canonical form, ``YYYY-MM-DDTHH:MM:SS.mmmZ``.
Strings in that form sort lexicographically in chronological order, which
is what the ``created_at`` index range lookups rely on.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

from warera.errors import ValidationError


DAY_START_SUFFIX = "T00:00:00.000Z"
DAY_END_SUFFIX = "T23:59:59.999Z"

# Used by resolve_period("all") when the store is empty
DEFAULT_PERIOD_DAYS = 30


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso_utc(moment: datetime) -> str:
    """Format a datetime in the canonical millisecond UTC form."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    millis = moment.microsecond // 1000
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


def parse_timestamp(value: Any) -> datetime:
    """Parse an API timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix, explicit offset, or naive which is
    read as UTC), epoch milliseconds and datetime objects.

    Raises:
        ValidationError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    else:
        raise ValidationError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Any, default: Optional[datetime] = None) -> str:
    """Return the canonical ISO form of ``value``.

    A missing value (None or empty string) is replaced by ``default``, or by the
    current time when no default is given.
    """
    if value is None or value == "":
        return format_iso_utc(default or utc_now())
    return format_iso_utc(parse_timestamp(value))


def parse_day(value: Union[str, date]) -> date:
    """Parse a ``YYYY-MM-DD`` calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from e


def day_bounds(start: Union[str, date], end: Union[str, date]) -> tuple[str, str]:
    """Inclusive canonical bounds for a calendar-date range.

    Returns:
        (start at 00:00:00.000Z, end at 23:59:59.999Z)
    """
    start_day = parse_day(start)
    end_day = parse_day(end)
    return start_day.isoformat() + DAY_START_SUFFIX, end_day.isoformat() + DAY_END_SUFFIX


def resolve_period(
    days: Union[int, str],
    oldest: Optional[str] = None,
    today: Optional[date] = None,
) -> tuple[date, date]:
    """Resolve a quick-range selection into (start, end) calendar dates.

    Args:
        days: Number of days back from today, or "all" for the full history
        oldest: Oldest stored timestamp, used by "all"
        today: Override for the current UTC date (tests)

    Returns:
        (start, end) where end is today (UTC)
    """
    end = today or utc_now().date()

    if str(days).strip().lower() == "all":
        if oldest:
            return parse_timestamp(oldest).date(), end
        return end - timedelta(days=DEFAULT_PERIOD_DAYS), end

    try:
        count = int(days)
    except (TypeError, ValueError):
        count = 0
    return end - timedelta(days=max(count, 0)), end


def humanize_timestamp(value: Optional[str]) -> Optional[str]:
    """Render a canonical timestamp as ``YYYY-MM-DD HH:MM:SS UTC``."""
    if not value:
        return None
    return format_iso_utc(parse_timestamp(value)).replace("T", " ").split(".")[0] + " UTC"
