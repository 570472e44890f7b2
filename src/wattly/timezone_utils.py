"""Timezone resolution and calendar-month helpers."""

from __future__ import annotations

import calendar
from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from wattly.errors import ConfigurationError


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name; unknown names are a configuration error."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone {tz_name!r}") from e


def parse_timestamp(value: str | datetime, tz: tzinfo) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as local to ``tz``.

    Raises ValueError for anything ``datetime.fromisoformat`` cannot read.
    """
    if isinstance(value, datetime):
        ts = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("empty timestamp")
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=tz)
    return ts


def billing_month(ts: datetime, tz: tzinfo) -> tuple[int, int]:
    """Return the (year, month) a timestamp falls into in the community zone."""
    local = ts.astimezone(tz)
    return local.year, local.month


def on_interval_grid(ts: datetime, tz: tzinfo, interval_minutes: int) -> bool:
    """True when the local wall-clock time starts a metering interval."""
    local = ts.astimezone(tz)
    if local.second or local.microsecond:
        return False
    return (local.hour * 60 + local.minute) % interval_minutes == 0


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def validate_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    if not 2000 <= year <= 2100:
        raise ValueError(f"year out of range: {year}")
