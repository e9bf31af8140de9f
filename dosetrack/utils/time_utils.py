"""Time and timezone utilities."""

from datetime import date, datetime, time, timedelta
from typing import Tuple
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


def to_utc(dt: datetime, tz: str) -> datetime:
    """Convert a timezone-aware datetime to UTC."""
    if dt.tzinfo is None:
        # Assume it's in the given timezone
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(UTC)


def from_utc(dt: datetime, tz: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(ZoneInfo(tz))


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(UTC)


def local_now(tz: str, now: datetime | None = None) -> datetime:
    """Resolve "now" into the user's timezone.

    Args:
        tz: IANA timezone name
        now: Instant to convert (naive values are treated as UTC), defaults to the wall clock

    Returns:
        Timezone-aware datetime in ``tz``
    """
    if now is None:
        now = utc_now()
    return from_utc(now, tz)


def parse_time_of_day(value: str) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) string, ignoring seconds."""
    hours, minutes = value[:5].split(":")
    return time(int(hours), int(minutes))


def minute_of_day(value: datetime | time | str) -> int:
    """Minutes since local midnight. Seconds are ignored."""
    if isinstance(value, str):
        value = parse_time_of_day(value)
    return value.hour * 60 + value.minute


def combine_local(day: date, time_of_day: str, tz: str) -> datetime:
    """Combine a local date and an ``HH:MM`` time into a UTC instant."""
    local_dt = datetime.combine(day, parse_time_of_day(time_of_day), tzinfo=ZoneInfo(tz))
    return local_dt.astimezone(UTC)


def day_bounds(day: date, tz: str) -> Tuple[datetime, datetime]:
    """Get the UTC bounds ``[start, end)`` of a local calendar day."""
    start = datetime.combine(day, time(0, 0), tzinfo=ZoneInfo(tz))
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=ZoneInfo(tz))
    return start.astimezone(UTC), end.astimezone(UTC)


def format_hhmm(dt: datetime, tz: str) -> str:
    """Local ``HH:MM`` of an instant, used to match events to reminders."""
    return from_utc(dt, tz).strftime("%H:%M")


def format_time_12h(time_of_day: str) -> str:
    """Format ``HH:MM`` for display.

    Examples:
        "08:00" -> "8:00 AM"
        "00:30" -> "12:30 AM"
        "14:05" -> "2:05 PM"
    """
    t = parse_time_of_day(time_of_day)
    suffix = "PM" if t.hour >= 12 else "AM"
    display_hour = t.hour % 12 or 12
    return f"{display_hour}:{t.minute:02d} {suffix}"


def format_time_until(minutes: int) -> str:
    """Format minutes until the next dose compactly.

    Examples:
        45 -> "45m"
        120 -> "2h"
        125 -> "2h 5m"
        1500 -> "1d 1h"
    """
    if minutes < 60:
        return f"{minutes}m"
    elif minutes < 1440:
        hours, rest = divmod(minutes, 60)
        return f"{hours}h {rest}m" if rest else f"{hours}h"
    else:
        days, rest = divmod(minutes, 1440)
        hours = rest // 60
        return f"{days}d {hours}h" if hours else f"{days}d"


def to_iso(dt: datetime) -> str:
    """Serialize an instant as an ISO-8601 UTC string with millisecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="milliseconds")


def from_iso(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
