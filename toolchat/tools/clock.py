"""Current date/time lookup used by the getCurrentDateTime tool."""

from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from toolchat.errors import InvalidTimezoneError

DateTimeFormat = Literal["full", "date", "time"]

DEFAULT_TIMEZONE = "UTC"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA timezone, raising InvalidTimezoneError if unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        # Names that resolve to a tzdata directory (e.g. "America") raise IsADirectoryError
        raise InvalidTimezoneError(f"Unknown timezone '{name}'") from e


def format_date(moment: datetime) -> str:
    """e.g. Monday, October 19, 2026"""
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment.year}"


def format_time(moment: datetime) -> str:
    """e.g. 03:04:05 PM UTC"""
    return f"{moment:%I:%M:%S %p} {moment.tzname()}"


def now(
    timezone: str | None = None,
    format: DateTimeFormat | None = None,
    instant: datetime | None = None,
) -> dict[str, Any]:
    """Describe the current instant in the requested timezone and format.

    Args:
        timezone: IANA timezone name, defaults to UTC
        format: "full" (date and time), "date" or "time", defaults to "full"
        instant: Pin the instant instead of reading the wall clock

    Returns:
        Dict with datetime, timestamp (epoch ms), iso (UTC) and timezone keys
    """
    tz_name = timezone or DEFAULT_TIMEZONE
    tz = resolve_timezone(tz_name)

    moment_utc = (instant or datetime.now(UTC)).astimezone(UTC)
    local = moment_utc.astimezone(tz)

    match format or "full":
        case "date":
            formatted = format_date(local)
        case "time":
            formatted = format_time(local)
        case _:
            formatted = f"{format_date(local)} at {format_time(local)}"

    timestamp = (moment_utc - _EPOCH) // timedelta(milliseconds=1)
    iso = moment_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    return {
        "datetime": formatted,
        "timestamp": timestamp,
        "iso": iso,
        "timezone": tz_name,
    }
