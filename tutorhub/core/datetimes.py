import re
from datetime import UTC, date, datetime, time, timedelta

TIME_OF_DAY_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def ensure_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def midnight_utc(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        value = ensure_utc(value).date()
    return datetime.combine(value, time.min, tzinfo=UTC)


def utc_day_bounds(instant: datetime) -> tuple[datetime, datetime]:
    """Inclusive [00:00:00.000, 23:59:59.999] bounds of the UTC day containing ``instant``."""
    day_start = midnight_utc(instant)
    day_end = day_start + timedelta(days=1) - timedelta(milliseconds=1)
    return day_start, day_end


def is_time_of_day(value: str) -> bool:
    return bool(TIME_OF_DAY_RE.match(value))


def normalize_time_of_day(value: str) -> str:
    """'9:05' -> '09:05'. The caller validates the format first."""
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def minutes_since_midnight(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_utc_z(value: datetime) -> str:
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
