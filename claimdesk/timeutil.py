"""
Timezone parsing and formatting utilities.

Client timestamps arrive from browser inputs (datetime-local values, bare
dates, ISO strings with or without an offset). Naive values are interpreted
in the business timezone; everything is compared as aware UTC datetimes.
"""

from datetime import date, datetime, time, timedelta

import pytz

WEEKDAY_NAMES_ZH = ["一", "二", "三", "四", "五", "六", "日"]


def get_timezone(tz_name: str):
    """Return the pytz timezone for a name, falling back to UTC."""
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def _localize(naive: datetime, tz_name: str) -> datetime:
    tz = get_timezone(tz_name)
    return tz.localize(naive).astimezone(pytz.UTC)


def parse_client_datetime(value, tz_name: str) -> datetime | None:
    """
    Parse a client-supplied timestamp into an aware UTC datetime.

    Accepts datetime/date objects, epoch milliseconds, and ISO-like strings
    ("2026-02-14T10:00", "2026-02-14", "2026-02-14T02:00:00.000Z",
    "2026/02/14 10:00"). Returns None for anything unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return _localize(value, tz_name)
        return value.astimezone(pytz.UTC)

    if isinstance(value, date):
        return _localize(datetime.combine(value, time.min), tz_name)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=pytz.UTC)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None

    text = value.strip().replace("/", "-")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # "2026-02-14 10:00" is accepted by fromisoformat, so only the separator
    # needs normalizing above
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return _localize(parsed, tz_name)
    return parsed.astimezone(pytz.UTC)


def to_local(dt: datetime, tz_name: str) -> datetime:
    """Convert an aware datetime (naive treated as UTC) to the business timezone."""
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(get_timezone(tz_name))


def format_local(dt: datetime, tz_name: str, fmt: str = "%Y/%m/%d %H:%M") -> str:
    """Format a datetime in the business timezone."""
    return to_local(dt, tz_name).strftime(fmt)


def format_with_weekday(dt: datetime, tz_name: str) -> str:
    """Format like "02/14 (六) 10:00" for digest listings."""
    local_dt = to_local(dt, tz_name)
    weekday = WEEKDAY_NAMES_ZH[local_dt.weekday()]
    return f"{local_dt.strftime('%m/%d')} ({weekday}) {local_dt.strftime('%H:%M')}"


def day_bounds(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """
    Return the UTC bounds of the local calendar day containing `now`.

    The end bound is inclusive (23:59:59.999999 local).
    """
    tz = get_timezone(tz_name)
    local_day = to_local(now, tz_name).date()
    start = tz.localize(datetime.combine(local_day, time.min))
    end = tz.localize(datetime.combine(local_day, time.max))
    return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)


def week_bounds(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
    """
    Return the UTC bounds of the local Monday-Sunday week containing `now`.

    Monday 00:00 local to Sunday 23:59:59.999999 local, both inclusive.
    """
    tz = get_timezone(tz_name)
    local_day = to_local(now, tz_name).date()
    monday = local_day - timedelta(days=local_day.weekday())
    sunday = monday + timedelta(days=6)
    start = tz.localize(datetime.combine(monday, time.min))
    end = tz.localize(datetime.combine(sunday, time.max))
    return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)


def same_local_day(a: datetime, b: datetime, tz_name: str) -> bool:
    """Check whether two instants fall on the same calendar day locally."""
    return to_local(a, tz_name).date() == to_local(b, tz_name).date()
