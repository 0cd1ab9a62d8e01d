"""
Helpers for DATE (no time) fields.

Date-only values are always built from their year/month/day components.
They are never parsed as timestamps, so a record's day cannot shift when
the server runs in a negative UTC offset.
"""
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_ISO_DATETIME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})[T ](\d{2}):(\d{2})(?::(\d{2}))?")

DateLike = Union[str, date, None]


def normalize_date_only(value: DateLike) -> str:
    """
    Normalize a date value to YYYY-MM-DD.

    Accepts YYYY-MM-DD, an ISO datetime (only the date part is kept) or DD/MM/YYYY.
    Returns "" for empty input and the trimmed input when nothing matches.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    v = str(value).strip()
    if not v:
        return ""

    iso_part = v.split("T")[0] if "T" in v else v
    if _ISO_DATE.match(iso_part):
        return iso_part

    m = _BR_DATE.match(iso_part)
    if m:
        dd, mm, yyyy = m.groups()
        return f"{yyyy}-{mm}-{dd}"

    return iso_part


def parse_date_only(value: DateLike) -> Optional[date]:
    """Parse a date-only value into a calendar date, or None when blank or malformed."""
    ymd = normalize_date_only(value)
    m = _ISO_DATE.match(ymd)
    if not m:
        return None
    yyyy, mm, dd = (int(p) for p in m.groups())
    try:
        return date(yyyy, mm, dd)
    except ValueError:
        return None


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse a naive local datetime such as a meeting time (YYYY-MM-DDTHH:MM[:SS])."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    m = _ISO_DATETIME.match(str(value).strip())
    if not m:
        return None
    yyyy, mo, dd, hh, mi, ss = m.groups()
    try:
        return datetime(int(yyyy), int(mo), int(dd), int(hh), int(mi), int(ss or 0))
    except ValueError:
        return None


def format_date_br(value: DateLike) -> str:
    """Format a date-only value as DD/MM/YYYY with no timezone involved."""
    ymd = normalize_date_only(value)
    if not ymd:
        return ""
    m = _ISO_DATE.match(ymd)
    if not m:
        return ymd
    yyyy, mm, dd = m.groups()
    return f"{dd}/{mm}/{yyyy}"


def format_datetime_br(value: Union[str, datetime, None]) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return ""
    return dt.strftime("%d/%m/%Y %H:%M")


def today_local() -> date:
    return date.today()


def to_date_string(value: date) -> str:
    return value.isoformat()


def to_datetime_local_string(value: datetime) -> str:
    """YYYY-MM-DDTHH:MM, the representation used for meeting_datetime."""
    return value.strftime("%Y-%m-%dT%H:%M")


def days_between(start: date, end: date) -> int:
    """Whole calendar days from start to end (negative when end is earlier)."""
    return (end - start).days


def week_start(day: date) -> date:
    """Monday of the week containing day."""
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def format_week(day: date) -> str:
    return day.strftime("%d/%m")
