# gantry/util/dates.py
from __future__ import annotations

import calendar
import datetime as dt
import re
from typing import Optional, Union

from zoneinfo import ZoneInfo

DateLike = Union[str, dt.date, dt.datetime, None]

ISO_FMT = "%Y-%m-%d"

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def parse_date(value: DateLike) -> Optional[dt.date]:
    """Parse a calendar date, returning None for empty or unparseable input.

    Accepts:
      - dt.date / dt.datetime (datetime is truncated to its date)
      - "YYYY-MM-DD"
      - ISO timestamps ("2024-01-05T10:00:00Z"), date part only
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value

    s = str(value).strip()
    if not s:
        return None
    try:
        return dt.datetime.strptime(s[:10], ISO_FMT).date()
    except ValueError:
        return None


def format_date(d: Optional[dt.date]) -> Optional[str]:
    if d is None:
        return None
    return d.strftime(ISO_FMT)


def days_between(start: dt.date, end: dt.date) -> int:
    """Signed whole-day difference (end - start)."""
    return (end - start).days


def add_days(d: dt.date, days: int) -> dt.date:
    return d + dt.timedelta(days=int(days))


def inclusive_days(start: dt.date, end: dt.date) -> int:
    """Length of an inclusive date range; 1 for a single-day range."""
    return days_between(start, end) + 1


def start_of_month(d: dt.date) -> dt.date:
    return d.replace(day=1)


def end_of_month(d: dt.date) -> dt.date:
    return add_months(start_of_month(d), 1) - dt.timedelta(days=1)


def add_months(d: dt.date, months: int) -> dt.date:
    idx = d.year * 12 + (d.month - 1) + int(months)
    year, month0 = divmod(idx, 12)
    first = dt.date(year, month0 + 1, 1)
    last_day = calendar.monthrange(year, month0 + 1)[1]
    return first.replace(day=min(d.day, last_day))


def start_of_week(d: dt.date) -> dt.date:
    """Monday of the ISO week containing `d`."""
    return d - dt.timedelta(days=d.weekday())


def resolve_tz(name: Optional[str]) -> dt.tzinfo:
    """Resolve "local", "UTC", a fixed offset ("+07:00") or an IANA zone name.

    Raises ValueError for identifiers that cannot be resolved.
    """
    s = (name or "").strip()
    low = s.lower()
    if low in ("", "local", "system"):
        return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc
    if low in ("utc", "z", "gmt"):
        return dt.timezone.utc

    m = _OFFSET_RE.match(s)
    if m:
        sign_s, hh_s, mm_s = m.groups()
        hh, mm = int(hh_s), int(mm_s)
        if hh > 23 or mm > 59:
            raise ValueError(f"Invalid timezone offset: {s!r}")
        sign = 1 if sign_s == "+" else -1
        return dt.timezone(sign * dt.timedelta(hours=hh, minutes=mm))

    try:
        return ZoneInfo(s)
    except Exception as ex:
        raise ValueError(f"Invalid timezone identifier: {s!r}") from ex


def today(tz_name: Optional[str] = "local") -> dt.date:
    return dt.datetime.now(tz=resolve_tz(tz_name)).date()
