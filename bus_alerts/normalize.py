from datetime import datetime
from typing import Optional

import pytz

from bus_alerts.models import Alert

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _local(dt: datetime, tz) -> datetime:
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(tz)


def _day(d: datetime) -> str:
    return f"{MONTHS[d.month - 1]} {d.day}"


def _clock(d: datetime) -> str:
    hour = d.hour % 12 or 12
    suffix = "am" if d.hour < 12 else "pm"
    return f"{hour}:{d.minute:02d}{suffix}"


def date_prefix(start: Optional[datetime], end: Optional[datetime], tz=pytz.utc) -> str:
    if start is None:
        return ""

    s = _local(start, tz)
    if end is None:
        return f"{_day(s)}, {s.year} {_clock(s)} – now: "

    e = _local(end, tz)
    if s.date() == e.date():
        return f"{_day(s)}, {s.year}: "
    if s.year == e.year and s.month == e.month:
        return f"{_day(s)}–{e.day}, {s.year}: "
    if s.year == e.year:
        return f"{_day(s)} – {_day(e)}, {s.year}: "
    return f"{_day(s)}, {s.year} – {_day(e)}, {e.year}: "


def clean_summary(summary: str) -> str:
    text = summary.strip()
    if text.endswith("."):
        text = text[:-1]
    return " ".join(text.split())


def normalize(alert: Alert, tz=pytz.utc) -> Optional[str]:
    """
    Single display string for an alert, e.g. 'Sep 1–2, 2025: B46 detoured'.
    Returns None when the alert has no summary to show.
    """
    if not alert.summary or not alert.summary.strip():
        return None

    summary = clean_summary(alert.summary)
    if not summary:
        return None

    return date_prefix(alert.start, alert.end, tz) + summary
