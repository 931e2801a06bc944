from datetime import date, datetime
from typing import Iterable, List, Optional

import pytz

from bus_alerts.models import Alert


def _local_date(dt: datetime, tz) -> date:
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(tz).date()


def today_in(tz) -> date:
    return datetime.now(tz).date()


def starts_today(alert: Alert, today: date, tz=pytz.utc) -> bool:
    return alert.start is not None and _local_date(alert.start, tz) == today


def created_today(alert: Alert, today: date, tz=pytz.utc) -> bool:
    return alert.created_at is not None and _local_date(alert.created_at, tz) == today


def is_relevant_for_today(alert: Alert, today: date, tz=pytz.utc) -> bool:
    """Active on `today` by calendar date; an alert with no end stays active."""
    if alert.start is None:
        return False

    if _local_date(alert.start, tz) > today:
        return False
    if alert.end is None:
        return True
    return today <= _local_date(alert.end, tz)


def applies_to_route(alert: Alert, route: Optional[str]) -> bool:
    if not route or not route.strip():
        return True

    wanted = route.strip().lower()
    return any(r.lower() == wanted for r in alert.routes)


def _sort_key(alert: Alert) -> datetime:
    dt = alert.start or alert.created_at
    if dt is None:
        return datetime.min.replace(tzinfo=pytz.utc)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt


def todays_alerts(
    alerts: Iterable[Alert], today: date, route: Optional[str] = None, tz=pytz.utc
) -> List[Alert]:
    """Alerts active today on `route` (any route if None), most recent first."""
    out = [a for a in alerts if is_relevant_for_today(a, today, tz) and applies_to_route(a, route)]
    out.sort(key=_sort_key, reverse=True)
    return out
