import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytz
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from bus_alerts.models import Alert

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 20

AGENCY_PREFIX = re.compile(r"^(MTA NYCT_|MTABC_)")


class FeedError(RuntimeError):
    """The upstream feed could not be fetched or decoded."""


async def fetch_bytes(url: str, params: Optional[Dict[str, str]] = None) -> bytes:
    try:
        async with httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS) as client:
            r = await client.get(url, params=params)
            r.raise_for_status()
            return r.content
    except httpx.HTTPError as e:
        raise FeedError(f"feed request failed: {e}") from e


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt


# -------------------------
# SIRI (MTA Bus Time JSON)
# -------------------------
def extract_situations(doc: Any) -> List[dict]:
    try:
        delivery = doc["Siri"]["ServiceDelivery"]["SituationExchangeDelivery"][0]
        situations = delivery["Situations"]["PtSituationElement"]
    except (KeyError, IndexError, TypeError):
        return []
    return situations if isinstance(situations, list) else []


def _siri_routes(situation: dict) -> Tuple[str, ...]:
    journeys = (
        ((situation.get("Affects") or {}).get("VehicleJourneys") or {}).get("AffectedVehicleJourney")
        or []
    )
    routes: List[str] = []
    for j in journeys:
        if not isinstance(j, dict):
            continue
        ref = AGENCY_PREFIX.sub("", str(j.get("LineRef") or "")).strip()
        if ref and ref not in routes:
            routes.append(ref)
    return tuple(routes)


def alert_from_situation(situation: dict) -> Alert:
    window = situation.get("PublicationWindow") or {}
    return Alert(
        summary=situation.get("Summary"),
        description=situation.get("Description"),
        start=parse_timestamp(window.get("StartTime")),
        end=parse_timestamp(window.get("EndTime")),
        created_at=parse_timestamp(situation.get("CreationTime")),
        routes=_siri_routes(situation),
    )


class SiriFeedSource:
    def __init__(self, url: str, api_key: Optional[str]):
        self.url = url
        self.api_key = api_key

    async def fetch(self) -> dict:
        if not self.api_key:
            raise FeedError("MTA_BUS_TIME_API_KEY is not configured")

        logger.info("Loading SIRI situations…")
        body = await fetch_bytes(self.url, params={"key": self.api_key})
        try:
            doc = json.loads(body)
        except ValueError as e:
            raise FeedError(f"feed is not valid JSON: {e}") from e
        logger.info("SIRI loaded: situations=%d", len(extract_situations(doc)))
        return doc

    def situation_count(self, doc: Any) -> int:
        return len(extract_situations(doc))

    def extract_alerts(self, doc: Any) -> List[Alert]:
        return [alert_from_situation(s) for s in extract_situations(doc) if isinstance(s, dict)]


# -------------------------
# GTFS-realtime
# -------------------------
def _translation(text: gtfs_realtime_pb2.TranslatedString) -> Optional[str]:
    if text.translation:
        return text.translation[0].text.strip() or None
    return None


def _posix(ts: int) -> Optional[datetime]:
    return datetime.fromtimestamp(ts, tz=pytz.utc) if ts else None


def alert_from_gtfs_rt(alert: gtfs_realtime_pb2.Alert) -> Alert:
    start = end = None
    if alert.active_period:
        period = alert.active_period[0]
        start = _posix(period.start)
        end = _posix(period.end)

    routes: List[str] = []
    for ent in alert.informed_entity:
        route_id = ent.route_id.strip()
        if route_id and route_id not in routes:
            routes.append(route_id)
    return Alert(
        summary=_translation(alert.header_text),
        description=_translation(alert.description_text),
        start=start,
        end=end,
        routes=tuple(routes),
    )


class GtfsRtFeedSource:
    def __init__(self, url: str):
        self.url = url

    async def fetch(self) -> gtfs_realtime_pb2.FeedMessage:
        logger.info("Loading GTFS-RT alerts…")
        body = await fetch_bytes(self.url)

        msg = gtfs_realtime_pb2.FeedMessage()
        try:
            msg.ParseFromString(body)
        except DecodeError as e:
            raise FeedError(f"feed is not a GTFS-realtime message: {e}") from e

        logger.info("GTFS-RT loaded: alerts=%d", self.situation_count(msg))
        return msg

    def situation_count(self, msg: gtfs_realtime_pb2.FeedMessage) -> int:
        return sum(1 for ent in msg.entity if ent.HasField("alert"))

    def extract_alerts(self, msg: gtfs_realtime_pb2.FeedMessage) -> List[Alert]:
        return [alert_from_gtfs_rt(ent.alert) for ent in msg.entity if ent.HasField("alert")]
