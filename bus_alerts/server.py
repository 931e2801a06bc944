import hmac
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import pytz
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from bus_alerts.cache import AlertCache
from bus_alerts.config import RenderConfig, Settings, configure_logging, get_settings
from bus_alerts.feeds import (
    FeedError,
    GtfsRtFeedSource,
    SiriFeedSource,
    alert_from_situation,
    extract_situations,
)
from bus_alerts.filters import today_in, todays_alerts
from bus_alerts.models import Alert
from bus_alerts.normalize import normalize
from bus_alerts.paginate import paginate_alerts
from bus_alerts.sample_data import get_sample_data

logger = logging.getLogger(__name__)

DEMO_API_KEY = "DEMO"

cache = AlertCache()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    cache.ttl_seconds = settings.cache_ttl_seconds
    logger.info("Serving %s feed from %s", settings.feed_format, settings.feed_url)
    yield


app = FastAPI(title="NYC Bus Service Alerts", lifespan=lifespan)


# -------------------------
# Dependencies
# -------------------------
def _now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


def _auth_error(status: int, error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status,
        detail={"error": error, "message": message, "timestamp": _now_iso()},
    )


def require_api_key(
    apiKey: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings),
) -> bool:
    """Returns True for demo mode."""
    if not apiKey:
        raise _auth_error(
            401, "Unauthorized", "API key is required. Please provide apiKey parameter in the URL"
        )
    if apiKey == DEMO_API_KEY:
        return True
    if settings.api_key is None:
        raise _auth_error(500, "Server configuration error", "API key not configured on server")
    if not hmac.compare_digest(apiKey.encode(), settings.api_key.get_secret_value().encode()):
        raise _auth_error(401, "Unauthorized", "Invalid API key")
    return False


def get_feed_source(settings: Settings = Depends(get_settings)):
    if settings.feed_format == "gtfs-rt":
        return GtfsRtFeedSource(settings.feed_url)
    key = settings.feed_api_key.get_secret_value() if settings.feed_api_key else None
    return SiriFeedSource(settings.feed_url, key)


def get_cache() -> AlertCache:
    return cache


# -------------------------
# Feed loading
# -------------------------
@dataclass
class LoadedFeed:
    alerts: List[Alert]
    total: int
    cached_at: Optional[float]


async def load_feed(
    is_demo: bool,
    source,
    feed_cache: AlertCache,
    background_tasks: BackgroundTasks,
) -> LoadedFeed:
    if is_demo:
        situations = extract_situations(get_sample_data())
        return LoadedFeed([alert_from_situation(s) for s in situations], len(situations), time.time())

    doc, stale = await feed_cache.load(source)
    if stale:
        background_tasks.add_task(feed_cache.refresh, source)
    return LoadedFeed(source.extract_alerts(doc), source.situation_count(doc), feed_cache.loaded_at)


def _feed_failure(error: str, e: Exception) -> JSONResponse:
    logger.error("%s: %s", error, e)
    return JSONResponse(
        status_code=500,
        content={"error": error, "details": str(e), "timestamp": _now_iso()},
    )


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _alert_json(alert: Alert) -> dict:
    return {
        "summary": alert.summary,
        "description": alert.description,
        "effectiveStart": _iso(alert.start),
        "effectiveEnd": _iso(alert.end),
        "affectedRoutes": list(alert.routes),
        "createdAt": _iso(alert.created_at),
    }


# -------------------------
# API
# -------------------------
@app.get("/")
async def root():
    return {"ok": True}


@app.get("/alerts")
async def alerts(
    background_tasks: BackgroundTasks,
    route: Optional[str] = Query(None, description="Route id (e.g. B46); filters alerts to this route."),
    is_demo: bool = Depends(require_api_key),
    settings: Settings = Depends(get_settings),
    source=Depends(get_feed_source),
    feed_cache: AlertCache = Depends(get_cache),
):
    try:
        feed = await load_feed(is_demo, source, feed_cache, background_tasks)
    except FeedError as e:
        return _feed_failure("Failed to fetch bus alerts", e)

    todays = todays_alerts(feed.alerts, today_in(settings.tz), route, settings.tz)
    now = time.time()
    cached_at = feed.cached_at

    return {
        "fetchedAt": _now_iso(),
        "cachedAt": _iso(datetime.fromtimestamp(cached_at, tz=pytz.utc)) if cached_at else None,
        "cacheAge": int((now - cached_at) // 60) if cached_at else None,
        "totalSituations": feed.total,
        "situationsForToday": len(todays),
        "alerts": [_alert_json(a) for a in todays],
    }


@app.get("/summaries")
async def summaries(
    background_tasks: BackgroundTasks,
    maxStrings: int = Query(50, ge=1),
    maxCharacters: Optional[int] = Query(
        None, ge=1, description="Split each summary into strings of at most this many characters."
    ),
    route: Optional[str] = Query(None),
    is_demo: bool = Depends(require_api_key),
    settings: Settings = Depends(get_settings),
    source=Depends(get_feed_source),
    feed_cache: AlertCache = Depends(get_cache),
):
    try:
        feed = await load_feed(is_demo, source, feed_cache, background_tasks)
    except FeedError as e:
        return _feed_failure("Failed to fetch bus alert summaries", e)

    todays = todays_alerts(feed.alerts, today_in(settings.tz), route, settings.tz)
    if maxCharacters is not None:
        # one-line screens; maxStrings never cuts an alert short
        config = RenderConfig(max_chars_per_line=maxCharacters, lines_per_screen=1, max_total_screens=maxStrings)
        return {"summaries": [screen[0] for screen in paginate_alerts(todays, config, settings.tz)]}

    texts = [t for t in (normalize(a, settings.tz) for a in todays) if t]
    return {"summaries": texts[:maxStrings]}


@app.get("/screens")
async def screens(
    background_tasks: BackgroundTasks,
    maxCharacters: Optional[int] = Query(None, ge=1),
    linesPerScreen: Optional[int] = Query(None, ge=1),
    maxScreens: Optional[int] = Query(None, ge=1),
    maxAlerts: Optional[int] = Query(None, ge=1),
    route: Optional[str] = Query(None),
    is_demo: bool = Depends(require_api_key),
    settings: Settings = Depends(get_settings),
    source=Depends(get_feed_source),
    feed_cache: AlertCache = Depends(get_cache),
):
    config = RenderConfig(
        max_chars_per_line=maxCharacters or settings.default_max_characters,
        lines_per_screen=linesPerScreen or settings.default_lines_per_screen,
        max_total_screens=maxScreens,
        max_alerts=maxAlerts,
    )

    try:
        feed = await load_feed(is_demo, source, feed_cache, background_tasks)
    except FeedError as e:
        return _feed_failure("Failed to fetch bus alert screens", e)

    todays = todays_alerts(feed.alerts, today_in(settings.tz), route, settings.tz)
    return {
        "screens": paginate_alerts(todays, config, settings.tz),
        "linesPerScreen": config.lines_per_screen,
        "maxCharacters": config.max_chars_per_line,
    }
