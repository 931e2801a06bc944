import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from bus_alerts.config import CACHE_TTL_SECONDS
from bus_alerts.feeds import FeedError

logger = logging.getLogger(__name__)


@dataclass
class AlertCache:
    ttl_seconds: float = CACHE_TTL_SECONDS
    data: Any = None
    loaded_at: Optional[float] = None
    is_updating: bool = False

    def get(self) -> Tuple[Any, Optional[float]]:
        return self.data, self.loaded_at

    def set(self, data: Any, now: Optional[float] = None) -> None:
        self.data = data
        self.loaded_at = time.time() if now is None else now

    def clear(self) -> None:
        self.data = None
        self.loaded_at = None

    def is_fresh(self, now: Optional[float] = None) -> bool:
        if self.data is None or self.loaded_at is None:
            return False
        now = time.time() if now is None else now
        return (now - self.loaded_at) < self.ttl_seconds

    async def refresh(self, source) -> None:
        """Fetch in the background; on failure the previous data is kept."""
        if self.is_updating:
            return

        self.is_updating = True
        try:
            self.set(await source.fetch())
        except FeedError as e:
            logger.warning("Background refresh failed, keeping cached feed: %s", e)
        finally:
            self.is_updating = False

    async def load(self, source) -> Tuple[Any, bool]:
        """
        Returns (data, stale). Stale data comes back immediately and the
        caller is expected to schedule `refresh`. With nothing cached the
        fetch happens inline and its FeedError propagates.
        """
        if self.is_fresh():
            return self.data, False
        if self.data is not None:
            return self.data, True

        self.set(await source.fetch())
        return self.data, False
