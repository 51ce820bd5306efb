import math
import time
from typing import Callable, Optional

from assets_tracker.core.config import settings
from assets_tracker.core.logger import logger
from assets_tracker.managers.cache_manager import CacheManager

LAST_REFRESH_KEY = "last_refresh"


class RefreshCooldown:
    """
    Rate limit for manual "refresh live prices" actions: one refresh per
    owner per cooldown window, tracked by the last refresh timestamp.
    """

    def __init__(self, cache: CacheManager, seconds: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.cache = cache
        self.seconds = settings.REFRESH_COOLDOWN_SECONDS if seconds is None else seconds
        self.clock = clock

    def remaining(self, user_id: str) -> int:
        """Seconds until the next refresh is allowed, 0 if allowed now."""
        last = self.cache.get(LAST_REFRESH_KEY, user_id=user_id)
        if last is None:
            return 0
        left = self.seconds - (self.clock() - float(last))
        return max(0, math.ceil(left))

    def can_refresh(self, user_id: str) -> bool:
        return self.remaining(user_id) == 0

    def trigger(self, user_id: str) -> None:
        self.cache.set(self.clock(), LAST_REFRESH_KEY, user_id=user_id, ttl=self.seconds or 1)
        logger.info(f"Price refresh triggered for user {user_id}")
