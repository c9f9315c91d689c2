"""Per-IP per-path rate limiter for the credential-accepting auth endpoints."""
import logging
import math
import threading
import time
from collections import defaultdict, deque

from fastapi import Request

from app.utils.errors import TooManyRequests
from app.utils.helpers import get_client_ip

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """In-memory sliding window buckets: key -> deque[timestamps].

    State is per process; each app instance owns one limiter.
    """

    def __init__(self, limit: int, window_seconds: int, clock=time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets = defaultdict(deque)
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "SlidingWindowLimiter":
        return cls(settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_PERIOD_SECONDS)

    def hit(self, key: str) -> int:
        """Record a request; return 0 if allowed, else seconds until a slot frees up."""
        now = self._clock()
        window_start = now - self.window_seconds

        with self._lock:
            bucket = self._buckets[key]
            # Drop old entries outside the window
            while bucket and bucket[0] <= window_start:
                bucket.popleft()

            if len(bucket) >= self.limit:
                return max(1, math.ceil(bucket[0] - window_start))

            bucket.append(now)
            return 0

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


async def rate_limit(request: Request):
    settings = request.app.state.settings
    if not settings.RATE_LIMIT_ENABLED:
        return True

    client_ip = get_client_ip(request)
    key = f"{client_ip}:{request.url.path}"

    retry_after = request.app.state.rate_limiter.hit(key)
    if retry_after:
        logger.warning("Rate limit hit on %s from %s (retry in %ss)", request.url.path, client_ip, retry_after)
        raise TooManyRequests(retry_after)
    return True
