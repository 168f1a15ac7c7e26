"""Rate limiting for the intake API.

Two layers share the same storage backend:

- ``limiter``: slowapi decorator limits for public read endpoints.
- ``SubmissionRateLimiter``: explicit increment-and-check counters used by the
  submission anti-abuse guard (bucket + hashed client key).
"""

import logging
import math
import os
import time
from dataclasses import dataclass

from limits import RateLimitItemPerSecond, storage, strategies
from slowapi import Limiter
from slowapi.util import get_remote_address

from intake.core.config import settings
from intake.core.redis_client import (
    REDIS_DISABLED_URL,
    get_rate_limit_storage_uri,
    redis_available,
)

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")


def _resolve_storage_uri() -> str:
    # Falls back to in-memory if Redis is not available (dev/test mode)
    url = get_rate_limit_storage_uri()
    if IS_TESTING or url == REDIS_DISABLED_URL:
        return REDIS_DISABLED_URL
    if not redis_available():
        logger.warning("Redis unavailable for rate limiting, using in-memory counters")
        return REDIS_DISABLED_URL
    return url


STORAGE_URI = _resolve_storage_uri()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=STORAGE_URI,
    enabled=not IS_TESTING,
)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    current: int
    limit: int
    retry_after: int


class SubmissionRateLimiter:
    """Fixed-window counter per (bucket, client key).

    ``hit`` on the underlying storage is an atomic increment (lock in memory,
    Lua script in Redis), so concurrent requests cannot both pass the check.
    """

    def __init__(
        self,
        storage_uri: str = REDIS_DISABLED_URL,
        *,
        max_requests: int = settings.RATE_LIMIT_FORM_SUBMIT,
        window_seconds: int = settings.RATE_LIMIT_FORM_SUBMIT_WINDOW_SECONDS,
    ):
        self._storage = storage.storage_from_string(storage_uri)
        self._strategy = strategies.FixedWindowRateLimiter(self._storage)
        self.max_requests = max_requests
        self.window_seconds = window_seconds

    @property
    def _item(self) -> RateLimitItemPerSecond:
        return RateLimitItemPerSecond(self.max_requests, self.window_seconds)

    def attempt(self, bucket: str, client_key: str) -> RateLimitResult:
        item = self._item
        allowed = self._strategy.hit(item, bucket, client_key)
        stats = self._strategy.get_window_stats(item, bucket, client_key)
        current = self.max_requests - stats.remaining
        if allowed:
            return RateLimitResult(True, current, self.max_requests, 0)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return RateLimitResult(False, current, self.max_requests, retry_after)

    def increment(self, bucket: str, client_key: str) -> None:
        self._strategy.hit(self._item, bucket, client_key)

    def reset(self) -> None:
        self._storage.reset()
