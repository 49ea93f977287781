"""
Per-client rate limiting for anonymous roast requests.

A fixed window counter lives in Redis under ``rate_limit:{client}``: the
first request of a window sets the expiry, every request increments it.
Cache hits never reach the limiter, only requests that would queue work.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from config import Settings, settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit:"


class RateLimitExceededError(RuntimeError):
    """Raised when a client has used up its roast requests for the window"""

    def __init__(self, client_id: str, limit: int, retry_after: int):
        self.client_id = client_id
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(f"Rate limit of {limit} roasts exceeded for {client_id}")


class RateLimiter:
    """
    Redis-backed fixed window limiter.

    If Redis is unreachable the request is let through and the failure is
    logged; a cache outage must not take the roast endpoint down with it.
    """

    def __init__(self, client: "redis.Redis", limit: int, window_seconds: int):
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, client_id: str) -> int:
        """
        Count one request for ``client_id``.

        Returns:
            Requests made in the current window, this one included
            (0 when the limiter is disabled or Redis is unavailable)

        Raises:
            RateLimitExceededError: If the count is above the limit
        """
        if self.limit <= 0:
            return 0

        key = f"{KEY_PREFIX}{client_id}"
        try:
            count = await self.client.incr(key)
            if count == 1:
                await self.client.expire(key, self.window_seconds)
            retry_after = 0
            if count > self.limit:
                retry_after = await self.client.ttl(key)
                if retry_after < 0:
                    # Counter lost its expiry; never lock a client out for good
                    await self.client.expire(key, self.window_seconds)
                    retry_after = self.window_seconds
        except Exception as e:
            logger.error(f"❌ Rate limit check failed for {client_id}, allowing request: {e}")
            return 0

        if count > self.limit:
            logger.warning(f"🚫 Rate limit hit for {client_id} ({count}/{self.limit})")
            raise RateLimitExceededError(client_id, self.limit, retry_after)
        return count

    async def close(self):
        await self.client.aclose()


def create_rate_limiter(config: Optional[Settings] = None) -> RateLimiter:
    config = config or settings
    return RateLimiter(
        redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        ),
        limit=config.RATE_LIMIT_REQUESTS,
        window_seconds=config.RATE_LIMIT_WINDOW,
    )
