# Core package - Infrastructure components
from .browser import CaptureError, NavigationError, ScreenshotCapture
from .cache import (
    CacheTier,
    DynamoDBCache,
    TieredCache,
    close_cache,
    create_cache,
    generate_cache_key,
    get_cache,
)
from .queue import (
    ConsumerEvent,
    KombuTransport,
    QueueConsumer,
    QueueUnavailableError,
    enqueue_screenshot_job,
)
from .rate_limit import RateLimiter, RateLimitExceededError, create_rate_limiter

__all__ = [
    # Browser
    "CaptureError",
    "NavigationError",
    "ScreenshotCapture",
    # Cache
    "CacheTier",
    "DynamoDBCache",
    "TieredCache",
    "close_cache",
    "create_cache",
    "generate_cache_key",
    "get_cache",
    # Queue
    "ConsumerEvent",
    "KombuTransport",
    "QueueConsumer",
    "QueueUnavailableError",
    "enqueue_screenshot_job",
    # Rate limiting
    "RateLimiter",
    "RateLimitExceededError",
    "create_rate_limiter",
]
