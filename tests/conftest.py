"""Shared test fixtures.

In-process fakes stand in for Redis, the queue broker, object storage and
the metrics sink. No network access is needed.
"""

import asyncio
import fnmatch
import io
from typing import Any, Dict, List, Optional

import pytest
from PIL import Image
from redis.exceptions import ConnectionError as RedisConnectionError

from models import Issue, ProviderAnalysis, RoastResult, ScoreBreakdown


# === FAKES ===


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRedis:
    """Subset of redis.asyncio.Redis used by TieredCache and RateLimiter, with TTLs on a fake clock"""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.store: Dict[str, Any] = {}
        self.expires: Dict[str, float] = {}
        self.hashes: Dict[str, Dict[str, int]] = {}
        self.fail = False
        self.promotion_delay = 0.0
        self.scan_calls = 0
        self._cursors: Dict[int, str] = {}
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _alive(self, key: str) -> bool:
        expires_at = self.expires.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self.store.pop(key, None)
            self.expires.pop(key, None)
        return key in self.store

    async def get(self, key: str):
        self._check()
        return self.store[key] if self._alive(key) else None

    async def setex(self, key: str, ttl: int, value: str):
        self._check()
        if key.startswith("hot:") and self.promotion_delay:
            await asyncio.sleep(self.promotion_delay)
        self.store[key] = value
        self.expires[key] = self.clock() + ttl
        return True

    async def incr(self, key: str):
        self._check()
        value = int(self.store[key]) + 1 if self._alive(key) else 1
        self.store[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int):
        self._check()
        if not self._alive(key):
            return False
        self.expires[key] = self.clock() + seconds
        return True

    async def ttl(self, key: str):
        self._check()
        if not self._alive(key):
            return -2
        expires_at = self.expires.get(key)
        return -1 if expires_at is None else int(expires_at - self.clock())

    async def hincrby(self, name: str, field: str, amount: int = 1):
        self._check()
        bucket = self.hashes.setdefault(name, {})
        bucket[field] = bucket.get(field, 0) + amount
        return bucket[field]

    async def hgetall(self, name: str):
        self._check()
        return {k: str(v) for k, v in self.hashes.get(name, {}).items()}

    async def scan(self, cursor: int = 0, match: str = "*", count: int = 10):
        self._check()
        self.scan_calls += 1
        # Cursors remember the last key returned, so deletes between calls skip nothing
        after = self._cursors.get(cursor) if cursor else None
        keys = sorted(k for k in list(self.store) if self._alive(k) and (after is None or k > after))
        batch = keys[:count]
        next_cursor = 0
        if len(keys) > count:
            next_cursor = len(self._cursors) + 1
            self._cursors[next_cursor] = batch[-1]
        return next_cursor, [k for k in batch if fnmatch.fnmatchcase(k, match)]

    async def delete(self, *keys: str):
        self._check()
        deleted = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.expires.pop(key, None)
                deleted += 1
        return deleted

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        self.closed = True


class FakeMessage:
    def __init__(self, payload: Any):
        self.payload = payload
        self.acked = False

    def ack(self):
        self.acked = True


class FakeTransport:
    """In-memory stand-in for KombuTransport"""

    def __init__(self, messages: Optional[List[Any]] = None):
        self.pending: List[FakeMessage] = [FakeMessage(m) for m in (messages or [])]
        self.published: List[Dict[str, Any]] = []
        self.acked: List[FakeMessage] = []
        self.receive_errors = 0
        self.publish_error: Optional[Exception] = None
        self.closed = False

    async def publish(self, body: Dict[str, Any]):
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append(body)

    async def receive(self, timeout: float):
        if self.receive_errors:
            self.receive_errors -= 1
            raise ConnectionError("broker unreachable")
        if self.pending:
            return self.pending.pop(0)
        await asyncio.sleep(0.01)
        return None

    async def ack(self, message: FakeMessage):
        message.ack()
        self.acked.append(message)

    async def close(self):
        self.closed = True


class FakeStorage:
    def __init__(self, fail: bool = False):
        self.objects: Dict[str, bytes] = {}
        self.fail = fail

    async def upload(self, data: bytes, key: str, content_type: str = "image/jpeg") -> str:
        from utils.clients.storage import StorageError

        if self.fail:
            raise StorageError(f"Failed to upload {key}")
        self.objects[key] = data
        return f"https://cdn.example.com/{key}"


class RecordingMetrics:
    def __init__(self):
        self.points: List[tuple] = []

    async def put(self, name: str, value: float, unit: str = "Count"):
        self.points.append((name, value, unit))

    async def increment(self, name: str):
        await self.put(name, 1, "Count")

    async def timing(self, name: str, milliseconds: float):
        await self.put(name, milliseconds, "Milliseconds")

    def names(self) -> List[str]:
        return [name for name, _, _ in self.points]


def make_jpeg(width: int = 1440, height: int = 900, color=(200, 60, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


# === FIXTURES ===


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock: FakeClock) -> FakeRedis:
    return FakeRedis(fake_clock)


@pytest.fixture
def desktop_jpeg() -> bytes:
    return make_jpeg()


@pytest.fixture
def mobile_jpeg() -> bytes:
    return make_jpeg(375, 812, (30, 120, 200))


@pytest.fixture
def sample_analysis() -> ProviderAnalysis:
    return ProviderAnalysis(
        provider_name="gpt",
        weight=0.5,
        roast="Your headline looks like a ransom note.",
        score=6,
        breakdown=ScoreBreakdown(headline=0, trust=1, visual=2, cta=1, speed=1),
        issues=[
            Issue(issue="Weak headline", location="Hero", impact="high", fix="Say what you do"),
        ],
        quick_wins=["Rewrite the headline"],
    )


@pytest.fixture
def sample_result() -> RoastResult:
    return RoastResult(
        id="roast-1",
        url="https://example.com/",
        roast="Your CTA button hides like it owes money.",
        score=7,
        breakdown=ScoreBreakdown(headline=2, trust=1, visual=1, cta=1, speed=2),
        issues=[Issue(issue="Hidden CTA", location="Hero", impact="high", fix="Make it pop")],
        quick_wins=["Bigger button"],
        desktop_screenshot_url="https://cdn.example.com/roast-1/desktop.jpg",
        mobile_screenshot_url="https://cdn.example.com/roast-1/mobile.jpg",
        share_card_url="https://cdn.example.com/roast-1/share.jpg",
        model_agreement=0.9,
        timestamp=1_700_000_000_000,
    )
