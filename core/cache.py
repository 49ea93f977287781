"""
Tiered result cache for the Roast Engine.

Values live in three TTL tiers (hot / warm / cold) that share one Redis
connection and differ only in key prefix and expiry. A hit in a colder tier
is copied into the hot tier in the background ("promotion"); the read never
waits for it. Every backend error degrades to a miss or a skipped write:
caching speeds the pipeline up but is never required for correctness.
"""

import asyncio
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

import boto3
import redis.asyncio as redis
from pydantic import BaseModel

from config import Settings, settings
from models import CacheStats
from utils.security import canonicalize_url

logger = logging.getLogger(__name__)

STATS_KEY = "stats:cache"
DEFAULT_COST_PER_REQUEST = 0.03


class CacheTier(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


@dataclass(frozen=True)
class TierConfig:
    name: str
    ttl: int
    prefix: str


def build_tier_table(config: Optional[Settings] = None) -> Dict[CacheTier, TierConfig]:
    config = config or settings
    return {
        CacheTier.HOT: TierConfig("hot", config.CACHE_HOT_TTL, "hot:"),
        CacheTier.WARM: TierConfig("warm", config.CACHE_WARM_TTL, "warm:"),
        CacheTier.COLD: TierConfig("cold", config.CACHE_COLD_TTL, "cold:"),
    }


def generate_cache_key(url: str, options: Optional[Dict[str, Any]] = None) -> str:
    """
    Derive the cache key for a URL and an options map.

    The URL is canonicalized first (tracking parameters, default ports and
    fragments removed) and options are serialized with sorted keys, so the
    key is stable across calls and processes.

    Raises:
        InvalidUrlError: If the URL cannot be parsed
    """
    payload = canonicalize_url(url)
    if options:
        payload += json.dumps(options, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def serialize_value(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    return json.dumps(value, separators=(",", ":"))


class RoastCache(ABC):
    """Operations every cache backend supports"""

    def __init__(self):
        self._hits = 0
        self._misses = 0
        self._bytes = 0

    @abstractmethod
    async def get(self, key: str, tier: CacheTier = CacheTier.WARM) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, tier: CacheTier = CacheTier.WARM) -> bool:
        ...

    @abstractmethod
    async def invalidate_pattern(self, pattern: str) -> int:
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    async def lookup(self, key: str) -> Optional[Any]:
        """Find a key in whichever tier holds it"""
        return await self.get(key)

    async def stats(self) -> CacheStats:
        return self._local_stats()

    async def close(self):
        return None

    def _local_stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total else 0.0,
            total_bytes=self._bytes,
        )

    async def cost_savings(self, cost_per_request: float = DEFAULT_COST_PER_REQUEST) -> Dict[str, float]:
        """Estimate model spend avoided by cache hits"""
        hits = (await self.stats()).hits
        return {"savedRequests": hits, "savedCosts": round(hits * cost_per_request, 4)}


class TieredCache(RoastCache):
    """
    Redis-backed cache with hot / warm / cold tiers.
    """

    def __init__(
        self,
        client: "redis.Redis",
        tiers: Optional[Dict[CacheTier, TierConfig]] = None,
        scan_count: Optional[int] = None,
    ):
        super().__init__()
        self.client = client
        self.tiers = tiers or build_tier_table()
        self.scan_count = scan_count or settings.CACHE_SCAN_COUNT
        self._promotions: Set[asyncio.Task] = set()

    def _full_key(self, key: str, tier: CacheTier) -> str:
        return f"{self.tiers[tier].prefix}{key}"

    async def _record(self, field: str, amount: int = 1):
        if field == "hits":
            self._hits += amount
        elif field == "misses":
            self._misses += amount
        else:
            self._bytes += amount

        try:
            await self.client.hincrby(STATS_KEY, field, amount)
        except Exception as e:
            logger.warning(f"⚠️  Cache stats update failed: {e}")

    async def _fetch(self, key: str, tier: CacheTier) -> Optional[Any]:
        full_key = self._full_key(key, tier)
        try:
            cached = await self.client.get(full_key)
        except Exception as e:
            logger.error(f"Cache GET failed for key '{full_key}': {e}")
            return None

        if cached is None:
            return None

        try:
            value = json.loads(cached)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"⚠️  Discarding undecodable cache entry '{full_key}': {e}")
            return None

        if tier != CacheTier.HOT:
            self._schedule_promotion(key, cached)
        return value

    async def get(self, key: str, tier: CacheTier = CacheTier.WARM) -> Optional[Any]:
        """
        Read a value from one tier.

        A hit outside the hot tier schedules a promotion into the hot tier and
        returns immediately with the value that was found.

        Returns:
            The decoded value, or None on a miss or backend error
        """
        value = await self._fetch(key, tier)
        await self._record("hits" if value is not None else "misses")
        return value

    async def lookup(self, key: str) -> Optional[Any]:
        """Read hot, then warm, then cold; counts one hit or one miss"""
        for tier in (CacheTier.HOT, CacheTier.WARM, CacheTier.COLD):
            value = await self._fetch(key, tier)
            if value is not None:
                await self._record("hits")
                return value
        await self._record("misses")
        return None

    def _schedule_promotion(self, key: str, raw_value: str):
        task = asyncio.create_task(self._promote(key, raw_value))
        self._promotions.add(task)
        task.add_done_callback(self._promotions.discard)

    async def _promote(self, key: str, raw_value: str):
        hot = self.tiers[CacheTier.HOT]
        try:
            await self.client.setex(f"{hot.prefix}{key}", hot.ttl, raw_value)
        except Exception as e:
            logger.warning(f"⚠️  Cache promotion failed for '{key}': {e}")

    async def wait_for_promotions(self):
        if self._promotions:
            await asyncio.gather(*list(self._promotions))

    async def set(self, key: str, value: Any, tier: CacheTier = CacheTier.WARM) -> bool:
        """
        Store a value in a tier with that tier's TTL.

        Returns:
            True if stored; False if the backend rejected the write
        """
        config = self.tiers[tier]
        full_key = f"{config.prefix}{key}"
        try:
            serialized = serialize_value(value)
            await self.client.setex(full_key, config.ttl, serialized)
        except Exception as e:
            logger.error(f"Cache SET failed for key '{full_key}': {e}")
            return False

        await self._record("size", len(serialized.encode("utf-8")))
        return True

    async def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete keys matching a glob in every tier.

        Keys are found with cursor-based SCAN and deleted batch by batch, so
        the keyspace is never listed in one blocking call.

        Returns:
            Number of keys deleted
        """
        deleted = 0
        for config in self.tiers.values():
            match = f"{config.prefix}{pattern}"
            cursor = 0
            try:
                while True:
                    cursor, keys = await self.client.scan(
                        cursor=cursor, match=match, count=self.scan_count
                    )
                    if keys:
                        deleted += await self.client.delete(*keys)
                    if cursor == 0:
                        break
            except Exception as e:
                logger.error(f"Cache invalidation failed for pattern '{match}': {e}")

        logger.info(f"🗑️  Invalidated {deleted} cache entries matching '{pattern}'")
        return deleted

    async def stats(self) -> CacheStats:
        """Persisted hit / miss / size counters, or this process's counters if Redis is down"""
        try:
            stored = await self.client.hgetall(STATS_KEY)
        except Exception as e:
            logger.warning(f"⚠️  Cache stats unavailable, using local counters: {e}")
            return self._local_stats()

        hits = int(stored.get("hits", 0))
        misses = int(stored.get("misses", 0))
        total = hits + misses
        return CacheStats(
            hits=hits,
            misses=misses,
            hit_rate=hits / total if total else 0.0,
            total_bytes=int(stored.get("size", 0)),
        )

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error(f"❌ Redis health check failed: {e}")
            return False

    async def close(self):
        await self.wait_for_promotions()
        try:
            await self.client.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")


class DynamoDBCache(RoastCache):
    """
    Single-table cache with one flat TTL.

    Tiers collapse into the same item; expiry is checked at read time and
    expired items are deleted best-effort. Pattern invalidation would need a
    table scan and is therefore not performed.
    """

    def __init__(
        self,
        table_name: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        table=None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.table_name = table_name or settings.CACHE_TABLE_NAME
        self.ttl_seconds = ttl_seconds or settings.CACHE_DYNAMODB_TTL
        self._table = table or boto3.resource(
            "dynamodb", region_name=settings.AWS_REGION
        ).Table(self.table_name)
        self._clock = clock

    async def get(self, key: str, tier: CacheTier = CacheTier.WARM) -> Optional[Any]:
        try:
            response = await asyncio.to_thread(self._table.get_item, Key={"pk": key})
        except Exception as e:
            logger.error(f"DynamoDB cache GET failed for key '{key}': {e}")
            self._misses += 1
            return None

        item = response.get("Item")
        if not item:
            self._misses += 1
            return None

        ttl = item.get("ttl")
        if ttl is not None and int(ttl) < int(self._clock()):
            self._misses += 1
            await self._delete_quietly(key)
            return None

        try:
            value = json.loads(item["value"])
        except (KeyError, json.JSONDecodeError, TypeError) as e:
            logger.warning(f"⚠️  Discarding undecodable DynamoDB cache item '{key}': {e}")
            self._misses += 1
            return None

        self._hits += 1
        return value

    async def _delete_quietly(self, key: str):
        try:
            await asyncio.to_thread(self._table.delete_item, Key={"pk": key})
        except Exception as e:
            logger.warning(f"⚠️  Failed to delete expired cache item '{key}': {e}")

    async def set(self, key: str, value: Any, tier: CacheTier = CacheTier.WARM) -> bool:
        try:
            serialized = serialize_value(value)
            item = {"pk": key, "ttl": int(self._clock()) + self.ttl_seconds, "value": serialized}
            await asyncio.to_thread(self._table.put_item, Item=item)
        except Exception as e:
            logger.error(f"DynamoDB cache SET failed for key '{key}': {e}")
            return False

        self._bytes += len(serialized.encode("utf-8"))
        return True

    async def invalidate_pattern(self, pattern: str) -> int:
        logger.warning(
            f"⚠️  Pattern invalidation ('{pattern}') is not supported by the DynamoDB "
            "cache; expired items are removed on read"
        )
        return 0

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._table.load)
            return True
        except Exception as e:
            logger.error(f"❌ DynamoDB health check failed: {e}")
            return False


def create_cache(config: Optional[Settings] = None) -> RoastCache:
    config = config or settings
    backend = config.CACHE_BACKEND.lower()
    if backend == "dynamodb":
        logger.info(f"🗄️  Using DynamoDB cache table '{config.CACHE_TABLE_NAME}'")
        return DynamoDBCache(config.CACHE_TABLE_NAME, config.CACHE_DYNAMODB_TTL)
    if backend != "redis":
        logger.warning(f"⚠️  Unknown CACHE_BACKEND '{config.CACHE_BACKEND}', using redis")
    return TieredCache(
        redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        ),
        tiers=build_tier_table(config),
        scan_count=config.CACHE_SCAN_COUNT,
    )


# Global cache instance
roast_cache: Optional[RoastCache] = None


def get_cache() -> RoastCache:
    """
    Get or create the global cache instance.

    Returns:
        RoastCache for the configured backend
    """
    global roast_cache

    if roast_cache is None:
        roast_cache = create_cache()

    return roast_cache


async def close_cache():
    """Close the global cache"""
    global roast_cache

    if roast_cache is not None:
        await roast_cache.close()
        roast_cache = None
