"""
Request side of the roast pipeline.

A roast request is answered from the cache when possible; otherwise a
pending record is created and a screenshot job is queued for the worker.
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from core.cache import RoastCache, generate_cache_key
from core.queue import QueueUnavailableError, enqueue_screenshot_job
from core.rate_limit import RateLimiter
from models import RoastAccepted, RoastRecord, RoastResult
from utils.clients.records import BaseRecordStore, RecordStoreError
from utils.security import sanitize_url

logger = logging.getLogger(__name__)


def _new_roast_id() -> str:
    return str(uuid.uuid4())


class RoastService:
    def __init__(
        self,
        cache: RoastCache,
        records: BaseRecordStore,
        transport,
        id_factory: Callable[[], str] = _new_roast_id,
        clock: Callable[[], float] = time.time,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.cache = cache
        self.records = records
        self.transport = transport
        self._id_factory = id_factory
        self._clock = clock
        self.rate_limiter = rate_limiter

    async def request_roast(
        self,
        url: str,
        force_refresh: bool = False,
        options: Optional[Dict[str, Any]] = None,
        client_id: Optional[str] = None,
    ) -> Union[RoastResult, RoastAccepted]:
        """
        Serve a cached roast or queue a new one.

        Args:
            url: Page to roast
            force_refresh: Skip the cache lookup and always queue a new job
            options: Request options folded into the cache key
            client_id: Caller identity (client IP) counted by the rate limiter;
                cache hits are never counted

        Returns:
            RoastResult (cached=True) on a cache hit, else a RoastAccepted receipt

        Raises:
            InvalidUrlError: If the URL fails sanitization
            RateLimitExceededError: If the caller used up its requests
            RecordStoreError: If the pending record could not be written
            QueueUnavailableError: If the job could not be queued
        """
        safe_url = sanitize_url(url)
        cache_key = generate_cache_key(safe_url, options)

        if not force_refresh:
            cached = await self.cache.lookup(cache_key)
            if cached is not None:
                try:
                    result = RoastResult.model_validate(cached)
                    logger.info(f"✅ Cache hit for {safe_url}")
                    return result.model_copy(update={"cached": True})
                except ValidationError as e:
                    logger.warning(f"⚠️  Ignoring stale cache entry for {safe_url}: {e}")

        if self.rate_limiter is not None and client_id:
            await self.rate_limiter.hit(client_id)

        roast_id = self._id_factory()
        await self.records.create(roast_id, safe_url)

        try:
            job = await enqueue_screenshot_job(self.transport, roast_id, safe_url, self._clock)
        except QueueUnavailableError as e:
            try:
                await self.records.mark_failed(roast_id, str(e))
            except RecordStoreError as record_error:
                logger.error(f"❌ Could not mark roast {roast_id} failed: {record_error}")
            raise

        return RoastAccepted(roast_id=roast_id, job_id=job.job_id, url=safe_url)

    async def get_roast(self, roast_id: str) -> Optional[RoastRecord]:
        return await self.records.get(roast_id)
