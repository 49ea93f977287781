"""
Screenshot job handler for the Roast Engine worker.

One job takes a URL from screenshot to finished roast: capture, optimize and
upload, ensemble analysis, share card, then cache and record writes. Any
failure after validation is re-raised so the queue redelivers the job.
"""

import asyncio
import logging
import time
from typing import Optional

from analyzer.ensemble import EnsembleService
from core.browser import ScreenshotCapture
from core.cache import CacheTier, RoastCache, generate_cache_key
from models import RoastResult, ScreenshotJob
from utils.clients.metrics import BaseMetrics
from utils.clients.records import BaseRecordStore
from utils.clients.storage import S3Storage
from utils.images.processor import DESKTOP_PROFILE, MOBILE_PROFILE, optimize_image
from utils.images.share_card import compose_share_card
from utils.security import InvalidUrlError, sanitize_url

logger = logging.getLogger(__name__)


class ScreenshotJobHandler:
    def __init__(
        self,
        capture: ScreenshotCapture,
        storage: S3Storage,
        ensemble: EnsembleService,
        cache: RoastCache,
        records: BaseRecordStore,
        metrics: BaseMetrics,
    ):
        self.capture = capture
        self.storage = storage
        self.ensemble = ensemble
        self.cache = cache
        self.records = records
        self.metrics = metrics

    async def __call__(self, job: ScreenshotJob):
        await self.handle(job)

    async def handle(self, job: ScreenshotJob) -> Optional[RoastResult]:
        """
        Process one screenshot job.

        Invalid URLs mark the record failed and return normally, so the
        message is acknowledged and never retried.

        Raises:
            CaptureError, AllProvidersFailedError, StorageError: Propagated
                so the consumer leaves the message for redelivery
        """
        start_time = time.time()
        logger.info(f"🔍 Processing job {job.job_id} for {job.url}")

        try:
            url = sanitize_url(job.url)
        except InvalidUrlError as e:
            logger.warning(f"⚠️  Job {job.job_id} rejected: {e}")
            await self._report_failure(job, f"Invalid URL: {e}")
            return None

        try:
            await self.records.mark_processing(job.roast_id)

            captured = await self.capture.capture(url)

            desktop_url = await self.storage.upload(
                await asyncio.to_thread(optimize_image, captured.desktop_image, DESKTOP_PROFILE),
                f"{job.roast_id}/desktop.jpg",
            )
            mobile_url = await self.storage.upload(
                await asyncio.to_thread(optimize_image, captured.mobile_image, MOBILE_PROFILE),
                f"{job.roast_id}/mobile.jpg",
            )

            analysis = await self.ensemble.analyze(desktop_url)

            share_card_url = await self.storage.upload(
                await asyncio.to_thread(
                    compose_share_card, captured.desktop_image, analysis.score, analysis.roast, url
                ),
                f"{job.roast_id}/share.jpg",
            )

            processing_time_ms = int((time.time() - start_time) * 1000)
            result = RoastResult(
                id=job.roast_id,
                url=url,
                roast=analysis.roast,
                score=analysis.score,
                breakdown=analysis.breakdown,
                issues=analysis.issues,
                quick_wins=analysis.quick_wins,
                desktop_screenshot_url=desktop_url,
                mobile_screenshot_url=mobile_url,
                share_card_url=share_card_url,
                model_agreement=analysis.model_agreement,
                timestamp=int(time.time() * 1000),
                metrics=captured.metrics,
                processing_time_ms=processing_time_ms,
            )

            await self.cache.set(generate_cache_key(url), result, CacheTier.WARM)
            await self.records.mark_completed(job.roast_id, result)
        except InvalidUrlError as e:
            # Host resolved to an internal address; retrying will not help
            logger.warning(f"⚠️  Job {job.job_id} rejected: {e}")
            await self._report_failure(job, f"Invalid URL: {e}")
            return None
        except Exception as e:
            await self.metrics.increment("ScreenshotFailure")
            await self._report_failure(job, str(e) or type(e).__name__)
            raise

        await self.metrics.timing("ScreenshotDuration", processing_time_ms)
        await self.metrics.increment("ScreenshotSuccess")
        logger.info(
            f"✅ Job {job.job_id} completed in {processing_time_ms}ms (score {result.score})"
        )
        return result

    async def _report_failure(self, job: ScreenshotJob, error: str):
        try:
            await self.records.mark_failed(job.roast_id, error)
        except Exception as e:
            logger.error(f"❌ Failed to mark roast {job.roast_id} as failed: {e}")
