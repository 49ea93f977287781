"""
Screenshot capture for the Roast Engine.

One Chromium process is launched lazily and shared by every capture; each
capture runs in its own browser context (own cookies and storage) that is
closed on every exit path. URLs are sanitized and their host resolved to a
public address before the browser is touched.

Worst-case duration of a capture is bounded by configuration:
attempts x navigation timeout, plus the linear backoff between attempts,
plus the load-event fallback and the mobile settle delay
(see Settings.worst_case_capture_seconds).
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Route,
    async_playwright,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
)
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from config import Settings, settings
from models import CaptureResult, PerformanceMetrics
from utils.security import Resolver, ensure_resolves_publicly, sanitize_url

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = {"font", "media", "other"}

PERFORMANCE_SCRIPT = """() => {
  const navigation = performance.getEntriesByType('navigation')[0];
  const firstPaint = performance.getEntriesByType('paint')
    .find((entry) => entry.name === 'first-paint');
  return {
    loadTime: navigation ? navigation.loadEventEnd - navigation.startTime : 0,
    domReady: navigation ? navigation.domContentLoadedEventEnd - navigation.startTime : 0,
    firstPaint: firstPaint ? firstPaint.startTime : 0,
    resources: performance.getEntriesByType('resource').length,
  };
}"""


class CaptureError(RuntimeError):
    """Raised when a page cannot be captured"""


class NavigationError(CaptureError):
    """Raised when every navigation attempt failed"""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed to navigate to {url} after {attempts} attempts: {last_error}"
        )


async def block_non_essential(route: Route):
    """Abort fonts, media and other non-layout requests"""
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class ScreenshotCapture:
    """
    Owns the shared browser and exposes a single ``capture`` operation.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        browser_factory: Optional[Callable[[], Awaitable[Browser]]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        resolver: Optional[Resolver] = None,
    ):
        self.config = config or settings
        self._browser_factory = browser_factory or self._launch_browser
        self._sleep = sleep
        self._resolver = resolver
        self._browser: Optional[Browser] = None
        self._playwright = None
        self._lock = asyncio.Lock()

    async def _launch_browser(self) -> Browser:
        """Start Playwright and launch headless Chromium with container-safe flags"""
        self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=True,
            timeout=self.config.BROWSER_LAUNCH_TIMEOUT * 1000,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--disable-dev-shm-usage",  # Prevents memory issues in Docker
                "--no-sandbox",  # Required in some containerized environments
                "--disable-setuid-sandbox",
                "--disable-gpu",
            ],
        )

    async def get_browser(self) -> Browser:
        """Return the shared browser, launching it on first use"""
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                logger.info("🚀 Launching browser...")
                self._browser = await self._browser_factory()
                logger.info("✅ Browser ready")
        return self._browser

    def is_ready(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @asynccontextmanager
    async def isolated_context(self, viewport: Optional[Dict[str, int]] = None):
        """Open a fresh browser context and always close it afterwards"""
        browser = await self.get_browser()
        context: BrowserContext = await browser.new_context(
            viewport=viewport or self.desktop_viewport,
            device_scale_factor=self.config.DEVICE_SCALE_FACTOR,
            user_agent=self.config.BROWSER_USER_AGENT,
            extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
        )
        try:
            yield context
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.warning(f"⚠️  Failed to close browser context: {e}")

    @property
    def desktop_viewport(self) -> Dict[str, int]:
        return {
            "width": self.config.DESKTOP_VIEWPORT_WIDTH,
            "height": self.config.DESKTOP_VIEWPORT_HEIGHT,
        }

    @property
    def mobile_viewport(self) -> Dict[str, int]:
        return {
            "width": self.config.MOBILE_VIEWPORT_WIDTH,
            "height": self.config.MOBILE_VIEWPORT_HEIGHT,
        }

    async def navigate(self, page: Page, url: str):
        """
        Navigate with bounded retries.

        Each attempt waits for network idle up to NAVIGATION_TIMEOUT_MS.
        Between attempts the wait grows linearly: backoff x attempt number.

        Raises:
            NavigationError: After the last attempt fails
        """
        attempts = self.config.NAVIGATION_ATTEMPTS
        backoff = self.config.NAVIGATION_BACKOFF_MS / 1000
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=backoff, increment=backoff),
            retry=retry_if_exception_type(PlaywrightError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    logger.info(
                        f"🌐 Navigating to {url} "
                        f"(attempt {attempt.retry_state.attempt_number}/{attempts})"
                    )
                    await page.goto(
                        url,
                        wait_until="networkidle",
                        timeout=self.config.NAVIGATION_TIMEOUT_MS,
                    )
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"❌ Navigation to {url} failed after {attempts} attempts")
            raise NavigationError(url, attempts, last_error) from last_error

    async def wait_until_ready(self, page: Page):
        """DOM content loaded, then the load event or the fallback timeout"""
        await page.wait_for_load_state("domcontentloaded")
        try:
            await page.wait_for_load_state("load", timeout=self.config.LOAD_FALLBACK_MS)
        except PlaywrightTimeoutError:
            logger.debug(f"Load event not fired within {self.config.LOAD_FALLBACK_MS}ms")

    async def collect_metrics(self, page: Page) -> PerformanceMetrics:
        try:
            timing = await page.evaluate(PERFORMANCE_SCRIPT)
            return PerformanceMetrics(
                load_time_ms=max(0.0, float(timing["loadTime"])),
                dom_ready_ms=max(0.0, float(timing["domReady"])),
                first_paint_ms=max(0.0, float(timing["firstPaint"])),
                resource_count=int(timing["resources"]),
            )
        except (PlaywrightError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"⚠️  Failed to collect performance metrics: {e}")
            return PerformanceMetrics()

    async def _screenshot(self, page: Page, viewport: Dict[str, int]) -> bytes:
        return await page.screenshot(
            type="jpeg",
            quality=self.config.SCREENSHOT_QUALITY,
            full_page=False,
            clip={"x": 0, "y": 0, "width": viewport["width"], "height": viewport["height"]},
        )

    async def capture(self, url: str, viewport: Optional[Dict[str, int]] = None) -> CaptureResult:
        """
        Capture desktop and mobile screenshots of a page.

        Args:
            url: Page to capture; sanitized before any browser work
            viewport: Desktop viewport override

        Returns:
            CaptureResult with JPEG bytes for both viewports and page metrics

        Raises:
            InvalidUrlError: If the URL fails sanitization or resolves internally
            NavigationError: If every navigation attempt failed
            CaptureError: If the page could not be screenshotted
        """
        safe_url = sanitize_url(url)
        await ensure_resolves_publicly(safe_url, self._resolver)
        desktop_viewport = viewport or self.desktop_viewport
        start_time = time.time()

        async with self.isolated_context(desktop_viewport) as context:
            try:
                page = await context.new_page()
                await page.route("**/*", block_non_essential)

                await self.navigate(page, safe_url)
                await self.wait_until_ready(page)
                metrics = await self.collect_metrics(page)

                desktop_image = await self._screenshot(page, desktop_viewport)

                mobile_viewport = self.mobile_viewport
                await page.set_viewport_size(mobile_viewport)
                await self._sleep(self.config.MOBILE_SETTLE_MS / 1000)
                mobile_image = await self._screenshot(page, mobile_viewport)
            except PlaywrightError as e:
                raise CaptureError(f"Failed to capture {safe_url}: {e}") from e

        logger.info(f"📸 Captured {safe_url} in {int((time.time() - start_time) * 1000)}ms")
        return CaptureResult(
            desktop_image=desktop_image, mobile_image=mobile_image, metrics=metrics
        )

    async def close(self):
        """Close the shared browser and stop Playwright"""
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as e:
                    logger.error(f"Error closing browser: {e}")
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("Browser closed")
