"""
Image download helper for providers that need inline image bytes.
"""

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from utils.images.processor import resize_screenshot_if_needed


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def fetch_image_bytes(image_url: str, timeout: float = 10.0) -> bytes:
    """
    Download an image, retrying network-level failures.

    HTTP error statuses are not retried; they raise httpx.HTTPStatusError.
    """
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        response = await client.get(image_url)
        response.raise_for_status()
        return response.content


async def fetch_image_as_base64(image_url: str) -> str:
    """Download an image and return it as base64 JPEG within vision upload limits"""
    return resize_screenshot_if_needed(await fetch_image_bytes(image_url))
