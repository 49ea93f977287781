"""
Google Gemini client utilities for the Roast Engine.
"""

from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config import Settings, get_rotating_api_key, settings
from utils.clients.http import fetch_image_bytes


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type(
        (google_exceptions.ServiceUnavailable, google_exceptions.ResourceExhausted)
    ),
    reraise=True,
)
async def call_gemini_api_with_retry(
    prompt: str, image_url: str, config: Optional[Settings] = None
) -> str:
    """
    Ask Gemini for a roast of the screenshot at ``image_url``.

    Gemini takes the image inline, so it is downloaded first. JSON output is
    requested through the response MIME type.
    """
    config = config or settings
    genai.configure(api_key=get_rotating_api_key("GEMINI", config))

    model = genai.GenerativeModel(
        config.GEMINI_MODEL,
        generation_config={
            "temperature": config.PROVIDER_TEMPERATURE,
            "max_output_tokens": config.PROVIDER_MAX_TOKENS,
            "response_mime_type": "application/json",
        },
    )

    image_bytes = await fetch_image_bytes(image_url)
    response = await model.generate_content_async(
        [
            f"{prompt}\n\nAnalyze this landing page and roast it constructively. Return valid JSON only.",
            {"mime_type": "image/jpeg", "data": image_bytes},
        ]
    )
    return response.text or ""
