"""
Anthropic API client utilities for the Roast Engine.

This module contains functions for interacting with the Anthropic Claude API
with automatic retry logic for transient failures.
"""

from typing import Dict, Optional

import anthropic
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config import Settings, get_rotating_api_key, settings
from utils.clients.http import fetch_image_as_base64

# Lazy initialization of Anthropic clients, one per API key
_anthropic_clients: Dict[str, anthropic.AsyncAnthropic] = {}


def get_anthropic_client(api_key: Optional[str] = None) -> anthropic.AsyncAnthropic:
    """Get or create the Anthropic client instance for a key."""
    api_key = api_key or get_rotating_api_key("ANTHROPIC")
    if api_key not in _anthropic_clients:
        _anthropic_clients[api_key] = anthropic.AsyncAnthropic(api_key=api_key)
    return _anthropic_clients[api_key]


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type(
        (anthropic.APIConnectionError, anthropic.RateLimitError)
    ),
    reraise=True,
)
async def call_anthropic_api_with_retry(
    prompt: str, image_url: str, config: Optional[Settings] = None
) -> str:
    """
    Calls Anthropic API with automatic retry logic for transient failures.

    Retries up to 3 times for:
    - APIConnectionError (network issues)
    - RateLimitError (rate limit exceeded)

    Does NOT retry for:
    - AuthenticationError (bad API key)
    - BadRequestError (malformed request)
    - Other permanent errors

    Args:
        prompt: The roast prompt with the JSON response contract
        image_url: Public URL of the desktop screenshot

    Returns:
        Raw text of the first text block ("" when the model returned none)
    """
    config = config or settings
    client = get_anthropic_client(get_rotating_api_key("ANTHROPIC", config))
    image_data = await fetch_image_as_base64(image_url)

    response = await client.messages.create(
        model=config.ANTHROPIC_MODEL,
        max_tokens=config.PROVIDER_MAX_TOKENS,
        temperature=config.PROVIDER_TEMPERATURE,
        messages=[
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": f"{prompt}\n\nAnalyze this landing page and roast it constructively. Return valid JSON only.",
                    },
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": "image/jpeg",
                            "data": image_data,
                        },
                    },
                ],
            }
        ],
    )

    for block in response.content:
        if block.type == "text":
            return block.text
    return ""
