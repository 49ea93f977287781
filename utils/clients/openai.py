"""
OpenAI API client utilities for the Roast Engine.
"""

from typing import Dict, Optional

import openai
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from config import Settings, get_rotating_api_key, settings

_openai_clients: Dict[str, openai.AsyncOpenAI] = {}


def get_openai_client(api_key: Optional[str] = None) -> openai.AsyncOpenAI:
    """Get or create the OpenAI client instance for a key."""
    api_key = api_key or get_rotating_api_key("OPENAI")
    if api_key not in _openai_clients:
        _openai_clients[api_key] = openai.AsyncOpenAI(api_key=api_key)
    return _openai_clients[api_key]


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type((openai.APIConnectionError, openai.RateLimitError)),
    reraise=True,
)
async def call_openai_api_with_retry(
    prompt: str, image_url: str, config: Optional[Settings] = None
) -> str:
    """
    Ask the OpenAI vision model for a roast of the screenshot at ``image_url``.

    The image is passed by URL and the response is forced into JSON mode.
    Connection and rate-limit errors are retried; everything else propagates.
    """
    config = config or settings
    client = get_openai_client(get_rotating_api_key("OPENAI", config))

    response = await client.chat.completions.create(
        model=config.OPENAI_MODEL,
        messages=[
            {"role": "system", "content": prompt},
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": "Analyze this landing page and roast it constructively.",
                    },
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ],
        max_tokens=config.PROVIDER_MAX_TOKENS,
        temperature=config.PROVIDER_TEMPERATURE,
        response_format={"type": "json_object"},
    )

    return response.choices[0].message.content or ""
