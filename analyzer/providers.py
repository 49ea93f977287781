"""
Vision provider roster.

A provider is a plain record: a name, a fixed ensembling weight and one
async ``analyze(image_url)`` operation. The ensemble dispatches to the
roster uniformly without caring which vendor sits behind each entry.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from analyzer.prompts import get_roast_prompt
from analyzer.responses import parse_provider_response
from config import Settings, settings
from models import ProviderAnalysis
from utils.clients.anthropic import call_anthropic_api_with_retry
from utils.clients.gemini import call_gemini_api_with_retry
from utils.clients.openai import call_openai_api_with_retry

logger = logging.getLogger(__name__)

AnalyzeFn = Callable[[str], Awaitable[ProviderAnalysis]]
VendorCall = Callable[[str, str, Optional[Settings]], Awaitable[str]]


@dataclass(frozen=True)
class Provider:
    name: str
    weight: float
    analyze: AnalyzeFn


def vendor_provider(
    name: str, weight: float, call: VendorCall, config: Optional[Settings] = None
) -> Provider:
    """Wrap a vendor call so its raw text is parsed into a ProviderAnalysis"""

    async def analyze(image_url: str) -> ProviderAnalysis:
        content = await call(get_roast_prompt(), image_url, config)
        return parse_provider_response(content, name, weight)

    return Provider(name=name, weight=weight, analyze=analyze)


def build_default_providers(config: Optional[Settings] = None) -> List[Provider]:
    """
    Build the roster in fixed order: OpenAI, Claude, Gemini.

    Vendors without a configured key are left out of the roster.
    """
    config = config or settings
    candidates = [
        ("gpt", "OPENAI", config.OPENAI_WEIGHT, call_openai_api_with_retry),
        ("claude", "ANTHROPIC", config.ANTHROPIC_WEIGHT, call_anthropic_api_with_retry),
        ("gemini", "GEMINI", config.GEMINI_WEIGHT, call_gemini_api_with_retry),
    ]

    providers = []
    for name, vendor, weight, call in candidates:
        if not (getattr(config, f"{vendor}_API_KEY") or getattr(config, f"{vendor}_API_KEYS")):
            logger.warning(f"⚠️  {vendor}_API_KEY not set, provider '{name}' disabled")
            continue
        providers.append(vendor_provider(name, weight, call, config))

    logger.info(f"🤖 Provider roster: {', '.join(p.name for p in providers) or 'empty'}")
    return providers
