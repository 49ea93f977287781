# Analyzer package - Roast analysis engine
from .ensemble import AllProvidersFailedError, EnsembleService, ensemble_results
from .pipeline import RoastService
from .prompts import get_roast_prompt
from .providers import Provider, build_default_providers
from .responses import parse_provider_response

__all__ = [
    "AllProvidersFailedError",
    "EnsembleService",
    "ensemble_results",
    "RoastService",
    "get_roast_prompt",
    "Provider",
    "build_default_providers",
    "parse_provider_response",
]
