# Utils package - Utility modules organized by domain
# Import from subpackages for convenience

from .concurrency import race_with_timeout
from .images.processor import optimize_image, resize_screenshot_if_needed
from .images.share_card import compose_share_card
from .parsing.json import extract_json_object, repair_and_parse_json
from .security import InvalidUrlError, canonicalize_url, ensure_resolves_publicly, sanitize_url

__all__ = [
    "race_with_timeout",
    "optimize_image",
    "resize_screenshot_if_needed",
    "compose_share_card",
    "extract_json_object",
    "repair_and_parse_json",
    "InvalidUrlError",
    "canonicalize_url",
    "sanitize_url",
    "ensure_resolves_publicly",
]
