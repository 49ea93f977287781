# Images subpackage - screenshot optimization and share card rendering
from .processor import (
    DESKTOP_PROFILE,
    MOBILE_PROFILE,
    ImageProfile,
    optimize_image,
    resize_screenshot_if_needed,
)
from .share_card import compose_share_card

__all__ = [
    "DESKTOP_PROFILE",
    "MOBILE_PROFILE",
    "ImageProfile",
    "optimize_image",
    "resize_screenshot_if_needed",
    "compose_share_card",
]
