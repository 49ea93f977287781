# Tasks package - Background job handlers
from .screenshot import ScreenshotJobHandler

__all__ = [
    "ScreenshotJobHandler",
]
