"""
Share card rendering for the Roast Engine.

Composites a 1200x630 social preview: the blurred, dimmed screenshot as
background, a score badge colored by score band, the roast wrapped to three
lines, the page URL and the branding footer. Text is drawn as glyphs, never
interpolated into markup, and rendering is deterministic for identical inputs.
"""

import io
import logging
import unicodedata
from functools import lru_cache
from typing import List, Tuple
from urllib.parse import urlsplit
from PIL import Image, ImageDraw, ImageEnhance, ImageFilter, ImageFont, ImageOps

from utils.images.processor import to_rgb

logger = logging.getLogger(__name__)

CARD_WIDTH = 1200
CARD_HEIGHT = 630
CENTER_X = CARD_WIDTH // 2

BRAND_NAME = "RoastMyLanding.com"
BRAND_TAGLINE = "Get your landing page roasted"

WHITE = (255, 255, 255, 255)


def get_score_color(score: int) -> str:
    if score >= 8:
        return "#10b981"  # green
    if score >= 6:
        return "#f59e0b"  # yellow
    if score >= 4:
        return "#f97316"  # orange
    return "#ef4444"  # red


def clean_text(text: str) -> str:
    """Drop control characters and collapse whitespace runs"""
    printable = "".join(
        char if unicodedata.category(char)[0] != "C" else " " for char in text or ""
    )
    return " ".join(printable.split())


def wrap_text(text: str, max_length: int = 50, max_lines: int = 3) -> List[str]:
    lines: List[str] = []
    current_line = ""

    for word in clean_text(text).split(" "):
        if not word:
            continue
        if len(current_line) + len(word) + (1 if current_line else 0) <= max_length:
            current_line = f"{current_line} {word}" if current_line else word
        else:
            if current_line:
                lines.append(current_line)
            current_line = word

    if current_line:
        lines.append(current_line)

    return lines[:max_lines]


def truncate_url(url: str, max_length: int = 60) -> str:
    try:
        parts = urlsplit(url)
        display = f"{parts.hostname or ''}{parts.path}" if parts.hostname else url
    except ValueError:
        display = url
    display = clean_text(display)
    if len(display) > max_length:
        return display[: max_length - 3] + "..."
    return display


@lru_cache(maxsize=16)
def _font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        logger.debug(f"Font {name} not installed, using Pillow's default font")
        return ImageFont.load_default(size=size)


def _with_alpha(color: Tuple[int, int, int, int], opacity: float) -> Tuple[int, int, int, int]:
    return color[:3] + (int(round(255 * opacity)),)


def _background(screenshot: bytes) -> Image.Image:
    image = to_rgb(Image.open(io.BytesIO(screenshot)))
    image = ImageOps.fit(
        image, (CARD_WIDTH, CARD_HEIGHT), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5)
    )
    image = image.filter(ImageFilter.GaussianBlur(8))
    image = ImageEnhance.Brightness(image).enhance(0.6)
    return image.convert("RGBA")


def _gradient_overlay() -> Image.Image:
    overlay = Image.new("RGBA", (CARD_WIDTH, CARD_HEIGHT), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    for y in range(CARD_HEIGHT):
        opacity = 0.7 + 0.2 * (y / (CARD_HEIGHT - 1))
        draw.line([(0, y), (CARD_WIDTH, y)], fill=(0, 0, 0, int(round(255 * opacity))))
    return overlay


def compose_share_card(screenshot: bytes, score: int, roast_text: str, url: str) -> bytes:
    """
    Render the shareable summary card for a roast.

    Args:
        screenshot: Desktop screenshot bytes used as the background
        score: Ensemble score, clamped to 1-10 for display
        roast_text: Roast copy; wrapped to at most three lines
        url: Source URL; shown as host + path, truncated

    Returns:
        Progressive JPEG bytes of the 1200x630 card
    """
    score = max(1, min(10, int(score)))

    card = Image.alpha_composite(_background(screenshot), _gradient_overlay())
    draw = ImageDraw.Draw(card)

    # Score badge
    radius = 80
    badge_center_y = 200
    draw.ellipse(
        [
            (CENTER_X - radius, badge_center_y - radius),
            (CENTER_X + radius, badge_center_y + radius),
        ],
        fill=get_score_color(score),
        outline=WHITE,
        width=6,
    )
    draw.text((CENTER_X, 190), str(score), font=_font(80, bold=True), fill=WHITE, anchor="mm")
    draw.text(
        (CENTER_X, 250), "/10", font=_font(24), fill=_with_alpha(WHITE, 0.9), anchor="mm"
    )

    # Roast text
    for index, line in enumerate(wrap_text(roast_text)):
        draw.text(
            (CENTER_X, 350 + index * 35), line, font=_font(28, bold=True), fill=WHITE, anchor="ms"
        )

    # URL
    draw.text(
        (CENTER_X, 520), truncate_url(url), font=_font(20), fill=_with_alpha(WHITE, 0.7), anchor="ms"
    )

    # Branding
    draw.text((CENTER_X, 580), BRAND_NAME, font=_font(24, bold=True), fill=WHITE, anchor="ms")
    draw.text(
        (CENTER_X, 605), BRAND_TAGLINE, font=_font(16), fill=_with_alpha(WHITE, 0.8), anchor="ms"
    )

    buffer = io.BytesIO()
    card.convert("RGB").save(buffer, format="JPEG", quality=95, progressive=True)
    return buffer.getvalue()
