"""
Image processing utilities for the Roast Engine.

Resizes and recompresses captured screenshots into the preview profiles
stored in object storage, and shrinks images handed to vision models so
they stay under the vendors' upload limits.
"""

import base64
import io
from dataclasses import dataclass
from PIL import Image, ImageOps


@dataclass(frozen=True)
class ImageProfile:
    name: str
    width: int
    height: int
    quality: int


DESKTOP_PROFILE = ImageProfile(name="desktop", width=1200, height=630, quality=85)
MOBILE_PROFILE = ImageProfile(name="mobile", width=375, height=200, quality=80)

PROFILES = {
    DESKTOP_PROFILE.name: DESKTOP_PROFILE,
    MOBILE_PROFILE.name: MOBILE_PROFILE,
}


def to_rgb(image: Image.Image) -> Image.Image:
    """Flatten transparency onto white (JPEG doesn't support alpha)"""
    if image.mode == "RGBA":
        rgb_image = Image.new("RGB", image.size, (255, 255, 255))
        rgb_image.paste(image, mask=image.split()[3])  # Use alpha channel as mask
        return rgb_image
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def optimize_image(raw_image: bytes, profile) -> bytes:
    """
    Cover-fit a screenshot into a profile's box and re-encode it.

    The image is scaled to fill the target box and cropped around the
    center, then saved as a progressive JPEG at the profile's quality.

    Args:
        raw_image: Encoded image bytes (any format Pillow reads)
        profile: ImageProfile or profile name ("desktop" / "mobile")

    Returns:
        Progressive JPEG bytes
    """
    if isinstance(profile, str):
        profile = PROFILES[profile]

    image = to_rgb(Image.open(io.BytesIO(raw_image)))
    fitted = ImageOps.fit(
        image,
        (profile.width, profile.height),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )

    buffer = io.BytesIO()
    fitted.save(
        buffer,
        format="JPEG",
        quality=profile.quality,
        progressive=True,
        optimize=True,
    )
    return buffer.getvalue()


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def resize_screenshot_if_needed(
    screenshot_bytes: bytes, max_dimension: int = 7500, max_file_size: int = 5_242_880
) -> str:
    """
    Prepare an image for a vision model upload.

    The longest side is capped at ``max_dimension`` (aspect ratio kept), then
    JPEG quality steps down from 95 in tens and, if that is not enough, the
    image shrinks by 20% per round until the encoded size fits.

    Args:
        screenshot_bytes: Encoded image bytes
        max_dimension: Longest allowed side in pixels
        max_file_size: Largest allowed encoded size in bytes (5 MB by default)

    Returns:
        Base64-encoded JPEG
    """
    image = to_rgb(Image.open(io.BytesIO(screenshot_bytes)))
    if max(image.size) > max_dimension:
        image = ImageOps.contain(
            image, (max_dimension, max_dimension), method=Image.Resampling.LANCZOS
        )

    for quality in range(95, 20, -10):
        encoded = _encode_jpeg(image, quality)
        if len(encoded) <= max_file_size:
            return base64.b64encode(encoded).decode("utf-8")

    scale = 0.8
    while len(encoded) > max_file_size and scale > 0.3:
        smaller = image.resize(
            (int(image.width * scale), int(image.height * scale)), Image.Resampling.LANCZOS
        )
        encoded = _encode_jpeg(smaller, 75)
        scale -= 0.1

    return base64.b64encode(encoded).decode("utf-8")
