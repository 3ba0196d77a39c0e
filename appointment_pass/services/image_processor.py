"""
Strip and placeholder image rendering with Pillow.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, ImageEnhance, ImageOps

logger = logging.getLogger(__name__)

OVERLAY_ALPHA = 0.5


@dataclass(frozen=True)
class StripVariant:
    """One resolution tier of the strip image"""

    filename: str
    width: int
    height: int
    brightness: float = 1.0
    overlay_alpha: float = 0.0


STRIP_VARIANTS = (
    StripVariant("strip.png", 375, 123, brightness=0.7),
    StripVariant("strip@2x.png", 750, 246, overlay_alpha=OVERLAY_ALPHA),
    StripVariant("strip@3x.png", 1125, 369, overlay_alpha=OVERLAY_ALPHA),
)

# Apple-recommended sizes for the fixed model images
PLACEHOLDER_SIZES = {
    "icon.png": (29, 29),
    "icon@2x.png": (58, 58),
    "icon@3x.png": (87, 87),
    "logo.png": (160, 50),
    "logo@2x.png": (320, 100),
}


class ImageProcessor:
    """Resizes, dims and tints strip images"""

    def render(self, source_path: Path, variant: StripVariant, output_path: Path,
               overlay_color: Optional[Tuple[int, int, int]] = None) -> Path:
        """
        Render one strip variant to a PNG file.

        Args:
            source_path: Decoded upload on disk
            variant: Target size, brightness and overlay strength
            output_path: Where the PNG is written
            overlay_color: RGB tint composited over the image when the variant has an overlay

        Returns:
            output_path
        """
        with Image.open(source_path) as source:
            image = ImageOps.fit(source.convert("RGB"), (variant.width, variant.height), Image.LANCZOS)

        if variant.brightness != 1.0:
            image = ImageEnhance.Brightness(image).enhance(variant.brightness)

        if variant.overlay_alpha and overlay_color:
            alpha = round(255 * variant.overlay_alpha)
            overlay = Image.new("RGBA", image.size, (*overlay_color, alpha))
            image = Image.alpha_composite(image.convert("RGBA"), overlay)

        image.save(output_path, format="PNG")
        logger.debug(f"Rendered {variant.filename} ({variant.width}x{variant.height}) to {output_path}")
        return output_path


def placeholder_image(width: int, height: int, color: Tuple[int, int, int] = (41, 128, 185)) -> bytes:
    """Solid-color PNG used when a model image is missing"""
    image = Image.new("RGBA", (width, height), (*color, 255))
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
