"""
Collects the image assets bundled with each pass.
"""

import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from ..config import Settings
from ..exceptions import ImageProcessingError
from ..models import StripImage
from .image_processor import PLACEHOLDER_SIZES, STRIP_VARIANTS, ImageProcessor, placeholder_image
from .request_normalizer import parse_rgb_color

logger = logging.getLogger(__name__)

MODEL_IMAGES = ["icon.png", "icon@2x.png", "icon@3x.png", "logo.png", "logo@2x.png"]


def decode_strip_image(strip_image: StripImage) -> bytes:
    """Decode the uploaded strip image, accepting plain base64 or a data: URL"""
    encoding = (strip_image.encoding or "base64").lower()
    if encoding != "base64":
        raise ImageProcessingError(f"unsupported strip image encoding '{strip_image.encoding}'")

    data = strip_image.base64_data or ""
    content_type = strip_image.content_type
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        content_type = header[len("data:"):].split(";")[0] or content_type
    if content_type and not content_type.strip().lower().startswith("image/"):
        raise ImageProcessingError(f"unsupported strip image content type '{content_type}'")

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError(f"invalid base64 strip image: {e}") from e
    if not raw:
        raise ImageProcessingError("empty strip image")
    return raw


def cleanup_files(paths: List[Path]) -> None:
    for path in paths:
        try:
            if os.path.exists(path):
                os.unlink(path)
        except OSError as cleanup_error:
            logger.warning(f"Failed to cleanup temp file {path}: {cleanup_error}")


class AssetCollector:
    """Builds the name -> bytes map of images for one pass"""

    def __init__(self, settings: Settings, image_processor: Optional[ImageProcessor] = None):
        self.settings = settings
        self.image_processor = image_processor or ImageProcessor()

    def model_images(self) -> Dict[str, bytes]:
        assets = {}
        for name in MODEL_IMAGES:
            path = self.settings.model_dir / name
            if path.is_file():
                assets[name] = path.read_bytes()
            else:
                logger.warning(f"Model image {name} missing in {self.settings.model_dir}, using placeholder")
                assets[name] = placeholder_image(*PLACEHOLDER_SIZES[name])
        return assets

    def collect(self, serial_number: str, strip_image: Optional[StripImage] = None,
                background_color: Optional[str] = None) -> Dict[str, bytes]:
        """
        Gather model images plus the rendered strip variants.

        Args:
            serial_number: Used to name temp files so concurrent requests never collide
            strip_image: Optional uploaded strip image
            background_color: "rgb(r, g, b)" tint for the overlay tiers

        Returns:
            Mapping of bundle file name to content
        """
        assets = self.model_images()
        if strip_image and strip_image.base64_data:
            assets.update(self.strip_images(serial_number, strip_image, background_color))
        return assets

    def strip_images(self, serial_number: str, strip_image: StripImage,
                     background_color: Optional[str]) -> Dict[str, bytes]:
        temp_dir = Path(self.settings.temp_dir)
        temp_dir.mkdir(parents=True, exist_ok=True)
        overlay_color = parse_rgb_color(background_color)

        input_path = temp_dir / f"{serial_number}-strip-image"
        files_to_cleanup = [input_path]
        try:
            input_path.write_bytes(decode_strip_image(strip_image))

            rendered = {}
            for variant in STRIP_VARIANTS:
                output_path = temp_dir / f"{serial_number}-{variant.filename}"
                files_to_cleanup.append(output_path)
                self.image_processor.render(input_path, variant, output_path, overlay_color)
                rendered[variant.filename] = output_path.read_bytes()

            logger.info(f"Rendered {len(rendered)} strip images for pass {serial_number}")
            return rendered
        except ImageProcessingError:
            raise
        except Exception as e:
            logger.error(f"Strip image processing failed for pass {serial_number}: {e}")
            raise ImageProcessingError(str(e)) from e
        finally:
            cleanup_files(files_to_cleanup)
