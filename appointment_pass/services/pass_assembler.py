"""
Pass assembly: normalize the request, fill the template, gather images and
publish the signed bundle.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from ..config import Settings
from ..models import AppointmentRequest
from .asset_collector import AssetCollector
from .image_processor import ImageProcessor
from .pkpass_creator import BundleEmitter, OpenSSLSigner, PKPassCreator
from .request_normalizer import RequestNormalizer, to_iso_instant
from .template_projector import TemplateProjector

logger = logging.getLogger(__name__)


class PassAssembler:
    """Runs the whole pass generation pipeline for one request"""

    def __init__(self, settings: Settings, signer=None, image_processor: Optional[ImageProcessor] = None):
        self.settings = settings
        self.normalizer = RequestNormalizer(settings)
        self.projector = TemplateProjector(settings)
        self.collector = AssetCollector(settings, image_processor)
        self.emitter = BundleEmitter(settings, PKPassCreator(signer or OpenSSLSigner.from_settings(settings)))

    def assemble(self, request: AppointmentRequest, base_url: str) -> Dict:
        """
        Generate a pass and describe it for the HTTP response.

        Args:
            request: Validated /generate-pass payload
            base_url: Public base URL of the incoming request, used for the download link

        Returns:
            Response body for /generate-pass
        """
        appointment = self.normalizer.normalize(request, base_url)
        serial_number = appointment.serial_number
        logger.info(f"Generating pass {serial_number} (strip image: {request.has_strip_image})")

        pass_json = self.projector.project(appointment)
        assets = self.collector.collect(serial_number, request.strip_image, request.background_color)
        pass_url = self.emitter.emit(serial_number, pass_json, assets, base_url)

        return {
            "success": True,
            "passUrl": pass_url,
            "passId": serial_number,
            "notificationTime": pass_json.get("relevantDate"),
            "authenticationToken": pass_json["authenticationToken"],
            "passTypeIdentifier": pass_json["passTypeIdentifier"],
            "serialNumber": serial_number,
            "webServiceURL": pass_json["webServiceURL"],
            "updatedAt": to_iso_instant(datetime.now(timezone.utc)),
        }
