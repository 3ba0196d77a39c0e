"""
Pass generation and PassKit web service components.
"""

from .asset_collector import AssetCollector
from .image_processor import ImageProcessor
from .pass_assembler import PassAssembler
from .pkpass_creator import BundleEmitter, OpenSSLSigner, PKPassCreator
from .push_notifier import PushNotifier
from .registration_relay import RegistrationRelay, WebhookRegistry
from .request_normalizer import RequestNormalizer
from .template_projector import TemplateProjector

__all__ = [
    "AssetCollector",
    "BundleEmitter",
    "ImageProcessor",
    "OpenSSLSigner",
    "PKPassCreator",
    "PassAssembler",
    "PushNotifier",
    "RegistrationRelay",
    "RequestNormalizer",
    "TemplateProjector",
    "WebhookRegistry",
]
