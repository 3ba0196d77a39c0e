"""
Device registration relay.

Apple Wallet calls the web service when a device adds a pass; the relay
checks the callback and forwards the push token to the device registry,
which in production is a spreadsheet-backed webhook.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from ..config import Settings
from ..models import DeviceRegistration

logger = logging.getLogger(__name__)

AUTH_SCHEME = "ApplePass "


@dataclass
class RegistryResponse:
    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class RelayResult:
    status_code: int
    message: str


class RegistryNotConfigured(Exception):
    pass


class NotificationRegistry(Protocol):
    """Stores push tokens for registered devices"""

    async def register(self, registration: DeviceRegistration) -> RegistryResponse:
        """Record a device registration and return the registry's answer."""
        ...


class WebhookRegistry:
    """Registry backed by an external webhook protected by a shared secret"""

    def __init__(self, url: str, secret: str, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookRegistry":
        return cls(settings.webhook_url, settings.webhook_secret)

    async def register(self, registration: DeviceRegistration) -> RegistryResponse:
        if not self.url:
            raise RegistryNotConfigured("REGISTRATION_WEBHOOK_URL is not set")

        kwargs = {"transport": self.transport} if self.transport else {}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        async with httpx.AsyncClient(follow_redirects=True, **kwargs) as client:
            response = await client.post(
                self.url,
                params={"key": self.secret},
                json=registration.to_payload(),
            )
        return RegistryResponse(response.status_code, response.text)


def parse_authorization(header: Optional[str]) -> Optional[str]:
    """Return the pass authentication token, or None when the header is unusable"""
    if not header or not header.startswith(AUTH_SCHEME):
        return None
    token = header[len(AUTH_SCHEME):].strip()
    return token or None


class RegistrationRelay:
    """Validates registration callbacks and forwards them to the registry"""

    def __init__(self, registry: NotificationRegistry):
        self.registry = registry

    async def register_device(self, device_library_identifier: str, serial_number: str,
                              authorization: Optional[str], push_token: Optional[str]) -> RelayResult:
        """
        Handle a registration callback.

        Args:
            device_library_identifier: Device id from the callback path
            serial_number: Pass serial from the callback path
            authorization: Raw Authorization header
            push_token: pushToken from the callback body

        Returns:
            Status code and message for the HTTP response
        """
        if parse_authorization(authorization) is None:
            return RelayResult(401, "Unauthorized - Missing or invalid ApplePass token")
        if not isinstance(push_token, str) or not push_token:
            return RelayResult(400, "Bad Request - Missing pushToken")

        registration = DeviceRegistration(
            serial_number=serial_number,
            device_library_identifier=device_library_identifier,
            push_token=push_token,
        )

        try:
            response = await self.registry.register(registration)
        except (httpx.HTTPError, RegistryNotConfigured) as e:
            logger.error(f"Error forwarding push token for serial {serial_number}: {e}")
            return RelayResult(500, "Internal Server Error")

        if response.ok:
            logger.info(f"Push token forwarded for serial {serial_number}")
            return RelayResult(201, "Device registered successfully")

        logger.warning(f"Registry responded with status {response.status_code} for serial {serial_number}")
        return RelayResult(502, "Failed to forward push token to registry")
