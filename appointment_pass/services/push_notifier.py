"""
Push notifications that tell Apple Wallet to refresh a pass.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import httpx
import jwt

from ..config import Settings

logger = logging.getLogger(__name__)


@dataclass
class PushResult:
    status_code: int

    @property
    def success(self) -> bool:
        return self.status_code == 200


class PushNotifier:
    """Sends empty PassKit pushes through the APNs HTTP/2 gateway"""

    def __init__(self, settings: Settings, private_key: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.team_id = settings.team_identifier
        self.key_id = settings.apns_key_id
        self.key_path = settings.apns_auth_key_path
        self.host = settings.apns_host.rstrip("/")
        self.audience = settings.apns_audience
        self.ttl = timedelta(minutes=settings.apns_token_ttl_minutes)
        self.default_topic = settings.pass_type_identifier
        self._private_key = private_key
        self.transport = transport

    @property
    def private_key(self) -> str:
        if self._private_key is None:
            if not self.key_path:
                raise RuntimeError("APNs signing key is not configured (APNS_KEY_ID / APNS_AUTH_KEY_PATH)")
            self._private_key = Path(self.key_path).read_text()
        return self._private_key

    def mint_token(self, now: Optional[datetime] = None) -> str:
        """ES256 provider token, valid for the configured window"""
        now = now or datetime.now(timezone.utc)
        claims = {
            "iss": self.team_id,
            "iat": now,
            "exp": now + self.ttl,
            "aud": self.audience,
        }
        return jwt.encode(claims, self.private_key, algorithm="ES256", headers={"kid": self.key_id})

    async def send(self, push_token: str, topic: Optional[str] = None) -> PushResult:
        """
        Send a pass update push to one device.

        Args:
            push_token: Device push token from the registration
            topic: Pass type identifier, defaults to the configured one

        Returns:
            PushResult with the gateway's status code
        """
        headers = {
            "authorization": f"bearer {self.mint_token()}",
            "apns-topic": topic or self.default_topic,
        }
        kwargs = {"transport": self.transport} if self.transport else {"http2": True}
        async with httpx.AsyncClient(**kwargs) as client:
            response = await client.post(f"{self.host}/3/device/{push_token}", headers=headers, json={})

        result = PushResult(response.status_code)
        if result.success:
            logger.info(f"Push sent to device token {push_token[:8]}...")
        else:
            logger.warning(f"Push failed: {response.status_code} {response.text}")
        return result
