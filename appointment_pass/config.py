"""
Runtime configuration for the appointment pass service.

Values come from environment variables (optionally loaded from a .env file)
and are gathered into a single Settings object that is handed to each
service at construction.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PACKAGE_DIR = Path(__file__).parent
DEFAULT_MODEL_DIR = PACKAGE_DIR / "pass_model"

MAX_BODY_SIZE = 50 * 1024 * 1024  # 50 MB, strip images arrive base64-encoded


@dataclass
class Settings:
    """Process-wide settings shared by all request handlers"""

    pass_type_identifier: str = "pass.com.example.appointments"
    team_identifier: str = "ABCDE12345"
    base_url: str = "http://localhost:3000"

    model_dir: Path = DEFAULT_MODEL_DIR
    output_dir: Path = Path("temp")
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    signer_cert_path: Path = Path("certs/signerCert.pem")
    signer_key_path: Path = Path("certs/signerKey.pem")
    wwdr_cert_path: Path = Path("certs/wwdr.pem")
    signer_key_passphrase: str = ""

    webhook_url: str = ""
    webhook_secret: str = ""

    apns_key_id: str = ""
    apns_auth_key_path: Optional[Path] = None
    apns_host: str = "https://api.push.apple.com"
    apns_audience: str = "https://api.push.apple.com"
    apns_token_ttl_minutes: int = 20

    default_latitude: float = 40.7313
    default_longitude: float = -74.0627
    directions_latitude: float = 40.7282544
    directions_longitude: float = -73.9932413

    max_body_size: int = MAX_BODY_SIZE
    port: int = 3000

    @property
    def web_service_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api/v1/passes"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env_file: Optional path to a .env file; defaults to ./.env when present

    Returns:
        Populated Settings instance
    """
    load_dotenv(env_file)

    cert_dir = Path(os.getenv("PASS_CERT_DIR", "certs"))
    apns_key_id = os.getenv("APNS_KEY_ID", "")
    apns_key_path = os.getenv("APNS_AUTH_KEY_PATH")
    if apns_key_path:
        apns_auth_key_path = Path(apns_key_path)
    elif apns_key_id:
        apns_auth_key_path = cert_dir / f"AuthKey_{apns_key_id}.p8"
    else:
        apns_auth_key_path = None

    return Settings(
        pass_type_identifier=os.getenv("PASS_TYPE_IDENTIFIER", Settings.pass_type_identifier),
        team_identifier=os.getenv("PASS_TEAM_IDENTIFIER", Settings.team_identifier),
        base_url=os.getenv("PASS_BASE_URL", Settings.base_url),
        model_dir=Path(os.getenv("PASS_MODEL_DIR", str(DEFAULT_MODEL_DIR))),
        output_dir=Path(os.getenv("PASS_OUTPUT_DIR", "temp")),
        temp_dir=Path(os.getenv("PASS_TEMP_DIR", tempfile.gettempdir())),
        signer_cert_path=Path(os.getenv("PASS_SIGNER_CERT_PATH", str(cert_dir / "signerCert.pem"))),
        signer_key_path=Path(os.getenv("PASS_SIGNER_KEY_PATH", str(cert_dir / "signerKey.pem"))),
        wwdr_cert_path=Path(os.getenv("PASS_WWDR_CERT_PATH", str(cert_dir / "wwdr.pem"))),
        signer_key_passphrase=os.getenv("PASS_SIGNER_KEY_PASSPHRASE", ""),
        webhook_url=os.getenv("REGISTRATION_WEBHOOK_URL", ""),
        webhook_secret=os.getenv("REGISTRATION_WEBHOOK_SECRET", ""),
        apns_key_id=apns_key_id,
        apns_auth_key_path=apns_auth_key_path,
        apns_host=os.getenv("APNS_HOST", Settings.apns_host),
        apns_token_ttl_minutes=_env_int("APNS_TOKEN_TTL_MINUTES", 20),
        default_latitude=_env_float("DEFAULT_LATITUDE", Settings.default_latitude),
        default_longitude=_env_float("DEFAULT_LONGITUDE", Settings.default_longitude),
        directions_latitude=_env_float("DIRECTIONS_LATITUDE", Settings.directions_latitude),
        directions_longitude=_env_float("DIRECTIONS_LONGITUDE", Settings.directions_longitude),
        max_body_size=_env_int("MAX_BODY_SIZE", MAX_BODY_SIZE),
        port=_env_int("PORT", 3000),
    )
