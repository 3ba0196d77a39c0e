"""
PKPass Creator - signed .pkpass bundle generation

Builds manifest.json (SHA-1 of every file), signs it with OpenSSL using the
pass type certificate, the private key and the Apple WWDR intermediate, and
zips everything into a .pkpass archive. The bundle emitter then publishes
the archive under the serving directory.
"""

import hashlib
import io
import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional
from zipfile import ZIP_DEFLATED, ZipFile

from ..config import Settings
from ..exceptions import PassSigningError
from .request_normalizer import build_download_url

logger = logging.getLogger(__name__)

PKPASS_EXTENSION = "pkpass"
PKPASS_MEDIA_TYPE = "application/vnd.apple.pkpass"
PASSPHRASE_ENV = "PKPASS_SIGNER_KEY_PASSPHRASE"


def run(cmd: List[str], env: Optional[Dict[str, str]] = None) -> str:
    """Run an external command, raising PassSigningError on failure."""
    logger.debug(f"$ {' '.join(cmd)}")
    try:
        proc = subprocess.run(cmd, text=True, env=env,
                              stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
    except FileNotFoundError as e:
        raise PassSigningError(f"openssl is not available: {e}") from e
    if proc.returncode != 0:
        raise PassSigningError(f"Command failed: {cmd[0]} {cmd[1]}: {proc.stdout.strip()}")
    return proc.stdout


def build_manifest(files: Dict[str, bytes]) -> bytes:
    """manifest.json content mapping each bundled file to its SHA-1 digest"""
    manifest = {name: hashlib.sha1(content).hexdigest() for name, content in sorted(files.items())}
    if "pass.json" not in manifest:
        raise ValueError("pass.json is required in a pass bundle")
    return json.dumps(manifest, indent=2).encode("utf-8")


def zip_pkpass(files: Dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with ZipFile(buf, "w", ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


class OpenSSLSigner:
    """Detached DER PKCS#7 signature over manifest.json via `openssl smime`"""

    def __init__(self, signer_cert_path: Path, signer_key_path: Path, wwdr_cert_path: Path,
                 passphrase: str = ""):
        self.signer_cert_path = Path(signer_cert_path)
        self.signer_key_path = Path(signer_key_path)
        self.wwdr_cert_path = Path(wwdr_cert_path)
        self.passphrase = passphrase

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenSSLSigner":
        return cls(settings.signer_cert_path, settings.signer_key_path,
                   settings.wwdr_cert_path, settings.signer_key_passphrase)

    def check_files(self) -> None:
        for label, path in (("signer certificate", self.signer_cert_path),
                            ("signer key", self.signer_key_path),
                            ("WWDR certificate", self.wwdr_cert_path)):
            if not path.is_file():
                raise PassSigningError(f"Missing {label}: {path}")

    def sign(self, manifest: bytes) -> bytes:
        self.check_files()
        with tempfile.TemporaryDirectory() as temp_dir:
            manifest_path = Path(temp_dir) / "manifest.json"
            signature_path = Path(temp_dir) / "signature"
            manifest_path.write_bytes(manifest)

            cmd = [
                "openssl", "smime", "-binary", "-sign",
                "-signer", str(self.signer_cert_path),
                "-inkey", str(self.signer_key_path),
                "-certfile", str(self.wwdr_cert_path),
                "-in", str(manifest_path),
                "-out", str(signature_path),
                "-outform", "DER",
            ]
            env = None
            if self.passphrase:
                cmd += ["-passin", f"env:{PASSPHRASE_ENV}"]
                env = {**os.environ, PASSPHRASE_ENV: self.passphrase}

            run(cmd, env=env)
            return signature_path.read_bytes()


class PKPassCreator:
    """Creates .pkpass archives from a pass.json document and its images"""

    def __init__(self, signer):
        self.signer = signer

    def create(self, pass_json: Dict, assets: Dict[str, bytes]) -> bytes:
        """
        Build a signed .pkpass archive.

        Args:
            pass_json: Final pass document
            assets: Image file name -> content

        Returns:
            The archive bytes
        """
        files = {"pass.json": json.dumps(pass_json).encode("utf-8")}
        files.update(assets)

        manifest = build_manifest(files)
        signature = self.signer.sign(manifest)

        files["manifest.json"] = manifest
        files["signature"] = signature
        return zip_pkpass(files)


class BundleEmitter:
    """Writes signed bundles to the serving directory"""

    def __init__(self, settings: Settings, creator: PKPassCreator):
        self.output_dir = Path(settings.output_dir)
        self.creator = creator

    def bundle_path(self, serial_number: str) -> Path:
        return self.output_dir / f"{serial_number}.{PKPASS_EXTENSION}"

    def emit(self, serial_number: str, pass_json: Dict, assets: Dict[str, bytes], base_url: str) -> str:
        """
        Sign, archive and publish a pass.

        Returns:
            Public download URL of the bundle
        """
        bundle = self.creator.create(pass_json, assets)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        final_path = self.bundle_path(serial_number)
        # Readers only ever see a missing or complete file
        partial_path = final_path.with_name(f".{final_path.name}.partial")
        try:
            partial_path.write_bytes(bundle)
            os.replace(partial_path, final_path)
        except OSError:
            partial_path.unlink(missing_ok=True)
            raise

        logger.info(f"PKPass created: {final_path} ({len(bundle)} bytes)")
        return build_download_url(base_url, serial_number)
