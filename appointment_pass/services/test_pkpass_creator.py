"""
Tests for manifest, archive and bundle publication.
"""

import hashlib
import io
import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock
from zipfile import ZipFile

from appointment_pass.config import Settings
from appointment_pass.exceptions import PassSigningError
from appointment_pass.services.pkpass_creator import (
    BundleEmitter,
    OpenSSLSigner,
    PKPassCreator,
    build_manifest,
)


class FakeSigner:
    def __init__(self):
        self.signed = []

    def sign(self, manifest: bytes) -> bytes:
        self.signed.append(manifest)
        return b"signature:" + hashlib.sha256(manifest).digest()


class TestPKPassCreator(unittest.TestCase):

    def test_manifest_hashes_every_file(self):
        manifest = json.loads(build_manifest({"pass.json": b"{}", "icon.png": b"png"}))
        self.assertEqual(manifest, {
            "icon.png": hashlib.sha1(b"png").hexdigest(),
            "pass.json": hashlib.sha1(b"{}").hexdigest(),
        })

    def test_manifest_requires_pass_json(self):
        with self.assertRaises(ValueError):
            build_manifest({"icon.png": b"png"})

    def test_archive_contents(self):
        signer = FakeSigner()
        bundle = PKPassCreator(signer).create({"serialNumber": "1"}, {"icon.png": b"png"})

        with ZipFile(io.BytesIO(bundle)) as zf:
            names = set(zf.namelist())
            manifest = zf.read("manifest.json")
            self.assertEqual(json.loads(zf.read("pass.json")), {"serialNumber": "1"})
            self.assertEqual(zf.read("signature"), b"signature:" + hashlib.sha256(manifest).digest())

        self.assertEqual(names, {"pass.json", "icon.png", "manifest.json", "signature"})
        self.assertEqual(signer.signed, [manifest])


class TestBundleEmitter(unittest.TestCase):

    def setUp(self):
        self.temp = tempfile.TemporaryDirectory()
        self.settings = Settings(output_dir=Path(self.temp.name) / "passes")
        self.emitter = BundleEmitter(self.settings, PKPassCreator(FakeSigner()))

    def tearDown(self):
        self.temp.cleanup()

    def test_emit_writes_bundle_and_returns_url(self):
        url = self.emitter.emit("1717250000000", {"serialNumber": "1717250000000"}, {}, "http://testserver/")

        self.assertEqual(url, "http://testserver/passes/1717250000000.pkpass")
        path = self.settings.output_dir / "1717250000000.pkpass"
        self.assertTrue(path.is_file())
        self.assertEqual(sorted(p.name for p in self.settings.output_dir.iterdir()), [path.name])
        with ZipFile(path) as zf:
            self.assertIn("signature", zf.namelist())

    def test_signing_failure_writes_nothing(self):
        signer = mock.Mock()
        signer.sign.side_effect = PassSigningError("boom")
        emitter = BundleEmitter(self.settings, PKPassCreator(signer))

        with self.assertRaises(PassSigningError):
            emitter.emit("1", {"serialNumber": "1"}, {}, "http://testserver/")
        self.assertFalse(emitter.bundle_path("1").exists())


class TestOpenSSLSigner(unittest.TestCase):

    def test_missing_certificates(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            signer = OpenSSLSigner(Path(temp_dir) / "cert.pem", Path(temp_dir) / "key.pem",
                                   Path(temp_dir) / "wwdr.pem")
            with self.assertRaises(PassSigningError) as ctx:
                signer.sign(b"{}")
        self.assertIn("signer certificate", str(ctx.exception))

    def test_openssl_command(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            paths = [Path(temp_dir) / name for name in ("cert.pem", "key.pem", "wwdr.pem")]
            for path in paths:
                path.write_text("pem")
            signer = OpenSSLSigner(*paths, passphrase="secret")

            def fake_run(cmd, **kwargs):
                Path(cmd[cmd.index("-out") + 1]).write_bytes(b"DER")
                return mock.Mock(returncode=0, stdout="")

            with mock.patch("appointment_pass.services.pkpass_creator.subprocess.run",
                            side_effect=fake_run) as run:
                signature = signer.sign(b"{}")

        self.assertEqual(signature, b"DER")
        cmd = run.call_args.args[0]
        self.assertEqual(cmd[:4], ["openssl", "smime", "-binary", "-sign"])
        self.assertIn("-passin", cmd)
        self.assertNotIn("secret", " ".join(cmd))
        self.assertEqual(run.call_args.kwargs["env"]["PKPASS_SIGNER_KEY_PASSPHRASE"], "secret")

    def test_openssl_failure(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            paths = [Path(temp_dir) / name for name in ("cert.pem", "key.pem", "wwdr.pem")]
            for path in paths:
                path.write_text("pem")
            with mock.patch("appointment_pass.services.pkpass_creator.subprocess.run",
                            return_value=mock.Mock(returncode=1, stdout="bad key")):
                with self.assertRaises(PassSigningError) as ctx:
                    OpenSSLSigner(*paths).sign(b"{}")
        self.assertIn("bad key", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
