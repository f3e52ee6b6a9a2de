"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from haproxy_certrenewal.config_loader import Config, Settings


NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_certificate(
    common_name: Optional[str],
    alt_names: Optional[List[str]] = None,
    not_after: Optional[datetime] = None,
) -> tuple[bytes, bytes]:
    """Return (certificate PEM, private key PEM) for a self-signed certificate."""
    not_after = not_after or NOW + timedelta(days=60)
    key = ec.generate_private_key(ec.SECP256R1())

    attributes = []
    if common_name:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    name = x509.Name(attributes)

    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test CA")]))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=90))
        .not_valid_after(not_after)
    )
    if alt_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in alt_names]),
            critical=False,
        )

    cert = builder.sign(key, hashes.SHA256())
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def write_domain(
    store: Path,
    folder: str,
    common_name: Optional[str] = None,
    alt_names: Optional[List[str]] = None,
    not_after: Optional[datetime] = None,
) -> Path:
    """Create a certbot-style live folder with cert, key and full chain."""
    directory = store / folder
    directory.mkdir(parents=True, exist_ok=True)
    cert_pem, key_pem = make_certificate(common_name or folder.split("-")[0], alt_names, not_after)
    (directory / "cert.pem").write_bytes(cert_pem)
    (directory / "privkey.pem").write_bytes(key_pem)
    (directory / "fullchain.pem").write_bytes(cert_pem + b"# chain\n")
    return directory


@pytest.fixture
def store(tmp_path: Path) -> Path:
    """Empty certificate store root."""
    root = tmp_path / "live"
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path: Path, store: Path) -> Config:
    """Return a Config pointing at temp directories."""
    haproxy_dir = tmp_path / "haproxy"
    haproxy_dir.mkdir()
    settings = Settings(
        email="ops@example.com",
        threshold_days=30,
        ca_client="certbot",
        reload_cmd="service haproxy reload",
        webroot=str(tmp_path / "webroot"),
        le_cert_root=str(store),
        haproxy_cfg=str(haproxy_dir / "haproxy.cfg"),
        crt_list=str(haproxy_dir / "crtlist.txt"),
    )
    return Config(settings=settings)


class FakeRunner:
    """Records subprocess.run calls and answers with scripted exit codes."""

    def __init__(self, handler: Optional[Callable[[List[str]], int]] = None):
        self.calls: List[List[str]] = []
        self.handler = handler

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        returncode = self.handler(list(cmd)) if self.handler else 0
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="boom" if returncode else "")

    def commands(self, program: str) -> List[List[str]]:
        return [c for c in self.calls if Path(c[0]).name == program or c[0] == program]


@pytest.fixture
def fake_run(monkeypatch) -> FakeRunner:
    """Replace subprocess.run and make every executable resolvable."""
    runner = FakeRunner()
    monkeypatch.setattr(subprocess, "run", runner)
    monkeypatch.setattr("haproxy_certrenewal.certbot.shutil.which", lambda name: f"/usr/bin/{name}")
    return runner
