"""Shared fixtures: keys, certificates, executables and seeded stores."""
import datetime
from pathlib import Path
from typing import Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from certificate_sync.stores import MemoryCredentialStore

ISSUER_NAME = "CN=Example Root CA,O=Example"
OTHER_ISSUER_NAME = "CN=Other CA,O=Example"


def make_identity(common_name: str = "device-1", issuer_name: str = ISSUER_NAME):
    """Create an EC key and a certificate naming ``issuer_name`` as issuer."""
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(x509.Name.from_rfc4514_string(issuer_name))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, certificate


def pem_bundle(key=None, certificate=None) -> bytes:
    """PEM bytes holding the key (PKCS#8) followed by the certificate."""
    data = b""
    if key is not None:
        data += key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    if certificate is not None:
        data += certificate.public_bytes(serialization.Encoding.PEM)
    return data


@pytest.fixture
def identity_factory():
    return make_identity


@pytest.fixture
def identity():
    """A key and certificate issued by ISSUER_NAME."""
    return make_identity()


@pytest.fixture
def issuer(identity):
    """DER issuer of the ``identity`` certificate."""
    return identity[1].issuer.public_bytes()


@pytest.fixture
def make_app(tmp_path):
    """Create a fake executable; identical content means the same application."""
    def _make(name: str, content: Optional[bytes] = None) -> str:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content if content is not None else f"#!/bin/sh\n# {name}\n".encode())
        path.chmod(0o755)
        return str(path)
    return _make


@pytest.fixture
def self_app(make_app):
    """Executable standing in for the running program."""
    return make_app("certificate-sync")


@pytest.fixture
def memory_store(identity):
    """Memory store holding ``identity`` with the default access."""
    store = MemoryCredentialStore("/stores/login")
    store.add_identity(*identity, label="device-1")
    return store


@pytest.fixture
def bundle_file(tmp_path, identity_factory):
    """Write a PEM bundle with a fresh key and certificate to disk."""
    def _write(name: str = "bundle.pem", common_name: str = "imported") -> Path:
        key, certificate = identity_factory(common_name)
        path = tmp_path / "import" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(pem_bundle(key, certificate))
        return path
    return _write
