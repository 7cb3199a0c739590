"""Byte-level codecs for keys, certificates and trusted applications.

Decodes PEM bundles, PKCS#12 archives and DER blobs into ``cryptography``
objects, and encodes them back for export.
"""
import hashlib
import re
from pathlib import Path
from typing import Any, Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .base import ItemClass, ItemImportError, ApplicationResolveError

PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----",
    re.DOTALL,
)

KEY_BLOCK_TYPES = {
    b"PRIVATE KEY",
    b"ENCRYPTED PRIVATE KEY",
    b"RSA PRIVATE KEY",
    b"EC PRIVATE KEY",
}
CERTIFICATE_BLOCK_TYPES = {b"CERTIFICATE"}
PKCS12_SUFFIXES = {".p12", ".pfx"}

DecodedItem = tuple[ItemClass, Any]


def _password_bytes(passphrase: Optional[str]) -> Optional[bytes]:
    return passphrase.encode("utf-8") if passphrase else None


def decode_material(
    raw: bytes,
    hint_path: str = "",
    passphrase: Optional[str] = None,
) -> list[DecodedItem]:
    """
    Decode raw key/certificate material into (item class, object) pairs.

    PEM input may hold any number of key and certificate blocks; they are
    returned in file order. Non-PEM input is tried as PKCS#12 (first when
    the hint path says so), then DER certificate, then DER private key.

    Args:
        raw: Raw file contents
        hint_path: Source path, used only to pick the decoder order
        passphrase: Passphrase for encrypted keys or PKCS#12 archives

    Returns:
        Decoded items, keys as private key objects and certificates as
        ``x509.Certificate``

    Raises:
        ItemImportError: If the material is malformed or holds an
            unsupported item class
    """
    blocks = list(PEM_BLOCK.finditer(raw))
    if blocks:
        return [_decode_pem_block(m.group(1), m.group(0), passphrase) for m in blocks]

    if Path(hint_path).suffix.lower() in PKCS12_SUFFIXES:
        return _decode_pkcs12(raw, passphrase)

    try:
        return [(ItemClass.CERTIFICATE, x509.load_der_x509_certificate(raw))]
    except ValueError:
        pass

    try:
        key = serialization.load_der_private_key(raw, password=_password_bytes(passphrase))
        return [(ItemClass.KEY, key)]
    except (ValueError, TypeError, UnsupportedAlgorithm):
        pass

    try:
        return _decode_pkcs12(raw, passphrase)
    except ItemImportError:
        raise ItemImportError(f"Unrecognized key or certificate material: {hint_path or '<bytes>'}")


def _decode_pem_block(block_type: bytes, block: bytes, passphrase: Optional[str]) -> DecodedItem:
    """Decode a single PEM block."""
    name = block_type.decode("ascii")

    if block_type in CERTIFICATE_BLOCK_TYPES:
        try:
            return ItemClass.CERTIFICATE, x509.load_pem_x509_certificate(block)
        except ValueError as e:
            raise ItemImportError(f"Malformed {name} block: {e}") from e

    if block_type in KEY_BLOCK_TYPES:
        try:
            key = serialization.load_pem_private_key(block, password=_password_bytes(passphrase))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ItemImportError(f"Cannot load {name} block: {e}") from e
        return ItemClass.KEY, key

    raise ItemImportError(f"Unsupported import item class: {name}")


def _decode_pkcs12(raw: bytes, passphrase: Optional[str]) -> list[DecodedItem]:
    """Decode a PKCS#12 archive into key first, then certificates."""
    try:
        key, certificate, additional = pkcs12.load_key_and_certificates(
            raw, _password_bytes(passphrase)
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ItemImportError(f"Cannot load PKCS#12 archive: {e}") from e

    items: list[DecodedItem] = []
    if key is not None:
        items.append((ItemClass.KEY, key))
    if certificate is not None:
        items.append((ItemClass.CERTIFICATE, certificate))
    for extra in additional:
        items.append((ItemClass.CERTIFICATE, extra))
    return items


# --- Encoding ---

def encode_private_key(key: Any, passphrase: Optional[str] = None) -> bytes:
    """Serialize a private key as PKCS#8 PEM, encrypted when a passphrase is given."""
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()

    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def encode_certificate(certificate: x509.Certificate, pem: bool = False) -> bytes:
    """Serialize a certificate as DER, or PEM when ``pem`` is set."""
    encoding = serialization.Encoding.PEM if pem else serialization.Encoding.DER
    return certificate.public_bytes(encoding)


def load_private_key(pem: Union[str, bytes], passphrase: Optional[str] = None) -> Any:
    """Load a PEM private key written by ``encode_private_key``."""
    if isinstance(pem, str):
        pem = pem.encode("ascii")
    return serialization.load_pem_private_key(pem, password=_password_bytes(passphrase))


def load_certificate(pem: Union[str, bytes]) -> x509.Certificate:
    """Load a PEM certificate."""
    if isinstance(pem, str):
        pem = pem.encode("ascii")
    return x509.load_pem_x509_certificate(pem)


# --- Attributes ---

def issuer_bytes(certificate: x509.Certificate) -> bytes:
    """DER encoding of the certificate issuer, the identity matching key."""
    return certificate.issuer.public_bytes()


def issuer_from_rfc4514(name: str) -> bytes:
    """DER encoding of an RFC 4514 distinguished name string."""
    return x509.Name.from_rfc4514_string(name).public_bytes()


def public_key_fingerprint(public_key: Any) -> str:
    """SHA-256 over the SubjectPublicKeyInfo of a public key."""
    spki = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(spki).hexdigest()


def certificate_fingerprint(certificate: x509.Certificate) -> str:
    return certificate.fingerprint(hashes.SHA256()).hex()


def certificate_label(certificate: x509.Certificate) -> str:
    """Subject common name, or the full RFC 4514 subject if there is none."""
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if names:
        return str(names[0].value)
    return certificate.subject.rfc4514_string()


def application_data(executable_path: str) -> bytes:
    """Canonical form of a trusted application: SHA-256 of the executable.

    Raises:
        ApplicationResolveError: If the executable cannot be read
    """
    path = Path(executable_path)
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ApplicationResolveError(f"Cannot read application {executable_path}: {e}") from e
    return hashlib.sha256(content).digest()
