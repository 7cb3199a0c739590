"""Tests for key/certificate codecs."""
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from certificate_sync.stores.base import ApplicationResolveError, ItemClass, ItemImportError
from certificate_sync.stores import codec

from conftest import ISSUER_NAME, OTHER_ISSUER_NAME, make_identity, pem_bundle


class TestDecodeMaterial:
    """Tests for decode_material."""

    def test_pem_bundle_in_file_order(self, identity):
        """Key and certificate blocks decode in the order they appear."""
        key, certificate = identity

        items = codec.decode_material(pem_bundle(key, certificate), "bundle.pem")

        assert [cls for cls, _ in items] == [ItemClass.KEY, ItemClass.CERTIFICATE]
        assert items[1][1] == certificate

    def test_der_certificate(self, identity):
        """A bare DER certificate decodes to one certificate."""
        _, certificate = identity
        der = certificate.public_bytes(serialization.Encoding.DER)

        items = codec.decode_material(der, "device.cer")

        assert len(items) == 1
        assert items[0][0] == ItemClass.CERTIFICATE
        assert items[0][1] == certificate

    def test_der_private_key(self, identity):
        """A DER PKCS#8 key decodes to one key."""
        key, _ = identity
        der = key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

        items = codec.decode_material(der, "device.key")

        assert [cls for cls, _ in items] == [ItemClass.KEY]
        assert codec.public_key_fingerprint(items[0][1].public_key()) == \
            codec.public_key_fingerprint(key.public_key())

    def test_encrypted_pem_key_with_passphrase(self, identity):
        """Encrypted PEM keys load with the right passphrase."""
        key, _ = identity
        pem = codec.encode_private_key(key, "hunter2")

        items = codec.decode_material(pem, "device.pem", passphrase="hunter2")

        assert items[0][0] == ItemClass.KEY

    def test_encrypted_pem_key_without_passphrase(self, identity):
        """Encrypted PEM keys without a passphrase raise ItemImportError."""
        key, _ = identity
        pem = codec.encode_private_key(key, "hunter2")

        with pytest.raises(ItemImportError):
            codec.decode_material(pem, "device.pem")

    def test_pkcs12_by_suffix(self, identity):
        """PKCS#12 archives yield the key first, then the certificate."""
        key, certificate = identity
        archive = pkcs12.serialize_key_and_certificates(
            b"device", key, certificate, None, serialization.NoEncryption(),
        )

        items = codec.decode_material(archive, "device.p12")

        assert [cls for cls, _ in items] == [ItemClass.KEY, ItemClass.CERTIFICATE]

    def test_unsupported_pem_block(self, identity):
        """PEM blocks that are neither keys nor certificates are rejected."""
        key, _ = identity
        public_pem = key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

        with pytest.raises(ItemImportError, match="Unsupported import item class"):
            codec.decode_material(public_pem, "public.pem")

    def test_garbage(self):
        """Unrecognized bytes raise ItemImportError."""
        with pytest.raises(ItemImportError):
            codec.decode_material(b"not a certificate", "junk.bin")


class TestEncoding:
    """Tests for encoders and loaders."""

    def test_private_key_round_trip_encrypted(self, identity):
        """An encrypted key needs its passphrase to load."""
        key, _ = identity
        pem = codec.encode_private_key(key, "secret")

        assert b"ENCRYPTED PRIVATE KEY" in pem
        loaded = codec.load_private_key(pem, "secret")
        assert codec.public_key_fingerprint(loaded.public_key()) == \
            codec.public_key_fingerprint(key.public_key())

    def test_certificate_der_and_pem(self, identity):
        """Certificates encode as DER by default and PEM on request."""
        _, certificate = identity

        assert codec.encode_certificate(certificate) == \
            certificate.public_bytes(serialization.Encoding.DER)
        assert codec.encode_certificate(certificate, pem=True).startswith(b"-----BEGIN CERTIFICATE-----")


class TestAttributes:
    """Tests for issuer, label and application helpers."""

    def test_issuer_from_rfc4514_matches_certificate(self, identity):
        """An RFC 4514 issuer name encodes to the certificate's issuer bytes."""
        _, certificate = identity

        assert codec.issuer_from_rfc4514(ISSUER_NAME) == codec.issuer_bytes(certificate)

    def test_different_issuers_differ(self):
        """Certificates from different issuers have different issuer bytes."""
        _, first = make_identity(issuer_name=ISSUER_NAME)
        _, second = make_identity(issuer_name=OTHER_ISSUER_NAME)

        assert codec.issuer_bytes(first) != codec.issuer_bytes(second)

    def test_certificate_label_uses_common_name(self):
        """Label is the subject CN."""
        _, certificate = make_identity("build-signing")

        assert codec.certificate_label(certificate) == "build-signing"

    def test_application_data_by_content(self, make_app):
        """Two paths to identical executables share canonical data."""
        first = make_app("tool", b"same binary")
        copy = make_app("tool-copy", b"same binary")
        other = make_app("other", b"different binary")

        assert codec.application_data(first) == codec.application_data(copy)
        assert codec.application_data(first) != codec.application_data(other)

    def test_application_data_missing_file(self, tmp_path):
        """Unreadable executables raise ApplicationResolveError."""
        with pytest.raises(ApplicationResolveError):
            codec.application_data(str(tmp_path / "missing"))
