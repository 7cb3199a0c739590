"""Tests for the YAML-backed credential store."""
import os
import stat

import pytest
import yaml

from certificate_sync.stores import (
    Authorization,
    FileCredentialStore,
    PersistenceError,
    StoreAccessError,
    StoreStatus,
    create_store,
)
from certificate_sync.stores.file import check_verifier, make_verifier

from conftest import pem_bundle


def seed(store, identity):
    """Add a key and certificate through the public import path."""
    for item in store.import_items(pem_bundle(*identity), "seed.pem"):
        store.add_item(item)


class TestFileCredentialStore:
    """Tests for FileCredentialStore."""

    def test_missing_file_is_created(self, tmp_path):
        """Opening a missing store creates an empty document."""
        path = tmp_path / "stores" / "login.yaml"

        store = FileCredentialStore(str(path))

        assert path.exists()
        assert store.query_identities() == []
        assert yaml.safe_load(path.read_text())["version"] == 1

    def test_store_file_is_private(self, tmp_path):
        """The store file is readable by its owner only."""
        path = tmp_path / "login.yaml"

        FileCredentialStore(str(path))

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_failed_write_leaves_store_intact(self, tmp_path, identity, monkeypatch):
        """A write that cannot be completed raises PersistenceError and leaves no temporary file."""
        path = tmp_path / "login.yaml"
        store = FileCredentialStore(str(path))
        before = path.read_text()

        def refuse(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", refuse)
        with pytest.raises(PersistenceError):
            seed(store, identity)

        assert [p.name for p in tmp_path.iterdir()] == ["login.yaml"]
        assert path.read_text() == before

    def test_items_survive_reopen(self, tmp_path, identity, issuer):
        """Added items are found after reopening the store."""
        path = str(tmp_path / "login.yaml")
        seed(FileCredentialStore(path), identity)

        reopened = FileCredentialStore(path)
        identities = reopened.query_identities()

        assert len(identities) == 1
        assert identities[0].issuer == issuer

    def test_password_store_locked_on_reopen(self, tmp_path, identity):
        """A store with a password is locked when reopened."""
        path = str(tmp_path / "login.yaml")
        seed(FileCredentialStore(path, password="pw"), identity)

        reopened = FileCredentialStore(path)

        assert reopened.status() == StoreStatus.LOCKED
        with pytest.raises(StoreAccessError):
            reopened.unlock("wrong")

        reopened.unlock("pw")
        assert len(reopened.query_identities()) == 1

    def test_keys_encrypted_with_password(self, tmp_path, identity):
        """Private keys are written encrypted when the store has a password."""
        path = tmp_path / "login.yaml"
        seed(FileCredentialStore(str(path), password="pw"), identity)

        content = path.read_text()

        assert "ENCRYPTED PRIVATE KEY" in content
        assert "verifier" in yaml.safe_load(content)

    def test_access_survives_reopen(self, tmp_path, identity, make_app):
        """ACL changes written with set_access are persisted."""
        path = str(tmp_path / "login.yaml")
        store = FileCredentialStore(path)
        seed(store, identity)
        key = store.copy_private_key(store.query_identities()[0])
        access = store.get_access(key)
        app = store.resolve_trusted_application(make_app("tool"))
        acl = store.create_acl(access, [app], "certificate-sync")
        store.set_acl_authorizations(acl, [Authorization.SIGN, Authorization.DECRYPT])
        store.set_access(key, access)

        reopened = FileCredentialStore(path)
        key = reopened.copy_private_key(reopened.query_identities()[0])
        acls = reopened.list_acls(reopened.get_access(key))
        named = [a for a in acls if reopened.acl_contents(a).description == "certificate-sync"]

        assert len(named) == 1
        assert reopened.acl_contents(named[0]).applications == [app]
        assert reopened.acl_authorizations(named[0]) == [Authorization.SIGN, Authorization.DECRYPT]

    def test_any_application_acl_survives_reopen(self, tmp_path, identity):
        """ACLs open to any application keep a None application list."""
        path = str(tmp_path / "login.yaml")
        seed(FileCredentialStore(path), identity)

        reopened = FileCredentialStore(path)
        key = reopened.copy_private_key(reopened.query_identities()[0])
        acls = reopened.list_acls(reopened.get_access(key))

        assert any(reopened.acl_contents(a).applications is None for a in acls)

    def test_unsupported_version(self, tmp_path):
        """Documents with an unknown version are refused."""
        path = tmp_path / "login.yaml"
        path.write_text(yaml.dump({"version": 99, "items": []}))

        with pytest.raises(StoreAccessError):
            FileCredentialStore(str(path))

    def test_corrupt_item(self, tmp_path):
        """Items that do not decode make the store unusable."""
        path = tmp_path / "login.yaml"
        path.write_text(yaml.dump({
            "version": 1,
            "items": [{"class": "certificate", "label": "bad", "pem": "garbage"}],
        }))

        with pytest.raises(StoreAccessError):
            FileCredentialStore(str(path))

    def test_create_store_defaults_to_file(self, tmp_path):
        """The factory's default backend is the file store."""
        store = create_store(str(tmp_path / "login.yaml"))

        assert isinstance(store, FileCredentialStore)


class TestVerifier:
    """Tests for the store password verifier."""

    def test_accepts_only_the_original_password(self):
        """The verifier matches its own password and nothing else."""
        verifier = make_verifier("pw", iterations=1000)

        assert check_verifier(verifier, "pw")
        assert not check_verifier(verifier, "wrong")

    def test_stored_as_hex(self):
        """Salt and hash are hex strings so the document stays plain YAML."""
        verifier = make_verifier("pw", iterations=1000)

        assert verifier["iterations"] == 1000
        assert len(bytes.fromhex(verifier["salt"])) == 16
        assert len(bytes.fromhex(verifier["hash"])) == 32
