"""In-process credential store.

Holds keys and certificates as ``cryptography`` objects. Access structures
handed out by ``get_access`` are working copies: nothing changes in the
store until ``set_access`` or ``add_item`` is called with them. Every
persisting call is recorded in ``journal``.
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .base import (
    ACLContents,
    ACLReadError,
    ACLWriteError,
    Authorization,
    CredentialStore,
    DuplicateItemError,
    ExportFlags,
    ExportFormat,
    Identity,
    ItemClass,
    ItemExportError,
    KeyParameters,
    PersistenceError,
    StoreAccessError,
    StoreItem,
    StoreJournalEntry,
    StoreQueryError,
    StoreStatus,
    TrustedApplication,
)
from . import codec
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)


@dataclass
class MemoryACL:
    """One ACL entry. ``applications`` of None means any application."""
    description: Optional[str]
    applications: Optional[list[TrustedApplication]] = field(default_factory=list)
    authorizations: list[Authorization] = field(default_factory=list)
    prompt_policy: int = 0


@dataclass
class MemoryAccess:
    """Access structure attached to a key."""
    acls: list[MemoryACL] = field(default_factory=list)


@dataclass
class StoredKey:
    """Private key held (or about to be held) by a store."""
    key: Any
    fingerprint: str
    label: str = ""
    access: MemoryAccess = field(default_factory=MemoryAccess)


@dataclass
class StoredCertificate:
    """Certificate held (or about to be held) by a store."""
    certificate: Any
    fingerprint: str
    label: str = ""

    @property
    def key_fingerprint(self) -> str:
        return codec.public_key_fingerprint(self.certificate.public_key())


@dataclass
class IdentityRef:
    """Store-private handle behind an Identity."""
    key: StoredKey
    certificate: StoredCertificate


def default_access(label: str) -> MemoryAccess:
    """Access given to a new key that arrives without one.

    An owner ACL that may change the access, and an ACL allowing any
    application to encrypt.
    """
    return MemoryAccess(acls=[
        MemoryACL(
            description=label,
            applications=[],
            authorizations=[Authorization.CHANGE_ACL],
        ),
        MemoryACL(
            description=label,
            applications=None,
            authorizations=[Authorization.ENCRYPT],
        ),
    ])


class MemoryCredentialStore(CredentialStore):
    """Credential store that lives only as long as the process."""

    def __init__(
        self,
        path: str,
        password: Optional[str] = None,
        read_only: bool = False,
    ):
        super().__init__(path)
        self._password = password
        self._unlocked = password is None
        self.read_only = read_only
        self.keys: list[StoredKey] = []
        self.certificates: list[StoredCertificate] = []
        self.journal: list[StoreJournalEntry] = []

    # === Lock state ===

    def status(self) -> StoreStatus:
        if not self._unlocked:
            return StoreStatus.LOCKED
        flags = StoreStatus.UNLOCKED | StoreStatus.READABLE
        if not self.read_only:
            flags |= StoreStatus.WRITABLE
        return flags

    def unlock(self, password: Optional[str] = None) -> None:
        if self._unlocked:
            return
        if password is None:
            raise StoreAccessError(f"Store {self.path} is locked and no password was supplied")
        if not self._check_password(password):
            raise StoreAccessError(f"Incorrect password for store {self.path}")
        self._on_unlock(password)
        self._unlocked = True
        logger.debug(f"Unlocked store {self.path}")

    def _check_password(self, password: str) -> bool:
        return password == self._password

    def _on_unlock(self, password: str) -> None:
        """Hook for subclasses that materialize content on unlock."""
        pass

    def _require_readable(self, error: type[Exception]) -> None:
        if not self._unlocked:
            raise error(f"Store {self.path} is locked")

    def _require_writable(self, error: type[Exception]) -> None:
        self._require_readable(error)
        if self.read_only:
            raise error(f"Store {self.path} is read-only")

    # === Seeding ===

    def add_identity(
        self,
        private_key: Any,
        certificate: Any,
        label: Optional[str] = None,
        access: Optional[MemoryAccess] = None,
    ) -> StoredKey:
        """Place a key+certificate pair directly into the store.

        Used to seed stores; does not touch the journal.
        """
        cert_label = label or codec.certificate_label(certificate)
        stored_key = StoredKey(
            key=private_key,
            fingerprint=codec.public_key_fingerprint(private_key.public_key()),
            label=cert_label,
            access=access if access is not None else default_access(cert_label),
        )
        self.keys.append(stored_key)
        self.certificates.append(StoredCertificate(
            certificate=certificate,
            fingerprint=codec.certificate_fingerprint(certificate),
            label=cert_label,
        ))
        return stored_key

    def find_key(self, fingerprint: str) -> Optional[StoredKey]:
        for stored in self.keys:
            if stored.fingerprint == fingerprint:
                return stored
        return None

    # === Enumeration ===

    @timed("query_identities")
    def query_identities(self) -> list[Identity]:
        self._require_readable(StoreQueryError)

        identities = []
        for stored_cert in self.certificates:
            stored_key = self.find_key(stored_cert.key_fingerprint)
            if stored_key is None:
                continue
            identities.append(Identity(
                issuer=codec.issuer_bytes(stored_cert.certificate),
                store_path=self.path,
                label=stored_cert.label,
                handle=IdentityRef(key=stored_key, certificate=stored_cert),
            ))
        return identities

    def copy_private_key(self, identity: Identity) -> StoredKey:
        if not isinstance(identity.handle, IdentityRef):
            raise StoreQueryError(f"Identity {identity.label!r} does not belong to {self.path}")
        return identity.handle.key

    def copy_certificate(self, identity: Identity) -> StoredCertificate:
        if not isinstance(identity.handle, IdentityRef):
            raise StoreQueryError(f"Identity {identity.label!r} does not belong to {self.path}")
        return identity.handle.certificate

    # === Access structures ===

    def get_access(self, key: Any) -> MemoryAccess:
        self._require_readable(ACLReadError)
        if not isinstance(key, StoredKey):
            raise ACLReadError(f"Not a key handle: {key!r}")
        return copy.deepcopy(key.access)

    def set_access(self, key: Any, access: Any) -> None:
        self._require_writable(PersistenceError)
        if not isinstance(key, StoredKey) or not any(k is key for k in self.keys):
            raise PersistenceError(f"Key is not stored in {self.path}")
        if not isinstance(access, MemoryAccess):
            raise PersistenceError(f"Not an access structure: {access!r}")

        key.access = copy.deepcopy(access)
        self.journal.append(StoreJournalEntry(
            operation="set_access",
            subject=key.label,
            details={"acls": [acl.description for acl in access.acls]},
        ))
        self._persist()

    def list_acls(self, access: Any) -> list[MemoryACL]:
        if not isinstance(access, MemoryAccess):
            raise ACLReadError(f"Not an access structure: {access!r}")
        return list(access.acls)

    def copy_matching_acls(self, access: Any, authorization: Authorization) -> list[MemoryACL]:
        return [
            acl for acl in self.list_acls(access)
            if authorization in acl.authorizations
        ]

    def acl_contents(self, acl: Any) -> ACLContents:
        if not isinstance(acl, MemoryACL):
            raise ACLReadError(f"Not an ACL: {acl!r}")
        applications = None if acl.applications is None else list(acl.applications)
        return ACLContents(applications, acl.description, acl.prompt_policy)

    def set_acl_contents(
        self,
        acl: Any,
        applications: Optional[list[TrustedApplication]],
        description: str,
        prompt_policy: Any,
    ) -> None:
        if not isinstance(acl, MemoryACL):
            raise ACLWriteError(f"Not an ACL: {acl!r}")
        for application in applications or []:
            if not isinstance(application, TrustedApplication):
                raise ACLWriteError(f"Not a trusted application: {application!r}")

        acl.applications = None if applications is None else list(applications)
        acl.description = description
        acl.prompt_policy = prompt_policy if prompt_policy is not None else 0

    def acl_authorizations(self, acl: Any) -> list[Authorization]:
        if not isinstance(acl, MemoryACL):
            raise ACLReadError(f"Not an ACL: {acl!r}")
        return list(acl.authorizations)

    def set_acl_authorizations(self, acl: Any, authorizations: list[Authorization]) -> None:
        if not isinstance(acl, MemoryACL):
            raise ACLWriteError(f"Not an ACL: {acl!r}")
        try:
            acl.authorizations = [Authorization(a) for a in authorizations]
        except ValueError as e:
            raise ACLWriteError(str(e)) from e

    def create_acl(
        self,
        access: Any,
        applications: list[TrustedApplication],
        description: str,
        prompt_policy: Any = None,
    ) -> MemoryACL:
        if not isinstance(access, MemoryAccess):
            raise ACLWriteError(f"Not an access structure: {access!r}")
        acl = MemoryACL(
            description=description,
            applications=list(applications),
            authorizations=[],
            prompt_policy=prompt_policy if prompt_policy is not None else 0,
        )
        access.acls.append(acl)
        return acl

    # === Trusted applications ===

    def resolve_trusted_application(self, executable_path: str) -> TrustedApplication:
        return TrustedApplication(
            path=str(executable_path),
            data=codec.application_data(executable_path),
        )

    # === Import / export ===

    def import_items(
        self,
        raw: bytes,
        hint_path: str,
        parameters: Optional[KeyParameters] = None,
    ) -> list[StoreItem]:
        passphrase = parameters.passphrase if parameters else None
        items = []

        for item_class, obj in codec.decode_material(raw, hint_path, passphrase):
            if item_class == ItemClass.KEY:
                handle = StoredKey(
                    key=obj,
                    fingerprint=codec.public_key_fingerprint(obj.public_key()),
                    label="",
                    access=default_access(""),
                )
                items.append(StoreItem(ItemClass.KEY, handle))
            else:
                label = codec.certificate_label(obj)
                handle = StoredCertificate(
                    certificate=obj,
                    fingerprint=codec.certificate_fingerprint(obj),
                    label=label,
                )
                items.append(StoreItem(ItemClass.CERTIFICATE, handle, label=label))

        return items

    def export_item(
        self,
        item: Any,
        export_format: ExportFormat,
        flags: Optional[ExportFlags] = None,
        parameters: Optional[KeyParameters] = None,
    ) -> bytes:
        self._require_readable(ItemExportError)
        flags = flags or ExportFlags()
        passphrase = parameters.passphrase if parameters else None

        if isinstance(item, StoredKey) and export_format == ExportFormat.PEM_SEQUENCE:
            return codec.encode_private_key(item.key, passphrase)

        if isinstance(item, StoredCertificate):
            if export_format == ExportFormat.X509_CERTIFICATE:
                return codec.encode_certificate(item.certificate, pem=flags.pem_armour)
            if export_format == ExportFormat.PEM_SEQUENCE:
                return codec.encode_certificate(item.certificate, pem=True)

        raise ItemExportError(
            f"Cannot export {type(item).__name__} as {ExportFormat(export_format).value}"
        )

    def add_item(
        self,
        item: StoreItem,
        access: Any = None,
        label: Optional[str] = None,
    ) -> None:
        self._require_writable(PersistenceError)

        if item.item_class == ItemClass.KEY:
            stored_key: StoredKey = item.handle
            if self.find_key(stored_key.fingerprint) is not None:
                raise DuplicateItemError(f"Key already present in {self.path}", [item])
            if access is not None and not isinstance(access, MemoryAccess):
                raise PersistenceError(f"Not an access structure: {access!r}")

            stored_key.label = label or stored_key.label
            if access is not None:
                stored_key.access = copy.deepcopy(access)
            self.keys.append(stored_key)

        elif item.item_class == ItemClass.CERTIFICATE:
            stored_cert: StoredCertificate = item.handle
            if any(c.fingerprint == stored_cert.fingerprint for c in self.certificates):
                raise DuplicateItemError(f"Certificate already present in {self.path}", [item])
            stored_cert.label = label or stored_cert.label
            self.certificates.append(stored_cert)

        else:
            raise PersistenceError(f"Unsupported item class: {item.item_class}")

        self.journal.append(StoreJournalEntry(
            operation="add_item",
            subject=label or item.label,
            details={
                "class": ItemClass(item.item_class).value,
                "access": access is not None,
            },
        ))
        self._persist()

    def _persist(self) -> None:
        """Hook for subclasses backed by durable storage."""
        pass
