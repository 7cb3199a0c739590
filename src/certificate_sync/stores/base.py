"""Base credential store abstraction.

The sync engine never looks inside identity, access, ACL or trusted
application handles. Everything goes through the accessor and mutator
operations declared on CredentialStore.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, NamedTuple, Optional

logger = logging.getLogger(__name__)


# --- Errors ---

class CredentialStoreError(Exception):
    """Base class for every credential store failure."""
    pass


class StoreAccessError(CredentialStoreError):
    """Store could not be opened, unlocked, or lacks read/write permission."""
    pass


class StoreQueryError(CredentialStoreError):
    """Identity enumeration failed."""
    pass


class ACLReadError(CredentialStoreError):
    """ACL contents or authorizations could not be read."""
    pass


class ACLWriteError(CredentialStoreError):
    """ACL contents or authorizations could not be written."""
    pass


class ItemImportError(CredentialStoreError):
    """Raw material could not be decoded into store items."""
    pass


class ItemExportError(CredentialStoreError):
    """Item could not be exported in the requested format."""
    pass


class PersistenceError(CredentialStoreError):
    """Access or item could not be saved to the store."""
    pass


class ApplicationResolveError(CredentialStoreError):
    """Executable could not be turned into a trusted application."""
    pass


class DuplicateItemError(CredentialStoreError):
    """Item already present. Callers treat this as success."""

    def __init__(self, message: str, items: Optional[list["StoreItem"]] = None):
        super().__init__(message)
        self.items = items or []


# --- Enumerations ---

class Authorization(str, Enum):
    """Capability tags an ACL can grant."""
    ANY = "any"
    SIGN = "sign"
    MAC = "mac"
    DERIVE = "derive"
    DECRYPT = "decrypt"
    ENCRYPT = "encrypt"
    CHANGE_ACL = "change_acl"
    CHANGE_OWNER = "change_owner"
    EXPORT_CLEAR = "export_clear"
    EXPORT_WRAPPED = "export_wrapped"
    DELETE = "delete"
    INTEGRITY = "integrity"


class ItemClass(str, Enum):
    """Class of an item produced by an import."""
    KEY = "key"
    CERTIFICATE = "certificate"


class ExportFormat(str, Enum):
    """External formats an item can be exported to."""
    PEM_SEQUENCE = "pem_sequence"
    X509_CERTIFICATE = "x509_certificate"
    PKCS12 = "pkcs12"
    OPENSSL = "openssl"


class StoreStatus(IntFlag):
    """Lock and permission state of an open store."""
    LOCKED = 0
    UNLOCKED = 1
    READABLE = 2
    WRITABLE = 4


# --- Handles and parameters ---

@dataclass(frozen=True)
class TrustedApplication:
    """Application permitted to use a key under an ACL.

    ``path`` is informational only. Two descriptors are the same
    application when their canonical ``data`` is equal.
    """
    path: str
    data: bytes


@dataclass
class Identity:
    """A private key paired with its certificate inside one store."""
    issuer: bytes
    store_path: str
    label: str = ""
    handle: Any = None


@dataclass
class StoreItem:
    """An item produced by ``import_items`` and not yet added to a store."""
    item_class: ItemClass
    handle: Any = None
    label: str = ""


@dataclass
class KeyParameters:
    """Import/export parameters for key material."""
    passphrase: Optional[str] = None


@dataclass
class ExportFlags:
    """Flags for ``export_item``."""
    pem_armour: bool = False


class ACLContents(NamedTuple):
    """Contents of one ACL as returned by ``acl_contents``."""
    applications: Optional[list[TrustedApplication]]
    description: Optional[str]
    prompt_policy: Any


@dataclass
class StoreJournalEntry:
    """One persisting call made against a store."""
    operation: str
    subject: str = ""
    details: dict = field(default_factory=dict)


class CredentialStore(ABC):
    """Abstract base class for secure credential stores."""

    def __init__(self, path: str):
        self.path = path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"

    # Lock state
    @abstractmethod
    def status(self) -> StoreStatus:
        """Return current lock and permission flags."""
        pass

    @abstractmethod
    def unlock(self, password: Optional[str] = None) -> None:
        """Unlock the store.

        Raises:
            StoreAccessError: If the password is wrong or missing
        """
        pass

    # Enumeration
    @abstractmethod
    def query_identities(self) -> list[Identity]:
        """Enumerate every key+certificate pair in the store.

        Raises:
            StoreQueryError: If the store cannot be enumerated
        """
        pass

    @abstractmethod
    def copy_private_key(self, identity: Identity) -> Any:
        """Return the private key handle of an identity."""
        pass

    @abstractmethod
    def copy_certificate(self, identity: Identity) -> Any:
        """Return the certificate handle of an identity."""
        pass

    # Access structures
    @abstractmethod
    def get_access(self, key: Any) -> Any:
        """Return a working copy of the key's access structure."""
        pass

    @abstractmethod
    def set_access(self, key: Any, access: Any) -> None:
        """Persist an access structure onto a stored key.

        Raises:
            PersistenceError: If the store rejects the write
        """
        pass

    @abstractmethod
    def list_acls(self, access: Any) -> list[Any]:
        """Return every ACL of an access structure in store order."""
        pass

    @abstractmethod
    def copy_matching_acls(self, access: Any, authorization: Authorization) -> list[Any]:
        """Return ACLs of an access structure that grant ``authorization``."""
        pass

    @abstractmethod
    def acl_contents(self, acl: Any) -> ACLContents:
        """Read applications, description and prompt policy of an ACL."""
        pass

    @abstractmethod
    def set_acl_contents(
        self,
        acl: Any,
        applications: Optional[list[TrustedApplication]],
        description: str,
        prompt_policy: Any,
    ) -> None:
        """Replace applications, description and prompt policy of an ACL."""
        pass

    @abstractmethod
    def acl_authorizations(self, acl: Any) -> list[Authorization]:
        """Read the authorization tags of an ACL."""
        pass

    @abstractmethod
    def set_acl_authorizations(self, acl: Any, authorizations: list[Authorization]) -> None:
        """Replace the authorization tags of an ACL."""
        pass

    @abstractmethod
    def create_acl(
        self,
        access: Any,
        applications: list[TrustedApplication],
        description: str,
        prompt_policy: Any = None,
    ) -> Any:
        """Append a new ACL to an access structure and return it."""
        pass

    # Trusted applications
    @abstractmethod
    def resolve_trusted_application(self, executable_path: str) -> TrustedApplication:
        """Build a trusted application descriptor from an executable.

        Raises:
            ApplicationResolveError: If the executable cannot be read
        """
        pass

    def trusted_application_data(self, application: TrustedApplication) -> bytes:
        """Return the canonical binary form of a trusted application."""
        return application.data

    # Import / export
    @abstractmethod
    def import_items(
        self,
        raw: bytes,
        hint_path: str,
        parameters: Optional[KeyParameters] = None,
    ) -> list[StoreItem]:
        """Decode raw material into items without adding them.

        Raises:
            ItemImportError: If the material is malformed or unsupported
            DuplicateItemError: If the material is already present
        """
        pass

    @abstractmethod
    def export_item(
        self,
        item: Any,
        export_format: ExportFormat,
        flags: Optional[ExportFlags] = None,
        parameters: Optional[KeyParameters] = None,
    ) -> bytes:
        """Export a key or certificate handle.

        Raises:
            ItemExportError: If the format is unsupported for the item
        """
        pass

    @abstractmethod
    def add_item(
        self,
        item: StoreItem,
        access: Any = None,
        label: Optional[str] = None,
    ) -> None:
        """Add an imported item to this store.

        Raises:
            DuplicateItemError: If an equal item is already stored
            PersistenceError: If the store rejects the item
        """
        pass
