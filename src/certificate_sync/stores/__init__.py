"""Secure credential store backends."""
from typing import Optional

from .base import (
    ACLContents,
    ACLReadError,
    ACLWriteError,
    ApplicationResolveError,
    Authorization,
    CredentialStore,
    CredentialStoreError,
    DuplicateItemError,
    ExportFlags,
    ExportFormat,
    Identity,
    ItemClass,
    ItemExportError,
    ItemImportError,
    KeyParameters,
    PersistenceError,
    StoreAccessError,
    StoreItem,
    StoreQueryError,
    StoreStatus,
    TrustedApplication,
)
from .memory import MemoryCredentialStore
from .file import FileCredentialStore

__all__ = [
    "ACLContents",
    "ACLReadError",
    "ACLWriteError",
    "ApplicationResolveError",
    "Authorization",
    "CredentialStore",
    "CredentialStoreError",
    "DuplicateItemError",
    "ExportFlags",
    "ExportFormat",
    "Identity",
    "ItemClass",
    "ItemExportError",
    "ItemImportError",
    "KeyParameters",
    "PersistenceError",
    "StoreAccessError",
    "StoreItem",
    "StoreQueryError",
    "StoreStatus",
    "TrustedApplication",
    "MemoryCredentialStore",
    "FileCredentialStore",
    "STORE_TYPES",
    "create_store",
]

# Store type registry
STORE_TYPES = {
    "file": FileCredentialStore,
    "memory": MemoryCredentialStore,
}


def create_store(path: str, store_type: str = "file", password: Optional[str] = None) -> CredentialStore:
    """Factory function to open a store of the given type."""
    store_type = (store_type or "").lower()
    if store_type not in STORE_TYPES:
        raise StoreAccessError(f"Unknown store type: {store_type}")

    store_class = STORE_TYPES[store_type]
    return store_class(path, password=password)
