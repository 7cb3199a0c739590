"""Run-scoped cache of open credential stores."""
import logging
from typing import Callable, Iterator, Optional

from ..stores import create_store
from ..stores.base import CredentialStore, StoreAccessError, StoreStatus
from .schema import Configuration

logger = logging.getLogger(__name__)

StoreOpener = Callable[[str, Optional[str]], CredentialStore]

REQUIRED_STATUS = StoreStatus.UNLOCKED | StoreStatus.READABLE | StoreStatus.WRITABLE


class StoreCache:
    """Opens each store on first use and keeps it for the rest of the run.

    Entries are never invalidated.
    """

    def __init__(self, store_type: str = "file", opener: Optional[StoreOpener] = None):
        """
        Initialize the cache.

        Args:
            store_type: Backend passed to ``create_store`` by the default opener
            opener: Callable ``(path, password) -> CredentialStore`` replacing
                the default opener
        """
        self.store_type = store_type
        self._opener = opener or self._default_opener
        self._stores: dict[str, CredentialStore] = {}

    def _default_opener(self, path: str, password: Optional[str]) -> CredentialStore:
        return create_store(path, self.store_type, password)

    def get(self, path: str, password: Optional[str] = None) -> CredentialStore:
        """Get or open a store."""
        if path not in self._stores:
            self._stores[path] = self._open(path, password)
        return self._stores[path]

    def _open(self, path: str, password: Optional[str]) -> CredentialStore:
        """
        Open and unlock a store, then check it can be read and written.

        Raises:
            StoreAccessError: If the store cannot be opened or unlocked, or
                lacks read or write permission afterwards
        """
        logger.info(f"Opening credential store {path}")
        store = self._opener(path, password)

        if not store.status() & StoreStatus.UNLOCKED:
            store.unlock(password)

        status = store.status()
        if (status & REQUIRED_STATUS) != REQUIRED_STATUS:
            raise StoreAccessError(
                f"Store {path} is not usable after unlock (status={status!r})"
            )
        return store

    def open_all(self, configuration: Configuration) -> dict[str, CredentialStore]:
        """Open every store the configuration references.

        Stores named by existing rules come first, then import targets.
        """
        for item in configuration.existing:
            self.get(item.store_path, item.get_password())
        for item in configuration.imports:
            self.get(item.store_path, item.get_password())
        return dict(self._stores)

    def __contains__(self, path: str) -> bool:
        return path in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    def __iter__(self) -> Iterator[str]:
        return iter(self._stores)
