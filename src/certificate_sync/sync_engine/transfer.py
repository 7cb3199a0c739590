"""Import and export of key and certificate material.

Imported keys get their full access structure (owner ACL and named ACLs)
built in memory and attached when the key is first added to the store,
so no separate update is needed afterwards.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..stores.base import (
    CredentialStore,
    DuplicateItemError,
    ExportFlags,
    ExportFormat,
    ItemClass,
    ItemExportError,
    ItemImportError,
    KeyParameters,
)
from ..utils.audit_log import ChangeTracker
from ..utils.fileio import write_atomically
from .acl import ACLReconciler
from .schema import ExportItem, ImportItem, MatchedIdentity

logger = logging.getLogger(__name__)

SUPPORTED_EXPORT_FORMATS = (ExportFormat.PEM_SEQUENCE, ExportFormat.X509_CERTIFICATE)


class ItemExporter:
    """Write identity material of matched identities to files."""

    def __init__(self, tracker: Optional[ChangeTracker] = None):
        self.tracker = tracker

    def export_all(self, matches: list[MatchedIdentity]) -> list[str]:
        """Run every export attached to every matched rule.

        Returns:
            Destination paths written, in order
        """
        written = []
        for match in matches:
            for export in match.rule.exports:
                written.append(self.export_identity(match, export))
        return written

    def export_identity(self, match: MatchedIdentity, export: ExportItem) -> str:
        """
        Export one item of a matched identity.

        ``pem_sequence`` exports the private key, ``x509_certificate`` the
        certificate. Any other format is rejected.

        Raises:
            ItemExportError: If the format is unsupported, the store refuses
                the export, or the destination cannot be written
        """
        store = match.store
        identity = match.identity

        if export.format == ExportFormat.PEM_SEQUENCE:
            source = store.copy_private_key(identity)
        elif export.format == ExportFormat.X509_CERTIFICATE:
            source = store.copy_certificate(identity)
        else:
            raise ItemExportError(
                f"Unsupported export format '{ExportFormat(export.format).value}' for {identity.label}"
            )

        if source is None:
            raise ItemExportError(f"Identity {identity.label} has no material for {export.format.value}")

        flags = ExportFlags(pem_armour=export.pem)
        parameters = KeyParameters(passphrase=export.password)
        data = store.export_item(source, export.format, flags, parameters)

        destination = Path(export.path).expanduser()
        try:
            write_atomically(destination, data, export.mode)
        except OSError as e:
            raise ItemExportError(f"Cannot write {destination}: {e}") from e

        logger.info(f"Exported {export.format.value} of {identity.label} to {destination}")
        if self.tracker:
            self.tracker.log_change(
                store_path=store.path,
                subject=identity.label,
                operation="export_item",
                details={"format": export.format.value, "path": str(destination)},
            )
        return str(destination)


@dataclass
class ImportOutcome:
    """What one import directive added."""
    source: str
    added: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)


class ItemImporter:
    """Bring key/certificate material into stores with ACLs already in place."""

    def __init__(
        self,
        reconciler: ACLReconciler,
        acl_name: str,
        tracker: Optional[ChangeTracker] = None,
    ):
        """
        Initialize importer.

        Args:
            reconciler: Reconciler used to build imported keys' access
            acl_name: Default label for named ACLs
            tracker: Audit change tracker (optional)
        """
        self.reconciler = reconciler
        self.acl_name = acl_name
        self.tracker = tracker

    def import_item(self, store: CredentialStore, directive: ImportItem) -> ImportOutcome:
        """
        Import one source file into ``store``.

        Raises:
            ItemImportError: If the source cannot be read or decoded, or
                holds an unsupported item class
            PersistenceError: If the store rejects an item
        """
        source = Path(directive.path).expanduser()
        outcome = ImportOutcome(source=str(source))

        try:
            raw = source.read_bytes()
        except OSError as e:
            raise ItemImportError(f"Cannot read import source {source}: {e}") from e

        parameters = KeyParameters(passphrase=directive.passphrase)
        try:
            items = store.import_items(raw, str(source), parameters)
        except DuplicateItemError as e:
            logger.info(f"{source} is already present in {store.path}")
            items = e.items

        subject = directive.label or source.name

        for item in items:
            access = None

            if item.item_class == ItemClass.KEY:
                access = store.get_access(item.handle)
                if directive.claim_owner:
                    self.reconciler.ensure_self_in_owner_acl(
                        store, item.handle, subject=subject, access=access, save=False,
                    )
                self.reconciler.ensure_key_has_acls(
                    store, item.handle, directive.acls, self.acl_name,
                    subject=subject, access=access, save=False,
                )
                label = directive.label
            elif item.item_class == ItemClass.CERTIFICATE:
                label = None
            else:
                raise ItemImportError(f"Unsupported import item class: {item.item_class}")

            description = f"{ItemClass(item.item_class).value} from {source.name}"
            try:
                store.add_item(item, access=access, label=label)
                self.reconciler.commit()
            except DuplicateItemError:
                self.reconciler.discard()
                logger.info(f"Skipping {description}: already present in {store.path}")
                outcome.duplicates.append(description)
                continue

            logger.info(f"Added {description} to {store.path}")
            outcome.added.append(description)
            if self.tracker:
                self.tracker.log_change(
                    store_path=store.path,
                    subject=subject,
                    operation="import_item",
                    details={"class": ItemClass(item.item_class).value, "source": str(source)},
                )

        return outcome
