"""Synchronizer - orchestrates a full sync run.

Phases run strictly in this order, each over every matched identity
before the next starts:
1. Match store identities against existing-identity rules
2. Insert the running process into owner ACLs (claim_owner rules)
3. Reconcile named ACLs
4. Export requested material
5. Import new material
"""
import logging
import os
import sys
from typing import Optional

from ..utils.audit_log import ChangeTracker
from ..utils.logging_config import timed_section
from .acl import ACLReconciler
from .matcher import IdentityMatcher
from .schema import Configuration, MatchedIdentity, SyncReport
from .store_cache import StoreCache
from .transfer import ItemExporter, ItemImporter

logger = logging.getLogger(__name__)


def default_self_path() -> str:
    """Executable path of the running program."""
    return os.path.realpath(sys.argv[0]) if sys.argv and sys.argv[0] else sys.executable


class Synchronizer:
    """
    Bring credential stores in line with a configuration.

    Usage:
        synchronizer = Synchronizer(configuration)
        report = synchronizer.run()

    Any store failure propagates as a CredentialStoreError subclass and
    ends the run; nothing is rolled back.
    """

    def __init__(
        self,
        configuration: Configuration,
        stores: Optional[StoreCache] = None,
        self_path: Optional[str] = None,
        tracker: Optional[ChangeTracker] = None,
    ):
        """
        Initialize the synchronizer.

        Args:
            configuration: Parsed and validated configuration
            stores: Store cache for the run; one is created from
                ``configuration.store_type`` when omitted
            self_path: Executable inserted into owner ACLs; defaults to
                ``configuration.self_application``, then the running program
            tracker: Audit change tracker (optional)
        """
        self.configuration = configuration
        self.stores = stores or StoreCache(store_type=configuration.store_type)
        self.self_path = self_path or configuration.self_application or default_self_path()
        self.tracker = tracker

        self.matcher = IdentityMatcher()
        self.reconciler = ACLReconciler(self.self_path, tracker)
        self.exporter = ItemExporter(tracker)
        self.importer = ItemImporter(self.reconciler, configuration.acl_name, tracker)

    def run(self) -> SyncReport:
        """
        Run all phases.

        Returns:
            SyncReport describing what changed

        Raises:
            CredentialStoreError: On the first store failure
        """
        report = SyncReport()

        # Step 1: Match
        with timed_section("match"):
            stores = self.stores.open_all(self.configuration)
            matches = self.matcher.match(stores, self.configuration.existing)
        report.matched = len(matches)

        # Step 2: Owner ACLs
        with timed_section("owner_acl_pass", identities=len(matches)):
            self.claim_ownership(matches)
        report.owner_changes = [c for c in self.reconciler.changes if c.operation == "owner_acl"]

        # Step 3: Named ACLs
        with timed_section("named_acl_pass", identities=len(matches)):
            self.ensure_acls(matches)
        report.acl_changes = [c for c in self.reconciler.changes if c.operation == "named_acl"]

        # Step 4: Exports
        with timed_section("export_pass"):
            report.exports_written = self.exporter.export_all(matches)

        # Step 5: Imports
        with timed_section("import_pass", imports=len(self.configuration.imports)):
            for directive in self.configuration.imports:
                store = self.stores.get(directive.store_path, directive.get_password())
                outcome = self.importer.import_item(store, directive)
                report.items_added.extend(outcome.added)
                report.duplicates.extend(outcome.duplicates)

        logger.info(
            f"Sync complete: {report.matched} matched, "
            f"{len(report.changes_made)} changes, "
            f"{len(report.duplicates)} duplicates skipped"
        )
        return report

    def claim_ownership(self, matches: list[MatchedIdentity]) -> None:
        """Insert the running process into the owner ACL of claimed keys."""
        for match in matches:
            if not match.rule.claim_owner:
                continue
            key = match.store.copy_private_key(match.identity)
            self.reconciler.ensure_self_in_owner_acl(
                match.store, key, subject=match.identity.label,
            )

    def ensure_acls(self, matches: list[MatchedIdentity]) -> None:
        """Reconcile the named ACLs of every matched key."""
        for match in matches:
            key = match.store.copy_private_key(match.identity)
            self.reconciler.ensure_key_has_acls(
                match.store,
                key,
                match.rule.acls,
                self.configuration.acl_name,
                subject=match.identity.label,
            )
