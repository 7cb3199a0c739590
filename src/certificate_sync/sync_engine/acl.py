"""ACL reconciliation for private keys.

Merges required applications and authorizations into a key's access
structure. Every operation only adds: existing applications and
authorizations are never removed.

Both traversals stop at the first matching ACL. A key carrying several
change-ACL entries, or several ACLs with the same description, only has
the first one reconciled; the rest are left untouched.
"""
import logging
from typing import Any, Optional

from ..stores.base import Authorization, CredentialStore, TrustedApplication
from ..utils.audit_log import ChangeTracker
from .schema import ACLChange, ACLConfigurationItem

logger = logging.getLogger(__name__)

# Granted on every named ACL, in this order
REQUIRED_AUTHORIZATIONS = (
    Authorization.SIGN,
    Authorization.MAC,
    Authorization.DERIVE,
    Authorization.DECRYPT,
)


def merge_applications(
    store: CredentialStore,
    existing: Optional[list[TrustedApplication]],
    additions: list[TrustedApplication],
) -> tuple[list[TrustedApplication], list[TrustedApplication]]:
    """
    Union two application lists on canonical identity.

    Existing entries keep their order; additions whose canonical data is
    not yet present are appended in input order. Paths are never compared.
    A missing (None) list is treated as empty.

    Args:
        store: Store used to compute canonical application data
        existing: Current application list of an ACL
        additions: Applications that must be present

    Returns:
        Tuple of (merged list, applications actually appended)
    """
    merged = list(existing or [])
    seen = {store.trusted_application_data(app) for app in merged}
    added = []

    for application in additions:
        data = store.trusted_application_data(application)
        if data in seen:
            continue
        seen.add(data)
        merged.append(application)
        added.append(application)

    return merged, added


def group_acl_entries(
    entries: list[ACLConfigurationItem],
    default_label: str,
) -> list[tuple[str, list[str]]]:
    """
    Group ACL entries by target label, in order of first appearance.

    A rule without entries still reconciles the default label with no
    applications, so the required authorizations are granted.
    """
    if not entries:
        return [(default_label, [])]

    groups: dict[str, list[str]] = {}
    for entry in entries:
        label = entry.label or default_label
        groups.setdefault(label, []).append(entry.application)
    return list(groups.items())


class ACLReconciler:
    """Idempotently merge owner and named ACL requirements into key access."""

    def __init__(self, self_path: str, tracker: Optional[ChangeTracker] = None):
        """
        Initialize reconciler.

        Args:
            self_path: Executable path of the running process, inserted
                into owner ACLs
            tracker: Audit change tracker (optional)
        """
        self.self_path = self_path
        self.tracker = tracker
        self.changes: list[ACLChange] = []
        self.pending: list[ACLChange] = []
        self._self_applications: dict[str, TrustedApplication] = {}

    def self_application(self, store: CredentialStore) -> TrustedApplication:
        """Resolve the running process once per store."""
        if store.path not in self._self_applications:
            self._self_applications[store.path] = store.resolve_trusted_application(self.self_path)
        return self._self_applications[store.path]

    def resolve_applications(
        self,
        store: CredentialStore,
        paths: list[str],
    ) -> list[TrustedApplication]:
        return [store.resolve_trusted_application(path) for path in paths]

    def ensure_self_in_owner_acl(
        self,
        store: CredentialStore,
        key: Any,
        subject: str = "",
        access: Any = None,
        save: bool = True,
    ) -> Optional[Any]:
        """
        Add the running process to the key's owner ACL.

        The owner ACL is the first ACL granting change-ACL. Only that one
        is updated.

        Args:
            store: Store the key belongs to (or is being imported into)
            key: Private key handle
            subject: Name used in logs and audit records
            access: Working access structure to update; fetched from the
                key when omitted
            save: Persist the access onto the key when done
                and record the changes; otherwise they stay in ``pending``

        Returns:
            The updated access structure, or None if the key has no
            owner ACL
        """
        if access is None:
            access = store.get_access(key)
        self_app = self.self_application(store)

        found = False
        for acl in store.copy_matching_acls(access, Authorization.CHANGE_ACL):
            applications, description, prompt_policy = store.acl_contents(acl)
            if description is None:
                description = ""

            merged, added = merge_applications(store, applications, [self_app])
            store.set_acl_contents(acl, merged, description, prompt_policy)

            self._record(ACLChange(
                store_path=store.path,
                subject=subject,
                acl=description,
                operation="owner_acl",
                applications_added=[app.path for app in added],
            ))
            found = True
            break  # first owner ACL only

        if not found:
            logger.warning(f"No owner ACL on {subject or 'key'} in {store.path}; ownership not claimed")
            return None

        if save:
            store.set_access(key, access)
            self.commit()
        return access

    def ensure_key_has_acl(
        self,
        store: CredentialStore,
        key: Any,
        label: str,
        applications: list[TrustedApplication],
        subject: str = "",
        access: Any = None,
        save: bool = True,
    ) -> Any:
        """
        Make sure the ACL named ``label`` grants ``applications`` the
        required authorizations.

        The first ACL whose description equals ``label`` is extended with
        the missing applications and authorizations. If there is none, a
        new ACL is created holding exactly ``applications``.

        Args:
            store: Store the key belongs to (or is being imported into)
            key: Private key handle
            label: ACL description to reconcile
            applications: Applications that must be granted
            subject: Name used in logs and audit records
            access: Working access structure to update; fetched from the
                key when omitted
            save: Persist the access onto the key when done
                and record the changes; otherwise they stay in ``pending``

        Returns:
            The updated access structure
        """
        if access is None:
            access = store.get_access(key)

        found = False
        for acl in store.list_acls(access):
            existing, description, prompt_policy = store.acl_contents(acl)
            if description != label:
                continue

            merged, added = merge_applications(store, existing, applications)

            authorizations = store.acl_authorizations(acl)
            authorizations_added = []
            for authorization in REQUIRED_AUTHORIZATIONS:
                if authorization not in authorizations:
                    authorizations.append(authorization)
                    authorizations_added.append(authorization)

            store.set_acl_authorizations(acl, authorizations)
            store.set_acl_contents(acl, merged, description, prompt_policy)

            self._record(ACLChange(
                store_path=store.path,
                subject=subject,
                acl=label,
                operation="named_acl",
                applications_added=[app.path for app in added],
                authorizations_added=[a.value for a in authorizations_added],
            ))
            found = True
            break  # first ACL with this description only

        if not found:
            seed, _ = merge_applications(store, [], applications)
            acl = store.create_acl(access, seed, label)
            store.set_acl_authorizations(acl, list(REQUIRED_AUTHORIZATIONS))

            self._record(ACLChange(
                store_path=store.path,
                subject=subject,
                acl=label,
                operation="named_acl",
                created=True,
                applications_added=[app.path for app in seed],
                authorizations_added=[a.value for a in REQUIRED_AUTHORIZATIONS],
            ))

        if save:
            store.set_access(key, access)
            self.commit()
        return access

    def ensure_key_has_acls(
        self,
        store: CredentialStore,
        key: Any,
        entries: list[ACLConfigurationItem],
        default_label: str,
        subject: str = "",
        access: Any = None,
        save: bool = True,
    ) -> Any:
        """Reconcile every label named by ``entries`` on one key.

        All labels are applied to the same working access, which is
        persisted once at the end when ``save`` is set.
        """
        if access is None:
            access = store.get_access(key)

        for label, paths in group_acl_entries(entries, default_label):
            applications = self.resolve_applications(store, paths)
            self.ensure_key_has_acl(
                store, key, label, applications,
                subject=subject, access=access, save=False,
            )

        if save:
            store.set_access(key, access)
            self.commit()
        return access

    def _record(self, change: ACLChange) -> None:
        self.pending.append(change)

    def commit(self) -> list[ACLChange]:
        """Record pending changes once their access has been persisted.

        Changes go to the run report, and to the log and audit trail if
        anything moved.
        """
        committed, self.pending = self.pending, []
        for change in committed:
            self._log(change)
        return committed

    def discard(self) -> list[ACLChange]:
        """Drop pending changes whose access was never persisted."""
        dropped, self.pending = self.pending, []
        return dropped

    def _log(self, change: ACLChange) -> None:
        self.changes.append(change)

        if not change.changed:
            logger.debug(f"ACL '{change.acl}' on {change.subject} already up to date")
            return

        logger.info(change.describe())
        if self.tracker:
            self.tracker.log_change(
                store_path=change.store_path,
                subject=change.subject,
                operation=change.operation,
                acl=change.acl,
                applications_added=change.applications_added,
                authorizations_added=change.authorizations_added,
                details={"created": change.created},
            )
