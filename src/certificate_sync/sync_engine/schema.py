"""Schema definitions for the sync engine.

Defines the desired state format, match results and the run report.
"""
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from ..stores.base import CredentialStore, ExportFormat, Identity


@dataclass
class ACLConfigurationItem:
    """An application to grant under a named ACL.

    ``label`` falls back to the configuration's global ACL name.
    """
    application: str
    label: Optional[str] = None


@dataclass
class ExportItem:
    """Material to write out for a matched identity."""
    format: ExportFormat
    path: str
    password: Optional[str] = None
    pem: bool = False
    mode: Optional[int] = None  # e.g. 0o600


@dataclass
class ConfigurationItem:
    """Rule for an identity that already lives in a store."""
    issuer: bytes
    store_path: str
    claim_owner: bool = False
    acls: list[ACLConfigurationItem] = field(default_factory=list)
    exports: list[ExportItem] = field(default_factory=list)
    password: Optional[str] = None
    password_env: Optional[str] = None

    def get_password(self) -> Optional[str]:
        """Get store password from config or environment variable."""
        if self.password:
            return self.password
        if self.password_env:
            return os.environ.get(self.password_env)
        return None


@dataclass
class ImportItem:
    """Key/certificate material to bring into a store."""
    path: str
    store_path: str
    claim_owner: bool = False
    label: Optional[str] = None
    acls: list[ACLConfigurationItem] = field(default_factory=list)
    password: Optional[str] = None
    password_env: Optional[str] = None
    passphrase: Optional[str] = None  # for the source material itself

    def get_password(self) -> Optional[str]:
        """Get store password from config or environment variable."""
        if self.password:
            return self.password
        if self.password_env:
            return os.environ.get(self.password_env)
        return None


@dataclass
class Configuration:
    """Complete desired state for one run."""
    acl_name: str
    existing: list[ConfigurationItem] = field(default_factory=list)
    imports: list[ImportItem] = field(default_factory=list)
    store_type: str = "file"
    self_application: Optional[str] = None


# --- Validation Results ---

@dataclass
class ValidationResult:
    """Result of config validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --- Matching ---

@dataclass
class MatchedIdentity:
    """A configuration rule paired with a store identity it matched."""
    rule: ConfigurationItem
    identity: Identity
    store: CredentialStore


# --- Run report ---

@dataclass
class ACLChange:
    """Outcome of reconciling one ACL on one key."""
    store_path: str
    subject: str
    acl: str
    operation: str  # owner_acl, named_acl
    created: bool = False
    applications_added: list[str] = field(default_factory=list)
    authorizations_added: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.applications_added or self.authorizations_added)

    def describe(self) -> str:
        """One-line human-readable description."""
        if self.created:
            action = f"Created ACL '{self.acl}'"
        else:
            action = f"Updated ACL '{self.acl}'"
        parts = []
        if self.applications_added:
            parts.append(f"applications: {', '.join(self.applications_added)}")
        if self.authorizations_added:
            parts.append(f"authorizations: {', '.join(self.authorizations_added)}")
        detail = f" ({'; '.join(parts)})" if parts else ""
        return f"{action} on {self.subject} in {self.store_path}{detail}"


@dataclass
class SyncReport:
    """Result of a complete synchronizer run."""
    matched: int = 0
    owner_changes: list[ACLChange] = field(default_factory=list)
    acl_changes: list[ACLChange] = field(default_factory=list)
    exports_written: list[str] = field(default_factory=list)
    items_added: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)

    @property
    def changes_made(self) -> list[str]:
        """Human-readable descriptions of everything that changed."""
        changes = [c.describe() for c in self.owner_changes + self.acl_changes if c.changed]
        changes.extend(f"Exported {path}" for path in self.exports_written)
        changes.extend(f"Imported {item}" for item in self.items_added)
        return changes

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "matched": self.matched,
            "owner_changes": sum(1 for c in self.owner_changes if c.changed),
            "acl_changes": sum(1 for c in self.acl_changes if c.changed),
            "exports_written": self.exports_written,
            "items_added": self.items_added,
            "duplicates": self.duplicates,
            "changes_made": self.changes_made,
        }
