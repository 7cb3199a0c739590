"""Sync Engine - Declarative credential store synchronization.

The Sync Engine brings key/certificate stores in line with a desired state:
- Match stored identities by certificate issuer
- Grant the running program ownership of matched keys
- Keep named ACLs listing the configured applications
- Export matched material and import new material

Usage:
    from certificate_sync.sync_engine import ConfigParser, Synchronizer

    configuration = ConfigParser().parse({
        "acl_name": "certificate-sync",
        "existing": [
            {
                "issuer_name": "CN=Example Root CA,O=Example",
                "store_path": "~/stores/login.yaml",
                "acls": ["/usr/local/bin/vpn-client"],
            }
        ],
    })
    report = Synchronizer(configuration).run()
"""

from .engine import Synchronizer, default_self_path
from .schema import (
    ACLConfigurationItem,
    ExportItem,
    ConfigurationItem,
    ImportItem,
    Configuration,
    ValidationResult,
    MatchedIdentity,
    ACLChange,
    SyncReport,
)
from .parser import ConfigParser, ParseError
from .validator import ConfigValidator
from .matcher import IdentityMatcher
from .acl import ACLReconciler, REQUIRED_AUTHORIZATIONS, merge_applications
from .store_cache import StoreCache
from .transfer import ItemExporter, ItemImporter, ImportOutcome

__all__ = [
    # Main engine
    "Synchronizer",
    "default_self_path",
    # Schema classes
    "ACLConfigurationItem",
    "ExportItem",
    "ConfigurationItem",
    "ImportItem",
    "Configuration",
    "ValidationResult",
    "MatchedIdentity",
    "ACLChange",
    "SyncReport",
    # Parser
    "ConfigParser",
    "ParseError",
    # Components (for advanced use)
    "ConfigValidator",
    "IdentityMatcher",
    "ACLReconciler",
    "REQUIRED_AUTHORIZATIONS",
    "merge_applications",
    "StoreCache",
    "ItemExporter",
    "ItemImporter",
    "ImportOutcome",
]
