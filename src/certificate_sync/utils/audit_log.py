"""Audit logging for credential store changes.

Provides change tracking with:
- Timestamped entries for every ACL update, import and export
- Structured JSON log format, one record per line
- Separate audit log file
"""
import json
import logging
import os
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Create dedicated audit logger
audit_logger = logging.getLogger("certificate_sync.audit")

DEFAULT_AUDIT_DIR = "~/.certificate-sync"


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.certificate-sync/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    audit_file = Path(log_dir) / "audit.log"

    audit_logger.setLevel(logging.INFO)

    # Remove existing handlers
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )

    # Use JSON format for machine-readability
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)

    # Don't propagate to the package logger
    audit_logger.propagate = False

    return audit_file


@dataclass
class ChangeRecord:
    """Record of one change made to a credential store."""
    timestamp: str
    store_path: str
    subject: str  # key label or import source
    operation: str  # owner_acl, named_acl, import_item, export_item
    success: bool
    acl: Optional[str] = None
    applications_added: list[str] = field(default_factory=list)
    authorizations_added: list[str] = field(default_factory=list)
    details: dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


class ChangeTracker:
    """Track and log changes made during a run."""

    def __init__(self):
        self.records: list[ChangeRecord] = []

    def log_change(
        self,
        store_path: str,
        subject: str,
        operation: str,
        success: bool = True,
        acl: Optional[str] = None,
        applications_added: Optional[list[str]] = None,
        authorizations_added: Optional[list[str]] = None,
        details: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> ChangeRecord:
        """Log a change.

        Args:
            store_path: Store the change was made in
            subject: Key label, certificate label or file path
            operation: The operation performed (e.g., "named_acl")
            success: Whether the operation succeeded
            acl: ACL description, for ACL operations
            applications_added: Paths of applications granted
            authorizations_added: Authorization tags granted
            details: Extra operation-specific parameters
            error: Error message if failed

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            store_path=store_path,
            subject=subject,
            operation=operation,
            success=success,
            acl=acl,
            applications_added=applications_added or [],
            authorizations_added=authorizations_added or [],
            details=details or {},
            error=error,
        )

        audit_logger.info(record.to_json())
        self.records.append(record)

        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    store_path: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from audit log.

    Args:
        log_file: Path to audit log. Defaults to ~/.certificate-sync/audit.log
        store_path: Filter by store path
        operation: Filter by operation type
        limit: Maximum number of records to return

    Returns:
        List of ChangeRecords, most recent first
    """
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if store_path and record.store_path != store_path:
                continue
            if operation and record.operation != operation:
                continue

            records.append(record)

    # Return most recent first, limited
    return list(reversed(records[-limit:]))
