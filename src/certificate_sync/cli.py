#!/usr/bin/env python3
"""certificate-sync command line entry point.

Usage:
    certificate-sync [--config PATH] [--audit-dir DIR] [--report] [-v]

Environment variables:
    CERTSYNC_LOG_LEVEL      Console log level (default: INFO)
    CERTSYNC_LOG_FILE       Log file path
"""
import argparse
import json
import logging
import sys
from typing import Optional

from .config import ConfigLoader
from .stores.base import CredentialStoreError
from .sync_engine import ConfigValidator, ParseError, Synchronizer
from .utils.audit_log import ChangeTracker, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certificate-sync",
        description="Synchronize credential store identities, ACLs, exports and imports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Use ./configs/certificate-sync.yaml or another default location
    certificate-sync

    # Explicit configuration, JSON report on stdout
    certificate-sync --config sync.yaml --report
""",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Configuration file (default: search ./configs, ., ~/.config, /etc)",
    )
    parser.add_argument(
        "--audit-dir",
        type=str,
        help="Directory for the audit log (default: ~/.certificate-sync)",
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Print the run report as JSON",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the certificate-sync CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else None)
    audit_file = setup_audit_logging(args.audit_dir)
    logger.debug(f"Audit log: {audit_file}")

    # Load configuration
    try:
        loader = ConfigLoader(args.config)
        configuration = loader.load()
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except ParseError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Configuration: {loader.config_path}")

    # Validate
    validation = ConfigValidator().validate(configuration)
    for warning in validation.warnings:
        logger.warning(warning)
    if not validation.valid:
        for error in validation.errors:
            logger.error(error)
        return 1

    # Run
    synchronizer = Synchronizer(configuration, tracker=ChangeTracker())
    try:
        report = synchronizer.run()
    except CredentialStoreError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user")
        return 130

    for change in report.changes_made:
        logger.info(f"  {change}")
    if not report.changes_made:
        logger.info("Nothing to change")

    if args.report:
        print(json.dumps(report.to_dict(), indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(main())
