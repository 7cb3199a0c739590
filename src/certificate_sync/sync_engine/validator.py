"""Pre-flight validation for sync configurations.

Catches logical errors before any store is opened.
"""
from pathlib import Path

from ..stores import STORE_TYPES
from .schema import (
    ACLConfigurationItem,
    Configuration,
    ValidationResult,
)
from .transfer import SUPPORTED_EXPORT_FORMATS


class ConfigValidator:
    """Validate a configuration for logical errors before a run."""

    def __init__(self, check_sources: bool = True):
        """
        Initialize validator.

        Args:
            check_sources: Whether to check that import sources exist
        """
        self.check_sources = check_sources

    def validate(self, configuration: Configuration) -> ValidationResult:
        """
        Validate a configuration.

        Performs pre-flight checks:
        - ACL name and store type
        - Rule issuers and store paths
        - Export formats and destinations
        - Import sources

        Args:
            configuration: The configuration to validate

        Returns:
            ValidationResult with valid flag, errors, and warnings
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not configuration.acl_name:
            errors.append("acl_name must not be empty")

        if configuration.store_type not in STORE_TYPES:
            errors.append(
                f"Unknown store type '{configuration.store_type}'. "
                f"Valid: {', '.join(sorted(STORE_TYPES))}"
            )

        self._validate_existing(configuration, errors, warnings)
        self._validate_imports(configuration, errors, warnings)

        if not configuration.existing and not configuration.imports:
            warnings.append("Configuration has no existing rules and no imports")

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def _validate_existing(
        self,
        configuration: Configuration,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate existing-identity rules and their exports."""
        destinations: dict[str, int] = {}

        for index, rule in enumerate(configuration.existing):
            where = f"existing[{index}]"

            if not rule.issuer:
                errors.append(f"{where}: issuer must not be empty")
            if not rule.store_path:
                errors.append(f"{where}: store_path must not be empty")

            self._validate_acls(where, rule.acls, errors)

            for export in rule.exports:
                if export.format not in SUPPORTED_EXPORT_FORMATS:
                    errors.append(
                        f"{where}: unsupported export format '{export.format.value}'"
                    )

                destination = str(Path(export.path).expanduser())
                if destination in destinations:
                    # Several matched identities would overwrite each other
                    warnings.append(
                        f"{where}: export destination {destination} is also used "
                        f"by existing[{destinations[destination]}]"
                    )
                else:
                    destinations[destination] = index

                if export.mode is not None and not 0 <= export.mode <= 0o7777:
                    errors.append(f"{where}: invalid file mode {oct(export.mode)}")

            if not rule.acls and not rule.claim_owner and not rule.exports:
                warnings.append(
                    f"{where}: no acls, exports or claim_owner; only the "
                    f"'{configuration.acl_name}' ACL will be checked"
                )

    def _validate_imports(
        self,
        configuration: Configuration,
        errors: list[str],
        warnings: list[str]
    ) -> None:
        """Validate import directives."""
        for index, directive in enumerate(configuration.imports):
            where = f"imports[{index}]"

            if not directive.store_path:
                errors.append(f"{where}: store_path must not be empty")

            self._validate_acls(where, directive.acls, errors)

            if self.check_sources and not Path(directive.path).expanduser().is_file():
                warnings.append(f"{where}: import source not found: {directive.path}")

    def _validate_acls(
        self,
        where: str,
        acls: list[ACLConfigurationItem],
        errors: list[str],
    ) -> None:
        for acl in acls:
            if not acl.application:
                errors.append(f"{where}: ACL entry has no application")
            if acl.label is not None and not acl.label:
                errors.append(f"{where}: ACL label must not be empty when given")
