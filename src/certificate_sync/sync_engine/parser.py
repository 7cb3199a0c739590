"""Parser for sync configuration.

Converts dict/YAML input to strongly-typed Configuration objects.
"""
import base64
import binascii
from typing import Any, Optional

from ..stores.base import ExportFormat
from ..stores.codec import issuer_from_rfc4514
from .schema import (
    ACLConfigurationItem,
    Configuration,
    ConfigurationItem,
    ExportItem,
    ImportItem,
)

# Alternative spellings accepted for export formats
FORMAT_ALIASES = {
    "pem": ExportFormat.PEM_SEQUENCE,
    "private_key": ExportFormat.PEM_SEQUENCE,
    "x509": ExportFormat.X509_CERTIFICATE,
    "certificate": ExportFormat.X509_CERTIFICATE,
    "p12": ExportFormat.PKCS12,
}


class ParseError(Exception):
    """Error parsing sync configuration."""
    pass


class ConfigParser:
    """Parse sync configuration from dict/YAML format."""

    def parse(self, config: dict[str, Any]) -> Configuration:
        """
        Parse a configuration dict into a Configuration object.

        Args:
            config: Dict with acl_name, existing, imports, etc.

        Returns:
            Configuration object

        Raises:
            ParseError: If config is invalid
        """
        if not isinstance(config, dict):
            raise ParseError("Configuration root must be a mapping")

        # Required field
        acl_name = config.get("acl_name")
        if not acl_name or not isinstance(acl_name, str):
            raise ParseError("Missing required field: acl_name")

        existing = [
            self._parse_existing(index, entry)
            for index, entry in enumerate(self._as_list(config.get("existing"), "existing"))
        ]
        imports = [
            self._parse_import(index, entry)
            for index, entry in enumerate(self._as_list(config.get("imports"), "imports"))
        ]

        return Configuration(
            acl_name=acl_name,
            existing=existing,
            imports=imports,
            store_type=config.get("store_type", "file"),
            self_application=config.get("self_application"),
        )

    def _as_list(self, value: Any, name: str) -> list:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ParseError(f"'{name}' must be a list")
        return value

    def _parse_existing(self, index: int, config: dict[str, Any]) -> ConfigurationItem:
        """Parse a single existing-identity rule."""
        where = f"existing[{index}]"
        if not isinstance(config, dict):
            raise ParseError(f"{where} must be a mapping")

        return ConfigurationItem(
            issuer=self._parse_issuer(where, config),
            store_path=self._parse_store_path(where, config),
            claim_owner=self._parse_flag(where, config, "claim_owner"),
            acls=self._parse_acls(where, config.get("acls")),
            exports=[
                self._parse_export(f"{where}.exports[{i}]", export)
                for i, export in enumerate(self._as_list(config.get("exports"), f"{where}.exports"))
            ],
            password=config.get("password"),
            password_env=config.get("password_env"),
        )

    def _parse_import(self, index: int, config: dict[str, Any]) -> ImportItem:
        """Parse a single import directive."""
        where = f"imports[{index}]"
        if not isinstance(config, dict):
            raise ParseError(f"{where} must be a mapping")

        path = config.get("path")
        if not path:
            raise ParseError(f"{where}: missing required field: path")

        return ImportItem(
            path=str(path),
            store_path=self._parse_store_path(where, config),
            claim_owner=self._parse_flag(where, config, "claim_owner"),
            label=config.get("label"),
            acls=self._parse_acls(where, config.get("acls")),
            password=config.get("password"),
            password_env=config.get("password_env"),
            passphrase=config.get("passphrase"),
        )

    def _parse_flag(self, where: str, config: dict[str, Any], key: str) -> bool:
        value = config.get(key, False)
        if not isinstance(value, bool):
            raise ParseError(f"{where}: {key} must be true or false, got {value!r}")
        return value

    def _parse_store_path(self, where: str, config: dict[str, Any]) -> str:
        store_path = config.get("store_path")
        if not store_path:
            raise ParseError(f"{where}: missing required field: store_path")
        return str(store_path)

    def _parse_issuer(self, where: str, config: dict[str, Any]) -> bytes:
        """
        Parse the issuer match key.

        Exactly one of:
            issuer: base64 string, or bytes from a YAML !!binary tag
            issuer_hex: hex string
            issuer_name: RFC 4514 distinguished name, DER-encoded here
        """
        given = [k for k in ("issuer", "issuer_hex", "issuer_name") if config.get(k) is not None]
        if len(given) != 1:
            raise ParseError(f"{where}: exactly one of issuer, issuer_hex, issuer_name is required")

        key = given[0]
        value = config[key]
        try:
            if key == "issuer":
                if isinstance(value, bytes):
                    issuer = value
                else:
                    issuer = base64.b64decode(str(value), validate=True)
            elif key == "issuer_hex":
                issuer = bytes.fromhex(str(value))
            else:
                issuer = issuer_from_rfc4514(str(value))
        except (binascii.Error, ValueError) as e:
            raise ParseError(f"{where}: invalid {key}: {e}")

        if not issuer:
            raise ParseError(f"{where}: issuer is empty")
        return issuer

    def _parse_acls(self, where: str, acls_config: Any) -> list[ACLConfigurationItem]:
        """Parse ACL entries; a bare string is an application path."""
        acls = []
        for i, entry in enumerate(self._as_list(acls_config, f"{where}.acls")):
            if isinstance(entry, str):
                acls.append(ACLConfigurationItem(application=entry))
                continue
            if not isinstance(entry, dict) or not entry.get("application"):
                raise ParseError(f"{where}.acls[{i}]: missing required field: application")
            acls.append(ACLConfigurationItem(
                application=str(entry["application"]),
                label=entry.get("label"),
            ))
        return acls

    def _parse_export(self, where: str, config: Any) -> ExportItem:
        """Parse a single export."""
        if not isinstance(config, dict):
            raise ParseError(f"{where} must be a mapping")

        path = config.get("path")
        if not path:
            raise ParseError(f"{where}: missing required field: path")

        return ExportItem(
            format=self._parse_format(where, config.get("format")),
            path=str(path),
            password=config.get("password"),
            pem=self._parse_flag(where, config, "pem"),
            mode=self._parse_mode(where, config.get("mode")),
        )

    def _parse_format(self, where: str, value: Any) -> ExportFormat:
        if not value:
            raise ParseError(f"{where}: missing required field: format")

        name = str(value).lower().replace("-", "_")
        if name in FORMAT_ALIASES:
            return FORMAT_ALIASES[name]
        try:
            return ExportFormat(name)
        except ValueError:
            valid = ", ".join(f.value for f in ExportFormat)
            raise ParseError(f"{where}: invalid format '{value}'. Must be one of: {valid}")

    def _parse_mode(self, where: str, value: Any) -> Optional[int]:
        """File mode as an int, or an octal string like "0600"."""
        if value is None:
            return None
        if isinstance(value, int):
            return value
        try:
            return int(str(value), 8)
        except ValueError:
            raise ParseError(f"{where}: invalid mode '{value}'")
