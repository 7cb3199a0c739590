"""Sync configuration loading from YAML."""
import logging
from pathlib import Path
from typing import Optional

import yaml

from ..sync_engine.parser import ConfigParser, ParseError
from ..sync_engine.schema import Configuration

logger = logging.getLogger(__name__)

# Sections whose entries receive the top-level defaults
DEFAULTED_SECTIONS = ("existing", "imports")


class ConfigLoader:
    """Loads the sync configuration from a YAML file.

    Keys under ``defaults`` are merged into every ``existing`` and
    ``imports`` entry that does not set them:

    ```yaml
    acl_name: certificate-sync
    defaults:
      store_path: ~/stores/login.yaml
      password_env: STORE_PASSWORD
    existing:
      - issuer_name: CN=Example Root CA,O=Example
        claim_owner: true
        acls:
          - /usr/local/bin/vpn-client
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the certificate-sync.yaml config file."""
        search_paths = [
            Path.cwd() / "configs" / "certificate-sync.yaml",
            Path.cwd() / "certificate-sync.yaml",
            Path.home() / ".config" / "certificate-sync" / "config.yaml",
            Path("/etc/certificate-sync/config.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find certificate-sync.yaml. Create one in ./configs/certificate-sync.yaml"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            try:
                self._config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ParseError(f"Invalid YAML in {self.config_path}: {e}")

        if not isinstance(self._config, dict):
            raise ParseError(f"{self.config_path}: top level must be a mapping")

        # Apply defaults
        defaults = self._config.get("defaults") or {}
        if not isinstance(defaults, dict):
            raise ParseError(f"{self.config_path}: defaults must be a mapping")
        for section in DEFAULTED_SECTIONS:
            for entry in self._config.get(section) or []:
                if not isinstance(entry, dict):
                    continue
                for key, value in defaults.items():
                    if key not in entry:
                        entry[key] = value

        logger.debug(f"Loaded configuration from {self.config_path}")

    def load(self) -> Configuration:
        """Parse the loaded configuration.

        Raises:
            ParseError: If the configuration is invalid
        """
        return ConfigParser().parse(self._config)


def load_configuration(config_path: Optional[str] = None) -> Configuration:
    """Find, load and parse the sync configuration."""
    return ConfigLoader(config_path).load()
