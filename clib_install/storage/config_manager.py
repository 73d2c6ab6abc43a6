"""
Loads user-level defaults from the optional INI settings file and merges them
with command-line options into a validated InstallConfig.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from clib_install.exceptions import ConfigurationError
from clib_install.models.config import InstallConfig

log = logging.getLogger(__name__)

INI_KEYS = ("out_dir", "concurrency", "cache_dir", "cache_ttl_days", "token")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "clib"


CONFIG_FILE = get_config_dir() / "config.ini"


class ConfigManager:
    """Handles reading the settings file and building the install config."""

    def __init__(self, config_file_path: Path = CONFIG_FILE):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_config(self, cli_options: dict[str, Any] | None = None) -> InstallConfig:
        """
        Loads settings from the INI file (if present), applies CLI overrides, and
        validates the result.

        Args:
            cli_options: Options provided on the command line. `None` values are
            ignored so file settings and model defaults apply.

        Raises:
            ConfigurationError: If the file is unreadable or validation fails.
        """
        settings = self._read_settings()
        if cli_options:
            settings.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return InstallConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def _read_settings(self) -> dict[str, Any]:
        """Reads known keys from the 'DEFAULT' section of the INI file."""
        if not self.config_file_path.is_file():
            log.debug(f"No settings file at '{self.config_file_path}'.")
            return {}

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing settings file: {e}") from e

        section = self._parser["DEFAULT"]
        settings = {key: section.get(key) for key in INI_KEYS if section.get(key)}
        unknown = set(section) - set(INI_KEYS)
        if unknown:
            log.debug(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        return settings
