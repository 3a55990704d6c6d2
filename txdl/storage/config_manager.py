"""
Manages loading of the INI configuration file and layers environment variables
and command-line overrides on top of it.
"""

import configparser
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from txdl.exceptions import ConfigurationError
from txdl.models.config import DownloadConfig

log = logging.getLogger(__name__)

# Environment variable -> config key. The ARIA2_* names are the historical
# interface of the tool and keep working for both engines.
ENV_VARS = {
    "ARIA2_MAX_CONNECTIONS": "max_connections",
    "ARIA2_MIN_SPLIT_SIZE": "min_split_size",
    "ARIA2_MAX_CONCURRENT_DOWNLOADS": "max_concurrent_downloads",
    "ARIA2_TIMEOUT": "timeout",
    "ARIA2_RETRY_WAIT": "retry_wait",
    "ARIA2_MAX_TRIES": "max_tries",
    "TXDL_ENGINE": "engine",
    "TXDL_DOWNLOAD_DIR": "download_dir",
}

_INT_KEYS = {
    "max_connections",
    "max_concurrent_downloads",
    "timeout",
    "retry_wait",
    "max_tries",
    "split",
    "required_space_mb",
}
_BOOL_KEYS = {"check_certificate", "cleanup_on_failure"}


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "txdl"


def default_config_file() -> Path:
    if override := os.getenv("TXDL_CONFIG"):
        return Path(override).expanduser()
    return get_config_dir() / "config.ini"


class ConfigManager:
    """Builds the effective configuration from file, environment and CLI."""

    def __init__(
        self,
        config_file_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.config_file_path = config_file_path or default_config_file()
        self.environ = os.environ if environ is None else environ
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> DownloadConfig:
        """
        Loads configuration from the INI file (if present), applies environment
        variables, then CLI overrides, and validates the result.

        Args:
            cli_options: A dictionary of options provided via the command line.
                Entries whose value is None are ignored.

        Returns:
            A validated DownloadConfig object.

        Raises:
            ConfigurationError: If the config file cannot be parsed or validation
            fails.
        """
        settings: dict[str, Any] = {}
        settings.update(self._get_config_as_dict())
        settings.update(self._get_env_overrides())
        if cli_options:
            settings.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return DownloadConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        if not self.config_file_path.is_file():
            log.debug(f"No config file at '{self.config_file_path}', using defaults.")
            return {}

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        section = self._parser["DEFAULT"]
        known_keys = DownloadConfig.get_ini_keys()
        values: dict[str, Any] = {}
        try:
            for key in section:
                if key not in known_keys:
                    log.warning(
                        f"[yellow]Ignoring unknown config key '{key}' in "
                        f"{self.config_file_path}[/yellow]"
                    )
                    continue
                if key in _BOOL_KEYS:
                    values[key] = section.getboolean(key)
                elif key in _INT_KEYS:
                    values[key] = section.getint(key)
                else:
                    values[key] = section.get(key)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value in configuration file '{self.config_file_path}': {e}"
            ) from e
        return values

    def _get_env_overrides(self) -> dict[str, Any]:
        """Collects settings from the ARIA2_* and TXDL_* environment variables."""
        values: dict[str, Any] = {}
        for env_name, key in ENV_VARS.items():
            raw = self.environ.get(env_name)
            if raw is None or not raw.strip():
                continue
            if key in _INT_KEYS:
                try:
                    values[key] = int(raw)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Environment variable {env_name} must be an integer, "
                        f"got '{raw}'."
                    ) from e
            else:
                values[key] = raw
        return values

    def describe(self, config: DownloadConfig) -> dict[str, Any]:
        """Returns the effective settings as a flat dictionary for display."""
        data = config.model_dump()
        data["config_file"] = str(self.config_file_path)
        return data
