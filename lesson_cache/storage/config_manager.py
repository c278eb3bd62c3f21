"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from lesson_cache.exceptions import ConfigurationError
from lesson_cache.models.config import CacheConfig

log = logging.getLogger(__name__)


def default_settings(data_dir: Path) -> dict[str, Any]:
    """Settings used for any key missing from the INI file."""
    return {
        "download_dir": str(data_dir / "downloads"),
        "index_path": str(data_dir / "offline_content.json"),
        "index_key": "@offline_content",
        "max_concurrent_fetches": 8,
        "fetch_attempts": 3,
        "retry_base_delay": 1.5,
        "remote_sync": True,
        "content_collection": "content",
        "firebase_credentials": "",
        "firebase_project_id": "",
        "log_dir": "",
    }


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path, data_dir: Path):
        self.config_file_path = config_file_path
        self.data_dir = data_dir
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> CacheConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated CacheConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'lesson-cache init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        try:
            config_from_file = self.get_config_as_dict()
        except ValueError as e:
            raise ConfigurationError(f"Error reading configuration value: {e}") from e

        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return CacheConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save; missing keys get defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        defaults = default_settings(self.data_dir)

        for key in sorted(CacheConfig.get_ini_keys()):
            value = settings.get(key, defaults.get(key))
            if isinstance(value, bool):
                config["DEFAULT"][key] = "true" if value else "false"
            elif value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = default_settings(self.data_dir)
        return {
            "download_dir": section.get("download_dir", defaults["download_dir"]),
            "index_path": section.get("index_path", defaults["index_path"]),
            "index_key": section.get("index_key", defaults["index_key"]),
            "max_concurrent_fetches": section.getint(
                "max_concurrent_fetches", defaults["max_concurrent_fetches"]
            ),
            "fetch_attempts": section.getint(
                "fetch_attempts", defaults["fetch_attempts"]
            ),
            "retry_base_delay": section.getfloat(
                "retry_base_delay", defaults["retry_base_delay"]
            ),
            "remote_sync": section.getboolean("remote_sync", defaults["remote_sync"]),
            "content_collection": section.get(
                "content_collection", defaults["content_collection"]
            ),
            "firebase_credentials": section.get("firebase_credentials", ""),
            "firebase_project_id": section.get("firebase_project_id", ""),
            "log_dir": section.get("log_dir", ""),
        }

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = default_settings(self.data_dir)
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(CacheConfig.get_ini_keys()):
            if key in config_section:
                continue
            default_value = defaults[key]
            if isinstance(default_value, bool):
                config_section[key] = "true" if default_value else "false"
            else:
                config_section[key] = str(default_value)
            needs_saving = True
            log.debug(
                f"Migrating config: added missing key '{key}' with "
                f"value '{config_section[key]}'."
            )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
