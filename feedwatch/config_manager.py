"""
Configuration manager for feedwatch.
Handles loading and validation of configuration settings.
"""
import json
import logging
from typing import Dict, List, Any
from json.decoder import JSONDecodeError

from feedwatch.utils.helpers import validate_url
from feedwatch.utils.proxy_utils import validate_proxy_settings

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "networking": {
        "timeout_seconds": 30,
        "retry_attempts": 1,
        "backoff_factor": 2.0,
        "user_agent": None,
        "proxy": {
            "enabled": False
        }
    },
    "scheduler": {
        "interval_hours": 3,
        "max_retries": 3,
        "retry_delay_seconds": 30,
        "max_workers": 8,
        "timezone": "UTC"
    },
    "health": {
        "active_hours": 6,
        "warning_hours": 24
    },
    "import": {
        "recency_days": 7,
        "batch_delay_seconds": 0.1
    },
    "storage": {
        "base_dir": "./data",
        "cleanup_days": 30
    },
    "logging": {
        "level": "INFO",
        "log_dir": "./logs"
    }
}


def merge_dicts(source: Dict[str, Any], default: Dict[str, Any]) -> None:
    """Recursively merges default dict into source dict."""
    for key, value in default.items():
        if key not in source:
            source[key] = json.loads(json.dumps(value))
        elif isinstance(value, dict) and isinstance(source[key], dict):
            merge_dicts(source[key], value)
        # No else: existing values in source take precedence


class ConfigManager:
    """
    Manages configuration loading and tracked feed extraction.
    """

    def __init__(self, settings_path: str, feeds_path: str):
        """
        Initialize configuration manager.

        Args:
            settings_path: Path to main settings file (settings.json)
            feeds_path: Path to feeds configuration file (feeds.json)

        Raises:
            FileNotFoundError: If a configuration file is missing
            JSONDecodeError: If a configuration file is not valid JSON
            TypeError, ValueError: If a configuration value is invalid
        """
        self.settings_path = settings_path
        self.feeds_path = feeds_path
        self.settings = None
        self.feeds_config = None

        logger.debug(f"ConfigManager initialized with settings: {settings_path}, feeds: {feeds_path}")

        try:
            self._load_all_configs()
        except FileNotFoundError as e:
            logger.critical(f"Configuration file not found: {e}. Please ensure settings.json and feeds.json exist in the config directory.")
            raise

    def _load_all_configs(self):
        """Load all configuration files."""
        self.settings = self._load_json_file(self.settings_path, "settings")
        self.feeds_config = self._load_json_file(self.feeds_path, "feeds")

        self._validate_settings()
        self._validate_feeds_config()

    def _load_json_file(self, file_path: str, config_type: str) -> Dict[str, Any]:
        """
        Load a JSON configuration file.

        Args:
            file_path: Path to JSON file
            config_type: Type of config for error messages

        Returns:
            Configuration dictionary
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except JSONDecodeError as e:
            logger.error(f"Invalid JSON in {config_type} configuration file '{file_path}': {e}")
            raise

        if not isinstance(config, dict):
            raise TypeError(f"The {config_type} configuration in '{file_path}' must be a JSON object")

        logger.info(f"Loaded {config_type} configuration from {file_path}")
        return config

    def _validate_settings(self):
        """Validate settings configuration."""
        for section in DEFAULT_SETTINGS:
            if section not in self.settings:
                logger.warning(f"Missing configuration section: '{section}', using defaults")
            elif not isinstance(self.settings[section], dict):
                raise TypeError(f"Invalid type for configuration section '{section}'. Expected dict")

        merge_dicts(self.settings, DEFAULT_SETTINGS)
        self._validate_specific_settings()

        logger.info("Settings configuration validated")

    def _check_number(self, key_path: str, positive: bool = False, integer: bool = False):
        value = self.get_config_value(key_path)
        expected = int if integer else (int, float)
        if isinstance(value, bool) or not isinstance(value, expected):
            raise TypeError(f"Invalid type for '{key_path}'. Expected {'int' if integer else 'int or float'}.")
        if positive and value <= 0:
            raise ValueError(f"'{key_path}' must be greater than zero")
        if value < 0:
            raise ValueError(f"'{key_path}' must not be negative")

    def _validate_specific_settings(self):
        """Validate specific key values within settings."""
        self._check_number("networking.timeout_seconds", positive=True)
        self._check_number("networking.retry_attempts", integer=True)
        self._check_number("networking.backoff_factor")

        is_valid, error = validate_proxy_settings(self.get_config_value("networking.proxy"))
        if not is_valid:
            raise ValueError(f"Invalid proxy configuration: {error}")

        self._check_number("scheduler.interval_hours", positive=True)
        self._check_number("scheduler.max_retries", positive=True, integer=True)
        self._check_number("scheduler.retry_delay_seconds")
        self._check_number("scheduler.max_workers", positive=True, integer=True)
        if not isinstance(self.get_config_value("scheduler.timezone"), str):
            raise TypeError("Invalid type for 'scheduler.timezone'. Expected a string.")

        self._check_number("health.active_hours", positive=True)
        self._check_number("health.warning_hours", positive=True)
        if self.get_config_value("health.active_hours") > self.get_config_value("health.warning_hours"):
            raise ValueError("'health.active_hours' must not exceed 'health.warning_hours'")

        self._check_number("import.recency_days", positive=True, integer=True)
        self._check_number("import.batch_delay_seconds")

        base_dir = self.get_config_value("storage.base_dir")
        if not base_dir or not isinstance(base_dir, str):
            raise TypeError("Missing or invalid type for 'storage.base_dir'. Expected non-empty string.")
        self._check_number("storage.cleanup_days", positive=True, integer=True)

        if not isinstance(self.get_config_value("logging.level"), str):
            raise TypeError("Invalid type for 'logging.level'. Expected a string.")

    def _validate_feeds_config(self):
        """Validate feeds configuration."""
        if "feeds" not in self.feeds_config:
            raise ValueError("Missing 'feeds' section in feeds configuration")

        feeds = self.feeds_config["feeds"]
        if not isinstance(feeds, list):
            raise ValueError("'feeds' must be a list")

        for i, entry in enumerate(feeds):
            if not isinstance(entry, dict):
                raise ValueError(f"Invalid feed entry at index {i}: Expected a dictionary.")
            if not isinstance(entry.get("url"), str) or not validate_url(entry["url"]):
                raise ValueError(f"Invalid feed entry at index {i}: missing or invalid 'url'")
            if not isinstance(entry.get("category"), str) or not entry["category"].strip():
                raise ValueError(f"Invalid feed entry at index {i}: missing or invalid 'category'")
            if "title" in entry and not isinstance(entry["title"], str):
                raise TypeError(f"Invalid feed entry at index {i}: 'title' must be a string")
            if "tags" in entry and not isinstance(entry["tags"], list):
                raise TypeError(f"Invalid feed entry at index {i}: 'tags' must be a list")

        logger.info(f"Feeds configuration validated: {len(feeds)} feeds")

    def get_feed_entries(self) -> List[Dict[str, Any]]:
        """
        Get configured feed entries, dropping repeated URLs while preserving order.

        Returns:
            List of dictionaries with url, category and optional title, description, tags
        """
        entries = []
        seen = set()
        for entry in self.feeds_config.get("feeds", []):
            if entry["url"] in seen:
                logger.warning(f"Skipping duplicate feed URL: {entry['url']}")
                continue
            seen.add(entry["url"])
            entries.append(dict(entry))
        return entries

    def get_config_value(self, key_path: str, default=None):
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to configuration value (e.g., "storage.base_dir")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if not self.settings:
            logger.warning(f"Settings configuration not loaded when trying to get value for '{key_path}'. Returning default.")
            return default

        value = self.settings
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value
