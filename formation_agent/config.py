"""Configuration module for the form memory engine."""

import copy
import os
import json
import logging
from typing import Dict, Any, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.formation/config.json"
CONFIG_PATH_ENV = "FORMATION_CONFIG"


class Config:
    """
    Configuration manager for the form memory engine.
    """

    # Default configuration values
    DEFAULTS = {
        "matching": {
            "exact_similarity": 0.8,
            "medium_similarity": 0.5,
            "compatible_types": [
                ["text", "search", "url"],
                ["date", "datetime-local"]
            ]
        },
        "selectors": {
            "test_id_attributes": ["data-testid", "data-test-id", "data-cy", "data-qa", "data-test"]
        },
        "fields": {
            "min_visible_size": 10,
            "excluded_types": ["password", "hidden", "submit", "button", "reset", "file", "image"]
        },
        "url_matching": {
            "ignore_search_params": True,
            "ignore_hash": True,
            "exact_path": False
        },
        "retention": {
            "max_memories_per_site": 10,
            "max_total_memories": 1000,
            "auto_cleanup_days": 365
        },
        "executor": {
            "highlight_color": "#28a745",
            "highlight_duration": 2.0,
            "verification_threshold": 0.70
        },
        "browser": {
            "headless": False,
            "timeout": 30000
        },
        "storage": {
            "data_file": "~/.formation/storage.json"
        },
        "logging": {
            "level": "INFO",
            "log_file": None,
            "console_output": True
        }
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to a JSON or YAML configuration file. If None,
                uses $FORMATION_CONFIG or ~/.formation/config.json.
        """
        self.config_path = os.path.expanduser(
            config_path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
        )
        self.config = self._load_config()

    @property
    def is_yaml(self) -> bool:
        return self.config_path.endswith((".yaml", ".yml"))

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file, falling back to defaults.

        Returns:
            Dictionary with configuration
        """
        if not os.path.exists(self.config_path):
            logger.debug(f"No configuration file at {self.config_path}, using defaults")
            return copy.deepcopy(self.DEFAULTS)
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                if self.is_yaml:
                    config = yaml.safe_load(f) or {}
                else:
                    config = json.load(f)
            merged_config = self._merge_with_defaults(config)
            logger.info(f"Loaded configuration from {self.config_path}")
            return merged_config
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading configuration: {e}")
            return copy.deepcopy(self.DEFAULTS)

    def _merge_with_defaults(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user configuration with defaults to ensure all required fields exist.

        Args:
            config: User configuration

        Returns:
            Merged configuration
        """
        merged = copy.deepcopy(self.DEFAULTS)

        def deep_merge(target, source):
            for key, value in source.items():
                if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                    deep_merge(target[key], value)
                else:
                    target[key] = value

        deep_merge(merged, config)
        return merged

    def save(self) -> bool:
        """
        Save configuration to file.

        Returns:
            True if successful, False otherwise
        """
        try:
            directory = os.path.dirname(self.config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self.config_path, 'w', encoding='utf-8') as f:
                if self.is_yaml:
                    yaml.safe_dump(self.config, f, sort_keys=False)
                else:
                    json.dump(self.config, f, indent=2)

            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Error saving configuration: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key (dotted notation, e.g. 'matching.exact_similarity')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config
        for part in key.split('.'):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value and persist it.

        Args:
            key: Configuration key (dotted notation)
            value: Value to set

        Returns:
            True if successful, False otherwise
        """
        parts = key.split('.')
        config = self.config

        for part in parts[:-1]:
            if not isinstance(config.get(part), dict):
                config[part] = {}
            config = config[part]

        config[parts[-1]] = value
        return self.save()

    def configure_logging(self):
        """Configure logging based on configuration."""
        log_level = getattr(logging, str(self.get('logging.level', 'INFO')).upper(), logging.INFO)
        log_file = self.get('logging.log_file')
        console_output = self.get('logging.console_output', True)

        handlers = []

        # File handler
        if log_file:
            handlers.append(logging.FileHandler(os.path.expanduser(log_file)))

        # Console handler
        if console_output:
            handlers.append(logging.StreamHandler())

        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=handlers or None
        )

    def get_compatible_types(self) -> List[List[str]]:
        return [list(group) for group in self.get('matching.compatible_types', [])]

    def get_browser_options(self) -> Dict[str, Any]:
        """
        Get browser configuration options.

        Returns:
            Dictionary with browser options
        """
        return {
            'headless': self.get('browser.headless', False),
            'timeout': self.get('browser.timeout', 30000)
        }

    def get_storage_path(self) -> str:
        """Expanded path of the JSON key-value store."""
        return os.path.expanduser(self.get('storage.data_file', "~/.formation/storage.json"))
