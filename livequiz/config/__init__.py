"""Simple YAML configuration loader for LiveQuiz."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "livequiz.yaml"
INFERENCE_API_KEY_ENV = "LIVEQUIZ_INFERENCE_API_KEY"


def find_config_file(start_dir: Optional[Path] = None) -> Path:
    """Look for livequiz.yaml in ``start_dir`` and its parents."""
    directory = (start_dir or Path.cwd()).resolve()
    for candidate_dir in [directory, *directory.parents]:
        candidate = candidate_dir / DEFAULT_CONFIG_NAME
        if candidate.exists():
            return candidate
    raise FileNotFoundError(f"Configuration file not found: {DEFAULT_CONFIG_NAME} "
                            f"(searched from {directory})")


class LiveQuizConfig:
    """LiveQuiz configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, looks for livequiz.yaml
                        in current directory and parent directories.
        """
        self.config_file = Path(config_path) if config_path else find_config_file()

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    @classmethod
    def from_dict(cls, config: Dict[str, Any], base_dir: Optional[str] = None) -> "LiveQuizConfig":
        """Build a config from an in-memory dict (tests, embedding)."""
        instance = cls.__new__(cls)
        instance.config_file = Path(base_dir or ".") / DEFAULT_CONFIG_NAME
        instance.config = config
        instance._resolve_paths(instance.config)
        return instance

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (("google_cloud", "credentials_path"),
                             ("storage", "data_directory"),
                             ("storage", "database_path"),
                             ("logging", "file_path"),
                             ("instructor", "roster_file")):
            if section in config and key in config[section]:
                value = config[section][key]
                if value and not os.path.isabs(value) and value != ":memory:":
                    config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'rate_limit.cooldown_seconds').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation."""
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_google_credentials_path(self) -> str:
        """Get Google credentials path - raises if not found."""
        creds_path = self.get('google_cloud.credentials_path')
        if not creds_path:
            raise ConfigurationError("Google credentials path not configured in livequiz.yaml")

        creds_file = Path(creds_path)
        if not creds_file.exists():
            raise ConfigurationError(f"Google credentials file not found: {creds_path}")

        return str(creds_file.absolute())

    def get_inference_api_key(self) -> str:
        """Inference API key from the environment, falling back to the config file."""
        api_key = os.environ.get(INFERENCE_API_KEY_ENV) or self.get('inference.api_key')
        if not api_key:
            raise ConfigurationError(
                f"Inference API key not configured (set {INFERENCE_API_KEY_ENV} or inference.api_key)")
        return api_key

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_database_path(self) -> str:
        db_path = self.get('storage.database_path')
        if db_path:
            return db_path
        return str(Path(self.get_data_directory()) / "livequiz.db")
