"""
User configuration management for photodedup.

Supports configuration from multiple sources (in order of priority):
1. Runtime parameters (highest priority)
2. Environment variables
3. User config file (~/.photodedup/config.json)
4. Default values from config.py (lowest priority)

Configuration file location: ~/.photodedup/config.json

Example config.json:
{
    "default_threshold": 90,
    "default_workers": null,
    "chunk_size": 32,
    "task_timeout": 60.0,
    "lsh_auto_threshold": 500,
    "refinement_band": [80.0, 95.0],
    "embedding_model": "openai/clip-vit-base-patch32",
    "max_image_pixels": 500000000,
    "cache_max_entries": 100000,
    "cache_max_age_ms": 604800000,
    "cache_db_file": null
}
"""

import json
import os
from pathlib import Path
from typing import Any, Optional
import logging

from .config import (
    CACHE_DB_FILE,
    CACHE_MAX_AGE_MS,
    CACHE_MAX_ENTRIES,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_TASK_TIMEOUT,
    EMBEDDING_MODEL,
    LSH_AUTO_THRESHOLD,
    MAX_IMAGE_PIXELS,
    REFINEMENT_BAND_HIGH,
    REFINEMENT_BAND_LOW,
)

logger = logging.getLogger(__name__)


class UserConfig:
    """
    Manages user configuration from file and environment variables.

    The config file is lazy-loaded and cached; environment variables are
    read on every lookup.
    """

    _instance: Optional['UserConfig'] = None
    _config_data: Optional[dict] = None

    def __new__(cls):
        """Singleton pattern to ensure one config instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def config_dir(self) -> Path:
        """Get the configuration directory path."""
        env_dir = os.getenv('PHOTODEDUP_CONFIG_DIR')
        if env_dir:
            return Path(env_dir)

        return Path.home() / '.photodedup'

    @property
    def config_file_path(self) -> Path:
        """Get the configuration file path."""
        return self.config_dir / 'config.json'

    def _load_config_file(self) -> dict:
        """Load configuration from JSON file."""
        if not self.config_file_path.exists():
            return {}

        try:
            with open(self.config_file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
                logger.debug(f"Loaded configuration from {self.config_file_path}")
                return data
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load config file {self.config_file_path}: {e}")
            return {}

    def _get_config_data(self) -> dict:
        """Get cached config data (lazy loading)."""
        if self._config_data is None:
            self._config_data = self._load_config_file()
        return self._config_data

    def reload(self):
        """Reload configuration from file."""
        self._config_data = None

    def get(self, key: str, default: Any = None, env_var: Optional[str] = None) -> Any:
        """
        Get a configuration value with priority:
        1. Environment variable (if env_var specified)
        2. Config file
        3. Default value

        Args:
            key: Configuration key
            default: Default value if not found
            env_var: Optional environment variable name to check

        Returns:
            Configuration value
        """
        if env_var:
            env_value = os.getenv(env_var)
            if env_value is not None:
                # Try to parse as JSON for numbers, lists and null
                try:
                    return json.loads(env_value)
                except (json.JSONDecodeError, TypeError):
                    return env_value

        config_data = self._get_config_data()
        if key in config_data:
            return config_data[key]

        return default

    @property
    def default_threshold(self) -> int:
        """Similarity threshold percentage (50-100)."""
        return int(self.get(
            'default_threshold',
            default=DEFAULT_SIMILARITY_THRESHOLD,
            env_var='PHOTODEDUP_THRESHOLD'
        ))

    @property
    def default_workers(self) -> Optional[int]:
        """Worker pool size; None sizes the pool from the CPU count."""
        value = self.get('default_workers', default=None, env_var='PHOTODEDUP_WORKERS')
        return int(value) if value is not None else None

    @property
    def chunk_size(self) -> int:
        """Photos dispatched per scheduling chunk."""
        return int(self.get('chunk_size', default=DEFAULT_CHUNK_SIZE, env_var='PHOTODEDUP_CHUNK_SIZE'))

    @property
    def task_timeout(self) -> float:
        """Per-task time budget in seconds."""
        return float(self.get('task_timeout', default=DEFAULT_TASK_TIMEOUT, env_var='PHOTODEDUP_TASK_TIMEOUT'))

    @property
    def lsh_auto_threshold(self) -> int:
        """Use LSH candidate generation when batch size >= this value."""
        return int(self.get(
            'lsh_auto_threshold',
            default=LSH_AUTO_THRESHOLD,
            env_var='PHOTODEDUP_LSH_THRESHOLD'
        ))

    @property
    def refinement_band(self) -> tuple[float, float]:
        """Hash similarity band [low, high) where embeddings refine the score."""
        value = self.get(
            'refinement_band',
            default=[REFINEMENT_BAND_LOW, REFINEMENT_BAND_HIGH],
            env_var='PHOTODEDUP_REFINEMENT_BAND'
        )
        low, high = value
        return float(low), float(high)

    @property
    def embedding_model(self) -> str:
        """Hugging Face model id for the feature embedder."""
        return self.get('embedding_model', default=EMBEDDING_MODEL, env_var='PHOTODEDUP_EMBEDDING_MODEL')

    @property
    def max_image_pixels(self) -> int:
        """Maximum image size in pixels (decompression bomb limit)."""
        return int(self.get(
            'max_image_pixels',
            default=MAX_IMAGE_PIXELS,
            env_var='PHOTODEDUP_MAX_PIXELS'
        ))

    @property
    def cache_max_entries(self) -> int:
        """Entry ceiling for the fingerprint cache."""
        return int(self.get(
            'cache_max_entries',
            default=CACHE_MAX_ENTRIES,
            env_var='PHOTODEDUP_CACHE_MAX_ENTRIES'
        ))

    @property
    def cache_max_age_ms(self) -> int:
        """Maximum age for cache entries before pruning (milliseconds)."""
        return int(self.get(
            'cache_max_age_ms',
            default=CACHE_MAX_AGE_MS,
            env_var='PHOTODEDUP_CACHE_MAX_AGE_MS'
        ))

    @property
    def cache_db_file(self) -> str:
        """Path to the fingerprint store database."""
        custom = self.get('cache_db_file', env_var='PHOTODEDUP_CACHE_DB')
        if custom:
            return custom
        return CACHE_DB_FILE

    def create_example_config(self):
        """Create an example configuration file."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        example_config = {
            "_comment": "photodedup user configuration",
            "default_threshold": DEFAULT_SIMILARITY_THRESHOLD,
            "default_workers": None,
            "chunk_size": DEFAULT_CHUNK_SIZE,
            "task_timeout": DEFAULT_TASK_TIMEOUT,
            "lsh_auto_threshold": LSH_AUTO_THRESHOLD,
            "refinement_band": [REFINEMENT_BAND_LOW, REFINEMENT_BAND_HIGH],
            "embedding_model": EMBEDDING_MODEL,
            "max_image_pixels": MAX_IMAGE_PIXELS,
            "cache_max_entries": CACHE_MAX_ENTRIES,
            "cache_max_age_ms": CACHE_MAX_AGE_MS,
            "cache_db_file": None,
        }

        try:
            with open(self.config_file_path, 'w', encoding='utf-8') as f:
                json.dump(example_config, f, indent=2)
            logger.info(f"Created example config file at {self.config_file_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to create example config: {e}")
            return False


# Global instance
_user_config = UserConfig()


def get_user_config() -> UserConfig:
    """Get the global UserConfig instance."""
    return _user_config
