from dataclasses import dataclass, fields
from pathlib import Path
import json
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Package defaults (bundled with code)
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"

# User configs (in project root, gitignored)
PROJECT_ROOT = Path(__file__).parents[3]
USER_CONFIG_DIR = PROJECT_ROOT / "config"

class ConfigLoader:
    """Load configuration with user overrides"""

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Load config with fallback: user config -> default config

        Args:
            config_name: Name of the config file (e.g., 'patterns.json')

        Raises:
            FileNotFoundError: If no config file was found

        Returns:
            Parsed JSON configuration
        """
        user_config_path = USER_CONFIG_DIR / config_name
        if user_config_path.exists():
            logger.debug("Loading user config %s", user_config_path)
            with open(user_config_path, encoding="utf-8") as f:
                return json.load(f)

        default_config_path = PACKAGE_CONFIG_DIR / config_name
        if default_config_path.exists():
            with open(default_config_path, encoding="utf-8") as f:
                return json.load(f)

        raise FileNotFoundError(
            f"Config file '{config_name}' not found in:\n"
            f" - {user_config_path}\n"
            f" - {default_config_path}"
        )

    @staticmethod
    def load_patterns_config():
        """Load institution message patterns"""
        return ConfigLoader.load_config('patterns.json')

    @staticmethod
    def load_categories_config():
        """Load default categories and keyword table"""
        return ConfigLoader.load_config('categories.json')

    @staticmethod
    def load_accounts_config():
        """Load account identifier mappings"""
        return ConfigLoader.load_config('accounts.json')

    @staticmethod
    def load_pipeline_config():
        """Load scoring and retry settings"""
        return ConfigLoader.load_config('pipeline.json')


@dataclass(frozen=True)
class PipelineSettings:
    """
    Tunable constants for scoring and retry.

    The scoring weights were picked so a complete, pattern-matched, fast
    extraction clears 0.9 and a single-field, pattern-less, slow one
    stays under 0.5.
    """
    pattern_match_bonus: float = 0.10
    latency_budget_ms: float = 50.0
    latency_penalty: float = 0.15
    max_attempts: int = 3
    retry_delay_seconds: float = 0.1
    generic_fallback: bool = False

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "PipelineSettings":
        """
        Build settings from pipeline.json (or an injected dict).

        Unknown keys are ignored; missing keys keep their defaults.
        """
        if config is None:
            try:
                config = ConfigLoader.load_pipeline_config()
            except FileNotFoundError:
                logger.warning("pipeline.json not found, using built-in settings")
                config = {}

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in config.get("pipeline", config).items() if k in known}
        settings = cls(**values)

        if settings.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        return settings
