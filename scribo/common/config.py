# scribo/common/config.py

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from scribo.common.utils import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "config.yaml"

_ENV_PATTERN = re.compile(r"\${([^}]+)}")


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Recursively merge ``override`` onto a copy of ``base``."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(value, dict) and key in result and isinstance(result[key], dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


class Config:
    """Manages application configuration with environment variable substitution and overrides."""
    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        if config_path is None:
            config_path = os.getenv("SCRIBO_CONFIG", str(DEFAULT_CONFIG_PATH))
        self.path = config_path
        self.config = self._load_config(config_path)
        self._substitute_env_vars()
        self.environment = self.get("app.environment", "production")
        self._apply_environment_overrides()
        if overrides:
            self.config = merge_dicts(self.config, overrides)

    def _load_config(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration from file."""
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
                logger.debug(f"Loaded configuration from {config_path}")
                return config or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config from {config_path}: {e}")
            raise

    def _substitute_env_vars(self):
        """Substitute ${VAR} and ${VAR:default} references from the environment."""
        def replace_env_vars(obj: Any) -> Any:
            if isinstance(obj, str):
                for match in _ENV_PATTERN.findall(obj):
                    var_name, default = match.split(':', 1) if ':' in match else (match, None)
                    value = os.getenv(var_name, default)
                    if value is None:
                        logger.warning(f"Environment variable {var_name} not set and no default provided")
                    obj = obj.replace(f"${{{match}}}", value if value is not None else "")
                return obj
            elif isinstance(obj, dict):
                return {k: replace_env_vars(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [replace_env_vars(item) for item in obj]
            return obj

        self.config = replace_env_vars(self.config)

    def _apply_environment_overrides(self):
        """Apply environment-specific configuration overrides."""
        env_overrides = self.config.get("environments", {}).get(self.environment, {})
        if env_overrides:
            self.config = merge_dicts(self.config, env_overrides)
            logger.debug(f"Applied {self.environment} environment overrides")

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Retrieve a configuration value by dotted key path."""
        value = self.config
        for k in key.split('.'):
            try:
                value = value[k]
            except (KeyError, TypeError):
                return default
        if value is None or value == "":
            return default
        return value

    def get_int(self, key: str, default: int) -> int:
        """Like ``get`` but coerces substituted strings such as ``"8080"``."""
        return int(self.get(key, default))


def get_config() -> Config:
    """Dependency injection for Config."""
    return Config()
