"""
Configuration loader with YAML + environment variable support.

Loads and validates configuration files from the config/ directory:
- config.yaml: system and market feed settings
- rules.yaml: versioned decision rules

Supports ``${VAR}`` / ``${VAR:default}`` placeholders, environment variable
overrides, hot reload and caching. Any validation problem is raised as
ConfigurationError at load time so the engine never starts with
self-contradictory rules.
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ..core.errors import ConfigurationError
from .settings import AppConfig, RuleConfig


logger = logging.getLogger(__name__)

# src/signal_engine/config/loader.py -> project root
PROJECT_ROOT = Path(__file__).resolve().parents[3]

load_dotenv(PROJECT_ROOT / ".env")


# (env var, section path, converter)
ENV_OVERRIDES = [
    ("ENVIRONMENT", ("system", "environment"), str),
    ("LOG_LEVEL", ("system", "log_level"), str),
    ("JSON_LOGS", ("system", "json_logs"), lambda v: v.lower() in ("1", "true", "yes")),
    ("CONTEXT_MAX_AGE_SECONDS", ("rules", "context", "max_age_seconds"), float),
    ("CONFIDENCE_EXECUTE", ("rules", "thresholds", "execute"), float),
    ("CONFIDENCE_WAIT", ("rules", "thresholds", "wait"), float),
    ("MARKET_BUDGET_SECONDS", ("market_feeds", "budget_seconds"), float),
]


# ============================================================================
# ConfigLoader - Main Configuration Loader
# ============================================================================

class ConfigLoader:
    """
    Configuration loader with YAML + environment variable support.

    Features:
    - Loads configuration from YAML files
    - Overrides with environment variables
    - Validates using Pydantic models
    - Supports hot reload
    - Caches loaded configurations
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration loader.

        Args:
            config_dir: Configuration directory (defaults to PROJECT_ROOT/config)
        """
        self.config_dir = Path(config_dir) if config_dir else (PROJECT_ROOT / "config")
        self._cache: Dict[str, Any] = {}
        logger.info(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Args:
            config_name: Name of the config file (without .yaml extension)

        Returns:
            Dictionary containing configuration data

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the file is not valid YAML
        """
        config_path = self.config_dir / f"{config_name}.yaml"

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.debug(f"Loading YAML config from: {config_path}")

        try:
            with open(config_path, "r") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping")

        return self._replace_env_vars(config)

    def _replace_env_vars(self, config: Any) -> Any:
        """
        Recursively replace environment variable placeholders in config.

        Placeholders format: ${ENV_VAR_NAME} or ${ENV_VAR_NAME:default_value}
        """
        if isinstance(config, dict):
            return {k: self._replace_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._replace_env_vars(item) for item in config]
        elif isinstance(config, str):
            if config.startswith("${") and config.endswith("}"):
                env_expr = config[2:-1]

                if ":" in env_expr:
                    var_name, default_value = env_expr.split(":", 1)
                    return os.getenv(var_name.strip(), default_value.strip())
                else:
                    var_name = env_expr.strip()
                    value = os.getenv(var_name)
                    if value is None:
                        logger.warning(f"Environment variable {var_name} not set, using empty string")
                        return ""
                    return value

        return config

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        """
        Load complete application configuration.

        Args:
            use_cache: Use cached config if available

        Returns:
            Validated AppConfig instance

        Raises:
            ConfigurationError: If any section fails validation
        """
        cache_key = "app_config"

        if use_cache and cache_key in self._cache:
            logger.debug("Returning cached app config")
            return self._cache[cache_key]

        logger.info("Loading complete application configuration")

        config_data: Dict[str, Any] = {}

        try:
            config_data.update(self.load_yaml("config"))
        except FileNotFoundError:
            logger.warning("config.yaml not found, using defaults")

        try:
            config_data["rules"] = self.load_yaml("rules")
        except FileNotFoundError:
            logger.warning("rules.yaml not found, using default rules")

        config_data = self._apply_env_overrides(config_data)

        app_config = _validate(AppConfig, config_data)
        logger.info(
            f"Application configuration loaded (rules v{app_config.rules.version}, "
            f"required sources: {[s.value for s in app_config.rules.context.required_sources]})"
        )

        if use_cache:
            self._cache[cache_key] = app_config

        return app_config

    def load_rules(self) -> RuleConfig:
        """Load only the decision rules."""
        return self.load_app_config().rules

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides to configuration.

        Only variables that are set override the file values.
        """
        for env_name, path, convert in ENV_OVERRIDES:
            env_val = os.getenv(env_name)
            if env_val is None or env_val == "":
                continue

            try:
                value = convert(env_val)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_name}: {env_val!r}") from e

            section = config
            for key in path[:-1]:
                section = section.setdefault(key, {})
            section[path[-1]] = value
            logger.debug(f"Applied env override {env_name} -> {'.'.join(path)}")

        return config

    def reload(self) -> AppConfig:
        """Reload configuration from disk (hot reload)."""
        logger.info("Reloading configuration from disk")
        self._cache.clear()
        return self.load_app_config(use_cache=False)

    def clear_cache(self):
        """Clear the configuration cache."""
        logger.info("Clearing configuration cache")
        self._cache.clear()


# ============================================================================
# Validation Helpers
# ============================================================================

def _validate(model: Callable[..., Any], data: Dict[str, Any]):
    try:
        return model(**data)
    except ValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_rule_config(data: Optional[Dict[str, Any]] = None) -> RuleConfig:
    """
    Build a RuleConfig from a plain dict.

    Raises:
        ConfigurationError: If the rules are invalid (e.g. wait >= execute)
    """
    return _validate(RuleConfig, data or {})


def load_app_config(config_dir: Optional[Path] = None) -> AppConfig:
    """Load application configuration from ``config_dir`` (no shared cache)."""
    return ConfigLoader(config_dir).load_app_config(use_cache=False)
