"""Configuration loader for the watermark synchronizer."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from watermark_sync.errors import ConfigurationError
from watermark_sync.models.config import AppConfig

log = structlog.stdlib.get_logger()


class ConfigLoader:
    """Loads and validates configuration from YAML files and environment variables."""

    def __init__(self, config_dir: Path | None = None) -> None:
        self.config_dir = config_dir or Path.cwd() / "config"
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from a YAML file with environment variable substitution.

        Args:
            config_path: Path to the configuration YAML file. If None, uses
                config/<APP_ENV>.yaml, falling back to config/default.yaml.

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
            log.info("configuration_loaded_successfully")
            return app_config
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def _get_default_config_path(self) -> str:
        env = os.getenv("APP_ENV", "default")
        config_file = self.config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = self.config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set APP_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}")

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file must hold a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references with environment values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        matches = self.env_var_pattern.findall(value)

        for var_name in matches:
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment or .env file."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Return warnings for settings that are valid but probably unintended."""
        warnings = []

        if config.schedule.expression is None and config.schedule.overlap_policy == "queue":
            warnings.append("schedule.overlap_policy has no effect without schedule.expression")

        if config.destination.min_health_status == "red":
            warnings.append(
                "destination.min_health_status 'red' lets cycles run against a degraded cluster"
            )

        if config.schedule.abort_policy == "skip" and config.schedule.max_consecutive_aborts != 5:
            warnings.append("schedule.max_consecutive_aborts only applies when abort_policy is 'fail'")

        watermark = config.watermark
        if config.output.sink == "elasticsearch" and watermark.category is not None:
            category_field = watermark.category_field
            decorated = set(config.output.add_field)
            if config.output.type is not None:
                decorated.add("type")
            if category_field in decorated:
                warnings.append(
                    f"output field {category_field!r} is replaced by watermark.category "
                    f"{watermark.category!r} on every indexed event"
                )

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
