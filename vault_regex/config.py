from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from vault_regex.exceptions import ConfigurationError
from vault_regex.models.search_config import SearchConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/app/config.yaml"
STATE_FILE_NAME = "search_state.json"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env_vars(config_str: str) -> str:
    """
    Expand environment variables in the format ${VAR_NAME} within a YAML string.
    Skips expansion in YAML comments (lines starting with #).

    Args:
        config_str: YAML configuration string potentially containing ${VAR_NAME} placeholders

    Returns:
        YAML string with all ${VAR_NAME} placeholders expanded to environment variable values

    Raises:
        KeyError: If a referenced environment variable is not set
    """

    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        try:
            return os.environ[var_name]
        except KeyError:
            msg = f"Environment variable '{var_name}' referenced in config.yaml but not set"
            raise KeyError(msg) from None

    lines = []
    for line in config_str.split("\n"):
        if line.lstrip().startswith("#"):
            lines.append(line)
        else:
            lines.append(_ENV_VAR_PATTERN.sub(replace_var, line))

    return "\n".join(lines)


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    return Path(config_path)


def load_config_from_yaml(config_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load YAML configuration file and expand environment variables.

    Args:
        config_path: Path to config.yaml. If None, uses CONFIG_PATH environment variable.
                     Defaults to /app/config.yaml if neither is set.

    Returns:
        Dictionary containing the parsed configuration

    Raises:
        ConfigurationError: Missing file, unset variable or invalid YAML
    """
    config_file = resolve_config_path(config_path)
    if not config_file.exists():
        msg = (
            f"Configuration file not found at {config_file}\n"
            f"Use CONFIG_PATH environment variable to override location."
        )
        raise ConfigurationError(msg, context={"config_file": str(config_file)})

    try:
        config_str = config_file.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Failed to read config file: {e}"
        raise ConfigurationError(msg, context={"config_file": str(config_file)}) from e

    try:
        expanded_config = expand_env_vars(config_str)
    except KeyError as e:
        msg = f"Error expanding environment variables in config.yaml: {e}"
        raise ConfigurationError(msg, context={"config_file": str(config_file)}) from None

    try:
        config_dict = yaml.safe_load(expanded_config)
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in config.yaml: {e}"
        raise ConfigurationError(msg, context={"config_file": str(config_file)}) from None

    if not isinstance(config_dict, dict):
        msg = "config.yaml must contain a YAML mapping/dictionary at root level"
        raise ConfigurationError(msg, context={"config_file": str(config_file)})

    return config_dict


def _section(config_dict: dict[str, Any], name: str) -> dict[str, Any]:
    value = config_dict.get(name)
    return value if isinstance(value, dict) else {}


def flatten_config(config_dict: dict[str, Any]) -> dict[str, Any]:
    """Map the nested config.yaml layout onto Settings field names."""
    flat_config: dict[str, Any] = {}

    vault = _section(config_dict, "vault")
    if "path" in vault:
        flat_config["vault_path"] = vault["path"]

    auth = _section(config_dict, "auth")
    if "token" in auth:
        flat_config["auth_token"] = auth["token"]

    logging_section = _section(config_dict, "logging")
    if "level" in logging_section:
        flat_config["log_level"] = logging_section["level"]
    if "json" in logging_section:
        flat_config["log_json"] = logging_section["json"]

    storage = _section(config_dict, "storage")
    if "data_path" in storage:
        flat_config["data_path"] = storage["data_path"]

    if "environment" in config_dict:
        flat_config["environment"] = config_dict["environment"]

    if "search" in config_dict:
        flat_config["search"] = _section(config_dict, "search")

    return flat_config


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
        env_nested_delimiter="__",
    )

    # Vault configuration
    vault_path: str = "/vault"

    # Security
    auth_token: str  # Required
    environment: str = "development"

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    # Persistent storage for history and pattern library (not vault-managed)
    data_path: str = "/data"

    # Engine configuration
    search: SearchConfig = Field(default_factory=SearchConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment variables override values read from config.yaml; nested sections are merged
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            msg = f"log_level must be one of {', '.join(LOG_LEVELS)}"
            raise ValueError(msg)
        return level

    @property
    def state_file(self) -> Path:
        return Path(self.data_path) / STATE_FILE_NAME


def build_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from YAML config file with environment variable expansion.

    Raises:
        ConfigurationError: The file cannot be loaded or fails validation
    """
    config_dict = load_config_from_yaml(config_path)
    try:
        return Settings(**flatten_config(config_dict))
    except ValidationError as e:
        msg = f"Configuration validation error: {e}"
        raise ConfigurationError(
            msg,
            context={"config_file": str(resolve_config_path(config_path))},
        ) from e


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the current settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = build_settings()
    return _settings


def reload_settings(config_path: str | Path | None = None) -> Settings:
    """Re-read the configuration file.

    A failed reload keeps the last valid settings (and re-raises when there
    are none yet).
    """
    global _settings
    try:
        new_settings = build_settings(config_path)
    except ConfigurationError as e:
        if _settings is None:
            raise
        logger.warning(
            "Config reload failed, keeping previous settings",
            extra={"error": e.message, **e.context},
        )
        return _settings

    _settings = new_settings
    logger.info("Configuration reloaded", extra={"vault_path": new_settings.vault_path})
    return new_settings


def set_settings(new_settings: Settings | None) -> None:
    """Install settings directly (application factory and tests)."""
    global _settings
    _settings = new_settings
