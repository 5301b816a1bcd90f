"""Settings of the dashboard itself, loaded from ``authstudio.yaml`` and the environment."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from authstudio.config.locator import MAX_DEPTH
from authstudio.exceptions import SettingsError

SETTINGS_FILE = "authstudio.yaml"

ENV_OVERRIDES = {
    "AUTH_STUDIO_CONFIG": "config_path",
    "AUTH_STUDIO_HOST": "host",
    "AUTH_STUDIO_PORT": "port",
    "AUTH_STUDIO_NODE": "node_binary",
}


class StudioSettings(BaseModel):
    """Dashboard settings."""

    host: str = Field("127.0.0.1", description="Interface to bind")
    port: int = Field(3002, description="Port to bind")
    config_path: Optional[Path] = Field(
        None, description="Explicit auth configuration file, bypassing the search"
    )
    max_depth: int = Field(MAX_DEPTH, description="Parent directories to search")
    node_binary: str = Field("node", description="Node executable used for script configs")
    node_timeout: float = Field(30.0, description="Seconds before a Node evaluation is abandoned")
    log_level: str = Field("INFO", description="Log level of the authstudio logger")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if not 0 < v < 65536:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("max_depth")
    @classmethod
    def validate_max_depth(cls, v):
        if v < 1:
            raise ValueError("max_depth must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {v!r}")
        return level


# Pattern for environment variable substitution
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(config: Any) -> Any:
    """Recursively substitute environment variables in settings values.

    Supports these patterns:
    - ${VAR_NAME} - simple substitution
    - ${VAR_NAME:-default} - substitution with default value
    - ${VAR_NAME:?error message} - required variable with error message

    Raises:
        SettingsError: If a referenced environment variable is missing
    """
    if isinstance(config, dict):
        return {key: substitute_env_vars(value) for key, value in config.items()}
    elif isinstance(config, list):
        return [substitute_env_vars(item) for item in config]
    elif isinstance(config, str):
        return ENV_VAR_PATTERN.sub(_replace_var, config)
    else:
        return config


def _replace_var(match: re.Match) -> str:
    var_expr = match.group(1)

    if ":-" in var_expr:
        var_name, default_value = var_expr.split(":-", 1)
        return os.getenv(var_name, default_value)

    elif ":?" in var_expr:
        var_name, error_msg = var_expr.split(":?", 1)
        env_value = os.getenv(var_name)
        if env_value is None:
            raise SettingsError(f"Required environment variable '{var_name}' not set: {error_msg}")
        return env_value

    else:
        env_value = os.getenv(var_expr)
        if env_value is None:
            raise SettingsError(f"Environment variable '{var_expr}' not set")
        return env_value


def load_settings(cwd: str | Path | None = None, overrides: Dict[str, Any] | None = None) -> StudioSettings:
    """Load settings from ``authstudio.yaml`` in ``cwd``, the environment and ``overrides``.

    Later sources win: file, then ``AUTH_STUDIO_*`` variables, then overrides
    (CLI flags). Overrides whose value is None are ignored.

    Raises:
        SettingsError: If the file is unreadable or a value is invalid
    """
    cwd = Path(cwd or Path.cwd())
    raw: dict[str, Any] = {}

    settings_file = cwd / SETTINGS_FILE
    if settings_file.is_file():
        try:
            with open(settings_file, "r") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise SettingsError(f"Invalid YAML in {settings_file}: {e}")
        if not isinstance(raw, dict):
            raise SettingsError(f"{settings_file} must contain a mapping")
        raw = substitute_env_vars(raw)

    for variable, name in ENV_OVERRIDES.items():
        if (value := os.getenv(variable)) is not None:
            raw[name] = value

    raw.update({key: value for key, value in (overrides or {}).items() if value is not None})

    config_path = raw.get("config_path")
    if config_path and not Path(config_path).is_absolute():
        raw["config_path"] = cwd / config_path

    try:
        return StudioSettings(**raw)
    except ValidationError as e:
        raise SettingsError(f"Invalid studio settings: {e}")
