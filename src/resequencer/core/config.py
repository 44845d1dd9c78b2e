# src/resequencer/core/config.py
"""
Configuration schema and loading for the resequencer.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import os
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from resequencer.contracts import ReleasePolicy, TimeoutAction


class DispatcherSettings(BaseModel):
    """Which dispatcher plugin receives released runs.

    Example YAML:
        dispatcher:
          plugin: jsonl
          options:
            directory: ./released
    """

    model_config = {"frozen": True}

    plugin: str = Field(default="log", description="Dispatcher plugin name")
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Plugin-specific configuration options",
    )

    @field_validator("plugin")
    @classmethod
    def validate_plugin_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("dispatcher plugin name cannot be empty")
        return v.strip()


class LoggingSettings(BaseModel):
    """Logging output configuration."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Root log level",
    )
    json_output: bool = Field(default=False, description="Emit JSON log lines instead of console output")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class ResequencerSettings(BaseModel):
    """Top-level resequencer configuration.

    Example YAML:
        release_policy: partial
        default_destination: ordered
        group_timeout_seconds: 30
        on_timeout: release_partial
        dispatcher:
          plugin: memory
        logging:
          level: info
    """

    model_config = {"frozen": True}

    release_policy: ReleasePolicy = Field(
        default=ReleasePolicy.PARTIAL,
        description="partial: release contiguous runs as gaps close; complete_only: wait for the whole sequence",
    )
    default_destination: str | None = Field(
        default=None,
        description="Destination for runs whose first item carries no reply_to",
    )
    group_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Evict groups idle for this long (None disables eviction)",
    )
    reaper_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between idle-group checks",
    )
    on_timeout: TimeoutAction = Field(
        default=TimeoutAction.DISCARD,
        description="What to do with items buffered in an evicted group",
    )
    dispatcher: DispatcherSettings = Field(
        default_factory=DispatcherSettings,
        description="Dispatcher receiving released runs",
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in string values.

    Unset variables without a default are left verbatim so validation
    reports them instead of silently substituting an empty string.
    """

    if isinstance(config, dict):
        return {key: _expand_env_vars(value) for key, value in config.items()}
    if isinstance(config, list):
        return [_expand_env_vars(value) for value in config]
    if isinstance(config, str):

        def replace(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            value = os.environ.get(name)
            if value is not None:
                return value
            if default is not None:
                return default
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replace, config)
    return config


def load_settings(config_path: Path) -> ResequencerSettings:
    """Load settings from a YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (RESEQUENCER_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Nested keys use a double underscore: RESEQUENCER_LOGGING__LEVEL=DEBUG.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated ResequencerSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="RESEQUENCER",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; convert top level to lowercase for Pydantic
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lowercase_nested(raw_config)
    raw_config = _expand_env_vars(raw_config)

    return ResequencerSettings(**raw_config)


def _lowercase_nested(config: dict[str, Any]) -> dict[str, Any]:
    """Lower-case the keys of nested settings sections.

    Environment overrides such as RESEQUENCER_LOGGING__LEVEL arrive with
    upper-case nested keys. Plugin option dicts are left untouched.
    """
    result = dict(config)
    for section in ("dispatcher", "logging"):
        value = result.get(section)
        if isinstance(value, dict):
            result[section] = {str(k).lower(): v for k, v in value.items()}
    return result


def resolve_config(settings: ResequencerSettings) -> dict[str, Any]:
    """Convert validated settings to a JSON-safe dict (explicit + defaults)."""
    return settings.model_dump(mode="json")
