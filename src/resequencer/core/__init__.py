"""Configuration and logging infrastructure."""

from resequencer.core.config import (
    DispatcherSettings,
    LoggingSettings,
    ResequencerSettings,
    load_settings,
    resolve_config,
)
from resequencer.core.logging import configure_logging

__all__ = [
    "DispatcherSettings",
    "LoggingSettings",
    "ResequencerSettings",
    "configure_logging",
    "load_settings",
    "resolve_config",
]
