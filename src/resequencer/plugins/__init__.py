"""Dispatcher plugin system (pluggy)."""

from resequencer.plugins.hookspecs import PROJECT_NAME, hookimpl, hookspec
from resequencer.plugins.manager import PluginManager

__all__ = [
    "PROJECT_NAME",
    "PluginManager",
    "hookimpl",
    "hookspec",
]
