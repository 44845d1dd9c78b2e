"""Assemble a running resequencer from validated settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from resequencer.core.config import ResequencerSettings
from resequencer.dispatch.base import BaseDispatcher
from resequencer.engine.clock import Clock
from resequencer.engine.lifecycle import GroupReaper
from resequencer.engine.resequencer import Resequencer
from resequencer.plugins.manager import PluginManager

slog = structlog.get_logger(__name__)


@dataclass
class Runtime:
    """Engine plus the collaborators built for it.

    Attributes:
        engine: The resequencer receiving items
        dispatcher: Dispatcher plugin instance the engine delivers to
        reaper: Idle-group reaper, None when group_timeout_seconds is unset
    """

    engine: Resequencer[Any]
    dispatcher: BaseDispatcher
    reaper: GroupReaper | None

    def close(self, *, flush: bool = False) -> None:
        """Stop the reaper, optionally flush open groups, close the dispatcher."""
        if self.reaper is not None:
            self.reaper.stop()
        if flush:
            self.engine.flush(release_leftover=True)
        self.dispatcher.close()


def build_runtime(
    settings: ResequencerSettings,
    plugin_manager: PluginManager | None = None,
    clock: Clock | None = None,
) -> Runtime:
    """Instantiate dispatcher, engine and reaper from settings.

    The reaper is created but not started; call ``runtime.reaper.start()``
    for background eviction or drive ``check_timeouts()`` yourself.

    Raises:
        DispatcherNotFoundError: If the dispatcher plugin is unknown
        DispatcherConfigError: If the dispatcher options are invalid
    """
    if plugin_manager is None:
        plugin_manager = PluginManager()
        plugin_manager.register_builtin_plugins()

    dispatcher = plugin_manager.create_dispatcher(settings.dispatcher.plugin, settings.dispatcher.options)
    engine: Resequencer[Any] = Resequencer(
        policy=settings.release_policy,
        dispatcher=dispatcher,
        clock=clock,
        default_destination=settings.default_destination,
    )

    reaper = None
    if settings.group_timeout_seconds is not None:
        reaper = GroupReaper(
            engine,
            timeout_seconds=settings.group_timeout_seconds,
            on_timeout=settings.on_timeout,
            interval_seconds=settings.reaper_interval_seconds,
        )

    slog.debug(
        "runtime_built",
        policy=settings.release_policy.value,
        dispatcher=dispatcher.name,
        group_timeout_seconds=settings.group_timeout_seconds,
    )
    return Runtime(engine=engine, dispatcher=dispatcher, reaper=reaper)
