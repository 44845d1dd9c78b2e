"""pluggy hook specifications for resequencer plugins.

Usage (implementing a plugin):
    from resequencer.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl
        def resequencer_get_dispatchers(self):
            return [KafkaDispatcher]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from resequencer.dispatch.base import BaseDispatcher

PROJECT_NAME = "resequencer"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class ResequencerDispatcherSpec:
    """Hook specifications for dispatcher plugins."""

    @hookspec
    def resequencer_get_dispatchers(self) -> list[type["BaseDispatcher"]]:  # type: ignore[empty-body]
        """Return dispatcher plugin classes (not instances)."""
