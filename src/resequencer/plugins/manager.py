"""Plugin manager for dispatcher discovery and construction.

Uses pluggy for hook-based plugin registration.
"""

from typing import Any

import pluggy

from resequencer.contracts import DispatcherNotFoundError
from resequencer.dispatch.base import BaseDispatcher
from resequencer.plugins.hookspecs import PROJECT_NAME, ResequencerDispatcherSpec


class PluginManager:
    """Manages dispatcher plugin registration and lookup.

    Usage:
        manager = PluginManager()
        manager.register_builtin_plugins()

        dispatcher = manager.create_dispatcher("jsonl", {"directory": "out"})
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(ResequencerDispatcherSpec)
        self._dispatchers: dict[str, type[BaseDispatcher]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the dispatchers shipped with the package."""
        from resequencer.plugins.builtin import BuiltinDispatchers

        self.register(BuiltinDispatchers())

    def register(self, plugin: Any) -> None:
        """Register a plugin object implementing hook methods.

        Raises:
            ValueError: If it contributes a dispatcher name already registered
        """
        self._pm.register(plugin)
        try:
            self._refresh_caches()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_caches(self) -> None:
        new_dispatchers: dict[str, type[BaseDispatcher]] = {}
        for dispatchers in self._pm.hook.resequencer_get_dispatchers():
            for cls in dispatchers:
                name = cls.name
                if name in new_dispatchers:
                    raise ValueError(
                        f"Duplicate dispatcher plugin name: '{name}'. Already registered by {new_dispatchers[name].__name__}"
                    )
                new_dispatchers[name] = cls
        self._dispatchers = new_dispatchers

    def get_dispatchers(self) -> list[type[BaseDispatcher]]:
        """Get all registered dispatcher plugins, sorted by name."""
        return [self._dispatchers[name] for name in sorted(self._dispatchers)]

    def get_dispatcher_by_name(self, name: str) -> type[BaseDispatcher] | None:
        return self._dispatchers.get(name)

    def create_dispatcher(self, name: str, options: dict[str, Any] | None = None) -> BaseDispatcher:
        """Instantiate a dispatcher plugin from its options.

        Raises:
            DispatcherNotFoundError: If no plugin has that name
            DispatcherConfigError: If the options are invalid
        """
        cls = self._dispatchers.get(name)
        if cls is None:
            raise DispatcherNotFoundError(name, list(self._dispatchers))
        return cls(options if options is not None else {})
