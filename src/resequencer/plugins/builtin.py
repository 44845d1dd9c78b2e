"""Registration of the dispatchers shipped with resequencer."""

from resequencer.dispatch.base import BaseDispatcher
from resequencer.dispatch.jsonl import JSONLDispatcher
from resequencer.dispatch.log import LogDispatcher
from resequencer.dispatch.memory import MemoryDispatcher
from resequencer.plugins.hookspecs import hookimpl


class BuiltinDispatchers:
    @hookimpl
    def resequencer_get_dispatchers(self) -> list[type[BaseDispatcher]]:
        return [MemoryDispatcher, LogDispatcher, JSONLDispatcher]
