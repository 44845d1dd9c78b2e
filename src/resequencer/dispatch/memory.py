"""In-process dispatcher delivering runs onto named queues."""

from __future__ import annotations

import queue
from collections.abc import Sequence
from threading import Lock
from typing import Any

from pydantic import Field

from resequencer.contracts import SequencedItem, UnknownDestinationError
from resequencer.dispatch.base import BaseDispatcher, DispatcherConfig

# Channel used for runs whose destination resolved to None
DEFAULT_CHANNEL = "default"


class MemoryDispatcherConfig(DispatcherConfig):
    """Options for the memory dispatcher.

    Attributes:
        channels: Channels created up front
        strict: Reject destinations that are not in ``channels``
    """

    channels: list[str] = Field(default_factory=list, description="Channels created up front")
    strict: bool = Field(default=False, description="Reject unknown destinations")


class MemoryDispatcher(BaseDispatcher):
    """Puts every released item on a ``queue.Queue`` per destination.

    A run is enqueued under one lock so concurrent runs for different keys
    never interleave inside a channel.

    Usage:
        dispatcher = MemoryDispatcher({"channels": ["out"]})
        engine = Resequencer(dispatcher=dispatcher, default_destination="out")
        ...
        items = dispatcher.drain("out")
    """

    name = "memory"
    config_model = MemoryDispatcherConfig

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        assert isinstance(self.config, MemoryDispatcherConfig)
        self._strict = self.config.strict
        self._lock = Lock()
        self._channels: dict[str, queue.Queue[SequencedItem[Any]]] = {name: queue.Queue() for name in self.config.channels}

    def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
        channel_name = destination if destination is not None else DEFAULT_CHANNEL
        with self._lock:
            channel = self._channels.get(channel_name)
            if channel is None:
                if self._strict:
                    raise UnknownDestinationError(destination)
                channel = queue.Queue()
                self._channels[channel_name] = channel
            for item in items:
                channel.put_nowait(item)

    def get_channel(self, name: str) -> queue.Queue[SequencedItem[Any]]:
        """Return the queue for a channel, creating it if needed."""
        with self._lock:
            if name not in self._channels:
                self._channels[name] = queue.Queue()
            return self._channels[name]

    def drain(self, name: str = DEFAULT_CHANNEL) -> list[SequencedItem[Any]]:
        """Remove and return everything currently queued on a channel."""
        channel = self.get_channel(name)
        drained: list[SequencedItem[Any]] = []
        while True:
            try:
                drained.append(channel.get_nowait())
            except queue.Empty:
                return drained

    @property
    def channel_names(self) -> list[str]:
        with self._lock:
            return sorted(self._channels)
