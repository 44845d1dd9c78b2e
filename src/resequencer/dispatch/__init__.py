"""Dispatchers and destination resolvers for released runs."""

from resequencer.dispatch.base import BaseDispatcher, DispatcherConfig
from resequencer.dispatch.jsonl import JSONLDispatcher
from resequencer.dispatch.log import LogDispatcher
from resequencer.dispatch.memory import MemoryDispatcher
from resequencer.dispatch.resolvers import fixed_resolver, reply_to_resolver

__all__ = [
    "BaseDispatcher",
    "DispatcherConfig",
    "JSONLDispatcher",
    "LogDispatcher",
    "MemoryDispatcher",
    "fixed_resolver",
    "reply_to_resolver",
]
