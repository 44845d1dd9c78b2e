"""Dispatcher that only logs released runs."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import Field

from resequencer.contracts import SequencedItem
from resequencer.dispatch.base import BaseDispatcher, DispatcherConfig

slog = structlog.get_logger(__name__)


class LogDispatcherConfig(DispatcherConfig):
    include_payloads: bool = Field(default=False, description="Log payload reprs alongside positions")


class LogDispatcher(BaseDispatcher):
    """Emits one ``run_dispatched`` log event per released run."""

    name = "log"
    config_model = LogDispatcherConfig

    def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
        assert isinstance(self.config, LogDispatcherConfig)
        event: dict[str, Any] = {
            "destination": destination,
            "correlation_key": items[0].correlation_key if items else None,
            "positions": [item.position for item in items],
        }
        if self.config.include_payloads:
            event["payloads"] = [repr(item.payload) for item in items]
        slog.info("run_dispatched", **event)
