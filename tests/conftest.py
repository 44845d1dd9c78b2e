# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
import threading
from collections.abc import Callable, Iterator, Sequence
from typing import Any

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from resequencer.contracts import SequencedItem
from resequencer.engine.clock import MockClock


class RecordingDispatcher:
    """Dispatcher that records every run it receives.

    Each call is stored as (destination, items) so tests can assert on run
    boundaries, not just on the flattened output.
    """

    name = "recording"

    def __init__(self) -> None:
        self.calls: list[tuple[str | None, tuple[SequencedItem[Any], ...]]] = []
        self._lock = threading.Lock()

    def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
        with self._lock:
            self.calls.append((destination, tuple(items)))

    def positions_for(self, key: Any) -> list[int]:
        """Flattened released positions for one key, in dispatch order."""
        with self._lock:
            return [item.position for _, items in self.calls for item in items if item.correlation_key == key]

    @property
    def runs(self) -> list[list[int]]:
        with self._lock:
            return [[item.position for item in items] for _, items in self.calls]


@pytest.fixture
def recording_dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def mock_clock() -> MockClock:
    return MockClock(start=100.0)


@pytest.fixture
def make_item() -> Callable[..., SequencedItem[Any]]:
    """Factory for items with a payload derived from key and position."""

    def _make(key: Any, position: int, total: int, payload: Any = None, reply_to: str | None = None) -> SequencedItem[Any]:
        if payload is None:
            payload = f"{key}-{position}"
        return SequencedItem(correlation_key=key, position=position, total=total, payload=payload, reply_to=reply_to)

    return _make


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo configure_logging() calls so handlers never outlive a test's streams."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        yield
    finally:
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
