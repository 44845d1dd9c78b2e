"""Sequenced item: the unit of traffic flowing through the resequencer."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SequencedItem[T]:
    """Immutable item tagged with its place in a sequence.

    Positions are 0-based and ``total`` counts the items in the sequence,
    so the last item of a sequence has ``position == total - 1``.

    Attributes:
        correlation_key: Groups items belonging to one sequence
        position: 0-based order index within the sequence
        total: Declared number of items in the sequence
        payload: Opaque data, never inspected by the engine
        reply_to: Optional return address used to resolve the destination
    """

    correlation_key: Hashable
    position: int
    total: int
    payload: T
    reply_to: str | None = None

    @property
    def is_last(self) -> bool:
        """Whether this item claims the terminal position of its sequence."""
        return self.position == self.total - 1
