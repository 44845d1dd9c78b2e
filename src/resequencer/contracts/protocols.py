"""Boundary contracts consumed by the engine.

Dispatchers and destination resolvers are implemented outside the
engine; the engine only calls them.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from resequencer.contracts.items import SequencedItem


@runtime_checkable
class Dispatcher(Protocol):
    """Receives released runs for delivery.

    A run arrives in a single call, in strictly ascending position order.
    """

    name: str

    def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
        """Deliver one released run to its destination."""
        ...


class DestinationResolver(Protocol):
    """Maps the first item of a released run to a logical destination.

    Must not have side effects on buffer state.
    """

    def __call__(self, first: SequencedItem[Any]) -> str | None: ...
