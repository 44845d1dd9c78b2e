"""Destination resolvers.

A resolver looks at the first item of a released run and names the
logical destination for the whole run.
"""

from __future__ import annotations

from typing import Any

from resequencer.contracts import DestinationResolver, SequencedItem


def reply_to_resolver(default: str | None = None) -> DestinationResolver:
    """Resolve to the item's reply_to, falling back to a fixed default.

    Args:
        default: Destination used when the item carries no reply_to

    Returns:
        Resolver callable
    """

    def resolve(first: SequencedItem[Any]) -> str | None:
        if first.reply_to is not None:
            return first.reply_to
        return default

    return resolve


def fixed_resolver(destination: str) -> DestinationResolver:
    """Resolve every run to the same destination, ignoring reply_to."""

    def resolve(first: SequencedItem[Any]) -> str | None:
        return destination

    return resolve
