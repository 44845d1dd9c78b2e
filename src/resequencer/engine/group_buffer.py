# src/resequencer/engine/group_buffer.py
"""Per-key buffer holding out-of-order items until they can be released.

A group buffer is the pair (watermark, ordered map position -> item).
The watermark is the highest position already released; it starts at -1
because positions are 0-based. Every buffered position is strictly
greater than the watermark.

The buffer is not thread-safe on its own. The engine serialises all
access to one buffer behind that group's lock.
"""

from __future__ import annotations

from bisect import insort
from collections.abc import Hashable

import structlog

from resequencer.contracts import GroupState, RejectionReason, ReleasePolicy, SequencedItem

slog = structlog.get_logger(__name__)

# Watermark of a group that has released nothing yet
INITIAL_WATERMARK = -1


class GroupBuffer[T]:
    """Ordered, duplicate-free buffer for one correlation key.

    Invariants:
        - no two buffered items share a position
        - every buffered position > watermark
        - ``complete`` never flips back to False once set

    Usage:
        buffer = GroupBuffer[str]("order-42", created_at=clock.monotonic())
        reason = buffer.can_admit(item)
        if reason is None:
            buffer.insert(item, now)
            buffer.check_complete()
            run = buffer.release_run(ReleasePolicy.PARTIAL)
    """

    def __init__(self, correlation_key: Hashable, created_at: float) -> None:
        self.correlation_key = correlation_key
        self.created_at = created_at
        self._watermark = INITIAL_WATERMARK
        self._items: dict[int, SequencedItem[T]] = {}
        self._positions: list[int] = []  # sorted ascending, mirrors _items keys
        self._last_inserted: SequencedItem[T] | None = None
        self._complete = False
        self._retired = False
        self._last_activity = created_at

    # --- Properties ---

    @property
    def watermark(self) -> int:
        """Highest position already released (-1 if none)."""
        return self._watermark

    @property
    def complete(self) -> bool:
        """Whether the whole remaining sequence has been observed."""
        return self._complete

    @property
    def retired(self) -> bool:
        return self._retired

    @property
    def buffered_count(self) -> int:
        """Number of real items waiting for release."""
        return len(self._positions)

    @property
    def buffered_positions(self) -> list[int]:
        return list(self._positions)

    @property
    def last_activity(self) -> float:
        """Clock time of the last accepted insertion (or creation)."""
        return self._last_activity

    @property
    def state(self) -> GroupState:
        if self._retired:
            return GroupState.RETIRED
        if self._complete:
            return GroupState.COMPLETE
        return GroupState.OPEN

    # --- Admission ---

    def can_admit(self, item: SequencedItem[T]) -> RejectionReason | None:
        """Decide whether an item may enter the buffer. No side effects.

        Returns:
            None if the item is acceptable, otherwise the rejection reason
        """
        if item.position < 0 or item.total < 1:
            return RejectionReason.OUT_OF_RANGE
        if item.position <= self._watermark:
            return RejectionReason.STALE
        if item.position in self._items:
            # First writer wins; payload differences are ignored
            return RejectionReason.DUPLICATE
        # Bound by the advertised size only while something is buffered
        if self._positions and self._last_inserted is not None and item.position >= self._last_inserted.total:
            return RejectionReason.OUT_OF_RANGE
        if item.position >= item.total:
            return RejectionReason.OUT_OF_RANGE
        return None

    def insert(self, item: SequencedItem[T], now: float) -> None:
        """Store an admitted item.

        Raises:
            ValueError: If the item would break the buffer invariants
                (caller skipped can_admit)
        """
        if item.position <= self._watermark or item.position in self._items:
            raise ValueError(
                f"Position {item.position} cannot be inserted into group {self.correlation_key!r} "
                f"(watermark={self._watermark}, buffered={self._positions})"
            )
        self._items[item.position] = item
        insort(self._positions, item.position)
        self._last_inserted = item
        self._last_activity = now

    # --- Completion ---

    def check_complete(self) -> bool:
        """Re-evaluate completion after an insertion.

        The buffer is complete when the buffered items form one unbroken run
        that starts right after the watermark and ends at the terminal
        position (``last.position == last.total - 1``). Once set, the flag
        stays set.

        Returns:
            The (possibly newly latched) completion flag
        """
        if self._complete or not self._positions:
            return self._complete

        first = self._items[self._positions[0]]
        last = self._items[self._positions[-1]]
        if (
            last.is_last
            and first.position == self._watermark + 1
            and last.position - first.position == len(self._positions) - 1
        ):
            self._complete = True
            slog.debug(
                "group_complete",
                correlation_key=self.correlation_key,
                first_position=first.position,
                last_position=last.position,
            )
        return self._complete

    # --- Release ---

    def release_run(self, policy: ReleasePolicy) -> tuple[SequencedItem[T], ...]:
        """Remove and return the contiguous run directly above the watermark.

        Under COMPLETE_ONLY nothing is released until the buffer is complete.
        The watermark advances to the last released position.

        Returns:
            Released items in ascending position order (may be empty)
        """
        if policy is ReleasePolicy.COMPLETE_ONLY and not self._complete:
            return ()

        count = 0
        next_position = self._watermark + 1
        for position in self._positions:
            if position != next_position:
                break
            count += 1
            next_position += 1

        if count == 0:
            return ()

        released = tuple(self._items.pop(position) for position in self._positions[:count])
        del self._positions[:count]
        self._watermark = released[-1].position
        return released

    def drain(self) -> tuple[SequencedItem[T], ...]:
        """Remove every buffered item regardless of gaps, ascending.

        Used when the group is retired before its sequence finished.
        The watermark is left untouched.
        """
        drained = tuple(self._items[position] for position in self._positions)
        self._items.clear()
        self._positions.clear()
        return drained

    def mark_retired(self) -> None:
        self._retired = True
