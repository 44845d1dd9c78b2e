# src/resequencer/engine/resequencer.py
"""Resequencer: per-key reassembly of out-of-order items.

Items are grouped by correlation key. Each group buffers items until the
run directly above its watermark is contiguous, then hands that run to
the dispatcher in ascending position order. A group is retired once its
terminal position (total - 1) has been released; later items for the
same key start a brand-new group.

Thread Safety Model:
    - A narrow map lock guards only the key -> group dictionary.
    - Each group has a state lock serialising admission, insertion,
      completion and release for that key.
    - Each group has a dispatch lock. It is acquired while the state lock
      is still held and released after delivery (hand-over-hand), so runs
      of one key reach the dispatcher in release order while the state
      lock is not held during delivery.
    - Lock order is state lock -> map lock. Nothing acquires a state lock
      while holding the map lock.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any

import structlog

from resequencer.contracts import (
    GroupState,
    RejectionReason,
    ReleasePolicy,
    ReleaseResult,
    RetiredGroup,
    RetirementCause,
    SequencedItem,
)
from resequencer.dispatch.resolvers import reply_to_resolver
from resequencer.engine.clock import DEFAULT_CLOCK, is_idle
from resequencer.engine.group_buffer import GroupBuffer

if TYPE_CHECKING:
    from resequencer.contracts import DestinationResolver, Dispatcher
    from resequencer.engine.clock import Clock

slog = structlog.get_logger(__name__)


@dataclass
class _Group[T]:
    """A group buffer plus the locks that guard it."""

    buffer: GroupBuffer[T]
    state_lock: Lock = field(default_factory=Lock)
    dispatch_lock: Lock = field(default_factory=Lock)


class Resequencer[T]:
    """Reassembly engine releasing items per correlation key in position order.

    Example:
        engine = Resequencer[str](policy=ReleasePolicy.PARTIAL, dispatcher=dispatcher)

        engine.submit(SequencedItem("order-42", 1, 3, "b"))  # held, waiting for 0
        result = engine.submit(SequencedItem("order-42", 0, 3, "a"))
        assert result.positions == [0, 1]  # dispatched as one run

    Rejected items (stale, duplicate, out of range) produce an empty
    ReleaseResult with ``rejection`` set; they never raise.
    """

    def __init__(
        self,
        policy: ReleasePolicy = ReleasePolicy.PARTIAL,
        dispatcher: Dispatcher | None = None,
        resolver: DestinationResolver | None = None,
        clock: Clock | None = None,
        default_destination: str | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            policy: Release policy applied to every group
            dispatcher: Receives released runs. If None, callers consume
                runs from the returned ReleaseResult instead.
            resolver: Maps the first item of a run to its destination.
                Defaults to the item's reply_to, else default_destination.
            clock: Time source for idle tracking. Inject MockClock in tests.
            default_destination: Fallback destination for the default resolver
        """
        self._policy = ReleasePolicy(policy)
        self._dispatcher = dispatcher
        self._resolver = resolver if resolver is not None else reply_to_resolver(default_destination)
        self._clock = clock if clock is not None else DEFAULT_CLOCK

        self._map_lock = Lock()
        self._groups: dict[Hashable, _Group[T]] = {}

        self._stats_lock = Lock()
        self._stats: Counter[str] = Counter()

    @property
    def policy(self) -> ReleasePolicy:
        return self._policy

    @property
    def dispatcher(self) -> Dispatcher | None:
        return self._dispatcher

    # --- Core Operations ---

    def submit(self, item: SequencedItem[T]) -> ReleaseResult[T]:
        """Admit an item and release whatever run it completes.

        Args:
            item: Incoming item carrying key, position and total

        Returns:
            ReleaseResult with the released run (possibly empty), the
            resolved destination, and whether the group retired

        Raises:
            Exception: Whatever the dispatcher raises. The engine state has
                already been committed when that happens.
        """
        self._count("submitted")

        while True:
            group = self._get_or_create(item.correlation_key)
            group.state_lock.acquire()
            try:
                if group.buffer.retired:
                    # Lost a race with retirement; never resurrect, start fresh
                    continue
                result = self._process_locked(group, item)
                if not result.released:
                    return result
                group.dispatch_lock.acquire()
            finally:
                group.state_lock.release()

            try:
                self._dispatch(result.items, result.destination)
            finally:
                group.dispatch_lock.release()
            return result

    def retire(
        self,
        correlation_key: Hashable,
        cause: RetirementCause = RetirementCause.EVICTED,
        *,
        idle_for: float | None = None,
        release_leftover: bool = False,
    ) -> RetiredGroup[T] | None:
        """Remove a group from the engine.

        Idempotent: retiring an absent or already retired key returns None.

        Args:
            correlation_key: Key of the group to retire
            cause: Recorded reason for retirement
            idle_for: If set, only retire when the group has accepted nothing
                for at least this many seconds (re-checked under the group
                lock, so a concurrent submission wins)
            release_leftover: Hand still-buffered items to the dispatcher in
                ascending order before forgetting them

        Returns:
            Snapshot of the retired group, or None if nothing was retired
        """
        with self._map_lock:
            group = self._groups.get(correlation_key)
        if group is None:
            return None

        group.state_lock.acquire()
        try:
            if group.buffer.retired:
                return None
            if idle_for is not None and not is_idle(self._clock, group.buffer.last_activity, idle_for):
                return None
            retired = self._retire_locked(group, cause)
            if not (release_leftover and retired.leftover):
                return retired
            destination = self._resolver(retired.leftover[0])
            group.dispatch_lock.acquire()
        finally:
            group.state_lock.release()

        try:
            self._dispatch(retired.leftover, destination)
            self._count("released_items", len(retired.leftover))
            self._count("released_runs")
        finally:
            group.dispatch_lock.release()
        return retired

    def flush(self, *, release_leftover: bool = False) -> list[RetiredGroup[T]]:
        """Retire every open group (shutdown / end of input).

        Returns:
            Snapshots of the groups that were retired
        """
        with self._map_lock:
            keys = list(self._groups)
        results: list[RetiredGroup[T]] = []
        for key in keys:
            retired = self.retire(key, RetirementCause.FLUSHED, release_leftover=release_leftover)
            if retired is not None:
                results.append(retired)
        return results

    # --- Queries ---

    def idle_keys(self, older_than_seconds: float) -> list[Hashable]:
        """Keys whose group has accepted nothing for the given duration."""
        with self._map_lock:
            groups = list(self._groups.items())
        return [key for key, group in groups if is_idle(self._clock, group.buffer.last_activity, older_than_seconds)]

    @property
    def group_count(self) -> int:
        """Number of open groups."""
        with self._map_lock:
            return len(self._groups)

    def pending_count(self, correlation_key: Hashable) -> int:
        """Items buffered (not yet released) for a key; 0 if no group."""
        group = self._lookup(correlation_key)
        if group is None:
            return 0
        with group.state_lock:
            return group.buffer.buffered_count

    def group_state(self, correlation_key: Hashable) -> GroupState | None:
        """Lifecycle state of the open group for a key, None if absent."""
        group = self._lookup(correlation_key)
        if group is None:
            return None
        with group.state_lock:
            return group.buffer.state

    def watermark(self, correlation_key: Hashable) -> int | None:
        """Highest released position of the open group for a key."""
        group = self._lookup(correlation_key)
        if group is None:
            return None
        with group.state_lock:
            return group.buffer.watermark

    def get_metrics(self) -> dict[str, Any]:
        """Get metrics snapshot for observability."""
        with self._map_lock:
            groups = list(self._groups.values())
        with self._stats_lock:
            stats = dict(self._stats)
        return {
            "policy": self._policy.value,
            "open_groups": len(groups),
            "buffered_items": sum(group.buffer.buffered_count for group in groups),
            "submitted": stats.get("submitted", 0),
            "accepted": stats.get("accepted", 0),
            "rejected": {reason.value: stats.get(f"rejected.{reason.value}", 0) for reason in RejectionReason},
            "released_items": stats.get("released_items", 0),
            "released_runs": stats.get("released_runs", 0),
            "groups_created": stats.get("groups_created", 0),
            "retired": {cause.value: stats.get(f"retired.{cause.value}", 0) for cause in RetirementCause},
        }

    # --- Internals ---

    def _lookup(self, correlation_key: Hashable) -> _Group[T] | None:
        with self._map_lock:
            return self._groups.get(correlation_key)

    def _get_or_create(self, correlation_key: Hashable) -> _Group[T]:
        with self._map_lock:
            group = self._groups.get(correlation_key)
            if group is None:
                group = _Group(GroupBuffer(correlation_key, created_at=self._clock.monotonic()))
                self._groups[correlation_key] = group
                created = True
            else:
                created = False
        if created:
            self._count("groups_created")
            slog.debug("group_created", correlation_key=correlation_key)
        return group

    def _process_locked(self, group: _Group[T], item: SequencedItem[T]) -> ReleaseResult[T]:
        """Admission, insertion, completion and release. Caller holds state_lock."""
        buffer = group.buffer
        key = item.correlation_key

        reason = buffer.can_admit(item)
        if reason is not None:
            self._count(f"rejected.{reason.value}")
            slog.debug(
                "item_rejected",
                correlation_key=key,
                position=item.position,
                total=item.total,
                reason=reason.value,
                watermark=buffer.watermark,
            )
            return ReleaseResult(correlation_key=key, rejection=reason)

        buffer.insert(item, self._clock.monotonic())
        self._count("accepted")
        buffer.check_complete()

        run = buffer.release_run(self._policy)
        if not run:
            return ReleaseResult(correlation_key=key)

        self._count("released_items", len(run))
        self._count("released_runs")

        retired = run[-1].is_last
        if retired:
            self._retire_locked(group, RetirementCause.RELEASED)

        destination = self._resolver(run[0])
        slog.debug(
            "run_released",
            correlation_key=key,
            first_position=run[0].position,
            last_position=run[-1].position,
            count=len(run),
            destination=destination,
            retired=retired,
        )
        return ReleaseResult(correlation_key=key, items=run, destination=destination, retired=retired)

    def _retire_locked(self, group: _Group[T], cause: RetirementCause) -> RetiredGroup[T]:
        """Detach a group from the map and seal it. Caller holds state_lock."""
        buffer = group.buffer
        key = buffer.correlation_key
        with self._map_lock:
            # A fresh group may already own the key; only remove our own
            if self._groups.get(key) is group:
                del self._groups[key]

        leftover = buffer.drain()
        buffer.mark_retired()
        self._count(f"retired.{cause.value}")

        if leftover and cause is RetirementCause.RELEASED:
            slog.warning(
                "group_retired_with_leftover",
                correlation_key=key,
                leftover_positions=[item.position for item in leftover],
                watermark=buffer.watermark,
            )
        slog.info(
            "group_retired",
            correlation_key=key,
            cause=cause.value,
            watermark=buffer.watermark,
            leftover_count=len(leftover),
        )
        return RetiredGroup(correlation_key=key, cause=cause, leftover=leftover, watermark=buffer.watermark)

    def _dispatch(self, items: Sequence[SequencedItem[T]], destination: str | None) -> None:
        if self._dispatcher is not None:
            self._dispatcher.dispatch(items, destination)

    def _count(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[name] += amount
