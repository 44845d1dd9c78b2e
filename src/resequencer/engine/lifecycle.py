# src/resequencer/engine/lifecycle.py
"""GroupReaper: retires groups that stopped receiving items.

Groups that never complete would otherwise live forever. The reaper
periodically asks the engine which keys have been idle past the
timeout and retires them. Retirement is idempotent and re-checks
idleness under the group lock, so a submission racing with the reaper
either lands before eviction (and keeps the group alive) or starts a
fresh group after it.

Items still buffered in a timed-out group are either discarded or
handed downstream as a partial (possibly gapped) run, depending on the
configured TimeoutAction.
"""

from __future__ import annotations

import threading
from types import TracebackType
from typing import TYPE_CHECKING, Any

import structlog

from resequencer.contracts import RetiredGroup, RetirementCause, TimeoutAction

if TYPE_CHECKING:
    from resequencer.engine.resequencer import Resequencer

slog = structlog.get_logger(__name__)


class GroupReaper:
    """Evicts idle groups from a Resequencer.

    Example:
        reaper = GroupReaper(engine, timeout_seconds=30.0)

        # Drive it manually (tests, single-threaded loops)
        evicted = reaper.check_timeouts()

        # Or run it on a background thread
        with GroupReaper(engine, timeout_seconds=30.0, interval_seconds=1.0):
            ...
    """

    def __init__(
        self,
        resequencer: Resequencer[Any],
        timeout_seconds: float,
        on_timeout: TimeoutAction = TimeoutAction.DISCARD,
        interval_seconds: float = 1.0,
    ) -> None:
        """Initialize reaper.

        Args:
            resequencer: Engine whose groups are reaped
            timeout_seconds: Idle time after which a group is evicted
            on_timeout: What to do with items still buffered in the group
            interval_seconds: Sleep between checks when running in background

        Raises:
            ValueError: If timeout_seconds or interval_seconds is not positive
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")

        self._resequencer = resequencer
        self._timeout = timeout_seconds
        self._on_timeout = TimeoutAction(on_timeout)
        self._interval = interval_seconds

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._evicted_total = 0

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def evicted_total(self) -> int:
        """Groups evicted by this reaper since construction."""
        return self._evicted_total

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def check_timeouts(self) -> list[RetiredGroup[Any]]:
        """Retire every group idle for at least timeout_seconds.

        Returns:
            Groups actually retired by this call
        """
        release = self._on_timeout is TimeoutAction.RELEASE_PARTIAL
        evicted: list[RetiredGroup[Any]] = []
        for key in self._resequencer.idle_keys(self._timeout):
            retired = self._resequencer.retire(
                key,
                RetirementCause.EVICTED,
                idle_for=self._timeout,
                release_leftover=release,
            )
            if retired is None:
                # Completed or refreshed since idle_keys() was taken
                continue
            evicted.append(retired)
            if retired.leftover and not release:
                slog.warning(
                    "group_timed_out_items_discarded",
                    correlation_key=retired.correlation_key,
                    discarded_positions=[item.position for item in retired.leftover],
                    watermark=retired.watermark,
                )
            else:
                slog.warning(
                    "group_timed_out",
                    correlation_key=retired.correlation_key,
                    released_count=len(retired.leftover),
                    watermark=retired.watermark,
                )
        self._evicted_total += len(evicted)
        return evicted

    # --- Background operation ---

    def start(self) -> None:
        """Start checking on a background thread.

        Raises:
            RuntimeError: If already running
        """
        if self.running:
            raise RuntimeError("GroupReaper is already running")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="resequencer-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background thread and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                slog.error("reaper_thread_did_not_exit", timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.check_timeouts()
            except Exception as e:
                # A failing dispatcher must not kill the reaper thread
                slog.error("reaper_check_failed", error=str(e), error_type=type(e).__name__)

    def __enter__(self) -> GroupReaper:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
