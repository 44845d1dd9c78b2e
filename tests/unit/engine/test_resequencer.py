"""Tests for the Resequencer engine: submit, release, retirement, metrics."""

from collections.abc import Sequence
from typing import Any

import pytest

from resequencer.contracts import (
    GroupState,
    RejectionReason,
    ReleasePolicy,
    RetirementCause,
    SequencedItem,
)
from resequencer.engine import MockClock, Resequencer


class TestPartialRelease:
    def test_out_of_order_sequence_released_in_one_batch(self, make_item: Any, recording_dispatcher: Any) -> None:
        """total=4 submitted as 1, 3, 2, 0: nothing until 0 arrives, then [0..3] and retire."""
        engine: Resequencer[str] = Resequencer(ReleasePolicy.PARTIAL, dispatcher=recording_dispatcher)

        for position in (1, 3, 2):
            result = engine.submit(make_item("A", position, 4))
            assert not result.released
            assert not result.rejected

        result = engine.submit(make_item("A", 0, 4))

        assert result.positions == [0, 1, 2, 3]
        assert result.retired
        assert recording_dispatcher.runs == [[0, 1, 2, 3]]
        assert engine.group_count == 0

    def test_runs_released_as_gaps_close(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(ReleasePolicy.PARTIAL, dispatcher=recording_dispatcher)

        assert engine.submit(make_item("A", 0, 5)).positions == [0]
        assert engine.submit(make_item("A", 2, 5)).positions == []
        assert engine.submit(make_item("A", 4, 5)).positions == []
        assert engine.submit(make_item("A", 1, 5)).positions == [1, 2]
        final = engine.submit(make_item("A", 3, 5))

        assert final.positions == [3, 4]
        assert final.retired
        assert recording_dispatcher.runs == [[0], [1, 2], [3, 4]]

    def test_in_order_submission_releases_each_item(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer(ReleasePolicy.PARTIAL)

        released = [engine.submit(make_item("A", i, 3)).positions for i in range(3)]

        assert released == [[0], [1], [2]]
        assert engine.group_count == 0

    def test_single_item_sequence_retires_immediately(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()

        result = engine.submit(make_item("A", 0, 1))

        assert result.positions == [0]
        assert result.retired
        assert engine.group_state("A") is None

    def test_watermark_tracks_released_prefix(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()

        engine.submit(make_item("A", 0, 5))
        engine.submit(make_item("A", 1, 5))
        engine.submit(make_item("A", 3, 5))

        assert engine.watermark("A") == 1
        assert engine.pending_count("A") == 1


class TestCompleteOnlyRelease:
    def test_withholds_until_everything_buffered(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(ReleasePolicy.COMPLETE_ONLY, dispatcher=recording_dispatcher)

        for position in (0, 1, 3):
            assert not engine.submit(make_item("A", position, 4)).released
        assert engine.pending_count("A") == 3
        assert recording_dispatcher.runs == []

        result = engine.submit(make_item("A", 2, 4))

        assert result.positions == [0, 1, 2, 3]
        assert result.retired
        assert recording_dispatcher.runs == [[0, 1, 2, 3]]

    def test_accepts_policy_as_string(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer("complete_only")  # type: ignore[arg-type]

        assert engine.policy is ReleasePolicy.COMPLETE_ONLY
        assert not engine.submit(make_item("A", 0, 2)).released


class TestRejections:
    def test_duplicate_buffered_position_rejected(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(dispatcher=recording_dispatcher)
        engine.submit(make_item("A", 2, 4))

        result = engine.submit(make_item("A", 2, 4, payload="retransmitted"))

        assert result.rejection is RejectionReason.DUPLICATE
        assert not result.released
        assert engine.pending_count("A") == 1

    def test_already_released_position_is_stale(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(dispatcher=recording_dispatcher)
        engine.submit(make_item("A", 0, 4))

        result = engine.submit(make_item("A", 0, 4))

        assert result.rejection is RejectionReason.STALE
        assert recording_dispatcher.runs == [[0]]

    def test_out_of_range_position_rejected(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 1, 3))

        assert engine.submit(make_item("A", 5, 10)).rejection is RejectionReason.OUT_OF_RANGE
        assert engine.submit(make_item("A", -1, 3)).rejection is RejectionReason.OUT_OF_RANGE

    def test_emptied_group_accepts_position_past_earlier_total(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        assert engine.submit(make_item("k", 0, 2)).positions == [0]
        assert engine.pending_count("k") == 0

        result = engine.submit(make_item("k", 3, 5))

        assert not result.rejected
        assert engine.pending_count("k") == 1

    def test_rejection_never_raises_on_fresh_key(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()

        result = engine.submit(make_item("B", 7, 3))

        assert result.rejection is RejectionReason.OUT_OF_RANGE
        assert result.correlation_key == "B"


class TestRetirementFinality:
    def test_key_reused_after_retirement_starts_fresh_group(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 0, 2))
        assert engine.submit(make_item("A", 1, 2)).retired

        # Position 0 would be stale in the old group; a new group accepts it
        result = engine.submit(make_item("A", 0, 3))

        assert result.positions == [0]
        assert not result.retired
        assert engine.watermark("A") == 0
        assert engine.get_metrics()["groups_created"] == 2

    def test_late_item_after_retirement_never_appended_to_history(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(dispatcher=recording_dispatcher)
        engine.submit(make_item("A", 0, 2))
        engine.submit(make_item("A", 1, 2))

        result = engine.submit(make_item("A", 1, 2))

        assert not result.released
        assert recording_dispatcher.runs == [[0], [1]]
        assert engine.pending_count("A") == 1


class TestDestinations:
    def test_destination_from_first_item_reply_to(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(dispatcher=recording_dispatcher, default_destination="fallback")
        engine.submit(make_item("A", 1, 2, reply_to="second"))

        result = engine.submit(make_item("A", 0, 2, reply_to="first"))

        assert result.destination == "first"
        assert recording_dispatcher.calls[0][0] == "first"

    def test_default_destination_when_no_reply_to(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer(default_destination="fallback")

        assert engine.submit(make_item("A", 0, 2)).destination == "fallback"

    def test_custom_resolver(self, make_item: Any) -> None:
        seen: list[int] = []

        def resolver(first: SequencedItem[Any]) -> str:
            seen.append(first.position)
            return f"shard-{first.correlation_key}"

        engine: Resequencer[str] = Resequencer(resolver=resolver)
        engine.submit(make_item("A", 1, 3))
        result = engine.submit(make_item("A", 0, 3))

        assert result.destination == "shard-A"
        assert seen == [0]

    def test_no_destination_without_release(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer(default_destination="fallback")

        assert engine.submit(make_item("A", 1, 2)).destination is None


class TestDispatcherFailure:
    def test_dispatcher_error_propagates_after_state_committed(self, make_item: Any) -> None:
        class FailingDispatcher:
            name = "failing"

            def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
                raise ConnectionError("downstream unavailable")

        engine: Resequencer[str] = Resequencer(dispatcher=FailingDispatcher())

        with pytest.raises(ConnectionError):
            engine.submit(make_item("A", 0, 3))

        assert engine.watermark("A") == 0
        assert engine.submit(make_item("A", 0, 3)).rejection is RejectionReason.STALE

    def test_dispatch_lock_released_after_failure(self, make_item: Any) -> None:
        calls: list[list[int]] = []

        class FlakyDispatcher:
            name = "flaky"

            def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
                calls.append([item.position for item in items])
                if len(calls) == 1:
                    raise ConnectionError("first call fails")

        engine: Resequencer[str] = Resequencer(dispatcher=FlakyDispatcher())
        with pytest.raises(ConnectionError):
            engine.submit(make_item("A", 0, 3))

        engine.submit(make_item("A", 1, 3))

        assert calls == [[0], [1]]


class TestKeyIsolation:
    def test_interleaved_keys_do_not_mix(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(dispatcher=recording_dispatcher)

        for key, position in [("A", 1), ("B", 0), ("A", 0), ("B", 2), ("B", 1), ("A", 2)]:
            engine.submit(make_item(key, position, 3))

        assert recording_dispatcher.positions_for("A") == [0, 1, 2]
        assert recording_dispatcher.positions_for("B") == [0, 1, 2]
        for _, items in recording_dispatcher.calls:
            assert len({item.correlation_key for item in items}) == 1

    def test_non_string_keys(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()

        engine.submit(make_item(("order", 1), 1, 2))
        result = engine.submit(make_item(("order", 1), 0, 2))

        assert result.positions == [0, 1]


class TestRetire:
    def test_retire_absent_key_is_noop(self) -> None:
        engine: Resequencer[str] = Resequencer()

        assert engine.retire("missing") is None

    def test_retire_returns_leftover_and_removes_group(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 0, 5))
        engine.submit(make_item("A", 3, 5))
        engine.submit(make_item("A", 2, 5))

        retired = engine.retire("A")

        assert retired is not None
        assert retired.cause is RetirementCause.EVICTED
        assert [item.position for item in retired.leftover] == [2, 3]
        assert retired.watermark == 0
        assert engine.group_count == 0

    def test_retire_twice_is_idempotent(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 1, 3))

        assert engine.retire("A") is not None
        assert engine.retire("A") is None

    def test_retire_with_idle_for_skips_active_group(self, make_item: Any, mock_clock: MockClock) -> None:
        engine: Resequencer[str] = Resequencer(clock=mock_clock)
        engine.submit(make_item("A", 1, 3))
        mock_clock.advance(5.0)

        assert engine.retire("A", idle_for=10.0) is None
        assert engine.group_count == 1

        mock_clock.advance(5.0)
        assert engine.retire("A", idle_for=10.0) is not None

    def test_retire_release_leftover_dispatches_in_order(self, make_item: Any, recording_dispatcher: Any) -> None:
        engine: Resequencer[str] = Resequencer(dispatcher=recording_dispatcher, default_destination="out")
        for position in (4, 2, 3):
            engine.submit(make_item("A", position, 6))

        retired = engine.retire("A", release_leftover=True)

        assert retired is not None
        assert recording_dispatcher.calls == [("out", retired.leftover)]
        assert recording_dispatcher.runs == [[2, 3, 4]]

    def test_submission_after_eviction_starts_fresh(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 1, 3))
        engine.retire("A")

        result = engine.submit(make_item("A", 0, 3))

        assert result.positions == [0]
        assert engine.pending_count("A") == 0

    def test_flush_retires_all_groups(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 1, 3))
        engine.submit(make_item("B", 2, 3))

        flushed = engine.flush()

        assert {group.correlation_key for group in flushed} == {"A", "B"}
        assert all(group.cause is RetirementCause.FLUSHED for group in flushed)
        assert engine.group_count == 0


class TestQueriesAndMetrics:
    def test_group_state_open_until_retired(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 1, 2))

        assert engine.group_state("A") is GroupState.OPEN

        engine.submit(make_item("A", 0, 2))
        assert engine.group_state("A") is None

    def test_idle_keys(self, make_item: Any, mock_clock: MockClock) -> None:
        engine: Resequencer[str] = Resequencer(clock=mock_clock)
        engine.submit(make_item("A", 1, 3))
        mock_clock.advance(10.0)
        engine.submit(make_item("B", 1, 3))

        assert engine.idle_keys(10.0) == ["A"]
        assert sorted(engine.idle_keys(0.0)) == ["A", "B"]

    def test_rejections_do_not_refresh_activity(self, make_item: Any, mock_clock: MockClock) -> None:
        engine: Resequencer[str] = Resequencer(clock=mock_clock)
        engine.submit(make_item("A", 1, 3))
        mock_clock.advance(10.0)

        engine.submit(make_item("A", 1, 3))  # duplicate

        assert engine.idle_keys(10.0) == ["A"]

    def test_metrics_snapshot(self, make_item: Any) -> None:
        engine: Resequencer[str] = Resequencer()
        engine.submit(make_item("A", 1, 3))
        engine.submit(make_item("A", 1, 3))
        engine.submit(make_item("A", 0, 3))
        engine.submit(make_item("A", 0, 3))
        engine.submit(make_item("A", 2, 3))

        metrics = engine.get_metrics()

        assert metrics["policy"] == "partial"
        assert metrics["submitted"] == 5
        assert metrics["accepted"] == 3
        assert metrics["rejected"] == {"stale": 1, "duplicate": 1, "out_of_range": 0}
        assert metrics["released_items"] == 3
        assert metrics["released_runs"] == 2
        assert metrics["retired"]["released"] == 1
        assert metrics["open_groups"] == 0
        assert metrics["buffered_items"] == 0

    def test_pending_count_for_unknown_key(self) -> None:
        engine: Resequencer[str] = Resequencer()

        assert engine.pending_count("nope") == 0
        assert engine.watermark("nope") is None
