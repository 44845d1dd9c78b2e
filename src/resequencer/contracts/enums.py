"""Status codes, policies and reasons used across subsystem boundaries."""

from enum import StrEnum


class ReleasePolicy(StrEnum):
    """When buffered items may be handed downstream.

    PARTIAL releases each contiguous run as soon as it closes a gap.
    COMPLETE_ONLY withholds everything until the whole sequence is buffered.
    """

    PARTIAL = "partial"
    COMPLETE_ONLY = "complete_only"


class RejectionReason(StrEnum):
    """Why an item was refused admission to its group.

    Rejections are expected traffic (retransmissions, late arrivals),
    not errors.
    """

    STALE = "stale"  # position at or below the watermark
    DUPLICATE = "duplicate"  # position already buffered
    OUT_OF_RANGE = "out_of_range"  # position outside the advertised sequence


class GroupState(StrEnum):
    """Lifecycle state of a group buffer."""

    OPEN = "open"
    COMPLETE = "complete"
    RETIRED = "retired"


class RetirementCause(StrEnum):
    """Why a group buffer left the engine."""

    RELEASED = "released"  # terminal position was released
    EVICTED = "evicted"  # lifecycle owner retired an idle group
    FLUSHED = "flushed"  # engine shutdown


class TimeoutAction(StrEnum):
    """What the reaper does with items still buffered in a timed-out group."""

    DISCARD = "discard"
    RELEASE_PARTIAL = "release_partial"
