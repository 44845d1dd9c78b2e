"""Shared types for the resequencer.

Leaf package: nothing here imports from engine, dispatch or plugins.
"""

from resequencer.contracts.enums import (
    GroupState,
    RejectionReason,
    ReleasePolicy,
    RetirementCause,
    TimeoutAction,
)
from resequencer.contracts.errors import (
    DispatcherConfigError,
    DispatcherNotFoundError,
    ResequencerError,
    UnknownDestinationError,
)
from resequencer.contracts.items import SequencedItem
from resequencer.contracts.protocols import DestinationResolver, Dispatcher
from resequencer.contracts.results import ReleaseResult, RetiredGroup

__all__ = [
    "DestinationResolver",
    "Dispatcher",
    "DispatcherConfigError",
    "DispatcherNotFoundError",
    "GroupState",
    "RejectionReason",
    "ReleasePolicy",
    "ReleaseResult",
    "ResequencerError",
    "RetiredGroup",
    "RetirementCause",
    "SequencedItem",
    "TimeoutAction",
    "UnknownDestinationError",
]
