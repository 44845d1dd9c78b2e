"""Result types returned by the resequencer engine."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass

from resequencer.contracts.enums import RejectionReason, RetirementCause
from resequencer.contracts.items import SequencedItem


@dataclass(frozen=True, slots=True)
class ReleaseResult[T]:
    """Outcome of one submission.

    Attributes:
        correlation_key: Key of the submitted item
        items: Released run in ascending position order (may be empty)
        destination: Destination resolved from the first released item,
            None when nothing was released
        retired: True if this release reached the terminal position and
            the group was retired
        rejection: Set when the item was refused admission
    """

    correlation_key: Hashable
    items: tuple[SequencedItem[T], ...] = ()
    destination: str | None = None
    retired: bool = False
    rejection: RejectionReason | None = None

    @property
    def released(self) -> bool:
        """Whether a non-empty run was released."""
        return len(self.items) > 0

    @property
    def rejected(self) -> bool:
        """Whether the submitted item was refused."""
        return self.rejection is not None

    @property
    def positions(self) -> list[int]:
        """Positions of the released run, ascending."""
        return [item.position for item in self.items]


@dataclass(frozen=True, slots=True)
class RetiredGroup[T]:
    """Snapshot of a group at the moment it was removed from the engine.

    Attributes:
        correlation_key: Key of the retired group
        cause: Why the group was retired
        leftover: Items still buffered (never released), ascending
        watermark: Highest position released before retirement (-1 if none)
    """

    correlation_key: Hashable
    cause: RetirementCause
    leftover: tuple[SequencedItem[T], ...]
    watermark: int
