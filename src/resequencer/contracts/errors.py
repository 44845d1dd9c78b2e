"""Exceptions raised at the edges of the resequencer.

The admission and release path never raises: duplicates, stale and
out-of-range items are rejections reported through ReleaseResult.
These exceptions cover configuration, plugin lookup and delivery.
"""


class ResequencerError(Exception):
    """Base class for resequencer errors."""


class DispatcherNotFoundError(ResequencerError):
    """Raised when a dispatcher plugin name is not registered."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(f"Unknown dispatcher '{name}'. Available dispatchers: {sorted(available)}")


class UnknownDestinationError(ResequencerError):
    """Raised by a dispatcher that cannot route a run to its destination.

    Attributes:
        destination: The destination that could not be resolved
    """

    def __init__(self, destination: str | None) -> None:
        self.destination = destination
        super().__init__(f"No channel registered for destination {destination!r}")


class DispatcherConfigError(ResequencerError):
    """Raised when dispatcher options fail validation."""
