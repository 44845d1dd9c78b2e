"""Base classes for dispatcher plugins.

Dispatchers are discovered through the plugin manager and built from
the ``dispatcher.options`` mapping of the settings file. Each plugin
declares a pydantic config model; unknown options are rejected.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar, Self

from pydantic import BaseModel, ValidationError

from resequencer.contracts import DispatcherConfigError, SequencedItem


class DispatcherConfig(BaseModel):
    """Base class for typed dispatcher options."""

    model_config = {"extra": "forbid", "frozen": True}

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> Self:
        """Create config from dict with a clear error on validation failure.

        Raises:
            DispatcherConfigError: If the options are invalid
        """
        if not isinstance(config, dict):
            raise DispatcherConfigError(f"Invalid configuration for {cls.__name__}: options must be a dict, got {type(config).__name__}.")
        try:
            return cls.model_validate(config)
        except ValidationError as e:
            raise DispatcherConfigError(f"Invalid configuration for {cls.__name__}: {e}") from e


class BaseDispatcher(ABC):
    """Base class for dispatcher plugins.

    Subclasses set ``name`` and ``config_model`` and implement dispatch().
    """

    name: ClassVar[str]
    config_model: ClassVar[type[DispatcherConfig]] = DispatcherConfig

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = self.config_model.from_dict(config if config is not None else {})

    @abstractmethod
    def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
        """Deliver one released run, ascending, in a single call."""

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release resources held by the dispatcher."""
