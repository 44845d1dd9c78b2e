# src/resequencer/dispatch/jsonl.py
"""JSONL dispatcher: appends released items to one file per destination.

Each item becomes one JSON object per line:
    {"correlation_key": ..., "position": ..., "total": ..., "payload": ...}

Payloads and correlation keys must be JSON-serialisable.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from pathlib import Path
from threading import Lock
from typing import IO, Any, Literal

from pydantic import Field, field_validator

from resequencer.contracts import SequencedItem
from resequencer.dispatch.base import BaseDispatcher, DispatcherConfig

DEFAULT_STEM = "default"


class JSONLDispatcherConfig(DispatcherConfig):
    """Options for the JSONL dispatcher.

    Attributes:
        directory: Directory holding ``<destination>.jsonl`` files
        mode: "write" truncates files on first use, "append" keeps them
        encoding: File encoding
    """

    directory: str
    mode: Literal["write", "append"] = "append"
    encoding: str = "utf-8"
    fsync: bool = Field(default=False, description="fsync after every run")

    @field_validator("directory")
    @classmethod
    def validate_directory_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("directory cannot be empty")
        return v


class JSONLDispatcher(BaseDispatcher):
    """Writes each run to ``<directory>/<destination>.jsonl``.

    File handles stay open until close(). One lock covers all files so a
    run is written contiguously.
    """

    name = "jsonl"
    config_model = JSONLDispatcherConfig

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        assert isinstance(self.config, JSONLDispatcherConfig)
        self._directory = Path(self.config.directory).expanduser()
        self._directory.mkdir(parents=True, exist_ok=True)
        self._file_mode = "a" if self.config.mode == "append" else "w"
        self._encoding = self.config.encoding
        self._fsync = self.config.fsync
        self._files: dict[str, IO[str]] = {}
        self._lock = Lock()

    def path_for(self, destination: str | None) -> Path:
        """File that receives runs for a destination."""
        stem = destination if destination else DEFAULT_STEM
        if Path(stem).name != stem:
            raise ValueError(f"Destination {destination!r} is not a plain file name")
        return self._directory / f"{stem}.jsonl"

    def dispatch(self, items: Sequence[SequencedItem[Any]], destination: str | None) -> None:
        path = self.path_for(destination)
        lines = [
            json.dumps(
                {
                    "correlation_key": item.correlation_key,
                    "position": item.position,
                    "total": item.total,
                    "payload": item.payload,
                }
            )
            for item in items
        ]
        with self._lock:
            handle = self._files.get(str(path))
            if handle is None:
                handle = open(path, self._file_mode, encoding=self._encoding)  # noqa: SIM115
                self._files[str(path)] = handle
            for line in lines:
                handle.write(line)
                handle.write("\n")
            handle.flush()
            if self._fsync:
                os.fsync(handle.fileno())

    def close(self) -> None:
        with self._lock:
            for handle in self._files.values():
                handle.close()
            self._files.clear()
