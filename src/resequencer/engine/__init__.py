"""Reassembly engine: group buffers, the resequencer and its reaper.

Example:
    from resequencer.contracts import ReleasePolicy, SequencedItem
    from resequencer.engine import Resequencer

    engine = Resequencer[str](policy=ReleasePolicy.COMPLETE_ONLY)
    for item in incoming:
        result = engine.submit(item)
        if result.released:
            deliver(result.destination, result.items)
"""

from resequencer.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock, idle_age, is_idle
from resequencer.engine.group_buffer import INITIAL_WATERMARK, GroupBuffer
from resequencer.engine.lifecycle import GroupReaper
from resequencer.engine.resequencer import Resequencer

__all__ = [
    "DEFAULT_CLOCK",
    "INITIAL_WATERMARK",
    "Clock",
    "GroupBuffer",
    "GroupReaper",
    "MockClock",
    "Resequencer",
    "SystemClock",
    "idle_age",
    "is_idle",
]
