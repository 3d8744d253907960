from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Wall-clock abstraction.

    Timer anchors outlive a single view, so the engine reads epoch seconds
    rather than a monotonic counter. Core logic depends on this interface
    instead of calling ``time`` directly.
    """

    def now(self) -> float:
        """Return epoch seconds."""


class SystemClock:
    """Production clock backed by time.time()."""

    def now(self) -> float:
        return time.time()
