"""System clock adapter providing real UTC time.

This is the production implementation of ClockPort.
For tests, inject a fake clock whose sleep() only advances its counter.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from ...application.ports.clock_port import ClockPort


class SystemClock(ClockPort):
    """Production clock adapter returning real system time in UTC."""

    def now(self) -> datetime:  # pragma: no cover - trivial
        return datetime.now(UTC)

    def monotonic(self) -> float:  # pragma: no cover - trivial
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
