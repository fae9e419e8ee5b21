from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime


class ClockPort(ABC):
    """Port for time-related operations.

    Wall time stamps persisted rows; the monotonic clock and sleep drive the
    script wait deadline. Tests inject a fake that advances on sleep().
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return current UTC datetime."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Seconds from an arbitrary, never-decreasing origin."""
        ...

    @abstractmethod
    def sleep(self, seconds: float) -> None: ...
