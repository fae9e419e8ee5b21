"""Telemetry port for the answering turn.

Metric names emitted by ``AnswerQuestion``:

- ``chat.turns.total`` (counter, ``status`` tag: ``ok`` or the error class)
- ``chat.turn.latency_ms`` (histogram)
- ``chat.skill.short_circuit`` (counter)
- ``chat.evidence.selected`` and ``chat.script.insights`` (histograms of counts)
"""

from typing import Any, Protocol


class TelemetryPort(Protocol):
    """Counters and histograms keyed by metric name."""

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        """Increment a counter metric."""
        ...

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        """Record one histogram sample."""
        ...


class NoopTelemetry:
    """Used when telemetry is disabled or not injected."""

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        pass

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        pass
