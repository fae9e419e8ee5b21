"""OpenTelemetry metrics for the answering turn.

Instruments are created lazily by name: counters for ``incr`` (turn status,
skill short-circuits), histograms for ``observe`` (latency, evidence count,
script insight count).
"""

from dataclasses import dataclass
from importlib import import_module
from typing import Any

import structlog

from notebook_rag.application.ports.telemetry_port import TelemetryPort

logger = structlog.get_logger(__name__)


@dataclass
class OtelConfig:
    """Configuration for OpenTelemetry."""

    service_name: str = "notebook-rag"
    otlp_endpoint: str | None = None  # e.g., "http://localhost:4317"
    environment: str = "production"
    enable_console: bool = False  # Debug: print metrics to console


class OpenTelemetryAdapter(TelemetryPort):
    """Counters and histograms through the OpenTelemetry metrics SDK.

    Metric failures never reach the caller; without a usable SDK every call
    is a no-op.
    """

    def __init__(self, cfg: OtelConfig, meter: Any | None = None) -> None:
        self._cfg = cfg
        self._counters: dict[str, Any] = {}
        self._histograms: dict[str, Any] = {}
        self._meter = meter if meter is not None else self._init_meter()

    def _init_meter(self) -> Any | None:
        try:
            otel_metrics = import_module("opentelemetry.metrics")
            otel_sdk = import_module("opentelemetry.sdk.metrics")
            otel_export = import_module("opentelemetry.sdk.metrics.export")
            otel_resources = import_module("opentelemetry.sdk.resources")

            resource = otel_resources.Resource.create(
                {
                    "service.name": self._cfg.service_name,
                    "deployment.environment": self._cfg.environment,
                }
            )
            readers = []
            if self._cfg.otlp_endpoint:
                otel_otlp = import_module("opentelemetry.exporter.otlp.proto.grpc.metric_exporter")
                exporter = otel_otlp.OTLPMetricExporter(endpoint=self._cfg.otlp_endpoint)
                readers.append(otel_export.PeriodicExportingMetricReader(exporter))
            if self._cfg.enable_console:
                readers.append(
                    otel_export.PeriodicExportingMetricReader(otel_export.ConsoleMetricExporter())
                )

            provider = otel_sdk.MeterProvider(resource=resource, metric_readers=readers)
            otel_metrics.set_meter_provider(provider)
            return otel_metrics.get_meter(self._cfg.service_name)
        except Exception as ex:  # noqa: BLE001
            logger.warning("telemetry_disabled", error=str(ex))
            return None

    def incr(self, name: str, tags: dict[str, Any] | None = None) -> None:
        """e.g. incr("chat.turns.total", {"status": "ok"})"""
        if self._meter is None:
            return
        try:
            if name not in self._counters:
                self._counters[name] = self._meter.create_counter(
                    name=name, description=f"Counter for {name}"
                )
            self._counters[name].add(1, attributes=tags or {})
        except Exception as ex:  # noqa: BLE001
            logger.debug("metric_failed", metric=name, error=str(ex))

    def observe(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        """e.g. observe("chat.turn.latency_ms", 812.5)"""
        if self._meter is None:
            return
        try:
            if name not in self._histograms:
                self._histograms[name] = self._meter.create_histogram(
                    name=name, description=f"Histogram for {name}"
                )
            self._histograms[name].record(value, attributes=tags or {})
        except Exception as ex:  # noqa: BLE001
            logger.debug("metric_failed", metric=name, error=str(ex))
