"""
OpenTelemetry Exporter for clusterforge

Architectural Intent:
- Implements TelemetryPort on top of the OpenTelemetry SDK
- Traces every pipeline step (forward and compensation) as a span and
  exports step durations and lifecycle outcomes as metrics over OTLP
- Telemetry is off until an endpoint is configured; every call is then a
  cheap no-op apart from the local metrics buffer

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
- Validation in __post_init__ prevents accidental plaintext export
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Any
from urllib.parse import urlparse
import logging
from datetime import datetime, UTC

logger = logging.getLogger(__name__)

STEP_DURATION = "clusterforge.step.duration_ms"
LIFECYCLE_OPERATION = "clusterforge.lifecycle.operation"


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "clusterforge"
    environment: str = "development"
    enable_traces: bool = True
    enable_metrics: bool = True
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
            if parsed.scheme == "http" and not is_localhost and not self.insecure:
                raise ValueError(
                    f"Non-localhost HTTP endpoint '{self.endpoint}' requires "
                    "insecure=True or use https://. "
                    "Set insecure=True to explicitly allow plaintext export."
                )


class OTELExporter:
    """
    OpenTelemetry exporter for the action pipeline and lifecycle controllers.

    Supports:
    - OTLP gRPC export of traces and metrics
    - One span per pipeline step phase, marked as error on failure
    - Local buffering of recorded metrics for inspection
    """

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._metrics_buffer: list[dict[str, Any]] = []
        self._meter: Any = None
        self._histograms: dict[str, Any] = {}

    def initialize(self) -> None:
        """Initialize OpenTelemetry SDK and exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )
            from opentelemetry import metrics
            from opentelemetry.sdk.metrics import MeterProvider
            from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
            from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
                OTLPMetricExporter,
            )

            resource = Resource(
                attributes={
                    SERVICE_NAME: self.config.service_name,
                    "environment": self.config.environment,
                }
            )

            if self.config.enable_traces:
                trace.set_tracer_provider(TracerProvider(resource=resource))
                span_processor = BatchSpanProcessor(
                    OTLPSpanExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
                )
                trace.get_tracer_provider().add_span_processor(span_processor)

            if self.config.enable_metrics:
                metric_reader = PeriodicExportingMetricReader(
                    OTLPMetricExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
                )
                provider = MeterProvider(
                    resource=resource, metric_readers=[metric_reader]
                )
                metrics.set_meter_provider(provider)
                self._meter = metrics.get_meter(__name__)

            self._initialized = True
            logger.info("OTEL export enabled: %s", self.config.endpoint)

        except ImportError:
            logger.warning("OpenTelemetry SDK not installed, telemetry disabled")
            self._initialized = False
        except Exception as e:
            logger.error("Failed to initialize OTEL: %s", e)
            self._initialized = False

    def _get_histogram(self, name: str, unit: str = "") -> Any:
        """Get or create a histogram for a metric name."""
        if name not in self._histograms and self._meter:
            self._histograms[name] = self._meter.create_histogram(name, unit=unit)
        return self._histograms.get(name)

    def record_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        attributes: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a metric value."""
        self._metrics_buffer.append(
            {
                "name": name,
                "value": value,
                "unit": unit,
                "attributes": attributes or {},
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        if self._initialized:
            histogram = self._get_histogram(name, unit)
            if histogram:
                histogram.record(value, attributes=attributes or {})

    def record_step(
        self, step_name: str, phase: str, outcome: str, duration_ms: float
    ) -> None:
        """Record how long one pipeline step phase took and how it ended."""
        self.record_metric(
            STEP_DURATION,
            duration_ms,
            unit="ms",
            attributes={"step": step_name, "phase": phase, "outcome": outcome},
        )

    def record_operation(self, cloud: str, operation: str, succeeded: bool) -> None:
        """Record the outcome of a lifecycle operation."""
        self.record_metric(
            LIFECYCLE_OPERATION,
            1.0,
            attributes={
                "cloud": cloud,
                "operation": operation,
                "success": str(succeeded),
            },
        )

    def start_span(
        self,
        name: str,
        attributes: Optional[dict[str, str]] = None,
    ) -> Optional[Any]:
        """Start a tracing span."""
        if not self._initialized or not self.config.enable_traces:
            return None

        from opentelemetry import trace

        tracer = trace.get_tracer(__name__)
        return tracer.start_span(name, attributes=attributes or {})

    def end_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        """End a tracing span, marking it failed when an error is given."""
        if span is None:
            return
        if error is not None:
            from opentelemetry.trace import Status, StatusCode

            span.record_exception(error)
            span.set_status(Status(StatusCode.ERROR, str(error)))
        span.end()

    def flush(self) -> None:
        """Drop the local metrics buffer once the SDK has taken over export."""
        if not self._initialized:
            return

        # PeriodicExportingMetricReader exports on its own schedule
        flushed = len(self._metrics_buffer)
        self._metrics_buffer.clear()
        if flushed:
            logger.debug("Flushed %d buffered metrics", flushed)


def create_exporter(
    endpoint: Optional[str] = None,
    service_name: str = "clusterforge",
    insecure: bool = False,
) -> OTELExporter:
    """Factory function to create and initialize an OTEL exporter."""
    config = OTELConfig(
        endpoint=endpoint or "",
        service_name=service_name,
        insecure=insecure,
    )
    exporter = OTELExporter(config)
    exporter.initialize()
    return exporter
