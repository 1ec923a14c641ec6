"""OpenTelemetry telemetry sink for acp-traces.

Builds the tracer and meter providers that spans and histogram values are
exported through. Unlike a typical service, the proxy never registers them
as the global providers: init_telemetry() returns a Telemetry handle that the
proxy runner owns and hands to the correlator.

Usage:
    from acp_traces.core.telemetry import init_telemetry

    telemetry = init_telemetry(config.telemetry)
    correlator = Correlator(telemetry, record_content=config.telemetry.record_content)
    ...
    telemetry.force_flush()
    telemetry.shutdown()

Exporter settings come from TelemetryConfig; the standard OTEL_* env vars
(OTEL_EXPORTER_OTLP_ENDPOINT, OTEL_EXPORTER_OTLP_PROTOCOL, OTEL_SERVICE_NAME)
take precedence when set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from opentelemetry.metrics import Meter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace import Tracer

if TYPE_CHECKING:
    from acp_traces.config.models import TelemetryConfig

logger = structlog.get_logger()

INSTRUMENTATION_NAME = "acp-traces"


@dataclass
class Telemetry:
    """Handle over the tracer and meter providers of one proxy run."""

    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    tracer: Tracer = field(init=False)
    meter: Meter = field(init=False)
    _shut_down: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.tracer = self.tracer_provider.get_tracer(INSTRUMENTATION_NAME, _get_version())
        self.meter = self.meter_provider.get_meter(INSTRUMENTATION_NAME, _get_version())

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Export every finished span and pending metric now.

        Returns False if either flush failed or timed out.
        """
        try:
            spans_flushed = self.tracer_provider.force_flush(timeout_millis)
        except Exception as e:
            logger.warning("tracer flush error", error=str(e))
            spans_flushed = False
        else:
            if not spans_flushed:
                logger.warning("tracer flush timed out", timeout_ms=timeout_millis)

        try:
            metrics_flushed = self.meter_provider.force_flush(timeout_millis)
        except Exception as e:
            logger.warning("meter flush error", error=str(e))
            metrics_flushed = False

        return bool(spans_flushed and metrics_flushed)

    def shutdown(self) -> None:
        """Flush and shut down both providers. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True

        try:
            self.tracer_provider.shutdown()
            logger.debug("tracer provider shut down")
        except Exception as e:
            logger.warning("tracer shutdown error", error=str(e))

        try:
            self.meter_provider.shutdown()
            logger.debug("meter provider shut down")
        except Exception as e:
            logger.warning("meter shutdown error", error=str(e))


def _get_otlp_endpoint(config: TelemetryConfig) -> str:
    """Get OTLP endpoint from env var or config."""
    # Standard OTEL env var takes precedence
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        return endpoint
    return config.otlp_endpoint


def _get_otlp_protocol(config: TelemetryConfig) -> str:
    """Get OTLP protocol ("grpc" or "http") from env var or config."""
    protocol = os.environ.get("OTEL_EXPORTER_OTLP_PROTOCOL", "").strip().lower()
    if protocol == "grpc":
        return "grpc"
    if protocol in ("http", "http/protobuf"):
        return "http"
    if protocol:
        logger.warning("unsupported OTLP protocol, using config", protocol=protocol)
    return config.otlp_protocol


def _get_service_name(config: TelemetryConfig) -> str:
    """Get service name from env var or config."""
    service_name = os.environ.get("OTEL_SERVICE_NAME")
    if service_name:
        return service_name
    return config.service_name


def _get_version() -> str:
    """Get acp-traces version for resource attributes."""
    try:
        from importlib.metadata import version

        return version("acp-traces")
    except Exception:
        return "unknown"


def _is_insecure_endpoint(endpoint: str) -> bool:
    """Determine if endpoint should use insecure connection."""
    return endpoint.startswith("http://")


def _http_signal_endpoint(endpoint: str, signal: str) -> str:
    """Append the per-signal path the OTLP/HTTP exporters expect on a base URL."""
    base = endpoint.rstrip("/")
    suffix = f"/v1/{signal}"
    if base.endswith(suffix):
        return base
    return base + suffix


def _build_exporters(endpoint: str, protocol: str) -> tuple[SpanExporter, object]:
    """Create span and metric exporters for the chosen OTLP transport."""
    if protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
            OTLPMetricExporter as HttpMetricExporter,
        )
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HttpSpanExporter,
        )

        return (
            HttpSpanExporter(endpoint=_http_signal_endpoint(endpoint, "traces")),
            HttpMetricExporter(endpoint=_http_signal_endpoint(endpoint, "metrics")),
        )

    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    insecure = _is_insecure_endpoint(endpoint)
    return (
        OTLPSpanExporter(endpoint=endpoint, insecure=insecure),
        OTLPMetricExporter(endpoint=endpoint, insecure=insecure),
    )


def init_telemetry(config: TelemetryConfig) -> Telemetry:
    """Build the tracer and meter providers for one proxy run.

    Args:
        config: TelemetryConfig. When config.enabled is False the providers
            are built without exporters, so spans are recorded but dropped.

    Returns:
        Telemetry handle owning both providers.
    """
    resource = Resource.create(
        {
            "service.name": _get_service_name(config),
            "service.version": _get_version(),
        }
    )

    if not config.enabled:
        logger.info("telemetry export disabled")
        return Telemetry(
            tracer_provider=TracerProvider(resource=resource),
            meter_provider=MeterProvider(resource=resource),
        )

    endpoint = _get_otlp_endpoint(config)
    protocol = _get_otlp_protocol(config)
    span_exporter, metric_exporter = _build_exporters(endpoint, protocol)

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    metric_reader: MetricReader = PeriodicExportingMetricReader(
        metric_exporter,  # type: ignore[arg-type]
        export_interval_millis=config.metric_export_interval_ms,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])

    logger.info(
        "telemetry initialized",
        endpoint=endpoint,
        protocol=protocol,
        service=_get_service_name(config),
    )
    return Telemetry(tracer_provider=tracer_provider, meter_provider=meter_provider)
