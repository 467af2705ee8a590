"""
OpenTelemetry wiring: providers, exporters and the demo's metric instruments.
"""
from __future__ import annotations

import logging
from typing import Iterable

from opentelemetry import metrics, trace
from opentelemetry.metrics import CallbackOptions, Observation
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .config import Settings
from .simulators import MIB, ConnectionTracker, MemorySampler

logger = logging.getLogger(__name__)


def signal_url(endpoint: str, signal: str) -> str:
    """
    Full OTLP/HTTP URL for one signal.

    "collector:4318" becomes "http://collector:4318/v1/traces"; an endpoint
    that already carries a path is used as given.
    """
    if "://" not in endpoint:
        endpoint = "http://" + endpoint
    scheme, _, rest = endpoint.partition("://")
    if "/" in rest.rstrip("/"):
        return endpoint
    return "%s://%s/v1/%s" % (scheme, rest.rstrip("/"), signal)


def grpc_target(endpoint: str) -> str:
    return endpoint.split("://", 1)[-1].rstrip("/")


def create_span_exporter(settings: Settings) -> SpanExporter:
    logger.info("Initializing OpenTelemetry with OTLP endpoint: %s", settings.otlp_endpoint)
    if settings.otlp_protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(endpoint=grpc_target(settings.otlp_endpoint), insecure=True)

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

    return OTLPSpanExporter(endpoint=signal_url(settings.otlp_endpoint, "traces"))


def create_metric_exporter(settings: Settings) -> MetricExporter:
    logger.info("Initializing OpenTelemetry Metrics with OTLP endpoint: %s", settings.otlp_endpoint)
    if settings.otlp_protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        return OTLPMetricExporter(endpoint=grpc_target(settings.otlp_endpoint), insecure=True)

    from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter

    return OTLPMetricExporter(endpoint=signal_url(settings.otlp_endpoint, "metrics"))


def create_resource(service_name: str) -> Resource:
    return Resource.create({"service.name": service_name})


def create_tracer_provider(exporter: SpanExporter, resource: Resource) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def create_meter_provider(exporter: MetricExporter, resource: Resource, interval: float) -> MeterProvider:
    # Short export interval so the demo shows data quickly (SDK default is 60s)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=interval * 1000)
    return MeterProvider(resource=resource, metric_readers=[reader])


class Telemetry:
    """Globally registered providers, shut down together on exit."""

    def __init__(self, tracer_provider: TracerProvider, meter_provider: MeterProvider):
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider

    @classmethod
    def setup(cls, settings: Settings) -> "Telemetry":
        resource = create_resource(settings.service_name)
        tracer_provider = create_tracer_provider(create_span_exporter(settings), resource)
        meter_provider = create_meter_provider(
            create_metric_exporter(settings), resource, settings.metric_export_interval
        )

        trace.set_tracer_provider(tracer_provider)
        # W3C traceparent from nginx parents our server spans
        set_global_textmap(TraceContextTextMapPropagator())
        metrics.set_meter_provider(meter_provider)
        return cls(tracer_provider, meter_provider)

    def shutdown(self) -> None:
        self.tracer_provider.shutdown()
        logger.info("Shutting down meter provider...")
        try:
            self.meter_provider.shutdown()
        except Exception:
            logger.exception("failed to shutdown meter provider")
            raise
        logger.info("Meter provider shutdown complete")


class Instruments:
    """The demo's metric instruments, all created from one meter."""

    def __init__(self, meter: metrics.Meter, connections: ConnectionTracker, memory: MemorySampler):
        self.connections = connections
        self.memory = memory

        self.request_counter = meter.create_counter(
            "api.counter",
            unit="{call}",
            description="Number of API calls",
        )
        logger.info("Request counter created successfully")

        self.items_counter = meter.create_up_down_counter(
            "items.counter",
            unit="{item}",
            description="Number of items.",
        )
        self.fan_speed = meter.create_gauge(
            "cpu.fan.speed",
            unit="{rpm}",
            description="CPU Fan Speed",
        )
        self.task_duration = meter.create_histogram(
            "task.duration",
            unit="s",
            description="The duration of task execution.",
        )

        meter.create_observable_counter(
            "memory.usage",
            callbacks=[self._observe_memory],
            unit="By",
            description="Current memory usage in bytes",
        )
        logger.info("Memory observable counter created successfully")

        meter.create_observable_up_down_counter(
            "active.connections",
            callbacks=[self._observe_connections],
            unit="{connection}",
            description="Number of active connections",
        )
        logger.info("Connection observable updown counter created successfully")

    def _observe_memory(self, options: CallbackOptions) -> Iterable[Observation]:
        usage = self.memory.sample()
        logger.info("Observable Counter reported memory usage: %.2f MB", usage / MIB)
        yield Observation(usage, {"memory.type": "heap"})

    def _observe_connections(self, options: CallbackOptions) -> Iterable[Observation]:
        connections = self.connections.value
        logger.info("Observable UpDownCounter reported active connections: %d", connections)
        yield Observation(connections, {"connection.type": "http"})
