import random

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otel_demo_app.app import create_app
from otel_demo_app.simulators import ConnectionTracker, FanSpeedFeed


class Sleeper:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def spans():
    return InMemorySpanExporter()


@pytest.fixture
def reader():
    return InMemoryMetricReader()


@pytest.fixture
def sleeper():
    return Sleeper()


@pytest.fixture
def tracker():
    return ConnectionTracker()


@pytest.fixture
def fan_feed():
    # Never started, so every read falls back to the reader
    return FanSpeedFeed(reader=lambda: 1234)


@pytest.fixture
def app(spans, reader, sleeper, tracker, fan_feed):
    tracer_provider = TracerProvider()
    tracer_provider.add_span_processor(SimpleSpanProcessor(spans))
    meter_provider = MeterProvider(metric_readers=[reader])
    app = create_app(
        "test-app",
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        connections=tracker,
        fan_feed=fan_feed,
        rng=random.Random(7),
        sleep=sleeper,
    )
    app.testing = True
    yield app
    meter_provider.shutdown()
    tracer_provider.shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


def finished(spans, name):
    return [s for s in spans.get_finished_spans() if s.name == name]


def data_points(reader, name):
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics if data else []:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    return list(metric.data.data_points)
    return []
