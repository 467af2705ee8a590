import logging
import random
import time
from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, request
from opentelemetry import metrics, trace
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.trace import Status, StatusCode

from .simulators import ConnectionTracker, FanSpeedFeed, MemorySampler, sample_api_latency_ms
from .telemetry import Instruments

logger = logging.getLogger(__name__)

EXTERNAL_API_URL = "https://api.example.com/data"


class Demo:
    """Per-app state shared by the handlers."""

    def __init__(self, tracer, instruments, fan_feed, rng=random, sleep=time.sleep):
        self.tracer = tracer
        self.instruments = instruments
        self.fan_feed = fan_feed
        self.rng = rng
        self.sleep = sleep

    @property
    def connections(self):
        return self.instruments.connections

    @property
    def memory(self):
        return self.instruments.memory


def create_app(
    service_name="demo-app",
    tracer_provider=None,
    meter_provider=None,
    connections=None,
    fan_feed=None,
    memory=None,
    rng=random,
    sleep=time.sleep,
):
    """
    Build the Flask app.

    Providers default to the globally registered ones; tests pass in-memory
    providers instead. The fan feed is not started here.
    """
    app = Flask(__name__)
    FlaskInstrumentor().instrument_app(
        app, tracer_provider=tracer_provider, meter_provider=meter_provider
    )

    tracer = trace.get_tracer(service_name, tracer_provider=tracer_provider)
    meter = metrics.get_meter(service_name, meter_provider=meter_provider)
    instruments = Instruments(
        meter,
        connections=connections or ConnectionTracker(),
        memory=memory or MemorySampler(rng),
    )
    app.extensions["demo"] = Demo(
        tracer,
        instruments,
        fan_feed=fan_feed or FanSpeedFeed(rng=rng, sleep=sleep),
        rng=rng,
        sleep=sleep,
    )
    app.register_blueprint(api)
    return app


def demo() -> Demo:
    return current_app.extensions["demo"]


api = Blueprint("api", __name__)

# ----------------------------------------------------
# Plain endpoints


@api.get("/healthz")
def healthz():
    return jsonify(status="ok")


@api.get("/")
def root():
    return "Welcome to the Flask HTTP server behind Nginx!\n"


@api.get("/users/<user_id>")
def get_user(user_id):
    created_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return jsonify(id=user_id, profile={"nickname": "guest", "created_at": created_at})


# ----------------------------------------------------
# Spans, attributes and events


@api.get("/hello")
def hello():
    d = demo()
    # Attributes can be set when the span starts...
    with d.tracer.start_as_current_span("getHello", attributes={"hello": "world"}) as span:
        # ...or added afterwards
        span.set_attributes({"isTrue": True, "stringAttr": "hi!"})
        span.set_attribute("myCoolAttribute", "a value")
        span.add_event("Hello with AddEvent")

        d.instruments.request_counter.add(1, {"endpoint": "/hello", "method": request.method})
        logger.info("Incremented request counter for /hello endpoint")

        child_hello(d.tracer)

        name = request.args.get("name") or "World"
        return jsonify(message="Hello, %s!" % name)


def child_hello(tracer):
    with tracer.start_as_current_span("childHello") as span:
        span.add_event("Hello with AddEvent from child", {"childEvent": "hello child"})
        logger.info("This is a child function")


@api.get("/error")
def error():
    with demo().tracer.start_as_current_span("getError") as span:
        # ERROR status marks the whole trace as failed; the recorded exception
        # only adds an event, so both are set.
        span.set_status(Status(StatusCode.ERROR, "Internal Server Error"))
        span.record_exception(Exception("err: Internal Server Error"))

        body = {
            "error": "Internal Server Error",
            "message": "This is a sample 500 error endpoint for testing OpenTelemetry",
        }
        return jsonify(body), 500


# ----------------------------------------------------
# Synchronous instruments


@api.post("/items/add")
def add_item():
    d = demo()
    with d.tracer.start_as_current_span("addItem"):
        d.instruments.items_counter.add(1)
        logger.info("Incremented items counter")
        return jsonify(message="Item added successfully", action="increment")


@api.post("/items/remove")
def remove_item():
    d = demo()
    with d.tracer.start_as_current_span("removeItem"):
        d.instruments.items_counter.add(-1)
        logger.info("Decremented items counter")
        return jsonify(message="Item removed successfully", action="decrement")


@api.get("/cpu/fanspeed")
def fan_speed():
    d = demo()
    with d.tracer.start_as_current_span("getCPUFanSpeed"):
        speed = d.fan_feed.latest()
        d.instruments.fan_speed.set(speed)
        logger.info("Recorded fan speed: %d rpm", speed)
        return jsonify(fanSpeed=speed, unit="rpm", message="Current CPU fan speed")


@api.get("/external-api")
def external_api():
    d = demo()
    with d.tracer.start_as_current_span("callExternalAPI") as span:
        start = time.monotonic()
        latency_ms = sample_api_latency_ms(d.rng)

        span.set_attributes(
            {
                "api.endpoint": EXTERNAL_API_URL,
                "api.method": "GET",
                "api.latency_ms": latency_ms,
            }
        )
        span.add_event("External API call started", {"api.url": EXTERNAL_API_URL})
        d.sleep(latency_ms / 1000.0)
        span.add_event("External API call completed", {"api.status_code": 200})

        duration = time.monotonic() - start
        d.instruments.task_duration.record(
            duration, {"api.endpoint": "external_api", "api.status_code": 200}
        )
        logger.info("Recorded API call duration: %.3fs", duration)

        return jsonify(
            message="External API call completed successfully",
            duration_ms=latency_ms,
            status="success",
        )


# ----------------------------------------------------
# Values behind the observable instruments


@api.get("/metrics/memory")
def memory_metrics():
    d = demo()
    with d.tracer.start_as_current_span("getMemoryMetrics"):
        return jsonify(
            current_memory_bytes=d.memory.current,
            unit="bytes",
            message="Current memory usage tracked by Observable Counter",
        )


@api.get("/metrics/connections")
def connection_metrics():
    d = demo()
    with d.tracer.start_as_current_span("getConnectionMetrics"):
        return jsonify(
            active_connections=d.connections.value,
            unit="connections",
            message="Active connections tracked by Observable UpDownCounter",
        )


@api.post("/connection/open")
def open_connection():
    d = demo()
    with d.tracer.start_as_current_span("simulateConnect"):
        connections = d.connections.open()
        logger.info("Connection opened, total: %d", connections)
        return jsonify(action="connect", active_connections=connections, message="Connection opened")


@api.post("/connection/close")
def close_connection():
    d = demo()
    with d.tracer.start_as_current_span("simulateDisconnect"):
        connections = d.connections.close()
        logger.info("Connection closed, total: %d", connections)
        return jsonify(
            action="disconnect", active_connections=connections, message="Connection closed"
        )
