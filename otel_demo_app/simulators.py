"""
Synthetic measurements standing in for real hardware and traffic.

Nothing here talks to the OS: fan speed, memory usage, connection counts and
upstream latency are all drawn from a random generator.
"""
from __future__ import annotations

import logging
import queue
import random
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_CONNECTIONS = 100
FAN_SPEED_READINGS = 5

MIB = 1024 * 1024


def read_fan_speed(rng: random.Random = random) -> int:
    # Replace with a real sensor read outside of the demo
    return 1500 + rng.randrange(1000)


def sample_api_latency_ms(rng: random.Random = random) -> int:
    roll = rng.random()
    if roll < 0.5:
        return 50 + rng.randrange(950)
    if roll < 0.8:
        return 1000 + rng.randrange(4000)
    return 5000 + rng.randrange(5000)


class MemorySampler:
    """Random heap size between 100 MiB and 500 MiB, remembered between samples."""

    def __init__(self, rng: random.Random = random):
        self._rng = rng
        self.current = 0.0

    def sample(self) -> float:
        self.current = float(100 * MIB + self._rng.randrange(400 * MIB))
        return self.current


class ConnectionTracker:
    """Lock-guarded connection count, always within [0, MAX_CONNECTIONS]."""

    def __init__(self, initial: int = 0):
        self._lock = threading.Lock()
        self._value = _clamp(initial)

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def open(self) -> int:
        return self.adjust(1)

    def close(self) -> int:
        return self.adjust(-1)

    def adjust(self, change: int) -> int:
        with self._lock:
            self._value = _clamp(self._value + change)
            return self._value


def _clamp(value):
    return max(0, min(MAX_CONNECTIONS, value))


class ConnectionSimulator:
    """Background random walk over a ConnectionTracker."""

    def __init__(
        self,
        tracker: ConnectionTracker,
        rng: random.Random = random,
        interval: Optional[Callable[[], float]] = None,
    ):
        self.tracker = tracker
        self._rng = rng
        self._interval = interval or (lambda: 2 + self._rng.randrange(3))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def step(self):
        change = self._rng.randrange(16) - 5
        total = self.tracker.adjust(change)
        logger.info("Simulated connection change: %+d, total: %d", change, total)
        return change, total

    def run(self) -> None:
        while not self._stop.wait(self._interval()):
            self.step()

    def start(self) -> "ConnectionSimulator":
        self._thread = threading.Thread(target=self.run, name="connection-simulator", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)


_CLOSED = object()


class FanSpeedFeed:
    """
    Single-slot feed of fan speed readings.

    A producer thread pushes FAN_SPEED_READINGS values, each after a random
    0-2 second pause, then closes the feed. The producer blocks while the slot
    is full. Readers never block: an empty or closed feed yields a fresh
    reading instead.
    """

    def __init__(
        self,
        reader: Optional[Callable[[], int]] = None,
        rng: random.Random = random,
        sleep: Callable[[float], None] = time.sleep,
        readings: int = FAN_SPEED_READINGS,
    ):
        self._reader = reader or (lambda: read_fan_speed(rng))
        self._rng = rng
        self._sleep = sleep
        self._readings = readings
        self._queue: "queue.Queue" = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def produce(self) -> None:
        try:
            for _ in range(self._readings):
                self._sleep(self._rng.randrange(3))
                self._queue.put(self._reader())
        finally:
            self._queue.put(_CLOSED)

    def start(self) -> "FanSpeedFeed":
        self._thread = threading.Thread(target=self.produce, name="fan-speed-feed", daemon=True)
        self._thread.start()
        return self

    def poll(self, block: bool = False, timeout: Optional[float] = None) -> Optional[int]:
        """Next pushed reading, or None if nothing is pending or the feed is closed."""
        if self.closed:
            return None
        try:
            item = self._queue.get(block=block, timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._closed.set()
            return None
        return item

    def latest(self) -> int:
        speed = self.poll()
        if speed is None:
            speed = self._reader()
        return speed
