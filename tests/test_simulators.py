import itertools
import random
import threading

from otel_demo_app.simulators import (
    MAX_CONNECTIONS,
    ConnectionSimulator,
    ConnectionTracker,
    FanSpeedFeed,
    MemorySampler,
    read_fan_speed,
    sample_api_latency_ms,
)


class FixedRandom:
    def __init__(self, roll):
        self.roll = roll

    def random(self):
        return self.roll

    def randrange(self, stop):
        return 0


def test_tracker_clamps_both_ends():
    tracker = ConnectionTracker()
    assert tracker.close() == 0
    assert tracker.adjust(250) == MAX_CONNECTIONS
    assert tracker.open() == MAX_CONNECTIONS
    assert tracker.adjust(-7) == MAX_CONNECTIONS - 7
    assert ConnectionTracker(initial=-3).value == 0


def test_tracker_is_consistent_under_threads():
    tracker = ConnectionTracker()

    def churn():
        for _ in range(1000):
            tracker.open()
            tracker.close()

    threads = [threading.Thread(target=churn) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert tracker.value == 0


def test_random_walk_step_range():
    simulator = ConnectionSimulator(ConnectionTracker(50), rng=random.Random(3))
    for _ in range(200):
        change, total = simulator.step()
        assert -5 <= change <= 10
        assert 0 <= total <= MAX_CONNECTIONS


def test_simulator_stops():
    tracker = ConnectionTracker()
    simulator = ConnectionSimulator(tracker, rng=random.Random(1), interval=lambda: 0.001)
    simulator.start()
    simulator.stop(timeout=2)
    assert "connection-simulator" not in [t.name for t in threading.enumerate()]
    assert 0 <= tracker.value <= MAX_CONNECTIONS


def test_fan_feed_pushes_five_then_closes():
    feed = FanSpeedFeed(reader=itertools.count(1).__next__, sleep=lambda s: None)
    feed.start()

    assert [feed.poll(block=True, timeout=2) for _ in range(5)] == [1, 2, 3, 4, 5]
    assert feed.poll(block=True, timeout=2) is None
    assert feed.closed
    # Closed feed falls back to a fresh reading
    assert feed.latest() == 6


def test_fan_feed_empty_does_not_block():
    feed = FanSpeedFeed(reader=lambda: 2000)
    assert feed.poll() is None
    assert feed.latest() == 2000
    assert not feed.closed


def test_fan_feed_sleeps_zero_to_two_seconds():
    pauses = []
    feed = FanSpeedFeed(reader=lambda: 1500, rng=random.Random(5), sleep=pauses.append, readings=2)
    feed.start()
    feed.poll(block=True, timeout=2)
    feed.poll(block=True, timeout=2)
    assert feed.poll(block=True, timeout=2) is None
    assert len(pauses) == 2
    assert all(p in (0, 1, 2) for p in pauses)


def test_fan_speed_range():
    rng = random.Random(11)
    assert all(1500 <= read_fan_speed(rng) < 2500 for _ in range(500))


def test_latency_buckets():
    assert sample_api_latency_ms(FixedRandom(0.1)) == 50
    assert sample_api_latency_ms(FixedRandom(0.6)) == 1000
    assert sample_api_latency_ms(FixedRandom(0.9)) == 5000

    rng = random.Random(2)
    assert all(50 <= sample_api_latency_ms(rng) < 10000 for _ in range(500))


def test_memory_sampler_remembers_last_value():
    sampler = MemorySampler(random.Random(4))
    assert sampler.current == 0.0
    value = sampler.sample()
    assert sampler.current == value
    assert 100 * 1024 * 1024 <= value < 500 * 1024 * 1024


def test_fan_feed_concurrent_readers_share_five_readings():
    feed = FanSpeedFeed(reader=itertools.count(1).__next__, sleep=lambda s: None)
    feed.start()
    seen = []

    def drain():
        while not feed.closed:
            speed = feed.poll(block=True, timeout=0.5)
            if speed is not None:
                seen.append(speed)

    readers = [threading.Thread(target=drain) for _ in range(8)]
    for t in readers:
        t.start()
    for t in readers:
        t.join(timeout=5)
    assert feed.closed
    assert sorted(seen) == [1, 2, 3, 4, 5]
