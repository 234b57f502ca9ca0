"""
Result Cache and Single-Flight Tests
====================================
"""

import threading
import time

import pytest

from timelapse_server.cache import ResultCache, SingleFlight


class TestResultCache:
    """Tests for the bounded FIFO cache."""

    def test_get_missing(self):
        cache = ResultCache(capacity=2)

        assert cache.get("missing") is None

    def test_put_then_get(self):
        cache = ResultCache(capacity=2)
        cache.put("a", b"one")

        assert cache.get("a") == b"one"
        assert "a" in cache
        assert len(cache) == 1

    def test_overflow_evicts_first_inserted_only(self):
        cache = ResultCache(capacity=10)
        for index in range(11):
            cache.put(f"key-{index}", f"value-{index}".encode())

        assert cache.get("key-0") is None
        for index in range(1, 11):
            assert cache.get(f"key-{index}") == f"value-{index}".encode()
        assert len(cache) == 10
        assert cache.evictions == 1

    def test_reads_do_not_change_eviction_order(self):
        cache = ResultCache(capacity=2)
        cache.put("a", b"1")
        cache.put("b", b"2")
        cache.get("a")
        cache.put("c", b"3")

        assert cache.get("a") is None
        assert cache.get("b") == b"2"

    def test_overwrite_does_not_duplicate_order(self):
        cache = ResultCache(capacity=3)
        cache.put("a", b"1")
        cache.put("b", b"2")
        cache.put("a", b"1-new")
        cache.put("c", b"3")

        assert len(cache) == 3

        cache.put("d", b"4")

        assert cache.get("b") is None
        assert cache.get("a") == b"1-new"
        assert cache.get("c") == b"3"
        assert cache.get("d") == b"4"

    def test_repeated_overwrites_keep_other_keys(self):
        cache = ResultCache(capacity=2)
        cache.put("a", b"1")
        cache.put("b", b"2")
        for _ in range(5):
            cache.put("b", b"2")

        assert cache.get("a") == b"1"
        assert cache.evictions == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ResultCache(capacity=0)

    def test_metrics(self):
        cache = ResultCache(capacity=1)
        cache.put("a", b"123")
        cache.get("a")
        cache.get("b")
        cache.put("b", b"45")

        metrics = cache.metrics()

        assert metrics == {
            "size": 1,
            "capacity": 1,
            "hits": 1,
            "misses": 1,
            "evictions": 1,
            "bytes": 2,
        }

    def test_clear(self):
        cache = ResultCache(capacity=3)
        cache.put("a", b"1")
        cache.put("b", b"2")

        assert cache.clear() == 2
        assert len(cache) == 0

    def test_concurrent_puts_respect_capacity(self):
        cache = ResultCache(capacity=5)

        def writer(prefix: str) -> None:
            for index in range(200):
                cache.put(f"{prefix}-{index}", b"x")

        threads = [threading.Thread(target=writer, args=(str(n),)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 5
        assert cache.evictions == 8 * 200 - 5


class TestSingleFlight:
    """Tests for in-flight call collapsing."""

    def test_sequential_calls_run_each_time(self):
        flights = SingleFlight()
        calls = []

        def work():
            calls.append(1)
            return len(calls)

        assert flights.do("k", work) == (1, False)
        assert flights.do("k", work) == (2, False)
        assert flights.in_flight == 0

    def test_concurrent_calls_share_one_execution(self):
        flights = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = []
        results_lock = threading.Lock()

        def work():
            calls.append(1)
            started.set()
            release.wait(timeout=5)
            return "done"

        def caller():
            outcome = flights.do("k", work)
            with results_lock:
                results.append(outcome)

        leader = threading.Thread(target=caller)
        leader.start()
        assert started.wait(timeout=5)

        followers = [threading.Thread(target=caller) for _ in range(4)]
        for thread in followers:
            thread.start()
        time.sleep(0.2)
        release.set()

        for thread in [leader, *followers]:
            thread.join(timeout=5)

        assert len(calls) == 1
        assert sorted(shared for _, shared in results) == [False, True, True, True, True]
        assert all(value == "done" for value, _ in results)

    def test_exception_reaches_all_callers(self):
        flights = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        errors = []

        def work():
            started.set()
            release.wait(timeout=5)
            raise RuntimeError("encoder exploded")

        def caller():
            try:
                flights.do("k", work)
            except RuntimeError as e:
                errors.append(str(e))

        leader = threading.Thread(target=caller)
        leader.start()
        assert started.wait(timeout=5)
        follower = threading.Thread(target=caller)
        follower.start()
        time.sleep(0.2)
        release.set()
        leader.join(timeout=5)
        follower.join(timeout=5)

        assert errors == ["encoder exploded", "encoder exploded"]
        assert flights.in_flight == 0

    def test_distinct_keys_do_not_share(self):
        flights = SingleFlight()

        assert flights.do("a", lambda: 1) == (1, False)
        assert flights.do("b", lambda: 2) == (2, False)
