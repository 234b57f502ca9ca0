"""
Single Flight
=============

Collapses concurrent calls with the same key into one execution.

The first caller for a key runs the function; callers arriving while it
runs wait on the same Future and receive its result or exception. Once
the call completes the key is forgotten, so later callers start afresh.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Generic, Hashable, Tuple, TypeVar


logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class SingleFlight(Generic[K, T]):
    """In-flight call registry keyed by request fingerprint."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[K, "Future[T]"] = {}

    @property
    def in_flight(self) -> int:
        """Number of keys currently executing."""
        with self._lock:
            return len(self._calls)

    def do(self, key: K, fn: Callable[[], T]) -> Tuple[T, bool]:
        """
        Run ``fn`` once per concurrent group of callers sharing ``key``.

        Args:
            key: Call fingerprint
            fn: Work to run if no call for key is in flight

        Returns:
            (result, shared) where shared is True for callers that waited
            on another caller's execution.

        Raises:
            Whatever ``fn`` raised, in every waiting caller.
        """
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            logger.debug(f"Joining in-flight call for {key}")
            return future.result(), True

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            with self._lock:
                del self._calls[key]
