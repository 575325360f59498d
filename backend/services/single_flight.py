"""Collapse concurrent refreshes of the same data source into one call."""

import itertools
import threading
from typing import Callable


class _Call:
    def __init__(self):
        self.done = threading.Event()
        self.result = None
        self.error = None


class SingleFlight:
    """Run at most one call per key at a time.

    Callers arriving while a call for the same key is in flight wait for it
    and receive its result (or its exception). Every completed call gets a
    generation number from a single increasing counter, so a caller can
    tell which snapshot is newer.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls = {}
        self._generation = itertools.count(1)
        self._latest = {}

    def do(self, key: str, fn: Callable) -> tuple:
        """Run ``fn`` for ``key`` or join the in-flight call.

        Returns:
            Tuple of (result, generation)
        """
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result

        try:
            value = fn()
            with self._lock:
                generation = next(self._generation)
                self._latest[key] = generation
            call.result = (value, generation)
        except Exception as e:
            call.error = e
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()

        return call.result

    def latest_generation(self, key: str) -> int:
        with self._lock:
            return self._latest.get(key, 0)
