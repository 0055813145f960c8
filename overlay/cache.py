# overlay/cache.py

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class FragmentCache(Generic[V]):
    """
    Thread-safe compute-once map shared by fragment workers.

    Concurrent misses on one key wait for the first computation; misses on
    different keys compute in parallel. A computation that raises leaves no
    entry behind.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[Hashable, V] = {}
        self._key_locks: Dict[Hashable, threading.Lock] = {}
        self.hits = 0
        self.misses = 0

    def put(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def _lookup(self, key: Hashable) -> Tuple[bool, Optional[V]]:
        with self._lock:
            if key in self._data:
                self.hits += 1
                return True, self._data[key]
            return False, None

    def get_or_compute(self, key: Hashable, compute: Callable[[], V]) -> V:
        found, value = self._lookup(key)
        if found:
            return value

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            found, value = self._lookup(key)
            if found:
                return value
            with self._lock:
                self.misses += 1
            try:
                value = compute()
                with self._lock:
                    self._data[key] = value
            finally:
                with self._lock:
                    self._key_locks.pop(key, None)
            return value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._key_locks.clear()
            self.hits = 0
            self.misses = 0
