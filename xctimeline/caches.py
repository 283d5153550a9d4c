"""Memoization for expensive backend calls shared by pipeline workers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from .models import AttachmentManifest, TestActivityRecords
from .source_locations import SourceLocation

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedCache(Generic[K, V]):
    """Check-lock-populate cache.

    Each key has its own load lock, so one key is loaded at most once while
    distinct keys load in parallel.
    """

    def __init__(self) -> None:
        self._values: Dict[K, V] = {}
        self._key_locks: Dict[K, threading.Lock] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            return self._values.get(key)

    def get_or_load(self, key: K, loader: Callable[[], V]) -> V:
        with self._lock:
            if key in self._values:
                return self._values[key]
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                if key in self._values:
                    return self._values[key]
            value = loader()
            with self._lock:
                self._values[key] = value
                self._key_locks.pop(key, None)
            return value

    def clear(self) -> None:
        with self._lock:
            self._values.clear()
            self._key_locks.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


@dataclass
class PipelineCaches:
    activities: KeyedCache[tuple, Optional[TestActivityRecords]] = field(default_factory=KeyedCache)
    manifests: KeyedCache[str, AttachmentManifest] = field(default_factory=KeyedCache)
    symbol_locations: KeyedCache[tuple, Dict[str, SourceLocation]] = field(default_factory=KeyedCache)
