"""
Bounded LRU store of raw per-instance container bytes.

One ``ByteCache`` is shared by every consumer of a session (volume builder,
single-image viewers, thumbnails). It is passed by reference; the registry at
the bottom of this module only gives that shared instance an explicit
construct/reset lifecycle.

Buffers are copied on the way in and on the way out, so no caller can change
the stored bytes through a buffer it holds.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from config import CACHE_DEFAULT_CAPACITY_BYTES

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: bytes
    last_access: int
    size: int


@dataclass(frozen=True)
class CacheStats:
    entries: int
    total_bytes: int
    capacity_bytes: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": self.entries,
            "totalBytes": self.total_bytes,
            "capacityBytes": self.capacity_bytes,
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": self.hit_rate,
        }


def _format_size(size_bytes: float) -> str:
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"


class ByteCache:
    """
    Thread-safe LRU cache with a byte-size limit.

    Recency is tracked with a monotonically increasing access counter rather
    than wall-clock time, so two touches within the same clock tick still
    have a strict order.
    """

    def __init__(self, capacity_bytes: int = CACHE_DEFAULT_CAPACITY_BYTES):
        if capacity_bytes <= 0:
            raise ValueError(f"capacity_bytes must be positive, got {capacity_bytes}")
        self._capacity = int(capacity_bytes)
        self._entries: Dict[str, CacheEntry] = {}
        self._total_size = 0
        self._hits = 0
        self._misses = 0
        self._clock = itertools.count()
        self._lock = threading.Lock()

    @property
    def capacity_bytes(self) -> int:
        return self._capacity

    @property
    def total_bytes(self) -> int:
        return self._total_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, instance_uid: str) -> bool:
        return self.has(instance_uid)

    def get(self, instance_uid: str) -> Optional[bytearray]:
        """Return an independent copy of the cached bytes and mark the entry as used."""
        with self._lock:
            entry = self._entries.get(instance_uid)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            entry.last_access = next(self._clock)
            return bytearray(entry.data)

    def put(self, instance_uid: str, data) -> None:
        """
        Store a copy of ``data``, evicting least-recently-used entries first.

        A buffer larger than the whole capacity is not cached.
        """
        stored = bytes(data)
        size = len(stored)

        if size > self._capacity:
            logger.debug(
                "[ByteCache] Not caching %s: %s exceeds capacity %s",
                instance_uid, _format_size(size), _format_size(self._capacity),
            )
            with self._lock:
                self._remove_locked(instance_uid)
            return

        with self._lock:
            self._remove_locked(instance_uid)
            while self._total_size + size > self._capacity and self._entries:
                self._evict_oldest_locked()
            self._entries[instance_uid] = CacheEntry(stored, next(self._clock), size)
            self._total_size += size

    def has(self, instance_uid: str) -> bool:
        with self._lock:
            return instance_uid in self._entries

    def remove(self, instance_uid: str) -> bool:
        with self._lock:
            return self._remove_locked(instance_uid)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_size = 0
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                total_bytes=self._total_size,
                capacity_bytes=self._capacity,
                hits=self._hits,
                misses=self._misses,
            )

    def fetch_and_cache(self, instance_uid: str, fetch: Callable[[str], bytes]) -> bytearray:
        """
        Return the cached bytes, or fetch them, store a copy and return them.

        Fetch errors propagate unchanged; nothing is cached on failure.
        """
        cached = self.get(instance_uid)
        if cached is not None:
            return cached
        data = fetch(instance_uid)
        self.put(instance_uid, data)
        return bytearray(data)

    def _remove_locked(self, instance_uid: str) -> bool:
        entry = self._entries.pop(instance_uid, None)
        if entry is None:
            return False
        self._total_size -= entry.size
        return True

    def _evict_oldest_locked(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_access)
        entry = self._entries.pop(oldest_key)
        self._total_size -= entry.size
        logger.debug("[ByteCache] Evicted %s (%s)", oldest_key, _format_size(entry.size))

    def __repr__(self) -> str:
        return (
            f"ByteCache(entries={len(self._entries)}, "
            f"used={_format_size(self._total_size)}, capacity={_format_size(self._capacity)})"
        )


class CacheRegistry:
    """
    Registry for the process-wide cache service.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, name: str, factory):
        with self._lock:
            if name not in self._instances:
                self._instances[name] = factory()
            return self._instances[name]

    def clear(self, name: str, *, drop_instance: bool = False) -> None:
        with self._lock:
            instance = self._instances.get(name)
            if instance is None:
                return
            try:
                instance.clear()
            finally:
                if drop_instance:
                    self._instances.pop(name, None)

    def clear_all(self, *, drop_instances: bool = False) -> None:
        for name in list(self._instances.keys()):
            self.clear(name, drop_instance=drop_instances)


_registry = CacheRegistry()


def get_byte_cache(capacity_bytes: int = CACHE_DEFAULT_CAPACITY_BYTES) -> ByteCache:
    """
    Get the shared byte cache, constructing it on first use.

    ``capacity_bytes`` only applies to that first construction.
    """
    return _registry.get("bytes", lambda: ByteCache(capacity_bytes))


def reset_byte_cache() -> None:
    """Clear and drop the shared byte cache; the next get builds a new one."""
    _registry.clear("bytes", drop_instance=True)


def clear_all_caches() -> None:
    """Clear all registered cache instances."""
    _registry.clear_all(drop_instances=True)
