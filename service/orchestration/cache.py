"""
Result cache contract and an in-memory TTL implementation.

The scheduler only ever calls:
    get(name, target, context) -> bool   a hit means target/context were already updated
    set(name, target, context) -> None   best-effort, errors never reach the run
Either method may be a coroutine function.
"""

import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Protocol, Tuple, runtime_checkable

from orchestration.errors import ConfigurationError

logger = logging.getLogger(__name__)

KeyFunc = Callable[[dict, dict], Optional[Hashable]]


@runtime_checkable
class ResultCache(Protocol):
    def get(self, name: str, target: dict, context: dict) -> Any: ...

    def set(self, name: str, target: dict, context: dict) -> Any: ...


def validate_cache(cache: Any) -> None:
    if not (callable(getattr(cache, "get", None)) and callable(getattr(cache, "set", None))):
        raise ConfigurationError("cache must expose callable get() and set()")


def email_key(target: dict, context: dict) -> Optional[Hashable]:
    email = target.get("email")
    return email.strip().lower() if isinstance(email, str) and email.strip() else None


def deep_update(dest: dict, src: dict) -> None:
    for key, value in src.items():
        if isinstance(value, dict) and isinstance(dest.get(key), dict):
            deep_update(dest[key], value)
        else:
            dest[key] = copy.deepcopy(value)


@dataclass
class CacheEntry:
    target: dict
    context: dict
    stored_at: float


class InMemoryResultCache:
    """
    Process-local cache keyed by (plugin name, key_func(target, context)).

    A hit deep-merges the stored target/context into the ones passed to get().
    Targets whose key is None are never cached.
    """

    name = "cache"

    def __init__(
        self,
        ttl: Optional[float] = None,
        key_func: KeyFunc = email_key,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.key_func = key_func
        self._clock = clock
        self._entries: Dict[Tuple[str, Hashable], CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return self.ttl is not None and now - entry.stored_at >= self.ttl

    def get(self, name: str, target: dict, context: dict) -> bool:
        key = self.key_func(target, context)
        if key is None:
            return False
        with self._lock:
            entry = self._entries.get((name, key))
            if entry is not None and self._expired(entry, self._clock()):
                del self._entries[(name, key)]
                entry = None
            if entry is None:
                self.misses += 1
                return False
            self.hits += 1
            deep_update(target, entry.target)
            deep_update(context, entry.context)
        logger.debug("Cache hit for %s (%s)", name, key)
        return True

    def set(self, name: str, target: dict, context: dict) -> None:
        key = self.key_func(target, context)
        if key is None:
            return
        with self._lock:
            self._entries[(name, key)] = CacheEntry(
                copy.deepcopy(target), copy.deepcopy(context), self._clock()
            )

    def prune(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info("Pruned %d expired cache entries", len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
