from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from trading_monitor.market.models import Candle
from trading_monitor.market.synthesizer import CandleSynthesizer

CacheKey = tuple[str, str, int]


@dataclass(frozen=True)
class CacheEntry:
    created_at: float
    candles: tuple[Candle, ...]


class SynthesisCache:
    """
    TTL cache in front of ``CandleSynthesizer`` keyed by ``(symbol, timeframe, count)``.

    Hits are returned as stored, final-bar time included. Expired entries are
    swept on every write once older than ``sweep_multiple * ttl_seconds``.
    A per-key lock keeps one computation in flight per key; callers that
    wait on it get the freshly stored entry.
    """

    def __init__(
        self,
        synthesizer: CandleSynthesizer,
        *,
        ttl_seconds: float = 15.0,
        sweep_multiple: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.synthesizer = synthesizer
        self.ttl_seconds = float(ttl_seconds)
        self.sweep_multiple = float(sweep_multiple)
        self.clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._key_locks: dict[CacheKey, threading.Lock] = {}
        self._lock = threading.Lock()
        self._log = logging.getLogger("trading_monitor.cache")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def get_or_compute(self, symbol: str, timeframe: str, count: int) -> tuple[Candle, ...]:
        key: CacheKey = (symbol, timeframe, int(count))
        hit = self._fresh(key)
        if hit is not None:
            return hit.candles

        with self._lock_for(key):
            hit = self._fresh(key)
            if hit is not None:
                return hit.candles
            candles = tuple(self.synthesizer.generate(symbol, timeframe, int(count)))
            self._store(key, candles)
            return candles

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            # a held lock still guards an in-flight computation
            self._key_locks = {k: lock for k, lock in self._key_locks.items() if lock.locked()}

    def _fresh(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or self.clock() - entry.created_at >= self.ttl_seconds:
            return None
        self._log.debug("serving from cache", extra={"key": list(key)})
        return entry

    def _lock_for(self, key: CacheKey) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def _store(self, key: CacheKey, candles: tuple[Candle, ...]) -> None:
        now = self.clock()
        max_age = self.ttl_seconds * self.sweep_multiple
        with self._lock:
            self._entries[key] = CacheEntry(created_at=now, candles=candles)
            stale = [k for k, e in self._entries.items() if now - e.created_at > max_age]
            for k in stale:
                del self._entries[k]
                lock = self._key_locks.get(k)
                if lock is not None and not lock.locked():
                    del self._key_locks[k]
        if stale:
            self._log.debug("cache swept", extra={"evicted": len(stale)})
