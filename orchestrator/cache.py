from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from orchestrator.errors import CacheCorruption
from orchestrator.logs import log_event
from orchestrator.metrics import CACHE_EVENTS_TOTAL, FAIL_OPEN_TOTAL


@dataclass(frozen=True)
class CacheEntry:
    content: str
    model_used: str
    provider_used: str
    input_tokens: int
    output_tokens: int
    created_at: float = 0.0
    expires_at: float = 0.0


def normalize_message(message: str) -> str:
    return " ".join(message.split()).lower()


def fingerprint(message: str, chat_type: str, model_hint: str | None = None, include_app_data: bool = False) -> str:
    """Cache key over the fields that change the answer.

    User and conversation identifiers are deliberately left out so identical
    questions from different threads or users share an entry.
    """
    payload = {
        "message": normalize_message(message),
        "chat_type": chat_type,
        "model_hint": model_hint or "",
        "include_app_data": bool(include_app_data),
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ResponseCache:
    """In-memory TTL cache with least-recently-used eviction.

    Concurrent misses on the same fingerprint both compute; there is no
    single-flight coalescing.
    """

    def __init__(self, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> CacheEntry | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                CACHE_EVENTS_TOTAL.labels("miss").inc()
                return None
            try:
                _validate(entry)
            except CacheCorruption as exc:
                del self._entries[key]
                self._misses += 1
                FAIL_OPEN_TOTAL.labels("cache").inc()
                log_event(logging.WARNING, "cache_entry_corrupt", key=key, error=str(exc))
                return None
            if now > entry.expires_at:
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                CACHE_EVENTS_TOTAL.labels("expired").inc()
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            CACHE_EVENTS_TOTAL.labels("hit").inc()
            return entry

    def put(self, key: str, entry: CacheEntry, ttl_seconds: float) -> CacheEntry | None:
        """Store a copy of entry stamped with this cache's clock; ttl <= 0 stores nothing."""
        if ttl_seconds <= 0:
            return None
        now = self._clock()
        stored = CacheEntry(
            content=entry.content,
            model_used=entry.model_used,
            provider_used=entry.provider_used,
            input_tokens=entry.input_tokens,
            output_tokens=entry.output_tokens,
            created_at=now,
            expires_at=now + ttl_seconds,
        )
        with self._lock:
            self._purge_expired(now)
            self._entries[key] = stored
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1
                CACHE_EVENTS_TOTAL.labels("evicted").inc()
        CACHE_EVENTS_TOTAL.labels("stored").inc()
        return stored

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            self._expirations += len(expired)
            CACHE_EVENTS_TOTAL.labels("expired").inc(len(expired))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def stats(self) -> dict:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "size": len(self._entries),
                "capacity": self.max_entries,
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }


def _validate(entry: object) -> None:
    if not isinstance(entry, CacheEntry):
        raise CacheCorruption(f"unexpected entry type {type(entry).__name__}")
    if not isinstance(entry.content, str) or entry.expires_at < entry.created_at:
        raise CacheCorruption("entry fields out of range")
