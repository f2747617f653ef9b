from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from orchestrator.errors import AdmissionDenied
from orchestrator.logs import log_event
from orchestrator.metrics import FAIL_OPEN_TOTAL

WINDOW_SECONDS = 60.0


@dataclass
class RateWindow:
    window_start: float
    count: int
    limit: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: float | None = None
    fail_open: bool = False


class RateLimitTracker:
    """Fixed-window request counter per (user, provider).

    Windows last WINDOW_SECONDS and are reset, not slid, so a burst of up to
    twice the limit is possible across a window boundary.
    """

    def __init__(
        self,
        default_limit: int = 60,
        provider_limits: dict[str, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_limit = default_limit
        self.provider_limits = dict(provider_limits or {})
        self._clock = clock
        self._windows: dict[tuple[str, str], RateWindow] = {}
        self._lock = threading.Lock()

    def limit_for(self, provider: str, override: int | None = None) -> int:
        if override is not None and override > 0:
            return override
        return self.provider_limits.get(provider, self.default_limit)

    def allow(self, user_id: str, provider: str, limit: int | None = None) -> RateLimitDecision:
        effective = self.limit_for(provider, limit)
        try:
            return self._admit(user_id, provider, effective)
        except Exception as exc:
            FAIL_OPEN_TOTAL.labels("rate_limit").inc()
            log_event(
                logging.WARNING,
                "rate_limit_fail_open",
                user_id=user_id,
                provider=provider,
                error=exc.__class__.__name__,
            )
            return RateLimitDecision(allowed=True, limit=effective, remaining=effective, fail_open=True)

    def acquire(self, user_id: str, provider: str, limit: int | None = None) -> RateLimitDecision:
        decision = self.allow(user_id, provider, limit)
        if not decision.allowed:
            raise AdmissionDenied(provider, decision.retry_after_seconds or 0.0)
        return decision

    def _admit(self, user_id: str, provider: str, limit: int) -> RateLimitDecision:
        now = self._clock()
        key = (user_id, provider)
        with self._lock:
            window = self._windows.get(key)
            if window is not None and now < window.window_start:
                # clock went backwards; start over rather than deny forever
                FAIL_OPEN_TOTAL.labels("rate_limit_clock").inc()
                log_event(logging.WARNING, "rate_limit_clock_skew", user_id=user_id, provider=provider)
                window = None
            if window is None or now - window.window_start >= WINDOW_SECONDS:
                window = RateWindow(window_start=now, count=0, limit=limit)
                self._windows[key] = window
            window.limit = limit
            if window.count < limit:
                window.count += 1
                return RateLimitDecision(allowed=True, limit=limit, remaining=limit - window.count)
            retry_after = window.window_start + WINDOW_SECONDS - now
            return RateLimitDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                retry_after_seconds=max(retry_after, 0.001),
            )

    def window(self, user_id: str, provider: str) -> RateWindow | None:
        with self._lock:
            window = self._windows.get((user_id, provider))
            if window is None:
                return None
            return RateWindow(window_start=window.window_start, count=window.count, limit=window.limit)

    def prune(self, idle_seconds: float = 10 * WINDOW_SECONDS) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, window in self._windows.items() if now - window.window_start >= idle_seconds]
            for key in stale:
                del self._windows[key]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
