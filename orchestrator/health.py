from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from orchestrator.logs import log_event
from orchestrator.metrics import PROVIDER_HEALTH_STATUS
from orchestrator.provider import Provider


class HealthStatus(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ProviderHealthState:
    status: HealthStatus = HealthStatus.UNKNOWN
    last_latency_ms: float | None = None
    last_checked_at: float | None = None
    consecutive_failures: int = 0
    last_error: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status not in (HealthStatus.UNHEALTHY, HealthStatus.UNAVAILABLE)


class HealthMonitor:
    """Per-provider routing eligibility.

    Written by the background probe loop and by the router's live call
    outcomes; both go through the same lock and the last writer wins.
    """

    def __init__(
        self,
        providers: dict[str, Provider | None],
        unhealthy_threshold: int = 3,
        probe_interval_s: float = 60.0,
        probe_timeout_s: float = 3.0,
        window_size: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._providers = providers
        self.unhealthy_threshold = unhealthy_threshold
        self.probe_interval_s = probe_interval_s
        self.probe_timeout_s = probe_timeout_s
        self._window_size = window_size
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, ProviderHealthState] = {}
        self._results: dict[str, deque[bool]] = {}
        self._task: asyncio.Task | None = None
        self._on_cycle: list[Callable[[], None]] = []
        for name, client in providers.items():
            if client is None:
                self._set(name, ProviderHealthState(status=HealthStatus.UNAVAILABLE, last_error="no client configured"))
            else:
                self._set(name, ProviderHealthState())

    def _set(self, provider: str, state: ProviderHealthState) -> None:
        previous = self._states.get(provider)
        self._states[provider] = state
        if previous is None or previous.status != state.status:
            for status in HealthStatus:
                PROVIDER_HEALTH_STATUS.labels(provider, status.value).set(1 if status == state.status else 0)
            if previous is not None:
                log_event(
                    logging.INFO,
                    "provider_health_transition",
                    provider=provider,
                    from_status=previous.status.value,
                    to_status=state.status.value,
                    consecutive_failures=state.consecutive_failures,
                )

    def _append(self, provider: str, success: bool) -> None:
        if provider not in self._results:
            self._results[provider] = deque(maxlen=self._window_size)
        self._results[provider].append(success)

    def record_success(self, provider: str, latency_ms: float) -> ProviderHealthState:
        with self._lock:
            state = replace(
                self._states.get(provider, ProviderHealthState()),
                status=HealthStatus.HEALTHY,
                last_latency_ms=latency_ms,
                last_checked_at=self._clock(),
                consecutive_failures=0,
                last_error=None,
            )
            self._append(provider, True)
            self._set(provider, state)
            return state

    def record_failure(self, provider: str, error: str, latency_ms: float | None = None) -> ProviderHealthState:
        with self._lock:
            current = self._states.get(provider, ProviderHealthState())
            failures = current.consecutive_failures + 1
            if failures >= self.unhealthy_threshold:
                status = HealthStatus.UNHEALTHY
            else:
                status = HealthStatus.DEGRADED
            state = replace(
                current,
                status=status,
                last_latency_ms=latency_ms if latency_ms is not None else current.last_latency_ms,
                last_checked_at=self._clock(),
                consecutive_failures=failures,
                last_error=error,
            )
            self._append(provider, False)
            self._set(provider, state)
            return state

    def mark_unavailable(self, provider: str, reason: str) -> None:
        with self._lock:
            current = self._states.get(provider, ProviderHealthState())
            self._set(
                provider,
                replace(current, status=HealthStatus.UNAVAILABLE, last_checked_at=self._clock(), last_error=reason),
            )

    def state(self, provider: str) -> ProviderHealthState:
        with self._lock:
            return self._states.get(provider, ProviderHealthState())

    def status(self, provider: str) -> HealthStatus:
        return self.state(provider).status

    def is_healthy(self, provider: str) -> bool:
        return self.state(provider).healthy

    def error_rate(self, provider: str) -> float:
        with self._lock:
            results = self._results.get(provider)
            if not results:
                return 0.0
            failures = sum(1 for ok in results if not ok)
            return failures / len(results)

    async def probe(self, provider: str) -> ProviderHealthState:
        client = self._providers.get(provider)
        if client is None:
            self.mark_unavailable(provider, "no client configured")
            return self.state(provider)
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(client.health_check(self.probe_timeout_s), self.probe_timeout_s)
        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start) * 1000
            log_event(logging.WARNING, "health_probe_timeout", provider=provider, latency_ms=round(elapsed_ms, 2))
            return self.record_failure(provider, "probe timeout", elapsed_ms)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            log_event(
                logging.WARNING,
                "health_probe_error",
                provider=provider,
                latency_ms=round(elapsed_ms, 2),
                error=exc.__class__.__name__,
            )
            return self.record_failure(provider, exc.__class__.__name__, elapsed_ms)
        if result.healthy:
            return self.record_success(provider, result.response_time_ms)
        return self.record_failure(provider, result.error or "unhealthy", result.response_time_ms)

    async def probe_all(self) -> dict[str, ProviderHealthState]:
        names = list(self._providers)
        states = await asyncio.gather(*(self.probe(name) for name in names))
        return dict(zip(names, states))

    def on_cycle(self, callback: Callable[[], None]) -> None:
        self._on_cycle.append(callback)

    async def _run(self) -> None:
        while True:
            try:
                await self.probe_all()
                for callback in self._on_cycle:
                    callback()
            except Exception as exc:
                log_event(logging.ERROR, "health_loop_error", error=exc.__class__.__name__)
            await asyncio.sleep(self.probe_interval_s)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> list[dict]:
        with self._lock:
            items = list(self._states.items())
        entries = []
        for name, state in items:
            entries.append(
                {
                    "provider": name,
                    "status": state.status.value,
                    "healthy": state.healthy,
                    "last_latency_ms": state.last_latency_ms,
                    "last_checked_at": state.last_checked_at,
                    "consecutive_failures": state.consecutive_failures,
                    "error_rate": self.error_rate(name),
                    "last_error": state.last_error,
                }
            )
        return entries

    def reset(self) -> None:
        with self._lock:
            self._results.clear()
            for name, client in self._providers.items():
                if client is not None:
                    self._set(name, ProviderHealthState())
