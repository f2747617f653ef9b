import asyncio

from orchestrator.cache import ResponseCache
from orchestrator.errors import ProviderCallError
from orchestrator.health import HealthMonitor
from orchestrator.provider import HealthCheckResult, Provider, ProviderReply
from orchestrator.rate_limit import RateLimitTracker
from orchestrator.registry import ProviderDescriptor, ProviderRegistry
from orchestrator.routing import FallbackRouter
from orchestrator.usage import UsageAccountant


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(Provider):
    """Provider whose behaviour is set per test: ok, fail or hang."""

    def __init__(self, name: str, mode: str = "ok", delay_s: float = 0.0, healthy: bool = True) -> None:
        self.name = name
        self.mode = mode
        self.delay_s = delay_s
        self.healthy = healthy
        self.calls = []

    async def call(self, model, messages, timeout_s):
        self.calls.append(model)
        if self.mode == "hang":
            await asyncio.sleep(3600)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.mode == "fail":
            raise ProviderCallError(f"{self.name} down", code="upstream", status_code=503)
        return ProviderReply(content=f"{self.name} says hi", input_tokens=10, output_tokens=20)

    async def health_check(self, timeout_s):
        if self.mode == "raise":
            raise RuntimeError("probe exploded")
        if self.mode == "hang":
            await asyncio.sleep(3600)
        return HealthCheckResult(healthy=self.healthy, response_time_ms=5.0, error=None if self.healthy else "down")


def make_registry(*names: str, timeout_ms: int = 1000, chains=None) -> ProviderRegistry:
    return ProviderRegistry(
        [
            ProviderDescriptor(
                name=name,
                models=(f"{name}-small", f"{name}-large"),
                default_model=f"{name}-small",
                timeout_ms=timeout_ms,
                cost_weight=1.0,
                query_models={"time_sensitive": f"{name}-large"},
            )
            for name in names
        ],
        chains,
    )


def make_router(providers, clock=None, limit=60, threshold=3, deadline_ms=5000, settings_store=None, timeout_ms=1000, chains=None):
    clock = clock or FakeClock()
    registry = make_registry(*providers.keys(), timeout_ms=timeout_ms, chains=chains)
    health = HealthMonitor(providers, unhealthy_threshold=threshold, probe_timeout_s=0.05)
    return FallbackRouter(
        registry=registry,
        providers=providers,
        rate_limiter=RateLimitTracker(default_limit=limit, clock=clock),
        health=health,
        cache=ResponseCache(max_entries=100, clock=clock),
        usage=UsageAccountant({name: 1.0 for name in providers}),
        settings_store=settings_store,
        cache_ttl_seconds=60,
        global_deadline_ms=deadline_ms,
    )
