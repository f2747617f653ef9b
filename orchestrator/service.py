from __future__ import annotations

import logging
import os

from orchestrator.cache import ResponseCache
from orchestrator.config import OrchestratorConfig
from orchestrator.db.session import make_engine, make_session_factory
from orchestrator.health import HealthMonitor
from orchestrator.http_provider import OpenAICompatibleProvider
from orchestrator.logs import log_event
from orchestrator.mock_provider import MockProvider
from orchestrator.pricing import cost_weights
from orchestrator.provider import Provider
from orchestrator.rate_limit import RateLimitTracker
from orchestrator.registry import ProviderRegistry, build_registry
from orchestrator.routing import FallbackRouter, RequestContext, RouteResult
from orchestrator.settings_store import InMemorySettingsStore, SqlUserSettingsStore, UserSettingsStore
from orchestrator.usage import UsageAccountant


def build_providers(
    config: OrchestratorConfig,
    registry: ProviderRegistry,
    environ: dict[str, str] | None = None,
) -> dict[str, Provider | None]:
    env = os.environ if environ is None else environ
    providers: dict[str, Provider | None] = {}
    for descriptor in registry.ordered():
        if config.provider_mode == "mock":
            providers[descriptor.name] = MockProvider(
                name=descriptor.name,
                delay_ms=50,
                fail=descriptor.name in config.mock_fail_providers,
            )
            continue
        api_key = env.get(descriptor.api_key_env or "")
        if not api_key or not descriptor.base_url:
            log_event(logging.WARNING, "provider_unavailable", provider=descriptor.name, reason="missing_api_key")
            providers[descriptor.name] = None
            continue
        providers[descriptor.name] = OpenAICompatibleProvider(base_url=descriptor.base_url, api_key=api_key)
    return providers


def build_settings_store(config: OrchestratorConfig) -> UserSettingsStore:
    if not config.database_url:
        return InMemorySettingsStore()
    return SqlUserSettingsStore(make_session_factory(make_engine(config.database_url)))


class OrchestratorService:
    """Owns the orchestrator components for the lifetime of the application."""

    def __init__(
        self,
        config: OrchestratorConfig,
        registry: ProviderRegistry | None = None,
        providers: dict[str, Provider | None] | None = None,
        settings_store: UserSettingsStore | None = None,
        rate_limiter: RateLimitTracker | None = None,
        cache: ResponseCache | None = None,
        health: HealthMonitor | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or build_registry(config.provider_order, chains=config.fallback_chains)
        self.providers = providers if providers is not None else build_providers(config, self.registry)
        self.settings_store = settings_store if settings_store is not None else build_settings_store(config)
        self.rate_limiter = rate_limiter or RateLimitTracker(
            default_limit=config.default_requests_per_minute,
            provider_limits=config.per_provider_limit,
        )
        self.cache = cache or ResponseCache(max_entries=config.cache_max_entries)
        self.health = health or HealthMonitor(
            self.providers,
            unhealthy_threshold=config.unhealthy_threshold,
            probe_interval_s=config.health_probe_interval_seconds,
            probe_timeout_s=config.health_probe_timeout_ms / 1000,
        )
        self.usage = UsageAccountant(cost_weights(self.registry))
        self.router = FallbackRouter(
            registry=self.registry,
            providers=self.providers,
            rate_limiter=self.rate_limiter,
            health=self.health,
            cache=self.cache,
            usage=self.usage,
            settings_store=self.settings_store,
            cache_ttl_seconds=config.cache_ttl_seconds,
            global_deadline_ms=config.global_fallback_deadline_ms,
        )
        self.health.on_cycle(self._prune_rate_windows)

    def _prune_rate_windows(self) -> None:
        removed = self.rate_limiter.prune()
        if removed:
            log_event(logging.INFO, "rate_windows_pruned", removed=removed)

    async def start(self) -> None:
        self.health.start()
        log_event(logging.INFO, "orchestrator_started", providers=self.registry.names())

    async def stop(self) -> None:
        await self.health.stop()
        log_event(logging.INFO, "orchestrator_stopped")

    async def process(
        self,
        user_id: str,
        message: str,
        chat_type: str = "general",
        preferred_provider: str | None = None,
        include_app_data: bool = False,
        model_hint: str | None = None,
    ) -> RouteResult:
        ctx = RequestContext(
            user_id=user_id,
            message=message,
            chat_type=chat_type,
            preferred_provider=preferred_provider,
            include_app_data=include_app_data,
            model_hint=model_hint,
        )
        return await self.router.route(ctx)

    def health_snapshot(self) -> dict:
        providers = self.health.snapshot()
        return {
            "providers": providers,
            "healthy_count": sum(1 for entry in providers if entry["healthy"]),
            "fallback_chains": self.registry.chains(),
        }

    def usage_snapshot(self) -> dict:
        return self.usage.snapshot()

    def cache_stats(self) -> dict:
        return self.cache.stats()
