from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_PROVIDER_ORDER = ("groq", "gemini", "cerebras", "mistral", "openrouter", "cohere")

DEFAULT_FALLBACK_CHAINS = {
    "time_sensitive": ("gemini", "groq", "cerebras", "mistral", "openrouter", "cohere"),
    "app_data": ("groq", "cerebras", "mistral", "gemini", "openrouter", "cohere"),
    "general": ("groq", "openrouter", "cerebras", "mistral", "gemini", "cohere"),
}


@dataclass(frozen=True)
class OrchestratorConfig:
    provider_order: tuple[str, ...] = DEFAULT_PROVIDER_ORDER
    per_provider_limit: dict[str, int] = field(default_factory=dict)
    fallback_chains: dict[str, tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_FALLBACK_CHAINS))
    default_requests_per_minute: int = 60
    cache_ttl_seconds: int = 3600
    cache_max_entries: int = 1000
    health_probe_interval_seconds: int = 60
    health_probe_timeout_ms: int = 3000
    unhealthy_threshold: int = 3
    global_fallback_deadline_ms: int = 30000
    provider_mode: str = "mock"
    mock_fail_providers: tuple[str, ...] = ()
    database_url: str | None = None
    admin_api_key: str | None = None

    def __post_init__(self) -> None:
        if not self.provider_order:
            raise ValueError("provider_order must name at least one provider")
        if len(set(self.provider_order)) != len(self.provider_order):
            raise ValueError("provider_order contains duplicates")
        for query_type, chain in self.fallback_chains.items():
            if len(set(chain)) != len(chain):
                raise ValueError(f"fallback chain for {query_type} contains duplicates")
        for name, limit in self.per_provider_limit.items():
            if limit <= 0:
                raise ValueError(f"limit for provider {name} must be positive")
        for name in (
            "default_requests_per_minute",
            "cache_ttl_seconds",
            "cache_max_entries",
            "health_probe_interval_seconds",
            "health_probe_timeout_ms",
            "unhealthy_threshold",
            "global_fallback_deadline_ms",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.provider_mode not in {"mock", "live"}:
            raise ValueError("provider_mode must be 'mock' or 'live'")


def _split(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_limits(raw: str) -> dict[str, int]:
    limits: dict[str, int] = {}
    for item in _split(raw):
        name, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"invalid provider limit entry: {item!r}")
        limits[name.strip()] = int(value)
    return limits


def parse_chains(raw: str) -> dict[str, tuple[str, ...]]:
    """Parse `query_type=a|b|c;other=b|a` into per-query-type provider chains."""
    chains: dict[str, tuple[str, ...]] = {}
    for item in raw.split(";"):
        if not item.strip():
            continue
        query_type, sep, names = item.partition("=")
        if not sep or not query_type.strip():
            raise ValueError(f"invalid fallback chain entry: {item!r}")
        chains[query_type.strip()] = tuple(name.strip() for name in names.split("|") if name.strip())
    return chains


def load_config(environ: dict[str, str] | None = None) -> OrchestratorConfig:
    env = os.environ if environ is None else environ
    order = _split(env.get("PROVIDER_ORDER", "")) or DEFAULT_PROVIDER_ORDER
    return OrchestratorConfig(
        provider_order=order,
        per_provider_limit=parse_limits(env.get("PROVIDER_LIMITS", "")),
        fallback_chains={**DEFAULT_FALLBACK_CHAINS, **parse_chains(env.get("FALLBACK_CHAINS", ""))},
        default_requests_per_minute=int(env.get("DEFAULT_REQUESTS_PER_MINUTE", "60")),
        cache_ttl_seconds=int(env.get("CACHE_TTL_SECONDS", "3600")),
        cache_max_entries=int(env.get("CACHE_MAX_ENTRIES", "1000")),
        health_probe_interval_seconds=int(env.get("HEALTH_PROBE_INTERVAL_SECONDS", "60")),
        health_probe_timeout_ms=int(env.get("HEALTH_PROBE_TIMEOUT_MS", "3000")),
        unhealthy_threshold=int(env.get("UNHEALTHY_THRESHOLD", "3")),
        global_fallback_deadline_ms=int(env.get("GLOBAL_FALLBACK_DEADLINE_MS", "30000")),
        provider_mode=env.get("PROVIDER_MODE", "mock"),
        mock_fail_providers=_split(env.get("MOCK_FAIL_PROVIDERS", "")),
        database_url=env.get("DATABASE_URL") or None,
        admin_api_key=env.get("ADMIN_API_KEY") or None,
    )
