from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from opentelemetry import trace

from orchestrator.cache import CacheEntry, ResponseCache, fingerprint
from orchestrator.errors import AdmissionDenied, AllProvidersExhausted, ProviderCallError, ProviderTimeoutError
from orchestrator.health import HealthMonitor, HealthStatus
from orchestrator.logs import log_event
from orchestrator.metrics import (
    DEGRADED_RESPONSES_TOTAL,
    FAIL_OPEN_TOTAL,
    FALLBACK_TOTAL,
    PROVIDER_ATTEMPTS_TOTAL,
    PROVIDER_LATENCY,
    RATE_LIMITED_TOTAL,
)
from orchestrator.provider import CallOutcome, Provider, Success, Timeout, UpstreamError
from orchestrator.rate_limit import RateLimitTracker
from orchestrator.registry import ProviderRegistry
from orchestrator.schemas import ChatMessage, ChatResponse, TokenUsage
from orchestrator.settings_store import UserSettingsStore
from orchestrator.usage import Outcome, UsageAccountant

_tracer = trace.get_tracer(__name__)

_STATUS_RANK = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.UNKNOWN: 1,
    HealthStatus.DEGRADED: 2,
    HealthStatus.UNHEALTHY: 3,
}

TIME_SENSITIVE_KEYWORDS = ("current", "latest", "today", "now", "recent", "news", "update")
APP_DATA_KEYWORDS = ("progress", "score", "performance", "study", "grade", "accuracy", "completed")

SYSTEM_PROMPTS = {
    "study_assistant": "You are a helpful study assistant.",
    "general": "You are a helpful AI assistant.",
}

DEGRADED_MESSAGES = {
    "time_sensitive": (
        "I'm unable to access current information right now. "
        "Please try again later or check official sources for the latest updates."
    ),
    "app_data": "I'm having trouble accessing your data right now. Please try again in a moment.",
    "general": "I'm experiencing high demand right now. Please try again in a few moments.",
}

DEGRADED_PROVIDER = "system"
DEGRADED_MODEL = "graceful_degradation"


def detect_query_type(message: str) -> str:
    # substring match, so "updates" and "studying" count too
    lowered = message.lower()
    if any(keyword in lowered for keyword in TIME_SENSITIVE_KEYWORDS):
        return "time_sensitive"
    if any(keyword in lowered for keyword in APP_DATA_KEYWORDS):
        return "app_data"
    return "general"


@dataclass(frozen=True)
class RequestContext:
    user_id: str
    message: str
    chat_type: str = "general"
    preferred_provider: str | None = None
    include_app_data: bool = False
    model_hint: str | None = None


@dataclass(frozen=True)
class RouteDecision:
    candidates: tuple[str, ...]
    query_type: str
    reason: str


@dataclass(frozen=True)
class RouteResult:
    content: str
    provider_used: str
    model_used: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    cached: bool = False
    fallback_used: bool = False
    degraded: bool = False
    query_type: str = "general"
    retry_after_seconds: float | None = None

    def to_response(self) -> ChatResponse:
        return ChatResponse(
            content=self.content,
            provider_used=self.provider_used,
            model_used=self.model_used,
            tokens_used=TokenUsage(input=self.input_tokens, output=self.output_tokens),
            latency_ms=round(self.latency_ms, 2),
            cached=self.cached,
            fallback_used=self.fallback_used,
            degraded=self.degraded,
            query_type=self.query_type,
            retry_after_seconds=self.retry_after_seconds,
        )


def build_messages(ctx: RequestContext) -> list[ChatMessage]:
    system = SYSTEM_PROMPTS.get(ctx.chat_type, SYSTEM_PROMPTS["general"])
    return [
        ChatMessage(role="system", content=system),
        ChatMessage(role="user", content=ctx.message),
    ]


class FallbackRouter:
    def __init__(
        self,
        registry: ProviderRegistry,
        providers: dict[str, Provider | None],
        rate_limiter: RateLimitTracker,
        health: HealthMonitor,
        cache: ResponseCache,
        usage: UsageAccountant,
        settings_store: UserSettingsStore | None = None,
        cache_ttl_seconds: float = 3600,
        global_deadline_ms: int = 30000,
    ) -> None:
        self.registry = registry
        self.providers = providers
        self.rate_limiter = rate_limiter
        self.health = health
        self.cache = cache
        self.usage = usage
        self.settings_store = settings_store
        self.cache_ttl_seconds = cache_ttl_seconds
        self.global_deadline_s = global_deadline_ms / 1000
        self._inflight: set[asyncio.Task] = set()

    def decide(self, ctx: RequestContext, query_type: str | None = None) -> RouteDecision:
        if query_type is None:
            query_type = detect_query_type(ctx.message)

        eligible = []
        for name in self.registry.names():
            status = self.health.status(name)
            if self.providers.get(name) is None or status == HealthStatus.UNAVAILABLE:
                continue
            eligible.append((name, self.health.state(name)))

        preferred = ctx.preferred_provider
        head: list[str] = []
        reason = "health_order"
        if preferred is not None:
            for name, state in eligible:
                if name == preferred and state.status != HealthStatus.UNHEALTHY:
                    head.append(name)
                    reason = "preferred"
            if not head:
                reason = "preferred_ineligible"

        def sort_key(item):
            name, state = item
            latency = state.last_latency_ms if state.last_latency_ms is not None else float("inf")
            return (_STATUS_RANK[state.status], latency, self.registry.preference_index(name, query_type))

        rest = [name for name, _ in sorted(eligible, key=sort_key) if name not in head]
        return RouteDecision(candidates=tuple(head + rest), query_type=query_type, reason=reason)

    def candidates(self, ctx: RequestContext) -> list[str]:
        return list(self.decide(ctx).candidates)

    async def route(self, ctx: RequestContext) -> RouteResult:
        start = time.perf_counter()
        query_type = detect_query_type(ctx.message)
        key = fingerprint(ctx.message, ctx.chat_type, ctx.model_hint, ctx.include_app_data)

        entry = self.cache.get(key)
        if entry is not None:
            return RouteResult(
                content=entry.content,
                provider_used=entry.provider_used,
                model_used=entry.model_used,
                input_tokens=entry.input_tokens,
                output_tokens=entry.output_tokens,
                latency_ms=(time.perf_counter() - start) * 1000,
                cached=True,
                query_type=query_type,
            )

        decision = self.decide(ctx, query_type)
        try:
            return await self._route_live(ctx, key, decision, start)
        except AllProvidersExhausted as exc:
            return self._degraded(ctx, decision, exc, start)

    async def _route_live(self, ctx: RequestContext, key: str, decision: RouteDecision, start: float) -> RouteResult:
        deadline = start + self.global_deadline_s
        overrides = await self._load_overrides(ctx.user_id)
        messages = build_messages(ctx)
        attempted: list[str] = []
        rate_limited: list[str] = []
        retry_after: list[float] = []
        skip_reason = None

        for index, name in enumerate(decision.candidates):
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                log_event(logging.WARNING, "fallback_deadline_exceeded", user_id=ctx.user_id, attempted=attempted)
                break

            try:
                self.rate_limiter.acquire(ctx.user_id, name, overrides.get(name))
            except AdmissionDenied as exc:
                RATE_LIMITED_TOTAL.labels(name).inc()
                log_event(
                    logging.INFO,
                    "provider_rate_limited",
                    user_id=ctx.user_id,
                    provider=name,
                    retry_after_seconds=round(exc.retry_after_seconds, 3),
                )
                rate_limited.append(name)
                retry_after.append(exc.retry_after_seconds)
                skip_reason = "rate_limited"
                continue

            descriptor = self.registry.get(name)
            model = self.registry.model_for(name, decision.query_type, ctx.model_hint)
            timeout_s = min(descriptor.timeout_s, remaining)
            outcome = await self._dispatch(name, model, messages, timeout_s, timeout_s < descriptor.timeout_s)
            attempted.append(name)

            if isinstance(outcome, Success):
                if index > 0:
                    FALLBACK_TOTAL.labels(skip_reason or "provider_error", decision.candidates[0], name).inc()
                self.cache.put(
                    key,
                    CacheEntry(
                        content=outcome.content,
                        model_used=model,
                        provider_used=name,
                        input_tokens=outcome.input_tokens,
                        output_tokens=outcome.output_tokens,
                    ),
                    self.cache_ttl_seconds,
                )
                result = RouteResult(
                    content=outcome.content,
                    provider_used=name,
                    model_used=model,
                    input_tokens=outcome.input_tokens,
                    output_tokens=outcome.output_tokens,
                    latency_ms=(time.perf_counter() - start) * 1000,
                    cached=False,
                    fallback_used=index > 0,
                    query_type=decision.query_type,
                )
                log_event(
                    logging.INFO,
                    "route_completed",
                    user_id=ctx.user_id,
                    provider=name,
                    model=model,
                    fallback_used=result.fallback_used,
                    latency_ms=round(result.latency_ms, 2),
                )
                return result

            skip_reason = "timeout" if isinstance(outcome, Timeout) else "provider_error"

        raise AllProvidersExhausted(
            attempted=attempted,
            rate_limited=rate_limited,
            retry_after_seconds=min(retry_after) if retry_after else None,
        )

    async def _dispatch(
        self,
        name: str,
        model: str,
        messages: list[ChatMessage],
        timeout_s: float,
        deadline_capped: bool,
    ) -> CallOutcome:
        # Shielded so a cancelled caller still lets the attempt finish and be recorded.
        task = asyncio.ensure_future(self._attempt(name, model, messages, timeout_s, deadline_capped))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _attempt(
        self,
        name: str,
        model: str,
        messages: list[ChatMessage],
        timeout_s: float,
        deadline_capped: bool,
    ) -> CallOutcome:
        client = self.providers[name]
        start = time.perf_counter()
        with _tracer.start_as_current_span("provider.call") as span:
            span.set_attribute("llm.provider", name)
            span.set_attribute("llm.model", model)
            try:
                reply = await asyncio.wait_for(client.call(model, messages, timeout_s), timeout_s)
            except (asyncio.TimeoutError, ProviderTimeoutError):
                outcome = Timeout(latency_ms=_elapsed_ms(start))
            except ProviderCallError as exc:
                outcome = UpstreamError(code=exc.code, message=str(exc), latency_ms=_elapsed_ms(start))
            except Exception as exc:
                outcome = UpstreamError(code="unexpected", message=exc.__class__.__name__, latency_ms=_elapsed_ms(start))
            else:
                outcome = Success(
                    content=reply.content,
                    input_tokens=reply.input_tokens,
                    output_tokens=reply.output_tokens,
                    latency_ms=_elapsed_ms(start),
                )
            span.set_attribute("llm.outcome", type(outcome).__name__)
        self._record(name, outcome, deadline_capped)
        return outcome

    def _record(self, name: str, outcome: CallOutcome, deadline_capped: bool) -> None:
        PROVIDER_LATENCY.labels(name).observe(outcome.latency_ms / 1000)
        if isinstance(outcome, Success):
            PROVIDER_ATTEMPTS_TOTAL.labels(name, "success").inc()
            self.usage.record(name, Outcome.SUCCESS, outcome.input_tokens, outcome.output_tokens, outcome.latency_ms)
            self.health.record_success(name, outcome.latency_ms)
            return

        self.usage.record(name, Outcome.FAILURE, latency_ms=outcome.latency_ms)
        if isinstance(outcome, Timeout):
            PROVIDER_ATTEMPTS_TOTAL.labels(name, "timeout").inc()
            error_class = "timeout"
            # a call cut short by the request deadline says nothing about the provider
            if not deadline_capped:
                self.health.record_failure(name, error_class, outcome.latency_ms)
        else:
            PROVIDER_ATTEMPTS_TOTAL.labels(name, "error").inc()
            error_class = outcome.code
            self.health.record_failure(name, f"{outcome.code}: {outcome.message}", outcome.latency_ms)
        log_event(
            logging.WARNING,
            "provider_attempt_failed",
            provider=name,
            error_class=error_class,
            latency_ms=round(outcome.latency_ms, 2),
        )

    async def _load_overrides(self, user_id: str) -> dict[str, int]:
        if self.settings_store is None:
            return {}
        try:
            # stores may block on a database round-trip
            return await asyncio.to_thread(self.settings_store.get_overrides, user_id)
        except Exception as exc:
            FAIL_OPEN_TOTAL.labels("settings").inc()
            log_event(logging.WARNING, "settings_overrides_unavailable", user_id=user_id, error=exc.__class__.__name__)
            return {}

    def _degraded(
        self,
        ctx: RequestContext,
        decision: RouteDecision,
        exc: AllProvidersExhausted,
        start: float,
    ) -> RouteResult:
        DEGRADED_RESPONSES_TOTAL.labels(decision.query_type).inc()
        retry_after = exc.retry_after_seconds if not exc.attempted else None
        log_event(
            logging.ERROR,
            "all_providers_exhausted",
            user_id=ctx.user_id,
            attempted=exc.attempted,
            rate_limited=exc.rate_limited,
            candidates=list(decision.candidates),
        )
        return RouteResult(
            content=DEGRADED_MESSAGES.get(decision.query_type, DEGRADED_MESSAGES["general"]),
            provider_used=DEGRADED_PROVIDER,
            model_used=DEGRADED_MODEL,
            input_tokens=0,
            output_tokens=0,
            latency_ms=(time.perf_counter() - start) * 1000,
            cached=False,
            fallback_used=True,
            degraded=True,
            query_type=decision.query_type,
            retry_after_seconds=retry_after,
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
