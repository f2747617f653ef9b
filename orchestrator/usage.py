from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum

from orchestrator.metrics import COST_TOTAL, TOKENS_TOTAL
from orchestrator.pricing import estimate_cost


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class UsageAggregate:
    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_latency_ms: float = 0.0


class UsageAccountant:
    """Additive per-provider counters; derived figures are computed on read."""

    def __init__(self, cost_weights: dict[str, float] | None = None) -> None:
        self._cost_weights = dict(cost_weights or {})
        self._aggregates: dict[str, UsageAggregate] = {}
        self._lock = threading.Lock()

    def record(
        self,
        provider: str,
        outcome: Outcome,
        input_tokens: int = 0,
        output_tokens: int = 0,
        latency_ms: float = 0.0,
    ) -> None:
        with self._lock:
            aggregate = self._aggregates.setdefault(provider, UsageAggregate())
            aggregate.request_count += 1
            if outcome is Outcome.SUCCESS:
                aggregate.success_count += 1
            else:
                aggregate.failure_count += 1
            aggregate.total_input_tokens += input_tokens
            aggregate.total_output_tokens += output_tokens
            aggregate.total_latency_ms += latency_ms

        if input_tokens:
            TOKENS_TOTAL.labels(provider, "input").inc(input_tokens)
        if output_tokens:
            TOKENS_TOTAL.labels(provider, "output").inc(output_tokens)
        cost = estimate_cost(self._cost_weights.get(provider, 0.0), input_tokens, output_tokens)
        if cost:
            COST_TOTAL.labels(provider).inc(cost)

    def aggregate(self, provider: str) -> UsageAggregate:
        with self._lock:
            current = self._aggregates.get(provider, UsageAggregate())
            return UsageAggregate(**vars(current))

    def snapshot(self) -> dict:
        with self._lock:
            copies = {name: UsageAggregate(**vars(agg)) for name, agg in self._aggregates.items()}

        total_requests = sum(agg.request_count for agg in copies.values())
        providers = []
        total_cost = 0.0
        for name, agg in copies.items():
            cost = estimate_cost(self._cost_weights.get(name, 0.0), agg.total_input_tokens, agg.total_output_tokens)
            total_cost += cost
            providers.append(
                {
                    "provider": name,
                    "request_count": agg.request_count,
                    "success_count": agg.success_count,
                    "failure_count": agg.failure_count,
                    "total_input_tokens": agg.total_input_tokens,
                    "total_output_tokens": agg.total_output_tokens,
                    "total_latency_ms": agg.total_latency_ms,
                    "avg_latency_ms": agg.total_latency_ms / agg.request_count if agg.request_count else 0.0,
                    "success_rate": agg.success_count / agg.request_count if agg.request_count else 0.0,
                    "request_share_pct": 100.0 * agg.request_count / total_requests if total_requests else 0.0,
                    "cost_estimate": cost,
                }
            )
        providers.sort(key=lambda item: item["request_count"], reverse=True)
        return {
            "providers": providers,
            "total_requests": total_requests,
            "total_successes": sum(agg.success_count for agg in copies.values()),
            "total_failures": sum(agg.failure_count for agg in copies.values()),
            "total_tokens": sum(agg.total_input_tokens + agg.total_output_tokens for agg in copies.values()),
            "cost_estimate": total_cost,
        }
