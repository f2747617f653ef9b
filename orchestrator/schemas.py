from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(min_length=1)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=20000)
    chat_type: str = Field(default="general", min_length=1, max_length=50)
    preferred_provider: str | None = Field(default=None, min_length=1)
    include_app_data: bool = False
    model_hint: str | None = Field(default=None, min_length=1)


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0


class ChatResponse(BaseModel):
    content: str
    provider_used: str
    model_used: str
    tokens_used: TokenUsage
    latency_ms: float
    cached: bool = False
    fallback_used: bool = False
    degraded: bool = False
    query_type: str = "general"
    retry_after_seconds: float | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


class ProviderHealthEntry(BaseModel):
    provider: str
    status: str
    healthy: bool
    last_latency_ms: float | None
    last_checked_at: float | None
    consecutive_failures: int
    error_rate: float
    last_error: str | None = None


class HealthSnapshotResponse(BaseModel):
    providers: list[ProviderHealthEntry]
    healthy_count: int
    fallback_chains: dict[str, list[str]] = {}


class ProviderUsageEntry(BaseModel):
    provider: str
    request_count: int
    success_count: int
    failure_count: int
    total_input_tokens: int
    total_output_tokens: int
    total_latency_ms: float
    avg_latency_ms: float
    success_rate: float
    request_share_pct: float
    cost_estimate: float


class UsageSnapshotResponse(BaseModel):
    providers: list[ProviderUsageEntry]
    total_requests: int
    total_successes: int
    total_failures: int
    total_tokens: int
    cost_estimate: float


class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    evictions: int
    expirations: int
    size: int
    capacity: int
    hit_rate: float
