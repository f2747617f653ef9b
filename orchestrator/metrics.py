from prometheus_client import Counter, Gauge, Histogram

REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)
PROVIDER_ATTEMPTS_TOTAL = Counter(
    "provider_attempts_total",
    "Provider call attempts by outcome",
    ["provider", "outcome"],
)
PROVIDER_LATENCY = Histogram(
    "provider_call_duration_seconds",
    "Provider call latency in seconds",
    ["provider"],
)
FALLBACK_TOTAL = Counter(
    "fallback_total",
    "Total fallbacks",
    ["reason", "from_provider", "to_provider"],
)
RATE_LIMITED_TOTAL = Counter(
    "rate_limited_total",
    "Total provider attempts skipped by the rate limiter",
    ["provider"],
)
FAIL_OPEN_TOTAL = Counter(
    "fail_open_total",
    "Internal faults absorbed by fail-open behaviour",
    ["component"],
)
CACHE_EVENTS_TOTAL = Counter(
    "cache_events_total",
    "Response cache events",
    ["event"],
)
DEGRADED_RESPONSES_TOTAL = Counter(
    "degraded_responses_total",
    "Responses served by graceful degradation",
    ["query_type"],
)
TOKENS_TOTAL = Counter(
    "tokens_total",
    "Total tokens processed",
    ["provider", "direction"],
)
COST_TOTAL = Counter(
    "cost_total",
    "Estimated cost in provider cost units",
    ["provider"],
)
PROVIDER_HEALTH_STATUS = Gauge(
    "provider_health_status",
    "Provider routing status (1 for the current status label)",
    ["provider", "status"],
)
