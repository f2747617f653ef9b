from __future__ import annotations


class OrchestratorError(RuntimeError):
    pass


class AdmissionDenied(OrchestratorError):
    def __init__(self, provider: str, retry_after_seconds: float) -> None:
        super().__init__(f"rate limit exceeded for provider {provider}")
        self.provider = provider
        self.retry_after_seconds = retry_after_seconds


class ProviderError(OrchestratorError):
    code = "upstream"


class ProviderCallError(ProviderError):
    def __init__(self, message: str, code: str = "upstream", status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    code = "timeout"


class AllProvidersExhausted(OrchestratorError):
    def __init__(
        self,
        attempted: list[str],
        rate_limited: list[str],
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__("all providers exhausted")
        self.attempted = attempted
        self.rate_limited = rate_limited
        self.retry_after_seconds = retry_after_seconds


class CacheCorruption(OrchestratorError):
    pass
