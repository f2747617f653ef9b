import asyncio

from orchestrator.errors import ProviderCallError
from orchestrator.provider import HealthCheckResult, Provider, ProviderReply
from orchestrator.schemas import ChatMessage


class MockProvider(Provider):
    def __init__(self, name: str = "mock", delay_ms: int = 200, fail: bool = False, healthy: bool = True) -> None:
        self.name = name
        self.delay_ms = delay_ms
        self.fail = fail
        self.healthy = healthy
        self.calls = 0

    async def call(self, model: str, messages: list[ChatMessage], timeout_s: float) -> ProviderReply:
        self.calls += 1
        await asyncio.sleep(self.delay_ms / 1000)
        if self.fail:
            raise ProviderCallError(f"mock provider {self.name} failure", code="upstream", status_code=503)
        prompt = messages[-1].content if messages else ""
        content = f"[{self.name}:{model}] {prompt}"
        input_tokens = _estimate_tokens(" ".join(m.content for m in messages))
        output_tokens = _estimate_tokens(content)
        return ProviderReply(content=content, input_tokens=input_tokens, output_tokens=output_tokens)

    async def health_check(self, timeout_s: float) -> HealthCheckResult:
        await asyncio.sleep(self.delay_ms / 1000)
        if not self.healthy or self.fail:
            return HealthCheckResult(healthy=False, response_time_ms=float(self.delay_ms), error="mock unhealthy")
        return HealthCheckResult(healthy=True, response_time_ms=float(self.delay_ms))


def _estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4)
