import time

import httpx

from orchestrator.errors import ProviderCallError, ProviderTimeoutError
from orchestrator.provider import HealthCheckResult, Provider, ProviderReply
from orchestrator.schemas import ChatMessage


class OpenAICompatibleProvider(Provider):
    """Chat-completions client for upstreams exposing the OpenAI wire format."""

    def __init__(self, base_url: str, api_key: str, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def call(self, model: str, messages: list[ChatMessage], timeout_s: float) -> ProviderReply:
        payload = {
            "model": model,
            "messages": [msg.model_dump() for msg in messages],
            "stream": False,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(
                    f"{self.base_url}/chat/completions", json=payload, headers=self._headers(), timeout=timeout_s
                )
            else:
                async with httpx.AsyncClient(timeout=timeout_s) as client:
                    resp = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(f"timed out after {timeout_s}s") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderCallError(
                f"upstream returned {exc.response.status_code}",
                code=_error_code(exc.response.status_code),
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderCallError(str(exc) or exc.__class__.__name__, code="upstream") from exc
        except ValueError as exc:
            raise ProviderCallError("response body is not JSON", code="malformed_response") from exc

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderCallError("response has no message content", code="malformed_response") from exc
        if not isinstance(content, str):
            raise ProviderCallError("message content is not text", code="malformed_response")

        usage = data.get("usage") or {}
        input_tokens = int(usage.get("prompt_tokens") or 0)
        output_tokens = int(usage.get("completion_tokens") or 0)
        if input_tokens + output_tokens == 0:
            input_tokens = _estimate_tokens(" ".join(m.content for m in messages))
            output_tokens = _estimate_tokens(content)

        return ProviderReply(content=content, input_tokens=input_tokens, output_tokens=output_tokens)

    async def health_check(self, timeout_s: float) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=timeout_s) as client:
                resp = await client.get(f"{self.base_url}/models", headers=self._headers())
        except httpx.HTTPError as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            return HealthCheckResult(healthy=False, response_time_ms=elapsed_ms, error=exc.__class__.__name__)
        elapsed_ms = (time.perf_counter() - start) * 1000
        if resp.status_code != 200:
            return HealthCheckResult(healthy=False, response_time_ms=elapsed_ms, error=f"status {resp.status_code}")
        return HealthCheckResult(healthy=True, response_time_ms=elapsed_ms)


def _error_code(status_code: int) -> str:
    if status_code in (401, 403):
        return "auth"
    if status_code == 429:
        return "rate_limited"
    return "upstream"


def _estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4)
