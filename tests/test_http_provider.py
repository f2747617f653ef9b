import asyncio

import httpx
import pytest

from orchestrator.errors import ProviderCallError, ProviderTimeoutError
from orchestrator.http_provider import OpenAICompatibleProvider
from orchestrator.schemas import ChatMessage

MESSAGES = [ChatMessage(role="user", content="What is gravity?")]


def _provider(handler) -> OpenAICompatibleProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAICompatibleProvider(base_url="https://example.test/v1/", api_key="secret", client=client)


def test_call_parses_choices_and_usage():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": "Gravity attracts mass."}}],
                "usage": {"prompt_tokens": 7, "completion_tokens": 5},
            },
        )

    reply = asyncio.run(_provider(handler).call("llama", MESSAGES, timeout_s=1.0))

    assert reply.content == "Gravity attracts mass."
    assert (reply.input_tokens, reply.output_tokens) == (7, 5)
    assert seen["url"] == "https://example.test/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"


def test_call_estimates_tokens_when_usage_missing():
    def handler(request):
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok then"}}]})

    reply = asyncio.run(_provider(handler).call("llama", MESSAGES, timeout_s=1.0))
    assert reply.input_tokens >= 1
    assert reply.output_tokens >= 1


@pytest.mark.parametrize(
    "status_code, code",
    [(401, "auth"), (429, "rate_limited"), (500, "upstream")],
)
def test_call_maps_status_codes(status_code, code):
    def handler(request):
        return httpx.Response(status_code, json={"error": "nope"})

    with pytest.raises(ProviderCallError) as exc_info:
        asyncio.run(_provider(handler).call("llama", MESSAGES, timeout_s=1.0))
    assert exc_info.value.code == code
    assert exc_info.value.status_code == status_code


def test_call_rejects_malformed_body():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(ProviderCallError) as exc_info:
        asyncio.run(_provider(handler).call("llama", MESSAGES, timeout_s=1.0))
    assert exc_info.value.code == "malformed_response"


def test_call_maps_timeouts():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderTimeoutError):
        asyncio.run(_provider(handler).call("llama", MESSAGES, timeout_s=1.0))
