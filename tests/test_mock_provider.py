import asyncio

import pytest

from orchestrator.errors import ProviderCallError
from orchestrator.mock_provider import MockProvider
from orchestrator.schemas import ChatMessage


def test_mock_provider_call_returns_reply():
    provider = MockProvider(name="groq", delay_ms=0)
    messages = [ChatMessage(role="user", content="hi there")]

    reply = asyncio.run(provider.call("m-1", messages, timeout_s=1.0))

    assert reply.content == "[groq:m-1] hi there"
    assert reply.input_tokens >= 1
    assert reply.output_tokens >= 1
    assert provider.calls == 1


def test_mock_provider_failure_and_health():
    provider = MockProvider(name="groq", delay_ms=0, fail=True)
    with pytest.raises(ProviderCallError):
        asyncio.run(provider.call("m-1", [ChatMessage(role="user", content="hi")], timeout_s=1.0))

    result = asyncio.run(provider.health_check(timeout_s=1.0))
    assert result.healthy is False
    assert asyncio.run(MockProvider(delay_ms=0).health_check(timeout_s=1.0)).healthy is True
