from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from orchestrator.schemas import ChatMessage


@dataclass(frozen=True)
class ProviderReply:
    content: str
    input_tokens: int
    output_tokens: int


@dataclass(frozen=True)
class HealthCheckResult:
    healthy: bool
    response_time_ms: float
    error: str | None = None


@dataclass(frozen=True)
class Success:
    content: str
    input_tokens: int
    output_tokens: int
    latency_ms: float


@dataclass(frozen=True)
class Timeout:
    latency_ms: float


@dataclass(frozen=True)
class UpstreamError:
    code: str
    message: str
    latency_ms: float


CallOutcome = Union[Success, Timeout, UpstreamError]


class Provider(ABC):
    @abstractmethod
    async def call(self, model: str, messages: list[ChatMessage], timeout_s: float) -> ProviderReply:
        raise NotImplementedError

    @abstractmethod
    async def health_check(self, timeout_s: float) -> HealthCheckResult:
        raise NotImplementedError
