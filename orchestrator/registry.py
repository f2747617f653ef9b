from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    models: tuple[str, ...]
    default_model: str
    timeout_ms: int = 30000
    cost_weight: float = 0.0
    capabilities: frozenset[str] = frozenset({"chat"})
    query_models: dict[str, str] = field(default_factory=dict)
    base_url: str | None = None
    api_key_env: str | None = None

    def __post_init__(self) -> None:
        if self.default_model not in self.models:
            raise ValueError(f"default model {self.default_model} not offered by {self.name}")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000


DEFAULT_PROVIDERS = (
    ProviderDescriptor(
        name="groq",
        models=("llama-3.3-70b-versatile", "llama-3.1-8b-instant"),
        default_model="llama-3.3-70b-versatile",
        timeout_ms=20000,
        cost_weight=0.59,
        base_url="https://api.groq.com/openai/v1",
        api_key_env="GROQ_API_KEY",
    ),
    ProviderDescriptor(
        name="gemini",
        models=("gemini-2.5-flash", "gemini-2.0-flash-lite"),
        default_model="gemini-2.5-flash",
        timeout_ms=30000,
        cost_weight=0.30,
        query_models={"time_sensitive": "gemini-2.0-flash-lite"},
        base_url="https://generativelanguage.googleapis.com/v1beta/openai",
        api_key_env="GEMINI_API_KEY",
    ),
    ProviderDescriptor(
        name="cerebras",
        models=("llama-3.3-70b", "llama-3.1-8b"),
        default_model="llama-3.3-70b",
        timeout_ms=20000,
        cost_weight=0.60,
        query_models={"general": "llama-3.1-8b"},
        base_url="https://api.cerebras.ai/v1",
        api_key_env="CEREBRAS_API_KEY",
    ),
    ProviderDescriptor(
        name="mistral",
        models=("mistral-small-latest", "mistral-medium-latest", "mistral-large-latest"),
        default_model="mistral-small-latest",
        timeout_ms=30000,
        cost_weight=1.00,
        query_models={"time_sensitive": "mistral-large-latest", "app_data": "mistral-medium-latest"},
        base_url="https://api.mistral.ai/v1",
        api_key_env="MISTRAL_API_KEY",
    ),
    ProviderDescriptor(
        name="openrouter",
        models=("openai/gpt-3.5-turbo",),
        default_model="openai/gpt-3.5-turbo",
        timeout_ms=30000,
        cost_weight=1.50,
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",
    ),
    ProviderDescriptor(
        name="cohere",
        models=("command-light", "command"),
        default_model="command-light",
        timeout_ms=30000,
        cost_weight=0.60,
        query_models={"time_sensitive": "command", "app_data": "command"},
        base_url="https://api.cohere.ai/compatibility/v1",
        api_key_env="COHERE_API_KEY",
    ),
)


class ProviderRegistry:
    """Ordered, immutable set of provider descriptors.

    The order is the configured preference order used as the final tie-break
    when ranking fallback candidates. A per-query-type chain, when present,
    takes precedence over it; providers missing from the chain follow in
    registry order.
    """

    def __init__(
        self,
        descriptors: list[ProviderDescriptor] | tuple[ProviderDescriptor, ...],
        chains: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._descriptors: dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._descriptors:
                raise ValueError(f"duplicate provider {descriptor.name}")
            self._descriptors[descriptor.name] = descriptor
        self._order = {name: index for index, name in enumerate(self._descriptors)}
        self._chains = {
            query_type: tuple(name for name in chain if name in self._descriptors)
            for query_type, chain in (chains or {}).items()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def get(self, name: str) -> ProviderDescriptor | None:
        return self._descriptors.get(name)

    def names(self) -> list[str]:
        return list(self._descriptors)

    def ordered(self) -> list[ProviderDescriptor]:
        return list(self._descriptors.values())

    def chains(self) -> dict[str, list[str]]:
        return {query_type: list(chain) for query_type, chain in self._chains.items()}

    def preference_index(self, name: str, query_type: str | None = None) -> int:
        chain = self._chains.get(query_type or "", ())
        if name in chain:
            return chain.index(name)
        return len(chain) + self._order.get(name, len(self._order))

    def model_for(self, name: str, query_type: str, model_hint: str | None = None) -> str:
        descriptor = self._descriptors[name]
        if model_hint and model_hint in descriptor.models:
            return model_hint
        return descriptor.query_models.get(query_type, descriptor.default_model)


def build_registry(
    order: tuple[str, ...] | list[str],
    descriptors: tuple[ProviderDescriptor, ...] = DEFAULT_PROVIDERS,
    chains: dict[str, tuple[str, ...]] | None = None,
) -> ProviderRegistry:
    known = {descriptor.name: descriptor for descriptor in descriptors}
    missing = [name for name in order if name not in known]
    if missing:
        raise ValueError(f"unknown providers in order: {', '.join(missing)}")
    return ProviderRegistry([known[name] for name in order], chains)
