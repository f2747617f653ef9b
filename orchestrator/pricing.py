from orchestrator.registry import ProviderRegistry


def estimate_cost(cost_weight: float, input_tokens: int, output_tokens: int) -> float:
    return cost_weight * (input_tokens + output_tokens) / 1000


def cost_weights(registry: ProviderRegistry, overrides: dict[str, float] | None = None) -> dict[str, float]:
    weights = {descriptor.name: descriptor.cost_weight for descriptor in registry.ordered()}
    for name, weight in (overrides or {}).items():
        weights[name] = float(weight)
    return weights
