import pytest

from orchestrator.registry import DEFAULT_PROVIDERS, ProviderDescriptor, ProviderRegistry, build_registry


def test_build_registry_follows_configured_order():
    registry = build_registry(["gemini", "groq"])
    assert registry.names() == ["gemini", "groq"]
    assert registry.preference_index("groq") == 1
    assert registry.preference_index("unknown") == 2
    assert "groq" in registry
    assert "cohere" not in registry


def test_build_registry_rejects_unknown_provider():
    with pytest.raises(ValueError):
        build_registry(["groq", "nope"])


def test_descriptor_requires_default_model_in_models():
    with pytest.raises(ValueError):
        ProviderDescriptor(name="x", models=("a",), default_model="b")


def test_duplicate_names_rejected():
    with pytest.raises(ValueError):
        ProviderRegistry([DEFAULT_PROVIDERS[0], DEFAULT_PROVIDERS[0]])


def test_model_for_uses_hint_then_query_type_then_default():
    registry = build_registry(["mistral"])
    assert registry.model_for("mistral", "general") == "mistral-small-latest"
    assert registry.model_for("mistral", "app_data") == "mistral-medium-latest"
    assert registry.model_for("mistral", "general", model_hint="mistral-large-latest") == "mistral-large-latest"
    assert registry.model_for("mistral", "general", model_hint="gpt-4") == "mistral-small-latest"


def test_query_type_chain_sets_preference_before_registry_order():
    registry = build_registry(
        ["groq", "gemini", "cerebras"],
        chains={"time_sensitive": ("gemini", "mistral", "groq")},
    )

    assert registry.chains() == {"time_sensitive": ["gemini", "groq"]}
    assert registry.preference_index("gemini", "time_sensitive") == 0
    assert registry.preference_index("groq", "time_sensitive") == 1
    assert registry.preference_index("cerebras", "time_sensitive") == 4
    assert registry.preference_index("gemini", "general") == 1
    assert registry.preference_index("gemini") == 1
