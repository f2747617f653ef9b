from fastapi.testclient import TestClient

from orchestrator import main
from orchestrator.config import OrchestratorConfig
from orchestrator.mock_provider import MockProvider
from orchestrator.service import OrchestratorService
from orchestrator.settings_store import InMemorySettingsStore


def _client(fail=()) -> TestClient:
    config = OrchestratorConfig(provider_order=("groq", "gemini"), admin_api_key="admin-secret")
    providers = {name: MockProvider(name=name, delay_ms=0, fail=name in fail) for name in config.provider_order}
    main.service = OrchestratorService(config, providers=providers, settings_store=InMemorySettingsStore())
    return TestClient(main.app)


def test_health_ok():
    client = _client()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_metrics_exposed():
    client = _client()
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"http_requests_total" in resp.content


def test_chat_requires_user_header():
    client = _client()
    resp = client.post("/v1/chat", json={"message": "What is gravity?"})
    assert resp.status_code == 401
    assert resp.json() == {"error": {"code": "unauthorized", "message": "Missing X-User-Id header"}}


def test_chat_rejects_empty_message():
    client = _client()
    resp = client.post("/v1/chat", json={"message": ""}, headers={"X-User-Id": "u1"})
    assert resp.status_code == 422


def test_chat_routes_and_caches():
    client = _client()
    body = {"message": "What is gravity?", "chat_type": "general", "preferred_provider": "groq"}

    first = client.post("/v1/chat", json=body, headers={"X-User-Id": "u1"})
    second = client.post("/v1/chat", json=body, headers={"X-User-Id": "u2"})

    assert first.status_code == 200
    assert first.json()["provider_used"] == "groq"
    assert first.headers["X-Cache"] == "miss"
    assert second.json()["cached"] is True
    assert second.headers["X-Cache"] == "hit"
    assert second.json()["content"] == first.json()["content"]


def test_chat_returns_degraded_response_when_everything_fails():
    client = _client(fail=("groq", "gemini"))
    resp = client.post("/v1/chat", json={"message": "What is gravity?"}, headers={"X-User-Id": "u1"})

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["degraded"] is True
    assert payload["fallback_used"] is True
    assert payload["provider_used"] == "system"


def test_admin_snapshots_and_cache_clear():
    client = _client()
    headers = {"X-User-Id": "admin", "X-Admin-Key": "admin-secret"}
    client.post("/v1/chat", json={"message": "What is gravity?"}, headers=headers)

    usage = client.get("/v1/admin/usage", headers=headers).json()
    assert usage["total_requests"] == 1

    health = client.get("/v1/admin/health", headers=headers).json()
    assert health["healthy_count"] == 2

    probed = client.post("/v1/admin/health/probe", headers=headers).json()
    assert {entry["status"] for entry in probed["providers"]} == {"healthy"}

    assert client.get("/v1/admin/cache", headers=headers).json()["size"] == 1
    assert client.delete("/v1/admin/cache", headers=headers).json() == {"status": "ok"}
    assert client.get("/v1/admin/cache", headers=headers).json()["size"] == 0
    assert health["fallback_chains"]["time_sensitive"] == ["gemini", "groq"]


def test_admin_endpoints_require_admin_key():
    client = _client()
    for headers in ({"X-User-Id": "u1"}, {"X-User-Id": "u1", "X-Admin-Key": "wrong"}):
        resp = client.delete("/v1/admin/cache", headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert client.get("/v1/admin/usage", headers=headers).status_code == 403


def test_docs_are_open_and_document_error_envelope():
    client = _client()
    assert client.get("/docs").status_code == 200

    schema = client.get("/openapi.json").json()
    assert "401" in schema["paths"]["/v1/chat"]["post"]["responses"]
    assert "ErrorResponse" in schema["components"]["schemas"]
