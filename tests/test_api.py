# tests/test_api.py
from gateway.types import FailureReason, FatalFailure, Provider, RetryableFailure, Success

QUOTA = RetryableFailure(FailureReason.QUOTA_OR_SERVER_ERROR, "HTTP 429: quota exceeded")


def test_generate_returns_data_and_source(api_setup, fake_adapter):
    gemini = fake_adapter(Provider.GEMINI, {"g1": Success('{"title": "ok"}')})
    api_setup["adapters"] = {Provider.GEMINI: gemini}
    api_setup["keys"] = {Provider.GEMINI: ["g1"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        response = client.post("/api/generate", json={
            "prompt": "title please",
            "schema": {"type": "object", "required": ["title"]},
        })

    assert response.status_code == 200
    assert response.json() == {"data": {"title": "ok"}, "apiSource": "gemini", "attempts": 1}
    assert "X-Request-ID" in response.headers


def test_request_id_is_echoed(api_setup, fake_adapter):
    api_setup["adapters"] = {Provider.GEMINI: fake_adapter(Provider.GEMINI, default=Success("hi"))}
    api_setup["keys"] = {Provider.GEMINI: ["g1"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        response = client.post("/api/generate", json={"prompt": "hi"}, headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
    assert response.json()["data"] == {"text": "hi"}


def test_rotation_persists_per_caller(api_setup, fake_adapter):
    gemini = fake_adapter(Provider.GEMINI, {"g1": QUOTA, "g2": Success("ok")})
    api_setup["adapters"] = {Provider.GEMINI: gemini}
    api_setup["keys"] = {Provider.GEMINI: ["g1", "g2"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        first = client.post("/api/generate", json={"prompt": "a"}, headers={"X-User-Id": "alice"})
        second = client.post("/api/generate", json={"prompt": "b"}, headers={"X-User-Id": "alice"})
        other = client.post("/api/generate", json={"prompt": "c"}, headers={"X-User-Id": "bob"})

    assert first.json()["attempts"] == 2
    assert second.json()["attempts"] == 1
    assert other.json()["attempts"] == 2


def test_exhaustion_maps_to_503(api_setup, fake_adapter):
    api_setup["adapters"] = {Provider.GEMINI: fake_adapter(Provider.GEMINI, default=QUOTA)}
    api_setup["keys"] = {Provider.GEMINI: ["g1", "g2"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        response = client.post("/api/generate", json={"prompt": "hello"})

    assert response.status_code == 503
    body = response.json()
    assert body["reason"] == "quota_or_server_error"
    assert body["attempts"] == 2
    assert "last error: HTTP 429: quota exceeded" in body["message"]


def test_content_block_maps_to_422(api_setup, fake_adapter):
    blocked = FatalFailure(FailureReason.CONTENT_BLOCKED, "candidate blocked: SAFETY")
    api_setup["adapters"] = {Provider.GEMINI: fake_adapter(Provider.GEMINI, default=blocked)}
    api_setup["keys"] = {Provider.GEMINI: ["g1"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        response = client.post("/api/generate", json={"prompt": "hello"})

    assert response.status_code == 422
    assert response.json()["reason"] == "content_blocked"


def test_client_error_maps_to_502(api_setup, fake_adapter):
    rejected = FatalFailure(FailureReason.CLIENT_ERROR, "HTTP 401: invalid key")
    api_setup["adapters"] = {Provider.OPENAI: fake_adapter(Provider.OPENAI, default=rejected)}
    api_setup["keys"] = {Provider.OPENAI: ["k1"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        response = client.post("/api/generate", json={"prompt": "hello"})

    assert response.status_code == 502
    assert response.json()["attempts"] == 1


def test_no_credentials_maps_to_400(client):
    response = client.post("/api/generate", json={"prompt": "hello"})

    assert response.status_code == 400
    assert response.json()["reason"] == "no_credentials_configured"


def test_blank_prompt_is_rejected(client):
    response = client.post("/api/generate", json={"prompt": "   "})
    assert response.status_code == 422


def test_health_reports_configured_providers(api_setup):
    api_setup["keys"] = {Provider.GEMINI: ["g1"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["providers"] == ["gemini"]


def test_metrics_endpoint(client):
    client.post("/api/generate", json={"prompt": "hello"})
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "gateway_requests_total" in response.text


def test_caller_pools_evict_least_recently_used():
    from api.app import CallerPools
    from gateway.credential_pool import CredentialPool

    pools = CallerPools(factory=lambda caller_id: CredentialPool({"gemini": ["g1"]}), max_size=2)
    alice = pools.get("alice")
    pools.get("bob")
    assert pools.get("alice") is alice
    pools.get("carol")

    assert len(pools) == 2
    assert "bob" not in pools
    assert "alice" in pools

    pools.discard("alice")
    assert "alice" not in pools


def test_many_callers_do_not_grow_pools_unbounded(api_setup, fake_adapter, monkeypatch):
    monkeypatch.setattr("core.settings.MAX_CALLER_POOLS", 10)
    api_setup["adapters"] = {Provider.GEMINI: fake_adapter(Provider.GEMINI, default=Success("hi"))}
    api_setup["keys"] = {Provider.GEMINI: ["g1"]}

    from fastapi.testclient import TestClient
    from api.app import app

    with TestClient(app) as client:
        for i in range(50):
            client.post("/api/generate", json={"prompt": "hi"}, headers={"X-User-Id": f"u{i}"})
        assert len(app.state.pools) == 10
