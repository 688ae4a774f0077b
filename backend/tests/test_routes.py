"""Tests for the FastAPI surface"""

import json

import pytest
from fastapi.testclient import TestClient

from ai_gateway.config import Settings
from ai_gateway.main import create_app

from conftest import ScriptedAdaptor

PROMPT = "Summarize: photosynthesis converts light into chemical energy."


@pytest.fixture
def adaptor():
    return ScriptedAdaptor()


@pytest.fixture
def client(adaptor):
    app = create_app(settings=Settings(), adaptor=adaptor)
    with TestClient(app) as test_client:
        yield test_client


def open_all_breakers(client):
    gateway = client.app.state.gateway
    for provider in gateway.registry.providers():
        for _ in range(3):
            gateway.circuit_breaker.record_failure(provider.name)


def sse_events(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


class TestGenerate:
    def test_generate_then_cached(self, client):
        payload = {"model": "gpt-4", "prompt": PROMPT, "options": {}}

        first = client.post("/api/ai/generate", json=payload)
        second = client.post("/api/ai/generate", json=payload)

        assert first.status_code == 200
        data = first.json()
        assert data["model"] == "gpt-4"
        assert data["provider"] == "openai"
        assert data["metadata"]["cached"] is False
        assert data["usage"]["total_tokens"] >= 0
        assert second.json()["metadata"]["cached"] is True
        assert second.json()["content"] == data["content"]

    def test_stream_option_not_cached(self, client):
        payload = {"model": "gpt-4", "prompt": PROMPT, "options": {"stream": True}}

        client.post("/api/ai/generate", json=payload)
        second = client.post("/api/ai/generate", json=payload)

        assert second.json()["metadata"]["cached"] is False
        assert len(client.app.state.gateway.cache) == 0

    def test_caller_request_id(self, client):
        response = client.post("/api/ai/generate", json={
            "model": "gpt-4", "prompt": PROMPT, "metadata": {"request_id": "req-http"},
        })
        assert response.json()["metadata"]["request_id"] == "req-http"

    def test_blank_prompt_is_400(self, client):
        response = client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": "   "})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "invalid_request"

    def test_schema_validation_is_422(self, client):
        assert client.post("/api/ai/generate", json={"model": "", "prompt": PROMPT}).status_code == 422
        assert client.post("/api/ai/generate", json={
            "model": "gpt-4", "prompt": PROMPT, "options": {"temperature": 5},
        }).status_code == 422

    def test_all_failed_is_502(self, client, adaptor):
        adaptor.failing.update({"gpt-4", "claude-3", "gpt-3.5-turbo", "gemini-pro"})

        response = client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": PROMPT})

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["error"] == "all_providers_failed"
        assert detail["attempted_models"] == ["gpt-4", "claude-3", "gpt-3.5-turbo", "gemini-pro"]

    def test_no_provider_is_503(self, client, adaptor):
        open_all_breakers(client)

        response = client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": PROMPT})

        assert response.status_code == 503
        assert adaptor.calls == []


class TestStream:
    def test_stream_events(self, client):
        response = client.post("/api/ai/stream", json={"model": "claude-3", "prompt": PROMPT})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response.text)
        assert events[-1]["finished"] is True
        assert all(e["finished"] is False for e in events[:-1])
        assert events[-1]["content"] == f"claude-3: {PROMPT}"

    def test_stream_failure_before_first_chunk(self, client, adaptor):
        adaptor.failing.update({"gpt-4", "claude-3", "gpt-3.5-turbo", "gemini-pro"})

        response = client.post("/api/ai/stream", json={"model": "gpt-4", "prompt": PROMPT})

        assert response.status_code == 502

    def test_stream_blank_prompt(self, client):
        response = client.post("/api/ai/stream", json={"model": "gpt-4", "prompt": ""})
        assert response.status_code == 400


class TestModels:
    def test_list_models(self, client):
        open_breaker = client.app.state.gateway.circuit_breaker
        for _ in range(3):
            open_breaker.record_failure("mistral")

        models = {m["model"]: m for m in client.get("/api/ai/models").json()}

        assert models["gpt-4"] == {"model": "gpt-4", "provider": "openai", "available": True}
        assert models["mistral-large"]["available"] is False


class TestHealthAndMetrics:
    def test_health(self, client):
        data = client.get("/api/health").json()

        assert data["status"] == "ok"
        assert data["providers"]["openai"] == "closed"
        assert data["housekeeping_running"] is True

    def test_health_degraded(self, client):
        open_all_breakers(client)
        assert client.get("/api/health").json()["status"] == "degraded"

    def test_metrics(self, client):
        client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": PROMPT})
        client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": PROMPT})

        data = client.get("/api/metrics").json()

        assert data["requests_total"] == 2
        assert data["cache_hits_total"] == 1
        assert data["cache"]["entries"] == 1

    def test_prometheus(self, client):
        response = client.get("/api/metrics/prometheus")

        assert response.status_code == 200
        assert "gateway_requests_total 0" in response.text


class TestAdmin:
    def test_provider_stats(self, client):
        client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": PROMPT})

        providers = client.get("/api/admin/providers").json()["providers"]

        assert providers["openai"]["window"]["requests"] == 1
        assert providers["openai"]["pricing"]["input_cost_per_1k"] == 0.03
        assert providers["google"]["circuit_breaker"]["is_open"] is False

    def test_reset_breaker(self, client):
        open_all_breakers(client)

        response = client.post("/api/admin/providers/openai/reset")

        assert response.status_code == 200
        assert client.app.state.gateway.circuit_breaker.is_open("openai") is False

    def test_reset_unknown_provider(self, client):
        assert client.post("/api/admin/providers/nobody/reset").status_code == 404

    def test_clear_cache(self, client):
        client.post("/api/ai/generate", json={"model": "gpt-4", "prompt": PROMPT})

        assert client.delete("/api/admin/cache").json() == {"cleared": 1}
        assert len(client.app.state.gateway.cache) == 0
