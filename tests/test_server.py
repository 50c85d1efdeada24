"""Tests for mamacare.server: FastAPI routes and request validation."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mamacare.errors import InvalidRequestError
from mamacare.providers.scripted import ScriptedProvider
from mamacare.proxy import StreamingProxy
from mamacare.schemas.chat import Language, Platform
from mamacare.schemas.config import ProxyConfig
from mamacare.schemas.streaming import SSEDecoder
from mamacare.server import create_app, validate_chat_request


def _make_client(provider: ScriptedProvider | None = None) -> tuple[TestClient, ScriptedProvider]:
    provider = provider or ScriptedProvider()
    proxy = StreamingProxy(provider, ProxyConfig(fallback_slice_delay=0.0))
    return TestClient(create_app(proxy)), provider


def _events(body: str) -> list:
    decoder = SSEDecoder()
    return decoder.feed(body) + decoder.flush()


# ── Validation ───────────────────────────────────────────────


class TestValidateChatRequest:
    def test_valid_defaults_to_web(self):
        request = validate_chat_request({"question": "Hi?", "language": "sw"})
        assert request.language is Language.SWAHILI
        assert request.platform is Platform.WEB

    def test_mobile(self):
        request = validate_chat_request(
            {"question": "Hi?", "language": "en", "platform": "mobile"}
        )
        assert request.platform is Platform.MOBILE

    @pytest.mark.parametrize(
        "payload",
        [
            {"language": "en"},
            {"question": "Hi?"},
            {"question": "   ", "language": "en"},
            {"question": 42, "language": "en"},
        ],
    )
    def test_missing_fields(self, payload):
        with pytest.raises(InvalidRequestError) as exc_info:
            validate_chat_request(payload)
        assert exc_info.value.code == "MISSING_FIELDS"

    def test_unsupported_language(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            validate_chat_request({"question": "Hi?", "language": "fr"})
        assert exc_info.value.code == "UNSUPPORTED_LANGUAGE"

    def test_unsupported_platform(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            validate_chat_request({"question": "Hi?", "language": "en", "platform": "tv"})
        assert exc_info.value.code == "UNSUPPORTED_PLATFORM"

    def test_not_an_object(self):
        with pytest.raises(InvalidRequestError, match="Invalid request body"):
            validate_chat_request(["Hi?", "en"])


# ── App ──────────────────────────────────────────────────────


class TestCreateApp:
    def test_returns_fastapi_instance(self):
        proxy = StreamingProxy(ScriptedProvider())
        app = create_app(proxy)
        assert isinstance(app, FastAPI)
        assert app.state.proxy is proxy

    def test_has_routes(self):
        app = create_app(StreamingProxy(ScriptedProvider()))
        paths = {route.path for route in app.routes}
        assert {"/api/chat", "/api/chat-sse", "/api/status", "/health"} <= paths


# ── Chat routes ──────────────────────────────────────────────


class TestChatRoutes:
    def test_post_streams_events(self):
        client, _ = _make_client()
        response = client.post("/api/chat", json={"question": "What is prenatal care?",
                                                  "language": "en"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache, no-transform"
        types = [e.type for e in _events(response.text)]
        assert types[0] == "init"
        assert types[-2:] == ["suggestions", "done"]

    def test_get_streams_events(self):
        client, provider = _make_client()
        response = client.get(
            "/api/chat-sse",
            params={"question": "What is prenatal care?", "language": "lg", "platform": "mobile"},
        )
        assert response.status_code == 200
        events = _events(response.text)
        assert len(events[-2].suggestions) == 4
        assert "Respond ONLY in Luganda language" in provider.prompts[0]

    def test_missing_fields_rejected_without_upstream_call(self):
        client, provider = _make_client()
        response = client.post("/api/chat", json={"question": "Hi?"})
        assert response.status_code == 400
        events = _events(response.text)
        assert [e.type for e in events] == ["error"]
        assert events[0].message == "Question or language is missing"
        assert provider.prompts == []

    def test_unsupported_language_rejected(self):
        client, provider = _make_client()
        response = client.post("/api/chat", json={"question": "Hi?", "language": "fr"})
        assert response.status_code == 400
        assert "Unsupported language" in _events(response.text)[0].message
        assert provider.prompts == []

    def test_invalid_json_rejected(self):
        client, _ = _make_client()
        response = client.post(
            "/api/chat", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400
        assert _events(response.text)[0].message == "Invalid request body"

    def test_get_missing_language_rejected(self):
        client, _ = _make_client()
        response = client.get("/api/chat-sse", params={"question": "Hi?"})
        assert response.status_code == 400

    def test_unavailable_upstream_still_200(self):
        client, _ = _make_client(ScriptedProvider(fail_start=True))
        response = client.post("/api/chat", json={"question": "Hi?", "language": "en"})
        assert response.status_code == 200
        assert [e.type for e in _events(response.text)][-1] == "done"


# ── Status ───────────────────────────────────────────────────


class TestStatusRoutes:
    def test_health(self):
        client, _ = _make_client()
        assert client.get("/health").json() == {"status": "ok"}

    def test_status_counts_requests_and_rejections(self):
        client, _ = _make_client()
        client.post("/api/chat", json={"question": "Hi?", "language": "en"})
        client.post("/api/chat", json={"language": "en"})
        data = client.get("/api/status").json()
        assert data["status"] == "ok"
        assert data["languages"]["ru"] == "Runyankore"
        assert data["stats"]["requests"] == 1
        assert data["stats"]["completed"] == 1
        assert data["stats"]["validation_failures"] == 1
