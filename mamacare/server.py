"""FastAPI server exposing the streaming proxy.

Routes:
    POST /api/chat       JSON body {question, language, platform?}
    GET  /api/chat-sse   same fields as query parameters
    GET  /api/status     supported languages, model, request counters
    GET  /health         liveness probe

Both chat routes answer with ``text/event-stream`` records of the form
``data: <json>\\n\\n``. Invalid input gets HTTP 400 and a single error
record; no stream is opened and the upstream is never called.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse

from mamacare import __version__
from mamacare.errors import InvalidRequestError
from mamacare.proxy import StreamingProxy
from mamacare.schemas.chat import LANGUAGE_NAMES, ChatRequest, Language, Platform
from mamacare.schemas.config import AppConfig
from mamacare.schemas.streaming import ErrorEvent, encode_event

logger = logging.getLogger(__name__)

_SSE_MEDIA_TYPE = "text/event-stream"
_SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def validate_chat_request(payload: Any) -> ChatRequest:
    """Check an inbound payload and build a ChatRequest from it.

    Raises:
        InvalidRequestError: If the body is not an object, the question
            or language is missing, or language/platform is unsupported.
    """
    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid request body")

    question = payload.get("question")
    language = payload.get("language")
    if not isinstance(question, str) or not question.strip() or not language:
        raise InvalidRequestError("Question or language is missing", code="MISSING_FIELDS")

    try:
        lang = Language(language)
    except ValueError:
        raise InvalidRequestError(
            f"Unsupported language: {language!r}", code="UNSUPPORTED_LANGUAGE"
        ) from None

    platform = payload.get("platform") or Platform.WEB.value
    try:
        plat = Platform(platform)
    except ValueError:
        raise InvalidRequestError(
            f"Unsupported platform: {platform!r}", code="UNSUPPORTED_PLATFORM"
        ) from None

    return ChatRequest(question=question, language=lang, platform=plat)


def _rejection(error: InvalidRequestError) -> Response:
    return Response(
        content=encode_event(ErrorEvent(message=error.message)),
        status_code=400,
        media_type=_SSE_MEDIA_TYPE,
        headers=_SSE_HEADERS,
    )


def create_app(
    proxy: StreamingProxy | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        proxy: The proxy serving chat requests. Built from ``config``
               with a LiteLLM provider when omitted.
        config: Application config. Loaded from TOML when omitted.
    """
    if proxy is None:
        from mamacare.providers.litellm_provider import LiteLLMProvider
        from mamacare.settings import load_config

        config = config or load_config()
        proxy = StreamingProxy(LiteLLMProvider(config.upstream), config.proxy)

    app = FastAPI(
        title="mamacare",
        description="Streaming prenatal health assistant",
        version=__version__,
    )
    app.state.proxy = proxy

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def _reject(error: InvalidRequestError) -> Response:
        proxy.stats.validation_failures += 1
        logger.info("Rejected chat request (%s): %s", error.code, error.message)
        return _rejection(error)

    async def _encoded(request: ChatRequest) -> AsyncIterator[str]:
        async for event in proxy.stream(request):
            yield encode_event(event)

    def _stream(request: ChatRequest) -> StreamingResponse:
        logger.info(
            "Chat request: language=%s platform=%s chars=%d",
            request.language.value, request.platform.value, len(request.question),
        )
        return StreamingResponse(
            _encoded(request), media_type=_SSE_MEDIA_TYPE, headers=_SSE_HEADERS
        )

    # ── Chat ─────────────────────────────────────────────────────

    @app.post("/api/chat")
    async def chat(request: Request) -> Response:
        """Stream an answer for a JSON-encoded question."""
        try:
            payload = await request.json()
        except ValueError:
            return _reject(InvalidRequestError("Invalid request body"))
        try:
            chat_request = validate_chat_request(payload)
        except InvalidRequestError as e:
            return _reject(e)
        return _stream(chat_request)

    @app.get("/api/chat-sse")
    async def chat_sse(
        question: str | None = None,
        language: str | None = None,
        platform: str | None = None,
    ) -> Response:
        """Stream an answer for a question passed as query parameters."""
        try:
            chat_request = validate_chat_request(
                {"question": question, "language": language, "platform": platform}
            )
        except InvalidRequestError as e:
            return _reject(e)
        return _stream(chat_request)

    # ── Status ───────────────────────────────────────────────────

    @app.get("/api/status")
    async def status() -> dict:
        """Report supported languages and request counters."""
        return {
            "status": "ok",
            "version": __version__,
            "languages": {lang.value: name for lang, name in LANGUAGE_NAMES.items()},
            "stats": proxy.stats.counters(),
        }

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
