"""Server-side streaming proxy.

Turns one validated ChatRequest into the ordered StreamEvent sequence
the client consumes: exactly one init, zero or more chunks, at most one
suggestions event, and exactly one terminal done or error.

Each request runs one sequential read/forward loop. The next upstream
delta is only read after the previous chunk has been handed downstream,
so a slow client throttles upstream consumption. The accumulated buffer
is local to the stream() call.

Paths:
    normal          upstream deltas are forwarded, then parsed suggestions
    gibberish       the heuristic tripped; upstream is closed and a canned
                    "technical difficulty" answer is streamed instead
    unavailable     upstream never started (or failed before any chunk was
                    forwarded); a canned answer is streamed instead
    upstream_error  upstream failed after chunks were forwarded; the stream
                    ends with an error event
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from enum import StrEnum

from pydantic import BaseModel, Field

from mamacare.errors import StreamCorruptionError, UpstreamUnavailableError
from mamacare.fallback import (
    contextual_suggestions,
    difficulty_answer,
    slice_text,
    unavailable_answer,
)
from mamacare.gibberish import GibberishDetector
from mamacare.parser import parse, sanitize_delta
from mamacare.prompts import build_prompt
from mamacare.providers.base import UpstreamProvider, UpstreamStream
from mamacare.safety import guard
from mamacare.schemas.chat import ChatRequest, suggestion_limit
from mamacare.schemas.config import ProxyConfig
from mamacare.schemas.streaming import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    InitEvent,
    StreamEvent,
    SuggestionsEvent,
)

logger = logging.getLogger(__name__)

_INTERRUPTED_MESSAGE = "The answer stream was interrupted. Please try again."
_RECENT_OUTCOMES = 20


class ProxyPath(StrEnum):
    """How a proxied request was resolved."""

    NORMAL = "normal"
    GIBBERISH = "gibberish"
    UNAVAILABLE = "unavailable"
    UPSTREAM_ERROR = "upstream_error"


class ProxyOutcome(BaseModel):
    """Summary of one finished proxy stream."""

    question: str
    language: str
    path: ProxyPath
    deltas: int = Field(default=0, description="Upstream deltas received")
    buffer_chars: int = Field(default=0, description="Size of the accumulated upstream buffer")
    answer: str = Field(default="", description="Guarded answer as the client will commit it")
    suggestions: list[str] = Field(default_factory=list)
    safety_substituted: bool = False


class ProxyStats(BaseModel):
    """Process-wide request counters served by /api/status."""

    requests: int = 0
    validation_failures: int = 0
    completed: int = 0
    upstream_unavailable: int = 0
    gibberish_aborts: int = 0
    upstream_errors: int = 0
    safety_substitutions: int = 0
    recent: list[ProxyOutcome] = Field(default_factory=list)

    def record(self, outcome: ProxyOutcome) -> None:
        if outcome.path is ProxyPath.NORMAL:
            self.completed += 1
        elif outcome.path is ProxyPath.UNAVAILABLE:
            self.upstream_unavailable += 1
        elif outcome.path is ProxyPath.GIBBERISH:
            self.gibberish_aborts += 1
        else:
            self.upstream_errors += 1
        if outcome.safety_substituted:
            self.safety_substitutions += 1
        self.recent = [*self.recent, outcome][-_RECENT_OUTCOMES:]

    def counters(self) -> dict[str, int]:
        return self.model_dump(exclude={"recent"})


class StreamingProxy:
    """Relays one question to the upstream provider as a StreamEvent sequence."""

    def __init__(
        self,
        provider: UpstreamProvider,
        config: ProxyConfig | None = None,
        *,
        timeout: float | None = None,
        stats: ProxyStats | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or ProxyConfig()
        self._timeout = timeout if timeout is not None else provider.config.timeout
        self.stats = stats or ProxyStats()

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Yield the event sequence answering ``request``."""
        self.stats.requests += 1
        limit = suggestion_limit(request.platform)
        prompt = build_prompt(request.question, request.language, request.platform)

        yield InitEvent()

        # One wall-clock deadline covers stream start and every delta read
        deadline = asyncio.get_running_loop().time() + self._timeout

        try:
            async with asyncio.timeout_at(deadline):
                upstream = await self._provider.open_stream(prompt, timeout=self._timeout)
        except (UpstreamUnavailableError, TimeoutError) as e:
            logger.warning("Upstream unavailable for %s: %s", self._provider.model_id, e)
            async for event in self._stream_fallback(
                request, unavailable_answer(request.language, request.question),
                ProxyPath.UNAVAILABLE, limit,
            ):
                yield event
            return

        detector = GibberishDetector(self._config.gibberish)
        buffer = ""
        forwarded = 0
        failure: Exception | None = None
        corrupted = False

        try:
            async for delta in self._read(upstream, deadline):
                buffer += delta
                if detector.check(buffer):
                    raise StreamCorruptionError(
                        f"Concatenated output after {detector.deltas_seen} deltas"
                    )
                yield ChunkEvent(content=sanitize_delta(delta))
                forwarded += 1
        except StreamCorruptionError as e:
            logger.info("Gibberish detected, switching to fallback: %s", e)
            corrupted = True
        except (UpstreamUnavailableError, TimeoutError) as e:
            failure = e
        finally:
            await upstream.aclose()

        if corrupted:
            async for event in self._stream_fallback(
                request, difficulty_answer(request.language, request.question),
                ProxyPath.GIBBERISH, limit, deltas=detector.deltas_seen, buffer_chars=len(buffer),
            ):
                yield event
            return

        if forwarded == 0:
            if failure is not None:
                logger.warning("Upstream failed before any output: %s", failure)
            else:
                logger.warning("Upstream returned an empty stream for %s", self._provider.model_id)
            async for event in self._stream_fallback(
                request, unavailable_answer(request.language, request.question),
                ProxyPath.UNAVAILABLE, limit,
            ):
                yield event
            return

        parsed = parse(buffer, limit)
        answer = guard(parsed.answer, request.language)

        if failure is not None:
            logger.warning("Upstream failed after %d chunks: %s", forwarded, failure)
            self._finish(request, ProxyPath.UPSTREAM_ERROR, parsed.answer, answer, [],
                         deltas=detector.deltas_seen, buffer_chars=len(buffer))
            yield ErrorEvent(message=_INTERRUPTED_MESSAGE)
            return

        suggestions = parsed.suggested_questions or contextual_suggestions(
            request.question, request.language, limit
        )
        self._finish(request, ProxyPath.NORMAL, parsed.answer, answer, suggestions,
                     deltas=detector.deltas_seen, buffer_chars=len(buffer))
        yield SuggestionsEvent(suggestions=suggestions)
        yield DoneEvent()

    @staticmethod
    async def _read(upstream: UpstreamStream, deadline: float) -> AsyncIterator[str]:
        """Iterate upstream deltas, bounding each read by the request deadline."""
        deltas = aiter(upstream)
        while True:
            try:
                async with asyncio.timeout_at(deadline):
                    delta = await anext(deltas)
            except StopAsyncIteration:
                return
            yield delta

    async def _stream_fallback(
        self,
        request: ChatRequest,
        text: str,
        path: ProxyPath,
        limit: int,
        *,
        deltas: int = 0,
        buffer_chars: int = 0,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a canned answer in fixed-size slices, then suggestions and done.

        Canned answers are local text and skip the safety gate; they quote
        the question, which may itself contain a denylisted phrase.
        """
        parsed = parse(text, limit)
        suggestions = contextual_suggestions(request.question, request.language, limit)
        self._finish(request, path, parsed.answer, parsed.answer,
                     suggestions, deltas=deltas, buffer_chars=buffer_chars)

        for piece in slice_text(text, self._config.fallback_slice_chars):
            yield ChunkEvent(content=piece)
            if self._config.fallback_slice_delay:
                await asyncio.sleep(self._config.fallback_slice_delay)
        yield SuggestionsEvent(suggestions=suggestions)
        yield DoneEvent()

    def _finish(
        self,
        request: ChatRequest,
        path: ProxyPath,
        raw_answer: str,
        answer: str,
        suggestions: list[str],
        *,
        deltas: int,
        buffer_chars: int,
    ) -> None:
        outcome = ProxyOutcome(
            question=request.question,
            language=request.language.value,
            path=path,
            deltas=deltas,
            buffer_chars=buffer_chars,
            answer=answer,
            suggestions=suggestions,
            safety_substituted=answer != raw_answer,
        )
        self.stats.record(outcome)
        logger.info(
            "Proxy stream finished: path=%s deltas=%d buffer=%d chars safety_substituted=%s",
            path.value, deltas, buffer_chars, outcome.safety_substituted,
        )
