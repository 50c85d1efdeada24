"""Client-side streaming consumer.

One ClientStreamConsumer drives one question through an explicit state
machine:

    IDLE -> SENDING -> STREAMING -> COMPLETING -> COMMITTED
    SENDING / STREAMING -> RETRYING -> SENDING
    RETRYING (exhausted) -> FALLBACK_COMMITTED
    STREAMING (failed after partial output) -> FALLBACK_COMMITTED

Attempts run sequentially in an iterative loop with a bounded counter.
Failures with nothing received are retried with exponential backoff;
failures after partial output are not retried and commit the local
fallback answer instead. Cancellation is cooperative: the flag is
checked at loop boundaries, and a cancelled consumer makes no further
transitions and emits no further events.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from enum import StrEnum

from pydantic import BaseModel, Field

from mamacare.errors import TransportFailure
from mamacare.events import ConsumerEventEmitter, EventType
from mamacare.fallback import contextual_suggestions, fallback_answer, is_canned_answer
from mamacare.parser import parse, sanitize_final
from mamacare.persistence.store import QuestionRecorder
from mamacare.safety import guard
from mamacare.schemas.chat import (
    ChatRequest,
    CommittedAnswer,
    ParsedResponse,
    suggestion_limit,
)
from mamacare.schemas.config import ClientConfig
from mamacare.schemas.streaming import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    SSEDecoder,
    StreamEvent,
    SuggestionsEvent,
)
from mamacare.transport import ProxyTransport

logger = logging.getLogger(__name__)

# Sentinel returned by _handle for non-terminal events
_CONTINUE = object()


class ConsumerState(StrEnum):
    """States of the per-question client state machine."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETING = "completing"
    RETRYING = "retrying"
    COMMITTED = "committed"
    FALLBACK_COMMITTED = "fallback_committed"


TRANSITIONS: dict[ConsumerState, frozenset[ConsumerState]] = {
    ConsumerState.IDLE: frozenset({ConsumerState.SENDING}),
    ConsumerState.SENDING: frozenset({ConsumerState.STREAMING, ConsumerState.RETRYING}),
    ConsumerState.STREAMING: frozenset({
        ConsumerState.COMPLETING,
        ConsumerState.RETRYING,
        ConsumerState.FALLBACK_COMMITTED,
    }),
    ConsumerState.RETRYING: frozenset({
        ConsumerState.SENDING,
        ConsumerState.FALLBACK_COMMITTED,
    }),
    ConsumerState.COMPLETING: frozenset({
        ConsumerState.COMMITTED,
        ConsumerState.FALLBACK_COMMITTED,
    }),
    ConsumerState.COMMITTED: frozenset(),
    ConsumerState.FALLBACK_COMMITTED: frozenset(),
}

TERMINAL_STATES = frozenset({ConsumerState.COMMITTED, ConsumerState.FALLBACK_COMMITTED})


class RetryState(BaseModel):
    """Retry bookkeeping for one question."""

    attempt: int = Field(default=0, ge=0, description="Retries scheduled so far")
    backoff: float = Field(default=0.0, ge=0.0, description="Delay before the next attempt")

    def reset(self) -> None:
        self.attempt = 0
        self.backoff = 0.0


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 10.0) -> float:
    """Delay before the given 1-based attempt.

    The first attempt starts immediately; later attempts wait base,
    2*base, 4*base, ... capped at ``cap``.
    """
    if attempt <= 1:
        return 0.0
    return min(base * 2 ** (attempt - 2), cap)


class ClientStreamConsumer:
    """State machine delivering one question's answer from the proxy."""

    def __init__(
        self,
        request: ChatRequest,
        transport: ProxyTransport,
        config: ClientConfig | None = None,
        *,
        recorder: QuestionRecorder | None = None,
        emitter: ConsumerEventEmitter | None = None,
    ) -> None:
        self.request = request
        self._transport = transport
        self._config = config or ClientConfig()
        self._recorder = recorder
        self._emitter = emitter or ConsumerEventEmitter()
        self._limit = suggestion_limit(request.platform)
        self._cancelled = asyncio.Event()

        self.state = ConsumerState.IDLE
        self.retry: RetryState | None = None
        self.attempts = 0
        self.attempt_delays: list[float] = []
        self.preview = ParsedResponse()
        self.result: CommittedAnswer | None = None

        # Per-attempt accumulation
        self._buffer = ""
        self._event_suggestions: list[str] | None = None

    # ── Control ──────────────────────────────────────────────────

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def finished(self) -> bool:
        return self.cancelled or self.state in TERMINAL_STATES

    def cancel(self) -> None:
        """Ask the consumer to stop at its next loop boundary."""
        if not self._cancelled.is_set():
            logger.debug("Cancelling consumer for %.60s", self.request.question)
            self._cancelled.set()

    async def run(self) -> CommittedAnswer | None:
        """Drive the question to a commit.

        Returns:
            The committed answer, or None if the consumer was cancelled.
        """
        if self.state is not ConsumerState.IDLE:
            raise RuntimeError(f"Consumer already started (state={self.state})")

        max_attempts = self._config.max_retries + 1
        self.retry = RetryState()
        self.attempt_delays.append(backoff_delay(1))
        self._transition(ConsumerState.SENDING)

        while True:
            self.attempts += 1
            failure = await self._run_attempt()
            if self.cancelled:
                return None
            if failure is None:
                return await self._commit()

            if self._buffer:
                logger.warning(
                    "Attempt %d failed after partial output, committing fallback: %s",
                    self.attempts, failure,
                )
                return await self._commit_fallback()

            self._transition(ConsumerState.RETRYING)
            if self.attempts >= max_attempts:
                logger.warning(
                    "All %d attempts failed, committing fallback: %s", self.attempts, failure
                )
                return await self._commit_fallback()

            delay = backoff_delay(self.attempts + 1, self._config.backoff_base,
                                  self._config.backoff_cap)
            self.retry.attempt += 1
            self.retry.backoff = delay
            self.attempt_delays.append(delay)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                self.attempts, max_attempts, failure, delay,
            )
            self._emit(
                EventType.RETRY_SCHEDULED,
                attempt=self.attempts, delay=delay, reason=str(failure),
            )
            if delay > 0:
                await asyncio.sleep(delay)
            if self.cancelled:
                return None
            self._transition(ConsumerState.SENDING)

    # ── Attempts ─────────────────────────────────────────────────

    async def _run_attempt(self) -> Exception | None:
        """Make one request and consume its events.

        Returns:
            None when the answer stream completed (``done`` or end of body
            with output), otherwise the failure that ended the attempt.
        """
        self._buffer = ""
        self._event_suggestions = None
        decoder = SSEDecoder()

        try:
            async with asyncio.timeout(self._config.attempt_timeout):
                async with aclosing(self._transport.stream(self.request)) as body:
                    async for text in body:
                        if self.cancelled:
                            return None
                        if self.state is ConsumerState.SENDING:
                            self._transition(ConsumerState.STREAMING)
                        for event in decoder.feed(text):
                            outcome = self._handle(event)
                            if outcome is not _CONTINUE:
                                return outcome
                    for event in decoder.flush():
                        outcome = self._handle(event)
                        if outcome is not _CONTINUE:
                            return outcome
        except (TransportFailure, TimeoutError) as e:
            if isinstance(e, TimeoutError):
                return TimeoutError(f"No answer within {self._config.attempt_timeout:.0f}s")
            return e

        if not self._buffer:
            return TransportFailure("Proxy stream ended without output", code="EMPTY_STREAM")
        logger.debug("Proxy stream ended without a done event")
        return None

    def _handle(self, event: StreamEvent) -> Exception | None | object:
        """Apply one wire event. Returns _CONTINUE unless the event ends the attempt."""
        if self.cancelled:
            return None
        if isinstance(event, ChunkEvent):
            self._buffer += event.content
            self._refresh_preview()
        elif isinstance(event, SuggestionsEvent):
            self._event_suggestions = list(event.suggestions)[:self._limit]
            self._refresh_preview()
        elif isinstance(event, DoneEvent):
            if not self._buffer:
                return TransportFailure("Proxy finished without an answer", code="EMPTY_STREAM")
            return None
        elif isinstance(event, ErrorEvent):
            return TransportFailure(f"Proxy reported: {event.message}", code="STREAM_ERROR")
        return _CONTINUE

    def _refresh_preview(self) -> None:
        parsed = parse(self._buffer, self._limit)
        if self._event_suggestions is not None:
            parsed = ParsedResponse(
                answer=parsed.answer, suggested_questions=self._event_suggestions
            )
        self.preview = parsed
        self._emit(
            EventType.PREVIEW_UPDATED,
            answer=parsed.answer,
            suggestions=parsed.suggested_questions,
        )

    # ── Commit ───────────────────────────────────────────────────

    async def _commit(self) -> CommittedAnswer | None:
        self._transition(ConsumerState.COMPLETING)
        if self.retry is not None:
            self.retry.reset()
        parsed = parse(self._buffer, self._limit)
        answer = sanitize_final(parsed.answer)
        if not answer:
            logger.warning("Completed stream had no answer text, committing fallback")
            return await self._commit_fallback()

        suggestions = (
            self._event_suggestions
            if self._event_suggestions is not None
            else parsed.suggested_questions
        )
        if not suggestions:
            suggestions = contextual_suggestions(
                self.request.question, self.request.language, self._limit
            )
        # A fallback streamed by the proxy is local text quoting the question
        if is_canned_answer(answer, self.request.language, self.request.question):
            logger.debug("Proxy streamed a canned answer, skipping safety gate")
        else:
            answer = guard(answer, self.request.language)
        return await self._finalize(answer, suggestions, fallback=False)

    async def _commit_fallback(self) -> CommittedAnswer | None:
        text = fallback_answer(self.request.language, self.request.question)
        answer = sanitize_final(parse(text, self._limit).answer)
        suggestions = contextual_suggestions(
            self.request.question, self.request.language, self._limit
        )
        return await self._finalize(answer, suggestions, fallback=True)

    async def _finalize(
        self, answer: str, suggestions: list[str], *, fallback: bool
    ) -> CommittedAnswer | None:
        if self.cancelled:
            return None
        self._transition(
            ConsumerState.FALLBACK_COMMITTED if fallback else ConsumerState.COMMITTED
        )
        self.retry = None

        record_id = None
        if self._recorder is not None:
            try:
                record_id = await self._recorder.save_question(
                    self.request.question, self.request.language, answer, suggestions
                )
            except Exception:
                logger.warning(
                    "Failed to persist answer for %.60s", self.request.question, exc_info=True
                )

        self.result = CommittedAnswer(
            question=self.request.question,
            language=self.request.language,
            answer=answer,
            suggestions=suggestions,
            fallback=fallback,
            attempts=self.attempts,
            record_id=record_id,
        )
        self._emit(
            EventType.COMMITTED,
            fallback=fallback, attempts=self.attempts, record_id=record_id,
        )
        return self.result

    # ── Plumbing ─────────────────────────────────────────────────

    def _transition(self, new_state: ConsumerState) -> None:
        if self.cancelled:
            return
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal consumer transition {self.state} -> {new_state}")
        old_state, self.state = self.state, new_state
        logger.debug("Consumer %s -> %s", old_state, new_state)
        self._emit(EventType.STATE_CHANGED, old=old_state.value, new=new_state.value)

    def _emit(self, event_type: EventType, **data: object) -> None:
        if self.cancelled:
            return
        self._emitter.emit(event_type, question=self.request.question, **data)


class ClientSession:
    """Owns the single active consumer for one client.

    Submitting a new question cancels the consumer still in flight.
    """

    def __init__(
        self,
        transport: ProxyTransport,
        config: ClientConfig | None = None,
        *,
        recorder: QuestionRecorder | None = None,
        emitter: ConsumerEventEmitter | None = None,
    ) -> None:
        self._transport = transport
        self._config = config or ClientConfig()
        self._recorder = recorder
        self.emitter = emitter or ConsumerEventEmitter()
        self._active: ClientStreamConsumer | None = None

    @property
    def active(self) -> ClientStreamConsumer | None:
        return self._active

    def submit(self, request: ChatRequest) -> ClientStreamConsumer:
        """Create the consumer for ``request``, cancelling any previous one."""
        if self._active is not None and not self._active.finished:
            self._active.cancel()
        self._active = ClientStreamConsumer(
            request,
            self._transport,
            self._config,
            recorder=self._recorder,
            emitter=self.emitter,
        )
        return self._active

    async def ask(self, request: ChatRequest) -> CommittedAnswer | None:
        """Submit ``request`` and run it to a commit."""
        return await self.submit(request).run()
