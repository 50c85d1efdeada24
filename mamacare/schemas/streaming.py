"""Streaming wire schemas.

Defines the closed StreamEvent union emitted by the proxy and consumed
by the client, plus the ``data: <json>\\n\\n`` record codec. Records that
fail to decode are dropped and logged, never raised.
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

_RECORD_PREFIX = "data:"
_RECORD_SEPARATOR = "\n\n"


class InitEvent(BaseModel):
    """Opens the stream. Always the first event."""

    type: Literal["init"] = "init"


class ChunkEvent(BaseModel):
    """A partial text delta for display."""

    type: Literal["chunk"] = "chunk"
    content: str = Field(description="Sanitized text delta")


class SuggestionsEvent(BaseModel):
    """Follow-up questions for the completed answer."""

    type: Literal["suggestions"] = "suggestions"
    suggestions: list[str] = Field(default_factory=list, description="Follow-up questions")


class DoneEvent(BaseModel):
    """Terminal success marker."""

    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    """Terminal failure marker."""

    type: Literal["error"] = "error"
    message: str = Field(description="Human-readable failure reason")


StreamEvent = Annotated[
    InitEvent | ChunkEvent | SuggestionsEvent | DoneEvent | ErrorEvent,
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def encode_event(event: BaseModel) -> str:
    """Serialize an event as a single ``data: <json>`` record."""
    return f"{_RECORD_PREFIX} {event.model_dump_json()}{_RECORD_SEPARATOR}"


def decode_event(record: str) -> StreamEvent | None:
    """Decode one wire record into a StreamEvent.

    Returns None for blank records, records without the ``data:``
    prefix, and payloads that are not a recognized event.
    """
    record = record.strip()
    if not record:
        return None
    if not record.startswith(_RECORD_PREFIX):
        logger.warning("Dropping stream record without data prefix: %.80s", record)
        return None

    payload = record[len(_RECORD_PREFIX):].strip()
    try:
        return _EVENT_ADAPTER.validate_json(payload)
    except ValidationError:
        logger.warning("Dropping malformed stream record: %.80s", payload)
        return None


class SSEDecoder:
    """Incremental decoder for a body arriving in arbitrary text pieces.

    Network reads do not respect record boundaries, so partial records
    are held back until their separator arrives.
    """

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, text: str) -> list[StreamEvent]:
        """Add received text and return every event it completed."""
        self._pending += text.replace("\r\n", "\n")
        *records, self._pending = self._pending.split(_RECORD_SEPARATOR)
        return [event for event in map(decode_event, records) if event is not None]

    def flush(self) -> list[StreamEvent]:
        """Decode whatever is left once the body has ended."""
        remainder, self._pending = self._pending, ""
        event = decode_event(remainder)
        return [event] if event is not None else []
