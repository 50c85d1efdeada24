"""mamacare schema definitions.

Pydantic v2 models for requests, the streaming wire union, configuration,
and question history.
"""

from mamacare.schemas.chat import (
    LANGUAGE_NAMES,
    ChatRequest,
    CommittedAnswer,
    Language,
    ParsedResponse,
    Platform,
    suggestion_limit,
)
from mamacare.schemas.config import (
    AppConfig,
    ClientConfig,
    GibberishConfig,
    PersistenceConfig,
    ProxyConfig,
    UpstreamConfig,
)
from mamacare.schemas.history import QuestionRecord
from mamacare.schemas.streaming import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    InitEvent,
    SSEDecoder,
    StreamEvent,
    SuggestionsEvent,
    decode_event,
    encode_event,
)

__all__ = [
    "LANGUAGE_NAMES",
    "AppConfig",
    "ChatRequest",
    "ChunkEvent",
    "ClientConfig",
    "CommittedAnswer",
    "DoneEvent",
    "ErrorEvent",
    "GibberishConfig",
    "InitEvent",
    "Language",
    "ParsedResponse",
    "PersistenceConfig",
    "Platform",
    "ProxyConfig",
    "QuestionRecord",
    "SSEDecoder",
    "StreamEvent",
    "SuggestionsEvent",
    "UpstreamConfig",
    "decode_event",
    "encode_event",
    "suggestion_limit",
]
