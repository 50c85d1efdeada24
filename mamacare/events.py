"""Consumer progress events.

ClientStreamConsumer reports state transitions, preview updates,
scheduled retries and the final commit through an emitter. The CLI
subscribes to redraw its live panel; tests read the bounded log.
"""

from __future__ import annotations

import contextlib
import logging
from collections import defaultdict, deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_LOG_SIZE = 500


class EventType(StrEnum):
    """Types of events emitted by ClientStreamConsumer."""

    STATE_CHANGED = "state_changed"
    PREVIEW_UPDATED = "preview_updated"
    RETRY_SCHEDULED = "retry_scheduled"
    COMMITTED = "committed"


class ConsumerEvent(BaseModel):
    """One progress report for one question."""

    model_config = ConfigDict(frozen=True)

    type: EventType = Field(description="Event type")
    question: str = Field(default="", description="Question the consumer is answering")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


Listener = Callable[[ConsumerEvent], None]


class ConsumerEventEmitter:
    """Routes consumer events to subscribers by type and keeps a bounded log."""

    def __init__(self, log_size: int = _LOG_SIZE) -> None:
        # None collects subscribers to every type
        self._subscribers: defaultdict[EventType | None, list[Listener]] = defaultdict(list)
        self._log: deque[ConsumerEvent] = deque(maxlen=log_size)

    @property
    def history(self) -> list[ConsumerEvent]:
        """Most recent events, oldest first."""
        return list(self._log)

    def subscribe(self, listener: Listener, *types: EventType) -> Callable[[], None]:
        """Call ``listener`` for events of ``types``, or for every event when none are given.

        Returns:
            A callable that cancels the subscription.
        """
        keys = types or (None,)
        for key in keys:
            self._subscribers[key].append(listener)

        def unsubscribe() -> None:
            for key in keys:
                with contextlib.suppress(ValueError):
                    self._subscribers[key].remove(listener)

        return unsubscribe

    def emit(self, event_type: EventType, question: str = "", **data: Any) -> ConsumerEvent:
        """Record an event and hand it to its subscribers.

        A failing subscriber is logged and skipped; it never reaches the consumer.
        """
        event = ConsumerEvent(type=event_type, question=question, data=data)
        self._log.append(event)

        listeners = [*self._subscribers.get(event_type, ()), *self._subscribers.get(None, ())]
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Consumer event subscriber failed on %s", event_type)
        return event
