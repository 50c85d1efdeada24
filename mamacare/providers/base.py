"""Abstract base class for upstream text-generation providers.

The proxy talks to the model exclusively through this interface. A
provider opens a stream for one prompt and yields plain text deltas; it
never sees wire events, parsing, or fallback logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from mamacare.schemas.config import UpstreamConfig


class UpstreamStream:
    """An open upstream generation, iterated as text deltas.

    Iteration may raise UpstreamUnavailableError if the upstream fails
    mid-stream. aclose() abandons the generation early.
    """

    def __init__(self, deltas: AsyncIterator[str]) -> None:
        self._deltas = deltas
        self._closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._deltas

    @property
    def closed(self) -> bool:
        return self._closed

    async def aclose(self) -> None:
        """Stop the generation. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        close = getattr(self._deltas, "aclose", None)
        if close is not None:
            await close()


class UpstreamProvider(ABC):
    """Abstract interface for the hosted completion service."""

    def __init__(self, config: UpstreamConfig) -> None:
        self._config = config

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    @abstractmethod
    async def open_stream(self, prompt: str, *, timeout: float) -> UpstreamStream:
        """Start a streaming completion for ``prompt``.

        Args:
            prompt: The full instruction prompt.
            timeout: Seconds the upstream may take to start responding.

        Returns:
            An UpstreamStream yielding text deltas.

        Raises:
            UpstreamUnavailableError: If the stream cannot be started.
        """
