"""Client transport to the streaming proxy.

A transport posts one ChatRequest and yields the response body as text
pieces in arrival order. Pieces do not respect record boundaries; the
consumer reassembles records with SSEDecoder.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from mamacare.errors import ProxyStatusError, TransportFailure
from mamacare.schemas.chat import ChatRequest

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


class ProxyTransport(Protocol):
    """Anything that can stream a proxy response body for a request."""

    def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Yield body text for ``request``.

        Raises:
            TransportFailure: On network-level errors.
            ProxyStatusError: If the proxy answers with a non-2xx status.
        """
        ...


class HttpxTransport:
    """POSTs to the proxy over HTTP with httpx.AsyncClient.stream()."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._url = base_url.rstrip("/") + CHAT_PATH
        self._owns_client = client is None
        # Reads are unbounded here; the consumer bounds each attempt
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect_timeout, read=None)
        )

    async def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        payload = request.model_dump(mode="json")
        try:
            async with self._client.stream(
                "POST",
                self._url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProxyStatusError(response.status_code, body)
                async for text in response.aiter_text():
                    if text:
                        yield text
        except httpx.RequestError as e:
            raise TransportFailure(f"{type(e).__name__}: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
