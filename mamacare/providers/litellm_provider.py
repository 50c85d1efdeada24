"""LiteLLM adapter implementing the UpstreamProvider interface.

Opens streaming completions against any LiteLLM-routable model (the
default config targets an OpenAI-compatible text-generation-inference
endpoint). Handles API key resolution, start-up retry with exponential
backoff, and translation of provider errors into UpstreamUnavailableError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import litellm

from mamacare.errors import UpstreamUnavailableError
from mamacare.keys import get_api_key
from mamacare.providers.base import UpstreamProvider, UpstreamStream
from mamacare.schemas.config import UpstreamConfig

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

_BASE_BACKOFF = 1.0  # seconds

# Failures worth another start attempt
_TRANSIENT_ERRORS = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
    litellm.Timeout,
)


def _short_error_reason(error: Exception | None) -> str:
    """Map an upstream error to a concise description for logs."""
    if error is None:
        return "unknown error"
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return str(error)[:80]


class LiteLLMProvider(UpstreamProvider):
    """Streams completions through litellm.acompletion()."""

    def __init__(self, config: UpstreamConfig) -> None:
        super().__init__(config)
        self._api_key = get_api_key(config.api_key_env) if config.api_key_env else ""

    async def open_stream(self, prompt: str, *, timeout: float) -> UpstreamStream:
        if self._config.api_key_env and not self._api_key:
            raise UpstreamUnavailableError(
                f"API key not configured: set {self._config.api_key_env}"
            )

        kwargs = self._build_completion_kwargs(prompt, timeout)
        response = await self._call_streaming_with_retry(kwargs)
        return UpstreamStream(self._iter_deltas(response))

    def _build_completion_kwargs(self, prompt: str, timeout: float) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
            "timeout": float(timeout),
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base
        return kwargs

    async def _call_streaming_with_retry(self, kwargs: dict):
        """Call litellm.acompletion with stream=True, retrying transient start failures.

        Raises:
            UpstreamUnavailableError: On any non-transient provider error,
                or once all start attempts have failed.
        """
        attempts = self._config.start_attempts
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await litellm.acompletion(**kwargs)
            except TimeoutError as e:
                last_error = e
            except litellm.AuthenticationError:
                raise UpstreamUnavailableError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise UpstreamUnavailableError(
                    f"Bad request to {self._config.model}: {e}"
                ) from e
            except _TRANSIENT_ERRORS as e:
                last_error = e
            except Exception as e:
                # NotFoundError, PermissionDeniedError and friends: not retried
                raise UpstreamUnavailableError(
                    f"Streaming call to {self._config.model} failed: {_short_error_reason(e)}"
                ) from e

            if attempt < attempts - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Upstream start retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1, attempts, self._config.model,
                    _short_error_reason(last_error), backoff,
                )
                await asyncio.sleep(backoff)

        raise UpstreamUnavailableError(
            f"Streaming call to {self._config.model} failed after {attempts} "
            f"attempt(s): {_short_error_reason(last_error)}"
        ) from last_error

    async def _iter_deltas(self, response) -> AsyncIterator[str]:
        """Yield non-empty content deltas from a LiteLLM stream."""
        try:
            async for chunk in response:
                if not chunk.choices or not chunk.choices[0].delta:
                    continue
                delta = chunk.choices[0].delta.content or ""
                if delta:
                    yield delta
        except Exception as e:
            raise UpstreamUnavailableError(
                f"Upstream stream from {self._config.model} failed: {_short_error_reason(e)}"
            ) from e
