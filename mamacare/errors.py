"""Error hierarchy for the streaming core.

Each error is raised at the seam where it occurs (request validation,
upstream start, client transport, persistence) and handled in exactly
one place further up. None of them reach the end user as raw text:
most are turned into a canned fallback answer.
"""

from __future__ import annotations


class MamacareError(Exception):
    """Base class for all application errors.

    Attributes:
        code: Machine-readable error code (e.g. "UPSTREAM_UNAVAILABLE").
        message: Human-readable description.
    """

    default_code = "MAMACARE_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(message)


class InvalidRequestError(MamacareError):
    """Missing or unsupported input in an inbound chat request."""

    default_code = "INVALID_REQUEST"


class UpstreamUnavailableError(MamacareError):
    """The upstream completion stream could not be started."""

    default_code = "UPSTREAM_UNAVAILABLE"


class StreamCorruptionError(MamacareError):
    """The upstream output tripped the gibberish heuristic."""

    default_code = "STREAM_CORRUPTION"


class TransportFailure(MamacareError):
    """Network-level failure talking to the streaming proxy."""

    default_code = "NETWORK_FAILURE"


class ProxyStatusError(TransportFailure):
    """The streaming proxy answered with a non-success HTTP status."""

    default_code = "BAD_STATUS"

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Proxy returned HTTP {status_code}: {body[:200]}")


class PersistenceError(MamacareError):
    """A question record could not be written or read."""

    default_code = "PERSISTENCE_FAILURE"
