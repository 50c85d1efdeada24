"""Upstream text-generation providers."""

from mamacare.providers.base import UpstreamProvider, UpstreamStream
from mamacare.providers.litellm_provider import LiteLLMProvider
from mamacare.providers.scripted import ScriptedProvider

__all__ = [
    "LiteLLMProvider",
    "ScriptedProvider",
    "UpstreamProvider",
    "UpstreamStream",
]
