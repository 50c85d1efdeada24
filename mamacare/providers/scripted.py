"""Scripted upstream provider.

Replays a fixed sequence of deltas instead of calling a model. Backs
``mamacare serve --demo`` and lets tests drive every proxy path
(normal, corrupted, failing to start, failing mid-stream).
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator, Sequence

from mamacare.errors import UpstreamUnavailableError
from mamacare.providers.base import UpstreamProvider, UpstreamStream
from mamacare.schemas.config import UpstreamConfig

DEMO_ANSWER = """ANSWER: Prenatal care is essential healthcare provided to women during pregnancy. It involves regular check-ups with healthcare providers, including doctors, midwives, or nurses, to monitor the mother's health and the baby's development. These check-ups typically include physical examinations, weight checks, blood pressure monitoring, and various screening tests.

The purpose of prenatal care is to identify and address potential health issues before they become serious, provide education about pregnancy and childbirth, and support the mother's overall wellbeing.

IMPORTANT: This information is provided for educational purposes only and is not a substitute for professional medical advice. Always consult with qualified healthcare providers for personalized medical recommendations.

SUGGESTED_QUESTIONS:
1. When should I start prenatal care?
2. How often should I have prenatal check-ups?
3. What tests are typically done during prenatal visits?
4. What should I bring to my first prenatal visit?"""

# Word-plus-trailing-whitespace pieces, roughly what a tokenizer emits
_TOKEN_RE = re.compile(r"\S+\s*|\s+")


def split_deltas(text: str) -> list[str]:
    """Split ``text`` into token-like deltas that concatenate back to it."""
    return _TOKEN_RE.findall(text)


class ScriptedProvider(UpstreamProvider):
    """Replays canned deltas.

    Args:
        deltas: The deltas to yield, in order. Defaults to DEMO_ANSWER.
        delay: Pause before each delta in seconds.
        fail_start: Raise UpstreamUnavailableError from open_stream().
        fail_after: Raise UpstreamUnavailableError after this many deltas.
    """

    def __init__(
        self,
        deltas: Sequence[str] | None = None,
        *,
        delay: float = 0.0,
        fail_start: bool = False,
        fail_after: int | None = None,
        config: UpstreamConfig | None = None,
    ) -> None:
        super().__init__(config or UpstreamConfig(model="scripted"))
        self._deltas = list(deltas) if deltas is not None else split_deltas(DEMO_ANSWER)
        self._delay = delay
        self._fail_start = fail_start
        self._fail_after = fail_after
        self.prompts: list[str] = []
        self.streams: list[UpstreamStream] = []

    async def open_stream(self, prompt: str, *, timeout: float) -> UpstreamStream:
        self.prompts.append(prompt)
        if self._fail_start:
            raise UpstreamUnavailableError("Scripted upstream refused to start")
        stream = UpstreamStream(self._replay())
        self.streams.append(stream)
        return stream

    async def _replay(self) -> AsyncIterator[str]:
        for index, delta in enumerate(self._deltas):
            if self._fail_after is not None and index >= self._fail_after:
                raise UpstreamUnavailableError("Scripted upstream dropped the stream")
            if self._delay:
                await asyncio.sleep(self._delay)
            yield delta
