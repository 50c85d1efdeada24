"""Heuristic detector for corrupted upstream output.

Degenerate generations tend to concatenate words without spaces. The
detector samples the trailing window of the accumulated buffer every
few deltas and flags it when spacing collapses.
"""

from __future__ import annotations

import re

from mamacare.schemas.config import GibberishConfig


def looks_like_gibberish(window: str, config: GibberishConfig) -> bool:
    """Return True if ``window`` shows concatenated-word corruption."""
    if re.search(rf"[a-z]{{{config.max_lowercase_run},}}", window):
        return True
    if len(window) >= config.min_ratio_chars:
        return window.count(" ") / len(window) < config.min_space_ratio
    return False


class GibberishDetector:
    """Per-request detector fed with every upstream delta."""

    def __init__(self, config: GibberishConfig | None = None) -> None:
        self._config = config or GibberishConfig()
        self._deltas = 0

    @property
    def deltas_seen(self) -> int:
        return self._deltas

    def check(self, buffer: str) -> bool:
        """Record one delta and test the buffer's trailing window on every Kth call.

        Args:
            buffer: The accumulated buffer including the latest delta.

        Returns:
            True if the stream should be treated as corrupted.
        """
        self._deltas += 1
        if self._deltas % self._config.check_every:
            return False
        return looks_like_gibberish(buffer[-self._config.window_chars:], self._config)
