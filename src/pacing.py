"""
Pacing - human-like delays between board interactions
"""

from __future__ import annotations

import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Jitter(ABC):
    """Source of randomized durations, swappable in tests."""

    @abstractmethod
    def duration(self, minimum: float, maximum: float) -> float:
        """Return a duration in seconds within [minimum, maximum)."""


class RandomJitter(Jitter):
    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def duration(self, minimum: float, maximum: float) -> float:
        if maximum <= minimum:
            return float(minimum)
        return minimum + self._rng.random() * (maximum - minimum)


class Pacer:
    """Sleeps fixed or jittered durations through an injectable sleeper."""

    def __init__(
        self,
        jitter: Optional[Jitter] = None,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self.jitter = jitter or RandomJitter()
        self._sleep = sleeper

    def pause(self, minimum: float, maximum: float, *, reason: str = "") -> float:
        delay = self.jitter.duration(minimum, maximum)
        self.wait(delay, reason=reason)
        return delay

    def wait(self, seconds: float, *, reason: str = "") -> None:
        if seconds <= 0:
            return
        if reason:
            logger.debug("Sleeping %.2fs (%s)", seconds, reason)
        self._sleep(seconds)
