# -*- coding: utf-8 -*-
"""
Injectable sources of randomness and time.

The analytical functions never read the wall clock or the global RNG; the
trade generator receives these capabilities so it can be replayed against
historical data and stays deterministic under test.
"""

import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional


class RandomSource(ABC):
    """Source of random integers."""

    @abstractmethod
    def next_in_range(self, minimum: int, maximum: int) -> int:
        """
        Draw an integer uniformly from the closed range [minimum, maximum].

        Parameters
        ----------
        minimum : int
            Lower bound (inclusive).
        maximum : int
            Upper bound (inclusive).

        Returns
        -------
        int
        """
        pass


class SystemRandomSource(RandomSource):
    """RandomSource backed by ``random.Random``; pass a seed for replays."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def next_in_range(self, minimum: int, maximum: int) -> int:
        if minimum > maximum:
            raise ValueError(f"minimum must be <= maximum, got {minimum} > {maximum}")
        return self._rng.randint(minimum, maximum)


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant (backtests and replays)."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant
