"""Resilience – backoff strategies for redelivery.

A consumer that nacks a message waits ``compute(attempt)`` seconds before the
broker hands it back. Together with ``max_delivery_attempts`` this bounds
how long a poison message blocks its partition before it is dead-lettered.
"""
from __future__ import annotations

import abc
import random


class BackoffStrategy(abc.ABC):
    @abc.abstractmethod
    def compute(self, attempt: int) -> float:
        """Seconds to wait after the *attempt*-th failed delivery (1-based)."""

    def schedule(self, attempts: int) -> list[float]:
        """Delays for attempts ``1..attempts``, e.g. to size a retry budget."""
        return [self.compute(n) for n in range(1, attempts + 1)]


class ConstantBackoff(BackoffStrategy):
    def __init__(self, delay: float = 1.0) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self._delay = delay

    def compute(self, attempt: int) -> float:  # noqa: ARG002
        return self._delay


class ExponentialBackoff(BackoffStrategy):
    """``base_delay * multiplier ** (attempt - 1)``, capped at ``max_delay``.

    With ``jitter=True`` the delay is drawn uniformly from ``[0, delay]`` so
    replicas that failed on the same record do not retry in lockstep.
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        max_delay: float = 60.0,
        *,
        multiplier: float = 2.0,
        jitter: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        if base_delay <= 0 or max_delay < base_delay:
            raise ValueError("require 0 < base_delay <= max_delay")
        if multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        self._base = base_delay
        self._max = max_delay
        self._multiplier = multiplier
        self._jitter = jitter
        self._rng = rng or random.Random()

    def compute(self, attempt: int) -> float:
        try:
            delay = min(self._base * self._multiplier ** max(0, attempt - 1), self._max)
        except OverflowError:
            delay = self._max
        if self._jitter:
            return self._rng.uniform(0, delay)
        return delay


__all__ = ["BackoffStrategy", "ConstantBackoff", "ExponentialBackoff"]
