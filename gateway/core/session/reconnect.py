"""Reconnect policies for non-logout disconnects.

The session retries forever; a policy only decides how long to wait before
each attempt. `attempt` counts consecutive failed attempts and resets once a
connection opens.
"""

from abc import ABC, abstractmethod

from gateway.config import Settings


class ReconnectPolicy(ABC):
    """Decides the delay before the next connect attempt."""

    @abstractmethod
    def delay(self, attempt: int) -> float:
        """Seconds to wait before attempt number `attempt` (1-based)."""


class ImmediateReconnect(ReconnectPolicy):
    """Retry right away, but never faster than `min_delay`."""

    def __init__(self, min_delay: float = 1.0):
        self.min_delay = max(0.0, min_delay)

    def delay(self, attempt: int) -> float:
        return self.min_delay

    def __repr__(self) -> str:
        return f"<ImmediateReconnect(min_delay={self.min_delay})>"


class ExponentialBackoff(ReconnectPolicy):
    """base * factor**(attempt - 1), capped at max_delay."""

    def __init__(self, base: float = 1.0, factor: float = 2.0, max_delay: float = 60.0):
        if factor < 1.0:
            raise ValueError("factor must be >= 1.0")
        self.base = max(0.0, base)
        self.factor = factor
        self.max_delay = max(self.base, max_delay)

    def delay(self, attempt: int) -> float:
        exponent = max(0, attempt - 1)
        # Cap the exponent so huge attempt counts cannot overflow
        return min(self.max_delay, self.base * (self.factor ** min(exponent, 64)))

    def __repr__(self) -> str:
        return (
            f"<ExponentialBackoff(base={self.base}, factor={self.factor}, "
            f"max_delay={self.max_delay})>"
        )


def get_reconnect_policy(settings: Settings) -> ReconnectPolicy:
    """Build the policy selected by RECONNECT_STRATEGY."""
    if settings.reconnect_strategy == "immediate":
        return ImmediateReconnect(min_delay=settings.reconnect_min_delay)
    return ExponentialBackoff(
        base=settings.reconnect_min_delay,
        max_delay=settings.reconnect_max_delay,
    )
