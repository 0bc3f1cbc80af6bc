"""Reconnection policy for the transport channel."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded retry with a fixed delay between attempts (no backoff, no jitter)."""
    enabled: bool = True
    attempts: int = 5
    delay: float = 1.0

    @property
    def max_attempts(self) -> int:
        return self.attempts if self.enabled else 0

    @classmethod
    def from_config(cls, config) -> "ReconnectPolicy":
        return cls(
            enabled=bool(config.get('reconnection.enabled', True)),
            attempts=int(config.get('reconnection.attempts', 5)),
            delay=float(config.get('reconnection.delay', 1.0)),
        )
