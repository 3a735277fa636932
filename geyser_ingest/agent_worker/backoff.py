"""
Exponential backoff schedule for reconnects.

Defaults follow the classic schedule used by the feed clients:
first attempt immediately, then 0.5s, 0.75s, 1.125s, 1.6875s, ... capped at 60s.
The schedule is never reset between sessions during one run.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_INITIAL_INTERVAL_SEC = 0.5
DEFAULT_MULTIPLIER = 1.5
DEFAULT_MAX_INTERVAL_SEC = 60.0


@dataclass(frozen=True)
class BackoffPolicy:
    """Backoff parameters. max_attempts=None means retry forever."""

    initial_interval_sec: float = DEFAULT_INITIAL_INTERVAL_SEC
    multiplier: float = DEFAULT_MULTIPLIER
    max_interval_sec: float = DEFAULT_MAX_INTERVAL_SEC
    max_attempts: int | None = None

    def __post_init__(self) -> None:
        if self.initial_interval_sec <= 0:
            raise ValueError("initial_interval_sec must be positive")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if self.max_interval_sec < self.initial_interval_sec:
            raise ValueError("max_interval_sec must be >= initial_interval_sec")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


@dataclass
class RetryState:
    """
    Position in the backoff schedule, owned by the supervisor.

    next_delay() advances the schedule: 0 for the first attempt, then
    initial_interval, initial_interval * multiplier, ... up to max_interval.
    """

    policy: BackoffPolicy
    attempts: int = 0
    current_interval_sec: float | None = None

    @property
    def is_first_attempt(self) -> bool:
        return self.attempts <= 1

    @property
    def exhausted(self) -> bool:
        return self.policy.max_attempts is not None and self.attempts >= self.policy.max_attempts

    def next_delay(self) -> float:
        """Register a new attempt and return how long to wait before it."""
        self.attempts += 1
        if self.attempts == 1:
            return 0.0
        if self.current_interval_sec is None:
            self.current_interval_sec = self.policy.initial_interval_sec
        else:
            self.current_interval_sec = min(
                self.current_interval_sec * self.policy.multiplier,
                self.policy.max_interval_sec,
            )
        return self.current_interval_sec
