"""
policy.py: Safeguards layered on top of the raw TOTP check.

- Attempt limiting: too many consecutive failures inside a trailing
  interval fail fast with RateLimited, before any code is derived.
- Anti-replay: a time step that already produced a successful login
  cannot be used again, even while it is still inside the window.
"""

from dataclasses import dataclass
from typing import Optional

from eauth.core.errors import ConfigurationError, RateLimited, ReplayedCode

DEFAULT_MAX_FAILURES = 5
DEFAULT_FAILURE_INTERVAL = 300  # seconds


@dataclass(frozen=True)
class VerificationPolicy:
    max_failures: int = DEFAULT_MAX_FAILURES
    interval: int = DEFAULT_FAILURE_INTERVAL

    def validate(self) -> "VerificationPolicy":
        if not isinstance(self.max_failures, int) or self.max_failures < 1:
            raise ConfigurationError(f"max_failures must be >= 1, got {self.max_failures!r}")
        if not isinstance(self.interval, int) or self.interval < 1:
            raise ConfigurationError(f"interval must be >= 1 second, got {self.interval!r}")
        return self

    def window_start(self, now: float) -> float:
        """Oldest attempt time that still counts towards the limit."""
        return now - self.interval

    def check_rate(self, recent_failures: int) -> None:
        """
        Raise RateLimited when the account already used up its failures.

        Arguments:
            recent_failures: consecutive failed attempts since the last
                success, restricted to the trailing interval.
        """
        if recent_failures >= self.max_failures:
            raise RateLimited()

    @staticmethod
    def check_replay(matched_step: int, last_matched_step: Optional[int]) -> None:
        """Raise ReplayedCode if ``matched_step`` was already consumed."""
        if last_matched_step is not None and matched_step <= last_matched_step:
            raise ReplayedCode()
