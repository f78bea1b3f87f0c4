"""
Login rate limiter.

Limits failed sign-in attempts per identifier (the lower-cased email) within
a fixed window that starts at the first failed attempt.
"""

import time
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from auth_session.errors import mask_email


logger = logging.getLogger(__name__)


@dataclass
class AttemptRecord:
    count: int
    first_attempt: float
    last_attempt: float


class LoginRateLimiter:
    """Per-identifier failed login counter.

    Example:
        limiter = LoginRateLimiter(max_attempts=5, window_seconds=300)
        if limiter.is_rate_limited(email):
            ...
        limiter.record_failure(email)
    """

    def __init__(self, max_attempts: int = 5, window_seconds: float = 300.0):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._attempts: Dict[str, AttemptRecord] = {}

    @staticmethod
    def _key(identifier: str) -> str:
        return identifier.strip().lower()

    def _live_record(self, identifier: str) -> Optional[AttemptRecord]:
        """Return the record for an identifier, dropping it if its window passed."""
        key = self._key(identifier)
        record = self._attempts.get(key)
        if record and time.monotonic() - record.first_attempt > self.window_seconds:
            del self._attempts[key]
            return None
        return record

    def record_failure(self, identifier: str) -> bool:
        """Record a failed attempt.

        Returns:
            True if further attempts are still allowed
        """
        now = time.monotonic()
        self.cleanup()
        record = self._live_record(identifier)
        if record is None:
            self._attempts[self._key(identifier)] = AttemptRecord(count=1, first_attempt=now, last_attempt=now)
            return True

        record.count += 1
        record.last_attempt = now
        allowed = record.count < self.max_attempts
        if not allowed:
            logger.warning(f"[RateLimiter] Login attempts exhausted for {mask_email(self._key(identifier))}")
        return allowed

    def is_rate_limited(self, identifier: str) -> bool:
        record = self._live_record(identifier)
        return record is not None and record.count >= self.max_attempts

    def remaining_attempts(self, identifier: str) -> int:
        record = self._live_record(identifier)
        if record is None:
            return self.max_attempts
        return max(0, self.max_attempts - record.count)

    def seconds_remaining(self, identifier: str) -> float:
        """Time until the identifier may try again, 0 if not limited."""
        record = self._live_record(identifier)
        if record is None or record.count < self.max_attempts:
            return 0.0
        elapsed = time.monotonic() - record.first_attempt
        return max(0.0, self.window_seconds - elapsed)

    def cleanup(self) -> int:
        """Drop every record whose window has passed.

        Returns:
            Number of records removed
        """
        now = time.monotonic()
        expired = [
            key for key, record in self._attempts.items()
            if now - record.first_attempt > self.window_seconds
        ]
        for key in expired:
            del self._attempts[key]
        if expired:
            logger.debug(f"[RateLimiter] Removed {len(expired)} expired records")
        return len(expired)

    def reset(self, identifier: str) -> None:
        self._attempts.pop(self._key(identifier), None)

    def clear(self) -> None:
        self._attempts.clear()
