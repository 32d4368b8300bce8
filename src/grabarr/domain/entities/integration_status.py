"""Integration Status Entity - circuit breaker state for indexers and download clients.

Hey future me - every failing indexer/client gets an escalation level:

    level:    1   2   3   4   5    6    7    8    9     10
    minutes:  5  10  20  40  80  160  320  640  1280  1440 (capped)

backoff(n) = min(base * 2^(n-1), max). Level never exceeds max_level.
ONE success resets everything. While ``now < disabled_till`` the integration
is skipped; at ``disabled_till`` it is tried again (half-open).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

DEFAULT_BASE_BACKOFF_MINUTES = 5
DEFAULT_MAX_BACKOFF_MINUTES = 1440
DEFAULT_MAX_ESCALATION_LEVEL = 10


def backoff_minutes(
    level: int,
    base: int = DEFAULT_BASE_BACKOFF_MINUTES,
    maximum: int = DEFAULT_MAX_BACKOFF_MINUTES,
) -> int:
    """Disable duration for an escalation level (0 for level 0)."""
    if level <= 0:
        return 0
    return int(min(base * 2 ** (level - 1), maximum))


@dataclass
class IntegrationStatus:
    """Health of a single integration, keyed like ``"indexer:3"``."""

    integration_key: str
    initial_failure_at: datetime | None = None
    most_recent_failure_at: datetime | None = None
    escalation_level: int = 0
    disabled_till: datetime | None = None
    last_error: str | None = None

    def record_failure(
        self,
        now: datetime,
        error: str,
        base: int = DEFAULT_BASE_BACKOFF_MINUTES,
        maximum: int = DEFAULT_MAX_BACKOFF_MINUTES,
        max_level: int = DEFAULT_MAX_ESCALATION_LEVEL,
    ) -> None:
        if self.initial_failure_at is None:
            self.initial_failure_at = now
        self.most_recent_failure_at = now
        self.escalation_level = min(self.escalation_level + 1, max_level)
        self.disabled_till = now + timedelta(
            minutes=backoff_minutes(self.escalation_level, base, maximum)
        )
        self.last_error = error

    def record_success(self) -> None:
        self.initial_failure_at = None
        self.most_recent_failure_at = None
        self.escalation_level = 0
        self.disabled_till = None
        self.last_error = None

    def is_usable(self, now: datetime) -> bool:
        return self.disabled_till is None or now >= self.disabled_till

    @property
    def is_healthy(self) -> bool:
        return self.escalation_level == 0
