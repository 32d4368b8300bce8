"""Pending Release Entity - a deferred candidate waiting out its delay."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from grabarr.domain.entities.release import Candidate


@dataclass
class PendingRelease:
    """A candidate held back by a delay profile.

    One row per (media_id, episode_id). ``release_at`` is fixed when the row is
    created; superseding the snapshot with a better candidate never moves it.
    """

    id: int | None
    media_id: int
    episode_id: int | None
    candidate: Candidate
    added_at: datetime
    release_at: datetime
    reason: str = "delay"

    @classmethod
    def create(
        cls,
        media_id: int,
        episode_id: int | None,
        candidate: Candidate,
        now: datetime,
        delay_minutes: int,
        reason: str = "delay",
    ) -> PendingRelease:
        return cls(
            id=None,
            media_id=media_id,
            episode_id=episode_id,
            candidate=candidate,
            added_at=now,
            release_at=now + timedelta(minutes=delay_minutes),
            reason=reason,
        )

    def supersede(self, candidate: Candidate) -> None:
        """Replace the stored snapshot. The timer keeps running."""
        self.candidate = candidate

    def is_due(self, now: datetime) -> bool:
        return self.release_at <= now
