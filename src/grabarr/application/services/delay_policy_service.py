"""Delay Policy Service - grab now, or park the candidate as a pending release.

Hey future me - per media/episode there is AT MOST ONE pending row:

- DEFER and no row      → create it (release_at = now + delay)
- DEFER and row exists  → replace the snapshot ONLY if the new candidate strictly
                          outranks it. release_at never moves! Otherwise a steady
                          trickle of slightly better releases would delay forever.
- GRAB                  → grab; a stale pending row for the same target is dropped
                          only once the grab succeeded, a failed grab keeps it
- REJECT                → protocol disabled, nothing happens

All of this runs under the "pending:<media>:<episode>" lock that the pending
scheduler also takes before promoting, so a tick can't promote a row we're
in the middle of superseding.
"""

import logging
from dataclasses import dataclass

from grabarr.application.keyed_lock import KeyedLock
from grabarr.application.services.grab_service import GrabService
from grabarr.domain.entities import (
    Candidate,
    DelayOutcome,
    DelayProfile,
    PendingRelease,
    QualityProfile,
    QueueItem,
    evaluate_delay,
    outranks,
    select_delay_profile,
)
from grabarr.domain.exceptions import InvalidStateException
from grabarr.domain.ports import IClock, WantedItem
from grabarr.infrastructure.persistence import Database, PendingReleaseRepository

logger = logging.getLogger(__name__)


def pending_lock_key(media_id: int, episode_id: int | None) -> str:
    return f"pending:{media_id}:{episode_id}"


def supersedes(challenger: Candidate, incumbent: Candidate, profile: QualityProfile) -> bool:
    """True if the challenger should replace a stored pending snapshot."""
    if profile.rank(incumbent.detected_quality_id) is None:
        # Stored quality was disabled since it was deferred
        return True
    return outranks(challenger, incumbent, profile)


@dataclass
class PolicyResult:
    """What the delay policy did with a candidate."""

    outcome: DelayOutcome
    reason: str = ""
    queue_item: QueueItem | None = None
    pending: PendingRelease | None = None


class DelayPolicyService:
    """Applies delay profiles to the best candidate of a search."""

    def __init__(
        self,
        database: Database,
        grab_service: GrabService,
        clock: IClock,
        locks: KeyedLock | None = None,
    ) -> None:
        self._database = database
        self._grab = grab_service
        self._clock = clock
        self._locks = locks or KeyedLock()

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    async def apply(
        self,
        candidate: Candidate,
        wanted: WantedItem,
        quality_profile: QualityProfile,
        delay_profiles: list[DelayProfile],
        *,
        direct: bool = False,
    ) -> PolicyResult:
        delay_profile = select_delay_profile(delay_profiles, wanted.tags)
        decision = evaluate_delay(delay_profile, candidate, quality_profile)

        if decision.outcome == DelayOutcome.REJECT:
            logger.debug("Dropped '%s': %s", candidate.title, decision.reason)
            return PolicyResult(DelayOutcome.REJECT, decision.reason)

        async with self._locks.acquire(pending_lock_key(wanted.media_id, wanted.episode_id)):
            if decision.outcome == DelayOutcome.GRAB:
                item = await self._grab.grab(
                    candidate, wanted.media_id, wanted.episode_id, direct=direct
                )
                if item is not None:
                    await self._drop_stale(wanted)
                return PolicyResult(DelayOutcome.GRAB, decision.reason, queue_item=item)

            return await self._defer(candidate, wanted, quality_profile, decision.delay_minutes)

    async def _drop_stale(self, wanted: WantedItem) -> None:
        """Remove the pending row a successful grab made obsolete."""
        async with self._database.session_scope() as session:
            repo = PendingReleaseRepository(session)
            stale = await repo.get_for(wanted.media_id, wanted.episode_id)
            if stale is not None and stale.id is not None and await repo.claim(stale.id):
                logger.info(
                    "Dropped pending release %d for media %d, grabbed something else",
                    stale.id,
                    wanted.media_id,
                )

    async def _defer(
        self,
        candidate: Candidate,
        wanted: WantedItem,
        quality_profile: QualityProfile,
        delay_minutes: int,
    ) -> PolicyResult:
        async with self._database.session_scope() as session:
            repo = PendingReleaseRepository(session)
            existing = await repo.get_for(wanted.media_id, wanted.episode_id)

            if existing is None:
                pending = PendingRelease.create(
                    wanted.media_id,
                    wanted.episode_id,
                    candidate,
                    self._clock.now(),
                    delay_minutes,
                    reason=f"{candidate.protocol.value} delay",
                )
                await repo.add(pending)
                logger.info(
                    "Deferred '%s' for media %d until %s",
                    candidate.title,
                    wanted.media_id,
                    pending.release_at.isoformat(),
                )
                return PolicyResult(DelayOutcome.DEFER, "created", pending=pending)

            if existing.id is None:
                raise InvalidStateException("Stored pending release has no id")
            if supersedes(candidate, existing.candidate, quality_profile):
                await repo.update_candidate(existing.id, candidate)
                existing.supersede(candidate)
                logger.info(
                    "Pending release %d for media %d superseded by '%s' (release at %s)",
                    existing.id,
                    wanted.media_id,
                    candidate.title,
                    existing.release_at.isoformat(),
                )
                return PolicyResult(DelayOutcome.DEFER, "superseded", pending=existing)

        logger.debug(
            "Pending release %d kept, '%s' does not outrank it", existing.id, candidate.title
        )
        return PolicyResult(DelayOutcome.DEFER, "kept", pending=existing)
