"""Pending Release Scheduler - promotes deferred candidates when they're due.

Hey future me - a tick looks at EVERY pending row and decides:

- media no longer wanted            → discard
- quality no longer allowed,
  a release restriction fails,
  protocol disabled, score too low,
  or no longer an upgrade           → discard
- release_at <= now                 → promote
- a bypass condition holds NOW      → promote early (re-evaluated against the CURRENT
                                      quality profile, custom formats and delay profile)
- otherwise                         → leave it

PROMOTION IS EXACTLY-ONCE: the row is "claimed" with a single-row DELETE and only
the caller that saw rowcount == 1 grabs. Two overlapping ticks (or two processes)
can both see the row, but only one of them deletes it.

NO USABLE CLIENT never loses the row: the tick checks the client circuit breakers
before claiming and leaves the row alone when every client is backing off. If the
grab still fails after the claim, the row is put back with its ORIGINAL added_at
and release_at, so the delay window does not start over.
"""

import logging
from dataclasses import dataclass, field, replace

from grabarr.application.keyed_lock import KeyedLock
from grabarr.application.services.delay_policy_service import pending_lock_key
from grabarr.application.services.grab_service import GrabService
from grabarr.application.services.release_evaluation_service import (
    Rejection,
    assess_candidate,
)
from grabarr.domain.entities import (
    Candidate,
    CustomFormat,
    DelayProfile,
    PendingRelease,
    QualityProfile,
    QueueItem,
    ReleaseRestriction,
    score_candidate,
    select_delay_profile,
)
from grabarr.domain.exceptions import InvalidStateException
from grabarr.domain.ports import IClock, IWantedMediaSource
from grabarr.infrastructure.persistence import (
    CustomFormatRepository,
    Database,
    DelayProfileRepository,
    PendingReleaseRepository,
    QualityProfileRepository,
    ReleaseRestrictionRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """Outcome of one scheduler tick."""

    checked: int = 0
    promoted: list[QueueItem] = field(default_factory=list)
    discarded: int = 0
    lost_claims: int = 0
    waiting: int = 0


class PendingReleaseService:
    """Runs scheduler ticks over the pending_releases table."""

    def __init__(
        self,
        database: Database,
        grab_service: GrabService,
        wanted_source: IWantedMediaSource,
        clock: IClock,
        locks: KeyedLock | None = None,
    ) -> None:
        self._database = database
        self._grab = grab_service
        self._wanted = wanted_source
        self._clock = clock
        self._locks = locks or KeyedLock()

    async def list_pending(self) -> list[PendingRelease]:
        async with self._database.session_scope() as session:
            return await PendingReleaseRepository(session).list_all()

    async def remove_for_media(self, media_id: int) -> int:
        """Drop pending rows of a media item that was removed from the library."""
        async with self._database.session_scope() as session:
            removed = await PendingReleaseRepository(session).delete_for_media(media_id)
        if removed:
            logger.info("Dropped %d pending release(s) of removed media %d", removed, media_id)
        return removed

    async def tick(self) -> TickReport:
        async with self._database.session_scope() as session:
            pending_rows = await PendingReleaseRepository(session).list_all()
            profiles = {
                p.id: p for p in await QualityProfileRepository(session).list_all()
            }
            formats = await CustomFormatRepository(session).list_all()
            delay_profiles = await DelayProfileRepository(session).list_all()
            restrictions = await ReleaseRestrictionRepository(session).list_all()

        report = TickReport(checked=len(pending_rows))
        for pending in pending_rows:
            await self._process(
                pending, profiles, formats, delay_profiles, restrictions, report
            )

        if report.promoted or report.discarded or report.waiting:
            logger.info(
                "Pending tick: %d checked, %d promoted, %d discarded, %d waiting for a client",
                report.checked,
                len(report.promoted),
                report.discarded,
                report.waiting,
            )
        return report

    async def _process(
        self,
        pending: PendingRelease,
        profiles: dict[int | None, QualityProfile],
        formats: list[CustomFormat],
        delay_profiles: list[DelayProfile],
        restrictions: list[ReleaseRestriction],
        report: TickReport,
    ) -> None:
        wanted = await self._wanted.get_wanted(pending.media_id, pending.episode_id)
        if wanted is None:
            await self._discard(pending, "media no longer wanted", report)
            return

        profile = profiles.get(wanted.quality_profile_id)
        if profile is None:
            logger.warning(
                "Quality profile %d of media %d missing, pending release %s left alone",
                wanted.quality_profile_id,
                pending.media_id,
                pending.id,
            )
            return

        outcome = assess_candidate(pending.candidate, wanted, profile, formats, restrictions)
        if isinstance(outcome, Rejection):
            await self._discard(pending, outcome.reason, report)
            return
        candidate: Candidate = outcome

        delay_profile = select_delay_profile(delay_profiles, wanted.tags)
        if not delay_profile.protocol_enabled(candidate.protocol):
            await self._discard(pending, f"{candidate.protocol.value} now disabled", report)
            return

        now = self._clock.now()
        if not (pending.is_due(now) or delay_profile.bypasses(candidate, profile)):
            return

        if not await self._grab.has_usable_client(candidate.protocol):
            # Claiming now would throw the row away, keep waiting with the same release_at
            report.waiting += 1
            logger.info(
                "No usable %s download client, pending release %s for media %d waits",
                candidate.protocol.value,
                pending.id,
                pending.media_id,
            )
            return

        async with self._locks.acquire(pending_lock_key(pending.media_id, pending.episode_id)):
            async with self._database.session_scope() as session:
                repo = PendingReleaseRepository(session)
                current = await repo.get_for(pending.media_id, pending.episode_id)
                claimed = (
                    current is not None
                    and current.id == pending.id
                    and await repo.claim(current.id)
                )
            if not claimed or current is None:
                report.lost_claims += 1
                return

            if current.candidate != pending.candidate:
                # Superseded between loading and claiming
                candidate = score_candidate(current.candidate, formats, profile)

            item: QueueItem | None = None
            try:
                item = await self._grab.grab(candidate, pending.media_id, pending.episode_id)
            finally:
                if item is None:
                    await self._restore(current)

        if item is None:
            report.waiting += 1
            return
        report.promoted.append(item)
        logger.info(
            "Promoted pending release %s ('%s') for media %d",
            pending.id,
            candidate.title,
            pending.media_id,
        )

    async def _restore(self, claimed: PendingRelease) -> None:
        """Put a claimed row back after a failed grab, with its original timestamps.

        Hey future me - only call this while holding the target's pending lock,
        otherwise the delay policy may have inserted a fresh row in between.
        """
        async with self._database.session_scope() as session:
            repo = PendingReleaseRepository(session)
            if await repo.get_for(claimed.media_id, claimed.episode_id) is not None:
                return
            restored = await repo.add(replace(claimed, id=None))
        logger.info(
            "Grab of pending release '%s' failed, kept as pending %s until %s",
            claimed.candidate.title,
            restored.id,
            claimed.release_at.isoformat(),
        )

    async def _claim(self, pending: PendingRelease) -> bool:
        if pending.id is None:
            raise InvalidStateException("Cannot claim a pending release that was never saved")
        async with self._database.session_scope() as session:
            return await PendingReleaseRepository(session).claim(pending.id)

    async def _discard(self, pending: PendingRelease, reason: str, report: TickReport) -> None:
        async with self._locks.acquire(pending_lock_key(pending.media_id, pending.episode_id)):
            if await self._claim(pending):
                report.discarded += 1
                logger.info(
                    "Discarded pending release %s ('%s'): %s",
                    pending.id,
                    pending.candidate.title,
                    reason,
                )
