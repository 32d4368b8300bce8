"""Blocklist Manager - permanent rejection of releases that failed before.

Hey future me - the blocklist only GROWS automatically. The one and only way an
entry disappears is remove(entry_id), i.e. a user action. Filtering happens on
RAW releases, before parsing and scoring, so blocked titles never cost a parse.
"""

import logging
from collections.abc import Iterable

from grabarr.domain.entities import BlocklistEntry, Candidate, RawRelease, fingerprint
from grabarr.domain.ports import IClock
from grabarr.infrastructure.persistence import BlocklistRepository, Database

logger = logging.getLogger(__name__)


def release_fingerprint(release: RawRelease | Candidate) -> str:
    return fingerprint(release.indexer_id, release.protocol, release.title)


class BlocklistService:
    """Checks, adds and removes blocklist entries."""

    def __init__(self, database: Database, clock: IClock) -> None:
        self._database = database
        self._clock = clock

    async def is_blocked(self, release: RawRelease | Candidate) -> bool:
        async with self._database.session_scope() as session:
            return await BlocklistRepository(session).exists(release_fingerprint(release))

    async def filter_releases(
        self, releases: Iterable[RawRelease]
    ) -> tuple[list[RawRelease], list[RawRelease]]:
        """Split releases into (allowed, blocked) with one query."""
        async with self._database.session_scope() as session:
            blocked_fps = await BlocklistRepository(session).list_fingerprints()

        allowed: list[RawRelease] = []
        blocked: list[RawRelease] = []
        for release in releases:
            if release_fingerprint(release) in blocked_fps:
                blocked.append(release)
            else:
                allowed.append(release)
        return allowed, blocked

    async def block(
        self,
        candidate: Candidate,
        media_id: int,
        episode_id: int | None,
        reason: str,
    ) -> bool:
        """Block a release. Idempotent: False if it was already blocked."""
        entry = BlocklistEntry(
            id=None,
            fingerprint=release_fingerprint(candidate),
            media_id=media_id,
            episode_id=episode_id,
            source_title=candidate.title,
            indexer_id=candidate.indexer_id,
            protocol=candidate.protocol,
            reason=reason,
            date=self._clock.now(),
        )
        async with self._database.session_scope() as session:
            added = await BlocklistRepository(session).add(entry)
        if added:
            logger.info("Blocklisted '%s' (media %d): %s", candidate.title, media_id, reason)
        return added

    async def list_entries(self) -> list[BlocklistEntry]:
        async with self._database.session_scope() as session:
            return await BlocklistRepository(session).list_all()

    async def remove(self, entry_id: int) -> None:
        """Manual removal. Raises EntityNotFoundException for unknown ids."""
        async with self._database.session_scope() as session:
            await BlocklistRepository(session).delete(entry_id)
        logger.info("Removed blocklist entry %d", entry_id)
