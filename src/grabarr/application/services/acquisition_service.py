"""Acquisition Service - the search → evaluate → decide cycle.

Hey future me - this is the ENTRY POINT of the whole acquisition core:

    run_cycle()                      periodic sync over every wanted title
    search_now(media_id, episode_id) manual search for one title

Per wanted title:
1. Fan out the search to every enabled indexer whose circuit is closed.
   At most ``max_parallel_searches`` run at once, each bounded by
   ``timeout_seconds``. A failing indexer is recorded in the health tracker and
   simply contributes no results - PARTIAL RESULTS ARE FINE.
2. Evaluate (blocklist, parse, profile, restrictions, formats, upgrade, rank).
3. Hand the best candidate to the delay policy (grab / defer / drop).

cancel() stops new searches and grabs; searches already in flight are cancelled.
Download polling is NOT affected (DownloadMonitorWorker runs independently).
"""

import asyncio
import logging
from dataclasses import dataclass, field

from grabarr.application.services.delay_policy_service import (
    DelayPolicyService,
    PolicyResult,
)
from grabarr.application.services.integration_health_service import (
    IntegrationHealthTracker,
)
from grabarr.application.services.integration_registry import IntegrationRegistry
from grabarr.application.services.release_evaluation_service import (
    ReleaseEvaluationService,
)
from grabarr.config import SearchSettings
from grabarr.domain.entities import (
    CustomFormat,
    DelayOutcome,
    DelayProfile,
    QualityProfile,
    RawRelease,
    ReleaseRestriction,
)
from grabarr.domain.exceptions import (
    EntityNotFoundException,
    IntegrationUnavailableError,
    TransientIntegrationError,
)
from grabarr.domain.ports import ISearchIndexer, IWantedMediaSource, WantedItem
from grabarr.domain.value_objects import IntegrationKey
from grabarr.infrastructure.observability import media_context, set_correlation_id
from grabarr.infrastructure.persistence import (
    CustomFormatRepository,
    Database,
    DelayProfileRepository,
    QualityProfileRepository,
    QueueRepository,
    ReleaseRestrictionRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Summary of one acquisition cycle."""

    correlation_id: str
    wanted: int = 0
    searched: int = 0
    grabbed: int = 0
    deferred: int = 0
    rejected: int = 0
    no_candidates: int = 0
    skipped: int = 0
    failed_indexers: set[int] = field(default_factory=set)
    cancelled: bool = False


@dataclass
class _Configuration:
    profiles: dict[int | None, QualityProfile]
    formats: list[CustomFormat]
    delay_profiles: list[DelayProfile]
    restrictions: list[ReleaseRestriction]


class AcquisitionService:
    """Runs acquisition cycles and manual searches."""

    def __init__(
        self,
        database: Database,
        registry: IntegrationRegistry,
        health: IntegrationHealthTracker,
        evaluation: ReleaseEvaluationService,
        policy: DelayPolicyService,
        wanted_source: IWantedMediaSource,
        settings: SearchSettings | None = None,
    ) -> None:
        self._database = database
        self._registry = registry
        self._health = health
        self._evaluation = evaluation
        self._policy = policy
        self._wanted = wanted_source
        self._settings = settings or SearchSettings()
        self._cancelled = asyncio.Event()
        self._in_flight: set[asyncio.Task[list[RawRelease]]] = set()

    # =========================================================================
    # CANCELLATION
    # =========================================================================

    def cancel(self) -> None:
        """Stop new searches/grabs and cancel searches in flight."""
        self._cancelled.set()
        for task in list(self._in_flight):
            task.cancel()
        logger.info("Acquisition cancelled (%d searches in flight)", len(self._in_flight))

    def resume(self) -> None:
        self._cancelled.clear()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    async def run_cycle(self) -> CycleReport:
        """Search every wanted title once."""
        report = CycleReport(correlation_id=set_correlation_id())
        wanted_items = await self._wanted.list_wanted()
        report.wanted = len(wanted_items)
        logger.info("Acquisition cycle started for %d wanted item(s)", report.wanted)

        config = await self._load_configuration()
        for wanted in wanted_items:
            if self.is_cancelled:
                report.cancelled = True
                break
            with media_context(wanted.media_id, wanted.episode_id):
                result = await self._acquire(wanted, config, report, direct=False)
            self._count(result, report)

        logger.info(
            "Acquisition cycle finished: %d searched, %d grabbed, %d deferred, "
            "%d without candidates, %d skipped",
            report.searched,
            report.grabbed,
            report.deferred,
            report.no_candidates,
            report.skipped,
        )
        return report

    async def search_now(
        self, media_id: int, episode_id: int | None = None, *, direct: bool = True
    ) -> PolicyResult | None:
        """Search a single title immediately.

        Raises:
            EntityNotFoundException: If the title isn't wanted (direct calls only)
            IntegrationUnavailableError: If every indexer is backing off (direct calls only)
        """
        set_correlation_id()
        wanted = await self._wanted.get_wanted(media_id, episode_id)
        if wanted is None:
            if direct:
                raise EntityNotFoundException("WantedItem", f"{media_id}/{episode_id}")
            logger.info("Media %d/%s no longer wanted, not searching", media_id, episode_id)
            return None

        config = await self._load_configuration()
        report = CycleReport(correlation_id="")
        with media_context(media_id, episode_id):
            return await self._acquire(wanted, config, report, direct=direct)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _load_configuration(self) -> _Configuration:
        async with self._database.session_scope() as session:
            profiles = {p.id: p for p in await QualityProfileRepository(session).list_all()}
            formats = await CustomFormatRepository(session).list_all()
            delay_profiles = await DelayProfileRepository(session).list_all()
            restrictions = await ReleaseRestrictionRepository(session).list_all()
        return _Configuration(profiles, formats, delay_profiles, restrictions)

    async def _acquire(
        self,
        wanted: WantedItem,
        config: _Configuration,
        report: CycleReport,
        *,
        direct: bool,
    ) -> PolicyResult | None:
        profile = config.profiles.get(wanted.quality_profile_id)
        if profile is None:
            logger.warning(
                "Media %d references missing quality profile %d, skipped",
                wanted.media_id,
                wanted.quality_profile_id,
            )
            report.skipped += 1
            return None

        async with self._database.session_scope() as session:
            active = await QueueRepository(session).get_active_for(
                wanted.media_id, wanted.episode_id
            )
        if active is not None:
            logger.debug("Media %d already in queue (item %s), skipped", wanted.media_id, active.id)
            report.skipped += 1
            return None

        releases = await self._search(wanted, report, direct=direct)
        if self.is_cancelled:
            report.cancelled = True
            return None
        report.searched += 1

        result = await self._evaluation.evaluate(
            releases, wanted, profile, config.formats, config.restrictions
        )
        best = result.best
        if best is None:
            report.no_candidates += 1
            return None

        return await self._policy.apply(
            best, wanted, profile, config.delay_profiles, direct=direct
        )

    async def _search(
        self, wanted: WantedItem, report: CycleReport, *, direct: bool
    ) -> list[RawRelease]:
        indexers = self._registry.enabled_indexers()
        usable_keys = await self._health.usable_keys(
            [IntegrationKey.indexer(i.indexer_id) for i in indexers]
        )
        usable = [i for i in indexers if IntegrationKey.indexer(i.indexer_id) in usable_keys]

        skipped = len(indexers) - len(usable)
        if skipped:
            logger.info("Skipping %d indexer(s) in backoff", skipped)
        if not usable:
            if direct and indexers:
                raise IntegrationUnavailableError(
                    "Every enabled indexer is temporarily disabled"
                )
            logger.warning("No usable indexer for media %d", wanted.media_id)
            return []

        semaphore = asyncio.Semaphore(self._settings.max_parallel_searches)
        tasks = [
            asyncio.create_task(self._search_one(indexer, wanted, semaphore))
            for indexer in usable
        ]
        self._in_flight.update(tasks)
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            self._in_flight.difference_update(tasks)

        releases: list[RawRelease] = []
        for indexer, outcome in zip(usable, results, strict=True):
            if isinstance(outcome, BaseException):
                report.failed_indexers.add(indexer.indexer_id)
                continue
            releases.extend(outcome)
        return releases

    async def _search_one(
        self, indexer: ISearchIndexer, wanted: WantedItem, semaphore: asyncio.Semaphore
    ) -> list[RawRelease]:
        key = IntegrationKey.indexer(indexer.indexer_id)
        async with semaphore:
            try:
                releases = await asyncio.wait_for(
                    indexer.search(wanted.query, list(wanted.categories)),
                    timeout=self._settings.timeout_seconds,
                )
            except TimeoutError:
                await self._health.record_failure(
                    key, f"Search timed out after {self._settings.timeout_seconds}s"
                )
                raise
            except TransientIntegrationError as e:
                await self._health.record_failure(key, e.message)
                raise
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Indexer %s crashed while searching", indexer.name)
                raise

        await self._health.record_success(key)
        logger.debug(
            "Indexer %s returned %d release(s) for '%s'",
            indexer.name,
            len(releases),
            wanted.query,
        )
        return releases

    @staticmethod
    def _count(result: PolicyResult | None, report: CycleReport) -> None:
        if result is None:
            return
        if result.outcome == DelayOutcome.GRAB and result.queue_item is not None:
            report.grabbed += 1
        elif result.outcome == DelayOutcome.DEFER:
            report.deferred += 1
        elif result.outcome == DelayOutcome.REJECT:
            report.rejected += 1
