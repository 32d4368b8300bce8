"""Queue Service - drives the acquisition queue state machine.

Hey future me - three things move a queue item:

1. apply_client_status()   polling observations from the download client
2. report_import_result()  the import collaborator (via import_item())
3. remove()                manual removal by a user

Every mutation of ONE item runs under the "queue:<id>" lock, so a poll and an
import result for the same item can never interleave (single writer).

FAILURE PIPELINE (in this order, each step safe to replay):
1. persist status=failed
2. blocklist the release (unique fingerprint)
3. history download_failed / import_failed (unique per queue item + event)
4. health signal → download stage blames the DOWNLOAD CLIENT,
                   import stage blames the INDEXER that supplied the release
5. at most one automatic re-search for the media/episode
6. delete the queue row

Steps 4 and 5 only run when step 3 actually inserted the history row. A replay
after a crash therefore neither escalates the backoff twice nor searches twice.
Rows stuck in "failed" (crash between 1 and 6) are finished by resume_failed().
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from grabarr.application.keyed_lock import KeyedLock
from grabarr.application.services.blocklist_service import BlocklistService
from grabarr.application.services.integration_health_service import (
    IntegrationHealthTracker,
)
from grabarr.application.services.integration_registry import IntegrationRegistry
from grabarr.domain.entities import (
    ClientState,
    ClientStatus,
    FailureStage,
    HistoryEventType,
    HistoryRecord,
    QueueItem,
    QueueStatus,
)
from grabarr.domain.exceptions import (
    EntityNotFoundException,
    ImportFailure,
    InvalidStateException,
    TransientIntegrationError,
)
from grabarr.domain.ports import IClock, IImportHandler
from grabarr.domain.value_objects import IntegrationKey
from grabarr.infrastructure.persistence import Database, HistoryRepository, QueueRepository

logger = logging.getLogger(__name__)

ResearchHandler = Callable[[int, int | None], Awaitable[Any]]


def queue_lock_key(item_id: int) -> str:
    return f"queue:{item_id}"


class QueueService:
    """Owns every state change of queue items."""

    def __init__(
        self,
        database: Database,
        registry: IntegrationRegistry,
        health: IntegrationHealthTracker,
        blocklist: BlocklistService,
        clock: IClock,
        locks: KeyedLock | None = None,
        research: ResearchHandler | None = None,
        max_research_retries: int = 1,
    ) -> None:
        self._database = database
        self._registry = registry
        self._health = health
        self._blocklist = blocklist
        self._clock = clock
        self._locks = locks or KeyedLock()
        self._research = research
        self._max_research_retries = max_research_retries

    def set_research_handler(self, research: ResearchHandler | None) -> None:
        """Wire the automatic re-search (acquisition service is built after us)."""
        self._research = research

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list_items(self) -> list[QueueItem]:
        async with self._database.session_scope() as session:
            return await QueueRepository(session).list_all()

    async def list_for_client(self, client_id: int) -> list[QueueItem]:
        async with self._database.session_scope() as session:
            return await QueueRepository(session).list_by_client(client_id)

    async def get_item(self, item_id: int) -> QueueItem:
        item = await self._load(item_id)
        if item is None:
            raise EntityNotFoundException("QueueItem", item_id)
        return item

    async def statistics(self) -> dict[str, int]:
        """Item count per status plus total."""
        async with self._database.session_scope() as session:
            counts = await QueueRepository(session).count_by_status()
        stats = {status.value: count for status, count in counts.items()}
        stats["total"] = sum(counts.values())
        return stats

    # =========================================================================
    # DRIVERS
    # =========================================================================

    async def apply_client_status(self, item_id: int, status: ClientStatus) -> QueueItem | None:
        """Apply one polling observation. Returns the item, None if it's gone.

        Raises:
            InvalidStateException: If the observation implies an illegal transition
        """
        async with self._locks.acquire(queue_lock_key(item_id)):
            item = await self._load(item_id)
            if item is None:
                return None
            if item.is_terminal() or item.status == QueueStatus.IMPORTING:
                # Import stage is driven by the import collaborator, not the client
                return item

            now = self._clock.now()
            if status.state == ClientState.FAILED:
                item.fail(
                    FailureStage.DOWNLOAD,
                    status.message or "Download failed in client",
                    now,
                )
                await self._handle_failure(item)
                return item

            if status.state == ClientState.DOWNLOADING:
                self._ensure_downloading(item, now)
            elif status.state == ClientState.PAUSED:
                self._ensure_downloading(item, now)
                item.pause(now)
            elif status.state == ClientState.COMPLETED:
                self._ensure_downloading(item, now)

            if status.state != ClientState.COMPLETED:
                item.update_progress(status.progress, status.size_remaining, now)
                await self._save(item)
                return item

            item.start_import(now)
            async with self._database.session_scope() as session:
                await QueueRepository(session).update(item)
                await HistoryRepository(session).add(
                    HistoryRecord.for_item(item, HistoryEventType.DOWNLOAD_COMPLETED, now)
                )
            logger.info("Queue item %d finished downloading, importing", item_id)
            return item

    async def report_import_result(
        self, item_id: int, success: bool, message: str | None = None
    ) -> None:
        """Complete or fail an item that is importing.

        Raises:
            EntityNotFoundException: If the item doesn't exist
            InvalidStateException: If the item is not importing
        """
        async with self._locks.acquire(queue_lock_key(item_id)):
            item = await self._load(item_id)
            if item is None:
                raise EntityNotFoundException("QueueItem", item_id)
            if item.status != QueueStatus.IMPORTING:
                raise InvalidStateException(
                    f"Queue item {item_id} is {item.status.value}, not importing"
                )

            now = self._clock.now()
            if not success:
                item.fail(FailureStage.IMPORT, message or "Import failed", now)
                await self._handle_failure(item)
                return

            item.complete(now)
            async with self._database.session_scope() as session:
                await HistoryRepository(session).add(
                    HistoryRecord.for_item(
                        item, HistoryEventType.IMPORT_COMPLETED, now, message=message
                    )
                )
                await QueueRepository(session).delete(item_id)

        await self._health.record_success(
            IntegrationKey.download_client(item.download_client_id)
        )
        logger.info("Queue item %d imported: '%s'", item_id, item.candidate.title)

    async def import_item(self, item_id: int, handler: IImportHandler) -> None:
        """Run the import collaborator for an importing item and report the result."""
        item = await self.get_item(item_id)
        if item.status != QueueStatus.IMPORTING:
            raise InvalidStateException(
                f"Queue item {item_id} is {item.status.value}, not importing"
            )
        try:
            result = await handler.import_download(item)
        except ImportFailure as e:
            await self.report_import_result(item_id, False, e.message)
            return
        await self.report_import_result(item_id, result.success, result.message)

    async def remove(
        self, item_id: int, blocklist: bool = False, reason: str = "Removed manually"
    ) -> None:
        """Manual removal: client remove, history "deleted", optional blocklist.

        Raises:
            EntityNotFoundException: If the item doesn't exist
        """
        async with self._locks.acquire(queue_lock_key(item_id)):
            item = await self._load(item_id)
            if item is None:
                raise EntityNotFoundException("QueueItem", item_id)

            client = self._registry.get_download_client(item.download_client_id)
            try:
                await client.remove(item.download_id)
            except TransientIntegrationError as e:
                await self._health.record_failure(
                    IntegrationKey.download_client(client.client_id), e.message
                )
                logger.warning(
                    "Client %s could not remove download %s, removing locally: %s",
                    client.name,
                    item.download_id,
                    e.message,
                )

            if blocklist:
                await self._blocklist.block(
                    item.candidate, item.media_id, item.episode_id, reason
                )
            now = self._clock.now()
            async with self._database.session_scope() as session:
                await HistoryRepository(session).add(
                    HistoryRecord.for_item(
                        item, HistoryEventType.DELETED, now, reason=reason, blocklisted=blocklist
                    )
                )
                await QueueRepository(session).delete(item_id)
        logger.info("Removed queue item %d (blocklist=%s)", item_id, blocklist)

    async def resume_failed(self) -> int:
        """Finish failure pipelines interrupted by a crash. Returns items handled."""
        handled = 0
        for item in await self.list_items():
            if item.status != QueueStatus.FAILED or item.id is None:
                continue
            async with self._locks.acquire(queue_lock_key(item.id)):
                await self._handle_failure(item, persist=False)
            handled += 1
        return handled

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _ensure_downloading(item: QueueItem, now: datetime) -> None:
        if item.status == QueueStatus.QUEUED:
            item.start_downloading(now)
        elif item.status == QueueStatus.PAUSED:
            item.resume(now)

    async def _load(self, item_id: int) -> QueueItem | None:
        async with self._database.session_scope() as session:
            return await QueueRepository(session).get_by_id(item_id)

    async def _save(self, item: QueueItem) -> None:
        async with self._database.session_scope() as session:
            await QueueRepository(session).update(item)

    async def _handle_failure(self, item: QueueItem, persist: bool = True) -> None:
        if item.id is None:
            raise InvalidStateException("Cannot run the failure pipeline for an unsaved queue item")
        stage = item.failure_stage or FailureStage.DOWNLOAD
        message = item.error_message or "Unknown failure"
        now = self._clock.now()

        # 1. persist failed status
        if persist:
            await self._save(item)

        # 2. blocklist
        await self._blocklist.block(item.candidate, item.media_id, item.episode_id, message)

        # 3. history
        event = (
            HistoryEventType.DOWNLOAD_FAILED
            if stage == FailureStage.DOWNLOAD
            else HistoryEventType.IMPORT_FAILED
        )
        async with self._database.session_scope() as session:
            first_time = await HistoryRepository(session).add(
                HistoryRecord.for_item(item, event, now, message=message, stage=stage.value)
            )

        if first_time:
            # 4. health signal
            implicated = (
                IntegrationKey.download_client(item.download_client_id)
                if stage == FailureStage.DOWNLOAD
                else IntegrationKey.indexer(item.candidate.indexer_id)
            )
            await self._health.record_failure(implicated, message)

            # 5. one re-search
            if self._research is not None and self._max_research_retries > 0:
                try:
                    await self._research(item.media_id, item.episode_id)
                except Exception as e:
                    # The failed item must still be cleaned up below
                    logger.exception(
                        "Re-search for media %d after failure of item %d failed: %s",
                        item.media_id,
                        item.id,
                        e,
                    )

        # 6. delete row
        async with self._database.session_scope() as session:
            await QueueRepository(session).delete(item.id)

        logger.warning(
            "Queue item %d failed at %s stage ('%s'): %s",
            item.id,
            stage.value,
            item.candidate.title,
            message,
        )
