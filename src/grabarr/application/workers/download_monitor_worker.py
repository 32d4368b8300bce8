# Hey future me - this worker WATCHES grabbed downloads!
#
# One poll task per download client, so a slow client never delays the others.
# Per poll:
# 1. Skip the client entirely while its circuit is open (health tracker)
# 2. Ask the client for the status of each of its active queue items
# 3. Hand every observation to QueueService.apply_client_status()
# 4. Items that reached "importing" are handed to the import collaborator
#
# A TransientIntegrationError from status() counts as ONE failure of the client
# for this poll (not one per item) and ends the poll early.
#
# On start we first finish what a crash may have left behind:
# - failed rows whose failure pipeline never completed → resume_failed()
# - importing rows whose import result never arrived → import again
"""Download monitor worker for tracking download client progress."""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import Any

from grabarr.application.services.integration_health_service import (
    IntegrationHealthTracker,
)
from grabarr.application.services.integration_registry import IntegrationRegistry
from grabarr.application.services.queue_service import QueueService
from grabarr.domain.entities import QueueStatus
from grabarr.domain.exceptions import InvalidStateException, TransientIntegrationError
from grabarr.domain.ports import IDownloadClient, IImportHandler
from grabarr.domain.value_objects import IntegrationKey

logger = logging.getLogger(__name__)


class DownloadMonitorWorker:
    """Background worker that polls download clients and drives the queue.

    The worker does NOT grab anything - that's GrabService's job.
    """

    def __init__(
        self,
        queue: QueueService,
        registry: IntegrationRegistry,
        health: IntegrationHealthTracker,
        import_handler: IImportHandler | None = None,
        poll_interval_seconds: int = 30,
    ) -> None:
        """Initialize download monitor worker.

        Args:
            queue: Queue service applying the observations
            registry: Source of the configured download clients
            health: Integration health tracker (circuit breaker)
            import_handler: Import collaborator, None leaves items in "importing"
            poll_interval_seconds: How often each client is polled (default 30s)
        """
        self._queue = queue
        self._registry = registry
        self._health = health
        self._import_handler = import_handler
        self._poll_interval = poll_interval_seconds
        self._running = False
        self._tasks: list[asyncio.Task[None]] = []
        self._stats: dict[str, Any] = {
            "polls_completed": 0,
            "polls_skipped": 0,
            "client_errors": 0,
            "imports_started": 0,
            "last_poll_at": None,
            "last_error": None,
        }

    async def start(self) -> None:
        """Recover leftovers, then start one poll loop per client."""
        if self._running:
            logger.warning("Download monitor worker is already running")
            return

        await self.recover()
        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_loop(client))
            for client in self._registry.download_clients()
            if client.enabled
        ]
        logger.info(
            "Download monitor worker started (%d clients, interval=%ds)",
            len(self._tasks),
            self._poll_interval,
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Download monitor worker stopped")

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "running": self._running,
            "poll_interval_seconds": self._poll_interval,
        }

    async def recover(self) -> None:
        """Finish failure pipelines and imports interrupted by a restart."""
        resumed = await self._queue.resume_failed()
        if resumed:
            logger.info("Finished %d interrupted failure pipeline(s)", resumed)

        for item in await self._queue.list_items():
            if item.status == QueueStatus.IMPORTING and item.id is not None:
                await self._import(item.id)

    async def poll_client(self, client: IDownloadClient) -> None:
        """Poll one client once for all of its active queue items."""
        key = IntegrationKey.download_client(client.client_id)
        if not await self._health.is_usable(key):
            self._stats["polls_skipped"] += 1
            logger.debug("Download client %s is backing off, poll skipped", client.name)
            return

        items = [
            item
            for item in await self._queue.list_for_client(client.client_id)
            if item.status
            in (QueueStatus.QUEUED, QueueStatus.DOWNLOADING, QueueStatus.PAUSED)
        ]
        if not items:
            return

        for item in items:
            if item.id is None:
                raise InvalidStateException(f"Queue item for download {item.download_id} has no id")
            try:
                status = await client.status(item.download_id)
            except TransientIntegrationError as e:
                self._stats["client_errors"] += 1
                await self._health.record_failure(key, e.message)
                return

            updated = await self._queue.apply_client_status(item.id, status)
            if updated is not None and updated.status == QueueStatus.IMPORTING:
                await self._import(item.id)

        await self._health.record_success(key)

    async def _import(self, item_id: int) -> None:
        if self._import_handler is None:
            return
        self._stats["imports_started"] += 1
        await self._queue.import_item(item_id, self._import_handler)

    async def _run_loop(self, client: IDownloadClient) -> None:
        while self._running:
            try:
                await self.poll_client(client)
                self._stats["polls_completed"] += 1
                self._stats["last_poll_at"] = datetime.now(UTC).isoformat()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Don't crash the loop on errors
                logger.exception("Error polling download client %s: %s", client.name, e)
                self._stats["last_error"] = str(e)

            await asyncio.sleep(self._poll_interval)


def create_download_monitor_worker(
    queue: QueueService,
    registry: IntegrationRegistry,
    health: IntegrationHealthTracker,
    import_handler: IImportHandler | None = None,
    poll_interval_seconds: int = 30,
) -> DownloadMonitorWorker:
    """Create a DownloadMonitorWorker with the given configuration."""
    return DownloadMonitorWorker(
        queue=queue,
        registry=registry,
        health=health,
        import_handler=import_handler,
        poll_interval_seconds=poll_interval_seconds,
    )
