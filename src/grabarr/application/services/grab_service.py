"""Grab Service - hands a chosen candidate to a download client.

Hey future me - client choice:
1. Enabled clients for the candidate's protocol, lowest priority number first
2. Skip clients whose circuit is open (health tracker)
3. TransientIntegrationError → record the failure, try the next client
4. First success → queue item (status=queued) + "grabbed" history, same transaction

Automatic callers (cycle, pending tick) get None when nothing could take the
release. Direct callers (manual search) get IntegrationUnavailableError instead.
"""

import logging

from grabarr.application.services.integration_health_service import (
    IntegrationHealthTracker,
)
from grabarr.application.services.integration_registry import IntegrationRegistry
from grabarr.domain.entities import (
    Candidate,
    HistoryEventType,
    HistoryRecord,
    QueueItem,
)
from grabarr.domain.exceptions import (
    ConfigurationError,
    IntegrationUnavailableError,
    TransientIntegrationError,
)
from grabarr.domain.ports import IClock
from grabarr.domain.value_objects import DownloadProtocol, IntegrationKey
from grabarr.infrastructure.persistence import Database, HistoryRepository, QueueRepository

logger = logging.getLogger(__name__)


class GrabService:
    """Sends releases to download clients and records them in the queue."""

    def __init__(
        self,
        database: Database,
        registry: IntegrationRegistry,
        health: IntegrationHealthTracker,
        clock: IClock,
    ) -> None:
        self._database = database
        self._registry = registry
        self._health = health
        self._clock = clock

    async def has_usable_client(self, protocol: DownloadProtocol) -> bool:
        """True if some enabled client for the protocol is outside its backoff window."""
        clients = self._registry.clients_for(protocol)
        if not clients:
            return False
        usable = await self._health.usable_keys(
            [IntegrationKey.download_client(c.client_id) for c in clients]
        )
        return bool(usable)

    async def grab(
        self,
        candidate: Candidate,
        media_id: int,
        episode_id: int | None,
        *,
        direct: bool = False,
    ) -> QueueItem | None:
        """Grab a candidate. Returns the new queue item, or None when skipped."""
        async with self._database.session_scope() as session:
            active = await QueueRepository(session).get_active_for(media_id, episode_id)
        if active is not None:
            logger.info(
                "Media %d/%s already queued as item %s, not grabbing '%s'",
                media_id,
                episode_id,
                active.id,
                candidate.title,
            )
            return None

        clients = self._registry.clients_for(candidate.protocol)
        if not clients:
            message = f"No enabled {candidate.protocol.value} download client configured"
            if direct:
                raise ConfigurationError(message)
            logger.warning("%s, skipping '%s'", message, candidate.title)
            return None

        usable = await self._health.usable_keys(
            [IntegrationKey.download_client(c.client_id) for c in clients]
        )
        for client in clients:
            key = IntegrationKey.download_client(client.client_id)
            if key not in usable:
                logger.debug("Download client %s is backing off, skipped", client.name)
                continue
            try:
                download_id = await client.grab(candidate)
            except TransientIntegrationError as e:
                await self._health.record_failure(key, e.message)
                continue

            await self._health.record_success(key)
            return await self._record_grab(
                candidate, media_id, episode_id, client.client_id, download_id
            )

        message = (
            f"No usable {candidate.protocol.value} download client for '{candidate.title}'"
        )
        if direct:
            raise IntegrationUnavailableError(message)
        logger.warning(message)
        return None

    async def _record_grab(
        self,
        candidate: Candidate,
        media_id: int,
        episode_id: int | None,
        client_id: int,
        download_id: str,
    ) -> QueueItem:
        now = self._clock.now()
        item = QueueItem(
            id=None,
            media_id=media_id,
            episode_id=episode_id,
            candidate=candidate,
            download_client_id=client_id,
            download_id=download_id,
            added_at=now,
            updated_at=now,
        )
        async with self._database.session_scope() as session:
            await QueueRepository(session).add(item)
            await HistoryRepository(session).add(
                HistoryRecord.for_item(item, HistoryEventType.GRABBED, now)
            )

        logger.info(
            "Grabbed '%s' for media %d via client %d (queue item %s, download %s)",
            candidate.title,
            media_id,
            client_id,
            item.id,
            download_id,
        )
        return item
