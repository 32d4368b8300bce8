"""Integration Registry - the configured indexers and download clients.

Hey future me - the registry only knows WHAT is configured. Whether an integration
is currently usable (circuit closed) is the IntegrationHealthTracker's job; services
combine both.
"""

import logging

from grabarr.domain.exceptions import ConfigurationError, EntityNotFoundException
from grabarr.domain.ports import IDownloadClient, ISearchIndexer
from grabarr.domain.value_objects import DownloadProtocol

logger = logging.getLogger(__name__)


class IntegrationRegistry:
    """In-memory registry of indexer and download client adapters."""

    def __init__(
        self,
        indexers: list[ISearchIndexer] | None = None,
        download_clients: list[IDownloadClient] | None = None,
    ) -> None:
        self._indexers: dict[int, ISearchIndexer] = {}
        self._clients: dict[int, IDownloadClient] = {}
        for indexer in indexers or []:
            self.register_indexer(indexer)
        for client in download_clients or []:
            self.register_download_client(client)

    def register_indexer(self, indexer: ISearchIndexer) -> None:
        if indexer.indexer_id in self._indexers:
            raise ConfigurationError(f"Indexer id {indexer.indexer_id} registered twice")
        self._indexers[indexer.indexer_id] = indexer
        logger.debug("Registered indexer %s (id=%d)", indexer.name, indexer.indexer_id)

    def register_download_client(self, client: IDownloadClient) -> None:
        if client.client_id in self._clients:
            raise ConfigurationError(f"Download client id {client.client_id} registered twice")
        self._clients[client.client_id] = client
        logger.debug("Registered download client %s (id=%d)", client.name, client.client_id)

    def indexers(self) -> list[ISearchIndexer]:
        return list(self._indexers.values())

    def enabled_indexers(self) -> list[ISearchIndexer]:
        return [i for i in self._indexers.values() if i.enabled]

    def get_indexer(self, indexer_id: int) -> ISearchIndexer:
        try:
            return self._indexers[indexer_id]
        except KeyError:
            raise EntityNotFoundException("Indexer", indexer_id) from None

    def download_clients(self) -> list[IDownloadClient]:
        return list(self._clients.values())

    def get_download_client(self, client_id: int) -> IDownloadClient:
        try:
            return self._clients[client_id]
        except KeyError:
            raise EntityNotFoundException("DownloadClient", client_id) from None

    def clients_for(self, protocol: DownloadProtocol) -> list[IDownloadClient]:
        """Enabled clients for a protocol, best priority (lowest number) first."""
        return sorted(
            (c for c in self._clients.values() if c.enabled and c.protocol == protocol),
            key=lambda c: (c.priority, c.client_id),
        )
