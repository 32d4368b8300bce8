"""Tests for the in-memory integration registry."""

import pytest

from conftest import FakeDownloadClient, FakeIndexer

from grabarr.application.services import IntegrationRegistry
from grabarr.domain.exceptions import ConfigurationError, EntityNotFoundException
from grabarr.domain.value_objects import DownloadProtocol


def test_duplicate_ids_are_rejected() -> None:
    registry = IntegrationRegistry([FakeIndexer(indexer_id=1)])
    with pytest.raises(ConfigurationError):
        registry.register_indexer(FakeIndexer(indexer_id=1))
    registry.register_download_client(FakeDownloadClient(client_id=1))
    with pytest.raises(ConfigurationError):
        registry.register_download_client(FakeDownloadClient(client_id=1))


def test_enabled_indexers() -> None:
    registry = IntegrationRegistry(
        [FakeIndexer(indexer_id=1), FakeIndexer(indexer_id=2, enabled=False)]
    )
    assert [i.indexer_id for i in registry.enabled_indexers()] == [1]
    assert len(registry.indexers()) == 2


def test_clients_for_protocol_in_priority_order() -> None:
    registry = IntegrationRegistry(
        download_clients=[
            FakeDownloadClient(client_id=1, priority=5),
            FakeDownloadClient(client_id=2, priority=1),
            FakeDownloadClient(client_id=3, priority=1, enabled=False),
            FakeDownloadClient(client_id=4, protocol=DownloadProtocol.USENET),
        ]
    )
    assert [c.client_id for c in registry.clients_for(DownloadProtocol.TORRENT)] == [2, 1]
    assert [c.client_id for c in registry.clients_for(DownloadProtocol.USENET)] == [4]


def test_unknown_lookups() -> None:
    registry = IntegrationRegistry()
    with pytest.raises(EntityNotFoundException):
        registry.get_indexer(1)
    with pytest.raises(EntityNotFoundException):
        registry.get_download_client(1)
