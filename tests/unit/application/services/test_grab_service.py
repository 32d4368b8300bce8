"""Tests for handing candidates to download clients."""

import pytest

from conftest import FakeDownloadClient, build_services, history_events, make_candidate

from grabarr.domain.entities import HistoryEventType, QueueStatus
from grabarr.domain.exceptions import ConfigurationError, IntegrationUnavailableError
from grabarr.domain.value_objects import DownloadProtocol, IntegrationKey


async def test_grab_creates_queue_item_and_history(database, clock) -> None:
    client = FakeDownloadClient()
    services = build_services(database, clock, clients=[client])

    item = await services.grab.grab(make_candidate(), 10, 1)

    assert item is not None
    assert item.id is not None
    assert item.status == QueueStatus.QUEUED
    assert item.download_id == "dl-1-1"
    assert item.added_at == clock.now()
    assert len(client.grabbed) == 1
    assert await history_events(database, 10) == [HistoryEventType.GRABBED]


async def test_falls_back_to_next_client_on_failure(database, clock) -> None:
    broken = FakeDownloadClient(client_id=1, priority=1, fail_grab=True)
    backup = FakeDownloadClient(client_id=2, priority=2)
    services = build_services(database, clock, clients=[backup, broken])

    item = await services.grab.grab(make_candidate(), 10, 1)

    assert item.download_client_id == 2
    status = await services.health.get_status(IntegrationKey.download_client(1))
    assert status.escalation_level == 1


async def test_client_in_backoff_is_skipped(database, clock) -> None:
    first = FakeDownloadClient(client_id=1, priority=1)
    second = FakeDownloadClient(client_id=2, priority=2)
    services = build_services(database, clock, clients=[first, second])
    await services.health.record_failure(IntegrationKey.download_client(1), "down")

    item = await services.grab.grab(make_candidate(), 10, 1)

    assert item.download_client_id == 2
    assert first.grabbed == []


async def test_only_clients_of_the_candidate_protocol(database, clock) -> None:
    usenet = FakeDownloadClient(client_id=1, protocol=DownloadProtocol.USENET)
    services = build_services(database, clock, clients=[usenet])

    assert await services.grab.grab(make_candidate(), 10, 1) is None
    with pytest.raises(ConfigurationError):
        await services.grab.grab(make_candidate(), 10, 1, direct=True)


async def test_all_clients_failing(database, clock) -> None:
    services = build_services(
        database, clock, clients=[FakeDownloadClient(fail_grab=True)]
    )

    assert await services.grab.grab(make_candidate(), 10, 1) is None
    with pytest.raises(IntegrationUnavailableError):
        await services.grab.grab(make_candidate(), 10, 1, direct=True)
    assert await services.queue.list_items() == []


async def test_active_queue_item_blocks_second_grab(database, clock) -> None:
    client = FakeDownloadClient()
    services = build_services(database, clock, clients=[client])
    await services.grab.grab(make_candidate(), 10, 1)

    again = await services.grab.grab(make_candidate("Show.S01E01.Bluray-1080p-X"), 10, 1)

    assert again is None
    assert len(client.grabbed) == 1


async def test_other_episode_is_not_blocked(database, clock) -> None:
    services = build_services(database, clock, clients=[FakeDownloadClient()])
    await services.grab.grab(make_candidate(), 10, 1)

    assert await services.grab.grab(make_candidate(), 10, 2) is not None
    assert await services.grab.grab(make_candidate(), 10, None) is not None


async def test_has_usable_client_follows_backoff(database, clock) -> None:
    services = build_services(database, clock, clients=[FakeDownloadClient()])
    assert await services.grab.has_usable_client(DownloadProtocol.TORRENT)
    assert not await services.grab.has_usable_client(DownloadProtocol.USENET)

    await services.health.record_failure(IntegrationKey.download_client(1), "down")
    assert not await services.grab.has_usable_client(DownloadProtocol.TORRENT)

    clock.advance(minutes=5)
    assert await services.grab.has_usable_client(DownloadProtocol.TORRENT)
