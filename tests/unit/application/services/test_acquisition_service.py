"""Tests for the search → evaluate → decide cycle."""

import asyncio

import pytest

from conftest import (
    BLURAY_1080P,
    FakeDownloadClient,
    FakeIndexer,
    build_services,
    make_candidate,
    make_profile,
    make_release,
)

from grabarr.config import SearchSettings
from grabarr.domain.entities import DelayOutcome, DelayProfile, RawRelease
from grabarr.domain.exceptions import (
    EntityNotFoundException,
    IntegrationUnavailableError,
    TransientIntegrationError,
)
from grabarr.domain.ports import WantedItem
from grabarr.domain.value_objects import IntegrationKey


class SlowIndexer(FakeIndexer):
    def __init__(self, delay: float, **kwargs) -> None:
        super().__init__(**kwargs)
        self.delay = delay
        self.cancelled = False

    async def search(self, query: str, categories: list[int]) -> list[RawRelease]:
        self.calls.append(query)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return list(self.releases)


async def want(services, media_id: int = 10, episode_id: int | None = 1) -> WantedItem:
    profiles = await services.profiles.list_quality_profiles()
    if profiles:
        profile = profiles[0]
    else:
        profile = await services.profiles.save_quality_profile(make_profile())
    item = WantedItem(
        media_id=media_id,
        query=f"Show {media_id}",
        quality_profile_id=profile.id,
        episode_id=episode_id,
    )
    services.wanted.add(item)
    return item


async def test_cycle_grabs_best_release(database, clock) -> None:
    client = FakeDownloadClient()
    indexer = FakeIndexer(
        releases=[
            make_release("Show.S01E01.WEBDL-1080p-A"),
            make_release("Show.S01E01.Bluray-1080p-B"),
        ]
    )
    services = build_services(database, clock, indexers=[indexer], clients=[client])
    await want(services)

    report = await services.acquisition.run_cycle()

    assert report.wanted == 1
    assert report.searched == 1
    assert report.grabbed == 1
    assert report.correlation_id
    assert [c.detected_quality_id for c in client.grabbed] == [BLURAY_1080P]
    assert indexer.calls == ["Show 10"]


async def test_blocklisted_release_never_reaches_the_queue(database, clock) -> None:
    client = FakeDownloadClient()
    indexer = FakeIndexer(releases=[make_release("Show.S01E01.WEBDL-1080p-GRP")])
    services = build_services(database, clock, indexers=[indexer], clients=[client])
    await want(services)
    await services.blocklist.block(make_candidate("Show.S01E01.WEBDL-1080p-GRP"), 10, 1, "bad")

    report = await services.acquisition.run_cycle()

    assert report.no_candidates == 1
    assert client.grabbed == []
    assert await services.queue.list_items() == []


async def test_indexer_in_backoff_is_not_searched(database, clock) -> None:
    idx1 = FakeIndexer(indexer_id=1, releases=[make_release(indexer_id=1)])
    idx2 = FakeIndexer(indexer_id=2, releases=[make_release(indexer_id=2)])
    services = build_services(
        database, clock, indexers=[idx1, idx2], clients=[FakeDownloadClient()]
    )
    wanted = await want(services)
    for _ in range(3):
        await services.health.record_failure(IntegrationKey.indexer(1), "HTTP 500")

    await services.acquisition.run_cycle()
    assert idx1.calls == []
    assert idx2.calls == ["Show 10"]

    clock.advance(minutes=20)
    services.wanted.add(
        WantedItem(media_id=11, query="Other", quality_profile_id=wanted.quality_profile_id)
    )
    await services.acquisition.run_cycle()
    assert "Other" in idx1.calls


async def test_disabled_indexer_is_never_searched(database, clock) -> None:
    off = FakeIndexer(indexer_id=1, enabled=False)
    services = build_services(database, clock, indexers=[off], clients=[FakeDownloadClient()])
    await want(services)

    await services.acquisition.run_cycle()

    assert off.calls == []


async def test_failing_indexer_gives_partial_results(database, clock) -> None:
    broken = FakeIndexer(
        indexer_id=1, error=TransientIntegrationError("Idx1: HTTP 503", reason="transient")
    )
    healthy = FakeIndexer(indexer_id=2, releases=[make_release(indexer_id=2)])
    client = FakeDownloadClient()
    services = build_services(database, clock, indexers=[broken, healthy], clients=[client])
    await want(services)

    report = await services.acquisition.run_cycle()

    assert report.failed_indexers == {1}
    assert report.grabbed == 1
    status = await services.health.get_status(IntegrationKey.indexer(1))
    assert status.escalation_level == 1
    assert status.last_error == "Idx1: HTTP 503"


async def test_unexpected_indexer_crash_is_contained(database, clock) -> None:
    broken = FakeIndexer(indexer_id=1, error=RuntimeError("boom"))
    healthy = FakeIndexer(indexer_id=2, releases=[make_release(indexer_id=2)])
    services = build_services(
        database, clock, indexers=[broken, healthy], clients=[FakeDownloadClient()]
    )
    await want(services)

    report = await services.acquisition.run_cycle()

    assert report.failed_indexers == {1}
    assert report.grabbed == 1


async def test_slow_indexer_times_out(database, clock) -> None:
    slow = SlowIndexer(5.0, indexer_id=1, releases=[make_release()])
    services = build_services(
        database,
        clock,
        indexers=[slow],
        clients=[FakeDownloadClient()],
        search=SearchSettings(timeout_seconds=0.05),
    )
    await want(services)

    report = await services.acquisition.run_cycle()

    assert report.failed_indexers == {1}
    assert report.grabbed == 0
    status = await services.health.get_status(IntegrationKey.indexer(1))
    assert "timed out" in status.last_error


async def test_active_queue_item_skips_search(database, clock) -> None:
    indexer = FakeIndexer(releases=[make_release()])
    services = build_services(
        database, clock, indexers=[indexer], clients=[FakeDownloadClient()]
    )
    await want(services)
    await services.acquisition.run_cycle()

    report = await services.acquisition.run_cycle()

    assert report.skipped == 1
    assert len(indexer.calls) == 1


async def test_missing_profile_is_skipped(database, clock) -> None:
    indexer = FakeIndexer(releases=[make_release()])
    services = build_services(database, clock, indexers=[indexer])
    services.wanted.add(WantedItem(media_id=10, query="Show", quality_profile_id=99))

    report = await services.acquisition.run_cycle()

    assert report.skipped == 1
    assert indexer.calls == []


async def test_deferred_candidate_is_counted(database, clock) -> None:
    services = build_services(
        database,
        clock,
        indexers=[FakeIndexer(releases=[make_release()])],
        clients=[FakeDownloadClient()],
    )
    await services.profiles.save_delay_profile(DelayProfile(None, torrent_delay_minutes=30))
    await want(services)

    report = await services.acquisition.run_cycle()

    assert report.deferred == 1
    assert len(await services.pending.list_pending()) == 1


class TestSearchNow:
    async def test_direct_search_grabs(self, database, clock) -> None:
        services = build_services(
            database,
            clock,
            indexers=[FakeIndexer(releases=[make_release()])],
            clients=[FakeDownloadClient()],
        )
        await want(services)

        result = await services.acquisition.search_now(10, 1)

        assert result.outcome == DelayOutcome.GRAB
        assert result.queue_item is not None

    async def test_unknown_title(self, database, clock) -> None:
        services = build_services(database, clock, indexers=[FakeIndexer()])
        with pytest.raises(EntityNotFoundException):
            await services.acquisition.search_now(10, 1)
        assert await services.acquisition.search_now(10, 1, direct=False) is None

    async def test_every_indexer_backing_off(self, database, clock) -> None:
        indexer = FakeIndexer(releases=[make_release()])
        services = build_services(database, clock, indexers=[indexer])
        await want(services)
        await services.health.record_failure(IntegrationKey.indexer(1), "down")

        with pytest.raises(IntegrationUnavailableError):
            await services.acquisition.search_now(10, 1)
        assert await services.acquisition.search_now(10, 1, direct=False) is None
        assert indexer.calls == []


class TestCancellation:
    async def test_cancel_stops_in_flight_searches(self, database, clock) -> None:
        slow = SlowIndexer(30.0, indexer_id=1, releases=[make_release()])
        client = FakeDownloadClient()
        services = build_services(database, clock, indexers=[slow], clients=[client])
        await want(services)

        cycle = asyncio.create_task(services.acquisition.run_cycle())
        while not slow.calls and not cycle.done():
            await asyncio.sleep(0.01)
        # Search is running, now pull the plug
        await asyncio.sleep(0.05)
        services.acquisition.cancel()
        report = await asyncio.wait_for(cycle, timeout=5)

        assert report.cancelled is True
        assert slow.cancelled is True
        assert client.grabbed == []

    async def test_cancelled_cycle_does_nothing_until_resumed(self, database, clock) -> None:
        indexer = FakeIndexer(releases=[make_release()])
        services = build_services(
            database, clock, indexers=[indexer], clients=[FakeDownloadClient()]
        )
        await want(services)
        services.acquisition.cancel()

        report = await services.acquisition.run_cycle()
        assert report.cancelled is True
        assert indexer.calls == []

        services.acquisition.resume()
        report = await services.acquisition.run_cycle()
        assert report.grabbed == 1
