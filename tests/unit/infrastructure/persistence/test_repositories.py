"""Tests for the SQLAlchemy repositories against a real SQLite file."""

from datetime import UTC, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import T0, make_candidate, make_profile

from grabarr.domain.entities import (
    BlocklistEntry,
    HistoryEventType,
    HistoryRecord,
    IntegrationStatus,
    PendingRelease,
    QueueItem,
    QueueStatus,
    ReleaseRestriction,
    fingerprint,
)
from grabarr.domain.exceptions import EntityNotFoundException
from grabarr.domain.value_objects import DownloadProtocol
from grabarr.infrastructure.persistence import (
    BlocklistRepository,
    HistoryRepository,
    IntegrationStatusRepository,
    PendingReleaseRepository,
    QualityProfileRepository,
    QueueRepository,
    ReleaseRestrictionRepository,
)
from grabarr.infrastructure.persistence.models import target_key


def history(
    queue_item_id: int, event: HistoryEventType, download_id: str = "dl-1"
) -> HistoryRecord:
    return HistoryRecord(
        id=None,
        queue_item_id=queue_item_id,
        media_id=10,
        episode_id=1,
        event_type=event,
        source_title="Show.S01E01.WEBDL-1080p-GRP",
        quality_id=3,
        custom_format_score=0,
        download_id=download_id,
        date=T0,
    )


def test_target_key() -> None:
    assert target_key(10, 1) == "10:1"
    assert target_key(10, None) == "10:-"


class TestHistoryRepository:
    async def test_insert_is_unique_per_queue_item_and_event(self, database) -> None:
        async with database.session_scope() as session:
            repo = HistoryRepository(session)
            assert await repo.add(history(1, HistoryEventType.GRABBED)) is True
            assert await repo.add(history(1, HistoryEventType.GRABBED)) is False
            assert await repo.add(history(1, HistoryEventType.DOWNLOAD_FAILED)) is True
            assert await repo.add(history(2, HistoryEventType.GRABBED)) is True

        async with database.session_scope() as session:
            repo = HistoryRepository(session)
            assert len(await repo.list_for_media(10)) == 3
            assert await repo.exists(1, HistoryEventType.DOWNLOAD_FAILED)
            assert not await repo.exists(2, HistoryEventType.DOWNLOAD_FAILED)

    async def test_reused_download_id_is_a_new_event(self, database) -> None:
        # Same torrent info-hash, grabbed twice
        async with database.session_scope() as session:
            repo = HistoryRepository(session)
            assert await repo.add(history(1, HistoryEventType.DOWNLOAD_FAILED, "HASH")) is True
            assert await repo.add(history(2, HistoryEventType.DOWNLOAD_FAILED, "HASH")) is True

        async with database.session_scope() as session:
            records = await HistoryRepository(session).list_for_media(10)
        assert [r.queue_item_id for r in records] == [1, 2]

    async def test_dates_come_back_utc_aware(self, database) -> None:
        async with database.session_scope() as session:
            await HistoryRepository(session).add(history(1, HistoryEventType.GRABBED))
        async with database.session_scope() as session:
            (record,) = await HistoryRepository(session).list_recent()
        assert record.date.tzinfo is not None
        assert record.date == T0


class TestBlocklistRepository:
    async def test_fingerprint_is_unique(self, database) -> None:
        fp = fingerprint(1, DownloadProtocol.TORRENT, "Show.S01E01.WEBDL-1080p-GRP")
        entry = BlocklistEntry(
            id=None,
            fingerprint=fp,
            media_id=10,
            episode_id=None,
            source_title="Show.S01E01.WEBDL-1080p-GRP",
            indexer_id=1,
            protocol=DownloadProtocol.TORRENT,
            reason="failed",
            date=T0,
        )
        async with database.session_scope() as session:
            repo = BlocklistRepository(session)
            assert await repo.add(entry) is True
            assert await repo.add(entry) is False

        async with database.session_scope() as session:
            assert await BlocklistRepository(session).list_fingerprints() == {fp}

    async def test_delete_unknown(self, database) -> None:
        with pytest.raises(EntityNotFoundException):
            async with database.session_scope() as session:
                await BlocklistRepository(session).delete(1)


class TestPendingReleaseRepository:
    async def test_one_row_per_target_even_without_episode(self, database) -> None:
        async with database.session_scope() as session:
            await PendingReleaseRepository(session).add(
                PendingRelease.create(10, None, make_candidate(), T0, 60)
            )

        with pytest.raises(IntegrityError):
            async with database.session_scope() as session:
                await PendingReleaseRepository(session).add(
                    PendingRelease.create(10, None, make_candidate(), T0, 60)
                )

    async def test_update_candidate_keeps_release_at(self, database) -> None:
        async with database.session_scope() as session:
            pending = await PendingReleaseRepository(session).add(
                PendingRelease.create(10, 1, make_candidate(), T0, 60)
            )
        better = make_candidate("Show.S01E01.Bluray-1080p-GRP", 7, custom_format_score=15)

        async with database.session_scope() as session:
            await PendingReleaseRepository(session).update_candidate(pending.id, better)
        async with database.session_scope() as session:
            stored = await PendingReleaseRepository(session).get_for(10, 1)

        assert stored.candidate == better
        assert stored.release_at == T0 + timedelta(minutes=60)
        assert stored.release_at.tzinfo == UTC

    async def test_claim_succeeds_once(self, database) -> None:
        async with database.session_scope() as session:
            pending = await PendingReleaseRepository(session).add(
                PendingRelease.create(10, 1, make_candidate(), T0, 60)
            )
        async with database.session_scope() as session:
            assert await PendingReleaseRepository(session).claim(pending.id) is True
        async with database.session_scope() as session:
            assert await PendingReleaseRepository(session).claim(pending.id) is False


class TestQueueRepository:
    async def test_candidate_snapshot_round_trip(self, database) -> None:
        candidate = make_candidate(
            size=123,
            published_at=T0,
            languages=("english",),
            release_group="GRP",
            indexer_flags=("freeleech",),
            matched_format_ids=(1, 2),
            custom_format_score=40,
        )
        item = QueueItem(
            id=None,
            media_id=10,
            episode_id=None,
            candidate=candidate,
            download_client_id=1,
            download_id="dl-1",
            added_at=T0,
        )
        async with database.session_scope() as session:
            await QueueRepository(session).add(item)
        async with database.session_scope() as session:
            stored = await QueueRepository(session).get_by_id(item.id)

        assert stored.candidate == candidate
        assert stored.status == QueueStatus.QUEUED
        assert stored.updated_at == T0

    async def test_active_lookup_ignores_terminal_rows(self, database) -> None:
        item = QueueItem(
            id=None,
            media_id=10,
            episode_id=None,
            candidate=make_candidate(),
            download_client_id=1,
            download_id="dl-1",
            status=QueueStatus.FAILED,
            added_at=T0,
        )
        async with database.session_scope() as session:
            await QueueRepository(session).add(item)
        async with database.session_scope() as session:
            assert await QueueRepository(session).get_active_for(10, None) is None


    async def test_ids_of_deleted_rows_are_not_reused(self, database) -> None:
        def queued(download_id: str) -> QueueItem:
            return QueueItem(
                id=None,
                media_id=10,
                episode_id=None,
                candidate=make_candidate(),
                download_client_id=1,
                download_id=download_id,
                added_at=T0,
            )

        first = queued("HASH")
        async with database.session_scope() as session:
            await QueueRepository(session).add(first)
        async with database.session_scope() as session:
            await QueueRepository(session).delete(first.id)

        second = queued("HASH")
        async with database.session_scope() as session:
            await QueueRepository(session).add(second)

        assert second.id > first.id


class TestIntegrationStatusRepository:
    async def test_save_is_an_upsert(self, database) -> None:
        status = IntegrationStatus("indexer:1")
        status.record_failure(T0, "HTTP 500")
        async with database.session_scope() as session:
            await IntegrationStatusRepository(session).save(status)

        status.record_failure(T0 + timedelta(minutes=5), "HTTP 502")
        async with database.session_scope() as session:
            await IntegrationStatusRepository(session).save(status)

        async with database.session_scope() as session:
            (stored,) = await IntegrationStatusRepository(session).list_all()
        assert stored.escalation_level == 2
        assert stored.last_error == "HTTP 502"
        assert stored.initial_failure_at == T0
        assert stored.disabled_till.tzinfo is not None


class TestQualityProfileRepository:
    async def test_delete_unknown(self, database) -> None:
        with pytest.raises(EntityNotFoundException):
            async with database.session_scope() as session:
                await QualityProfileRepository(session).delete(1)

    async def test_get_by_name(self, database) -> None:
        async with database.session_scope() as session:
            await QualityProfileRepository(session).add(make_profile(name="UHD"))
        async with database.session_scope() as session:
            found = await QualityProfileRepository(session).get_by_name("UHD")
        assert found is not None
        assert found.name == "UHD"


class TestReleaseRestrictionRepository:
    async def test_round_trip(self, database) -> None:
        restriction = ReleaseRestriction(
            id=None,
            name="No cams",
            must_contain=["1080p"],
            must_not_contain=["CAM", "TS"],
            tags={"anime", "4k"},
        )
        async with database.session_scope() as session:
            await ReleaseRestrictionRepository(session).add(restriction)
        async with database.session_scope() as session:
            stored = await ReleaseRestrictionRepository(session).get_by_name("No cams")

        assert stored == restriction

    async def test_name_is_unique(self, database) -> None:
        async with database.session_scope() as session:
            await ReleaseRestrictionRepository(session).add(ReleaseRestriction(None, "x"))

        with pytest.raises(IntegrityError):
            async with database.session_scope() as session:
                await ReleaseRestrictionRepository(session).add(ReleaseRestriction(None, "x"))

    async def test_update_and_delete(self, database) -> None:
        restriction = ReleaseRestriction(id=None, name="x", must_not_contain=["CAM"])
        async with database.session_scope() as session:
            await ReleaseRestrictionRepository(session).add(restriction)

        restriction.must_not_contain = ["TS"]
        async with database.session_scope() as session:
            await ReleaseRestrictionRepository(session).update(restriction)
        async with database.session_scope() as session:
            (stored,) = await ReleaseRestrictionRepository(session).list_all()
        assert stored.must_not_contain == ["TS"]

        async with database.session_scope() as session:
            await ReleaseRestrictionRepository(session).delete(restriction.id)
        with pytest.raises(EntityNotFoundException):
            async with database.session_scope() as session:
                await ReleaseRestrictionRepository(session).delete(restriction.id)
