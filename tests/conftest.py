"""Shared fixtures and fakes for the acquisition core tests.

Hey future me - every test that touches persistence gets its OWN file-based
SQLite database under tmp_path. In-memory SQLite gives every pooled connection
a separate empty database, which breaks as soon as two sessions are open.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from grabarr.application.keyed_lock import KeyedLock
from grabarr.application.services import (
    AcquisitionService,
    BlocklistService,
    DelayPolicyService,
    GrabService,
    IntegrationHealthTracker,
    IntegrationRegistry,
    PendingReleaseService,
    ProfileService,
    QueueService,
    ReleaseEvaluationService,
)
from grabarr.config import DatabaseSettings, HealthSettings, SearchSettings
from grabarr.domain.entities import (
    Candidate,
    ClientState,
    ClientStatus,
    HistoryEventType,
    ParsedRelease,
    ProfileItem,
    QualityProfile,
    QueueItem,
    RawRelease,
)
from grabarr.domain.exceptions import TransientIntegrationError
from grabarr.domain.ports import (
    IClock,
    IDownloadClient,
    IImportHandler,
    ImportResult,
    IReleaseParser,
    ISearchIndexer,
    IWantedMediaSource,
    WantedItem,
)
from grabarr.domain.value_objects import QUALITY_LADDER, DownloadProtocol
from grabarr.infrastructure.persistence import Database, HistoryRepository

# Quality ids used throughout the tests
HDTV_720P = 4
WEBDL_720P = 5
BLURAY_720P = 6
WEBDL_1080P = 3
BLURAY_1080P = 7

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FrozenClock(IClock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeParser(IReleaseParser):
    """Detects the quality by looking for a ladder name inside the title."""

    def parse(self, title: str) -> ParsedRelease:
        lowered = title.lower()
        for level in sorted(QUALITY_LADDER, key=lambda q: len(q.name), reverse=True):
            if level.id != 0 and level.name.lower() in lowered:
                group = title.rsplit("-", 1)[-1] if "-" in title else None
                return ParsedRelease(quality_id=level.id, release_group=group)
        raise ValueError(f"No quality in '{title}'")


class FakeIndexer(ISearchIndexer):
    def __init__(
        self,
        indexer_id: int = 1,
        releases: list[RawRelease] | None = None,
        protocol: DownloadProtocol = DownloadProtocol.TORRENT,
        priority: int = 25,
        enabled: bool = True,
        error: Exception | None = None,
        name: str | None = None,
    ) -> None:
        self.indexer_id = indexer_id
        self.name = name or f"Idx{indexer_id}"
        self.protocol = protocol
        self.priority = priority
        self.enabled = enabled
        self.releases = releases or []
        self.error = error
        self.calls: list[str] = []

    async def search(self, query: str, categories: list[int]) -> list[RawRelease]:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return list(self.releases)


class FakeDownloadClient(IDownloadClient):
    def __init__(
        self,
        client_id: int = 1,
        protocol: DownloadProtocol = DownloadProtocol.TORRENT,
        priority: int = 1,
        enabled: bool = True,
        fail_grab: bool = False,
    ) -> None:
        self.client_id = client_id
        self.name = f"Client{client_id}"
        self.protocol = protocol
        self.priority = priority
        self.enabled = enabled
        self.fail_grab = fail_grab
        self.grabbed: list[Candidate] = []
        self.removed: list[str] = []
        self.statuses: dict[str, ClientStatus] = {}
        self.status_error: Exception | None = None

    async def grab(self, candidate: Candidate) -> str:
        if self.fail_grab:
            raise TransientIntegrationError("client unreachable", reason="timeout")
        self.grabbed.append(candidate)
        return f"dl-{self.client_id}-{len(self.grabbed)}"

    async def status(self, download_id: str) -> ClientStatus:
        if self.status_error is not None:
            raise self.status_error
        return self.statuses.get(download_id, ClientStatus(ClientState.QUEUED))

    async def remove(self, download_id: str) -> None:
        self.removed.append(download_id)


class FakeWantedSource(IWantedMediaSource):
    def __init__(self, items: list[WantedItem] | None = None) -> None:
        self.items = {(i.media_id, i.episode_id): i for i in items or []}

    def add(self, item: WantedItem) -> None:
        self.items[(item.media_id, item.episode_id)] = item

    def remove(self, media_id: int, episode_id: int | None = None) -> None:
        self.items.pop((media_id, episode_id), None)

    async def list_wanted(self) -> list[WantedItem]:
        return list(self.items.values())

    async def get_wanted(
        self, media_id: int, episode_id: int | None = None
    ) -> WantedItem | None:
        return self.items.get((media_id, episode_id))


class FakeImportHandler(IImportHandler):
    def __init__(self, success: bool = True, message: str | None = None) -> None:
        self.success = success
        self.message = message
        self.imported: list[int | None] = []

    async def import_download(self, item: QueueItem) -> ImportResult:
        self.imported.append(item.id)
        return ImportResult(self.success, self.message)


def make_profile(
    qualities: list[int] | None = None,
    cutoff: int = BLURAY_1080P,
    profile_id: int | None = None,
    name: str = "HD",
    **kwargs: object,
) -> QualityProfile:
    """Profile with the given qualities, highest priority first."""
    items = [ProfileItem(q) for q in (qualities or [BLURAY_1080P, WEBDL_1080P])]
    return QualityProfile(
        id=profile_id,
        name=name,
        ordered_items=items,
        cutoff_quality_id=cutoff,
        **kwargs,  # type: ignore[arg-type]
    )


def make_candidate(
    title: str = "Show.S01E01.WEBDL-1080p-GRP",
    quality_id: int = WEBDL_1080P,
    indexer_id: int = 1,
    protocol: DownloadProtocol = DownloadProtocol.TORRENT,
    **kwargs: object,
) -> Candidate:
    return Candidate(
        title=title,
        indexer_id=indexer_id,
        protocol=protocol,
        detected_quality_id=quality_id,
        **kwargs,  # type: ignore[arg-type]
    )


def make_release(
    title: str = "Show.S01E01.WEBDL-1080p-GRP",
    indexer_id: int = 1,
    protocol: DownloadProtocol = DownloadProtocol.TORRENT,
    **kwargs: object,
) -> RawRelease:
    return RawRelease(
        title=title, indexer_id=indexer_id, protocol=protocol, **kwargs  # type: ignore[arg-type]
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
async def database(tmp_path) -> AsyncIterator[Database]:
    db = Database(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'grabarr.db'}"))
    await db.create_tables()
    yield db
    await db.close()


@dataclass
class Services:
    """The wired service graph, the same shape AcquisitionRuntime builds."""

    registry: IntegrationRegistry
    health: IntegrationHealthTracker
    blocklist: BlocklistService
    profiles: ProfileService
    evaluation: ReleaseEvaluationService
    grab: GrabService
    policy: DelayPolicyService
    acquisition: AcquisitionService
    queue: QueueService
    pending: PendingReleaseService
    wanted: FakeWantedSource
    locks: KeyedLock


def build_services(
    database: Database,
    clock: FrozenClock,
    indexers: list[FakeIndexer] | None = None,
    clients: list[FakeDownloadClient] | None = None,
    wanted: FakeWantedSource | None = None,
    search: SearchSettings | None = None,
) -> Services:
    locks = KeyedLock()
    wanted = wanted or FakeWantedSource()
    registry = IntegrationRegistry(list(indexers or []), list(clients or []))
    health = IntegrationHealthTracker(database, clock, HealthSettings(), locks)
    blocklist = BlocklistService(database, clock)
    evaluation = ReleaseEvaluationService(FakeParser(), blocklist)
    grab = GrabService(database, registry, health, clock)
    policy = DelayPolicyService(database, grab, clock, locks)
    acquisition = AcquisitionService(
        database, registry, health, evaluation, policy, wanted, search or SearchSettings()
    )
    queue = QueueService(database, registry, health, blocklist, clock, locks)
    queue.set_research_handler(
        lambda media_id, episode_id: acquisition.search_now(media_id, episode_id, direct=False)
    )
    pending = PendingReleaseService(database, grab, wanted, clock, locks)
    return Services(
        registry=registry,
        health=health,
        blocklist=blocklist,
        profiles=ProfileService(database),
        evaluation=evaluation,
        grab=grab,
        policy=policy,
        acquisition=acquisition,
        queue=queue,
        pending=pending,
        wanted=wanted,
        locks=locks,
    )


async def history_events(database: Database, media_id: int) -> list[HistoryEventType]:
    """Event types recorded for a media item, oldest first."""
    async with database.session_scope() as session:
        records = await HistoryRepository(session).list_for_media(media_id)
    return [r.event_type for r in records]
