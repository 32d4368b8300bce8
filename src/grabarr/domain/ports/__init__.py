"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod

from grabarr.domain.entities import (
    BlocklistEntry,
    Candidate,
    CustomFormat,
    DelayProfile,
    HistoryEventType,
    HistoryRecord,
    IntegrationStatus,
    PendingRelease,
    QualityProfile,
    QueueItem,
    QueueStatus,
    ReleaseRestriction,
)
from grabarr.domain.ports.integrations import (
    IClock,
    IDownloadClient,
    IImportHandler,
    ImportResult,
    IReleaseParser,
    ISearchIndexer,
    IWantedMediaSource,
    WantedItem,
)


# Hey future me, these repository interfaces are PORTS (Hexagonal Architecture)! Services depend
# on them, the SQLAlchemy implementations live in infrastructure/persistence/repositories.py.
# Tests can mock them easily. If you change an interface, ALL implementations must change too!
class IQualityProfileRepository(ABC):
    """Repository interface for QualityProfile entities."""

    @abstractmethod
    async def add(self, profile: QualityProfile) -> QualityProfile:
        """Insert a profile and return it with its id set."""
        pass

    @abstractmethod
    async def update(self, profile: QualityProfile) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, profile_id: int) -> QualityProfile | None:
        pass

    @abstractmethod
    async def get_by_name(self, name: str) -> QualityProfile | None:
        pass

    @abstractmethod
    async def list_all(self) -> list[QualityProfile]:
        pass

    @abstractmethod
    async def delete(self, profile_id: int) -> None:
        pass


class ICustomFormatRepository(ABC):
    """Repository interface for CustomFormat entities."""

    @abstractmethod
    async def add(self, custom_format: CustomFormat) -> CustomFormat:
        pass

    @abstractmethod
    async def update(self, custom_format: CustomFormat) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, format_id: int) -> CustomFormat | None:
        pass

    @abstractmethod
    async def list_all(self) -> list[CustomFormat]:
        pass

    @abstractmethod
    async def delete(self, format_id: int) -> None:
        pass


class IDelayProfileRepository(ABC):
    """Repository interface for DelayProfile entities."""

    @abstractmethod
    async def add(self, profile: DelayProfile) -> DelayProfile:
        pass

    @abstractmethod
    async def update(self, profile: DelayProfile) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, profile_id: int) -> DelayProfile | None:
        pass

    @abstractmethod
    async def list_all(self) -> list[DelayProfile]:
        pass

    @abstractmethod
    async def delete(self, profile_id: int) -> None:
        pass


class IReleaseRestrictionRepository(ABC):
    """Repository interface for ReleaseRestriction entities."""

    @abstractmethod
    async def add(self, restriction: ReleaseRestriction) -> ReleaseRestriction:
        pass

    @abstractmethod
    async def update(self, restriction: ReleaseRestriction) -> None:
        pass

    @abstractmethod
    async def get_by_id(self, restriction_id: int) -> ReleaseRestriction | None:
        pass

    @abstractmethod
    async def get_by_name(self, name: str) -> ReleaseRestriction | None:
        pass

    @abstractmethod
    async def list_all(self) -> list[ReleaseRestriction]:
        pass

    @abstractmethod
    async def delete(self, restriction_id: int) -> None:
        pass


class IPendingReleaseRepository(ABC):
    """Repository interface for PendingRelease entities."""

    @abstractmethod
    async def add(self, pending: PendingRelease) -> PendingRelease:
        pass

    @abstractmethod
    async def get_for(
        self, media_id: int, episode_id: int | None
    ) -> PendingRelease | None:
        """The pending row of a media/episode, if any."""
        pass

    @abstractmethod
    async def update_candidate(self, pending_id: int, candidate: Candidate) -> None:
        """Replace the stored snapshot, leaving release_at untouched."""
        pass

    @abstractmethod
    async def list_all(self) -> list[PendingRelease]:
        pass

    @abstractmethod
    async def claim(self, pending_id: int) -> bool:
        """Atomically delete the row. True only for the caller that deleted it."""
        pass

    @abstractmethod
    async def delete_for_media(self, media_id: int) -> int:
        """Drop every pending row of a media item. Returns the count."""
        pass


class IQueueRepository(ABC):
    """Repository interface for QueueItem entities."""

    @abstractmethod
    async def add(self, item: QueueItem) -> QueueItem:
        pass

    @abstractmethod
    async def get_by_id(self, item_id: int) -> QueueItem | None:
        pass

    @abstractmethod
    async def update(self, item: QueueItem) -> None:
        pass

    @abstractmethod
    async def delete(self, item_id: int) -> None:
        pass

    @abstractmethod
    async def list_all(self) -> list[QueueItem]:
        pass

    @abstractmethod
    async def list_by_client(self, client_id: int) -> list[QueueItem]:
        pass

    @abstractmethod
    async def get_active_for(
        self, media_id: int, episode_id: int | None
    ) -> QueueItem | None:
        """Non-terminal queue item of a media/episode, if any."""
        pass

    @abstractmethod
    async def count_by_status(self) -> dict[QueueStatus, int]:
        pass


class IHistoryRepository(ABC):
    """Repository interface for HistoryRecord entities."""

    @abstractmethod
    async def add(self, record: HistoryRecord) -> bool:
        """Append a record. False if (queue_item_id, event_type) already exists."""
        pass

    @abstractmethod
    async def exists(self, queue_item_id: int, event_type: HistoryEventType) -> bool:
        pass

    @abstractmethod
    async def list_for_media(
        self, media_id: int, episode_id: int | None = None
    ) -> list[HistoryRecord]:
        pass

    @abstractmethod
    async def list_recent(self, limit: int = 100) -> list[HistoryRecord]:
        pass


class IBlocklistRepository(ABC):
    """Repository interface for BlocklistEntry entities."""

    @abstractmethod
    async def add(self, entry: BlocklistEntry) -> bool:
        """Insert an entry. False if the fingerprint is already blocked."""
        pass

    @abstractmethod
    async def exists(self, fingerprint: str) -> bool:
        pass

    @abstractmethod
    async def list_fingerprints(self) -> set[str]:
        pass

    @abstractmethod
    async def list_all(self) -> list[BlocklistEntry]:
        pass

    @abstractmethod
    async def delete(self, entry_id: int) -> None:
        pass


class IIntegrationStatusRepository(ABC):
    """Repository interface for IntegrationStatus rows."""

    @abstractmethod
    async def get(self, integration_key: str) -> IntegrationStatus | None:
        pass

    @abstractmethod
    async def save(self, status: IntegrationStatus) -> None:
        """Insert or update the single row of the status' key."""
        pass

    @abstractmethod
    async def list_all(self) -> list[IntegrationStatus]:
        pass


__all__ = [
    "IBlocklistRepository",
    "IClock",
    "ICustomFormatRepository",
    "IDelayProfileRepository",
    "IDownloadClient",
    "IHistoryRepository",
    "IImportHandler",
    "IIntegrationStatusRepository",
    "IPendingReleaseRepository",
    "IQualityProfileRepository",
    "IQueueRepository",
    "IReleaseParser",
    "IReleaseRestrictionRepository",
    "ISearchIndexer",
    "IWantedMediaSource",
    "ImportResult",
    "WantedItem",
]
