"""Integration ports - indexers, download clients and other collaborators.

Following Hexagonal Architecture (Ports & Adapters), these are PORTS in the
domain layer. Implementations live in the infrastructure layer (or in the
host application for parser/import/library, which are external to this core).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from grabarr.domain.entities import (
    ClientStatus,
    Candidate,
    ParsedRelease,
    QueueItem,
    RawRelease,
)
from grabarr.domain.value_objects import DownloadProtocol


class ISearchIndexer(ABC):
    """A search integration returning raw releases.

    Implementations raise TransientIntegrationError for timeouts, rate limits
    and auth failures. Anything else is treated as a bug and logged.
    """

    indexer_id: int
    name: str
    protocol: DownloadProtocol
    priority: int
    enabled: bool

    @abstractmethod
    async def search(self, query: str, categories: list[int]) -> list[RawRelease]:
        """Search for releases matching the query."""
        pass


class IDownloadClient(ABC):
    """A download client (usenet or torrent)."""

    client_id: int
    name: str
    protocol: DownloadProtocol
    priority: int
    enabled: bool

    @abstractmethod
    async def grab(self, candidate: Candidate) -> str:
        """Hand the release to the client and return the client's download id."""
        pass

    @abstractmethod
    async def status(self, download_id: str) -> ClientStatus:
        """Current state of a download."""
        pass

    @abstractmethod
    async def remove(self, download_id: str) -> None:
        """Remove a download from the client."""
        pass


class IReleaseParser(ABC):
    """Extracts quality/language/episode attributes from a release title."""

    @abstractmethod
    def parse(self, title: str) -> ParsedRelease:
        pass


@dataclass(frozen=True)
class ImportResult:
    """Outcome of importing a finished download."""

    success: bool
    message: str | None = None


class IImportHandler(ABC):
    """Moves a completed download into the library.

    May raise ImportFailure instead of returning an unsuccessful result.
    """

    @abstractmethod
    async def import_download(self, item: QueueItem) -> ImportResult:
        pass


@dataclass(frozen=True)
class WantedItem:
    """A monitored title (or episode) that still needs a file or an upgrade."""

    media_id: int
    query: str
    quality_profile_id: int
    episode_id: int | None = None
    categories: list[int] = field(default_factory=list)
    tags: frozenset[str] = frozenset()
    current_quality_id: int | None = None
    current_format_score: int = 0


class IWantedMediaSource(ABC):
    """The library catalog, seen from the acquisition core."""

    @abstractmethod
    async def list_wanted(self) -> list[WantedItem]:
        """All titles that should be searched in a sync cycle."""
        pass

    @abstractmethod
    async def get_wanted(
        self, media_id: int, episode_id: int | None = None
    ) -> WantedItem | None:
        """A single wanted title, None if it is no longer monitored."""
        pass


class IClock(ABC):
    """Wall clock. Injected so time can be frozen in tests."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        pass
