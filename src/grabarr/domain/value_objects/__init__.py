"""Value objects for the acquisition domain."""

from dataclasses import dataclass
from enum import Enum

from grabarr.domain.value_objects.quality import (
    QUALITY_LADDER,
    QualityLevel,
    QualitySource,
    get_quality,
    get_quality_by_name,
)


class DownloadProtocol(str, Enum):
    """Transport a release is delivered over."""

    USENET = "usenet"
    TORRENT = "torrent"

    @classmethod
    def from_string(cls, value: str) -> "DownloadProtocol":
        """Parse protocol from string (case-insensitive).

        Raises:
            ValueError: If value is not a known protocol
        """
        normalized = value.lower().strip()
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ValueError(
                f"Invalid download protocol: '{value}'. Valid options: {valid}"
            ) from None


class IntegrationKind(str, Enum):
    """Kind of external integration tracked by the health tracker."""

    INDEXER = "indexer"
    DOWNLOAD_CLIENT = "download_client"


# Hey future me - IntegrationKey is how we address ONE row in integration_status!
# Indexer 1 and download client 1 are different integrations, so the kind is part
# of the key. str(key) gives "indexer:1" which is what we persist.
@dataclass(frozen=True)
class IntegrationKey:
    """Identifies a single indexer or download client."""

    kind: IntegrationKind
    integration_id: int

    @classmethod
    def indexer(cls, indexer_id: int) -> "IntegrationKey":
        return cls(IntegrationKind.INDEXER, indexer_id)

    @classmethod
    def download_client(cls, client_id: int) -> "IntegrationKey":
        return cls(IntegrationKind.DOWNLOAD_CLIENT, client_id)

    @classmethod
    def from_string(cls, value: str) -> "IntegrationKey":
        """Parse a persisted key like ``"indexer:3"``.

        Raises:
            ValueError: If the string is not a valid key
        """
        kind, sep, raw_id = value.partition(":")
        if not sep or not raw_id:
            raise ValueError(f"Invalid integration key: '{value}'")
        return cls(IntegrationKind(kind), int(raw_id))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.integration_id}"


__all__ = [
    "DownloadProtocol",
    "IntegrationKey",
    "IntegrationKind",
    "QUALITY_LADDER",
    "QualityLevel",
    "QualitySource",
    "get_quality",
    "get_quality_by_name",
]
