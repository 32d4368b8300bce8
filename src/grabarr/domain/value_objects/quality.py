"""Quality ladder value objects.

Hey future me - this is THE catalog of quality levels a release can have!

The ladder is FIXED: ids and names never change because profiles, pending
snapshots and history rows reference them by id. ``weight`` is only a hint for
displaying qualities in a sensible default order. Runtime ranking ALWAYS uses the
position inside a QualityProfile's ordered items, never the weight.

USAGE:
    from grabarr.domain.value_objects import get_quality
    level = get_quality(7)  # Bluray-1080p
    level.resolution  # 1080
"""

from dataclasses import dataclass
from enum import Enum


class QualitySource(str, Enum):
    """Where a release was sourced from."""

    UNKNOWN = "unknown"
    TELEVISION = "television"
    DVD = "dvd"
    WEBDL = "webdl"
    WEBRIP = "webrip"
    BLURAY = "bluray"
    BLURAY_RAW = "blurayraw"


@dataclass(frozen=True)
class QualityLevel:
    """A single rung of the quality ladder.

    Attributes:
        id: Stable identifier referenced by profiles and snapshots
        name: Display name (e.g. "WEBDL-1080p")
        source: Release source
        resolution: Vertical resolution, 0 when unknown
        weight: Default display order hint only
    """

    id: int
    name: str
    source: QualitySource
    resolution: int
    weight: int


QUALITY_LADDER: tuple[QualityLevel, ...] = (
    QualityLevel(0, "Unknown", QualitySource.UNKNOWN, 0, 0),
    QualityLevel(1, "SDTV", QualitySource.TELEVISION, 480, 1),
    QualityLevel(2, "DVD", QualitySource.DVD, 480, 2),
    QualityLevel(8, "WEBDL-480p", QualitySource.WEBDL, 480, 3),
    QualityLevel(4, "HDTV-720p", QualitySource.TELEVISION, 720, 4),
    QualityLevel(5, "WEBDL-720p", QualitySource.WEBDL, 720, 5),
    QualityLevel(14, "WEBRip-720p", QualitySource.WEBRIP, 720, 6),
    QualityLevel(6, "Bluray-720p", QualitySource.BLURAY, 720, 7),
    QualityLevel(9, "HDTV-1080p", QualitySource.TELEVISION, 1080, 8),
    QualityLevel(3, "WEBDL-1080p", QualitySource.WEBDL, 1080, 9),
    QualityLevel(15, "WEBRip-1080p", QualitySource.WEBRIP, 1080, 10),
    QualityLevel(7, "Bluray-1080p", QualitySource.BLURAY, 1080, 11),
    QualityLevel(20, "Bluray-1080p Remux", QualitySource.BLURAY_RAW, 1080, 12),
    QualityLevel(16, "HDTV-2160p", QualitySource.TELEVISION, 2160, 13),
    QualityLevel(18, "WEBDL-2160p", QualitySource.WEBDL, 2160, 14),
    QualityLevel(17, "WEBRip-2160p", QualitySource.WEBRIP, 2160, 15),
    QualityLevel(19, "Bluray-2160p", QualitySource.BLURAY, 2160, 16),
    QualityLevel(21, "Bluray-2160p Remux", QualitySource.BLURAY_RAW, 2160, 17),
)

_BY_ID: dict[int, QualityLevel] = {level.id: level for level in QUALITY_LADDER}
_BY_NAME: dict[str, QualityLevel] = {
    level.name.lower(): level for level in QUALITY_LADDER
}


def get_quality(quality_id: int) -> QualityLevel | None:
    """Look up a quality level by id (None if not on the ladder)."""
    return _BY_ID.get(quality_id)


def get_quality_by_name(name: str) -> QualityLevel | None:
    """Look up a quality level by name, case-insensitive."""
    return _BY_NAME.get(name.lower().strip())
