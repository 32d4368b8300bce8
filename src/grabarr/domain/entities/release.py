"""Release entities and the Release Comparator.

Hey future me - three shapes of "a release" live here:

RawRelease     what an indexer returned (title, size, protocol, ...)
ParsedRelease  what the release parser (external) extracted from the title
Candidate      both merged, plus derived custom-format matches and score

Candidates are stored as JSON snapshots in pending_releases / queue rows, so
to_snapshot()/from_snapshot() must round-trip every field.

RANKING (select_best / outranks) - in this order:
1. better quality rank in the profile (lower index wins)
2. higher custom format score
3. more recent publish date (freshness)
4. lower indexer priority number
5. title, lexical - only so tests are deterministic
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from grabarr.domain.entities.quality_profile import QualityProfile
from grabarr.domain.value_objects import DownloadProtocol

DEFAULT_INDEXER_PRIORITY = 25


@dataclass(frozen=True)
class RawRelease:
    """A release exactly as an indexer reported it."""

    title: str
    indexer_id: int
    protocol: DownloadProtocol
    size: int = 0
    published_at: datetime | None = None
    download_url: str | None = None
    indexer_priority: int = DEFAULT_INDEXER_PRIORITY
    indexer_flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedRelease:
    """Structured attributes extracted from a release title by the parser port."""

    quality_id: int
    languages: tuple[str, ...] = ()
    season: int | None = None
    episode: int | None = None
    release_group: str | None = None


@dataclass(frozen=True)
class Candidate:
    """A release offered by an integration, ready for evaluation."""

    title: str
    indexer_id: int
    protocol: DownloadProtocol
    detected_quality_id: int
    size: int = 0
    published_at: datetime | None = None
    download_url: str | None = None
    indexer_priority: int = DEFAULT_INDEXER_PRIORITY
    languages: tuple[str, ...] = ()
    release_group: str | None = None
    indexer_flags: tuple[str, ...] = ()
    matched_format_ids: tuple[int, ...] = field(default=())
    custom_format_score: int = 0

    @classmethod
    def from_release(cls, raw: RawRelease, parsed: ParsedRelease) -> Candidate:
        """Merge an indexer result with the parser output."""
        return cls(
            title=raw.title,
            indexer_id=raw.indexer_id,
            protocol=raw.protocol,
            detected_quality_id=parsed.quality_id,
            size=raw.size,
            published_at=raw.published_at,
            download_url=raw.download_url,
            indexer_priority=raw.indexer_priority,
            languages=tuple(parsed.languages),
            release_group=parsed.release_group,
            indexer_flags=tuple(raw.indexer_flags),
        )

    def with_formats(self, matched_format_ids: Iterable[int], score: int) -> Candidate:
        """Copy with derived custom format data filled in."""
        return replace(
            self,
            matched_format_ids=tuple(sorted(matched_format_ids)),
            custom_format_score=score,
        )

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-serialisable dict for persistence."""
        return {
            "title": self.title,
            "indexer_id": self.indexer_id,
            "protocol": self.protocol.value,
            "detected_quality_id": self.detected_quality_id,
            "size": self.size,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "download_url": self.download_url,
            "indexer_priority": self.indexer_priority,
            "languages": list(self.languages),
            "release_group": self.release_group,
            "indexer_flags": list(self.indexer_flags),
            "matched_format_ids": list(self.matched_format_ids),
            "custom_format_score": self.custom_format_score,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> Candidate:
        """Rebuild a candidate from to_snapshot() output."""
        published = data.get("published_at")
        return cls(
            title=data["title"],
            indexer_id=int(data["indexer_id"]),
            protocol=DownloadProtocol(data["protocol"]),
            detected_quality_id=int(data["detected_quality_id"]),
            size=int(data.get("size") or 0),
            published_at=datetime.fromisoformat(published) if published else None,
            download_url=data.get("download_url"),
            indexer_priority=int(data.get("indexer_priority", DEFAULT_INDEXER_PRIORITY)),
            languages=tuple(data.get("languages") or ()),
            release_group=data.get("release_group"),
            indexer_flags=tuple(data.get("indexer_flags") or ()),
            matched_format_ids=tuple(data.get("matched_format_ids") or ()),
            custom_format_score=int(data.get("custom_format_score") or 0),
        )


# =============================================================================
# RELEASE COMPARATOR
# =============================================================================


def release_sort_key(candidate: Candidate, profile: QualityProfile) -> tuple[Any, ...]:
    """Sort key where SMALLER means BETTER.

    Raises:
        ValueError: If the candidate's quality is not allowed by the profile.
            Rejected qualities are never compared.
    """
    quality_rank = profile.rank(candidate.detected_quality_id)
    if quality_rank is None:
        raise ValueError(
            f"Candidate '{candidate.title}' has quality "
            f"{candidate.detected_quality_id} which profile '{profile.name}' rejects"
        )
    # Missing publish date sorts as the oldest possible release
    freshness = (
        -candidate.published_at.timestamp() if candidate.published_at else math.inf
    )
    return (
        quality_rank,
        -candidate.custom_format_score,
        freshness,
        candidate.indexer_priority,
        candidate.title,
    )


def rank_candidates(
    candidates: Iterable[Candidate], profile: QualityProfile
) -> list[Candidate]:
    """All candidates, best first."""
    return sorted(candidates, key=lambda c: release_sort_key(c, profile))


def select_best(
    candidates: Iterable[Candidate], profile: QualityProfile
) -> Candidate | None:
    """Pick exactly one candidate (None when there are none)."""
    ranked = rank_candidates(candidates, profile)
    return ranked[0] if ranked else None


def outranks(challenger: Candidate, incumbent: Candidate, profile: QualityProfile) -> bool:
    """True iff challenger is STRICTLY better than incumbent."""
    return release_sort_key(challenger, profile) < release_sort_key(incumbent, profile)
