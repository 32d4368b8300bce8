"""Quality Profile Entity - which qualities a title accepts and when to stop upgrading.

Hey future me - this is the Quality Profile EVALUATOR!

KONZEPT:
- A profile is an ORDERED list of (quality, enabled) items
- POSITION defines priority: index 0 = best, last = worst
- The ladder weight is NOT used here. Users reorder items freely, so
  "Bluray-720p above WEBDL-1080p" is a perfectly valid profile.
- cutoff = the quality at which we stop upgrading automatically

UPGRADE RULES:
1. No current file → any allowed candidate is wanted
2. upgrade_allowed=False → never upgrade an existing file
3. Current already at/above cutoff → NOTHING is an upgrade (hard ceiling)
4. Otherwise → upgrade iff candidate rank is strictly better than current

Custom format scores have their own parallel rules (min/cutoff score), see
is_format_upgrade() and custom_format.py for the scoring itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from grabarr.domain.exceptions import ValidationError
from grabarr.domain.value_objects import get_quality, get_quality_by_name


@dataclass(frozen=True)
class ProfileItem:
    """One entry of a profile's ordered item list."""

    quality_id: int
    enabled: bool = True


@dataclass
class QualityProfile:
    """Per-title policy of acceptable qualities, their priority, and the cutoff.

    Attributes:
        id: Profile id
        name: Unique display name
        ordered_items: Items in priority order (index 0 = highest priority)
        cutoff_quality_id: Quality at which automatic upgrading stops
        upgrade_allowed: Whether existing files may be upgraded at all
        min_format_score: Candidates scoring below this are rejected
        cutoff_format_score: Score at which score-only upgrades stop
        format_scores: custom format id → score (absent = 0)
    """

    id: int | None
    name: str
    ordered_items: list[ProfileItem]
    cutoff_quality_id: int
    upgrade_allowed: bool = True
    min_format_score: int = 0
    cutoff_format_score: int = 0
    format_scores: dict[int, int] = field(default_factory=dict)

    def validate(self) -> None:
        """Check profile invariants. Called at save time.

        Raises:
            ValidationError: If the profile is invalid
        """
        if not self.name or not self.name.strip():
            raise ValidationError("Quality profile name cannot be empty")
        if not self.ordered_items:
            raise ValidationError(f"Quality profile '{self.name}' has no items")

        seen: set[int] = set()
        for item in self.ordered_items:
            if get_quality(item.quality_id) is None:
                raise ValidationError(
                    f"Quality profile '{self.name}' references unknown quality "
                    f"{item.quality_id}"
                )
            if item.quality_id in seen:
                raise ValidationError(
                    f"Quality profile '{self.name}' lists quality "
                    f"{item.quality_id} more than once"
                )
            seen.add(item.quality_id)

        if not self.allowed(self.cutoff_quality_id):
            raise ValidationError(
                f"Cutoff quality {self.cutoff_quality_id} of profile '{self.name}' "
                "is not an enabled item"
            )
        if self.cutoff_format_score < self.min_format_score:
            raise ValidationError(
                f"Cutoff format score {self.cutoff_format_score} of profile "
                f"'{self.name}' is below its minimum format score "
                f"{self.min_format_score}"
            )

    def allowed(self, quality_id: int) -> bool:
        """True iff the quality is listed and enabled."""
        return any(
            item.quality_id == quality_id and item.enabled
            for item in self.ordered_items
        )

    def rank(self, quality_id: int) -> int | None:
        """Positional rank of an allowed quality (lower = better).

        Unknown or disabled qualities return None - they are rejected and must
        never be compared.
        """
        for index, item in enumerate(self.ordered_items):
            if item.quality_id == quality_id:
                return index if item.enabled else None
        return None

    @property
    def cutoff_rank(self) -> int:
        rank = self.rank(self.cutoff_quality_id)
        if rank is None:
            # validate() prevents this for saved profiles
            raise ValidationError(
                f"Cutoff quality {self.cutoff_quality_id} of profile '{self.name}' "
                "is not an enabled item"
            )
        return rank

    @property
    def highest_quality_id(self) -> int | None:
        """The enabled item with the best priority."""
        for item in self.ordered_items:
            if item.enabled:
                return item.quality_id
        return None

    def cutoff_met(self, quality_id: int | None) -> bool:
        """True if a file at this quality is at or above the cutoff."""
        if quality_id is None:
            return False
        rank = self.rank(quality_id)
        return rank is not None and rank <= self.cutoff_rank

    def is_upgrade(self, current_quality_id: int | None, candidate_quality_id: int) -> bool:
        """Decide whether a candidate quality should replace the current one."""
        candidate_rank = self.rank(candidate_quality_id)
        if candidate_rank is None:
            return False
        if current_quality_id is None:
            return True
        if not self.upgrade_allowed:
            return False
        if self.cutoff_met(current_quality_id):
            return False

        current_rank = self.rank(current_quality_id)
        if current_rank is None:
            # Current file is no longer in the profile → treat as the worst rank
            return True
        return candidate_rank < current_rank

    def format_score(self, matched_format_ids: list[int] | set[int] | tuple[int, ...]) -> int:
        """Sum of this profile's scores for the matched formats."""
        return sum(self.format_scores.get(format_id, 0) for format_id in matched_format_ids)

    def meets_min_format_score(self, score: int) -> bool:
        return score >= self.min_format_score

    def is_format_upgrade(self, current_score: int, candidate_score: int) -> bool:
        """Score-only upgrade check, analogous to the quality cutoff."""
        if not self.upgrade_allowed:
            return False
        if current_score >= self.cutoff_format_score:
            return False
        return candidate_score > current_score

    def is_upgrade_candidate(
        self,
        current_quality_id: int | None,
        current_score: int,
        candidate_quality_id: int,
        candidate_score: int,
    ) -> bool:
        """Combined decision: better quality, or same quality with a better score.

        Hey future me - this is what release evaluation calls for titles that
        already have a file. Quality wins first; a score-only improvement only
        counts when the candidate sits at the SAME rank as the current file.
        """
        if self.is_upgrade(current_quality_id, candidate_quality_id):
            return True
        if current_quality_id is None:
            return False
        candidate_rank = self.rank(candidate_quality_id)
        if candidate_rank is None or candidate_rank != self.rank(current_quality_id):
            return False
        return self.is_format_upgrade(current_score, candidate_score)


# Free functions mirror the evaluator operations for callers that hold a profile
# and want the plain function form.
def allowed(profile: QualityProfile, quality_id: int) -> bool:
    return profile.allowed(quality_id)


def rank(profile: QualityProfile, quality_id: int) -> int | None:
    return profile.rank(quality_id)


def is_upgrade(
    profile: QualityProfile, current_quality_id: int | None, candidate_quality_id: int
) -> bool:
    return profile.is_upgrade(current_quality_id, candidate_quality_id)


# =============================================================================
# DEFAULT QUALITY PROFILES
# =============================================================================
# Hey future me - these are seeded on first start (ProfileService.ensure_defaults).
# The names are listed WORST → BEST because that's how people read ladders;
# _build_default() reverses them so the stored list is highest priority first.

_DEFAULT_PROFILES: tuple[tuple[str, tuple[str, ...], str], ...] = (
    (
        "Any",
        (
            "Unknown", "SDTV", "DVD", "WEBDL-480p", "HDTV-720p", "WEBDL-720p",
            "WEBRip-720p", "Bluray-720p", "HDTV-1080p", "WEBDL-1080p",
            "WEBRip-1080p", "Bluray-1080p", "Bluray-1080p Remux", "HDTV-2160p",
            "WEBDL-2160p", "WEBRip-2160p", "Bluray-2160p", "Bluray-2160p Remux",
        ),
        "WEBDL-1080p",
    ),
    ("SD", ("SDTV", "DVD", "WEBDL-480p"), "DVD"),
    ("HD-720p", ("HDTV-720p", "WEBDL-720p", "WEBRip-720p", "Bluray-720p"), "Bluray-720p"),
    (
        "HD-1080p",
        ("HDTV-1080p", "WEBDL-1080p", "WEBRip-1080p", "Bluray-1080p", "Bluray-1080p Remux"),
        "Bluray-1080p",
    ),
    (
        "Ultra-HD",
        ("HDTV-2160p", "WEBDL-2160p", "WEBRip-2160p", "Bluray-2160p", "Bluray-2160p Remux"),
        "Bluray-2160p",
    ),
)


def _quality_id(name: str) -> int:
    level = get_quality_by_name(name)
    if level is None:
        raise ValueError(f"Unknown quality name: {name}")
    return level.id


def _build_default(name: str, ascending: tuple[str, ...], cutoff: str) -> QualityProfile:
    return QualityProfile(
        id=None,
        name=name,
        ordered_items=[ProfileItem(_quality_id(q)) for q in reversed(ascending)],
        cutoff_quality_id=_quality_id(cutoff),
        upgrade_allowed=True,
    )


def get_default_profiles() -> list[QualityProfile]:
    """Fresh copies of the built-in quality profiles."""
    return [_build_default(*definition) for definition in _DEFAULT_PROFILES]
