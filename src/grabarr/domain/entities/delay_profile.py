"""Delay Profile Entity - "wait a bit, something better may show up".

Hey future me - delay profiles decide WHEN a chosen candidate is grabbed.

SELECTION (select_delay_profile):
1. Tagged profiles whose tags are ALL present on the title → most tags wins,
   ties broken by lower ``order``
2. Otherwise the untagged profile with the lowest ``order``
3. Otherwise the built-in zero-delay profile (grab everything right away)

DECISION (evaluate_delay):
- protocol disabled in the profile → REJECT (candidate dropped)
- bypass_if_highest_quality and the candidate meets the cutoff → GRAB
- bypass_if_above_custom_format_score and score >= minimum → GRAB
- delay for the protocol is 0 → GRAB
- else DEFER for ``delay_minutes``
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from grabarr.domain.entities.quality_profile import QualityProfile
from grabarr.domain.entities.release import Candidate
from grabarr.domain.exceptions import ValidationError
from grabarr.domain.value_objects import DownloadProtocol

# Untagged catch-all profile sorts last
DEFAULT_DELAY_PROFILE_ORDER = 2147483647


class DelayOutcome(str, Enum):
    """What to do with the best candidate right now."""

    GRAB = "grab"
    DEFER = "defer"
    REJECT = "reject"


@dataclass
class DelayProfile:
    """Protocol-specific delay policy, selected by title tags."""

    id: int | None
    enable_usenet: bool = True
    enable_torrent: bool = True
    usenet_delay_minutes: int = 0
    torrent_delay_minutes: int = 0
    bypass_if_highest_quality: bool = False
    bypass_if_above_custom_format_score: bool = False
    minimum_custom_format_score: int = 0
    tags: set[str] = field(default_factory=set)
    order: int = DEFAULT_DELAY_PROFILE_ORDER

    def validate(self) -> None:
        """Raises ValidationError for an unusable profile. Called at save time."""
        if self.usenet_delay_minutes < 0 or self.torrent_delay_minutes < 0:
            raise ValidationError("Delay minutes cannot be negative")
        if not self.enable_usenet and not self.enable_torrent:
            raise ValidationError("Delay profile must enable at least one protocol")

    def protocol_enabled(self, protocol: DownloadProtocol) -> bool:
        if protocol == DownloadProtocol.USENET:
            return self.enable_usenet
        return self.enable_torrent

    def delay_for(self, protocol: DownloadProtocol) -> int:
        if protocol == DownloadProtocol.USENET:
            return self.usenet_delay_minutes
        return self.torrent_delay_minutes

    def bypasses(self, candidate: Candidate, quality_profile: QualityProfile) -> bool:
        """True if the candidate skips the delay regardless of the timer."""
        if self.bypass_if_highest_quality and quality_profile.cutoff_met(
            candidate.detected_quality_id
        ):
            return True
        return (
            self.bypass_if_above_custom_format_score
            and candidate.custom_format_score >= self.minimum_custom_format_score
        )


def zero_delay_profile() -> DelayProfile:
    """Built-in profile used when nothing is configured."""
    return DelayProfile(id=None)


def select_delay_profile(
    profiles: Iterable[DelayProfile], title_tags: Iterable[str]
) -> DelayProfile:
    """Choose the delay profile that applies to a title with the given tags."""
    tags = set(title_tags)
    tagged: list[DelayProfile] = []
    untagged: list[DelayProfile] = []
    for profile in profiles:
        if not profile.tags:
            untagged.append(profile)
        elif profile.tags <= tags:
            tagged.append(profile)

    if tagged:
        return min(tagged, key=lambda p: (-len(p.tags), p.order))
    if untagged:
        return min(untagged, key=lambda p: p.order)
    return zero_delay_profile()


@dataclass(frozen=True)
class DelayDecision:
    """Result of applying a delay profile to one candidate."""

    outcome: DelayOutcome
    delay_minutes: int = 0
    reason: str = ""


def evaluate_delay(
    delay_profile: DelayProfile,
    candidate: Candidate,
    quality_profile: QualityProfile,
) -> DelayDecision:
    """Decide whether to grab the candidate now, defer it, or drop it."""
    if not delay_profile.protocol_enabled(candidate.protocol):
        return DelayDecision(
            DelayOutcome.REJECT,
            reason=f"{candidate.protocol.value} disabled by delay profile",
        )
    if delay_profile.bypasses(candidate, quality_profile):
        return DelayDecision(DelayOutcome.GRAB, reason="delay bypassed")

    minutes = delay_profile.delay_for(candidate.protocol)
    if minutes <= 0:
        return DelayDecision(DelayOutcome.GRAB, reason="no delay")
    return DelayDecision(
        DelayOutcome.DEFER,
        delay_minutes=minutes,
        reason=f"{candidate.protocol.value} delay of {minutes} minutes",
    )
