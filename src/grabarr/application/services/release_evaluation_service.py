"""Release Evaluation Service - from raw indexer results to a ranked candidate list.

Hey future me - the pipeline for ONE wanted title, in this exact order:

1. Blocklist filter        (raw release, before anything else - cheap)
2. Parse title             (external parser port)
3. Quality allowed?        (profile items, enabled)
4. Release restrictions    (must / must-not contain terms, by the title's tags)
5. Custom formats + score  (per profile)
6. Score >= min_format_score?
7. Upgrade check           (only when the title already has a file)
8. Rank                    (Release Comparator, best first)

Everything that falls out on the way is a Rejection RECORD, not an exception.
Rejections are logged at DEBUG - a normal search produces hundreds of them.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from grabarr.application.services.blocklist_service import BlocklistService
from grabarr.domain.entities import (
    Candidate,
    CustomFormat,
    QualityProfile,
    RawRelease,
    ReleaseRestriction,
    check_restrictions,
    rank_candidates,
    score_candidate,
)
from grabarr.domain.ports import IReleaseParser, WantedItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rejection:
    """Why a release was not accepted."""

    title: str
    indexer_id: int
    reason: str


@dataclass
class EvaluationResult:
    """Accepted candidates (best first) plus every rejection."""

    accepted: list[Candidate] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)

    @property
    def best(self) -> Candidate | None:
        return self.accepted[0] if self.accepted else None


def assess_candidate(
    candidate: Candidate,
    wanted: WantedItem,
    profile: QualityProfile,
    formats: Iterable[CustomFormat],
    restrictions: Iterable[ReleaseRestriction] = (),
) -> Candidate | Rejection:
    """Steps 3-7 for a single candidate. Returns the scored candidate or a Rejection."""
    if not profile.allowed(candidate.detected_quality_id):
        return Rejection(
            candidate.title,
            candidate.indexer_id,
            f"quality {candidate.detected_quality_id} not allowed by '{profile.name}'",
        )

    violation = check_restrictions(candidate.title, restrictions, wanted.tags)
    if violation is not None:
        return Rejection(candidate.title, candidate.indexer_id, violation)

    scored = score_candidate(candidate, formats, profile)
    if not profile.meets_min_format_score(scored.custom_format_score):
        return Rejection(
            scored.title,
            scored.indexer_id,
            f"custom format score {scored.custom_format_score} below minimum "
            f"{profile.min_format_score}",
        )

    if wanted.current_quality_id is not None and not profile.is_upgrade_candidate(
        wanted.current_quality_id,
        wanted.current_format_score,
        scored.detected_quality_id,
        scored.custom_format_score,
    ):
        return Rejection(scored.title, scored.indexer_id, "not an upgrade")

    return scored


class ReleaseEvaluationService:
    """Filters, scores and ranks releases for one wanted title."""

    def __init__(self, parser: IReleaseParser, blocklist: BlocklistService) -> None:
        self._parser = parser
        self._blocklist = blocklist

    async def evaluate(
        self,
        releases: list[RawRelease],
        wanted: WantedItem,
        profile: QualityProfile,
        formats: list[CustomFormat],
        restrictions: list[ReleaseRestriction] | None = None,
    ) -> EvaluationResult:
        result = EvaluationResult()

        allowed, blocked = await self._blocklist.filter_releases(releases)
        for release in blocked:
            result.rejections.append(Rejection(release.title, release.indexer_id, "blocklisted"))

        accepted: list[Candidate] = []
        for release in allowed:
            try:
                parsed = self._parser.parse(release.title)
            except ValueError as e:
                result.rejections.append(
                    Rejection(release.title, release.indexer_id, f"unparseable: {e}")
                )
                continue

            outcome = assess_candidate(
                Candidate.from_release(release, parsed),
                wanted,
                profile,
                formats,
                restrictions or (),
            )
            if isinstance(outcome, Rejection):
                result.rejections.append(outcome)
            else:
                accepted.append(outcome)

        result.accepted = rank_candidates(accepted, profile)

        for rejection in result.rejections:
            logger.debug(
                "Rejected '%s' (indexer %d) for media %d: %s",
                rejection.title,
                rejection.indexer_id,
                wanted.media_id,
                rejection.reason,
            )
        logger.info(
            "Evaluated %d releases for media %d: %d accepted, %d rejected",
            len(releases),
            wanted.media_id,
            len(result.accepted),
            len(result.rejections),
        )
        return result
