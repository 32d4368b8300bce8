"""Domain entities for release acquisition."""

from grabarr.domain.entities.blocklist import BlocklistEntry, fingerprint
from grabarr.domain.entities.custom_format import (
    CustomFormat,
    FormatSpecification,
    SpecificationImplementation,
    custom_format_score,
    match_formats,
    score_candidate,
)
from grabarr.domain.entities.delay_profile import (
    DelayDecision,
    DelayOutcome,
    DelayProfile,
    evaluate_delay,
    select_delay_profile,
    zero_delay_profile,
)
from grabarr.domain.entities.integration_status import (
    IntegrationStatus,
    backoff_minutes,
)
from grabarr.domain.entities.pending_release import PendingRelease
from grabarr.domain.entities.quality_profile import (
    ProfileItem,
    QualityProfile,
    get_default_profiles,
)
from grabarr.domain.entities.queue import (
    ALLOWED_TRANSITIONS,
    ClientState,
    ClientStatus,
    FailureStage,
    HistoryEventType,
    HistoryRecord,
    QueueItem,
    QueueStatus,
)
from grabarr.domain.entities.release import (
    Candidate,
    ParsedRelease,
    RawRelease,
    outranks,
    rank_candidates,
    release_sort_key,
    select_best,
)
from grabarr.domain.entities.release_restriction import (
    ReleaseRestriction,
    check_restrictions,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BlocklistEntry",
    "Candidate",
    "ClientState",
    "ClientStatus",
    "CustomFormat",
    "DelayDecision",
    "DelayOutcome",
    "DelayProfile",
    "FailureStage",
    "FormatSpecification",
    "HistoryEventType",
    "HistoryRecord",
    "IntegrationStatus",
    "ParsedRelease",
    "PendingRelease",
    "ProfileItem",
    "QualityProfile",
    "QueueItem",
    "QueueStatus",
    "RawRelease",
    "ReleaseRestriction",
    "SpecificationImplementation",
    "backoff_minutes",
    "check_restrictions",
    "custom_format_score",
    "evaluate_delay",
    "fingerprint",
    "get_default_profiles",
    "match_formats",
    "outranks",
    "rank_candidates",
    "release_sort_key",
    "score_candidate",
    "select_best",
    "select_delay_profile",
    "zero_delay_profile",
]
