"""Application services - the acquisition core's use cases."""

from grabarr.application.services.acquisition_service import (
    AcquisitionService,
    CycleReport,
)
from grabarr.application.services.blocklist_service import (
    BlocklistService,
    release_fingerprint,
)
from grabarr.application.services.delay_policy_service import (
    DelayPolicyService,
    PolicyResult,
    pending_lock_key,
    supersedes,
)
from grabarr.application.services.grab_service import GrabService
from grabarr.application.services.integration_health_service import (
    IntegrationHealthTracker,
)
from grabarr.application.services.integration_registry import IntegrationRegistry
from grabarr.application.services.pending_release_service import (
    PendingReleaseService,
    TickReport,
)
from grabarr.application.services.profile_service import ProfileService

# Hey future me - QueueService is the ONLY writer of queue rows after the grab.
# Workers call it, never the repository directly.
from grabarr.application.services.queue_service import QueueService, queue_lock_key
from grabarr.application.services.release_evaluation_service import (
    EvaluationResult,
    Rejection,
    ReleaseEvaluationService,
    assess_candidate,
)

__all__ = [
    "AcquisitionService",
    "BlocklistService",
    "CycleReport",
    "DelayPolicyService",
    "EvaluationResult",
    "GrabService",
    "IntegrationHealthTracker",
    "IntegrationRegistry",
    "PendingReleaseService",
    "PolicyResult",
    "ProfileService",
    "QueueService",
    "Rejection",
    "ReleaseEvaluationService",
    "TickReport",
    "assess_candidate",
    "pending_lock_key",
    "queue_lock_key",
    "release_fingerprint",
    "supersedes",
]
