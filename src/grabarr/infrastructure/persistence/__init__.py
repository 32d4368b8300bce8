"""Infrastructure persistence layer."""

from .database import Database
from .models import (
    Base,
    BlocklistModel,
    CustomFormatModel,
    DelayProfileModel,
    HistoryModel,
    IntegrationStatusModel,
    PendingReleaseModel,
    QualityProfileModel,
    QueueItemModel,
    ReleaseRestrictionModel,
)
from .repositories import (
    BlocklistRepository,
    CustomFormatRepository,
    DelayProfileRepository,
    HistoryRepository,
    IntegrationStatusRepository,
    PendingReleaseRepository,
    QualityProfileRepository,
    QueueRepository,
    ReleaseRestrictionRepository,
)

__all__ = [
    # Database
    "Database",
    "Base",
    # Models
    "BlocklistModel",
    "CustomFormatModel",
    "DelayProfileModel",
    "HistoryModel",
    "IntegrationStatusModel",
    "PendingReleaseModel",
    "QualityProfileModel",
    "QueueItemModel",
    "ReleaseRestrictionModel",
    # Repositories
    "BlocklistRepository",
    "CustomFormatRepository",
    "DelayProfileRepository",
    "HistoryRepository",
    "IntegrationStatusRepository",
    "PendingReleaseRepository",
    "QualityProfileRepository",
    "QueueRepository",
    "ReleaseRestrictionRepository",
]
