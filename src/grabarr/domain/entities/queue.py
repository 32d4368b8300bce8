"""Acquisition Queue entities - grabbed downloads and their history.

Hey future me - QueueItem is the STATE MACHINE for one grabbed release:

    queued ──► downloading ──► importing ──► completed
      │          │  ▲             │
      │          ▼  │             │
      │         paused            │
      │          │                │
      └──────────┴──► failed ◄────┘

completed / failed are TERMINAL. Any other move raises InvalidStateException.
Use the domain methods (start_downloading, pause, fail, ...) - never assign
``status`` directly, otherwise the transition table is bypassed.

Every method takes ``now`` so tests can use a frozen clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from grabarr.domain.entities.release import Candidate
from grabarr.domain.exceptions import InvalidStateException


class QueueStatus(str, Enum):
    """Lifecycle status of a queue item."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PAUSED = "paused"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.QUEUED: frozenset({QueueStatus.DOWNLOADING, QueueStatus.FAILED}),
    QueueStatus.DOWNLOADING: frozenset(
        {QueueStatus.PAUSED, QueueStatus.IMPORTING, QueueStatus.FAILED}
    ),
    QueueStatus.PAUSED: frozenset({QueueStatus.DOWNLOADING, QueueStatus.FAILED}),
    QueueStatus.IMPORTING: frozenset({QueueStatus.COMPLETED, QueueStatus.FAILED}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.FAILED: frozenset(),
}


class FailureStage(str, Enum):
    """Where a queue item failed - decides which integration gets blamed."""

    DOWNLOAD = "download"
    IMPORT = "import"


class ClientState(str, Enum):
    """State of a download as reported by a download client."""

    QUEUED = "queued"
    DOWNLOADING = "downloading"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ClientStatus:
    """One polling observation from a download client."""

    state: ClientState
    progress: float = 0.0
    size_remaining: int = 0
    message: str | None = None


@dataclass
class QueueItem:
    """A grabbed candidate being tracked through download and import."""

    id: int | None
    media_id: int
    episode_id: int | None
    candidate: Candidate
    download_client_id: int
    download_id: str
    status: QueueStatus = QueueStatus.QUEUED
    progress: float = 0.0
    size_remaining: int = 0
    error_message: str | None = None
    failure_stage: FailureStage | None = None
    added_at: datetime | None = None
    updated_at: datetime | None = None

    def is_terminal(self) -> bool:
        return self.status in (QueueStatus.COMPLETED, QueueStatus.FAILED)

    def can_transition(self, target: QueueStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _transition(self, target: QueueStatus, now: datetime) -> None:
        if not self.can_transition(target):
            raise InvalidStateException(
                f"Queue item {self.id} cannot move from {self.status.value} "
                f"to {target.value}"
            )
        self.status = target
        self.updated_at = now

    def start_downloading(self, now: datetime) -> None:
        self._transition(QueueStatus.DOWNLOADING, now)

    def pause(self, now: datetime) -> None:
        self._transition(QueueStatus.PAUSED, now)

    def resume(self, now: datetime) -> None:
        if self.status != QueueStatus.PAUSED:
            raise InvalidStateException(
                f"Queue item {self.id} cannot resume from {self.status.value}"
            )
        self._transition(QueueStatus.DOWNLOADING, now)

    def update_progress(
        self, progress: float, size_remaining: int, now: datetime
    ) -> None:
        """Record progress; only meaningful while the item is still downloading."""
        if self.is_terminal():
            raise InvalidStateException(
                f"Queue item {self.id} is {self.status.value}, progress ignored"
            )
        self.progress = max(0.0, min(100.0, progress))
        self.size_remaining = max(0, size_remaining)
        self.updated_at = now

    def start_import(self, now: datetime) -> None:
        self._transition(QueueStatus.IMPORTING, now)
        self.progress = 100.0
        self.size_remaining = 0

    def complete(self, now: datetime) -> None:
        self._transition(QueueStatus.COMPLETED, now)

    def fail(self, stage: FailureStage, message: str, now: datetime) -> None:
        self._transition(QueueStatus.FAILED, now)
        self.failure_stage = stage
        self.error_message = message


# =============================================================================
# HISTORY
# =============================================================================


class HistoryEventType(str, Enum):
    """Auditable acquisition events."""

    GRABBED = "grabbed"
    DOWNLOAD_COMPLETED = "download_completed"
    IMPORT_COMPLETED = "import_completed"
    DOWNLOAD_FAILED = "download_failed"
    IMPORT_FAILED = "import_failed"
    DELETED = "deleted"


@dataclass
class HistoryRecord:
    """Append-only audit record. Unique per (queue_item_id, event_type).

    Keyed by the queue item rather than the download id: torrent clients reuse
    the info-hash when the same release is grabbed again, and that second grab
    must run the failure pipeline again.
    """

    id: int | None
    queue_item_id: int | None
    media_id: int
    episode_id: int | None
    event_type: HistoryEventType
    source_title: str
    quality_id: int
    custom_format_score: int
    download_id: str
    date: datetime
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_item(
        cls,
        item: QueueItem,
        event_type: HistoryEventType,
        now: datetime,
        **data: Any,
    ) -> HistoryRecord:
        """Build a record describing an event of a queue item."""
        return cls(
            id=None,
            queue_item_id=item.id,
            media_id=item.media_id,
            episode_id=item.episode_id,
            event_type=event_type,
            source_title=item.candidate.title,
            quality_id=item.candidate.detected_quality_id,
            custom_format_score=item.candidate.custom_format_score,
            download_id=item.download_id,
            date=now,
            data={
                "indexer_id": item.candidate.indexer_id,
                "download_client_id": item.download_client_id,
                "protocol": item.candidate.protocol.value,
                **data,
            },
        )
