"""SQLAlchemy ORM models for grabarr."""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import JSON, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! UTC datetimes come back "naive".
# ALWAYS run DB datetimes through this before comparing with the (aware) clock,
# otherwise you get "can't compare offset-naive and offset-aware datetimes".
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def target_key(media_id: int, episode_id: int | None) -> str:
    """Unique key of a media/episode target.

    SQLite treats NULLs as distinct in UNIQUE constraints, so (media_id, NULL)
    could be inserted twice. We store a combined string instead.
    """
    return f"{media_id}:{episode_id if episode_id is not None else '-'}"


class Base(DeclarativeBase):
    """Base class for all ORM models (shared metadata registry)."""

    pass


class QualityProfileModel(Base):
    """Quality profile: ordered quality items, cutoff and format scores."""

    __tablename__ = "quality_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    # [{"quality_id": 7, "enabled": true}, ...] highest priority first
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    cutoff_quality_id: Mapped[int] = mapped_column(Integer, nullable=False)
    upgrade_allowed: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    min_format_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cutoff_format_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # JSON object keys are strings: {"3": 100}. Converted back to int in the repository.
    format_scores: Mapped[dict[str, int]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class CustomFormatModel(Base):
    """Custom format with its specification list."""

    __tablename__ = "custom_formats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    # [{"name", "implementation", "negate", "required", "fields"}, ...]
    specifications: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )


class DelayProfileModel(Base):
    """Delay profile. ``order`` is a reserved word, hence ``sort_order``."""

    __tablename__ = "delay_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    enable_usenet: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    enable_torrent: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    usenet_delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    torrent_delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bypass_if_highest_quality: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    bypass_if_above_custom_format_score: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    minimum_custom_format_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    sort_order: Mapped[int] = mapped_column(
        Integer, nullable=False, default=2147483647, index=True
    )


class ReleaseRestrictionModel(Base):
    """Must-contain / must-not-contain terms, optionally limited to tagged titles."""

    __tablename__ = "release_restrictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    must_contain: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    must_not_contain: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class PendingReleaseModel(Base):
    """A deferred candidate. At most one per media/episode."""

    __tablename__ = "pending_releases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    target_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    episode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    candidate: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    added_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    release_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="delay")


class QueueItemModel(Base):
    """A grabbed release tracked until import or failure."""

    __tablename__ = "queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False)
    episode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    candidate: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    download_client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    download_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # 'queued', 'downloading', 'paused', 'importing', 'completed', 'failed'
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="queued")
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    size_remaining: Mapped[int] = mapped_column(sa.BigInteger, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_stage: Mapped[str | None] = mapped_column(String(20), nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("ix_queue_media_episode", "media_id", "episode_id"),
        Index("ix_queue_status", "status"),
        # History is keyed by queue id, so SQLite must never hand out a deleted id again
        {"sqlite_autoincrement": True},
    )


class HistoryModel(Base):
    """Append-only acquisition history."""

    __tablename__ = "history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # NULL only on rows written before queue ids were recorded
    queue_item_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False)
    episode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_title: Mapped[str] = mapped_column(String(512), nullable=False)
    quality_id: Mapped[int] = mapped_column(Integer, nullable=False)
    custom_format_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    date: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # Replaying the failure pipeline must not duplicate history
        sa.UniqueConstraint("queue_item_id", "event_type", name="uq_history_queue_item_event"),
        Index("ix_history_download_id", "download_id"),
        Index("ix_history_media_episode", "media_id", "episode_id"),
        Index("ix_history_date", "date"),
    )


class BlocklistModel(Base):
    """Permanently rejected releases."""

    __tablename__ = "blocklist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    media_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    episode_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_title: Mapped[str] = mapped_column(String(512), nullable=False)
    indexer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    protocol: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)


class IntegrationStatusModel(Base):
    """Circuit breaker state, one row per indexer / download client."""

    __tablename__ = "integration_status"

    # "indexer:3" / "download_client:1"
    integration_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    initial_failure_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    most_recent_failure_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disabled_till: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
