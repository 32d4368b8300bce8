"""SQLAlchemy repository implementations."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from grabarr.domain.entities import (
    BlocklistEntry,
    Candidate,
    CustomFormat,
    DelayProfile,
    FailureStage,
    FormatSpecification,
    HistoryEventType,
    HistoryRecord,
    IntegrationStatus,
    PendingRelease,
    ProfileItem,
    QualityProfile,
    QueueItem,
    QueueStatus,
    ReleaseRestriction,
)
from grabarr.domain.exceptions import EntityNotFoundException, ValidationError
from grabarr.domain.ports import (
    IBlocklistRepository,
    ICustomFormatRepository,
    IDelayProfileRepository,
    IHistoryRepository,
    IIntegrationStatusRepository,
    IPendingReleaseRepository,
    IQualityProfileRepository,
    IQueueRepository,
    IReleaseRestrictionRepository,
)
from grabarr.domain.value_objects import DownloadProtocol

from .models import (
    BlocklistModel,
    CustomFormatModel,
    DelayProfileModel,
    HistoryModel,
    IntegrationStatusModel,
    PendingReleaseModel,
    QualityProfileModel,
    QueueItemModel,
    ReleaseRestrictionModel,
    ensure_utc_aware,
    target_key,
)


# Hey future me - history and blocklist inserts must be IDEMPOTENT (the failure pipeline can
# be replayed after a crash) and integration_status must be a single-row UPSERT. Both need
# "INSERT ... ON CONFLICT", which is dialect specific. SQLite and PostgreSQL share the same API.
def _dialect_insert(session: AsyncSession, model: type[Any]) -> Any:
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


# =============================================================================
# QUALITY PROFILES
# =============================================================================


def _profile_to_entity(model: QualityProfileModel) -> QualityProfile:
    return QualityProfile(
        id=model.id,
        name=model.name,
        ordered_items=[
            ProfileItem(quality_id=int(item["quality_id"]), enabled=bool(item["enabled"]))
            for item in model.items
        ],
        cutoff_quality_id=model.cutoff_quality_id,
        upgrade_allowed=model.upgrade_allowed,
        min_format_score=model.min_format_score,
        cutoff_format_score=model.cutoff_format_score,
        format_scores={int(k): int(v) for k, v in (model.format_scores or {}).items()},
    )


def _profile_columns(profile: QualityProfile) -> dict[str, Any]:
    return {
        "name": profile.name,
        "items": [
            {"quality_id": item.quality_id, "enabled": item.enabled}
            for item in profile.ordered_items
        ],
        "cutoff_quality_id": profile.cutoff_quality_id,
        "upgrade_allowed": profile.upgrade_allowed,
        "min_format_score": profile.min_format_score,
        "cutoff_format_score": profile.cutoff_format_score,
        "format_scores": {str(k): v for k, v in profile.format_scores.items()},
    }


class QualityProfileRepository(IQualityProfileRepository):
    """SQLAlchemy implementation of QualityProfile repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, profile: QualityProfile) -> QualityProfile:
        model = QualityProfileModel(**_profile_columns(profile))
        self.session.add(model)
        await self.session.flush()
        profile.id = model.id
        return profile

    async def update(self, profile: QualityProfile) -> None:
        if profile.id is None:
            raise ValidationError("Cannot update a quality profile without id")
        result = await self.session.execute(
            update(QualityProfileModel)
            .where(QualityProfileModel.id == profile.id)
            .values(**_profile_columns(profile))
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("QualityProfile", profile.id)

    async def get_by_id(self, profile_id: int) -> QualityProfile | None:
        model = await self.session.get(QualityProfileModel, profile_id)
        return _profile_to_entity(model) if model else None

    async def get_by_name(self, name: str) -> QualityProfile | None:
        stmt = select(QualityProfileModel).where(QualityProfileModel.name == name)
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _profile_to_entity(model) if model else None

    async def list_all(self) -> list[QualityProfile]:
        stmt = select(QualityProfileModel).order_by(QualityProfileModel.id)
        result = await self.session.execute(stmt)
        return [_profile_to_entity(m) for m in result.scalars().all()]

    async def delete(self, profile_id: int) -> None:
        result = await self.session.execute(
            delete(QualityProfileModel).where(QualityProfileModel.id == profile_id)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("QualityProfile", profile_id)


# =============================================================================
# CUSTOM FORMATS
# =============================================================================


def _format_to_entity(model: CustomFormatModel) -> CustomFormat:
    return CustomFormat(
        id=model.id,
        name=model.name,
        specifications=[
            FormatSpecification(
                name=spec["name"],
                implementation=spec["implementation"],
                negate=bool(spec.get("negate", False)),
                required=bool(spec.get("required", False)),
                fields=dict(spec.get("fields") or {}),
            )
            for spec in model.specifications
        ],
    )


def _format_columns(custom_format: CustomFormat) -> dict[str, Any]:
    return {
        "name": custom_format.name,
        "specifications": [
            {
                "name": spec.name,
                "implementation": spec.implementation,
                "negate": spec.negate,
                "required": spec.required,
                "fields": dict(spec.fields),
            }
            for spec in custom_format.specifications
        ],
    }


class CustomFormatRepository(ICustomFormatRepository):
    """SQLAlchemy implementation of CustomFormat repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, custom_format: CustomFormat) -> CustomFormat:
        model = CustomFormatModel(**_format_columns(custom_format))
        self.session.add(model)
        await self.session.flush()
        custom_format.id = model.id
        return custom_format

    async def update(self, custom_format: CustomFormat) -> None:
        if custom_format.id is None:
            raise ValidationError("Cannot update a custom format without id")
        result = await self.session.execute(
            update(CustomFormatModel)
            .where(CustomFormatModel.id == custom_format.id)
            .values(**_format_columns(custom_format))
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("CustomFormat", custom_format.id)

    async def get_by_id(self, format_id: int) -> CustomFormat | None:
        model = await self.session.get(CustomFormatModel, format_id)
        return _format_to_entity(model) if model else None

    async def list_all(self) -> list[CustomFormat]:
        stmt = select(CustomFormatModel).order_by(CustomFormatModel.id)
        result = await self.session.execute(stmt)
        return [_format_to_entity(m) for m in result.scalars().all()]

    async def delete(self, format_id: int) -> None:
        result = await self.session.execute(
            delete(CustomFormatModel).where(CustomFormatModel.id == format_id)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("CustomFormat", format_id)


# =============================================================================
# DELAY PROFILES
# =============================================================================


def _delay_to_entity(model: DelayProfileModel) -> DelayProfile:
    return DelayProfile(
        id=model.id,
        enable_usenet=model.enable_usenet,
        enable_torrent=model.enable_torrent,
        usenet_delay_minutes=model.usenet_delay_minutes,
        torrent_delay_minutes=model.torrent_delay_minutes,
        bypass_if_highest_quality=model.bypass_if_highest_quality,
        bypass_if_above_custom_format_score=model.bypass_if_above_custom_format_score,
        minimum_custom_format_score=model.minimum_custom_format_score,
        tags=set(model.tags or []),
        order=model.sort_order,
    )


def _delay_columns(profile: DelayProfile) -> dict[str, Any]:
    return {
        "enable_usenet": profile.enable_usenet,
        "enable_torrent": profile.enable_torrent,
        "usenet_delay_minutes": profile.usenet_delay_minutes,
        "torrent_delay_minutes": profile.torrent_delay_minutes,
        "bypass_if_highest_quality": profile.bypass_if_highest_quality,
        "bypass_if_above_custom_format_score": profile.bypass_if_above_custom_format_score,
        "minimum_custom_format_score": profile.minimum_custom_format_score,
        "tags": sorted(profile.tags),
        "sort_order": profile.order,
    }


class DelayProfileRepository(IDelayProfileRepository):
    """SQLAlchemy implementation of DelayProfile repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, profile: DelayProfile) -> DelayProfile:
        model = DelayProfileModel(**_delay_columns(profile))
        self.session.add(model)
        await self.session.flush()
        profile.id = model.id
        return profile

    async def update(self, profile: DelayProfile) -> None:
        if profile.id is None:
            raise ValidationError("Cannot update a delay profile without id")
        result = await self.session.execute(
            update(DelayProfileModel)
            .where(DelayProfileModel.id == profile.id)
            .values(**_delay_columns(profile))
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("DelayProfile", profile.id)

    async def get_by_id(self, profile_id: int) -> DelayProfile | None:
        model = await self.session.get(DelayProfileModel, profile_id)
        return _delay_to_entity(model) if model else None

    async def list_all(self) -> list[DelayProfile]:
        stmt = select(DelayProfileModel).order_by(
            DelayProfileModel.sort_order, DelayProfileModel.id
        )
        result = await self.session.execute(stmt)
        return [_delay_to_entity(m) for m in result.scalars().all()]

    async def delete(self, profile_id: int) -> None:
        result = await self.session.execute(
            delete(DelayProfileModel).where(DelayProfileModel.id == profile_id)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("DelayProfile", profile_id)


# =============================================================================
# RELEASE RESTRICTIONS
# =============================================================================


def _restriction_to_entity(model: ReleaseRestrictionModel) -> ReleaseRestriction:
    return ReleaseRestriction(
        id=model.id,
        name=model.name,
        must_contain=list(model.must_contain or []),
        must_not_contain=list(model.must_not_contain or []),
        tags=set(model.tags or []),
    )


def _restriction_columns(restriction: ReleaseRestriction) -> dict[str, Any]:
    return {
        "name": restriction.name,
        "must_contain": list(restriction.must_contain),
        "must_not_contain": list(restriction.must_not_contain),
        "tags": sorted(restriction.tags),
    }


class ReleaseRestrictionRepository(IReleaseRestrictionRepository):
    """SQLAlchemy implementation of ReleaseRestriction repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, restriction: ReleaseRestriction) -> ReleaseRestriction:
        model = ReleaseRestrictionModel(**_restriction_columns(restriction))
        self.session.add(model)
        await self.session.flush()
        restriction.id = model.id
        return restriction

    async def update(self, restriction: ReleaseRestriction) -> None:
        if restriction.id is None:
            raise ValidationError("Cannot update a release restriction without id")
        result = await self.session.execute(
            update(ReleaseRestrictionModel)
            .where(ReleaseRestrictionModel.id == restriction.id)
            .values(**_restriction_columns(restriction))
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("ReleaseRestriction", restriction.id)

    async def get_by_id(self, restriction_id: int) -> ReleaseRestriction | None:
        model = await self.session.get(ReleaseRestrictionModel, restriction_id)
        return _restriction_to_entity(model) if model else None

    async def get_by_name(self, name: str) -> ReleaseRestriction | None:
        stmt = select(ReleaseRestrictionModel).where(ReleaseRestrictionModel.name == name)
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _restriction_to_entity(model) if model else None

    async def list_all(self) -> list[ReleaseRestriction]:
        stmt = select(ReleaseRestrictionModel).order_by(ReleaseRestrictionModel.id)
        result = await self.session.execute(stmt)
        return [_restriction_to_entity(m) for m in result.scalars().all()]

    async def delete(self, restriction_id: int) -> None:
        result = await self.session.execute(
            delete(ReleaseRestrictionModel).where(ReleaseRestrictionModel.id == restriction_id)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("ReleaseRestriction", restriction_id)


# =============================================================================
# PENDING RELEASES
# =============================================================================


def _pending_to_entity(model: PendingReleaseModel) -> PendingRelease:
    return PendingRelease(
        id=model.id,
        media_id=model.media_id,
        episode_id=model.episode_id,
        candidate=Candidate.from_snapshot(model.candidate),
        added_at=ensure_utc_aware(model.added_at),  # type: ignore[arg-type]
        release_at=ensure_utc_aware(model.release_at),  # type: ignore[arg-type]
        reason=model.reason,
    )


class PendingReleaseRepository(IPendingReleaseRepository):
    """SQLAlchemy implementation of PendingRelease repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, pending: PendingRelease) -> PendingRelease:
        model = PendingReleaseModel(
            target_key=target_key(pending.media_id, pending.episode_id),
            media_id=pending.media_id,
            episode_id=pending.episode_id,
            candidate=pending.candidate.to_snapshot(),
            added_at=pending.added_at,
            release_at=pending.release_at,
            reason=pending.reason,
        )
        self.session.add(model)
        await self.session.flush()
        pending.id = model.id
        return pending

    async def get_for(
        self, media_id: int, episode_id: int | None
    ) -> PendingRelease | None:
        stmt = select(PendingReleaseModel).where(
            PendingReleaseModel.target_key == target_key(media_id, episode_id)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _pending_to_entity(model) if model else None

    async def update_candidate(self, pending_id: int, candidate: Candidate) -> None:
        # release_at deliberately absent from the statement
        result = await self.session.execute(
            update(PendingReleaseModel)
            .where(PendingReleaseModel.id == pending_id)
            .values(candidate=candidate.to_snapshot())
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("PendingRelease", pending_id)

    async def list_all(self) -> list[PendingRelease]:
        stmt = select(PendingReleaseModel).order_by(
            PendingReleaseModel.release_at, PendingReleaseModel.id
        )
        result = await self.session.execute(stmt)
        return [_pending_to_entity(m) for m in result.scalars().all()]

    async def claim(self, pending_id: int) -> bool:
        # Single-row DELETE: of N concurrent claimers exactly one sees rowcount 1
        result = await self.session.execute(
            delete(PendingReleaseModel).where(PendingReleaseModel.id == pending_id)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def delete_for_media(self, media_id: int) -> int:
        result = await self.session.execute(
            delete(PendingReleaseModel).where(PendingReleaseModel.media_id == media_id)
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]


# =============================================================================
# QUEUE
# =============================================================================


def _queue_to_entity(model: QueueItemModel) -> QueueItem:
    try:
        status = QueueStatus(model.status)
    except ValueError as e:
        raise ValidationError(
            f"Invalid queue status '{model.status}' for queue item {model.id}"
        ) from e
    return QueueItem(
        id=model.id,
        media_id=model.media_id,
        episode_id=model.episode_id,
        candidate=Candidate.from_snapshot(model.candidate),
        download_client_id=model.download_client_id,
        download_id=model.download_id,
        status=status,
        progress=model.progress,
        size_remaining=model.size_remaining,
        error_message=model.error_message,
        failure_stage=FailureStage(model.failure_stage) if model.failure_stage else None,
        added_at=ensure_utc_aware(model.added_at),
        updated_at=ensure_utc_aware(model.updated_at),
    )


class QueueRepository(IQueueRepository):
    """SQLAlchemy implementation of the download queue."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, item: QueueItem) -> QueueItem:
        model = QueueItemModel(
            media_id=item.media_id,
            episode_id=item.episode_id,
            candidate=item.candidate.to_snapshot(),
            download_client_id=item.download_client_id,
            download_id=item.download_id,
            status=item.status.value,
            progress=item.progress,
            size_remaining=item.size_remaining,
            error_message=item.error_message,
            failure_stage=item.failure_stage.value if item.failure_stage else None,
            added_at=item.added_at,
            updated_at=item.updated_at or item.added_at,
        )
        self.session.add(model)
        await self.session.flush()
        item.id = model.id
        return item

    async def get_by_id(self, item_id: int) -> QueueItem | None:
        model = await self.session.get(QueueItemModel, item_id)
        return _queue_to_entity(model) if model else None

    async def update(self, item: QueueItem) -> None:
        result = await self.session.execute(
            update(QueueItemModel)
            .where(QueueItemModel.id == item.id)
            .values(
                status=item.status.value,
                progress=item.progress,
                size_remaining=item.size_remaining,
                error_message=item.error_message,
                failure_stage=item.failure_stage.value if item.failure_stage else None,
                updated_at=item.updated_at,
            )
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("QueueItem", item.id)

    async def delete(self, item_id: int) -> None:
        # No rowcount check: deleting an already removed row is a replay no-op
        await self.session.execute(delete(QueueItemModel).where(QueueItemModel.id == item_id))

    async def list_all(self) -> list[QueueItem]:
        result = await self.session.execute(
            select(QueueItemModel).order_by(QueueItemModel.added_at, QueueItemModel.id)
        )
        return [_queue_to_entity(m) for m in result.scalars().all()]

    async def list_by_client(self, client_id: int) -> list[QueueItem]:
        result = await self.session.execute(
            select(QueueItemModel)
            .where(QueueItemModel.download_client_id == client_id)
            .order_by(QueueItemModel.id)
        )
        return [_queue_to_entity(m) for m in result.scalars().all()]

    async def get_active_for(
        self, media_id: int, episode_id: int | None
    ) -> QueueItem | None:
        episode_clause = (
            QueueItemModel.episode_id.is_(None)
            if episode_id is None
            else QueueItemModel.episode_id == episode_id
        )
        stmt = (
            select(QueueItemModel)
            .where(
                QueueItemModel.media_id == media_id,
                episode_clause,
                QueueItemModel.status.not_in(
                    [QueueStatus.COMPLETED.value, QueueStatus.FAILED.value]
                ),
            )
            .order_by(QueueItemModel.id)
            .limit(1)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        return _queue_to_entity(model) if model else None

    async def count_by_status(self) -> dict[QueueStatus, int]:
        result = await self.session.execute(
            select(QueueItemModel.status, func.count()).group_by(QueueItemModel.status)
        )
        counts = {status: 0 for status in QueueStatus}
        for status, count in result.all():
            counts[QueueStatus(status)] = int(count)
        return counts


# =============================================================================
# HISTORY
# =============================================================================


def _history_to_entity(model: HistoryModel) -> HistoryRecord:
    return HistoryRecord(
        id=model.id,
        queue_item_id=model.queue_item_id,
        media_id=model.media_id,
        episode_id=model.episode_id,
        event_type=HistoryEventType(model.event_type),
        source_title=model.source_title,
        quality_id=model.quality_id,
        custom_format_score=model.custom_format_score,
        download_id=model.download_id,
        date=ensure_utc_aware(model.date),  # type: ignore[arg-type]
        data=dict(model.data or {}),
    )


class HistoryRepository(IHistoryRepository):
    """SQLAlchemy implementation of History repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, record: HistoryRecord) -> bool:
        stmt = (
            _dialect_insert(self.session, HistoryModel)
            .values(
                queue_item_id=record.queue_item_id,
                media_id=record.media_id,
                episode_id=record.episode_id,
                event_type=record.event_type.value,
                source_title=record.source_title,
                quality_id=record.quality_id,
                custom_format_score=record.custom_format_score,
                download_id=record.download_id,
                data=record.data,
                date=record.date,
            )
            .on_conflict_do_nothing(index_elements=["queue_item_id", "event_type"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def exists(self, queue_item_id: int, event_type: HistoryEventType) -> bool:
        stmt = select(func.count()).where(
            HistoryModel.queue_item_id == queue_item_id,
            HistoryModel.event_type == event_type.value,
        )
        return bool((await self.session.execute(stmt)).scalar_one())

    async def list_for_media(
        self, media_id: int, episode_id: int | None = None
    ) -> list[HistoryRecord]:
        stmt = select(HistoryModel).where(HistoryModel.media_id == media_id)
        if episode_id is not None:
            stmt = stmt.where(HistoryModel.episode_id == episode_id)
        result = await self.session.execute(stmt.order_by(HistoryModel.id))
        return [_history_to_entity(m) for m in result.scalars().all()]

    async def list_recent(self, limit: int = 100) -> list[HistoryRecord]:
        stmt = select(HistoryModel).order_by(HistoryModel.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [_history_to_entity(m) for m in result.scalars().all()]


# =============================================================================
# BLOCKLIST
# =============================================================================


def _blocklist_to_entity(model: BlocklistModel) -> BlocklistEntry:
    return BlocklistEntry(
        id=model.id,
        fingerprint=model.fingerprint,
        media_id=model.media_id,
        episode_id=model.episode_id,
        source_title=model.source_title,
        indexer_id=model.indexer_id,
        protocol=DownloadProtocol(model.protocol),
        reason=model.reason or "",
        date=ensure_utc_aware(model.date),  # type: ignore[arg-type]
    )


class BlocklistRepository(IBlocklistRepository):
    """SQLAlchemy implementation of Blocklist repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, entry: BlocklistEntry) -> bool:
        stmt = (
            _dialect_insert(self.session, BlocklistModel)
            .values(
                fingerprint=entry.fingerprint,
                media_id=entry.media_id,
                episode_id=entry.episode_id,
                source_title=entry.source_title,
                indexer_id=entry.indexer_id,
                protocol=entry.protocol.value,
                reason=entry.reason,
                date=entry.date,
            )
            .on_conflict_do_nothing(index_elements=["fingerprint"])
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def exists(self, fingerprint: str) -> bool:
        stmt = select(func.count()).where(BlocklistModel.fingerprint == fingerprint)
        return bool((await self.session.execute(stmt)).scalar_one())

    async def list_fingerprints(self) -> set[str]:
        result = await self.session.execute(select(BlocklistModel.fingerprint))
        return set(result.scalars().all())

    async def list_all(self) -> list[BlocklistEntry]:
        result = await self.session.execute(
            select(BlocklistModel).order_by(BlocklistModel.id)
        )
        return [_blocklist_to_entity(m) for m in result.scalars().all()]

    async def delete(self, entry_id: int) -> None:
        result = await self.session.execute(
            delete(BlocklistModel).where(BlocklistModel.id == entry_id)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("BlocklistEntry", entry_id)


# =============================================================================
# INTEGRATION STATUS
# =============================================================================


def _status_to_entity(model: IntegrationStatusModel) -> IntegrationStatus:
    return IntegrationStatus(
        integration_key=model.integration_key,
        initial_failure_at=ensure_utc_aware(model.initial_failure_at),
        most_recent_failure_at=ensure_utc_aware(model.most_recent_failure_at),
        escalation_level=model.escalation_level,
        disabled_till=ensure_utc_aware(model.disabled_till),
        last_error=model.last_error,
    )


class IntegrationStatusRepository(IIntegrationStatusRepository):
    """SQLAlchemy implementation of IntegrationStatus repository."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, integration_key: str) -> IntegrationStatus | None:
        model = await self.session.get(IntegrationStatusModel, integration_key)
        return _status_to_entity(model) if model else None

    async def save(self, status: IntegrationStatus) -> None:
        values = {
            "initial_failure_at": status.initial_failure_at,
            "most_recent_failure_at": status.most_recent_failure_at,
            "escalation_level": status.escalation_level,
            "disabled_till": status.disabled_till,
            "last_error": status.last_error,
        }
        stmt = (
            _dialect_insert(self.session, IntegrationStatusModel)
            .values(integration_key=status.integration_key, **values)
            .on_conflict_do_update(index_elements=["integration_key"], set_=values)
        )
        await self.session.execute(stmt)

    async def list_all(self) -> list[IntegrationStatus]:
        result = await self.session.execute(
            select(IntegrationStatusModel).order_by(IntegrationStatusModel.integration_key)
        )
        return [_status_to_entity(m) for m in result.scalars().all()]
