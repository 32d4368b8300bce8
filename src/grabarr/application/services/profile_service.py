"""Profile Service - validated storage of the acquisition configuration.

Quality profiles, custom formats, delay profiles and release restrictions.

Hey future me - EVERYTHING goes through validate() here before it touches the DB.
Runtime evaluation (ranking, matching, delay decisions) assumes valid configuration
and never re-checks it. If you add a save path that skips this service, you break
that assumption!
"""

import logging

from grabarr.domain.entities import (
    CustomFormat,
    DelayProfile,
    QualityProfile,
    ReleaseRestriction,
    get_default_profiles,
)
from grabarr.domain.exceptions import EntityNotFoundException, ValidationError
from grabarr.infrastructure.persistence import (
    CustomFormatRepository,
    Database,
    DelayProfileRepository,
    QualityProfileRepository,
    ReleaseRestrictionRepository,
)

logger = logging.getLogger(__name__)


class ProfileService:
    """CRUD for the acquisition configuration."""

    def __init__(self, database: Database) -> None:
        self._database = database

    # =========================================================================
    # QUALITY PROFILES
    # =========================================================================

    async def save_quality_profile(self, profile: QualityProfile) -> QualityProfile:
        """Validate and insert/update a quality profile.

        Raises:
            ValidationError: If the profile is invalid, its name is taken, or it
                scores a custom format that doesn't exist
        """
        profile.validate()
        async with self._database.session_scope() as session:
            repo = QualityProfileRepository(session)
            existing = await repo.get_by_name(profile.name)
            if existing is not None and existing.id != profile.id:
                raise ValidationError(f"Quality profile name '{profile.name}' already exists")

            known_formats = {f.id for f in await CustomFormatRepository(session).list_all()}
            unknown = set(profile.format_scores) - known_formats
            if unknown:
                raise ValidationError(
                    f"Quality profile '{profile.name}' scores unknown custom formats "
                    f"{sorted(unknown)}"
                )

            if profile.id is None:
                await repo.add(profile)
                logger.info("Created quality profile '%s' (id=%s)", profile.name, profile.id)
            else:
                await repo.update(profile)
                logger.info("Updated quality profile '%s' (id=%s)", profile.name, profile.id)
        return profile

    async def get_quality_profile(self, profile_id: int) -> QualityProfile:
        async with self._database.session_scope() as session:
            profile = await QualityProfileRepository(session).get_by_id(profile_id)
        if profile is None:
            raise EntityNotFoundException("QualityProfile", profile_id)
        return profile

    async def list_quality_profiles(self) -> list[QualityProfile]:
        async with self._database.session_scope() as session:
            return await QualityProfileRepository(session).list_all()

    async def delete_quality_profile(self, profile_id: int) -> None:
        async with self._database.session_scope() as session:
            await QualityProfileRepository(session).delete(profile_id)

    async def ensure_defaults(self) -> int:
        """Seed the built-in quality profiles on an empty table. Returns count created."""
        async with self._database.session_scope() as session:
            repo = QualityProfileRepository(session)
            if await repo.list_all():
                return 0
            defaults = get_default_profiles()
            for profile in defaults:
                profile.validate()
                await repo.add(profile)
        logger.info("Seeded %d default quality profiles", len(defaults))
        return len(defaults)

    # =========================================================================
    # CUSTOM FORMATS
    # =========================================================================

    async def save_custom_format(self, custom_format: CustomFormat) -> CustomFormat:
        """Validate and insert/update a custom format.

        Raises:
            ValidationError: Unknown implementation, invalid regex, size spec
                without bounds, or duplicate name
        """
        custom_format.validate()
        async with self._database.session_scope() as session:
            repo = CustomFormatRepository(session)
            for other in await repo.list_all():
                if other.name == custom_format.name and other.id != custom_format.id:
                    raise ValidationError(
                        f"Custom format name '{custom_format.name}' already exists"
                    )
            if custom_format.id is None:
                await repo.add(custom_format)
            else:
                await repo.update(custom_format)
        logger.info("Saved custom format '%s' (id=%s)", custom_format.name, custom_format.id)
        return custom_format

    async def list_custom_formats(self) -> list[CustomFormat]:
        async with self._database.session_scope() as session:
            return await CustomFormatRepository(session).list_all()

    async def delete_custom_format(self, format_id: int) -> None:
        """Delete a format and drop its score from every quality profile."""
        async with self._database.session_scope() as session:
            await CustomFormatRepository(session).delete(format_id)
            profile_repo = QualityProfileRepository(session)
            for profile in await profile_repo.list_all():
                if format_id in profile.format_scores:
                    del profile.format_scores[format_id]
                    await profile_repo.update(profile)

    # =========================================================================
    # DELAY PROFILES
    # =========================================================================

    async def save_delay_profile(self, profile: DelayProfile) -> DelayProfile:
        profile.validate()
        async with self._database.session_scope() as session:
            repo = DelayProfileRepository(session)
            if profile.id is None:
                await repo.add(profile)
            else:
                await repo.update(profile)
        logger.info("Saved delay profile id=%s (tags=%s)", profile.id, sorted(profile.tags))
        return profile

    async def list_delay_profiles(self) -> list[DelayProfile]:
        async with self._database.session_scope() as session:
            return await DelayProfileRepository(session).list_all()

    async def delete_delay_profile(self, profile_id: int) -> None:
        async with self._database.session_scope() as session:
            await DelayProfileRepository(session).delete(profile_id)

    # =========================================================================
    # RELEASE RESTRICTIONS
    # =========================================================================

    async def save_release_restriction(
        self, restriction: ReleaseRestriction
    ) -> ReleaseRestriction:
        """Validate and insert/update a release restriction.

        Raises:
            ValidationError: Empty name or term, or the name is taken
        """
        restriction.validate()
        async with self._database.session_scope() as session:
            repo = ReleaseRestrictionRepository(session)
            existing = await repo.get_by_name(restriction.name)
            if existing is not None and existing.id != restriction.id:
                raise ValidationError(
                    f"Release restriction name '{restriction.name}' already exists"
                )
            if restriction.id is None:
                await repo.add(restriction)
            else:
                await repo.update(restriction)
        logger.info("Saved release restriction '%s' (id=%s)", restriction.name, restriction.id)
        return restriction

    async def list_release_restrictions(self) -> list[ReleaseRestriction]:
        async with self._database.session_scope() as session:
            return await ReleaseRestrictionRepository(session).list_all()

    async def delete_release_restriction(self, restriction_id: int) -> None:
        async with self._database.session_scope() as session:
            await ReleaseRestrictionRepository(session).delete(restriction_id)
