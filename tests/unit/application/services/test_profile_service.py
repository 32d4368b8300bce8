"""Tests for profile configuration persistence."""

import pytest

from conftest import BLURAY_1080P, WEBDL_1080P, make_profile

from grabarr.application.services import ProfileService
from grabarr.domain.entities import (
    CustomFormat,
    DelayProfile,
    FormatSpecification,
    ReleaseRestriction,
)
from grabarr.domain.exceptions import EntityNotFoundException, ValidationError


@pytest.fixture
def service(database) -> ProfileService:
    return ProfileService(database)


def x265_format() -> CustomFormat:
    return CustomFormat(
        None,
        "x265",
        [FormatSpecification("HEVC", "release_title", fields={"value": r"x265|hevc"})],
    )


class TestQualityProfiles:
    async def test_round_trip_keeps_item_order(self, service) -> None:
        saved = await service.save_quality_profile(make_profile([WEBDL_1080P, BLURAY_1080P]))
        loaded = await service.get_quality_profile(saved.id)
        assert [i.quality_id for i in loaded.ordered_items] == [WEBDL_1080P, BLURAY_1080P]
        assert loaded.cutoff_quality_id == BLURAY_1080P

    async def test_invalid_cutoff_is_rejected_at_save(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.save_quality_profile(make_profile([WEBDL_1080P], cutoff=BLURAY_1080P))
        assert await service.list_quality_profiles() == []

    async def test_duplicate_name_rejected(self, service) -> None:
        await service.save_quality_profile(make_profile(name="HD"))
        with pytest.raises(ValidationError):
            await service.save_quality_profile(make_profile(name="HD"))

    async def test_unknown_format_score_rejected(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.save_quality_profile(make_profile(format_scores={42: 10}))

    async def test_format_scores_round_trip_with_int_keys(self, service) -> None:
        fmt = await service.save_custom_format(x265_format())
        saved = await service.save_quality_profile(make_profile(format_scores={fmt.id: 100}))
        loaded = await service.get_quality_profile(saved.id)
        assert loaded.format_scores == {fmt.id: 100}

    async def test_missing_profile(self, service) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.get_quality_profile(999)

    async def test_defaults_seeded_once(self, service) -> None:
        created = await service.ensure_defaults()
        assert created > 0
        assert await service.ensure_defaults() == 0
        assert len(await service.list_quality_profiles()) == created


class TestCustomFormats:
    async def test_invalid_regex_rejected(self, service) -> None:
        bad = CustomFormat(
            None, "bad", [FormatSpecification("x", "release_title", fields={"value": "("})]
        )
        with pytest.raises(ValidationError):
            await service.save_custom_format(bad)

    async def test_delete_strips_profile_scores(self, service) -> None:
        fmt = await service.save_custom_format(x265_format())
        profile = await service.save_quality_profile(make_profile(format_scores={fmt.id: 100}))

        await service.delete_custom_format(fmt.id)

        assert await service.list_custom_formats() == []
        assert (await service.get_quality_profile(profile.id)).format_scores == {}

    async def test_specifications_round_trip(self, service) -> None:
        fmt = await service.save_custom_format(x265_format())
        (loaded,) = await service.list_custom_formats()
        assert loaded.id == fmt.id
        assert loaded.specifications == fmt.specifications


class TestDelayProfiles:
    async def test_round_trip(self, service) -> None:
        saved = await service.save_delay_profile(
            DelayProfile(None, torrent_delay_minutes=60, tags={"anime"}, order=3)
        )
        (loaded,) = await service.list_delay_profiles()
        assert loaded.id == saved.id
        assert loaded.tags == {"anime"}
        assert loaded.order == 3
        assert loaded.torrent_delay_minutes == 60

    async def test_negative_delay_rejected(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.save_delay_profile(DelayProfile(None, usenet_delay_minutes=-5))


class TestReleaseRestrictions:
    async def test_round_trip(self, service) -> None:
        saved = await service.save_release_restriction(
            ReleaseRestriction(None, "No cams", must_not_contain=["CAM"], tags={"movies"})
        )

        (loaded,) = await service.list_release_restrictions()
        assert loaded.id == saved.id
        assert loaded.must_not_contain == ["CAM"]
        assert loaded.tags == {"movies"}

    async def test_duplicate_name_rejected(self, service) -> None:
        await service.save_release_restriction(ReleaseRestriction(None, "x", ["1080p"]))
        with pytest.raises(ValidationError, match="already exists"):
            await service.save_release_restriction(ReleaseRestriction(None, "x", ["720p"]))

    async def test_rename_onto_itself_is_allowed(self, service) -> None:
        saved = await service.save_release_restriction(ReleaseRestriction(None, "x", ["1080p"]))
        saved.must_contain = ["2160p"]
        await service.save_release_restriction(saved)

        (loaded,) = await service.list_release_restrictions()
        assert loaded.must_contain == ["2160p"]

    async def test_blank_term_rejected(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.save_release_restriction(ReleaseRestriction(None, "x", ["  "]))
        assert await service.list_release_restrictions() == []

    async def test_delete(self, service) -> None:
        saved = await service.save_release_restriction(ReleaseRestriction(None, "x"))
        await service.delete_release_restriction(saved.id)
        with pytest.raises(EntityNotFoundException):
            await service.delete_release_restriction(saved.id)
