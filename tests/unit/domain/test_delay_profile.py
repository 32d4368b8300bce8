"""Tests for delay profile selection and decisions."""

import pytest

from conftest import BLURAY_1080P, WEBDL_1080P, make_candidate, make_profile

from grabarr.domain.entities import (
    DelayOutcome,
    DelayProfile,
    evaluate_delay,
    select_delay_profile,
)
from grabarr.domain.exceptions import ValidationError
from grabarr.domain.value_objects import DownloadProtocol


class TestSelection:
    def test_most_specific_tagged_profile_wins(self) -> None:
        anime = DelayProfile(1, tags={"anime"}, order=5)
        anime_4k = DelayProfile(2, tags={"anime", "4k"}, order=9)
        default = DelayProfile(3, order=1)
        chosen = select_delay_profile([anime, anime_4k, default], {"anime", "4k", "x"})
        assert chosen is anime_4k

    def test_tag_ties_broken_by_order(self) -> None:
        a = DelayProfile(1, tags={"anime"}, order=7)
        b = DelayProfile(2, tags={"kids"}, order=3)
        assert select_delay_profile([a, b], {"anime", "kids"}) is b

    def test_partial_tag_match_is_ignored(self) -> None:
        tagged = DelayProfile(1, tags={"anime", "4k"}, order=1)
        default = DelayProfile(2, order=10)
        assert select_delay_profile([tagged, default], {"anime"}) is default

    def test_lowest_order_untagged_fallback(self) -> None:
        late = DelayProfile(1, order=10)
        early = DelayProfile(2, order=2)
        assert select_delay_profile([late, early], set()) is early

    def test_builtin_zero_delay_when_nothing_configured(self) -> None:
        chosen = select_delay_profile([], {"anything"})
        assert chosen.id is None
        assert chosen.delay_for(DownloadProtocol.TORRENT) == 0

class TestDecision:
    def test_highest_quality_bypasses_delay(self) -> None:
        """Torrent delay 60 min, candidate at the top quality → grabbed now."""
        profile = make_profile([BLURAY_1080P, WEBDL_1080P], cutoff=BLURAY_1080P)
        delay = DelayProfile(1, torrent_delay_minutes=60, bypass_if_highest_quality=True)
        decision = evaluate_delay(delay, make_candidate(quality_id=BLURAY_1080P), profile)
        assert decision.outcome == DelayOutcome.GRAB

    def test_lower_quality_is_deferred(self) -> None:
        profile = make_profile([BLURAY_1080P, WEBDL_1080P], cutoff=BLURAY_1080P)
        delay = DelayProfile(1, torrent_delay_minutes=60, bypass_if_highest_quality=True)
        decision = evaluate_delay(delay, make_candidate(quality_id=WEBDL_1080P), profile)
        assert decision.outcome == DelayOutcome.DEFER
        assert decision.delay_minutes == 60

    def test_score_bypass(self) -> None:
        delay = DelayProfile(
            1,
            usenet_delay_minutes=30,
            bypass_if_above_custom_format_score=True,
            minimum_custom_format_score=100,
        )
        candidate = make_candidate(protocol=DownloadProtocol.USENET, custom_format_score=100)
        assert evaluate_delay(delay, candidate, make_profile()).outcome == DelayOutcome.GRAB

    def test_disabled_protocol_rejects(self) -> None:
        delay = DelayProfile(1, enable_torrent=False)
        decision = evaluate_delay(delay, make_candidate(), make_profile())
        assert decision.outcome == DelayOutcome.REJECT

    def test_zero_delay_grabs(self) -> None:
        assert (
            evaluate_delay(DelayProfile(1), make_candidate(), make_profile()).outcome
            == DelayOutcome.GRAB
        )

    def test_validation(self) -> None:
        with pytest.raises(ValidationError):
            DelayProfile(1, usenet_delay_minutes=-1).validate()
        with pytest.raises(ValidationError):
            DelayProfile(1, enable_usenet=False, enable_torrent=False).validate()
