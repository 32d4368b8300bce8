"""Tests for candidate ranking."""

from datetime import timedelta

import pytest

from conftest import BLURAY_1080P, HDTV_720P, T0, WEBDL_1080P, make_candidate, make_profile

from grabarr.domain.entities import (
    Candidate,
    ParsedRelease,
    RawRelease,
    outranks,
    rank_candidates,
    select_best,
)
from grabarr.domain.value_objects import DownloadProtocol


@pytest.fixture
def profile():
    return make_profile([BLURAY_1080P, WEBDL_1080P])


class TestSelectBest:
    def test_quality_rank_wins_over_score(self, profile) -> None:
        bluray = make_candidate("A.Bluray-1080p", BLURAY_1080P, custom_format_score=0)
        webdl = make_candidate("B.WEBDL-1080p", WEBDL_1080P, custom_format_score=500)
        assert select_best([webdl, bluray], profile) is bluray

    def test_score_breaks_quality_tie(self, profile) -> None:
        low = make_candidate("A", WEBDL_1080P, custom_format_score=10)
        high = make_candidate("B", WEBDL_1080P, custom_format_score=20)
        assert select_best([low, high], profile) is high

    def test_freshness_breaks_score_tie(self, profile) -> None:
        old = make_candidate("A", WEBDL_1080P, published_at=T0)
        new = make_candidate("B", WEBDL_1080P, published_at=T0 + timedelta(hours=1))
        assert select_best([old, new], profile) is new

    def test_missing_date_is_oldest(self, profile) -> None:
        undated = make_candidate("A", WEBDL_1080P)
        dated = make_candidate("B", WEBDL_1080P, published_at=T0)
        assert select_best([undated, dated], profile) is dated

    def test_indexer_priority_breaks_remaining_tie(self, profile) -> None:
        slow = make_candidate("A", WEBDL_1080P, indexer_priority=50)
        fast = make_candidate("B", WEBDL_1080P, indexer_priority=10)
        assert select_best([slow, fast], profile) is fast

    def test_title_makes_order_deterministic(self, profile) -> None:
        b = make_candidate("B", WEBDL_1080P)
        a = make_candidate("A", WEBDL_1080P)
        assert [c.title for c in rank_candidates([b, a], profile)] == ["A", "B"]

    def test_empty_input(self, profile) -> None:
        assert select_best([], profile) is None

    def test_rejected_quality_is_never_compared(self, profile) -> None:
        with pytest.raises(ValueError):
            select_best([make_candidate("A", HDTV_720P)], profile)


class TestOutranks:
    def test_strictly_better_only(self, profile) -> None:
        a = make_candidate("A", WEBDL_1080P, custom_format_score=10)
        same = make_candidate("A", WEBDL_1080P, custom_format_score=10)
        better = make_candidate("B", BLURAY_1080P)
        assert outranks(better, a, profile)
        assert not outranks(a, better, profile)
        assert not outranks(same, a, profile)


class TestCandidate:
    def test_from_release_merges_parser_output(self) -> None:
        raw = RawRelease(
            title="Show.S01E01.WEBDL-1080p-GRP",
            indexer_id=3,
            protocol=DownloadProtocol.USENET,
            size=1024,
            indexer_priority=5,
            indexer_flags=("freeleech",),
        )
        parsed = ParsedRelease(quality_id=WEBDL_1080P, languages=("english",), release_group="GRP")
        candidate = Candidate.from_release(raw, parsed)
        assert candidate.detected_quality_id == WEBDL_1080P
        assert candidate.release_group == "GRP"
        assert candidate.indexer_priority == 5
        assert candidate.indexer_flags == ("freeleech",)

    def test_snapshot_keeps_derived_fields(self) -> None:
        candidate = make_candidate(published_at=T0).with_formats([3, 1], 42)
        restored = Candidate.from_snapshot(candidate.to_snapshot())
        assert restored == candidate
        assert restored.matched_format_ids == (1, 3)
