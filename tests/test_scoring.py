"""Unit tests for the per-record scores."""

from datetime import UTC, datetime

from giatrends.models import EngagementMetrics, RawRecord
from giatrends.scoring import quality_score, relevance_score, virality_score

_MARKERS = ("fashion", "style", "ootd")


def _raw(
    text: str = "",
    likes: int = 0,
    comments: int = 0,
    shares: int = 0,
    views: int = 0,
    media: int = 0,
) -> RawRecord:
    return RawRecord(
        source_id="1",
        source="ELLE",
        text=text,
        posted_at=datetime(2026, 10, 19, tzinfo=UTC),
        media_urls=[f"https://cdn.example/{i}.jpg" for i in range(media)],
        metrics=EngagementMetrics(likes=likes, comments=comments, shares=shares, views=views),
    )


class TestVirality:
    def test_zero_engagement(self) -> None:
        assert virality_score(EngagementMetrics()) == 0

    def test_views_fallback_maxes_out(self) -> None:
        # no views → views = engagement * 10 → rate 10% → clamped
        assert virality_score(EngagementMetrics(likes=1000)) == 100

    def test_rate_against_views(self) -> None:
        # 1 / 1024 * 100 * 1000 = 97.65625
        assert virality_score(EngagementMetrics(likes=1, views=1024)) == 97

    def test_comment_and_share_weights(self) -> None:
        # engagement = 0 + 2*1 + 3*1 = 5; 5 / 65536 * 100 * 1000 = 7.63
        metrics = EngagementMetrics(comments=1, shares=1, views=65536)
        assert virality_score(metrics) == 7


class TestRelevance:
    def test_base(self) -> None:
        assert relevance_score("", [], [], _MARKERS) == 50

    def test_marked_hashtags_and_keywords(self) -> None:
        hashtags = ["#fashionweek", "#ootdinspo", "#cats"]
        assert relevance_score("short", hashtags, ["denim"], _MARKERS) == 75

    def test_long_text_bonus(self) -> None:
        assert relevance_score("x" * 51, [], [], _MARKERS) == 60
        assert relevance_score("x" * 50, [], [], _MARKERS) == 50

    def test_clamped(self) -> None:
        keywords = [f"denim{i}" for i in range(10)]
        hashtags = ["#fashion", "#style", "#ootd"]
        assert relevance_score("x" * 80, hashtags, keywords, _MARKERS) == 100


class TestQuality:
    def test_base(self) -> None:
        assert quality_score(_raw(), "") == 50

    def test_all_bonuses(self) -> None:
        raw = _raw(likes=101, comments=11, media=1)
        assert quality_score(raw, "x" * 40) == 100

    def test_text_length_bounds_are_exclusive(self) -> None:
        assert quality_score(_raw(), "x" * 30) == 50
        assert quality_score(_raw(), "x" * 31) == 65
        assert quality_score(_raw(), "x" * 499) == 65
        assert quality_score(_raw(), "x" * 500) == 50

    def test_engagement_thresholds(self) -> None:
        assert quality_score(_raw(likes=100, comments=10), "") == 50
        assert quality_score(_raw(likes=101), "") == 60
        assert quality_score(_raw(comments=11), "") == 55


class TestBounds:
    def test_scores_are_ints_in_range(self) -> None:
        cases = [
            _raw(),
            _raw(text="", likes=10**9, comments=10**9, shares=10**9, views=1),
            _raw(text="#fashion " * 40, likes=5, views=10**12, media=3),
        ]
        for raw in cases:
            for value in (
                virality_score(raw.metrics),
                relevance_score(raw.text, ["#fashion"] * 20, ["x"] * 10, _MARKERS),
                quality_score(raw, raw.text),
            ):
                assert isinstance(value, int)
                assert 0 <= value <= 100
