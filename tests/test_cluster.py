"""Unit tests for fingerprinting, grouping and cluster upserts."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from giatrends.cluster import (
    cluster_title,
    cluster_trend_score,
    cluster_unassigned,
    common_tags,
    fingerprint,
    group_by_fingerprint,
    summarize_group,
    upsert_clusters,
)
from giatrends.models import Cluster, ClusterDraft, NormalizedRecord
from giatrends.normalize import normalize_batch, parse_raw_records
from giatrends.store import StoreError, TrendStore

_T0 = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _make(
    source_id: str,
    hashtags: list[str] | None = None,
    keywords: list[str] | None = None,
    virality: int = 50,
    relevance: int = 50,
    minutes: int = 0,
) -> NormalizedRecord:
    return NormalizedRecord(
        source_id=source_id,
        source="ELLE",
        cleaned_text=f"post {source_id}",
        hashtags=hashtags or [],
        keywords=keywords or [],
        posted_at=_T0 + timedelta(minutes=minutes),
        virality_score=virality,
        relevance_score=relevance,
    )


class TestFingerprint:
    def test_order_independent(self) -> None:
        assert fingerprint(["#b", "#a"], ["y", "x"]) == fingerprint(["#a", "#b"], ["x", "y"])

    def test_sorts_before_taking_three(self) -> None:
        assert fingerprint(["#d", "#c", "#b", "#a"], []) == fingerprint(["#a", "#b", "#c"], [])

    def test_empty_tags_hash_empty_string(self) -> None:
        assert fingerprint([], []) == "d41d8cd98f00b204e9800998ecf8427e"

    def test_distinguishes_axes(self) -> None:
        assert fingerprint(["#denim"], []) != fingerprint(["#denim"], ["silk"])


class TestGrouping:
    def test_groups_by_fingerprint(self) -> None:
        records = [
            _make("1", ["#a", "#b"]),
            _make("2", ["#b", "#a"]),
            _make("3", ["#c"]),
            _make("4"),
            _make("5"),
        ]
        groups = group_by_fingerprint(records)
        sizes = sorted(len(g) for g in groups.values())
        assert sizes == [1, 2, 2]
        assert [r.source_id for r in groups[fingerprint([], [])]] == ["4", "5"]

    def test_empty(self) -> None:
        assert group_by_fingerprint([]) == {}


class TestCommonTags:
    def test_threshold_is_thirty_percent_rounded_up(self) -> None:
        lists = [["a"], ["a"], ["a", "b"], ["b"]] + [[] for _ in range(6)]
        # 10 members → threshold 3
        assert common_tags(lists) == ["a"]

    def test_member_counts_once_per_tag(self) -> None:
        lists = [["a", "a", "a"], [], [], [], []]
        # 5 members → threshold 2; "a" appears in one member only
        assert common_tags(lists) == []

    def test_sorted_by_frequency_and_capped(self) -> None:
        lists = [
            ["a", "b", "c", "d", "e", "f"],
            ["b", "c", "d", "e", "f"],
            ["c", "d", "e", "f"],
        ]
        assert common_tags(lists) == ["c", "d", "e", "f", "b"]

    def test_never_below_threshold(self) -> None:
        lists = [["x", "y"], ["x"], ["z"], ["x", "z"], ["w"], ["x"], ["y"]]
        threshold = 3  # ceil(7 * 0.3)
        for tag in common_tags(lists):
            assert sum(1 for tags in lists if tag in tags) >= threshold

    def test_empty(self) -> None:
        assert common_tags([]) == []


class TestTrendScoreAndTitle:
    def test_trend_score(self) -> None:
        records = [_make(str(i), virality=100, relevance=70) for i in range(4)]
        # 0.4*100 + 0.4*70 + 0.2*8 = 69.6
        assert cluster_trend_score(records) == 69

    def test_volume_bonus_capped(self) -> None:
        records = [_make(str(i), virality=0, relevance=0) for i in range(50)]
        assert cluster_trend_score(records) == 4

    def test_title(self) -> None:
        title = cluster_title(["#street_style", "#ootd", "#extra"], ["denim", "silk", "x"])
        assert title == "Street style & Ootd & Denim & Silk"

    def test_default_title(self) -> None:
        assert cluster_title([], []) == "Fashion Trend"

    def test_naive_timestamp_is_read_as_utc(self) -> None:
        naive = _make("1").model_copy(update={"posted_at": datetime(2026, 10, 19, 12, 0)})
        rebuilt = NormalizedRecord.model_validate(naive.model_dump())
        assert rebuilt.posted_at == _T0
        assert rebuilt.posted_at.tzinfo is not None

    def test_summarize_group_time_span(self) -> None:
        records = [_make("1", ["#a"], minutes=30), _make("2", ["#a"], minutes=-10)]
        draft = summarize_group("key", records)
        assert draft.first_seen_at == _T0 - timedelta(minutes=10)
        assert draft.last_seen_at == _T0 + timedelta(minutes=30)
        assert draft.source_ids == ["1", "2"]


class TestUpsertClusters:
    def test_small_group_is_not_clustered(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")
        records = [_make("1", ["#denim"]), _make("2", ["#denim"])]
        store.insert_records(records)

        assert upsert_clusters(records, store, min_cluster_size=3) == []
        assert store.all_clusters() == []
        assert all(store.get_record(r.source_id).cluster_id is None for r in records)

    def test_creates_and_assigns(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")
        records = [_make(str(i), ["#denim", "#y2k"], ["denim"]) for i in range(3)]
        store.insert_records(records)

        clusters = upsert_clusters(records, store, min_cluster_size=3)

        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.common_hashtags == ["#denim", "#y2k"]
        assert cluster.common_keywords == ["denim"]
        assert cluster.growth_percentage == 0
        assert cluster.insight_pending
        assert cluster.title == "Denim & Y2k & Denim"
        assert all(r.cluster_id == cluster.id for r in records)
        assert store.get_record("0").cluster_id == cluster.id

    def test_merge_keeps_one_cluster_and_advances_last_seen(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")
        first = [_make(str(i), ["#silk"], minutes=60) for i in range(3)]
        older = [_make(f"o{i}", ["#silk"], minutes=-60) for i in range(3)]
        store.insert_records(first + older)

        created = upsert_clusters(first, store)[0]
        merged = upsert_clusters(older, store)[0]

        assert merged.id == created.id
        assert len(store.all_clusters()) == 1
        assert merged.last_seen_at == _T0 + timedelta(minutes=60)
        assert store.get_record("o0").cluster_id == created.id

    def test_assigned_records_are_not_reclustered(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")
        records = [_make(str(i), ["#silk"]) for i in range(3)]
        for record in records:
            record.cluster_id = 99
        assert upsert_clusters(records, store) == []

    def test_failed_group_does_not_abort_batch(self, tmp_path: Path) -> None:
        bad_key = fingerprint(["#bad"], [])

        class FlakyStore(TrendStore):
            def merge_cluster(self, draft: ClusterDraft) -> Cluster:
                if draft.fingerprint == bad_key:
                    raise StoreError("boom")
                return super().merge_cluster(draft)

        store = FlakyStore(tmp_path / "t.sqlite3")
        records = [_make(f"b{i}", ["#bad"]) for i in range(3)]
        records += [_make(f"g{i}", ["#good"]) for i in range(3)]
        store.insert_records(records)

        clusters = upsert_clusters(records, store)

        assert len(clusters) == 1
        assert clusters[0].common_hashtags == ["#good"]
        assert store.get_record("b0").cluster_id is None

    def test_mixed_naive_and_aware_timestamps(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")
        rows = [
            {"source_id": "a0", "source": "ELLE", "text": "#aaa look", "posted_at": "2026-10-19T10:00:00"},
            {"source_id": "a1", "source": "ELLE", "text": "#aaa look", "posted_at": "2026-10-19T11:00:00Z"},
            {"source_id": "a2", "source": "ELLE", "text": "#aaa look", "posted_at": "2026-10-19T12:00:00Z"},
        ]
        rows += [
            {"source_id": f"b{i}", "source": "ELLE", "text": "#bbb look", "posted_at": "2026-10-19T10:00:00Z"}
            for i in range(3)
        ]
        raws, _ = parse_raw_records(rows)
        records = normalize_batch(raws, ["look"], [])
        store.insert_records(records)

        clusters = upsert_clusters(records, store)

        assert len(clusters) == 2
        aaa = next(c for c in clusters if c.common_hashtags == ["#aaa"])
        assert aaa.first_seen_at == datetime(2026, 10, 19, 10, 0, tzinfo=UTC)
        assert aaa.last_seen_at == datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

    def test_records_assigned_elsewhere_keep_their_cluster(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")
        records = [_make(str(i), ["#silk"]) for i in range(3)]
        store.insert_records(records)
        other = store.merge_cluster(
            ClusterDraft(
                fingerprint="other",
                title="Other",
                trend_score=10,
                first_seen_at=_T0,
                last_seen_at=_T0,
            )
        )
        store.assign_records(other.id, ["0"])

        # the in-memory copy of "0" is stale and still looks unassigned
        cluster = upsert_clusters(records, store)[0]

        assert records[0].cluster_id is None
        assert [r.cluster_id for r in records[1:]] == [cluster.id, cluster.id]
        assert store.get_record("0").cluster_id == other.id


class TestClusterUnassigned:
    def test_small_groups_accumulate_across_batches(self, tmp_path: Path) -> None:
        store = TrendStore(tmp_path / "t.sqlite3")

        store.insert_records([_make("1", ["#capsule"]), _make("2", ["#capsule"])])
        assert cluster_unassigned(store, min_cluster_size=3) == []

        store.insert_records([_make("3", ["#capsule"])])
        clusters = cluster_unassigned(store, min_cluster_size=3)

        assert len(clusters) == 1
        assert store.unassigned_records() == []
