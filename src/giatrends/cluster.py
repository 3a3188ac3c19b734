"""Group normalized records into trend clusters keyed by a tag fingerprint."""

from __future__ import annotations

import hashlib
import logging
import math
import sqlite3
from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence

from giatrends import config
from giatrends.models import Cluster, ClusterDraft, NormalizedRecord
from giatrends.scoring import clamp_score
from giatrends.store import StoreError, TrendStore

logger = logging.getLogger(__name__)

_FINGERPRINT_TAGS = 3
_COMMON_TAG_LIMIT = 5
_COMMON_TAG_RATIO = 0.3
_TITLE_TAGS = 2
_DEFAULT_TITLE = "Fashion Trend"

# Trend score blend
_W_VIRALITY = 0.4
_W_RELEVANCE = 0.4
_W_VOLUME = 0.2
_VOLUME_PER_RECORD = 2
_VOLUME_CAP = 20


def fingerprint(hashtags: Iterable[str], keywords: Iterable[str]) -> str:
    """Stable cluster key from the first three sorted hashtags and keywords.

    Records without any tags all share ``md5("")``.
    """
    top_hashtags = sorted(hashtags)[:_FINGERPRINT_TAGS]
    top_keywords = sorted(keywords)[:_FINGERPRINT_TAGS]
    combined = "_".join([*top_hashtags, *top_keywords])
    return hashlib.md5(combined.encode("utf-8")).hexdigest()


def group_by_fingerprint(
    records: Iterable[NormalizedRecord],
) -> dict[str, list[NormalizedRecord]]:
    groups: dict[str, list[NormalizedRecord]] = defaultdict(list)
    for record in records:
        groups[fingerprint(record.hashtags, record.keywords)].append(record)
    return dict(groups)


def common_tags(
    tag_lists: Sequence[Sequence[str]],
    limit: int = _COMMON_TAG_LIMIT,
    ratio: float = _COMMON_TAG_RATIO,
) -> list[str]:
    """Tags present in at least ``ceil(ratio * members)`` members, most frequent first.

    Each member counts once per distinct tag. Ties keep first-seen order.
    """
    if not tag_lists:
        return []
    counts: Counter[str] = Counter()
    for tags in tag_lists:
        counts.update(list(dict.fromkeys(tags)))
    threshold = math.ceil(len(tag_lists) * ratio)
    return [tag for tag, n in counts.most_common() if n >= threshold][:limit]


def cluster_trend_score(records: Sequence[NormalizedRecord]) -> int:
    if not records:
        return 0
    n = len(records)
    avg_virality = sum(r.virality_score for r in records) / n
    avg_relevance = sum(r.relevance_score for r in records) / n
    volume = min(_VOLUME_CAP, n * _VOLUME_PER_RECORD)
    score = avg_virality * _W_VIRALITY + avg_relevance * _W_RELEVANCE + volume * _W_VOLUME
    return clamp_score(math.floor(score))


def _humanize(tag: str) -> str:
    text = tag.lstrip("#@").replace("_", " ")
    return text[:1].upper() + text[1:]


def cluster_title(hashtags: Sequence[str], keywords: Sequence[str]) -> str:
    """e.g. ``["#street_style"], ["denim"]`` → ``"Street style & Denim"``."""
    elements = [*hashtags[:_TITLE_TAGS], *keywords[:_TITLE_TAGS]]
    titled = [_humanize(el) for el in elements]
    titled = [t for t in titled if t]
    return " & ".join(titled) if titled else _DEFAULT_TITLE


def summarize_group(key: str, records: Sequence[NormalizedRecord]) -> ClusterDraft:
    """Compute representative tags, trend score and time span for one group."""
    hashtags = common_tags([r.hashtags for r in records])
    keywords = common_tags([r.keywords for r in records])
    return ClusterDraft(
        fingerprint=key,
        title=cluster_title(hashtags, keywords),
        trend_score=cluster_trend_score(records),
        common_hashtags=hashtags,
        common_keywords=keywords,
        first_seen_at=min(r.posted_at for r in records),
        last_seen_at=max(r.posted_at for r in records),
        source_ids=[r.source_id for r in records],
    )


def upsert_clusters(
    records: Sequence[NormalizedRecord],
    store: TrendStore,
    min_cluster_size: int = config.MIN_CLUSTER_SIZE,
) -> list[Cluster]:
    """Merge every large-enough fingerprint group into its persistent cluster.

    Groups under *min_cluster_size* are left unassigned. A group whose merge
    fails is logged and skipped; the next run retries it.
    """
    groups = group_by_fingerprint(r for r in records if r.cluster_id is None)
    clusters: list[Cluster] = []
    small = 0

    for key, members in groups.items():
        if len(members) < min_cluster_size:
            small += 1
            continue

        try:
            draft = summarize_group(key, members)
            cluster = store.merge_cluster(draft)
            assigned = store.assign_records(cluster.id, draft.source_ids)
        except (StoreError, sqlite3.Error):
            logger.exception("Failed to upsert cluster %s (%d records)", key, len(members))
            continue

        assigned_ids = set(assigned)
        for member in members:
            if member.source_id in assigned_ids:
                member.cluster_id = cluster.id
        clusters.append(cluster)
        logger.info(
            "Cluster %d [%s] merged %d records (assigned %d)",
            cluster.id,
            cluster.title,
            len(members),
            len(assigned),
        )

    logger.info(
        "Clustered %d records: %d groups, %d clusters touched, %d below size %d",
        len(records),
        len(groups),
        len(clusters),
        small,
        min_cluster_size,
    )
    return clusters


def cluster_unassigned(
    store: TrendStore,
    min_cluster_size: int = config.MIN_CLUSTER_SIZE,
    limit: int | None = config.CLUSTER_BATCH_LIMIT,
) -> list[Cluster]:
    """Re-group every stored record that has no cluster yet.

    Sub-threshold groups from earlier batches stay in the store unassigned,
    so they can reach the size threshold as later batches arrive.
    """
    pending = store.unassigned_records(limit=limit)
    logger.info("Clustering %d unassigned records", len(pending))
    return upsert_clusters(pending, store, min_cluster_size=min_cluster_size)
