"""Day-over-day growth of cluster posting volume."""

from __future__ import annotations

import logging
import math
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from giatrends import config
from giatrends.models import as_utc
from giatrends.store import StoreError, TrendStore

logger = logging.getLogger(__name__)

_WINDOW = timedelta(hours=24)


def growth_from_counts(recent: int, previous: int) -> int:
    """Signed percentage change from *previous* to *recent*.

    Not clamped below: a collapse from 10 posts to 1 reads as -90.
    """
    if previous == 0:
        return 100 if recent > 0 else 0
    return math.floor((recent - previous) / previous * 100)


def compute_growth(timestamps: Sequence[datetime], now: datetime | None = None) -> int:
    """Compare the last 24h of posts with the 24h before that."""
    if len(timestamps) < 2:
        return 0
    now = as_utc(now or datetime.now(UTC))
    one_day_ago = now - _WINDOW
    two_days_ago = now - 2 * _WINDOW

    recent = 0
    previous = 0
    for ts in timestamps:
        ts = as_utc(ts)
        if ts > one_day_ago:
            recent += 1
        elif ts > two_days_ago:
            previous += 1
    return growth_from_counts(recent, previous)


def refresh_growth(
    store: TrendStore,
    now: datetime | None = None,
    sample_limit: int | None = config.GROWTH_SAMPLE_LIMIT,
) -> dict[int, int]:
    """Recompute growth for every active cluster; return ``{cluster_id: growth}``.

    Only the *sample_limit* most recent members are read (``None`` reads all).
    A cluster that fails is logged and keeps its previous value.
    """
    now = now or datetime.now(UTC)
    updated: dict[int, int] = {}
    clusters = store.active_clusters()
    for cluster in clusters:
        try:
            timestamps = store.member_timestamps(cluster.id, limit=sample_limit)
            growth = compute_growth(timestamps, now)
            store.set_growth(cluster.id, growth)
        except (StoreError, sqlite3.Error):
            logger.exception("Failed to calculate growth for cluster %d", cluster.id)
            continue
        updated[cluster.id] = growth
    logger.info("Refreshed growth for %d/%d active clusters", len(updated), len(clusters))
    return updated
