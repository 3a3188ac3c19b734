"""SQLite-backed store for normalized records and trend clusters."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path

from giatrends.models import (
    Cluster,
    ClusterDraft,
    EngagementMetrics,
    Insight,
    NormalizedRecord,
    PendingInsight,
    ReadyInsight,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS clusters (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    fingerprint       TEXT NOT NULL UNIQUE,
    title             TEXT NOT NULL,
    insight_state     TEXT NOT NULL DEFAULT 'pending',
    insight_text      TEXT,
    trend_score       INTEGER NOT NULL DEFAULT 0,
    growth_percentage INTEGER NOT NULL DEFAULT 0,
    common_hashtags   TEXT NOT NULL DEFAULT '[]',
    common_keywords   TEXT NOT NULL DEFAULT '[]',
    first_seen_at     TEXT NOT NULL,
    last_seen_at      TEXT NOT NULL,
    is_active         INTEGER NOT NULL DEFAULT 1,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS records (
    source_id       TEXT PRIMARY KEY,
    source          TEXT NOT NULL,
    author          TEXT NOT NULL DEFAULT '',
    author_handle   TEXT NOT NULL DEFAULT '',
    author_url      TEXT NOT NULL DEFAULT '',
    cleaned_text    TEXT NOT NULL,
    hashtags        TEXT NOT NULL DEFAULT '[]',
    keywords        TEXT NOT NULL DEFAULT '[]',
    mentions        TEXT NOT NULL DEFAULT '[]',
    media_urls      TEXT NOT NULL DEFAULT '[]',
    posted_at       TEXT NOT NULL,
    metrics         TEXT NOT NULL DEFAULT '{}',
    virality_score  INTEGER NOT NULL DEFAULT 0,
    relevance_score INTEGER NOT NULL DEFAULT 0,
    quality_score   INTEGER NOT NULL DEFAULT 0,
    cluster_id      INTEGER REFERENCES clusters(id),
    inserted_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_records_cluster ON records (cluster_id, posted_at);
"""

_MERGE_SQL = """
INSERT INTO clusters
    (fingerprint, title, insight_state, trend_score, growth_percentage,
     common_hashtags, common_keywords, first_seen_at, last_seen_at,
     is_active, created_at, updated_at)
VALUES (?, ?, 'pending', ?, 0, ?, ?, ?, ?, 1, ?, ?)
ON CONFLICT (fingerprint) DO UPDATE SET
    common_hashtags = excluded.common_hashtags,
    common_keywords = excluded.common_keywords,
    trend_score     = excluded.trend_score,
    last_seen_at    = MAX(clusters.last_seen_at, excluded.last_seen_at),
    is_active       = 1,
    updated_at      = excluded.updated_at
"""

# SQLite's default host-parameter limit is 999.
_IN_CHUNK = 500

# Fixed pool of locks; fingerprints share a lock by hash.
_LOCK_STRIPES = 64


class StoreError(Exception):
    """Raised when the store cannot complete a logical operation."""


def _iso(value: datetime) -> str:
    """Render as fixed-width UTC ISO text so string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _now() -> str:
    return _iso(datetime.now(UTC))


class TrendStore:
    """Records and clusters backed by SQLite.

    Cluster merges are serialized per fingerprint inside the process and rely
    on ``ON CONFLICT (fingerprint)`` across processes, so concurrent writers
    always converge on one row per fingerprint.
    """

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]
        self._init_db()

    # ── records ─────────────────────────────────────────────────────────

    def seen_ids(self) -> set[str]:
        """Return the set of source IDs already stored."""
        con = self._connect()
        try:
            cur = con.execute("SELECT source_id FROM records")
            return {row[0] for row in cur.fetchall()}
        finally:
            con.close()

    def insert_records(self, records: Sequence[NormalizedRecord]) -> int:
        """Insert normalized records; return count of newly inserted rows."""
        now = _now()
        rows = [
            (
                r.source_id,
                r.source,
                r.author,
                r.author_handle,
                r.author_url,
                r.cleaned_text,
                json.dumps(r.hashtags),
                json.dumps(r.keywords),
                json.dumps(r.mentions),
                json.dumps(r.media_urls),
                _iso(r.posted_at),
                json.dumps(r.metrics.model_dump()),
                r.virality_score,
                r.relevance_score,
                r.quality_score,
                now,
            )
            for r in records
        ]
        con = self._connect()
        try:
            before = con.total_changes
            with con:
                con.executemany(
                    """
                    INSERT OR IGNORE INTO records
                        (source_id, source, author, author_handle, author_url,
                         cleaned_text, hashtags, keywords, mentions,
                         media_urls, posted_at, metrics, virality_score,
                         relevance_score, quality_score, inserted_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
            return con.total_changes - before
        finally:
            con.close()

    def get_record(self, source_id: str) -> NormalizedRecord | None:
        con = self._connect()
        try:
            row = con.execute(
                "SELECT * FROM records WHERE source_id = ?", (source_id,)
            ).fetchone()
        finally:
            con.close()
        return self._row_to_record(row) if row else None

    def unassigned_records(self, limit: int | None = None) -> list[NormalizedRecord]:
        """Records not yet in any cluster, newest first."""
        sql = "SELECT * FROM records WHERE cluster_id IS NULL ORDER BY posted_at DESC"
        params: tuple[int, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        con = self._connect()
        try:
            rows = con.execute(sql, params).fetchall()
        finally:
            con.close()
        return [self._row_to_record(row) for row in rows]

    def assign_records(self, cluster_id: int, source_ids: Iterable[str]) -> list[str]:
        """Attach records to *cluster_id* and return the IDs actually assigned.

        Records that are already in a cluster, or not stored at all, are left alone.
        """
        ids = list(source_ids)
        free: set[str] = set()
        con = self._connect()
        try:
            with con:
                con.execute("BEGIN IMMEDIATE")
                for start in range(0, len(ids), _IN_CHUNK):
                    chunk = ids[start : start + _IN_CHUNK]
                    marks = ",".join("?" * len(chunk))
                    rows = con.execute(
                        f"SELECT source_id FROM records "
                        f"WHERE cluster_id IS NULL AND source_id IN ({marks})",
                        chunk,
                    ).fetchall()
                    free.update(row[0] for row in rows)
                    con.execute(
                        f"UPDATE records SET cluster_id = ? "
                        f"WHERE cluster_id IS NULL AND source_id IN ({marks})",
                        (cluster_id, *chunk),
                    )
        finally:
            con.close()
        assigned = [source_id for source_id in dict.fromkeys(ids) if source_id in free]
        if len(assigned) < len(ids):
            logger.debug(
                "Cluster %d: %d of %d records were already assigned or missing",
                cluster_id,
                len(ids) - len(assigned),
                len(ids),
            )
        return assigned

    def member_timestamps(self, cluster_id: int, limit: int | None = None) -> list[datetime]:
        """Posting times of a cluster's members, most recent first."""
        sql = "SELECT posted_at FROM records WHERE cluster_id = ? ORDER BY posted_at DESC"
        params: tuple[int, ...] = (cluster_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (cluster_id, limit)
        con = self._connect()
        try:
            rows = con.execute(sql, params).fetchall()
        finally:
            con.close()
        return [_parse(row[0]) for row in rows]

    def top_member_texts(self, cluster_id: int, limit: int = 5) -> list[str]:
        """Cleaned texts of the highest-virality members."""
        con = self._connect()
        try:
            rows = con.execute(
                """
                SELECT cleaned_text FROM records
                WHERE cluster_id = ?
                ORDER BY virality_score DESC, posted_at DESC
                LIMIT ?
                """,
                (cluster_id, limit),
            ).fetchall()
        finally:
            con.close()
        return [row[0] for row in rows]

    # ── clusters ────────────────────────────────────────────────────────

    def merge_cluster(self, draft: ClusterDraft) -> Cluster:
        """Atomically create the cluster for ``draft.fingerprint`` or merge into it.

        New clusters start with zero growth and a pending insight. Existing
        clusters get fresh tags and trend score, are re-activated, and their
        ``last_seen_at`` only ever moves forward.
        """
        now = _now()
        with self._fingerprint_lock(draft.fingerprint):
            con = self._connect()
            try:
                with con:
                    existed = con.execute(
                        "SELECT 1 FROM clusters WHERE fingerprint = ?",
                        (draft.fingerprint,),
                    ).fetchone()
                    con.execute(
                        _MERGE_SQL,
                        (
                            draft.fingerprint,
                            draft.title,
                            draft.trend_score,
                            json.dumps(draft.common_hashtags),
                            json.dumps(draft.common_keywords),
                            _iso(draft.first_seen_at),
                            _iso(draft.last_seen_at),
                            now,
                            now,
                        ),
                    )
                    row = con.execute(
                        "SELECT * FROM clusters WHERE fingerprint = ?",
                        (draft.fingerprint,),
                    ).fetchone()
            finally:
                con.close()

        if row is None:
            raise StoreError(f"Cluster row missing after merge: {draft.fingerprint}")
        cluster = self._row_to_cluster(row)
        logger.debug(
            "%s cluster %d (%s)",
            "Updated" if existed else "Created",
            cluster.id,
            draft.fingerprint,
        )
        return cluster

    def get_cluster(self, fingerprint: str) -> Cluster | None:
        con = self._connect()
        try:
            row = con.execute(
                "SELECT * FROM clusters WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
        finally:
            con.close()
        return self._row_to_cluster(row) if row else None

    def all_clusters(self) -> list[Cluster]:
        return self._select_clusters("SELECT * FROM clusters ORDER BY trend_score DESC, id")

    def active_clusters(self) -> list[Cluster]:
        return self._select_clusters(
            "SELECT * FROM clusters WHERE is_active = 1 ORDER BY trend_score DESC, id"
        )

    def pending_insight_clusters(self) -> list[Cluster]:
        return self._select_clusters(
            "SELECT * FROM clusters WHERE insight_state = 'pending' ORDER BY trend_score DESC, id"
        )

    def set_growth(self, cluster_id: int, growth_percentage: int) -> None:
        self._update_cluster(
            cluster_id,
            "growth_percentage = ?",
            (growth_percentage,),
        )

    def set_insight(self, cluster_id: int, insight: Insight, title: str | None = None) -> None:
        """Store *insight* (and optionally a new title) verbatim."""
        text = insight.text if isinstance(insight, ReadyInsight) else insight.fallback
        if title:
            self._update_cluster(
                cluster_id,
                "insight_state = ?, insight_text = ?, title = ?",
                (insight.state, text, title),
            )
        else:
            self._update_cluster(
                cluster_id,
                "insight_state = ?, insight_text = ?",
                (insight.state, text),
            )

    def deactivate_stale(self, older_than: datetime) -> int:
        """Mark active clusters whose ``last_seen_at`` precedes *older_than* inactive."""
        con = self._connect()
        try:
            with con:
                cur = con.execute(
                    """
                    UPDATE clusters SET is_active = 0, updated_at = ?
                    WHERE is_active = 1 AND last_seen_at < ?
                    """,
                    (_now(), _iso(older_than)),
                )
            return cur.rowcount
        finally:
            con.close()

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self._db_path), timeout=30.0)
        con.row_factory = sqlite3.Row
        return con

    def _init_db(self) -> None:
        con = self._connect()
        try:
            con.executescript(_SCHEMA)
        finally:
            con.close()

    def _fingerprint_lock(self, fingerprint: str) -> threading.Lock:
        return self._locks[hash(fingerprint) % _LOCK_STRIPES]

    def _select_clusters(self, sql: str) -> list[Cluster]:
        con = self._connect()
        try:
            rows = con.execute(sql).fetchall()
        finally:
            con.close()
        return [self._row_to_cluster(row) for row in rows]

    def _update_cluster(self, cluster_id: int, assignments: str, params: tuple) -> None:
        con = self._connect()
        try:
            with con:
                cur = con.execute(
                    f"UPDATE clusters SET {assignments}, updated_at = ? WHERE id = ?",
                    (*params, _now(), cluster_id),
                )
        finally:
            con.close()
        if cur.rowcount == 0:
            raise StoreError(f"No cluster with id {cluster_id}")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> NormalizedRecord:
        return NormalizedRecord(
            source_id=row["source_id"],
            source=row["source"],
            author=row["author"],
            author_handle=row["author_handle"],
            author_url=row["author_url"],
            cleaned_text=row["cleaned_text"],
            hashtags=json.loads(row["hashtags"]),
            keywords=json.loads(row["keywords"]),
            mentions=json.loads(row["mentions"]),
            media_urls=json.loads(row["media_urls"]),
            posted_at=_parse(row["posted_at"]),
            metrics=EngagementMetrics(**json.loads(row["metrics"])),
            virality_score=row["virality_score"],
            relevance_score=row["relevance_score"],
            quality_score=row["quality_score"],
            cluster_id=row["cluster_id"],
        )

    @staticmethod
    def _row_to_cluster(row: sqlite3.Row) -> Cluster:
        insight: Insight
        if row["insight_state"] == "ready":
            insight = ReadyInsight(text=row["insight_text"] or "")
        else:
            insight = PendingInsight(fallback=row["insight_text"])
        return Cluster(
            id=row["id"],
            fingerprint=row["fingerprint"],
            title=row["title"],
            insight=insight,
            trend_score=row["trend_score"],
            growth_percentage=row["growth_percentage"],
            common_hashtags=json.loads(row["common_hashtags"]),
            common_keywords=json.loads(row["common_keywords"]),
            first_seen_at=_parse(row["first_seen_at"]),
            last_seen_at=_parse(row["last_seen_at"]),
            is_active=bool(row["is_active"]),
        )
