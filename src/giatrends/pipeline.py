"""Pipeline orchestration: parse → dedupe → normalize → store → cluster → growth → insights."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from giatrends import config
from giatrends.cluster import cluster_unassigned
from giatrends.dedupe import dedupe
from giatrends.growth import refresh_growth
from giatrends.insight import OpenAIInsightGenerator, generate_pending_insights
from giatrends.models import Cluster
from giatrends.normalize import normalize_batch, parse_raw_records
from giatrends.store import TrendStore
from giatrends.vocabulary import Settings, load_settings

logger = logging.getLogger(__name__)


class BatchResult(BaseModel):
    received: int = 0
    malformed: int = 0
    duplicates: int = 0
    normalized: int = 0
    stored: int = 0
    clusters: list[Cluster] = Field(default_factory=list)


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def load_rows(input_path: Path) -> list[dict[str, Any]]:
    """Read a JSON array of raw records (or ``{"records": [...]}``)."""
    data = json.loads(input_path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ValueError(f"{input_path} does not contain a list of records")
    return data


def ingest_batch(
    rows: list[dict[str, Any]],
    store: TrendStore,
    settings: Settings,
) -> BatchResult:
    """Normalize, score, store and cluster one batch of raw rows.

    Memory use grows linearly with the batch; callers should keep batches to
    roughly a thousand records.
    """
    raws, malformed = parse_raw_records(rows)
    fresh = dedupe(raws, store)
    normalized = normalize_batch(fresh, settings.keywords, settings.relevance_markers)
    stored = store.insert_records(normalized)
    logger.info("Stored %d new records", stored)

    clusters = cluster_unassigned(store, min_cluster_size=settings.min_cluster_size)

    return BatchResult(
        received=len(rows),
        malformed=malformed,
        duplicates=len(raws) - len(fresh),
        normalized=len(normalized),
        stored=stored,
        clusters=clusters,
    )


def run_growth(store: TrendStore, now: datetime | None = None) -> dict[int, int]:
    return refresh_growth(store, now=now, sample_limit=config.GROWTH_SAMPLE_LIMIT)


def run_insights(store: TrendStore) -> int:
    generator = OpenAIInsightGenerator(api_key=config.LLM_API_KEY, model=config.LLM_MODEL)
    return generate_pending_insights(store, generator)


def run_cleanup(store: TrendStore, days: int = config.STALE_AFTER_DAYS) -> int:
    cutoff = datetime.now(UTC) - timedelta(days=days)
    deactivated = store.deactivate_stale(cutoff)
    logger.info("Marked %d clusters inactive (not seen for %d days)", deactivated, days)
    return deactivated


def run_pipeline(
    input_path: Path,
    db_path: Path | None = None,
    vocabulary_path: Path | None = None,
    skip_insights: bool = False,
) -> BatchResult:
    """Execute the full pipeline for one input file."""
    setup_logging()
    logger.info("=== giatrends pipeline start [%s] ===", input_path)

    settings = load_settings(vocabulary_path)
    store = TrendStore(db_path=db_path or config.DB_PATH)

    rows = load_rows(input_path)
    if not rows:
        logger.warning("No records in %s; nothing to do.", input_path)
        return BatchResult()

    result = ingest_batch(rows, store, settings)
    run_growth(store)

    if skip_insights:
        logger.info("Skipping insight generation.")
    else:
        ready = run_insights(store)
        logger.info("Generated %d insights", ready)

    logger.info(
        "=== giatrends pipeline done: %d received, %d malformed, %d duplicates, "
        "%d clusters touched ===",
        result.received,
        result.malformed,
        result.duplicates,
        len(result.clusters),
    )
    return result
