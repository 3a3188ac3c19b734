"""Deduplication logic: filter out raw records already ingested in prior runs."""

from __future__ import annotations

import logging

from giatrends.models import RawRecord
from giatrends.store import TrendStore

logger = logging.getLogger(__name__)


def dedupe(items: list[RawRecord], store: TrendStore) -> list[RawRecord]:
    """Return only records whose source ID is neither stored nor repeated in *items*."""
    seen = store.seen_ids()
    new_items: list[RawRecord] = []
    for item in items:
        if item.source_id in seen:
            continue
        seen.add(item.source_id)
        new_items.append(item)
    logger.info(
        "Dedupe: %d total → %d new (filtered %d seen)",
        len(items),
        len(new_items),
        len(items) - len(new_items),
    )
    return new_items
