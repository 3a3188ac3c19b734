"""Text cleaning and tag extraction for raw records."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from giatrends.models import NormalizedRecord, RawRecord
from giatrends.scoring import quality_score, relevance_score, virality_score

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://\S+")
_WHITESPACE_RE = re.compile(r"\s+")
_HASHTAG_RE = re.compile(r"#\w+")
_MENTION_RE = re.compile(r"@\w+")

_MAX_KEYWORDS = 10

_PROFILE_URLS: dict[str, str] = {
    "twitter": "https://twitter.com/{handle}",
    "instagram": "https://instagram.com/{handle}",
}


class TextSignals(BaseModel):
    cleaned_text: str = ""
    hashtags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)


def _unique(items: Iterable[str]) -> list[str]:
    """Deduplicate while keeping first-occurrence order."""
    return list(dict.fromkeys(items))


def clean_text(text: str) -> str:
    """Drop bare URLs, collapse whitespace (newlines included) and trim."""
    if not text:
        return ""
    text = _URL_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_hashtags(text: str) -> list[str]:
    return _unique(tag.lower() for tag in _HASHTAG_RE.findall(text))


def extract_mentions(text: str) -> list[str]:
    return _unique(_MENTION_RE.findall(text))


def extract_keywords(text: str, vocabulary: Sequence[str]) -> list[str]:
    """Return tokens containing a vocabulary term, first occurrence first, at most 10."""
    if not vocabulary:
        return []
    hits = (
        token
        for token in text.lower().split()
        if any(term in token for term in vocabulary)
    )
    return _unique(hits)[:_MAX_KEYWORDS]


def author_url(source: str, handle: str) -> str:
    """Profile URL for platforms with public handles, else empty."""
    template = _PROFILE_URLS.get(source.lower())
    handle = handle.replace("@", "").strip()
    if not template or not handle:
        return ""
    return template.format(handle=handle)


def normalize_text(text: str, vocabulary: Sequence[str]) -> TextSignals:
    """Clean *text* and extract hashtags, keywords and mentions from the result."""
    cleaned = clean_text(text)
    return TextSignals(
        cleaned_text=cleaned,
        hashtags=extract_hashtags(cleaned),
        keywords=extract_keywords(cleaned, vocabulary),
        mentions=extract_mentions(cleaned),
    )


def normalize_record(
    raw: RawRecord,
    vocabulary: Sequence[str],
    markers: Sequence[str],
) -> NormalizedRecord:
    """Build a scored :class:`NormalizedRecord` from a raw record."""
    signals = normalize_text(raw.text, vocabulary)
    return NormalizedRecord(
        source_id=raw.source_id,
        source=raw.source,
        author=raw.author,
        author_handle=raw.author_handle,
        author_url=author_url(raw.source, raw.author_handle),
        cleaned_text=signals.cleaned_text,
        hashtags=signals.hashtags,
        keywords=signals.keywords,
        mentions=signals.mentions,
        media_urls=list(raw.media_urls),
        posted_at=raw.posted_at,
        metrics=raw.metrics,
        virality_score=virality_score(raw.metrics),
        relevance_score=relevance_score(
            signals.cleaned_text, signals.hashtags, signals.keywords, markers
        ),
        quality_score=quality_score(raw, signals.cleaned_text),
    )


def normalize_batch(
    raws: Iterable[RawRecord],
    vocabulary: Sequence[str],
    markers: Sequence[str],
) -> list[NormalizedRecord]:
    """Normalize every record; a record that fails is logged and skipped."""
    normalized: list[NormalizedRecord] = []
    skipped = 0
    for raw in raws:
        try:
            normalized.append(normalize_record(raw, vocabulary, markers))
        except (ValidationError, ValueError, TypeError):
            skipped += 1
            logger.warning("Skipping record %s: normalization failed", raw.source_id, exc_info=True)
    logger.info("Normalized %d records (skipped %d)", len(normalized), skipped)
    return normalized


def parse_raw_records(rows: Iterable[dict[str, Any]]) -> tuple[list[RawRecord], int]:
    """Validate ingestion rows into :class:`RawRecord` values.

    Malformed rows (missing text or timestamp, bad counters) are logged and
    skipped. Returns the parsed records and the number skipped.
    """
    records: list[RawRecord] = []
    skipped = 0
    for index, row in enumerate(rows):
        try:
            records.append(RawRecord.model_validate(row))
        except ValidationError as exc:
            skipped += 1
            ident = row.get("source_id", f"#{index}") if isinstance(row, dict) else f"#{index}"
            logger.warning(
                "Skipping malformed record %s: %d validation error(s)",
                ident,
                exc.error_count(),
            )
    return records, skipped
