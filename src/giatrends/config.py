"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]

DB_PATH: Path = Path(
    os.getenv("GIATRENDS_DB_PATH", str(PROJECT_ROOT / "var" / "giatrends.sqlite3"))
)
VOCABULARY_PATH: Path = Path(
    os.getenv("GIATRENDS_VOCABULARY", str(PROJECT_ROOT / "config" / "vocabulary.yml"))
)

# ── LLM ────────────────────────────────────────────────────────────────────
LLM_API_KEY: str = os.getenv("LLM_API_KEY", "")
LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")

# ── Clustering ─────────────────────────────────────────────────────────────
MIN_CLUSTER_SIZE: int = int(os.getenv("GIATRENDS_MIN_CLUSTER_SIZE", "3"))
CLUSTER_BATCH_LIMIT: int = int(os.getenv("GIATRENDS_CLUSTER_BATCH_LIMIT", "1000"))
GROWTH_SAMPLE_LIMIT: int = int(os.getenv("GIATRENDS_GROWTH_SAMPLE", "100"))
STALE_AFTER_DAYS: int = int(os.getenv("GIATRENDS_STALE_AFTER_DAYS", "7"))

# Fashion vocabulary used when no vocabulary file is present.
DEFAULT_KEYWORDS: tuple[str, ...] = (
    "fashion", "style", "outfit", "ootd", "streetwear", "luxury", "designer",
    "trend", "vintage", "sustainable", "minimalist", "maximalist", "aesthetic",
    "lookbook", "wardrobe", "accessories", "jewelry", "shoes", "sneakers",
    "dress", "suit", "blazer", "denim", "leather", "silk", "cotton",
    "runway", "couture", "collection", "capsule", "thrift",
)

# Hashtags containing one of these count towards relevance.
DEFAULT_RELEVANCE_MARKERS: tuple[str, ...] = ("fashion", "style", "ootd")
