"""Load the domain vocabulary and clustering settings from YAML."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from giatrends import config

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Engine settings passed explicitly into normalization and clustering."""

    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = config.DEFAULT_KEYWORDS
    relevance_markers: tuple[str, ...] = config.DEFAULT_RELEVANCE_MARKERS
    min_cluster_size: int = Field(default=config.MIN_CLUSTER_SIZE, ge=1)


def _load_lines(path: str | Path) -> list[str]:
    """Read a text file and return non-empty, non-comment lines."""
    p = Path(path)
    if not p.exists():
        logger.warning("File not found, skipping: %s", p)
        return []
    lines: list[str] = []
    for raw in p.read_text(encoding="utf-8").splitlines():
        stripped = raw.strip()
        if stripped and not stripped.startswith("#"):
            lines.append(stripped)
    return lines


def _clean_terms(terms: list[Any]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for term in terms:
        text = str(term).strip().lower()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)


def load_settings(path: Path | None = None) -> Settings:
    """Parse ``vocabulary.yml`` into :class:`Settings`.

    Recognised keys:
    - ``keywords``: list of vocabulary terms
    - ``keywords_file``: plain-text file of extra terms (relative to the YAML file)
    - ``relevance_markers``: hashtag markers that boost relevance
    - ``min_cluster_size``: smallest group that becomes a cluster

    A missing file yields the built-in defaults.
    """
    path = path or config.VOCABULARY_PATH
    if not path.exists():
        logger.info("No vocabulary file at %s; using built-in defaults.", path)
        return Settings()

    with open(path, encoding="utf-8") as fh:
        cfg: dict[str, Any] = yaml.safe_load(fh) or {}

    overrides: dict[str, Any] = {}

    terms: list[Any] = list(cfg.get("keywords", []) or [])
    keywords_file: str | None = cfg.get("keywords_file")
    if keywords_file:
        terms.extend(_load_lines(path.resolve().parent / keywords_file))
    if terms:
        overrides["keywords"] = _clean_terms(terms)
    else:
        logger.warning("Vocabulary file %s lists no keywords; using defaults.", path)

    markers = cfg.get("relevance_markers")
    if markers:
        overrides["relevance_markers"] = _clean_terms(list(markers))

    if "min_cluster_size" in cfg:
        overrides["min_cluster_size"] = int(cfg["min_cluster_size"])

    settings = Settings(**overrides)
    logger.debug(
        "Loaded %d keywords, %d markers, min cluster size %d from %s",
        len(settings.keywords),
        len(settings.relevance_markers),
        settings.min_cluster_size,
        path,
    )
    return settings
