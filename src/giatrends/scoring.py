"""Per-record virality, relevance and quality scores.

All three are integer heuristics clamped to ``[0, 100]``. Cluster ranking and
trend scores are built on them, so the arithmetic must stay exact.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from giatrends.models import EngagementMetrics, RawRecord

SCORE_MIN = 0
SCORE_MAX = 100

# ── Weights ────────────────────────────────────────────────────────────────
_W_COMMENT = 2
_W_SHARE = 3
_VIEWS_FALLBACK_FACTOR = 10
_RATE_SCALE = 1000

_BASE_SCORE = 50

_RELEVANCE_PER_MARKED_HASHTAG = 10
_RELEVANCE_PER_KEYWORD = 5
_RELEVANCE_LONG_TEXT_BONUS = 10
_RELEVANCE_LONG_TEXT = 50

_QUALITY_MEDIA_BONUS = 20
_QUALITY_TEXT_BONUS = 15
_QUALITY_TEXT_RANGE = (30, 500)  # exclusive on both ends
_QUALITY_LIKES_BONUS = 10
_QUALITY_LIKES_OVER = 100
_QUALITY_COMMENTS_BONUS = 5
_QUALITY_COMMENTS_OVER = 10


def clamp_score(value: float) -> int:
    return int(max(SCORE_MIN, min(SCORE_MAX, value)))


def engagement(metrics: EngagementMetrics) -> int:
    return metrics.likes + _W_COMMENT * metrics.comments + _W_SHARE * metrics.shares


def virality_score(metrics: EngagementMetrics) -> int:
    """Engagement rate against views, scaled so ~0.1% already registers.

    Without a view count, views are estimated as ten times engagement.
    """
    eng = engagement(metrics)
    views = metrics.views if metrics.views > 0 else eng * _VIEWS_FALLBACK_FACTOR
    rate = eng / views * 100 if views > 0 else 0.0
    return clamp_score(math.floor(rate * _RATE_SCALE))


def relevance_score(
    cleaned_text: str,
    hashtags: Sequence[str],
    keywords: Sequence[str],
    markers: Sequence[str],
) -> int:
    score = _BASE_SCORE
    marked = [tag for tag in hashtags if any(m in tag for m in markers)]
    score += len(marked) * _RELEVANCE_PER_MARKED_HASHTAG
    score += len(keywords) * _RELEVANCE_PER_KEYWORD
    if len(cleaned_text) > _RELEVANCE_LONG_TEXT:
        score += _RELEVANCE_LONG_TEXT_BONUS
    return clamp_score(score)


def quality_score(raw: RawRecord, cleaned_text: str) -> int:
    score = _BASE_SCORE
    if raw.media_urls:
        score += _QUALITY_MEDIA_BONUS
    low, high = _QUALITY_TEXT_RANGE
    if low < len(cleaned_text) < high:
        score += _QUALITY_TEXT_BONUS
    if raw.metrics.likes > _QUALITY_LIKES_OVER:
        score += _QUALITY_LIKES_BONUS
    if raw.metrics.comments > _QUALITY_COMMENTS_OVER:
        score += _QUALITY_COMMENTS_BONUS
    return clamp_score(score)
