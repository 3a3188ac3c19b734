"""LLM-backed trend insights, with a deterministic fallback when generation fails."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from typing import Any, Protocol

from openai import OpenAI, OpenAIError

from giatrends.models import (
    Cluster,
    InsightRequest,
    InsightResult,
    PendingInsight,
    ReadyInsight,
)
from giatrends.store import StoreError, TrendStore

logger = logging.getLogger(__name__)

SAMPLE_POSTS = 5
SAMPLE_CHARS = 200

# ── System prompt used for every insight call ──────────────────────────────
_SYSTEM_PROMPT = (
    "You are a fashion trend analyst. Generate concise, engaging trend insights "
    "for a fashion blog. Your insights should be 1-2 sentences, highlighting what "
    "makes this trend notable and why it's gaining traction. Be specific, mention "
    "key elements, and sound authoritative but approachable."
)

_USER_TEMPLATE = """\
Generate a trend insight for this fashion trend cluster:

Common Hashtags: {hashtags}
Common Keywords: {keywords}
Trend Score: {trend_score}/100
Growth: {growth}%

Sample Posts:
{posts}

Provide:
1. A catchy trend title (max 6 words)
2. A brief insight (1-2 sentences explaining the trend)

Format as JSON:
{{"title": "trend title here", "insight": "trend insight here"}}"""

_FENCE_RE = re.compile(r"```(?:json)?\s*|```")


class InsightGenerationError(Exception):
    """Raised when the generator cannot produce a usable insight."""


class InsightGenerator(Protocol):
    def generate(self, request: InsightRequest) -> InsightResult: ...


def build_insight_request(cluster: Cluster, sample_texts: list[str]) -> InsightRequest:
    return InsightRequest(
        cluster_id=cluster.id,
        common_hashtags=list(cluster.common_hashtags),
        common_keywords=list(cluster.common_keywords),
        trend_score=cluster.trend_score,
        growth_percentage=cluster.growth_percentage,
        sample_texts=[text[:SAMPLE_CHARS] for text in sample_texts[:SAMPLE_POSTS]],
    )


def fallback_insight(cluster: Cluster) -> str:
    """Template insight built only from the cluster's tags and growth."""
    hashtags = ", ".join(cluster.common_hashtags[:3])
    if cluster.growth_percentage > 0:
        growth = f"up {cluster.growth_percentage}% this week"
    else:
        growth = "trending now"
    return (
        f"This trend featuring {hashtags} is {growth}. "
        "Fashion enthusiasts are embracing this style across social media."
    )


class OpenAIInsightGenerator:
    """Generates a title and insight via OpenAI chat completions."""

    def __init__(self, api_key: str, model: str) -> None:
        self._model = model
        self._client: Any = None

        if not api_key:
            logger.warning("LLM_API_KEY not set; insights will use fallback text.")
            return
        self._client = OpenAI(api_key=api_key)

    # ── public ──────────────────────────────────────────────────────────

    def generate(self, request: InsightRequest) -> InsightResult:
        posts = "\n".join(f"- {text}" for text in request.sample_texts)
        user_msg = _USER_TEMPLATE.format(
            hashtags=", ".join(request.common_hashtags),
            keywords=", ".join(request.common_keywords),
            trend_score=request.trend_score,
            growth=request.growth_percentage,
            posts=posts,
        )
        raw = self._chat(_SYSTEM_PROMPT, user_msg)
        return self._parse(raw)

    # ── private ─────────────────────────────────────────────────────────

    def _chat(self, system: str, user: str) -> str:
        if self._client is None:
            raise InsightGenerationError("No LLM client configured")
        try:
            resp = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=0.7,
                max_tokens=200,
            )
        except OpenAIError as exc:
            raise InsightGenerationError(f"LLM request failed: {exc}") from exc
        return resp.choices[0].message.content or ""

    @staticmethod
    def _parse(raw: str) -> InsightResult:
        """Read ``{"title", "insight"}`` JSON, tolerating markdown code fences."""
        cleaned = _FENCE_RE.sub("", raw).strip()
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise InsightGenerationError(f"LLM response is not JSON: {raw[:100]!r}") from exc
        if not isinstance(data, dict) or not str(data.get("insight") or "").strip():
            raise InsightGenerationError("LLM response has no insight")
        return InsightResult(
            title=str(data.get("title") or "").strip(),
            insight=str(data["insight"]).strip(),
        )


def generate_pending_insights(store: TrendStore, generator: InsightGenerator) -> int:
    """Fill in insights for every cluster still pending; return how many became ready.

    When generation fails the cluster stays pending (so the next run retries)
    but gets the fallback text, so it is never shown blank.
    """
    clusters = store.pending_insight_clusters()
    logger.info("Generating insights for %d clusters", len(clusters))
    ready = 0

    for cluster in clusters:
        try:
            samples = store.top_member_texts(cluster.id, limit=SAMPLE_POSTS)
            request = build_insight_request(cluster, samples)
        except (StoreError, sqlite3.Error):
            logger.exception("Failed to load samples for cluster %d", cluster.id)
            continue

        try:
            result = generator.generate(request)
        except InsightGenerationError as exc:
            logger.error("Insight generation failed for cluster %d: %s", cluster.id, exc)
            _store_fallback(store, cluster)
            continue
        except Exception:
            logger.exception("Insight generator crashed for cluster %d", cluster.id)
            _store_fallback(store, cluster)
            continue

        try:
            store.set_insight(
                cluster.id, ReadyInsight(text=result.insight), title=result.title or None
            )
        except (StoreError, sqlite3.Error):
            logger.exception("Failed to store insight for cluster %d", cluster.id)
            continue
        ready += 1
        logger.info("Generated insight for cluster %d", cluster.id)

    return ready


def _store_fallback(store: TrendStore, cluster: Cluster) -> None:
    """Keep *cluster* pending but give it the template insight."""
    try:
        store.set_insight(cluster.id, PendingInsight(fallback=fallback_insight(cluster)))
    except (StoreError, sqlite3.Error):
        logger.exception("Failed to store fallback insight for cluster %d", cluster.id)
