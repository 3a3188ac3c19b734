"""Domain models used across the engine."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class EngagementMetrics(BaseModel):
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    views: int = Field(default=0, ge=0)


class RawRecord(BaseModel):
    """One harvested item, as handed over by the ingestion layer."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    source: str
    text: str
    posted_at: datetime
    media_urls: list[str] = Field(default_factory=list)
    metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    source_url: str = ""
    author: str = ""
    author_handle: str = ""

    @field_validator("posted_at")
    @classmethod
    def posted_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class NormalizedRecord(BaseModel):
    source_id: str  # back-reference to RawRecord.source_id
    source: str
    author: str = ""
    author_handle: str = ""
    author_url: str = ""
    cleaned_text: str
    hashtags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    media_urls: list[str] = Field(default_factory=list)
    posted_at: datetime
    metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    virality_score: int = 0
    relevance_score: int = 0
    quality_score: int = 0
    cluster_id: int | None = None

    @field_validator("posted_at")
    @classmethod
    def posted_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


# ── Insight state ──────────────────────────────────────────────────────────


class PendingInsight(BaseModel):
    """No generated insight yet; ``fallback`` is shown meanwhile."""

    state: Literal["pending"] = "pending"
    fallback: str | None = None

    @property
    def text(self) -> str:
        return self.fallback or ""


class ReadyInsight(BaseModel):
    state: Literal["ready"] = "ready"
    text: str


Insight = Annotated[Union[PendingInsight, ReadyInsight], Field(discriminator="state")]


class Cluster(BaseModel):
    id: int
    fingerprint: str
    title: str
    insight: Insight = Field(default_factory=PendingInsight)
    trend_score: int = 0
    growth_percentage: int = 0
    common_hashtags: list[str] = Field(default_factory=list)
    common_keywords: list[str] = Field(default_factory=list)
    first_seen_at: datetime
    last_seen_at: datetime
    is_active: bool = True

    @property
    def insight_pending(self) -> bool:
        return isinstance(self.insight, PendingInsight)


class ClusterDraft(BaseModel):
    """Aggregates computed for one fingerprint group, ready to be merged."""

    fingerprint: str
    title: str
    trend_score: int
    common_hashtags: list[str] = Field(default_factory=list)
    common_keywords: list[str] = Field(default_factory=list)
    first_seen_at: datetime
    last_seen_at: datetime
    source_ids: list[str] = Field(default_factory=list)


# ── Insight collaborator payloads ─────────────────────────────────────────


class InsightRequest(BaseModel):
    cluster_id: int
    common_hashtags: list[str] = Field(default_factory=list)
    common_keywords: list[str] = Field(default_factory=list)
    trend_score: int = 0
    growth_percentage: int = 0
    sample_texts: list[str] = Field(default_factory=list)


class InsightResult(BaseModel):
    title: str = ""
    insight: str
