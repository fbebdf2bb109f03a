from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import Field

from schemas.base import FrozenSchemaBase
from schemas.common import Competition


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CompetitorArticle(FrozenSchemaBase):
    title: str
    url: str
    domain: str
    word_count: int = 0
    headings: list[str] = Field(default_factory=list)
    meta_description: str = ""
    publish_date: Optional[datetime] = None


class SeoData(FrozenSchemaBase):
    difficulty: int = Field(0, ge=0, le=100)
    opportunity: int = Field(0, ge=0, le=100)
    suggestions: list[str] = Field(default_factory=list)


class CompetitorAnalysis(FrozenSchemaBase):
    top_articles: list[CompetitorArticle] = Field(default_factory=list)
    average_length: int = 0
    common_topics: list[str] = Field(default_factory=list)


class GeographicTrend(FrozenSchemaBase):
    region: str
    value: int
    formatted_value: str


class UserInterest(FrozenSchemaBase):
    rising_queries: list[str] = Field(default_factory=list)
    breakout_queries: list[str] = Field(default_factory=list)
    geographic_data: list[GeographicTrend] = Field(default_factory=list)


class TrendAnalysisResult(FrozenSchemaBase):
    """
    Output of Step 1. Consumed by the title and outline generators.

    source:
      - collaborator: produced by the injected trend analyzer
      - heuristic: produced by the deterministic fallback source
    """

    keyword: str
    trend_score: float = Field(0, ge=0, le=100)
    search_volume: int = Field(0, ge=0)
    competition: Competition = "medium"
    related_keywords: list[str] = Field(default_factory=list)
    hot_topics: list[str] = Field(default_factory=list)
    seo_data: SeoData = Field(default_factory=SeoData)
    competitor_analysis: CompetitorAnalysis = Field(default_factory=CompetitorAnalysis)
    user_interest: UserInterest = Field(default_factory=UserInterest)
    timestamp: datetime = Field(default_factory=_utc_now)
    source: Literal["collaborator", "heuristic"] = "collaborator"
