from typing import Literal

from pydantic import Field

from schemas.base import SchemaBase
from schemas.common import Competition, KeywordPreference
from schemas.trend import TrendAnalysisResult


class TitleGenerationInput(SchemaBase):
    """
    Input for TitleSuggestionAgent.

    Notes:
    - keyword_preferences: ng keywords are kept out of every candidate,
      essential keywords are requested in the prompt.
    - count: how many candidates the model is asked for (and how many fallbacks are returned).
    """
    trend_data: TrendAnalysisResult
    count: int = Field(5, ge=1, le=20, description="How many title candidates to return")
    keyword_preferences: dict[str, KeywordPreference] = Field(default_factory=dict)


class TitleSuggestion(SchemaBase):
    id: str
    title: str = Field(..., description="The proposed title")
    keyword: str = Field(..., description="Primary keyword the title targets")
    description: str = Field("", description="Why this title works (SEO / click rationale)")

    trend_score: float = 0
    search_volume: int = 0
    competition: Competition = "medium"

    seo_score: float = Field(0, ge=0, le=100, description="Deterministic score (0-100)")
    click_potential: float = Field(0, ge=0, le=100)

    target_audience: str = ""
    content_angle: str = ""
    related_keywords: list[str] = Field(default_factory=list)

    source: Literal["ai", "rule_based"] = "ai"
