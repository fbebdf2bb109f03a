from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from schemas.base import SchemaBase
from schemas.common import KeywordPreference, TargetLength, Tone
from schemas.trend import TrendAnalysisResult


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OutlineSection(SchemaBase):
    """
    One heading of the outline.

    level: 2 = H2 (lead sections are level 2 as well), 3 = H3.
    estimated_word_count: target character count for this section.
    is_lead: the introduction; rendered without a heading and always first.
    """

    id: str
    title: str
    level: int = Field(2, ge=1, le=4)
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    estimated_word_count: int = Field(300, ge=0)
    order: int = 0
    is_generated: bool = False
    is_lead: bool = False
    content: Optional[str] = None


class ArticleOutline(SchemaBase):
    id: str
    title: str
    keyword: str
    sections: list[OutlineSection] = Field(default_factory=list)
    trend_data: Optional[TrendAnalysisResult] = None
    estimated_word_count: int = 0
    target_word_count: Optional[int] = None
    keyword_preferences: dict[str, KeywordPreference] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)

    def ordered_sections(self) -> list[OutlineSection]:
        # sorted() is stable, so equal orders keep list position.
        return sorted(self.sections, key=lambda s: s.order)

    def recompute_estimate(self) -> int:
        self.estimated_word_count = sum(s.estimated_word_count for s in self.sections)
        return self.estimated_word_count

    def validate_structure(self) -> None:
        """
        Raise ValueError unless the outline can be drafted:
          - at least one section
          - at most one lead section, and it comes first in order
        """
        ordered = self.ordered_sections()
        if not ordered:
            raise ValueError("Outline has no sections")

        leads = [s for s in ordered if s.is_lead]
        if len(leads) > 1:
            raise ValueError(f"Outline has {len(leads)} lead sections; at most one is allowed")
        if leads and ordered[0].id != leads[0].id:
            raise ValueError(f"Lead section {leads[0].title!r} must be first in order")


class OutlineOptions(SchemaBase):
    """Caller-facing options for Step 3."""

    target_length: TargetLength = TargetLength.medium
    tone: Tone = Tone.professional
    focus_topics: list[str] = Field(default_factory=list)
    selected_title: Optional[str] = None
    keyword_preferences: Optional[dict[str, KeywordPreference]] = None
    custom_instructions: Optional[str] = None
    target_word_count: Optional[int] = Field(None, ge=1)


class OutlineGenerationRequest(SchemaBase):
    keywords: list[str] = Field(default_factory=list)
    trend_data: TrendAnalysisResult
    target_length: TargetLength = TargetLength.medium
    tone: Tone = Tone.professional
    focus_topics: list[str] = Field(default_factory=list)
    keyword_preferences: dict[str, KeywordPreference] = Field(default_factory=dict)
    selected_title: Optional[str] = None
    custom_instructions: Optional[str] = None
    target_word_count: Optional[int] = Field(None, ge=1)

    def primary_keyword(self) -> str:
        if self.keywords and self.keywords[0].strip():
            return self.keywords[0].strip()
        return (self.selected_title or "").strip() or "記事"
