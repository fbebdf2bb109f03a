from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import Field

from schemas.base import SchemaBase
from schemas.common import Tone
from schemas.trend import TrendAnalysisResult


LengthAction = Literal[
    "within_tolerance",
    "supplemented",
    "supplemented_and_truncated",
    "supplement_failed",
    "over_length_kept",
    "summarized",
    "summarize_failed",
]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LengthReport(SchemaBase):
    """What the length enforcer did to one piece of text."""

    target: int
    lower: int
    upper: int
    length_before: int
    length_after: int
    action: LengthAction
    notes: str = ""

    @property
    def within_tolerance(self) -> bool:
        return self.lower <= self.length_after <= self.upper


class Article(SchemaBase):
    """
    Assembled article, terminal output of Step 4.

    word_count is the canonical measured character count (markdown stripped).
    """

    id: str
    title: str
    content: str
    excerpt: str = ""
    keywords: list[str] = Field(default_factory=list)
    category: str = ""
    status: Literal["draft", "scheduled", "published", "failed"] = "draft"
    tone: Optional[Tone] = None
    word_count: int = 0
    trend_data: Optional[TrendAnalysisResult] = None
    length_report: Optional[LengthReport] = None
    generated_at: datetime = Field(default_factory=_utc_now)
    created_at: datetime = Field(default_factory=_utc_now)
