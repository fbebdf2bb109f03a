from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal, Optional

from pydantic import Field

from schemas.article import Article
from schemas.base import SchemaBase
from schemas.common import KeywordPreference, Tone
from schemas.outline import ArticleOutline
from schemas.title import TitleSuggestion
from schemas.trend import TrendAnalysisResult


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GenerationPhase(str, Enum):
    idle = "idle"
    analyzing = "analyzing"
    analyzed = "analyzed"
    title_generating = "title_generating"
    titles_ready = "titles_ready"
    outline_generating = "outline_generating"
    outline_ready = "outline_ready"
    section_generating = "section_generating"
    assembled = "assembled"


class StepResult(SchemaBase):
    step: int = Field(..., ge=1, le=4)
    status: Literal["completed", "failed"]
    data: Any = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)


class GenerationState(SchemaBase):
    """
    Everything one generation session owns.

    current_step is what a UI reads to pick the sub-view (1-4).
    is_generating is informational; exclusion is enforced by the session lease.
    """

    session_id: str
    mode: Literal["interactive", "auto"] = "interactive"
    current_step: int = Field(1, ge=1, le=4)
    phase: GenerationPhase = GenerationPhase.idle
    step_results: list[StepResult] = Field(default_factory=list)
    trend_data: Optional[TrendAnalysisResult] = None
    titles: Optional[list[TitleSuggestion]] = None
    outline: Optional[ArticleOutline] = None
    article: Optional[Article] = None
    is_generating: bool = False
    error: Optional[str] = None
    keyword_preferences: dict[str, KeywordPreference] = Field(default_factory=dict)


ProgressCallback = Callable[[str, int], None]


@dataclass
class SectionOptions:
    """
    Options for Step 4.

    on_progress(section_title, percent) is called before and after each section,
    percent in 0..100.
    """

    tone: Tone = Tone.professional
    custom_instructions: Optional[str] = None
    on_progress: Optional[ProgressCallback] = None
