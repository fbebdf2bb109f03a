"""Test doubles shared by the test modules (no network, no API keys)."""

from __future__ import annotations

import re
from typing import Any, Callable, Optional

from agents.base import CompletionConstraints
from schemas.trend import CompetitorAnalysis, CompetitorArticle, SeoData, TrendAnalysisResult


def jp_text(n: int, seed: str = "あいうえおかきくけこ") -> str:
    """Exactly n characters of markdown-free text."""
    return (seed * (n // len(seed) + 1))[:n]


class ScriptedProvider:
    """
    CompletionProvider double.

    Replies come from `responder(prompt)` when given, otherwise from the
    `replies` queue, otherwise `default`. A reply that is an exception is raised.
    """

    def __init__(
        self,
        replies: Optional[list[Any]] = None,
        *,
        default: Any = "",
        responder: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.replies = list(replies or [])
        self.default = default
        self.responder = responder
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        prompt: str,
        constraints: Optional[CompletionConstraints] = None,
        *,
        system: Optional[str] = None,
    ) -> str:
        self.calls.append({"prompt": prompt, "constraints": constraints, "system": system})
        if self.responder is not None:
            reply = self.responder(prompt)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            reply = self.default
        if isinstance(reply, BaseException):
            raise reply
        return reply


_TARGET_RE = re.compile(r"【目標文字数】\s*\n\s*(\d+)文字")


def section_target(prompt: str) -> Optional[int]:
    m = _TARGET_RE.search(prompt)
    return int(m.group(1)) if m else None


def make_trend(keyword: str = "エスプレッソマシン", **overrides: Any) -> TrendAnalysisResult:
    data: dict[str, Any] = {
        "keyword": keyword,
        "trend_score": 72,
        "search_volume": 18000,
        "competition": "medium",
        "related_keywords": [f"{keyword} 選び方", f"{keyword} 比較", f"{keyword} おすすめ", "カフェ", "抽出"],
        "hot_topics": [f"{keyword} 最新"],
        "seo_data": SeoData(difficulty=55, opportunity=45, suggestions=[]),
        "competitor_analysis": CompetitorAnalysis(
            top_articles=[
                CompetitorArticle(
                    title=f"{keyword}について詳しく解説",
                    url="https://example.com/a",
                    domain="example.com",
                    headings=[f"{keyword}とは", f"{keyword}の特徴"],
                )
            ],
            average_length=3500,
            common_topics=["基本", "応用"],
        ),
    }
    data.update(overrides)
    return TrendAnalysisResult(**data)


class FakeTrendAnalyzer:
    def __init__(self, result: Optional[TrendAnalysisResult] = None, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    def analyze(self, keyword: str, region: str, timeframe: str) -> TrendAnalysisResult:
        self.calls.append((keyword, region, timeframe))
        if self.error is not None:
            raise self.error
        return self.result or make_trend(keyword)


PIPELINE_TITLE_REPLY = (
    '[{"title": "espresso machinesの選び方ガイド", "reason": "選び方の検索意図に合う"},'
    ' {"title": "自宅カフェを始めよう", "reason": "ライフスタイル訴求"}]'
)

PIPELINE_OUTLINE_REPLY = """
見出し0 (Lead): リード文
説明: 導入
推定文字数: 300

見出し1 (H2): エスプレッソマシンの選び方
説明: 選ぶポイント
推定文字数: 500

見出し2 (H2): お手入れのコツ
説明: 長持ちさせる方法
推定文字数: 500

見出し3 (H2): おすすめの豆
説明: 豆の選び方
推定文字数: 500
"""

BODY_SEED = "抽出したてのエスプレッソは香り豊かです。"


def pipeline_responder(prompt: str) -> str:
    """Routes each prompt to a reply by what the prompt asks for. Section bodies hit their target exactly."""
    if "【今回執筆するセクションの見出し】" in prompt:
        return jp_text(section_target(prompt) or 300, BODY_SEED)
    if "記事アウトライン生成タスク" in prompt:
        return PIPELINE_OUTLINE_REPLY
    if "タイトル案" in prompt:
        return PIPELINE_TITLE_REPLY
    return ""
