from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Optional, Protocol

import config
from agents.base import BaseAgent
from schemas.trend import (
    CompetitorAnalysis,
    CompetitorArticle,
    GeographicTrend,
    SeoData,
    TrendAnalysisResult,
    UserInterest,
)


class TrendAnalyzer(Protocol):
    """External trend / competitor data source."""

    def analyze(self, keyword: str, region: str, timeframe: str) -> TrendAnalysisResult:
        ...


_HIGH_COMPETITION = ["AI", "ビジネス", "投資", "保険", "クレジットカード"]
_MEDIUM_COMPETITION = ["健康", "美容", "教育", "テクノロジー"]
_LOW_COMPETITION = ["自伝", "趣味", "ライフスタイル"]

_RELATED_SUFFIXES = ["方法", "効果", "比較", "おすすめ", "最新", "解説", "入門", "実践"]
_RISING_SUFFIXES = ["最新", "トレンド", "比較", "おすすめ", "効果"]
_BREAKOUT_SUFFIXES = ["AI", "自動化", "DX"]

_COMPETITOR_DOMAINS = ["example.com", "blog.example.org", "news.example.net"]

_REGIONS = [
    ("東京", 100),
    ("大阪", 85),
    ("神奈川", 90),
    ("愛知", 75),
    ("福岡", 70),
]


def _stable_int(seed: str, modulo: int) -> int:
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(digest[:12], 16) % modulo


def seo_difficulty(keyword: str) -> int:
    """
    Rule-of-thumb SEO difficulty (0-100).

    Competitive topics push it up, long-tail (3+ words) pulls it down.
    """
    difficulty = 50
    if any(term in keyword for term in _HIGH_COMPETITION):
        difficulty += 30
    elif any(term in keyword for term in _MEDIUM_COMPETITION):
        difficulty += 15
    elif any(term in keyword for term in _LOW_COMPETITION):
        difficulty -= 15

    words = len(keyword.split())
    if words >= 3:
        difficulty -= 10
    elif words == 1:
        difficulty += 20

    return max(0, min(100, difficulty))


def _geo_data(seed: str) -> list[GeographicTrend]:
    out: list[GeographicTrend] = []
    for name, base in _REGIONS:
        value = max(0, min(100, base - _stable_int(f"{seed}|geo|{name}", 30)))
        out.append(GeographicTrend(region=name, value=value, formatted_value=f"{value}%"))
    return out


class HeuristicTrendAnalyzer:
    """
    Deterministic stand-in for a real trend source.

    Same keyword -> same numbers, so runs without network access are reproducible.
    """

    def analyze(self, keyword: str, region: str = "JP", timeframe: str = "today 12-m") -> TrendAnalysisResult:
        kw = (keyword or "").strip()
        seed = f"{kw}|{region}|{timeframe}"

        difficulty = seo_difficulty(kw)
        competition = "high" if difficulty >= 70 else "low" if difficulty < 40 else "medium"
        year = datetime.now(timezone.utc).year

        articles = [
            CompetitorArticle(
                title=f"{kw}について詳しく解説 - {i + 1}",
                url=f"https://{domain}/article-{i + 1}",
                domain=domain,
                word_count=2000 + _stable_int(f"{seed}|wc|{i}", 3000),
                headings=[f"{kw}とは", f"{kw}の特徴", f"{kw}の活用方法", f"{kw}の将来性"],
                meta_description=f"{kw}について専門家が詳しく解説します。",
            )
            for i, domain in enumerate(_COMPETITOR_DOMAINS)
        ]

        return TrendAnalysisResult(
            keyword=kw,
            trend_score=_stable_int(f"{seed}|score", 101),
            search_volume=10000 + _stable_int(f"{seed}|volume", 50000),
            competition=competition,
            related_keywords=[f"{kw} {s}" for s in _RELATED_SUFFIXES],
            hot_topics=[f"{kw} {year}", f"{kw} 最新", f"{kw} トレンド"],
            seo_data=SeoData(
                difficulty=difficulty,
                opportunity=100 - difficulty,
                suggestions=[
                    "キーワード密度を最適化する",
                    "メタディスクリプションを改善する",
                    "内部リンクを強化する",
                ],
            ),
            competitor_analysis=CompetitorAnalysis(
                top_articles=articles,
                average_length=3500,
                common_topics=["基本", "応用", "実践", "効果"],
            ),
            user_interest=UserInterest(
                rising_queries=[f"{kw} {s}" for s in _RISING_SUFFIXES],
                breakout_queries=[f"{kw} {s}" for s in _BREAKOUT_SUFFIXES],
                geographic_data=_geo_data(seed),
            ),
            source="heuristic",
        )


class TrendAgent(BaseAgent):
    """
    Step 1. Ask the injected analyzer; if it is missing or fails, use the heuristic source.
    """

    name = "trend-analysis"

    def __init__(
        self,
        analyzer: Optional[TrendAnalyzer] = None,
        *,
        region: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> None:
        self.analyzer = analyzer
        self.fallback = HeuristicTrendAnalyzer()
        self.region = region or config.TREND_REGION
        self.timeframe = timeframe or config.TREND_TIMEFRAME

    def run(self, input: str) -> TrendAnalysisResult:
        keyword = (input or "").strip()
        if not keyword:
            raise ValueError("Trend analysis needs a non-empty keyword")

        if self.analyzer is not None:
            try:
                return self.analyzer.analyze(keyword, self.region, self.timeframe)
            except Exception as e:
                print(f"⚠️ Trend analyzer failed for '{keyword}', using heuristic data: {e}")

        return self.fallback.analyze(keyword, self.region, self.timeframe)
