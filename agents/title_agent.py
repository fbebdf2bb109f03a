"""Title suggestion agent (Step 2).

Asks the completion provider for title candidates as JSON, drops any candidate
that contains an ng keyword, and scores the rest deterministically.

When the reply cannot be parsed, the provider fails with a generic error, or
no candidate survives the ng filter, templated titles are returned instead.
Rate-limit and auth errors are not recovered here: the caller has to act on them.

Scoring (0-100):
- Keyword presence: primary keyword weighted highest; related keywords add lift.
- Clarity: penalizes titles longer than 32 characters.
- Uniqueness: penalizes similarity vs competitor titles (character bigrams, so
  it works for Japanese text without a tokenizer).
"""

from __future__ import annotations

import uuid
from typing import Iterable

from agents.base import BaseAgent, CompletionConstraints, CompletionProvider
from lib.errors import AuthError, ParseError, ProviderError, RateLimitError
from lib.json_reply import parse_json_reply
from lib.keywords import contains_any, essential_keywords, ng_keywords, scrub_ng
from schemas.title import TitleGenerationInput, TitleSuggestion
from schemas.trend import TrendAnalysisResult


IDEAL_TITLE_CHARS = 32

_CLICK_HOOKS = ["【", "！", "？", "徹底", "完全", "必見", "最新", "おすすめ", "比較", "方法"]


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join((text or "").strip().lower().split())


def char_bigrams(text: str) -> set[str]:
    compact = "".join(normalize_text(text).split())
    if len(compact) < 2:
        return {compact} if compact else set()
    return {compact[i : i + 2] for i in range(len(compact) - 1)}


def bigram_similarity(a: str, b: str) -> float:
    """Jaccard similarity on character bigrams. 0.0 for empty unions."""
    a_grams = char_bigrams(a)
    b_grams = char_bigrams(b)
    union = a_grams | b_grams
    if not union:
        return 0.0
    return len(a_grams & b_grams) / len(union)


def _format_title(title: str) -> str:
    return " ".join((title or "").strip().split())


def _dedupe_titles(titles: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    seen: set[str] = set()
    out: list[tuple[str, str]] = []
    for title, reason in titles:
        key = normalize_text(title)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append((title, reason))
    return out


def score_title(title: str, trend: TrendAnalysisResult) -> float:
    title_norm = normalize_text(title)
    pk_norm = normalize_text(trend.keyword)

    keyword_score = 0.0
    if pk_norm and pk_norm in title_norm:
        keyword_score += 35.0
    elif pk_norm:
        keyword_score += 35.0 * bigram_similarity(pk_norm, title_norm)

    related_lift = 0.0
    for rk in trend.related_keywords:
        rk_norm = normalize_text(rk)
        if rk_norm and rk_norm != pk_norm and rk_norm in title_norm:
            related_lift += 2.5
    keyword_component = min(45.0, keyword_score + min(10.0, related_lift))

    clarity_component = 20.0
    if len(title) > IDEAL_TITLE_CHARS:
        over = len(title) - IDEAL_TITLE_CHARS
        clarity_component = max(0.0, 20.0 - min(20.0, (over / 16.0) * 20.0))

    competitor_titles = [a.title for a in trend.competitor_analysis.top_articles]
    max_sim = max((bigram_similarity(title, t) for t in competitor_titles), default=0.0)
    uniqueness_component = 35.0 * (1.0 - max_sim)

    total = keyword_component + clarity_component + uniqueness_component
    return round(max(0.0, min(100.0, total)), 2)


def click_potential(title: str) -> float:
    score = 60.0
    score += min(30.0, 6.0 * sum(1 for hook in _CLICK_HOOKS if hook in title))
    if any(ch.isdigit() for ch in title):
        score += 10.0
    return min(100.0, score)


def fallback_titles(keyword: str, related: list[str]) -> list[tuple[str, str]]:
    """Templated titles used when the model gives us nothing usable."""
    kw = keyword.strip()
    reason = "競合分析とトレンドに基づく定番の構成で、安定した検索流入が期待できるタイトルです。"
    pairs = [
        (f"【最新】{kw}完全ガイド：基本から活用法まで", reason),
        (f"{kw}とは？初心者にもわかる基礎知識とポイント", reason),
        (f"{kw}の選び方と注意点｜失敗しないためのコツ", reason),
        (f"{kw}を徹底比較！目的別のおすすめと特徴", reason),
        (f"プロが教える{kw}の効果的な活用術", reason),
    ]
    for rk in related:
        pairs.append((f"{rk}のポイント｜{kw}をもっと活かす方法", reason))
    return pairs


class TitleSuggestionAgent(BaseAgent):
    """Generate, filter, and score title candidates for Step 2."""

    name = "title-suggestion"

    def __init__(self, provider: CompletionProvider) -> None:
        self.provider = provider

    def run(self, input: TitleGenerationInput | dict) -> list[TitleSuggestion]:
        inp = input if isinstance(input, TitleGenerationInput) else TitleGenerationInput(**input)
        trend = inp.trend_data
        ng = ng_keywords(inp.keyword_preferences)

        source = "ai"
        try:
            pairs = self._generate_via_ai(inp)
        except (RateLimitError, AuthError):
            raise
        except (ParseError, ProviderError) as e:
            print(f"⚠️ AI title generation failed, using templates: {e}")
            pairs = []

        pairs = [(t, r) for (t, r) in _dedupe_titles(pairs) if not contains_any(t, ng)]

        if not pairs:
            source = "rule_based"
            related = [rk for rk in trend.related_keywords if not contains_any(rk, ng)]
            templated = [(_format_title(scrub_ng(t, ng)), r) for (t, r) in fallback_titles(trend.keyword, related)]
            pairs = [(t, r) for (t, r) in _dedupe_titles(templated) if t]

        suggestions = [self._to_suggestion(title, reason, trend, source) for title, reason in pairs[: inp.count]]
        # sorted() is stable: equal scores keep the model's order.
        return sorted(suggestions, key=lambda s: -s.seo_score)

    def _generate_via_ai(self, inp: TitleGenerationInput) -> list[tuple[str, str]]:
        raw = self.provider.complete(
            self._build_prompt(inp),
            CompletionConstraints(temperature=0.8),
        )
        parsed = parse_json_reply(raw)
        if isinstance(parsed, dict):
            parsed = parsed.get("titles")
        if not isinstance(parsed, list):
            raise ParseError("Title reply is not a JSON array", raw=raw)

        out: list[tuple[str, str]] = []
        for item in parsed:
            if isinstance(item, str):
                title, reason = item, ""
            elif isinstance(item, dict):
                title, reason = str(item.get("title") or ""), str(item.get("reason") or "")
            else:
                continue
            title = _format_title(title)
            if title:
                out.append((title, reason.strip() or "SEOに配慮した魅力的なタイトルです。"))
        return out

    def _build_prompt(self, inp: TitleGenerationInput) -> str:
        trend = inp.trend_data
        ng = ng_keywords(inp.keyword_preferences)
        essential = essential_keywords(inp.keyword_preferences)

        related = [rk for rk in trend.related_keywords if not contains_any(rk, ng)]
        hot = [t for t in trend.hot_topics if not contains_any(t, ng)]

        competitors = []
        for a in trend.competitor_analysis.top_articles:
            line = f"- タイトル: {a.title}"
            if a.headings:
                line += f"\n  (主な見出し: {', '.join(a.headings[:5])})"
            competitors.append(line)
        competitor_block = "\n".join(competitors) if competitors else "（データなし）"

        essential_block = f"\n【必須キーワード（必ずタイトルに含める）】\n{'、'.join(essential)}\n" if essential else ""
        ng_block = f"\n【NGキーワード（絶対に使用しない）】\n{'、'.join(ng)}\n" if ng else ""

        return f"""
以下のキーワードと競合記事のタイトルを参考に、SEOに強く思わずクリックしたくなるブログ記事のタイトル案を{inp.count}件提案してください。

【メインキーワード】
{trend.keyword}

【関連キーワード/トピック】
{"、".join(related)}
{"、".join(hot)}
{essential_block}{ng_block}
【競合記事のタイトルと構成】
{competitor_block}

【重要指示】
- 読者の悩みやニーズに刺さるタイトルにしてください
- 関連キーワードを自然に含めてください
- 競合記事と比べて独自性が感じられる切り口にしてください
- 初心者向け、比較、解決策、リスト形式など、異なる切り口で提案してください
- タイトルは{IDEAL_TITLE_CHARS}文字以内が理想です
- 各タイトルに、そのタイトルの狙いとSEO上の根拠を短く添えてください
- 出力はJSON配列のみ:
[
  {{ "title": "タイトル案1", "reason": "狙いとSEO上の根拠" }}
]
""".strip()

    def _to_suggestion(
        self, title: str, reason: str, trend: TrendAnalysisResult, source: str
    ) -> TitleSuggestion:
        return TitleSuggestion(
            id=uuid.uuid4().hex,
            title=title,
            keyword=trend.keyword,
            description=reason,
            trend_score=trend.trend_score,
            search_volume=trend.search_volume,
            competition=trend.competition,
            seo_score=score_title(title, trend),
            click_potential=click_potential(title),
            target_audience="情報収集層" if source == "ai" else "全般",
            content_angle="解説型" if source == "ai" else "ガイド",
            related_keywords=list(trend.related_keywords[:3]),
            source=source,
        )
