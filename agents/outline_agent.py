"""Outline agent (Step 3).

The model is asked for a line-oriented outline:

    見出し0 (Lead): リード文
    説明: ...
    推定文字数: 300

    見出し1 (H2): ...
    説明: ...
    推定文字数: 400

      見出し1-1 (H3): ...

OutlineReplyParser reads that grammar; anything it does not recognise is ignored.
A reply with no headings at all is a ParseError and gets the canned fallback outline.
Provider errors are not recovered here.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Optional

from agents.base import BaseAgent, CompletionConstraints, CompletionProvider
from lib.errors import ParseError
from lib.keywords import essential_keywords, ng_keywords, scrub_ng
from schemas.common import TONE_DESCRIPTIONS, TargetLength
from schemas.outline import ArticleOutline, OutlineGenerationRequest, OutlineSection


DEFAULT_SECTION_CHARS = 300
SHORT_ARTICLE_LIMIT = 1500

LENGTH_GUIDES = {
    TargetLength.short: "約1,000〜2,000字（見出し: 3-5個）",
    TargetLength.medium: "約2,000〜4,000字（見出し: 5-7個）",
    TargetLength.long: "約4,000〜6,000字（見出し: 7-10個）",
}

_FULLWIDTH = str.maketrans({"（": "(", "）": ")", "：": ":", "　": " "})

_LEAD_RE = re.compile(r"^見出し\s*0\s*\(\s*lead\s*\)\s*:\s*(.+)$", re.IGNORECASE)
_H2_RE = re.compile(r"^見出し\s*\d+\s*\(\s*h2\s*\)\s*:\s*(.+)$", re.IGNORECASE)
_H3_RE = re.compile(r"^見出し\s*[\d\-‐－ー]+\s*\(\s*h3\s*\)\s*:\s*(.+)$", re.IGNORECASE)
_DESC_RE = re.compile(r"^説明\s*:\s*(.*)$")
_COUNT_RE = re.compile(r"^推定文字数\s*:\s*(.*)$")
_HEADING_PREFIX_RE = re.compile(r"^見出し")


@dataclass
class ParsedHeading:
    title: str
    level: int
    is_lead: bool
    description: str = ""
    estimated_word_count: int = DEFAULT_SECTION_CHARS


def _clean_line(line: str) -> str:
    """Normalize full-width punctuation and strip leading markdown decoration."""
    text = (line or "").translate(_FULLWIDTH).strip()
    text = re.sub(r"^(?:[#>*\-+]+\s*)+", "", text)
    return text.replace("**", "").strip()


def _first_int(text: str) -> Optional[int]:
    m = re.search(r"\d+", (text or "").replace(",", ""))
    return int(m.group(0)) if m else None


class OutlineReplyParser:
    """
    Recursive-descent parser over reply lines.

        outline := (section | other)*
        section := heading field*
        field   := DESC | COUNT | other     (up to the next heading)
    """

    def __init__(self, text: str) -> None:
        self.lines = [_clean_line(l) for l in (text or "").replace("\r\n", "\n").split("\n")]
        self.pos = 0

    def parse(self) -> list[ParsedHeading]:
        headings = self._outline()
        if not headings:
            raise ParseError("No outline headings found in reply", raw="\n".join(self.lines))
        return headings

    def _outline(self) -> list[ParsedHeading]:
        out: list[ParsedHeading] = []
        while self.pos < len(self.lines):
            heading = self._heading(self.lines[self.pos])
            self.pos += 1
            if heading is None:
                continue
            self._fields(heading)
            out.append(heading)
        return out

    def _heading(self, line: str) -> Optional[ParsedHeading]:
        m = _LEAD_RE.match(line)
        if m:
            return ParsedHeading(title=m.group(1).strip(), level=2, is_lead=True)
        m = _H2_RE.match(line)
        if m:
            return ParsedHeading(title=m.group(1).strip(), level=2, is_lead=False)
        m = _H3_RE.match(line)
        if m:
            return ParsedHeading(title=m.group(1).strip(), level=3, is_lead=False)
        return None

    def _fields(self, heading: ParsedHeading) -> None:
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if _HEADING_PREFIX_RE.match(line):
                return
            self.pos += 1

            m = _DESC_RE.match(line)
            if m:
                heading.description = m.group(1).strip()
                continue
            m = _COUNT_RE.match(line)
            if m:
                n = _first_int(m.group(1))
                if n is not None:
                    heading.estimated_word_count = n


def parse_outline_reply(text: str) -> list[ParsedHeading]:
    return OutlineReplyParser(text).parse()


def _section(title: str, description: str, chars: int, *, level: int = 2, is_lead: bool = False) -> OutlineSection:
    return OutlineSection(
        id=uuid.uuid4().hex,
        title=title,
        level=level,
        description=description,
        estimated_word_count=chars,
        is_lead=is_lead,
    )


def _fallback_lead() -> OutlineSection:
    return _section("リード文", "記事の導入文", 300, is_lead=True)


def _fallback_body(keyword: str) -> list[OutlineSection]:
    return [
        _section(f"{keyword}とは", "基本的な定義と概要", 400),
        _section(f"{keyword}の特徴", "主な特徴やメリット", 500),
        _section(f"{keyword}の活用方法", "実践的な使い方", 600),
        _section("まとめ", "記事のまとめと次のステップ", 300),
    ]


def fallback_sections(keyword: str, target_length: TargetLength) -> list[OutlineSection]:
    """Canned outline: all five sections for long articles, otherwise the first three."""
    sections = [_fallback_lead()] + _fallback_body(keyword)
    return sections if target_length == TargetLength.long else sections[:3]


def enforce_lead_invariant(sections: list[OutlineSection]) -> list[OutlineSection]:
    """At most one lead, placed first. Orders renumbered 0..n-1."""
    lead: Optional[OutlineSection] = None
    rest: list[OutlineSection] = []
    for s in sections:
        if s.is_lead and lead is None:
            lead = s
        else:
            s.is_lead = False
            rest.append(s)

    ordered = ([lead] if lead else []) + rest
    for i, s in enumerate(ordered):
        s.order = i
    return ordered


def coerce_short_structure(sections: list[OutlineSection], keyword: str) -> list[OutlineSection]:
    """
    Exactly lead + 2 H2 sections. H3s are dropped; missing parts come from the
    fallback structure.
    """
    lead = next((s for s in sections if s.is_lead), None) or _fallback_lead()
    h2s = [s for s in sections if not s.is_lead and s.level <= 2][:2]

    taken = {s.title for s in h2s}
    for candidate in _fallback_body(keyword):
        if len(h2s) >= 2:
            break
        if candidate.title not in taken:
            h2s.append(candidate)

    return enforce_lead_invariant([lead] + h2s)


class OutlineAgent(BaseAgent):
    """Build an ArticleOutline from keywords, trend data and options."""

    name = "outline-generation"

    def __init__(self, provider: CompletionProvider) -> None:
        self.provider = provider

    def run(self, input: OutlineGenerationRequest | dict) -> ArticleOutline:
        req = input if isinstance(input, OutlineGenerationRequest) else OutlineGenerationRequest(**input)
        keyword = req.primary_keyword()

        reply = self.provider.complete(
            self.build_prompt(req),
            CompletionConstraints(temperature=0.7),
            system="You are a professional SEO content writer. Output must be in Japanese.",
        )

        try:
            sections = [
                _section(h.title, h.description, h.estimated_word_count, level=h.level, is_lead=h.is_lead)
                for h in parse_outline_reply(reply)
            ]
        except ParseError as e:
            print(f"⚠️ Outline reply could not be parsed, using fallback outline: {e.message}")
            sections = fallback_sections(keyword, req.target_length)

        sections = self._normalize(sections, req, keyword)

        outline = ArticleOutline(
            id=uuid.uuid4().hex,
            title=self._title(req, keyword),
            keyword=keyword,
            sections=sections,
            trend_data=req.trend_data,
            target_word_count=req.target_word_count,
            keyword_preferences=dict(req.keyword_preferences),
        )
        outline.recompute_estimate()
        return outline

    def _title(self, req: OutlineGenerationRequest, keyword: str) -> str:
        if req.selected_title and req.selected_title.strip():
            return req.selected_title.strip()
        return f"{keyword}完全ガイド：最新情報と実践的な活用法"

    def _normalize(
        self, sections: list[OutlineSection], req: OutlineGenerationRequest, keyword: str
    ) -> list[OutlineSection]:
        sections = enforce_lead_invariant(sections)

        target = req.target_word_count
        if target is not None and target <= SHORT_ARTICLE_LIMIT:
            sections = coerce_short_structure(sections, keyword)

        if target is not None and sections:
            per_section = target // len(sections)
            for s in sections:
                s.estimated_word_count = per_section
            print(f"📊 Redistributed {target} chars over {len(sections)} sections: {per_section} each")

        ng = ng_keywords(req.keyword_preferences)
        if ng:
            for i, s in enumerate(sections):
                s.title = " ".join(scrub_ng(s.title, ng).split()) or f"見出し{i}"
                s.description = scrub_ng(s.description, ng).strip()

        return sections

    def build_prompt(self, req: OutlineGenerationRequest) -> str:
        trend = req.trend_data
        main_keyword = req.keywords[0] if req.keywords else (req.selected_title or "指定テーマ")
        related = ", ".join(req.keywords[1:]) if len(req.keywords) > 1 else "なし"

        target = req.target_word_count
        length_guide = f"合計 {target}文字（厳守）" if target else LENGTH_GUIDES[req.target_length]

        prefs_block = ""
        if req.keyword_preferences:
            lines = [f"- 【必須】絶対に使用する: {kw}" for kw in essential_keywords(req.keyword_preferences)]
            lines += [f"- 【NG】絶対に使用しない: {kw}" for kw in ng_keywords(req.keyword_preferences)]
            prefs_block = (
                "\n## ユーザーによるキーワード指定 (重要)\n"
                + "\n".join(lines)
                + "\n\n上記の指定を厳守してください。特に【NG】ワードは見出しにも説明にも一切含めないでください。\n"
            )

        structure_block = ""
        if target is not None and target <= SHORT_ARTICLE_LIMIT:
            structure_block = (
                "\n**【重要：構成の厳格な指定】**\n"
                "文字数が少ないため、以下の構成を厳守してください:\n"
                "1. リード文: 1つ\n"
                "2. 見出し (H2): ちょうど2つ (3つ以上は禁止、H3も使わない)\n"
                "3. 合計セクション数: 3つ (リード + H2×2)\n"
            )
        elif target is not None:
            structure_block = (
                f"\n**【重要】各見出しの推定文字数の合計が{target}文字になるように配分してください。**\n"
            )

        focus = f"- 重点トピック: {', '.join(req.focus_topics)}\n" if req.focus_topics else ""
        title_block = (
            f'\n## 決定された記事タイトル (重要)\nタイトル: "{req.selected_title}"\n'
            "このタイトルに沿った構成のみを作成してください。\n"
            if req.selected_title
            else ""
        )
        custom_block = f"\n## カスタム指示 (最優先)\n{req.custom_instructions}\n" if req.custom_instructions else ""

        return f"""
# 記事アウトライン生成タスク

以下の情報を基に、SEO最適化された記事のアウトライン（見出し構成）を作成してください。

## キーワード情報
メインキーワード: {main_keyword}
関連キーワード: {related}
{prefs_block}
## トレンドデータ
- 検索ボリューム: {trend.search_volume:,}/月
- SEO難易度: {trend.seo_data.difficulty}/100
- 競合度: {trend.competition}
- 関連キーワード (SEO強化): {", ".join(trend.related_keywords)}
- 話題のトピック: {", ".join(trend.hot_topics)}
- ユーザーの関心: {", ".join(trend.user_interest.rising_queries)}

## 競合分析
- 上位記事の平均文字数: {trend.competitor_analysis.average_length:,}字
- よく扱われるトピック: {", ".join(trend.competitor_analysis.common_topics)}

## 記事要件
- 目標文字数: {length_guide}
{structure_block}- トーン: {TONE_DESCRIPTIONS[req.tone]}
{focus}{title_block}{custom_block}
## 指示
- ユーザーの検索意図に応える、論理的な流れの見出し構成にすること
- 競合記事にない独自の視点を含めること
- 各見出しにキーワードを適切に配置すること

## 出力フォーマット
以下の形式のみで出力してください:

見出し0 (Lead): リード文
説明: 読者の興味を惹きつける導入部分
推定文字数: 300

見出し1 (H2): [見出しテキスト]
説明: [このセクションで扱う内容]
推定文字数: 400

  見出し1-1 (H3): [サブ見出しテキスト]
  説明: [このサブセクションで扱う内容]
  推定文字数: 200
""".strip()
