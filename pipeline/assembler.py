from __future__ import annotations

import re
import uuid
from typing import Optional

from agents.base import CompletionConstraints, CompletionProvider
from agents.length_enforcer import LengthEnforcer
from lib.errors import ProviderError
from lib.keywords import (
    contains_any,
    dedupe_preserve_order,
    drop_ng_sentences,
    essential_keywords,
    missing_essentials,
    ng_keywords,
)
from lib.length_meter import measure_length, tolerance_window, truncate_to_limit
from lib.markdown_normalizer import split_paragraphs, strip_code_fences, strip_leading_heading
from schemas.article import Article, LengthReport
from schemas.common import Tone
from schemas.outline import ArticleOutline


EXCERPT_CHARS = 150

_HEADING_LINE_RE = re.compile(r"(?m)^#+\s.*$")


def make_excerpt(content: str, limit: int = EXCERPT_CHARS) -> str:
    """First paragraph with headings removed, capped at `limit` chars + '...'."""
    paragraphs = split_paragraphs(_HEADING_LINE_RE.sub("", content or ""))
    first = paragraphs[0] if paragraphs else ""
    if len(first) > limit:
        return first[:limit] + "..."
    return first


def article_keywords(outline: ArticleOutline) -> list[str]:
    """Primary keyword + first 4 related, minus ng."""
    ng = ng_keywords(outline.keyword_preferences)
    related = outline.trend_data.related_keywords[:4] if outline.trend_data else []
    return [k for k in dedupe_preserve_order([outline.keyword] + related) if not contains_any(k, ng)]


def essentials_sentence(missing: list[str]) -> str:
    return f"{'、'.join(missing)}についても押さえておきましょう。"


class ArticleAssembler:
    """
    Turn a fully drafted outline into an Article.

    - Section contents are joined in outline order with a blank line between them.
    - Essential keywords the sections never used are woven in after the lead:
      one provider call for a bridging paragraph, then a fixed sentence for
      anything still missing.
    - When the outline carries a target_word_count, the woven article gets one
      length-enforcement pass (article mode). Weaving never pushes an article
      that fit the upper bound past it: the shorter fixed sentence replaces the
      bridge, and whole paragraphs are dropped from the end if even that is too long.
    - Essentials lost to the length pass come back as the fixed sentence.
    """

    def __init__(
        self,
        provider: Optional[CompletionProvider] = None,
        *,
        enforcer: Optional[LengthEnforcer] = None,
    ) -> None:
        self.provider = provider
        self.enforcer = enforcer if enforcer is not None else (LengthEnforcer(provider) if provider else None)

    def assemble(self, outline: ArticleOutline, *, tone: Optional[Tone] = None) -> Article:
        blocks = [s.content.strip() for s in outline.ordered_sections() if s.content and s.content.strip()]
        content = "\n\n".join(blocks)

        ng = ng_keywords(outline.keyword_preferences)
        essentials = essential_keywords(outline.keyword_preferences)
        report: Optional[LengthReport] = None

        enforce = bool(outline.target_word_count) and self.enforcer is not None
        limit = tolerance_window(outline.target_word_count, self.enforcer.tolerance).upper if enforce else None

        content = self._weave_essentials(content, outline, essentials, ng, limit=limit)

        if enforce:
            content, report = self.enforcer.enforce(
                content,
                outline.target_word_count,
                mode="article",
                topic=outline.title,
                keywords=article_keywords(outline),
                ng_keywords=ng,
                tone=tone,
            )

        lost = missing_essentials(content, essentials)
        if lost:
            content = self._insert_after_lead(content, outline, essentials_sentence(lost))

        return Article(
            id=uuid.uuid4().hex,
            title=outline.title,
            content=content,
            excerpt=make_excerpt(content),
            keywords=article_keywords(outline),
            status="draft",
            tone=tone,
            word_count=measure_length(content),
            trend_data=outline.trend_data,
            length_report=report,
        )

    def _weave_essentials(
        self,
        content: str,
        outline: ArticleOutline,
        essentials: list[str],
        ng: list[str],
        *,
        limit: Optional[int] = None,
    ) -> str:
        missing = missing_essentials(content, essentials)
        if not missing:
            return content

        additions: list[str] = []
        if self.provider is not None:
            bridge = self._bridge_paragraph(outline, missing, ng)
            if bridge:
                additions.append(bridge)
        still_missing = missing_essentials("\n\n".join(additions), missing)
        if still_missing:
            additions.append(essentials_sentence(still_missing))

        woven = self._insert_after_lead(content, outline, "\n\n".join(additions))
        if limit is None or measure_length(woven) <= limit or measure_length(content) > limit:
            return woven

        # The bridge does not fit: fall back to the fixed sentence, then cut from the end.
        woven = self._insert_after_lead(content, outline, essentials_sentence(missing))
        if measure_length(woven) <= limit:
            return woven
        return truncate_to_limit(woven, limit)

    def _bridge_paragraph(self, outline: ArticleOutline, missing: list[str], ng: list[str]) -> str:
        prompt = f"""
記事「{outline.title}」のリード文の直後に置く、短い段落（2〜3文、100文字程度）を書いてください。

ルール:
- 次のキーワードを必ずすべて自然に含めてください: {"、".join(missing)}
- 見出しは使わないでください
- 使用禁止のキーワード: {"、".join(ng) if ng else "(なし)"}
- 段落の本文のみを出力してください
""".strip()
        try:
            raw = self.provider.complete(prompt, CompletionConstraints(max_tokens=400))
        except ProviderError as e:
            print(f"⚠️ Could not write the essential-keyword paragraph: {e}")
            return ""
        return drop_ng_sentences(strip_leading_heading(strip_code_fences(raw)), ng).strip()

    def _insert_after_lead(self, content: str, outline: ArticleOutline, addition: str) -> str:
        if not addition:
            return content
        ordered = outline.ordered_sections()
        lead = ordered[0] if ordered and ordered[0].is_lead and ordered[0].content else None
        if lead is None or not content.startswith(lead.content.strip()):
            return f"{addition}\n\n{content}" if content else addition

        head = lead.content.strip()
        rest = content[len(head):].lstrip("\n")
        return f"{head}\n\n{addition}" + (f"\n\n{rest}" if rest else "")
