from __future__ import annotations

from typing import Any, Optional

import config
from agents.base import BaseAgent, CompletionConstraints, CompletionProvider
from agents.length_enforcer import LengthEnforcer
from lib.errors import AuthError, ProviderError, RateLimitError
from lib.keywords import drop_ng_sentences, effective_keywords, essential_keywords, ng_keywords, scrub_ng
from lib.markdown_normalizer import normalize_markdown, strip_code_fences, strip_leading_heading
from schemas.article import LengthReport
from schemas.common import TONE_INSTRUCTIONS, Tone
from schemas.outline import ArticleOutline, OutlineSection


PLACEHOLDER_BODY = "執筆中です。"


def heading_prefix(level: int) -> str:
    if level <= 2:
        return "## "
    if level == 3:
        return "### "
    return "#### "


def outline_as_text(outline: ArticleOutline) -> str:
    lines = []
    for s in outline.ordered_sections():
        label = "Lead" if s.is_lead else f"H{max(2, s.level)}"
        indent = "  " if s.level >= 3 else ""
        lines.append(f"{indent}{label}: {s.title}")
    return "\n".join(lines)


def carried_context(previous: str, limit: int) -> str:
    """Tail of the text written so far. limit <= 0 keeps everything."""
    text = (previous or "").strip()
    if limit <= 0 or len(text) <= limit:
        return text
    return text[-limit:]


class SectionContentAgent(BaseAgent):
    """
    Draft one outline section (Step 4, called once per section).

    Pipeline per section:
      1. prompt the provider with the outline, carried context and constraints
      2. drop a heading the model echoed back
      3. length enforcement (section mode) against estimated_word_count
      4. scrub ng keywords
      5. prefix the heading (## / ### / ####); the lead gets none

    Rate-limit and auth errors propagate. Any other provider failure yields
    placeholder text so the remaining sections still get written.
    """

    name = "section-content"

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        enforcer: Optional[LengthEnforcer] = None,
        context_chars: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.enforcer = enforcer or LengthEnforcer(provider)
        self.context_chars = config.SECTION_CONTEXT_CHARS if context_chars is None else context_chars

    def run(self, input: dict[str, Any]) -> dict[str, Any]:
        content, report = self.generate(
            input["outline"],
            input["section"],
            previous_content=input.get("previous_content", ""),
            tone=input.get("tone"),
            custom_instructions=input.get("custom_instructions"),
        )
        return {"content": content, "report": report.to_dict() if report else None}

    def generate(
        self,
        outline: ArticleOutline,
        section: OutlineSection,
        *,
        previous_content: str = "",
        tone: Optional[Tone] = None,
        custom_instructions: Optional[str] = None,
    ) -> tuple[str, Optional[LengthReport]]:
        prefs = outline.keyword_preferences
        ng = ng_keywords(prefs)
        related = outline.trend_data.related_keywords if outline.trend_data else []
        keywords = effective_keywords(outline.keyword, related, section.keywords, ng=ng)

        prompt = self._build_prompt(
            outline=outline,
            section=section,
            keywords=keywords,
            essential=essential_keywords(prefs),
            ng=ng,
            context=carried_context(previous_content, self.context_chars),
            tone=tone or Tone.professional,
            custom_instructions=custom_instructions,
        )

        report: Optional[LengthReport] = None
        try:
            raw = self.provider.complete(prompt, CompletionConstraints(temperature=0.7))
        except (RateLimitError, AuthError):
            raise
        except ProviderError as e:
            print(f"⚠️ Section '{section.title}' failed, writing placeholder: {e}")
            body = section.description.strip() or PLACEHOLDER_BODY
        else:
            body = drop_ng_sentences(strip_leading_heading(strip_code_fences(raw)), ng)
            body, report = self.enforcer.enforce(
                body,
                section.estimated_word_count,
                mode="section",
                topic=section.title,
                keywords=keywords,
                ng_keywords=ng,
                tone=tone,
            )

        body = scrub_ng(body, ng).strip()
        if section.is_lead:
            return body, report

        title = " ".join(scrub_ng(section.title, ng).split())
        return normalize_markdown(f"{heading_prefix(section.level)}{title}\n\n{body}"), report

    def _build_prompt(
        self,
        *,
        outline: ArticleOutline,
        section: OutlineSection,
        keywords: list[str],
        essential: list[str],
        ng: list[str],
        context: str,
        tone: Tone,
        custom_instructions: Optional[str],
    ) -> str:
        part = "導入部分（リード文）" if section.is_lead else "特定の章（セクション）"
        target = section.estimated_word_count

        constraints = ""
        if essential or ng:
            constraints = "\n【キーワードの制約】\n"
            if essential:
                constraints += f"- 必須キーワード（必ず含める）: {'、'.join(essential)}\n"
            if ng:
                constraints += f"- NGキーワード（絶対に使わない）: {'、'.join(ng)}\n"

        if section.is_lead:
            variant = (
                "- これは記事の冒頭です。読者の興味を惹きつけ、読み進めたくなる書き出しにしてください。\n"
                "- 見出し（## リード文 など）は絶対に出力しないでください。"
            )
        else:
            variant = "- 前の章からの自然な流れを意識しつつ、同じ情報の繰り返しは避けてください。"

        context_block = f"\n【これまでに書いた本文（文脈維持のため）】\n{context}\n" if context else ""
        desc_line = f"（内容: {section.description}）" if section.description else ""
        custom_block = f"\n【カスタム指示（優先）】\n{custom_instructions}\n" if custom_instructions else ""

        return f"""
あなたはSEOに精通したプロのWebライターです。
スマホでも読みやすい、高品質なブログ記事の{part}を執筆してください。

【記事全体のタイトル】
{outline.title}

【記事の全体構成（目次）】
{outline_as_text(outline)}

【今回執筆するセクションの見出し】
{section.title}
{desc_line}
{context_block}
【キーワード】
{"、".join(keywords) if keywords else "（指定なし）"}
※ 文脈に沿って自然な形で含めてください。

【トーン】
{TONE_INSTRUCTIONS[tone]}

【目標文字数】
{target}文字（±10%以内を厳守）

【スタイル】
1. 1段落は2〜3文（80文字程度）以内に抑えてください。
2. キーワードの出現率は概ね3%以内に留めてください。
3. 「〜です」「〜ます」調で統一してください。
4. 文は必ず句点で終えてください。

【執筆の指示】
- 本文テキストのみを出力してください（「本文:」などのラベルは禁止）。
- 「以上のように〜」「次に〜について解説します」といった前置きや結びの言葉は不要です。
- 見出し（##、###など）や記事タイトル、まとめは含めないでください。
{variant}
{constraints}{custom_block}
""".strip()
