from __future__ import annotations

import re
from typing import Any, Iterable, Literal, Optional

import config
from agents.base import BaseAgent, CompletionConstraints, CompletionProvider
from lib.errors import ProviderError
from lib.keywords import drop_ng_sentences
from lib.length_meter import measure_length, tolerance_window, truncate_to_limit
from lib.markdown_normalizer import heading_of, join_paragraphs, split_paragraphs, strip_code_fences
from schemas.article import LengthReport
from schemas.common import TONE_DESCRIPTIONS, Tone


EnforcementMode = Literal["section", "article"]

_SUMMARY_HEADING_RE = re.compile(
    r"(まとめ|結論|おわりに|終わりに|最後に|総括|summary|conclusion|final thoughts|wrapping up)",
    re.IGNORECASE,
)

_CONCLUSION_OPENER_RE = re.compile(
    r"^\s*(まとめると|以上|結論として|結論から|最後に|総じて|in summary|to summarize|to sum up|"
    r"to conclude|in conclusion|all in all)",
    re.IGNORECASE,
)


def is_summary_heading(text: str) -> bool:
    return bool(_SUMMARY_HEADING_RE.search(text or ""))


def split_summary(text: str) -> tuple[list[str], list[str]]:
    """
    Split paragraphs into (body, summary).

    The summary starts at the LAST heading whose text reads like a conclusion
    ("## まとめ", "## Conclusion", ...). No such heading -> summary is empty.
    """
    paragraphs = split_paragraphs(text)
    cut = None
    for i, p in enumerate(paragraphs):
        h = heading_of(p.split("\n", 1)[0])
        if h and is_summary_heading(h[1]):
            cut = i
    if cut is None:
        return paragraphs, []
    return paragraphs[:cut], paragraphs[cut:]


def sanitize_supplement(text: str, mode: EnforcementMode) -> str:
    """
    Clean a supplement reply before it is spliced into the text.

      - code fences removed
      - a conclusion-style heading and everything under it dropped
      - paragraphs opening with conclusion phrasing dropped
      - section mode: every heading line dropped (the section already has one)
    """
    out: list[str] = []
    skipping = False

    for para in split_paragraphs(strip_code_fences(text)):
        first, _, rest = para.partition("\n")
        h = heading_of(first)

        if h:
            skipping = is_summary_heading(h[1])
            if skipping:
                continue
            if mode == "section":
                para = rest.strip()
                if not para:
                    continue

        if skipping:
            continue
        if _CONCLUSION_OPENER_RE.match(para):
            continue
        out.append(para)

    return join_paragraphs(out)


class LengthEnforcer(BaseAgent):
    """
    LengthEnforcer (single pass)

    UNDER-LENGTH: SUPPLEMENT
      - One request for roughly (target - length) more characters.
      - The supplement is inserted before a trailing summary section, so the
        summary stays last.
      - If the result overshoots the upper bound, whole paragraphs are dropped
        from the end.

    OVER-LENGTH: SUMMARIZE (optional)
      - Controlled by LENGTH_ENABLE_SUMMARIZE_PASS (default: off) and only in
        article mode. When off, over-length text is returned unchanged.

    Never raises: a provider failure returns the input text and says so in the report.
    """

    name = "length-enforcer"

    def __init__(
        self,
        provider: CompletionProvider,
        *,
        tolerance: Optional[float] = None,
        enable_summarize_pass: Optional[bool] = None,
    ) -> None:
        self.provider = provider
        self.tolerance = config.LENGTH_TOLERANCE if tolerance is None else tolerance
        self.enable_summarize_pass = (
            config.LENGTH_ENABLE_SUMMARIZE_PASS if enable_summarize_pass is None else enable_summarize_pass
        )

    def run(self, input: dict[str, Any]) -> dict[str, Any]:
        text, report = self.enforce(
            input.get("text", ""),
            int(input.get("target", 0)),
            mode=input.get("mode", "section"),
            topic=input.get("topic", ""),
            keywords=input.get("keywords", ()),
            ng_keywords=input.get("ng_keywords", ()),
            tone=Tone(input["tone"]) if input.get("tone") else None,
        )
        return {"text": text, "report": report.to_dict()}

    def enforce(
        self,
        text: str,
        target: int,
        *,
        mode: EnforcementMode = "section",
        topic: str = "",
        keywords: Iterable[str] = (),
        ng_keywords: Iterable[str] = (),
        tone: Optional[Tone] = None,
    ) -> tuple[str, LengthReport]:
        window = tolerance_window(target, self.tolerance)
        before = measure_length(text)

        def report(result: str, action: str, notes: str = "") -> LengthReport:
            return LengthReport(
                target=window.target,
                lower=window.lower,
                upper=window.upper,
                length_before=before,
                length_after=measure_length(result),
                action=action,
                notes=notes,
            )

        if window.target <= 0 or window.contains(before):
            return text, report(text, "within_tolerance")

        ng_list = [n for n in ng_keywords if (n or "").strip()]

        if before < window.lower:
            body, summary = split_summary(text)
            needed = window.shortfall(before)
            prompt = self._supplement_prompt(
                body=join_paragraphs(body),
                mode=mode,
                topic=topic,
                length=before,
                target=window.target,
                needed=needed,
                keywords=list(keywords),
                ng_keywords=ng_list,
                tone=tone,
            )
            try:
                raw = self.provider.complete(
                    prompt,
                    CompletionConstraints(max_tokens=min(config.LLM_MAX_TOKENS, max(256, needed * 3))),
                    system=_SYSTEM,
                )
            except ProviderError as e:
                return text, report(text, "supplement_failed", notes=str(e))

            supplement = sanitize_supplement(drop_ng_sentences(raw, ng_list), mode)
            if not supplement:
                return text, report(text, "supplement_failed", notes="empty supplement")

            combined = join_paragraphs(body + [supplement] + summary)
            if measure_length(combined) > window.upper:
                trimmed = truncate_to_limit(combined, window.upper)
                return trimmed, report(trimmed, "supplemented_and_truncated")
            return combined, report(combined, "supplemented")

        # over-length
        if not self.enable_summarize_pass or mode != "article":
            return text, report(text, "over_length_kept")

        prompt = self._summarize_prompt(text=text, topic=topic, target=window.target, ng_keywords=ng_list)
        try:
            condensed = self.provider.complete(prompt, CompletionConstraints(), system=_SYSTEM)
        except ProviderError as e:
            return text, report(text, "summarize_failed", notes=str(e))

        condensed = drop_ng_sentences(strip_code_fences(condensed), ng_list)
        if not condensed.strip() or measure_length(condensed) >= before:
            return text, report(text, "summarize_failed", notes="condensed text was not shorter")

        result = truncate_to_limit(condensed, window.upper)
        return result, report(result, "summarized")

    # -------------------------
    # Prompts
    # -------------------------

    def _supplement_prompt(
        self,
        *,
        body: str,
        mode: EnforcementMode,
        topic: str,
        length: int,
        target: int,
        needed: int,
        keywords: list[str],
        ng_keywords: list[str],
        tone: Optional[Tone],
    ) -> str:
        if mode == "article":
            structure = "- 必要に応じて「## 」「### 」の見出しを使い、既存の構成の続きとして書いてください"
        else:
            structure = "- 見出し（#で始まる行）は一切使わないでください"

        return f"""
以下は「{topic or "記事"}」についての本文です。現在の文字数は約{length}文字、目標は{target}文字です。
本文の続きとして、約{needed}文字の追加の文章を書いてください。

ルール:
{structure}
- 既存の内容を繰り返さず、新しい具体例や補足情報を加えてください
- 「まとめると」「以上」「結論として」などの締めくくりの表現は使わないでください
- 1段落は2〜3文程度にしてください
- 文体: {TONE_DESCRIPTIONS.get(tone or Tone.professional)}（です・ます調）
- 使うキーワード（自然な範囲で）: {", ".join(keywords) if keywords else "(なし)"}
- 使用禁止のキーワード: {", ".join(ng_keywords) if ng_keywords else "(なし)"}
- 追加する文章のみを出力してください

既存の本文:
{body.strip() if body.strip() else "(なし)"}
""".strip()

    def _summarize_prompt(self, *, text: str, topic: str, target: int, ng_keywords: list[str]) -> str:
        return f"""
以下の「{topic or "記事"}」の記事を、約{target}文字に要約・圧縮してください。

ルール:
- 見出し（## / ###）の構成はそのまま残してください
- 事実を追加しないでください
- 使用禁止のキーワード: {", ".join(ng_keywords) if ng_keywords else "(なし)"}
- 圧縮後の記事本文のみを出力してください

記事:
{text.strip()}
""".strip()


_SYSTEM = "あなたはSEOに強い日本語のプロのWebライターです。指示された文字数と構成を正確に守ります。"
