from __future__ import annotations

import re
from typing import Iterable, Optional


_HEADING_LINE_RE = re.compile(r"^\s{0,3}(#{1,6})[ \t]*(.+?)[ \t#]*$")
_BLANK_RUN_RE = re.compile(r"\n[ \t]*\n+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n")


def normalize_newlines(text: str) -> str:
    return (text or "").replace("\r\n", "\n").replace("\r", "\n")


def heading_of(line: str) -> Optional[tuple[int, str]]:
    """Return (level, text) when the line is a markdown heading."""
    m = _HEADING_LINE_RE.match(line or "")
    if not m:
        return None
    return len(m.group(1)), m.group(2).strip()


def strip_markdown(md: str) -> str:
    """
    Remove markdown syntax that does not count as prose.

    Heading markers, bold/italic markers and list bullets are dropped and runs
    of blank lines collapse to a single newline. Heading *text* is kept.
    """
    text = normalize_newlines(md)

    text = re.sub(r"(?m)^[ \t]{0,3}#{1,6}[ \t]*", "", text)
    text = re.sub(r"(?m)^[ \t]*(?:[-*+]|\d+[.)])[ \t]+", "", text)

    text = re.sub(r"(\*\*|__)(?=\S)(.+?)(?<=\S)\1", r"\2", text)
    text = re.sub(r"\*(?=\S)(.+?)(?<=\S)\*", r"\1", text)
    # Underscore emphasis only at word edges, so snake_case survives.
    text = re.sub(r"(?<![A-Za-z0-9])_(?=\S)(.+?)(?<=\S)_(?![A-Za-z0-9])", r"\1", text)

    text = _BLANK_RUN_RE.sub("\n", text)
    return text.strip()


def split_paragraphs(md: str) -> list[str]:
    """Split on blank lines. Empty paragraphs are dropped."""
    parts = _PARAGRAPH_SPLIT_RE.split(normalize_newlines(md).strip())
    return [p.strip() for p in parts if p.strip()]


def join_paragraphs(paragraphs: Iterable[str]) -> str:
    return "\n\n".join(p.strip() for p in paragraphs if (p or "").strip())


def strip_leading_heading(md: str) -> str:
    """Drop the first line when the text opens with a heading (model echoed the title)."""
    text = normalize_newlines(md).strip()
    if not text.startswith("#"):
        return text
    _, _, rest = text.partition("\n")
    return rest.strip()


def strip_code_fences(text: str) -> str:
    """Remove ``` fence lines the model sometimes wraps structured output in."""
    lines = normalize_newlines(text).split("\n")
    return "\n".join(line for line in lines if not line.strip().startswith("```")).strip()


def normalize_markdown(md: str) -> str:
    """
    Deterministic formatter for LLM outputs that glue headings to paragraphs.

    Guarantees:
      - Any '## ' or '### ' token starts on its own line
      - Headings are followed by a blank line
      - No runs of more than one blank line
    """
    text = normalize_newlines(md).strip()

    # "blah。 ## 見出し" -> "blah。\n\n## 見出し"
    text = re.sub(r"([^\n#])[ \t]*(#{2,6}[ \t]+)", r"\1\n\n\2", text)

    text = re.sub(r"(?m)^(#{2,6}[ \t]+.+)\n(?![ \t]*$)", r"\1\n\n", text)

    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
