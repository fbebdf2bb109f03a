from __future__ import annotations

import re
from typing import Iterable, Mapping

from lib.markdown_normalizer import heading_of
from schemas.common import KeywordPreference


_CYCLE = {
    KeywordPreference.default: KeywordPreference.ng,
    KeywordPreference.ng: KeywordPreference.essential,
    KeywordPreference.essential: KeywordPreference.default,
}


def cycle_preference(current: KeywordPreference | None) -> KeywordPreference:
    """default -> ng -> essential -> default"""
    return _CYCLE[current or KeywordPreference.default]


def essential_keywords(prefs: Mapping[str, KeywordPreference]) -> list[str]:
    return [k for k, v in (prefs or {}).items() if v == KeywordPreference.essential]


def ng_keywords(prefs: Mapping[str, KeywordPreference]) -> list[str]:
    return [k for k, v in (prefs or {}).items() if v == KeywordPreference.ng]


def dedupe_preserve_order(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for x in items:
        k = (x or "").strip()
        if not k or k.lower() in seen:
            continue
        seen.add(k.lower())
        out.append(k)
    return out


def contains_keyword(text: str, keyword: str) -> bool:
    kw = (keyword or "").strip()
    if not kw:
        return False
    return kw.lower() in (text or "").lower()


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(contains_keyword(text, k) for k in keywords)


def effective_keywords(
    primary: str,
    related: Iterable[str],
    section_keywords: Iterable[str] = (),
    *,
    ng: Iterable[str] = (),
    related_limit: int = 5,
) -> list[str]:
    """
    primary + first `related_limit` related + section keywords.

    Order-preserving, deduplicated, and anything matching an ng keyword removed.
    """
    ng_list = [n for n in ng if (n or "").strip()]
    merged = [primary] + list(related)[:related_limit] + list(section_keywords)
    return [k for k in dedupe_preserve_order(merged) if not contains_any(k, ng_list)]


def _ng_terms(ng: Iterable[str]) -> list[str]:
    return sorted({(n or "").strip() for n in ng if (n or "").strip()}, key=len, reverse=True)


def scrub_ng(text: str, ng: Iterable[str]) -> str:
    """
    Remove every occurrence of each ng keyword (case-insensitive).

    One alternation with the longest keywords first, so "コーヒー豆" is removed
    before "コーヒー". The substitution repeats until nothing matches: removing
    "ステマ" from "ステステママ" leaves "ステマ", which goes too.
    Leftover doubled spaces are collapsed; newlines are kept.
    """
    out = text or ""
    terms = _ng_terms(ng)
    if not terms:
        return out

    pattern = re.compile("|".join(re.escape(t) for t in terms), re.IGNORECASE)
    while True:
        scrubbed = pattern.sub("", out)
        if scrubbed == out:
            break
        out = scrubbed

    out = re.sub(r"[ \t]{2,}", " ", out)
    return re.sub(r"(?m)[ \t]+$", "", out)


_SENTENCE_RE = re.compile(r"[^。！？!?]*[。！？!?]+[」』）)]*|[^。！？!?]+$")
_BULLET_RE = re.compile(r"^[ \t]*(?:[-*+]|\d+[.)])[ \t]+")


def drop_ng_sentences(text: str, ng: Iterable[str]) -> str:
    """
    Remove every sentence of prose that mentions an ng keyword.

    With ng "カフェ", "カフェインが少ない。豆の話です。" becomes "豆の話です。"
    rather than "インが少ない。豆の話です。". Heading lines stay and only lose
    the keyword; a list item with nothing left is removed. scrub_ng runs last.
    """
    terms = _ng_terms(ng)
    if not terms:
        return text or ""

    lines: list[str] = []
    for line in (text or "").split("\n"):
        if not contains_any(line, terms) or heading_of(line):
            lines.append(line)
            continue
        m = _BULLET_RE.match(line)
        prefix = m.group(0) if m else ""
        sentences = _SENTENCE_RE.findall(line[len(prefix):])
        kept = "".join(s for s in sentences if not contains_any(s, terms)).strip()
        if kept:
            lines.append(prefix + kept)

    out = re.sub(r"\n[ \t]*\n(?:[ \t]*\n)+", "\n\n", "\n".join(lines)).strip()
    return scrub_ng(out, terms)


def missing_essentials(text: str, essentials: Iterable[str]) -> list[str]:
    return [k for k in dedupe_preserve_order(essentials) if not contains_keyword(text, k)]
