"""Canonical length measurement.

Every length in the pipeline (prompt targets, tolerance checks, truncation,
Article.word_count) goes through measure_length(), which counts the characters
that remain once markdown syntax is stripped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from lib.markdown_normalizer import heading_of, join_paragraphs, split_paragraphs, strip_markdown


DEFAULT_TOLERANCE = 0.1


def measure_length(text: str) -> int:
    return len(strip_markdown(text))


@dataclass(frozen=True)
class ToleranceWindow:
    target: int
    lower: int
    upper: int

    def contains(self, length: int) -> bool:
        return self.lower <= length <= self.upper

    def shortfall(self, length: int) -> int:
        """Characters needed to reach the target (not just the lower bound)."""
        return max(0, self.target - length)


def tolerance_window(target: int, tolerance: float = DEFAULT_TOLERANCE) -> ToleranceWindow:
    """[floor((1 - tol) * target), ceil((1 + tol) * target)]"""
    t = max(0, int(target))
    # round() first so 0.9 * 1000 does not land on 899.999...
    lower = math.floor(round((1.0 - tolerance) * t, 6))
    upper = math.ceil(round((1.0 + tolerance) * t, 6))
    return ToleranceWindow(target=t, lower=lower, upper=upper)


def truncate_to_limit(text: str, limit: int) -> str:
    """
    Drop whole paragraphs from the end until the measured length is <= limit.

    Never cuts inside a paragraph, and a cut never leaves a heading with nothing
    under it. The first paragraph is always kept, so the result can still
    exceed the limit when that paragraph alone does.
    """
    paragraphs = split_paragraphs(text)
    if not paragraphs:
        return ""

    kept = len(paragraphs)
    while kept > 1 and measure_length(join_paragraphs(paragraphs[:kept])) > limit:
        kept -= 1
    if kept < len(paragraphs):
        while kept > 1 and _is_bare_heading(paragraphs[kept - 1]):
            kept -= 1

    return join_paragraphs(paragraphs[:kept])


def _is_bare_heading(paragraph: str) -> bool:
    return "\n" not in paragraph and heading_of(paragraph) is not None
