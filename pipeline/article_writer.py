from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import yaml

import config
from schemas.article import Article


_FRONTMATTER_RE = re.compile(r"^\s*---\s*\n(.*?)\n---\s*\n", re.DOTALL)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def slugify(title: str, max_len: int = 60) -> str:
    """Filesystem-safe slug. Unicode word characters (e.g. Japanese) are kept."""
    slug = re.sub(r"[^\w\-]+", "-", (title or "").strip().lower())
    slug = re.sub(r"-{2,}", "-", slug).strip("-_")
    return slug[:max_len].rstrip("-_")


@dataclass(frozen=True)
class ArticlePaths:
    dir: Path = config.ARTICLE_OUTPUT_DIR

    def for_article(self, article: Article) -> tuple[Path, Path]:
        date = article.generated_at.strftime("%Y-%m-%d")
        stem = f"{date}-{slugify(article.title) or article.id}"
        return self.dir / f"{stem}.md", self.dir / f"{stem}.json"


@dataclass(frozen=True)
class WrittenArticle:
    markdown_path: Path
    manifest_path: Path


def render_markdown(article: Article) -> str:
    frontmatter: Dict[str, Any] = {
        "title": article.title,
        "description": article.excerpt,
        "keywords": list(article.keywords),
        "status": article.status,
        "word_count": article.word_count,
        "generated_at": article.generated_at.replace(microsecond=0).isoformat(),
    }
    if article.tone is not None:
        frontmatter["tone"] = article.tone.value
    if article.category:
        frontmatter["category"] = article.category

    fm_text = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True).strip()
    return f"---\n{fm_text}\n---\n\n{article.content.lstrip()}\n"


def parse_frontmatter(md_text: str) -> tuple[Dict[str, Any], str]:
    """Split a written article back into (frontmatter dict, body)."""
    m = _FRONTMATTER_RE.match(md_text)
    if not m:
        return {}, md_text

    try:
        data = yaml.safe_load(m.group(1)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML frontmatter: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Frontmatter must be a YAML mapping/object.")

    return data, md_text[m.end():]


def write_article(
    article: Article,
    *,
    provider: str = "",
    paths: ArticlePaths | None = None,
) -> WrittenArticle:
    """
    Write <dir>/<date>-<slug>.md (YAML frontmatter + body) and a JSON manifest
    next to it with the full Article (trend data and length report included).
    """
    ap = paths or ArticlePaths()
    ap.dir.mkdir(parents=True, exist_ok=True)
    md_path, manifest_path = ap.for_article(article)

    md_path.write_text(render_markdown(article), encoding="utf-8")

    manifest = {
        "version": 1,
        "provider": provider,
        "written_at": _utc_now_iso(),
        "markdown_path": str(md_path),
        "article": article.to_dict(),
    }
    manifest_path.write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")

    return WrittenArticle(markdown_path=md_path, manifest_path=manifest_path)
