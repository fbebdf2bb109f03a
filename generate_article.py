import argparse
import sys
from pathlib import Path
from typing import List, Optional

import config
from agents.providers import build_provider
from app_logging.run_logger import RunLogger
from lib.errors import StepFailedError
from pipeline.article_writer import ArticlePaths, write_article
from pipeline.orchestrator import PipelineOrchestrator
from schemas.common import KeywordPreference, TargetLength, Tone
from schemas.outline import OutlineOptions
from schemas.pipeline import SectionOptions


def _print_progress(section: str, percent: int) -> None:
    print(f"  … [{percent:3d}%] {section}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate one article end to end (trend → titles → outline → sections)")
    parser.add_argument("keywords", nargs="+", help="Keywords; the first one is the primary keyword")
    parser.add_argument("--provider", choices=["openai", "anthropic"], default=None, help="Defaults to LLM_PROVIDER")
    parser.add_argument("--model", type=str, default=None, help="Override the provider's model")
    parser.add_argument("--title", type=str, default=None, help="Use this title instead of the first candidate")
    parser.add_argument("--length", choices=[t.value for t in TargetLength], default=TargetLength.medium.value)
    parser.add_argument("--target", type=int, default=None, help="Target total characters (e.g. 1000)")
    parser.add_argument("--tone", choices=[t.value for t in Tone], default=Tone.professional.value)
    parser.add_argument("--focus", action="append", default=[], help="Focus topic (repeatable)")
    parser.add_argument("--essential", action="append", default=[], help="Keyword that must appear (repeatable)")
    parser.add_argument("--ng", action="append", default=[], help="Keyword that must never appear (repeatable)")
    parser.add_argument("--instructions", type=str, default=None, help="Custom instructions (highest priority)")
    parser.add_argument(
        "--out-dir",
        type=str,
        default=None,
        help=f"Output directory (defaults to {config.ARTICLE_OUTPUT_DIR})",
    )
    return parser


def main(argv: List[str]) -> int:
    args = build_parser().parse_args(argv)
    print(">>> generate_article.py started")

    provider_name: Optional[str] = args.provider or config.LLM_PROVIDER
    orchestrator = PipelineOrchestrator(build_provider(provider_name, model=args.model))
    orchestrator.run_logger = RunLogger.for_session(orchestrator.session_id, config.RUN_LOG_DIR)

    for kw in args.essential:
        orchestrator.add_keyword_preference(kw, KeywordPreference.essential)
    for kw in args.ng:
        orchestrator.add_keyword_preference(kw, KeywordPreference.ng)

    outline_options = OutlineOptions(
        target_length=TargetLength(args.length),
        tone=Tone(args.tone),
        focus_topics=args.focus,
        custom_instructions=args.instructions,
        target_word_count=args.target,
    )
    section_options = SectionOptions(
        tone=Tone(args.tone),
        custom_instructions=args.instructions,
        on_progress=_print_progress,
    )

    try:
        if args.title:
            trend = orchestrator.execute_step1(args.keywords)
            outline = orchestrator.execute_step3(
                args.keywords,
                trend,
                outline_options.model_copy(update={"selected_title": args.title}),
            )
            article = orchestrator.execute_step4(outline, section_options)
        else:
            article = orchestrator.execute_auto(args.keywords, outline_options, section_options)
    except StepFailedError as e:
        print(f"[error] Step {e.step} failed: {e.message}")
        return 1

    paths = ArticlePaths(Path(args.out_dir)) if args.out_dir else ArticlePaths()
    written = write_article(article, provider=provider_name or "", paths=paths)

    print(f"✅ Article: {article.title}")
    print(f"✅ Length: {article.word_count} chars")
    if article.length_report:
        r = article.length_report
        print(f"   target {r.target} [{r.lower}, {r.upper}] → {r.action}")
    print(f"✅ Markdown: {written.markdown_path}")
    print(f"✅ Manifest: {written.manifest_path}")
    print(f"✅ Run log: {orchestrator.run_logger.log_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
