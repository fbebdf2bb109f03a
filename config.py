"""Central configuration for the article generation pipeline."""

from __future__ import annotations

from pathlib import Path

from lib.env import env_flag, env_float, env_int, env_str, load_env

load_env()

# ── Completion provider ────────────────────────────────────────────────────
LLM_PROVIDER = env_str("LLM_PROVIDER", "openai")  # openai | anthropic
OPENAI_MODEL = env_str("OPENAI_MODEL", "gpt-4.1-mini")
ANTHROPIC_MODEL = env_str("ANTHROPIC_MODEL", "claude-sonnet-4-5")
LLM_TEMPERATURE = env_float("LLM_TEMPERATURE", 0.7)
LLM_MAX_TOKENS = env_int("LLM_MAX_TOKENS", 4000)
OPENAI_SEED = env_int("OPENAI_SEED", 1337)

# ── Length enforcement ─────────────────────────────────────────────────────
LENGTH_TOLERANCE = env_float("LENGTH_TOLERANCE", 0.1)
# Whole-article summarization for over-length text stays off unless asked for.
LENGTH_ENABLE_SUMMARIZE_PASS = env_flag("LENGTH_ENABLE_SUMMARIZE_PASS", default=False)

# ── Section generation ─────────────────────────────────────────────────────
# Tail of previously written sections carried into each section prompt.
# 0 carries everything.
SECTION_CONTEXT_CHARS = env_int("SECTION_CONTEXT_CHARS", 2000)

# ── Trend analysis ─────────────────────────────────────────────────────────
TREND_REGION = env_str("TREND_REGION", "JP")
TREND_TIMEFRAME = env_str("TREND_TIMEFRAME", "today 12-m")

# ── Titles ─────────────────────────────────────────────────────────────────
TITLE_CANDIDATE_COUNT = env_int("TITLE_CANDIDATE_COUNT", 5)

# ── Output ─────────────────────────────────────────────────────────────────
ARTICLE_OUTPUT_DIR = Path(env_str("ARTICLE_OUTPUT_DIR", "output/articles"))
RUN_LOG_DIR = Path(env_str("RUN_LOG_DIR", "output/run_logs"))
