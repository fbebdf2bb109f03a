from __future__ import annotations

from typing import Optional

import config
from agents.base import CompletionProvider


def build_provider(name: Optional[str] = None, *, model: Optional[str] = None) -> CompletionProvider:
    """
    Build the configured completion provider.

    name: "openai" or "anthropic" ("claude" is accepted as an alias).
    Defaults to config.LLM_PROVIDER.
    """
    provider = (name or config.LLM_PROVIDER).strip().lower()

    if provider == "openai":
        from agents.llm_client import LLMClient

        return LLMClient(model=model)

    if provider in {"anthropic", "claude"}:
        from agents.anthropic_client import AnthropicClient

        return AnthropicClient(model=model)

    raise ValueError(f"Unknown LLM provider: {provider!r} (expected 'openai' or 'anthropic')")
