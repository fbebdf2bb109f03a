from __future__ import annotations

from typing import Any, Optional

import anthropic

import config
from agents.base import CompletionConstraints
from lib.errors import AuthError, ProviderError, RateLimitError


def map_anthropic_error(e: Exception) -> ProviderError:
    status = getattr(e, "status_code", None)
    msg = str(e) or e.__class__.__name__

    if isinstance(e, anthropic.RateLimitError):
        return RateLimitError(f"Anthropic rate limit exceeded: {msg}", status_code=status or 429)
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return AuthError(f"Anthropic rejected the credentials: {msg}", status_code=status)
    if isinstance(e, anthropic.NotFoundError):
        return AuthError(f"Anthropic model not available: {msg}", status_code=status)
    if isinstance(e, anthropic.APIConnectionError):
        return ProviderError(f"Could not reach Anthropic: {msg}")
    return ProviderError(f"Anthropic request failed: {msg}", status_code=status)


class AnthropicClient:
    """
    Anthropic completion provider (Messages API).

    One request per call. Overload and rate-limit responses are surfaced as
    errors, not retried: the orchestrator leaves re-runs to the caller.
    """

    def __init__(self, model: Optional[str] = None, *, client: Any = None) -> None:
        self.client = client if client is not None else anthropic.Anthropic()
        self.model = model or config.ANTHROPIC_MODEL

    def complete(
        self,
        prompt: str,
        constraints: Optional[CompletionConstraints] = None,
        *,
        system: Optional[str] = None,
    ) -> str:
        c = constraints or CompletionConstraints()
        kwargs: dict = {
            "model": c.model or self.model,
            "max_tokens": config.LLM_MAX_TOKENS if c.max_tokens is None else int(c.max_tokens),
            "temperature": config.LLM_TEMPERATURE if c.temperature is None else float(c.temperature),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            message = self.client.messages.create(**kwargs)
        except anthropic.AnthropicError as e:
            raise map_anthropic_error(e) from e

        parts = [getattr(block, "text", "") for block in (message.content or [])]
        return "".join(p for p in parts if p).strip()
