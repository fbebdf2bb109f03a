from __future__ import annotations

from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

import config
from agents.base import CompletionConstraints
from lib.errors import AuthError, ProviderError, RateLimitError


def map_openai_error(e: Exception) -> ProviderError:
    """Translate an openai SDK exception into the pipeline's error taxonomy."""
    status = getattr(e, "status_code", None)
    msg = str(e) or e.__class__.__name__

    if isinstance(e, openai.RateLimitError):
        return RateLimitError(f"OpenAI rate limit exceeded: {msg}", status_code=status or 429)
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthError(f"OpenAI rejected the credentials: {msg}", status_code=status)
    if isinstance(e, openai.NotFoundError):
        return AuthError(f"OpenAI model not available: {msg}", status_code=status)
    if isinstance(e, openai.APIConnectionError):
        return ProviderError(f"Could not reach OpenAI: {msg}")
    return ProviderError(f"OpenAI request failed: {msg}", status_code=status)


class LLMClient:
    """
    OpenAI completion provider (Responses API).

    Compatibility handling:
      - Some SDK versions don't accept seed=.
      - Some models/endpoints don't accept temperature=.
    We try with optional params first, then retry without them.
    Anything else the SDK raises is mapped by map_openai_error().
    """

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        client: Any = None,
        seed: Optional[int] = None,
        reasoning_effort: Optional[str] = None,
    ) -> None:
        self.client = client if client is not None else OpenAI()
        self.model = model or config.OPENAI_MODEL
        self.seed = config.OPENAI_SEED if seed is None else seed
        self.reasoning_effort = reasoning_effort

    def complete(
        self,
        prompt: str,
        constraints: Optional[CompletionConstraints] = None,
        *,
        system: Optional[str] = None,
    ) -> str:
        c = constraints or CompletionConstraints()
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        return self.generate_text(
            messages=messages,
            model=c.model,
            temperature=config.LLM_TEMPERATURE if c.temperature is None else c.temperature,
            max_output_tokens=config.LLM_MAX_TOKENS if c.max_tokens is None else c.max_tokens,
        )

    def generate_text(
        self,
        *,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        kwargs: dict = {"model": model or self.model, "input": messages}
        if self.reasoning_effort:
            kwargs["reasoning"] = {"effort": self.reasoning_effort}
        if max_output_tokens is not None:
            kwargs["max_output_tokens"] = int(max_output_tokens)
        if temperature is not None:
            kwargs["temperature"] = float(temperature)

        try:
            return self._create(kwargs)
        except openai.BadRequestError as e:
            # The model rejects temperature: retry once without it.
            msg = str(e).lower()
            if "temperature" in msg and "unsupported" in msg and "temperature" in kwargs:
                kwargs.pop("temperature")
                try:
                    return self._create(kwargs)
                except openai.OpenAIError as e2:
                    raise map_openai_error(e2) from e2
            raise map_openai_error(e) from e
        except openai.OpenAIError as e:
            raise map_openai_error(e) from e

    def _create(self, kwargs: dict) -> str:
        if self.seed is not None:
            try:
                resp = self.client.responses.create(**kwargs, seed=int(self.seed))
                return (resp.output_text or "").strip()
            except TypeError as e:
                # seed not accepted by this SDK version
                msg = str(e).lower()
                if "unexpected keyword argument" not in msg or "seed" not in msg:
                    raise

        resp = self.client.responses.create(**kwargs)
        return (resp.output_text or "").strip()
