from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class CompletionConstraints:
    """
    Per-call generation settings. None means "use the provider default".
    """

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    model: Optional[str] = None


class CompletionProvider(Protocol):
    """
    Anything that turns a prompt into text.

    Implementations raise lib.errors.RateLimitError, AuthError or ProviderError;
    they never return partial text on failure.
    """

    def complete(
        self,
        prompt: str,
        constraints: Optional[CompletionConstraints] = None,
        *,
        system: Optional[str] = None,
    ) -> str:
        ...


class BaseAgent(ABC):
    """
    Base interface for all agents in the article pipeline.

    Agents are stateless between calls. Anything an agent needs from an LLM
    goes through the CompletionProvider it was constructed with, so tests can
    pass a fake provider.
    """

    name: str

    @abstractmethod
    def run(self, input: Any) -> Any:
        """
        Execute the agent.

        Args:
            input: The agent's input schema (or a dict that validates into it).

        Returns:
            The agent's output schema.
        """
        raise NotImplementedError
