"""Error taxonomy for the generation pipeline.

- RateLimitError: provider said "try later" (HTTP 429). Non-fatal to session state.
- AuthError: invalid credentials or model. The user must fix configuration.
- ProviderError: any other provider / network failure.
- ParseError: a structured reply did not match the expected grammar.
  Always recovered locally with a deterministic fallback.
- StepFailedError: raised at the orchestrator step boundary.
"""

from __future__ import annotations

import re
from typing import Optional


_CODE_PREFIX_RE = re.compile(r"^\s*(?:RATE_LIMIT_ERROR|AUTH_ERROR)\s*:\s*")


def strip_error_code(text: str) -> str:
    """Remove internal error-code prefixes ("RATE_LIMIT_ERROR: ...") from a message."""
    return _CODE_PREFIX_RE.sub("", text or "").strip()


class GenerationError(Exception):
    """Catch-all generation failure. str() renders as "CODE: message"."""

    code = "GENERATION_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ProviderError(GenerationError):
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ProviderError):
    code = "RATE_LIMIT_ERROR"


class AuthError(ProviderError):
    code = "AUTH_ERROR"


class ParseError(GenerationError):
    code = "PARSE_ERROR"

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class StepFailedError(GenerationError):
    code = "STEP_FAILED"

    def __init__(self, step: int, message: str) -> None:
        super().__init__(message)
        self.step = step


class SessionBusyError(GenerationError):
    code = "SESSION_BUSY"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id!r} already has a generation in progress")
        self.session_id = session_id


def user_message(err: BaseException) -> str:
    """Message suitable for showing to a user: no internal code prefixes."""
    if isinstance(err, GenerationError):
        return strip_error_code(err.message)
    return strip_error_code(str(err)) or err.__class__.__name__
