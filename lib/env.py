from __future__ import annotations

import os
from pathlib import Path


_TRUTHY = {"1", "true", "yes", "y", "on"}


def load_env() -> None:
    """
    Load .env into the process environment.

    Existing environment variables win over values from the file.
    """
    from dotenv import load_dotenv

    # Prefer repo-root .env
    env_path = Path(".env")
    if env_path.is_file():
        load_dotenv(dotenv_path=env_path, override=False)
        return

    # Fallback: common pattern ".env/.env"
    alt = Path(".env") / ".env"
    if alt.is_file():
        load_dotenv(dotenv_path=alt, override=False)


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from e


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from e
