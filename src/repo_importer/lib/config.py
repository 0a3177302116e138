"""Configuration loading: CLI flags → env vars → .env file."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_OWNER_REPO_PATTERN = re.compile(r"^[A-Za-z0-9._-]+/[A-Za-z0-9._-]+$")

DEFAULT_BATCH_SIZE = 10
DEFAULT_INLINE_FETCH_LIMIT = 100_000
DEFAULT_REQUEST_TIMEOUT = 15
DEFAULT_REDIS_URL = "redis://localhost:6379/0"

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional dependency safety
    load_dotenv = None  # type: ignore[assignment]

ConfigValue = str | int | bool | None


def validate_repo_ref(repo: str) -> str:
    """Validate and normalize an ``owner/repo`` reference.

    Surrounding whitespace and a trailing ``.git`` are dropped so that values
    copied from a clone URL are accepted.
    """
    ref = repo.strip()
    if ref.endswith(".git"):
        ref = ref[: -len(".git")]
    if not _OWNER_REPO_PATTERN.match(ref):
        msg = (
            f"Invalid repo '{repo}': must be in 'owner/repo' format. "
            "Example: octocat/hello-world"
        )
        raise ValueError(msg)
    return ref


def _load_env_files() -> None:
    """Load a dotenv file from the working directory (if available)."""
    if load_dotenv is None:
        return
    load_dotenv(Path.cwd() / ".env", override=False)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: expected an integer", name, raw)
        return None


@dataclass(frozen=True)
class Config:
    """Immutable importer configuration."""

    batch_size: int = DEFAULT_BATCH_SIZE
    inline_fetch_limit: int = DEFAULT_INLINE_FETCH_LIMIT
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    redis_url: str = DEFAULT_REDIS_URL
    verbose: bool = False

    def __post_init__(self) -> None:
        """Reject non-positive batch sizes, fetch limits, and timeouts."""
        for name in ("batch_size", "inline_fetch_limit", "request_timeout"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_env(cls, overrides: dict[str, ConfigValue] | None = None) -> Config:
        """Build config from environment variables, then apply overrides.

        Priority: overrides (CLI flags) > env vars > defaults.
        """
        _load_env_files()

        env_values: dict[str, ConfigValue] = {
            "batch_size": _env_int("REPO_IMPORTER_BATCH_SIZE"),
            "inline_fetch_limit": _env_int("REPO_IMPORTER_INLINE_FETCH_LIMIT"),
            "request_timeout": _env_int("REPO_IMPORTER_REQUEST_TIMEOUT"),
            "redis_url": os.environ.get("REPO_IMPORTER_REDIS_URL")
            or os.environ.get("REDIS_URL"),
            "verbose": _env_flag("REPO_IMPORTER_VERBOSE"),
        }

        merged = {k: v for k, v in env_values.items() if v}
        if overrides:
            merged.update({k: v for k, v in overrides.items() if v is not None})

        return cls(
            batch_size=int(merged.get("batch_size", cls.batch_size)),
            inline_fetch_limit=int(
                merged.get("inline_fetch_limit", cls.inline_fetch_limit)
            ),
            request_timeout=int(merged.get("request_timeout", cls.request_timeout)),
            redis_url=str(merged.get("redis_url", cls.redis_url)),
            verbose=bool(merged.get("verbose", cls.verbose)),
        )
