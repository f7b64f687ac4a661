from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

from ghcontrib.graphql.cache import DEFAULT_TTL_SEC
from ghcontrib.graphql.scheduler import DEFAULT_USER_AGENT, GITHUB_GRAPHQL


def default_cache_dir(env: Mapping[str, str]) -> Path:
    base = env.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "ghcontrib"


@dataclass(frozen=True, slots=True)
class ClientConfig:
    token: str | None
    endpoint: str = GITHUB_GRAPHQL
    user_agent: str = DEFAULT_USER_AGENT
    max_concurrent: int = 3
    max_per_minute: int = 300
    window_sec: float = 60.0
    timeout_sec: float = 30.0
    cache_dir: Path | None = None
    cache_ttl_sec: float = DEFAULT_TTL_SEC
    use_cache: bool = True
    page_size: int = 100
    verbose: bool = False
    debug: bool = False
    dry_run: bool = False


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer in env var {name}: {raw!r}") from None
    if value < 1:
        raise ValueError(f"Env var {name} must be >= 1, got {value}")
    return value


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name)
    if raw is None:
        return False
    return raw.strip() not in {"", "0", "false", "False", "no", "NO"}


def load_client_config(
    env: Mapping[str, str] | None = None, **overrides: Any
) -> ClientConfig:
    """
    Build a ClientConfig from environment variables.

    A missing token is not an error here; the client refuses to send queries
    without one (MissingTokenError). Keyword overrides win over the
    environment, ``None`` overrides are ignored.
    """
    if env is None:
        env = os.environ

    token = (env.get("GITHUB_TOKEN") or "").strip() or None
    cache_dir_raw = env.get("GHCONTRIB_CACHE_DIR")
    config = ClientConfig(
        token=token,
        endpoint=env.get("GHCONTRIB_ENDPOINT") or GITHUB_GRAPHQL,
        max_concurrent=_env_int(env, "GHCONTRIB_MAX_CONCURRENT", 3),
        max_per_minute=_env_int(env, "GHCONTRIB_MAX_PER_MINUTE", 300),
        cache_dir=Path(cache_dir_raw) if cache_dir_raw else default_cache_dir(env),
        cache_ttl_sec=_env_int(env, "GHCONTRIB_CACHE_TTL", int(DEFAULT_TTL_SEC)),
        use_cache=not _env_flag(env, "GHCONTRIB_NO_CACHE"),
        page_size=_env_int(env, "GHCONTRIB_PAGE_SIZE", 100),
    )
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})
