"""Runtime configuration, read from ``PODCAST_EVENTS_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "PODCAST_EVENTS_"


def _env_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Bad {ENV_PREFIX}{name}: {raw!r}, expected {cast.__name__}") from None


@dataclass
class Config:
    """
    Settings for the validator server and the sending CLI.

    The core itself holds no state; only the JWK Set fetch timeout reaches it.
    """
    fetch_timeout: float = 10.0     # seconds, JWK Set GET
    port: int = 8080
    host: str = "0.0.0.0"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        env = os.environ if env is None else env
        return cls(
            fetch_timeout=_env_number(env, "FETCH_TIMEOUT", cls.fetch_timeout, float),
            port=_env_number(env, "PORT", cls.port, int),
            host=env.get(ENV_PREFIX + "HOST") or cls.host,
            log_level=(env.get(ENV_PREFIX + "LOG_LEVEL") or cls.log_level).upper(),
        )
