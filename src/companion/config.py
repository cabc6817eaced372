from __future__ import annotations

"""Environment-driven settings for the companion service."""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Tuple


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return (env.get(name) or "").strip().lower() in ("1", "true", "yes")


def _split_origins(raw: str) -> Tuple[str, ...]:
    seen = set()
    ordered = []
    for value in raw.split(","):
        trimmed = value.strip().rstrip("/")
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        ordered.append(trimmed)
    return tuple(ordered)


@dataclass(frozen=True)
class Settings:
    upstream_url: str = "http://localhost:11434"
    model: str = "llama3"
    upstream_connect_timeout: float = 3.0
    upstream_read_timeout: float = 120.0
    allowed_origins: Tuple[str, ...] = ("http://localhost:5173",)
    session_cookie: str = "companion_session"
    cookie_secure: bool = False
    context_ttl_seconds: int = 1800
    max_upload_bytes: int = 10 * 1024 * 1024
    end_of_turn_marker: Optional[str] = None
    redis_url: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        defaults = cls()
        origins = _split_origins(env.get("COMPANION_ALLOWED_ORIGINS") or "")
        return cls(
            upstream_url=(env.get("COMPANION_UPSTREAM_URL") or defaults.upstream_url).rstrip("/"),
            model=(env.get("COMPANION_MODEL") or defaults.model).strip(),
            upstream_connect_timeout=_env_float(
                env, "COMPANION_UPSTREAM_CONNECT_TIMEOUT", defaults.upstream_connect_timeout
            ),
            upstream_read_timeout=_env_float(env, "COMPANION_UPSTREAM_READ_TIMEOUT", defaults.upstream_read_timeout),
            allowed_origins=origins or defaults.allowed_origins,
            session_cookie=(env.get("COMPANION_SESSION_COOKIE") or defaults.session_cookie).strip(),
            cookie_secure=_env_flag(env, "COMPANION_COOKIE_SECURE"),
            context_ttl_seconds=max(1, _env_int(env, "COMPANION_CONTEXT_TTL_SECONDS", defaults.context_ttl_seconds)),
            max_upload_bytes=max(1, _env_int(env, "COMPANION_MAX_UPLOAD_BYTES", defaults.max_upload_bytes)),
            end_of_turn_marker=env.get("COMPANION_END_OF_TURN_MARKER") or None,
            redis_url=(env.get("REDIS_URL") or "").strip() or None,
        )

    def origin_allowed(self, origin: Optional[str]) -> bool:
        # Browsers always send Origin on upgrade; its absence means same-origin tooling.
        if not origin:
            return True
        if "*" in self.allowed_origins:
            return True
        return origin.rstrip("/") in self.allowed_origins


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
