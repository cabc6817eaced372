from __future__ import annotations

import json
import logging
import time
from threading import RLock
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis

from ..config import get_settings
from ..domain.errors import ContextStoreError
from ..domain.models import ExtractedContext

logger = logging.getLogger("companion.store")


class ContextBackend(Protocol):
    def put(self, token: str, text: str, filename: Optional[str] = None) -> ExtractedContext: ...

    def peek(self, token: str) -> Optional[ExtractedContext]: ...

    def take(self, token: str) -> Optional[ExtractedContext]: ...

    def discard(self, token: str) -> None: ...


class ContextStore:
    """Thread-safe in-memory context store keyed by correlation token.

    Entries expire after ``ttl_seconds`` without access. A second ``put`` for
    the same token replaces the first.
    """

    backend_name = "memory"

    def __init__(self, ttl_seconds: float = 1800, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: Dict[str, Tuple[ExtractedContext, float]] = {}
        self._lock = RLock()
        self._ttl = float(ttl_seconds)
        self._clock = clock

    def _live(self, token: str, now: float) -> Optional[ExtractedContext]:
        entry = self._data.get(token)
        if entry is None:
            return None
        ctx, expires_at = entry
        if expires_at <= now:
            del self._data[token]
            return None
        return ctx

    def put(self, token: str, text: str, filename: Optional[str] = None) -> ExtractedContext:
        with self._lock:
            now = self._clock()
            ctx = ExtractedContext(token=token, text=text, filename=filename, stored_at=time.time())
            self._data[token] = (ctx, now + self._ttl)
            return ctx

    def peek(self, token: str) -> Optional[ExtractedContext]:
        with self._lock:
            now = self._clock()
            ctx = self._live(token, now)
            if ctx is not None:
                self._data[token] = (ctx, now + self._ttl)
            return ctx

    def take(self, token: str) -> Optional[ExtractedContext]:
        with self._lock:
            ctx = self._live(token, self._clock())
            if ctx is not None:
                del self._data[token]
            return ctx

    def discard(self, token: str) -> None:
        with self._lock:
            self._data.pop(token, None)

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            stale = [token for token, (_ctx, expires_at) in self._data.items() if expires_at <= now]
            for token in stale:
                del self._data[token]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            self.purge_expired()
            return len(self._data)


class RedisContextStore:
    """Same contract as :class:`ContextStore`, kept in Redis so several
    processes can share uploads. Expiry is delegated to Redis key TTLs."""

    backend_name = "redis"
    KEY_PREFIX = "companion:context:"

    def __init__(self, url: str, ttl_seconds: int = 1800, client: Optional["redis.Redis"] = None) -> None:
        self._url = url
        self._ttl = int(ttl_seconds)
        self._client = client if client is not None else redis.Redis.from_url(url, socket_timeout=0.5)

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    @staticmethod
    def _decode(token: str, raw) -> Optional[ExtractedContext]:
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ContextStoreError(f"Corrupt context entry for token {token[:8]}") from exc
        return ExtractedContext(
            token=token,
            text=data.get("text") or "",
            filename=data.get("filename"),
            stored_at=float(data.get("stored_at") or 0.0),
        )

    def put(self, token: str, text: str, filename: Optional[str] = None) -> ExtractedContext:
        ctx = ExtractedContext(token=token, text=text, filename=filename, stored_at=time.time())
        payload = json.dumps({"text": ctx.text, "filename": ctx.filename, "stored_at": ctx.stored_at})
        try:
            self._client.setex(self._key(token), self._ttl, payload)
        except redis.RedisError as exc:
            raise ContextStoreError(f"Redis put failed: {exc}") from exc
        return ctx

    def peek(self, token: str) -> Optional[ExtractedContext]:
        try:
            raw = self._client.getex(self._key(token), ex=self._ttl)
        except redis.RedisError as exc:
            raise ContextStoreError(f"Redis peek failed: {exc}") from exc
        return self._decode(token, raw)

    def take(self, token: str) -> Optional[ExtractedContext]:
        try:
            raw = self._client.getdel(self._key(token))
        except redis.RedisError as exc:
            raise ContextStoreError(f"Redis take failed: {exc}") from exc
        return self._decode(token, raw)

    def discard(self, token: str) -> None:
        try:
            self._client.delete(self._key(token))
        except redis.RedisError as exc:
            raise ContextStoreError(f"Redis discard failed: {exc}") from exc


_store: Optional[ContextBackend] = None
_store_lock = RLock()


def get_context_store() -> ContextBackend:
    global _store
    with _store_lock:
        if _store is None:
            settings = get_settings()
            if settings.redis_url:
                logger.info("Using Redis context store")
                _store = RedisContextStore(settings.redis_url, ttl_seconds=settings.context_ttl_seconds)
            else:
                _store = ContextStore(ttl_seconds=settings.context_ttl_seconds)
        return _store


def reset_context_store() -> None:
    global _store
    with _store_lock:
        _store = None
