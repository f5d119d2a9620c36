"""In-memory response cache that enforces the upstream read rate limit.

The upstream rejects some read methods when they are called more than once per
five minutes with identical parameters. Responses for those methods are kept
for the rate window, and concurrent misses for the same key share a single
upstream call.

This is a single-process best-effort store: a restart loses everything, which
is fine because every entry can be re-fetched.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import BaseModel

from ..domain.ledger.entities import JsonRpcResponse, Layer

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60.0

RATE_LIMITED_METHODS = frozenset(
    {
        "list_virtual_account",
        "get_virtual_account",
        "list_virtual_transaction",
        "list_beneficiary",
        "get_beneficiary",
        "list_payments_v2",
        "get_payment",
    }
)

Producer = Callable[[], Awaitable[JsonRpcResponse]]


def canonical_params(params: Mapping[str, Any]) -> str:
    """Serialize params with keys sorted at every depth."""
    return json.dumps(
        params,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def cache_key(method: str, layer: Layer | str, params: Mapping[str, Any]) -> str:
    return f"{Layer(layer).value}:{method}:{canonical_params(params)}"


def should_cache(method: str) -> bool:
    return method in RATE_LIMITED_METHODS


def method_of(key: str) -> Optional[str]:
    """The method part of a ``cache_key``, or None for keys of another shape."""
    parts = key.split(":", 2)
    return parts[1] if len(parts) == 3 else None


def _has_error(data: Any) -> bool:
    if isinstance(data, Mapping):
        return data.get("error") is not None
    return getattr(data, "error", None) is not None


def _iso(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


@dataclass
class CacheEntry:
    data: JsonRpcResponse
    cached_at: float
    expires_at: float

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


class CacheInfo(BaseModel):
    """Data-age details a caller can show next to cached data."""

    cached: bool
    cached_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    remaining_ms: Optional[int] = None
    next_allowed_at: Optional[datetime] = None
    age_seconds: Optional[int] = None


class CacheStats(BaseModel):
    hits: int
    misses: int
    size: int
    hit_rate: float


@dataclass
class CachedResult:
    data: JsonRpcResponse
    from_cache: bool
    cache_info: CacheInfo


class RateLimitedCache:
    """TTL cache keyed by ``layer:method:params`` with in-flight de-duplication.

    ``from_cache`` is False only for the caller whose producer actually ran;
    callers served from a stored entry or from another caller's in-flight
    request get True, unless that request came back with an error.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        *,
        method_ttls: Optional[Mapping[str, float]] = None,
        sweep_interval: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self._default_ttl = default_ttl
        self._method_ttls = dict(method_ttls or {})
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

        self._inflight: dict[str, asyncio.Future[JsonRpcResponse]] = {}
        self._sweeper: Optional[asyncio.Task[None]] = None

    def ttl_for(self, method: str) -> float:
        return self._method_ttls.get(method, self._default_ttl)

    # -- storage ---------------------------------------------------------

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key``; expired entries are evicted."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if not entry.is_live(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def set(self, key: str, data: JsonRpcResponse, ttl: Optional[float] = None) -> None:
        """Store ``data`` unless it carries an application error.

        Without ``ttl`` the method named in the key picks the TTL.
        """
        if _has_error(data):
            return
        if ttl is None:
            method = method_of(key)
            ttl = self._default_ttl if method is None else self.ttl_for(method)
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(
                data=data, cached_at=now, expires_at=now + ttl
            )

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_method(self, method: str, layer: Layer | str) -> int:
        """Drop every entry for ``method`` on ``layer``. Returns the count removed."""
        prefix = f"{Layer(layer).value}:{method}:"
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_live(now)]
            for k in expired:
                del self._entries[k]
        return len(expired)

    # -- observability ---------------------------------------------------

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                hit_rate=self._hits / total if total else 0.0,
            )

    def time_remaining_ms(self, key: str) -> Optional[int]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        remaining = entry.expires_at - self._clock()
        return int(remaining * 1000) if remaining > 0 else None

    def info(self, key: str) -> CacheInfo:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.is_live(now):
            return CacheInfo(cached=False)
        return CacheInfo(
            cached=True,
            cached_at=_iso(entry.cached_at),
            expires_at=_iso(entry.expires_at),
            remaining_ms=int((entry.expires_at - now) * 1000),
            next_allowed_at=_iso(entry.expires_at),
            age_seconds=int(now - entry.cached_at),
        )

    # -- read-through ----------------------------------------------------

    async def with_cache(
        self,
        key: str,
        producer: Producer,
        ttl: Optional[float] = None,
        force_refresh: bool = False,
    ) -> CachedResult:
        """Serve ``key`` from cache, or run ``producer`` exactly once for it.

        A second caller that arrives while the producer for the same key is
        still running awaits that call instead of issuing its own. If the
        producer raises, every waiter receives the same exception.
        """
        if not force_refresh:
            entry = self.get(key)
            if entry is not None:
                return CachedResult(entry.data, True, self.info(key))

        pending = self._inflight.get(key)
        if pending is not None:
            data = await asyncio.shield(pending)
            # Error responses are shared but never stored.
            return CachedResult(data, not _has_error(data), self.info(key))

        future: asyncio.Future[JsonRpcResponse] = (
            asyncio.get_running_loop().create_future()
        )
        self._inflight[key] = future
        try:
            try:
                data = await producer()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                future.set_exception(e)
                # Mark retrieved so an unawaited future does not log a warning.
                future.exception()
                raise
            self.set(key, data, ttl)
            future.set_result(data)
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

        return CachedResult(data, False, self.info(key))

    def inflight_count(self) -> int:
        return len(self._inflight)

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep on the running loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            removed = self.cleanup_expired()
            if removed:
                logger.debug("Swept %d expired ledger cache entries", removed)

    async def aclose(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        self.clear()
