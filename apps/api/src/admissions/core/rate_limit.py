"""
Rate Limiting Module

Bounds how many requests a caller may make to a sensitive endpoint (login,
registration, uploads, notification sends, bulk admin actions) within a
rolling time window.

Each allowed attempt is written to a ledger keyed by a caller-derived string
such as ``auth_login:ip:203.0.113.7``. A request is limited when the ledger
already holds ``max_attempts`` entries newer than ``now - window``.

Backends:
- Redis sorted sets (count-and-record runs as one Lua script, so it is atomic)
- The ``request_rate_limits`` database table
- An in-process dict (fallback when Redis is not connected)

Failure policy: if the backing store raises, the request is ALLOWED and a
warning is logged. This is an abuse deterrent, not a billing control.
"""

import logging
import math
import os
import re
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import wraps
from typing import Any

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis
from sqlalchemy import DateTime, Index, String, delete, func, select
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from admissions.core.config import settings
from admissions.core.database import Base, async_session_maker
from admissions.core.redis import get_redis_client

logger = logging.getLogger(__name__)


def _now() -> float:
    """Current time in epoch seconds (patched in tests)."""
    return time.time()


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, UTC)


def _to_timestamp(value: datetime) -> float:
    # Naive values come from backends without timezone support; they are UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


class RateLimitRecord(Base):
    """One allowed attempt for a rate limit key."""

    __tablename__ = "request_rate_limits"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_request_rate_limits_key_created_at", "key", "created_at"),)


@dataclass(frozen=True)
class RateLimitConfig:
    """Limit for one class of requests."""

    max_attempts: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of a rate limit check.

    Attributes:
        limited: True if the request must be rejected
        remaining: Attempts left in the current window
        limit: The configured maximum
        count: Attempts recorded in the window, including this one if allowed
        reset_at: Epoch seconds at which the oldest attempt leaves the window
    """

    limited: bool
    remaining: int
    limit: int
    count: int
    reset_at: float

    @property
    def retry_after_seconds(self) -> int:
        return max(0, math.ceil(self.reset_at - _now()))


def _evaluate(
    count: int,
    oldest: float | None,
    config: RateLimitConfig,
    now: float,
) -> RateLimitResult:
    """Decide on an attempt given the number of attempts already in the window."""
    reset_at = (oldest if oldest is not None else now) + config.window_seconds

    if count >= config.max_attempts:
        return RateLimitResult(
            limited=True,
            remaining=0,
            limit=config.max_attempts,
            count=count,
            reset_at=reset_at,
        )

    return RateLimitResult(
        limited=False,
        remaining=max(0, config.max_attempts - count - 1),
        limit=config.max_attempts,
        count=count + 1,
        reset_at=reset_at,
    )


# ============================================
# Stores
# ============================================


class RateLimitStore:
    """Base class for rate limit ledgers."""

    async def attempt(self, key: str, config: RateLimitConfig, now: float) -> RateLimitResult:
        raise NotImplementedError

    async def clear(self, key: str) -> None:
        raise NotImplementedError

    async def prune_all(self, before: float) -> int:
        """Delete every ledger entry older than ``before``. Returns rows removed."""
        raise NotImplementedError


class MemoryRateLimitStore(RateLimitStore):
    """
    In-process ledger.

    Not shared between worker processes; used when Redis is unavailable and
    in tests.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[float]] = {}

    async def attempt(self, key: str, config: RateLimitConfig, now: float) -> RateLimitResult:
        window_start = now - config.window_seconds
        entries = [ts for ts in self._entries.get(key, []) if ts >= window_start]

        result = _evaluate(len(entries), entries[0] if entries else None, config, now)
        if not result.limited:
            entries.append(now)
        self._entries[key] = entries
        return result

    async def clear(self, key: str) -> None:
        self._entries.pop(key, None)

    async def prune_all(self, before: float) -> int:
        removed = 0
        for key in list(self._entries):
            kept = [ts for ts in self._entries[key] if ts >= before]
            removed += len(self._entries[key]) - len(kept)
            if kept:
                self._entries[key] = kept
            else:
                del self._entries[key]
        return removed

    def reset(self) -> None:
        self._entries.clear()


class DatabaseRateLimitStore(RateLimitStore):
    """
    Ledger in the ``request_rate_limits`` table.

    Uses its own session so a limiter failure never touches the request's
    transaction. Count-then-insert is not atomic: two simultaneous requests
    for the same key can both be allowed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session_maker):
        self._session_factory = session_factory

    async def attempt(self, key: str, config: RateLimitConfig, now: float) -> RateLimitResult:
        window_start = _to_datetime(now - config.window_seconds)

        async with self._session_factory() as db:
            row = (
                await db.execute(
                    select(func.count(RateLimitRecord.id), func.min(RateLimitRecord.created_at)).where(
                        RateLimitRecord.key == key,
                        RateLimitRecord.created_at >= window_start,
                    )
                )
            ).one()
            count, oldest = row[0] or 0, row[1]

            result = _evaluate(count, _to_timestamp(oldest) if oldest else None, config, now)

            if not result.limited:
                db.add(RateLimitRecord(key=key, created_at=_to_datetime(now)))

            try:
                await db.execute(
                    delete(RateLimitRecord).where(
                        RateLimitRecord.key == key,
                        RateLimitRecord.created_at < window_start,
                    )
                )
            except Exception as e:
                logger.debug(f"Expired rate limit cleanup skipped for {key}: {e}")

            await db.commit()

        return result

    async def clear(self, key: str) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(RateLimitRecord).where(RateLimitRecord.key == key))
            await db.commit()

    async def prune_all(self, before: float) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(RateLimitRecord).where(RateLimitRecord.created_at < _to_datetime(before))
            )
            await db.commit()
            return result.rowcount or 0


# KEYS[1] = ledger key; ARGV = now, window, limit, member
# Drops entries older than the window, counts the rest and records the attempt
# only when under the limit.
_REDIS_ATTEMPT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. tostring(now - window))
local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local allowed = 0
if count < limit then
    redis.call('ZADD', key, now, ARGV[4])
    allowed = 1
end
redis.call('EXPIRE', key, window)
return {allowed, count, oldest[2] or ''}
"""


class RedisRateLimitStore(RateLimitStore):
    """Ledger in one Redis sorted set per key, scored by timestamp."""

    KEY_PREFIX = "rate_limit:"

    def __init__(self, client: Redis):
        self._client = client
        self._script = client.register_script(_REDIS_ATTEMPT_SCRIPT)

    async def attempt(self, key: str, config: RateLimitConfig, now: float) -> RateLimitResult:
        member = f"{now}:{uuid.uuid4().hex}"
        _allowed, count, oldest_raw = await self._script(
            keys=[f"{self.KEY_PREFIX}{key}"],
            args=[now, config.window_seconds, config.max_attempts, member],
        )
        oldest = float(oldest_raw) if oldest_raw else None
        return _evaluate(int(count), oldest, config, now)

    async def clear(self, key: str) -> None:
        await self._client.delete(f"{self.KEY_PREFIX}{key}")

    async def prune_all(self, before: float) -> int:
        # Keys carry a TTL equal to their window, Redis expires them itself
        return 0


_memory_store = MemoryRateLimitStore()
_store_override: RateLimitStore | None = None


def set_rate_limit_store(store: RateLimitStore | None) -> None:
    """Force a specific store (None restores backend selection from settings)."""
    global _store_override
    _store_override = store


def get_memory_store() -> MemoryRateLimitStore:
    return _memory_store


def get_rate_limit_store() -> RateLimitStore:
    """Select the store for ``settings.rate_limit_backend``."""
    if _store_override is not None:
        return _store_override

    backend = settings.rate_limit_backend.lower()

    if backend == "database":
        return DatabaseRateLimitStore()

    if backend == "redis":
        client = get_redis_client()
        if client is not None:
            return RedisRateLimitStore(client)
        logger.debug("Redis not connected, using in-memory rate limit store")

    return _memory_store


# ============================================
# Configuration
# ============================================


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return None


def get_limiter_config(
    prefix: str = "default",
    max_attempts: int | None = None,
    window_seconds: int | None = None,
) -> RateLimitConfig:
    """
    Resolve the limit for a class of requests.

    Precedence, highest first:
    1. ``RATE_LIMIT_<PREFIX>_MAX_ATTEMPTS`` / ``RATE_LIMIT_<PREFIX>_WINDOW_SECONDS``
    2. The values passed by the caller (the endpoint's own defaults)
    3. ``settings.rate_limit_default_*``

    The environment wins over the caller: an endpoint that passes its own
    limit is still overridden by ``RATE_LIMIT_<PREFIX>_*``. This is the reverse
    of a call-site-first lookup, where explicit arguments beat the environment.

    Args:
        prefix: Limit name, e.g. "auth_login"; normalised to upper snake case
        max_attempts: Endpoint default for the maximum attempts
        window_seconds: Endpoint default for the window length

    Returns:
        The resolved RateLimitConfig
    """
    normalized = re.sub(r"[^A-Z0-9]", "_", prefix.upper()) if prefix else "DEFAULT"

    env_max = _env_int(f"RATE_LIMIT_{normalized}_MAX_ATTEMPTS")
    env_window = _env_int(f"RATE_LIMIT_{normalized}_WINDOW_SECONDS")

    return RateLimitConfig(
        max_attempts=(
            env_max
            if env_max is not None
            else max_attempts
            if max_attempts is not None
            else settings.rate_limit_default_max_attempts
        ),
        window_seconds=(
            env_window
            if env_window is not None
            else window_seconds
            if window_seconds is not None
            else settings.rate_limit_default_window_seconds
        ),
    )


# ============================================
# Core operations
# ============================================


async def check_rate_limit(key: str, config: RateLimitConfig | None = None) -> RateLimitResult:
    """
    Count an attempt against ``key`` and report whether it is limited.

    Args:
        key: Caller-derived key (e.g. "auth_login:ip:203.0.113.7")
        config: Limit to apply; defaults to ``get_limiter_config()``

    Returns:
        RateLimitResult. Store failures yield an allowed result.

    Raises:
        ValueError: If key is empty
    """
    if not key:
        raise ValueError("Rate limit key is required")

    config = config or get_limiter_config()
    now = _now()
    store = get_rate_limit_store()

    try:
        return await store.attempt(key, config, now)
    except Exception as e:
        logger.warning(f"Rate limit store failed for {key}, allowing request: {e}")
        return RateLimitResult(
            limited=False,
            remaining=config.max_attempts,
            limit=config.max_attempts,
            count=0,
            reset_at=now + config.window_seconds,
        )


async def clear_rate_limit(key: str) -> None:
    """Forget all attempts for ``key``."""
    if not key:
        return
    try:
        await get_rate_limit_store().clear(key)
    except Exception as e:
        logger.warning(f"Failed to clear rate limit for {key}: {e}")


async def prune_expired_records() -> int:
    """
    Delete ledger entries older than the retention period.

    Registered as an hourly background job.
    """
    before = _now() - settings.rate_limit_retention_seconds
    removed = await get_rate_limit_store().prune_all(before)
    if removed:
        logger.info(f"Pruned {removed} expired rate limit records")
    return removed


# ============================================
# HTTP helpers
# ============================================


def get_client_ip(request: Request) -> str:
    """Best-effort client IP: first X-Forwarded-For hop, X-Real-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def build_rate_limit_key(request: Request, prefix: str = "global", user_id: Any = None) -> str:
    """Key by user when known, otherwise by client IP."""
    if user_id:
        return f"{prefix}:user:{user_id}"
    return f"{prefix}:ip:{get_client_ip(request)}"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "Retry-After": str(result.retry_after_seconds),
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(int(result.reset_at)),
    }


class RateLimitExceeded(HTTPException):
    """HTTP 429 carrying the standard rate limit headers."""

    def __init__(self, result: RateLimitResult, message: str | None = None):
        self.result = result
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": message
                or f"Rate limit exceeded. Try again in {result.retry_after_seconds} seconds.",
                "retry_after_seconds": result.retry_after_seconds,
            },
            headers=rate_limit_headers(result),
        )


async def enforce_rate_limit(
    request: Request,
    prefix: str,
    *,
    user_id: Any = None,
    max_attempts: int | None = None,
    window_seconds: int | None = None,
    message: str | None = None,
) -> RateLimitResult:
    """
    Check the limit for this request and raise if it is exceeded.

    Raises:
        RateLimitExceeded: When the caller is over the limit (HTTP 429)
    """
    key = build_rate_limit_key(request, prefix, user_id)
    config = get_limiter_config(prefix, max_attempts, window_seconds)
    result = await check_rate_limit(key, config)

    if result.limited:
        logger.warning(
            f"Rate limit exceeded for {key}: {config.max_attempts}/{config.window_seconds}s"
        )
        raise RateLimitExceeded(result, message)

    return result


def rate_limit(
    prefix: str,
    max_attempts: int | None = None,
    window_seconds: int | None = None,
    key_func: Callable[[Request], str] | None = None,
):
    """
    Rate limiting decorator for FastAPI endpoints.

    Usage:
        @router.post("/upload")
        @rate_limit("documents_upload", max_attempts=20, window_seconds=60)
        async def upload(request: Request, ...):
            ...

    The endpoint must accept a ``Request`` argument.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request: Request | None = kwargs.get("request")
            if request is None:
                request = next((arg for arg in args if isinstance(arg, Request)), None)

            if request is None:
                logger.warning(
                    f"Rate limit decorator on {func.__name__} couldn't find Request object"
                )
                return await func(*args, **kwargs)

            if key_func:
                config = get_limiter_config(prefix, max_attempts, window_seconds)
                result = await check_rate_limit(key_func(request), config)
                if result.limited:
                    raise RateLimitExceeded(result)
            else:
                await enforce_rate_limit(
                    request,
                    prefix,
                    max_attempts=max_attempts,
                    window_seconds=window_seconds,
                )

            return await func(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitRecord",
    "RateLimitStore",
    "MemoryRateLimitStore",
    "DatabaseRateLimitStore",
    "RedisRateLimitStore",
    "RateLimitExceeded",
    "build_rate_limit_key",
    "check_rate_limit",
    "clear_rate_limit",
    "enforce_rate_limit",
    "get_client_ip",
    "get_limiter_config",
    "get_rate_limit_store",
    "prune_expired_records",
    "rate_limit",
    "rate_limit_headers",
    "set_rate_limit_store",
]
