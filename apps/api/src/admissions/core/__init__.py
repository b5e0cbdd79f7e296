"""
Core infrastructure shared by every module: settings, the async database
session, Redis, tokens and password hashing, and request rate limiting.

Auth dependencies live in ``admissions.core.auth`` and are imported from
there directly; that module depends on the users repository.
"""

from admissions.core.config import Settings, get_settings, settings
from admissions.core.database import Base, async_session_maker, close_db, get_db, init_db
from admissions.core.rate_limit import (
    RateLimitConfig,
    RateLimitExceeded,
    RateLimitResult,
    check_rate_limit,
    enforce_rate_limit,
    get_limiter_config,
    rate_limit,
)
from admissions.core.redis import close_redis, get_redis, get_redis_client, init_redis
from admissions.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "Base",
    "async_session_maker",
    "get_db",
    "init_db",
    "close_db",
    "get_redis",
    "get_redis_client",
    "init_redis",
    "close_redis",
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "RateLimitConfig",
    "RateLimitResult",
    "RateLimitExceeded",
    "check_rate_limit",
    "enforce_rate_limit",
    "get_limiter_config",
    "rate_limit",
]
