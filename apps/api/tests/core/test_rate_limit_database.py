"""
Tests for the ``request_rate_limits`` table store, on SQLite.
"""

import pytest
from sqlalchemy import func, select

from admissions.core.rate_limit import (
    DatabaseRateLimitStore,
    RateLimitConfig,
    RateLimitRecord,
    _to_datetime,
    check_rate_limit,
    set_rate_limit_store,
)

NOW = 1_760_000_000.0
CONFIG = RateLimitConfig(max_attempts=3, window_seconds=900)


@pytest.fixture
def store(sqlite_session_factory):
    return DatabaseRateLimitStore(sqlite_session_factory)


async def _count(session_factory, key: str | None = None) -> int:
    stmt = select(func.count(RateLimitRecord.id))
    if key is not None:
        stmt = stmt.where(RateLimitRecord.key == key)
    async with session_factory() as db:
        return (await db.execute(stmt)).scalar_one()


class TestDatabaseStore:
    @pytest.mark.asyncio
    async def test_attempt_after_limit_is_refused(self, store, sqlite_session_factory):
        results = [await store.attempt("auth_login:ip:1.2.3.4", CONFIG, NOW + i) for i in range(4)]

        assert [r.limited for r in results] == [False, False, False, True]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        # The refused attempt is not recorded
        assert await _count(sqlite_session_factory, "auth_login:ip:1.2.3.4") == 3

    @pytest.mark.asyncio
    async def test_reset_at_is_oldest_attempt_plus_window(self, store):
        await store.attempt("k", CONFIG, NOW)
        await store.attempt("k", CONFIG, NOW + 10)
        await store.attempt("k", CONFIG, NOW + 20)

        limited = await store.attempt("k", CONFIG, NOW + 30)

        assert limited.limited is True
        assert limited.reset_at == pytest.approx(NOW + CONFIG.window_seconds, abs=1)

    @pytest.mark.asyncio
    async def test_window_expiry_allows_again_and_drops_old_rows(
        self, store, sqlite_session_factory
    ):
        for i in range(3):
            await store.attempt("k", CONFIG, NOW + i)
        assert (await store.attempt("k", CONFIG, NOW + 10)).limited is True

        later = NOW + CONFIG.window_seconds + 60
        result = await store.attempt("k", CONFIG, later)

        assert result.limited is False
        assert result.remaining == 2
        # Expired rows for the key were deleted; only the new attempt remains
        assert await _count(sqlite_session_factory, "k") == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, store):
        for i in range(3):
            await store.attempt("a", CONFIG, NOW + i)

        assert (await store.attempt("a", CONFIG, NOW + 5)).limited is True
        assert (await store.attempt("b", CONFIG, NOW + 5)).limited is False

    @pytest.mark.asyncio
    async def test_clear_forgets_key(self, store):
        for i in range(3):
            await store.attempt("k", CONFIG, NOW + i)

        await store.clear("k")

        assert (await store.attempt("k", CONFIG, NOW + 5)).limited is False

    @pytest.mark.asyncio
    async def test_prune_all_removes_only_old_rows(self, store, sqlite_session_factory):
        async with sqlite_session_factory() as db:
            db.add_all(
                [
                    RateLimitRecord(key="old", created_at=_to_datetime(NOW - 7200)),
                    RateLimitRecord(key="old", created_at=_to_datetime(NOW - 3700)),
                    RateLimitRecord(key="fresh", created_at=_to_datetime(NOW - 60)),
                ]
            )
            await db.commit()

        removed = await store.prune_all(NOW - 3600)

        assert removed == 2
        assert await _count(sqlite_session_factory) == 1
        assert await _count(sqlite_session_factory, "fresh") == 1

    @pytest.mark.asyncio
    async def test_check_rate_limit_uses_database_store(self, store, sqlite_session_factory):
        set_rate_limit_store(store)

        results = [await check_rate_limit("upload:user:42", CONFIG) for _ in range(4)]

        assert results[-1].limited is True
        assert results[-1].remaining == 0
        assert await _count(sqlite_session_factory, "upload:user:42") == 3
