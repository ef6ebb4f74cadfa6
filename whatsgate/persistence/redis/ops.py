"""
Core Redis commands used by the session backend.

Unlike cache helpers that swallow errors, every function here raises
StorageUnavailable on failure so the SessionStore can tell "no row" apart
from "backend down" before degrading both to "no session".
"""

import logging
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from ...domain.errors import StorageUnavailable
from .redis_client import PoolAlias, RedisClient

logger = logging.getLogger("RedisSessionOps")

# Optimistic-lock retries for conditional upserts
MAX_WATCH_RETRIES = 5


@asynccontextmanager
async def _connection(op: str, key: str, alias: PoolAlias) -> AsyncIterator[Redis]:
    try:
        async with RedisClient.connection(alias=alias) as redis:
            yield redis
    except (RedisError, OSError, RuntimeError) as e:
        logger.error(f"Redis {op} error for key '{key}': {e}", exc_info=True)
        raise StorageUnavailable(f"Redis {op} failed for '{key}': {e}") from e


# =========================================================================
# SECTION: Basic Key-Value Operations
# =========================================================================
async def get(key: str, *, alias: PoolAlias = "sessions") -> str | None:
    """Retrieve the string value of a key, or None if it does not exist."""
    async with _connection("GET", key, alias) as redis:
        return await redis.get(key)


async def setex(
    key: str, seconds: int, value: str, *, alias: PoolAlias = "sessions"
) -> bool:
    """Set key to hold string value and expire it after ``seconds``."""
    async with _connection("SETEX", key, alias) as redis:
        return bool(await redis.setex(key, seconds, value))


async def delete(*keys: str, alias: PoolAlias = "sessions") -> int:
    """Delete one or more keys, returning the number removed."""
    if not keys:
        return 0
    async with _connection("DELETE", keys[0], alias) as redis:
        return await redis.delete(*keys)


# =========================================================================
# SECTION: Hash Operations
# =========================================================================
async def hget(key: str, field: str, *, alias: PoolAlias = "sessions") -> str | None:
    async with _connection("HGET", key, alias) as redis:
        return await redis.hget(key, field)


async def hgetall(key: str, *, alias: PoolAlias = "sessions") -> dict[str, str]:
    async with _connection("HGETALL", key, alias) as redis:
        return await redis.hgetall(key)


# =========================================================================
# SECTION: Sorted Set Operations (updated_at index)
# =========================================================================
async def zrangebyscore(
    key: str,
    min_score: float | str,
    max_score: float | str,
    *,
    alias: PoolAlias = "sessions",
) -> list[tuple[str, float]]:
    """Members with scores in [min, max], as (member, score) pairs."""
    async with _connection("ZRANGEBYSCORE", key, alias) as redis:
        return await redis.zrangebyscore(key, min_score, max_score, withscores=True)


# =========================================================================
# SECTION: Atomic Combined Operations
# =========================================================================
async def delete_hash_and_index(
    key: str, index_key: str, member: str, *, alias: PoolAlias = "sessions"
) -> int:
    """
    Atomically delete a record hash and remove its member from the index.

    Returns:
        Number of record keys deleted (0 or 1)
    """
    async with _connection("DELETE+ZREM", key, alias) as redis:
        async with redis.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.zrem(index_key, member)
            results = await pipe.execute()
    return int(results[0]) if results else 0


async def upsert_hash_if_newer(
    key: str,
    index_key: str,
    member: str,
    mapping: Mapping[str, str],
    updated_at: datetime,
    ttl: int,
    *,
    alias: PoolAlias = "sessions",
) -> bool:
    """
    Replace a record hash unless the stored one carries a newer timestamp.

    Uses WATCH on the record key so that two writers racing on the same
    tenant cannot interleave: the loser either retries against the fresh
    timestamp or gives way to the newer record.

    Returns:
        True if written, False if a newer record was kept
    """
    score = updated_at.timestamp()
    async with _connection("UPSERT", key, alias) as redis:
        async with redis.pipeline(transaction=True) as pipe:
            for attempt in range(1, MAX_WATCH_RETRIES + 1):
                try:
                    await pipe.watch(key)
                    current = await pipe.hget(key, "updated_at_ts")
                    if current is not None and float(current) > score:
                        await pipe.reset()
                        logger.debug(f"Kept newer record for '{key}' ({current} > {score})")
                        return False

                    pipe.multi()
                    pipe.delete(key)
                    pipe.hset(key, mapping={**mapping, "updated_at_ts": repr(score)})
                    pipe.expire(key, ttl)
                    pipe.zadd(index_key, {member: score})
                    await pipe.execute()
                    return True
                except WatchError:
                    logger.debug(
                        f"Concurrent write on '{key}', retrying ({attempt}/{MAX_WATCH_RETRIES})"
                    )
                    continue

    raise StorageUnavailable(
        f"Gave up writing '{key}' after {MAX_WATCH_RETRIES} concurrent modifications"
    )


async def purge_index_before(
    index_key: str,
    key_for: Callable[[str], str],
    cutoff: datetime,
    *,
    alias: PoolAlias = "sessions",
) -> int:
    """
    Delete every record whose index score is strictly below ``cutoff``.

    The index is WATCHed between reading the stale members and deleting them,
    so a tenant re-written in between (its ZADD touches the index) aborts the
    transaction and the stale set is read again.

    Returns:
        Number of index members removed
    """
    upper = f"({cutoff.timestamp()}"
    async with _connection("PURGE", index_key, alias) as redis:
        async with redis.pipeline(transaction=True) as pipe:
            for attempt in range(1, MAX_WATCH_RETRIES + 1):
                try:
                    await pipe.watch(index_key)
                    stale = await pipe.zrangebyscore(index_key, "-inf", upper, withscores=True)
                    if not stale:
                        await pipe.reset()
                        return 0

                    members = [member for member, _ in stale]
                    pipe.multi()
                    pipe.delete(*(key_for(member) for member in members))
                    pipe.zrem(index_key, *members)
                    await pipe.execute()
                    logger.info(f"Purged {len(members)} expired records from '{index_key}'")
                    return len(members)
                except WatchError:
                    logger.debug(
                        f"Index '{index_key}' changed during purge, retrying "
                        f"({attempt}/{MAX_WATCH_RETRIES})"
                    )
                    continue

    raise StorageUnavailable(
        f"Gave up purging '{index_key}' after {MAX_WATCH_RETRIES} concurrent modifications"
    )
