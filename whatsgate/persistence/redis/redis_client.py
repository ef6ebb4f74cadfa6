# whatsgate/persistence/redis/redis_client.py

"""
Per-process Redis pools for the session store.

Uvicorn and Gunicorn workers may fork after import; a pool inherited from the
parent shares its sockets with the parent, so pools are keyed to the PID that
built them and rebuilt on first use in a new process.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import ClassVar, Literal

from redis.asyncio import ConnectionPool, Redis

log = logging.getLogger("RedisClient")

PoolAlias = Literal["sessions", "presence"]

# Logical database per pool, appended to the base URL
POOL_DB_MAPPING: dict[PoolAlias, int] = {
    "sessions": 0,  # tenant auth state + updated_at index
    "presence": 1,  # short-lived "connected" markers
}


def _strip_db(url: str) -> str:
    """Drop a trailing ``/<db>`` so each pool can pick its own database."""
    base = url.rstrip("/")
    head, _, tail = base.rpartition("/")
    if tail.isdigit() and "://" in head:
        log.warning(f"Ignoring database number in '{url}'; pools select their own")
        return head
    return base


class RedisClient:
    """
    Holds one ``Redis`` client per pool alias for the current process.

    ``sessions`` (db 0) carries session hashes and the updated_at index,
    ``presence`` (db 1) the connection markers.
    """

    _clients: ClassVar[dict[PoolAlias, Redis]] = {}
    _pid: ClassVar[int | None] = None

    @classmethod
    def setup(cls, url: str, *, max_connections: int = 64) -> None:
        """
        Build both pools from one server URL.

        ``redis://localhost:6379`` yields ``.../0`` for sessions and
        ``.../1`` for presence.
        """
        cls._reset_if_forked()
        base = _strip_db(url)
        for alias, db in POOL_DB_MAPPING.items():
            if alias in cls._clients:
                log.debug(f"Redis pool '{alias}' already set up in PID {cls._pid}")
                continue
            pool = ConnectionPool.from_url(
                f"{base}/{db}",
                decode_responses=True,
                encoding="utf-8",
                max_connections=max_connections,
            )
            cls._clients[alias] = Redis(connection_pool=pool)
            log.info(f"Redis pool '{alias}' ready in PID {cls._pid} (db {db})")

    @classmethod
    def _reset_if_forked(cls) -> None:
        pid = os.getpid()
        if cls._pid is not None and cls._pid != pid:
            # inherited from the parent process, never close them here
            cls._clients.clear()
        cls._pid = pid

    @classmethod
    def is_configured(cls) -> bool:
        return bool(cls._clients) and cls._pid == os.getpid()

    @classmethod
    async def close(cls) -> None:
        """Disconnect every pool owned by this process."""
        if cls._pid != os.getpid():
            return
        for alias, client in list(cls._clients.items()):
            log.info(f"Closing Redis pool '{alias}' in PID {cls._pid}")
            await client.connection_pool.disconnect()
        cls._clients.clear()
        cls._pid = None

    @classmethod
    async def get(cls, alias: PoolAlias = "sessions") -> Redis:
        """Return the client for ``alias``; raises if setup() has not run here."""
        if not cls.is_configured() or alias not in cls._clients:
            raise RuntimeError(f"Redis pool '{alias}' is not set up in this process")
        return cls._clients[alias]

    @classmethod
    @asynccontextmanager
    async def connection(cls, alias: PoolAlias = "sessions") -> AsyncIterator[Redis]:
        """``async with RedisClient.connection("presence") as r: ...``"""
        yield await cls.get(alias)
