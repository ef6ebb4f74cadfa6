"""
Redis Manager for gateway lifecycle management.

Wraps RedisClient with startup verification, health reporting and cleanup.
"""

import logging
from typing import Any

from redis.exceptions import RedisError

from ...core.config.settings import settings
from .redis_client import POOL_DB_MAPPING, RedisClient

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Application-level wrapper around RedisClient.

    Handles lifecycle management and health monitoring of the session pools.
    """

    _initialized: bool = False

    @classmethod
    async def initialize(
        cls, redis_url: str | None = None, max_connections: int | None = None
    ) -> None:
        """
        Initialize Redis pools and verify each one answers PING.

        Args:
            redis_url: Redis connection URL (defaults to settings.redis_url)
            max_connections: Max connections per pool (defaults to settings.redis_max_connections)
        """
        if cls._initialized:
            logger.info("Redis pools already initialized - skipping")
            return

        url = redis_url or settings.redis_url
        if not url:
            raise ValueError("Redis URL is required to initialize the session pools")
        connections = max_connections or settings.redis_max_connections

        try:
            logger.info(
                f"Setting up Redis pools from {url} (max_connections: {connections})"
            )
            RedisClient.setup(url, max_connections=connections)

            logger.info("Verifying Redis pool health...")
            await cls._verify_pools()

            cls._initialized = True

            pool_details = ", ".join(
                f"{alias}:db{db}" for alias, db in POOL_DB_MAPPING.items()
            )
            logger.info(
                f"✅ Redis pools ready: {len(POOL_DB_MAPPING)} pools ({pool_details})"
            )
        except (RedisError, OSError, ConnectionError, RuntimeError) as e:
            logger.error(f"❌ Redis pool initialization failed: {e}", exc_info=True)
            raise

    @classmethod
    async def _verify_pools(cls) -> None:
        """Health check all Redis pools, raising ConnectionError on any failure."""
        failed_pools = []

        for alias, db in POOL_DB_MAPPING.items():
            try:
                redis = await RedisClient.get(alias)
                await redis.ping()
                logger.debug(f"✅ Redis pool '{alias}' (db{db}) health check passed")
            except (RedisError, OSError, RuntimeError) as e:
                failed_pools.append(f"{alias}:db{db}")
                logger.error(f"❌ Redis pool '{alias}' (db{db}) health check failed: {e}")

        if failed_pools:
            raise ConnectionError(f"Failed Redis pools: {', '.join(failed_pools)}")

    @classmethod
    async def get_health_status(cls) -> dict[str, Any]:
        """
        Get health status of all Redis pools.

        Returns:
            Dictionary containing initialization status and per-pool health info
        """
        health_status: dict[str, Any] = {"initialized": cls._initialized, "pools": {}}

        if not cls._initialized:
            health_status["message"] = "Redis not initialized"
            return health_status

        for alias, db in POOL_DB_MAPPING.items():
            try:
                redis = await RedisClient.get(alias)
                await redis.ping()
                health_status["pools"][alias] = {
                    "status": "healthy",
                    "database": db,
                    "error": None,
                }
            except (RedisError, OSError, RuntimeError) as e:
                health_status["pools"][alias] = {
                    "status": "unhealthy",
                    "database": db,
                    "error": str(e),
                }

        return health_status

    @classmethod
    async def cleanup(cls) -> None:
        """Close all Redis pools for this process."""
        if not cls._initialized:
            logger.debug("Redis not initialized - nothing to clean up")
            return

        try:
            await RedisClient.close()
            logger.info("✅ Redis pools closed")
        except (RedisError, OSError) as e:
            logger.error(f"❌ Error closing Redis pools: {e}", exc_info=True)
        finally:
            cls._initialized = False
