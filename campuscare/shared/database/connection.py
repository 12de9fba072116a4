"""Document store connection manager with pooling and health checks.

Manages the MongoDB client with:
- Connection pooling sized from configuration
- Health checks for readiness probes
- Lazy client creation on the event loop that uses it
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Document store connection configuration.

    An empty uri means no database is configured and services fall back
    to their in-memory stores (development mode).
    """
    uri: str = ""
    database: str = "campuscare"
    min_pool_size: int = 2
    max_pool_size: int = 50
    timeout_ms: int = 5000

    @property
    def is_configured(self) -> bool:
        return bool(self.uri)

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            MONGO_URI: Connection string (unset for in-memory mode)
            MONGO_DB_NAME: Database name (default campuscare)
            MONGO_MIN_POOL: Minimum pool connections (default 2)
            MONGO_MAX_POOL: Maximum pool connections (default 50)
            MONGO_TIMEOUT_MS: Server selection timeout (default 5000)
        """
        return cls(
            uri=os.getenv("MONGO_URI", ""),
            database=os.getenv("MONGO_DB_NAME", "campuscare"),
            min_pool_size=int(os.getenv("MONGO_MIN_POOL", "2")),
            max_pool_size=int(os.getenv("MONGO_MAX_POOL", "50")),
            timeout_ms=int(os.getenv("MONGO_TIMEOUT_MS", "5000")),
        )


class ConnectionManager:
    """Owns the Motor client for one event loop.

    The client binds to the loop it first runs on, so the manager must be
    used from a single long-lived loop (see BackgroundLoop).
    """

    def __init__(self, config: DatabaseConfig):
        """Initialize connection manager.

        Args:
            config: Database configuration
        """
        self.config = config
        self._client: Optional[AsyncIOMotorClient] = None

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "database": config.database,
                "min_pool_size": config.min_pool_size,
                "max_pool_size": config.max_pool_size,
            }
        )

    def initialize(self) -> None:
        """Create the client. Safe to call more than once."""
        if self._client is not None:
            return
        if not self.config.is_configured:
            raise RuntimeError("MONGO_URI is not configured")

        self._client = AsyncIOMotorClient(
            self.config.uri,
            minPoolSize=self.config.min_pool_size,
            maxPoolSize=self.config.max_pool_size,
            serverSelectionTimeoutMS=self.config.timeout_ms,
            tz_aware=False,
        )
        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={"database": self.config.database}
        )

    def get_database(self):
        if self._client is None:
            self.initialize()
        return self._client[self.config.database]

    def get_collection(self, name: str):
        return self.get_database()[name]

    async def health_check(self) -> Dict[str, Any]:
        """Check database connectivity.

        Returns:
            Dictionary with health status
        """
        if self._client is None:
            return {"status": "not_initialized", "healthy": False}

        try:
            await self._client.admin.command("ping")
            return {
                "status": "connected",
                "healthy": True,
                "database": self.config.database,
            }
        except PyMongoError as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"error": str(e)}
            )
            return {"status": "error", "healthy": False, "error": str(e)}

    def close(self) -> None:
        """Close the client. Call during application shutdown."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("CONNECTION_POOL_CLOSED")
