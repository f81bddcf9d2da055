"""
PostgreSQL connection pool manager using psycopg_pool.
Connections authenticate with a DSQL auth token signed at pool start.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from dsqlbench.auth.token_provider import TokenProvider
from dsqlbench.config import settings
from dsqlbench.db.connection import ConnectionDescriptor
from dsqlbench.db.errors import DatabaseError
from dsqlbench.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabasePoolManager:
    """
    Database connection pool manager.

    The auth token is signed once in initialize() and baked into the
    conninfo. It is not refreshed, so connections opened after the token
    expires (~15 minutes) fail to authenticate; close() and initialize()
    a new manager to pick up a fresh token.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor | None = None,
        token_provider: TokenProvider | None = None,
    ):
        self.descriptor = descriptor
        self.token_provider = token_provider or TokenProvider()
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        """Sign a token and open the connection pool."""
        if self._initialized:
            logger.warning("Database pool already initialized")
            return

        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        descriptor = self.descriptor or ConnectionDescriptor.from_settings()
        self.descriptor = descriptor
        descriptor.validate()

        logger.info(
            "Generating auth token for connection",
            host=descriptor.host,
            region=descriptor.region,
            admin=descriptor.admin,
        )
        token = await self.token_provider.generate_token(
            descriptor.host, descriptor.region, descriptor.admin
        )
        conninfo = descriptor.connection_string(token)

        try:
            logger.info("Initializing database connection pool", host=descriptor.host)

            pool_config = self._get_pool_config()

            self.pool = AsyncConnectionPool(
                conninfo=conninfo,
                open=False,
                **pool_config,
            )

            await self.pool.open()
            await self.pool.wait(timeout=pool_config["timeout"])

            # Mark as initialized before the test query, connection() checks it
            self._initialized = True

            await self._test_pool_connections()

            logger.info(
                "Database pool initialized successfully",
                min_size=pool_config["min_size"],
                max_size=pool_config["max_size"],
                timeout=pool_config["timeout"],
            )

        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            self._initialized = False
            if self.pool:
                try:
                    await self.pool.close()
                except Exception as close_error:
                    logger.warning("Error closing failed pool", error=str(close_error))
                self.pool = None
            raise DatabaseError(
                f"Database pool initialization failed: {e}", operation="initialize_pool"
            ) from e

    def _get_pool_config(self) -> dict[str, Any]:
        config = settings.get_db_pool_config()
        config.update(
            {
                "check": AsyncConnectionPool.check_connection,
                "configure": self._configure_connection,
            }
        )

        logger.debug(
            "Pool configuration loaded",
            min_size=config["min_size"],
            max_size=config["max_size"],
            timeout=config["timeout"],
            environment=settings.environment,
        )

        return config

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        """Configure each new connection from the pool."""
        conn.row_factory = dict_row
        # Autocommit so a failed statement never leaves the connection INTRANS
        await conn.set_autocommit(True)

    async def _test_pool_connections(self) -> None:
        """Test that pool connections work properly."""
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                row = await cur.fetchone()
                result = list(row.values())[0] if isinstance(row, dict) else row[0]
            if result != 1:
                raise RuntimeError("Database connection test failed - got unexpected result")

        logger.debug("Database pool connection test passed")

    async def close(self) -> None:
        """Close the connection pool gracefully."""
        if not self._initialized or self._closed:
            return

        try:
            logger.info("Closing database connection pool")

            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=30.0)

            logger.info("Database pool closed successfully")

        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Get a connection from the pool.

        Usage:
            async with db_pool.connection() as conn:
                cursor = await conn.execute("SELECT 1")
        """
        if not self._initialized:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")

        if self._closed:
            raise RuntimeError("Database pool is closed")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        """
        Health check for the database pool.

        Returns:
            dict: Health status with pool stats and round-trip latency
        """
        if not self._initialized or self._closed:
            return {
                "healthy": False,
                "error": "Pool not initialized" if not self._closed else "Pool is closed",
                "service": "database_pool",
            }

        start_time = time.perf_counter()
        try:
            await self._test_pool_connections()
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round((time.perf_counter() - start_time) * 1000, 2),
            "pool_stats": {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
                "requests_errors": stats.get("requests_errors", 0),
            },
        }
