"""
Database helper functions for common patterns.
Wraps the pool with execute/fetch calls and maps driver errors onto the
store error taxonomy.
"""

from typing import Any

import psycopg

from dsqlbench.db.errors import DatabaseError, TransientStoreError
from dsqlbench.db.pool import DatabasePoolManager
from dsqlbench.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def translate_error(error: psycopg.Error, operation: str) -> DatabaseError:
    """
    Classify a driver error.

    OperationalError covers lost connections, pool timeouts and DSQL's
    optimistic-concurrency rejections (SQLSTATE 40001); InterfaceError covers
    a connection that went away under the client. Both are worth another
    attempt. Everything else (constraint, data, syntax errors) is permanent.
    """
    if isinstance(error, (psycopg.OperationalError, psycopg.InterfaceError)):
        return TransientStoreError(f"Transient database error: {error}", operation=operation)
    return DatabaseError(f"Query failed: {error}", operation=operation, recoverable=False)


class Database:
    """Parameterized statement execution against a pooled connection."""

    def __init__(self, pool: DatabasePoolManager):
        self.pool = pool

    async def execute(self, query: str, params: tuple = ()) -> int:
        """
        Execute query and return number of affected rows.

        Args:
            query: SQL query with %s placeholders
            params: Query parameters

        Returns:
            Number of affected rows
        """
        try:
            async with self.pool.connection() as conn:
                cursor = await conn.execute(query, params)
                return cursor.rowcount

        except psycopg.Error as e:
            logger.error("Database execute error", query=query[:100], error=str(e))
            raise translate_error(e, "execute") from e

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        """
        Execute query and return all rows as list of dicts.

        Args:
            query: SQL query with %s placeholders
            params: Query parameters

        Returns:
            List of dicts with row data
        """
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    return await cur.fetchall()

        except psycopg.Error as e:
            logger.error("Database fetch_all error", query=query[:100], error=str(e))
            raise translate_error(e, "fetch_all") from e

    async def fetch_val(self, query: str, params: tuple = ()) -> Any:
        """
        Execute query and return single value.

        Returns:
            Single value from first column of first row, or None
        """
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    row = await cur.fetchone()
                    return list(row.values())[0] if row else None

        except psycopg.Error as e:
            logger.error("Database fetch_val error", query=query[:100], error=str(e))
            raise translate_error(e, "fetch_val") from e
