"""Database connection management with asyncpg and connection pooling."""

import asyncio
import contextlib
import json
import time
from collections.abc import AsyncIterator
from typing import Any

import asyncpg
from attrs import field, frozen
from beartype import beartype

from .config import get_settings
from .logging_utils import get_logger
from .result_types import Err, Ok, Result

logger = get_logger(__name__)


@frozen
class PoolConfig:
    """Immutable pool configuration."""

    min_connections: int = field()
    max_connections: int = field()
    connection_timeout: float = field(default=10.0)
    command_timeout: float = field(default=30.0)
    server_settings: dict[str, str] = field(factory=dict)


@frozen
class RecoveryConfig:
    """Connection recovery configuration."""

    max_retry_attempts: int = field(default=3)
    retry_delay_seconds: float = field(default=0.5)


class Database:
    """asyncpg pool manager shared by every store gateway."""

    def __init__(self) -> None:
        """Initialize database manager."""
        self._pool: asyncpg.Pool | None = None
        self._settings = get_settings()
        self._recovery_config = RecoveryConfig()
        self._slow_query_ms = 1000.0

    @beartype
    def _get_pool_config(self) -> PoolConfig:
        """Pool configuration derived from settings."""
        return PoolConfig(
            min_connections=self._settings.database_pool_min,
            max_connections=self._settings.database_pool_max,
            connection_timeout=self._settings.database_pool_timeout,
            command_timeout=self._settings.database_command_timeout,
            server_settings={
                "application_name": "travel_quotes",
                "timezone": "UTC",
            },
        )

    @beartype
    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        """Register codecs on every new connection."""
        await conn.set_type_codec(
            "jsonb",
            encoder=lambda v: json.dumps(v),
            decoder=lambda v: json.loads(v),
            schema="pg_catalog",
        )

    @beartype
    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return

        config = self._get_pool_config()
        self._pool = await asyncpg.create_pool(
            self._settings.database_url,
            min_size=config.min_connections,
            max_size=config.max_connections,
            command_timeout=config.command_timeout,
            server_settings=config.server_settings,
            init=self._init_connection,
        )
        logger.info(
            "Database pool ready (min=%s, max=%s)",
            config.min_connections,
            config.max_connections,
        )

    @beartype
    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            logger.info("Database pool closed")
        self._pool = None

    @contextlib.asynccontextmanager
    @beartype
    async def acquire(
        self, *, timeout: float | None = None
    ) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a connection, logging slow holders."""
        if self._pool is None:
            raise RuntimeError("Database not connected")

        timeout = timeout or self._settings.database_pool_timeout
        start_time = time.perf_counter()
        async with self._pool.acquire(timeout=timeout) as conn:
            yield conn
        duration_ms = (time.perf_counter() - start_time) * 1000
        if duration_ms > self._slow_query_ms:
            logger.warning("Connection held for %.1fms", duration_ms)

    @beartype
    async def execute_with_retry(
        self,
        query: str,
        *args: Any,
        max_attempts: int | None = None,
    ) -> Result[str, str]:
        """Execute query with retry on connection errors."""
        attempts = max_attempts or self._recovery_config.max_retry_attempts
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                async with self.acquire() as conn:
                    return Ok(await conn.execute(query, *args))
            except (asyncpg.PostgresConnectionError, OSError) as e:
                last_error = e
                if attempt < attempts - 1:
                    delay = self._recovery_config.retry_delay_seconds * (2**attempt)
                    await asyncio.sleep(delay)
                    continue
            except Exception as e:
                return Err(f"Query execution failed: {str(e)}")

        return Err(f"Connection failed after {attempts} attempts: {str(last_error)}")

    @beartype
    async def execute(self, query: str, *args: Any) -> str:
        """Execute a query and return the command status tag."""
        result = await self.execute_with_retry(query, *args)
        if result.is_err():
            raise RuntimeError(result.err_value)
        return result.ok_value

    @beartype
    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Execute a query and fetch all results."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    @beartype
    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """Execute a query and fetch a single row."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @beartype
    async def fetchval(self, query: str, *args: Any) -> Any:
        """Execute a query and fetch a single value."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    @contextlib.asynccontextmanager
    @beartype
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Create a database transaction context."""
        async with self.acquire() as conn:
            async with conn.transaction():
                yield conn

    @beartype
    async def health_check(self) -> Result[bool, str]:
        """Round-trip a trivial query."""
        try:
            value = await self.fetchval("SELECT 1")
            return Ok(value == 1)
        except Exception as e:
            return Err(f"Health check failed: {str(e)}")

    @property
    def is_connected(self) -> bool:
        """Check if database is connected."""
        return self._pool is not None


_database: Database | None = None


@beartype
def get_database() -> Database:
    """Get global database instance."""
    global _database
    if _database is None:
        _database = Database()
    return _database

