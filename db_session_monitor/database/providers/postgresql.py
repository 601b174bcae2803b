"""
PostgreSQL Statistics Provider.

Session counts come from ``pg_stat_activity``. The provider also offers
extended statistics (database size, the ``max_connections`` setting and a
per-state session histogram) that the pool reports opportunistically.

Author: DB Session Monitor
Version: 0.1.0
"""

from typing import Any, Dict, Optional

import asyncpg

from ...config import DatabaseConfig, DatabaseEngine, PoolConfig
from ...exceptions import DialError
from ..tls import postgresql_ssl_option
from ..types import HandleStats
from .base import StatsProvider, as_count


SESSION_STATS_QUERY = """
    SELECT
        COALESCE(SUM(CASE WHEN state = 'active' THEN 1 ELSE 0 END), 0) AS active,
        COALESCE(SUM(CASE WHEN state = 'idle' THEN 1 ELSE 0 END), 0) AS idle,
        COALESCE(SUM(CASE WHEN state = 'idle in transaction' THEN 1 ELSE 0 END), 0) AS idle_in_transaction,
        COALESCE(SUM(CASE WHEN wait_event IS NOT NULL THEN 1 ELSE 0 END), 0) AS waiting,
        COALESCE(COUNT(*), 0) AS total
    FROM pg_stat_activity
    WHERE pid != pg_backend_pid()
    AND state IS NOT NULL
"""

DATABASE_SIZE_QUERY = "SELECT pg_database_size(current_database())"

MAX_CONNECTIONS_QUERY = "SHOW max_connections"

CONNECTION_STATES_QUERY = """
    SELECT state, COUNT(*) AS count
    FROM pg_stat_activity
    WHERE pid != pg_backend_pid()
    AND state IS NOT NULL
    GROUP BY state
"""


class PostgreSQLStatsProvider(StatsProvider):
    """Statistics provider backed by an asyncpg pool."""

    engine = DatabaseEngine.POSTGRESQL.value
    session_stats_query = SESSION_STATS_QUERY

    async def connect(self, config: DatabaseConfig, pool_config: PoolConfig) -> Any:
        """Create an asyncpg pool and verify it with a round trip."""
        pool = None
        try:
            pool = await asyncpg.create_pool(
                host=config.host,
                port=config.port,
                user=config.username or None,
                password=config.password or None,
                database=config.database or None,
                ssl=postgresql_ssl_option(config),
                min_size=min(1, pool_config.max_idle_conns),
                max_size=pool_config.max_open_conns,
                max_inactive_connection_lifetime=pool_config.conn_max_idle_time,
                timeout=config.connect_timeout,
                command_timeout=config.query_timeout,
                server_settings={'application_name': 'db_session_monitor'},
            )
            await self.ping(pool)
            return pool

        except Exception as e:
            if pool is not None:
                pool.terminate()
            raise DialError(
                f"PostgreSQL connection to {config.host}:{config.port} failed",
                host=config.host,
                port=config.port,
                database_name=config.name,
                engine=self.engine,
                original_error=e
            ) from e

    async def ping(self, handle: Any) -> None:
        async with handle.acquire() as conn:
            await conn.fetchval("SELECT 1")

    async def fetch_session_stats(self, handle: Any) -> Dict[str, int]:
        async with handle.acquire() as conn:
            row = await conn.fetchrow(SESSION_STATS_QUERY)

        if row is None:
            row = {}

        idle = as_count(row.get('idle'))
        idle_in_transaction = as_count(row.get('idle_in_transaction'))
        return {
            'active': as_count(row.get('active')),
            'idle': idle,
            'idle_in_transaction': idle_in_transaction,
            'inactive': idle + idle_in_transaction,
            'waiting': as_count(row.get('waiting')),
            'total': as_count(row.get('total')),
        }

    @property
    def supports_extended_stats(self) -> bool:
        return True

    async def fetch_extended_stats(self, handle: Any) -> Optional[Dict[str, Any]]:
        """Get database size, connection limit and the per-state session histogram."""
        async with handle.acquire() as conn:
            database_size = await conn.fetchval(DATABASE_SIZE_QUERY)
            max_connections = await conn.fetchval(MAX_CONNECTIONS_QUERY)
            rows = await conn.fetch(CONNECTION_STATES_QUERY)

        return {
            'database_size_bytes': as_count(database_size),
            'max_connections': as_count(max_connections),
            'connection_states': {row['state']: as_count(row['count']) for row in rows},
        }

    def handle_stats(self, handle: Any) -> HandleStats:
        size = handle.get_size()
        idle = handle.get_idle_size()
        return HandleStats(
            open=size,
            idle=idle,
            in_use=size - idle,
            max=handle.get_max_size(),
        )

    async def close(self, handle: Any) -> None:
        await handle.close()
