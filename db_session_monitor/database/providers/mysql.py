"""
MySQL Statistics Provider.

Session counts come from ``information_schema.processlist``. MySQL has no
"idle in transaction" session state, so that count is always zero and the
inactive count equals the sleeping sessions.

Author: DB Session Monitor
Version: 0.1.0
"""

from typing import Any, Dict

import aiomysql

from ...config import DatabaseConfig, DatabaseEngine, PoolConfig
from ...exceptions import DialError
from ..tls import mysql_ssl_option
from ..types import HandleStats
from .base import StatsProvider, as_count


SESSION_STATS_QUERY = """
    SELECT
        COALESCE(SUM(CASE WHEN command = 'Sleep' THEN 1 ELSE 0 END), 0) AS idle,
        COALESCE(SUM(CASE WHEN command != 'Sleep' AND state != '' THEN 1 ELSE 0 END), 0) AS active,
        COALESCE(SUM(CASE WHEN state LIKE '%Waiting%' THEN 1 ELSE 0 END), 0) AS waiting,
        COALESCE(COUNT(*), 0) AS total
    FROM information_schema.processlist
    WHERE id != CONNECTION_ID()
"""


class MySQLStatsProvider(StatsProvider):
    """Statistics provider backed by an aiomysql pool."""

    engine = DatabaseEngine.MYSQL.value
    session_stats_query = SESSION_STATS_QUERY

    async def connect(self, config: DatabaseConfig, pool_config: PoolConfig) -> Any:
        """Create an aiomysql pool and verify it with a round trip."""
        pool = None
        try:
            pool = await aiomysql.create_pool(
                host=config.host,
                port=config.port,
                user=config.username,
                password=config.password,
                db=config.database or None,
                ssl=mysql_ssl_option(config),
                minsize=min(1, pool_config.max_idle_conns),
                maxsize=pool_config.max_open_conns,
                pool_recycle=int(pool_config.conn_max_lifetime),
                connect_timeout=config.connect_timeout,
                autocommit=True,
            )
            await self.ping(pool)
            return pool

        except Exception as e:
            if pool is not None:
                pool.terminate()
                await pool.wait_closed()
            raise DialError(
                f"MySQL connection to {config.host}:{config.port} failed",
                host=config.host,
                port=config.port,
                database_name=config.name,
                engine=self.engine,
                original_error=e
            ) from e

    async def ping(self, handle: Any) -> None:
        async with handle.acquire() as conn:
            async with conn.cursor() as cursor:
                await cursor.execute("SELECT 1")
                await cursor.fetchone()

    async def fetch_session_stats(self, handle: Any) -> Dict[str, int]:
        async with handle.acquire() as conn:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                await cursor.execute(SESSION_STATS_QUERY)
                row = await cursor.fetchone()

        if row is None:
            row = {}

        idle = as_count(row.get('idle'))
        return {
            'active': as_count(row.get('active')),
            'idle': idle,
            'idle_in_transaction': 0,
            'inactive': idle,
            'waiting': as_count(row.get('waiting')),
            'total': as_count(row.get('total')),
        }

    def handle_stats(self, handle: Any) -> HandleStats:
        return HandleStats(
            open=handle.size,
            idle=handle.freesize,
            in_use=handle.size - handle.freesize,
            max=handle.maxsize,
        )

    async def close(self, handle: Any) -> None:
        handle.close()
        await handle.wait_closed()
