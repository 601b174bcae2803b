"""
Unit tests for the statistics providers and the provider registry.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from db_session_monitor.config import DatabaseConfig, PoolConfig
from db_session_monitor.database.providers import (
    MySQLStatsProvider,
    PostgreSQLStatsProvider,
    ProviderRegistry,
    default_registry,
)
from db_session_monitor.database.providers.base import SESSION_COUNT_KEYS, as_count
from db_session_monitor.database.types import HandleStats
from db_session_monitor.exceptions import DialError, UnsupportedEngineError


class _Acquire:
    """Async context manager returned by ``pool.acquire()``."""

    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _asyncpg_pool(conn):
    pool = MagicMock()
    pool.acquire.return_value = _Acquire(conn)
    pool.close = AsyncMock()
    return pool


def _aiomysql_pool(cursor):
    conn = MagicMock()
    conn.cursor.return_value = _Acquire(cursor)
    pool = MagicMock()
    pool.acquire.return_value = _Acquire(conn)
    pool.wait_closed = AsyncMock()
    return pool


@pytest.fixture
def pg_config():
    return DatabaseConfig(name="orders", type="postgres", host="db1", username="monitor", password="secret")


@pytest.fixture
def mysql_config():
    return DatabaseConfig(name="billing", type="mysql", host="db2", username="monitor", password="secret")


def test_as_count_treats_null_as_zero():
    assert as_count(None) == 0
    assert as_count(7) == 7
    assert as_count("12") == 12


class TestPostgreSQLStatsProvider:

    @pytest.mark.asyncio
    async def test_connect_creates_pool_and_pings(self, pg_config):
        conn = MagicMock()
        conn.fetchval = AsyncMock(return_value=1)
        handle = _asyncpg_pool(conn)
        pool_config = PoolConfig(max_open_conns=8, max_idle_conns=2, conn_max_idle_time=120)

        with patch("db_session_monitor.database.providers.postgresql.asyncpg.create_pool",
                   new=AsyncMock(return_value=handle)) as create_pool:
            result = await PostgreSQLStatsProvider().connect(pg_config, pool_config)

        assert result is handle
        kwargs = create_pool.call_args.kwargs
        assert kwargs["host"] == "db1"
        assert kwargs["port"] == 5432
        assert kwargs["max_size"] == 8
        assert kwargs["max_inactive_connection_lifetime"] == 120
        assert kwargs["ssl"] == "prefer"
        conn.fetchval.assert_awaited_once_with("SELECT 1")

    @pytest.mark.asyncio
    async def test_connect_failure_wraps_dial_error(self, pg_config):
        with patch("db_session_monitor.database.providers.postgresql.asyncpg.create_pool",
                   new=AsyncMock(side_effect=OSError("connection refused"))):
            with pytest.raises(DialError) as exc_info:
                await PostgreSQLStatsProvider().connect(pg_config, PoolConfig())

        assert exc_info.value.database_name == "orders"
        assert exc_info.value.context["port"] == 5432

    @pytest.mark.asyncio
    async def test_failed_ping_terminates_pool(self, pg_config):
        conn = MagicMock()
        conn.fetchval = AsyncMock(side_effect=RuntimeError("boom"))
        handle = _asyncpg_pool(conn)

        with patch("db_session_monitor.database.providers.postgresql.asyncpg.create_pool",
                   new=AsyncMock(return_value=handle)):
            with pytest.raises(DialError):
                await PostgreSQLStatsProvider().connect(pg_config, PoolConfig())

        handle.terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_fetch_session_stats(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value={
            'active': 4, 'idle': 6, 'idle_in_transaction': 2, 'waiting': 1, 'total': 12
        })

        stats = await PostgreSQLStatsProvider().fetch_session_stats(_asyncpg_pool(conn))

        assert stats == {
            'active': 4,
            'idle': 6,
            'idle_in_transaction': 2,
            'inactive': 8,
            'waiting': 1,
            'total': 12,
        }
        assert "pg_backend_pid()" in conn.fetchrow.call_args.args[0]

    @pytest.mark.asyncio
    async def test_fetch_session_stats_null_aggregates(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value={
            'active': None, 'idle': None, 'idle_in_transaction': None, 'waiting': None, 'total': 0
        })

        stats = await PostgreSQLStatsProvider().fetch_session_stats(_asyncpg_pool(conn))

        assert set(stats.values()) == {0}

    @pytest.mark.asyncio
    async def test_fetch_session_stats_no_row(self):
        conn = MagicMock()
        conn.fetchrow = AsyncMock(return_value=None)

        stats = await PostgreSQLStatsProvider().fetch_session_stats(_asyncpg_pool(conn))

        assert stats == {key: 0 for key in SESSION_COUNT_KEYS}

    @pytest.mark.asyncio
    async def test_fetch_extended_stats(self):
        conn = MagicMock()
        conn.fetchval = AsyncMock(side_effect=[1048576, "100"])
        conn.fetch = AsyncMock(return_value=[{'state': 'active', 'count': 3}, {'state': 'idle', 'count': 5}])
        provider = PostgreSQLStatsProvider()

        assert provider.supports_extended_stats
        extended = await provider.fetch_extended_stats(_asyncpg_pool(conn))

        assert extended == {
            'database_size_bytes': 1048576,
            'max_connections': 100,
            'connection_states': {'active': 3, 'idle': 5},
        }

    def test_handle_stats(self):
        handle = MagicMock()
        handle.get_size.return_value = 5
        handle.get_idle_size.return_value = 2
        handle.get_max_size.return_value = 10

        assert PostgreSQLStatsProvider().handle_stats(handle) == HandleStats(open=5, idle=2, in_use=3, max=10)


class TestMySQLStatsProvider:

    @pytest.mark.asyncio
    async def test_connect_creates_pool(self, mysql_config):
        cursor = MagicMock()
        cursor.execute = AsyncMock()
        cursor.fetchone = AsyncMock(return_value=(1,))
        handle = _aiomysql_pool(cursor)
        pool_config = PoolConfig(max_open_conns=6, conn_max_lifetime=900)

        with patch("db_session_monitor.database.providers.mysql.aiomysql.create_pool",
                   new=AsyncMock(return_value=handle)) as create_pool:
            result = await MySQLStatsProvider().connect(mysql_config, pool_config)

        assert result is handle
        kwargs = create_pool.call_args.kwargs
        assert kwargs["port"] == 3306
        assert kwargs["maxsize"] == 6
        assert kwargs["pool_recycle"] == 900
        assert kwargs["ssl"] is None
        cursor.execute.assert_awaited_once_with("SELECT 1")

    @pytest.mark.asyncio
    async def test_connect_failure_wraps_dial_error(self, mysql_config):
        with patch("db_session_monitor.database.providers.mysql.aiomysql.create_pool",
                   new=AsyncMock(side_effect=OSError("Can't connect to MySQL server"))):
            with pytest.raises(DialError) as exc_info:
                await MySQLStatsProvider().connect(mysql_config, PoolConfig())

        assert exc_info.value.engine == "mysql"

    @pytest.mark.asyncio
    async def test_fetch_session_stats(self):
        cursor = MagicMock()
        cursor.execute = AsyncMock()
        cursor.fetchone = AsyncMock(return_value={'idle': 7, 'active': 3, 'waiting': None, 'total': 10})

        stats = await MySQLStatsProvider().fetch_session_stats(_aiomysql_pool(cursor))

        assert stats == {
            'active': 3,
            'idle': 7,
            'idle_in_transaction': 0,
            'inactive': 7,
            'waiting': 0,
            'total': 10,
        }
        assert "CONNECTION_ID()" in cursor.execute.call_args.args[0]

    def test_no_extended_stats(self):
        assert MySQLStatsProvider().supports_extended_stats is False

    def test_handle_stats(self):
        handle = MagicMock(size=4, freesize=1, maxsize=10)
        assert MySQLStatsProvider().handle_stats(handle) == HandleStats(open=4, idle=1, in_use=3, max=10)

    @pytest.mark.asyncio
    async def test_close(self):
        handle = _aiomysql_pool(MagicMock())
        await MySQLStatsProvider().close(handle)
        handle.close.assert_called_once()
        handle.wait_closed.assert_awaited_once()


class TestProviderRegistry:

    def test_default_registry(self):
        assert default_registry.is_engine_supported("mysql")
        assert default_registry.is_engine_supported("POSTGRESQL")
        assert isinstance(default_registry.get_provider("postgresql"), PostgreSQLStatsProvider)
        assert isinstance(default_registry.get_provider("mysql"), MySQLStatsProvider)

    def test_fresh_provider_per_call(self):
        assert default_registry.get_provider("mysql") is not default_registry.get_provider("mysql")

    def test_unsupported_engine(self):
        registry = ProviderRegistry()
        with pytest.raises(UnsupportedEngineError) as exc_info:
            registry.get_provider("oracle", database_name="legacy")

        assert exc_info.value.engine == "oracle"
        assert exc_info.value.database_name == "legacy"

    def test_register_provider(self):
        registry = ProviderRegistry()
        registry.register_provider("mysql", MySQLStatsProvider)

        status = registry.get_registry_status()

        assert status["registered_engines"] == ["mysql"]
        assert status["providers"]["mysql"] == "MySQLStatsProvider"
