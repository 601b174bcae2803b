"""
Connection Pool for DB Session Monitor.

This module provides the ConnectionPool that owns one Connection per
configured database name. Connections are created lazily, re-probed on every
lookup, evicted when a liveness probe fails and recreated on the next lookup.

Features:
- At most one live Connection per database name
- Concurrent creation for the same name collapses onto a single dial
- Unbounded dial retries with capped exponential backoff
- Concurrent health sweeps and statistics collection
- Background health-check routine

Author: DB Session Monitor
Version: 0.1.0
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from ..config import DatabaseConfig, PoolConfig
from ..exceptions import DialError, LivenessError, PoolError
from .backoff import ExponentialBackoff
from .connection import Connection
from .providers.base import StatsProvider
from .providers.registry import ProviderRegistry, default_registry
from .types import PoolStats

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Mapping from database name to a live Connection.

    The name -> Connection map is mutated only while holding ``_lock``.
    Lookups read the map without the lock; under asyncio a dictionary read
    cannot interleave with a mutation.
    """

    def __init__(self, pool_config: PoolConfig, registry: Optional[ProviderRegistry] = None):
        self.pool_config = pool_config
        self.registry = registry or default_registry
        self._connections: Dict[str, Connection] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self._health_check_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def connection_count(self) -> int:
        """Get the number of pooled connections."""
        return len(self._connections)

    def list_connections(self) -> Dict[str, Connection]:
        """Get a snapshot of the pooled connections."""
        return dict(self._connections)

    async def get_connection(self, config: DatabaseConfig) -> Connection:
        """
        Get the pooled connection for ``config.name``.

        The cached connection is returned only if it passes a fresh liveness
        probe; otherwise it is evicted and a replacement is dialed. The call
        blocks until the database is reachable.

        Raises:
            UnsupportedEngineError: when the engine has no statistics provider
            PoolError: when the pool is closed
        """
        conn = self._connections.get(config.name)
        if conn is not None:
            try:
                await conn.check_health()
                return conn
            except LivenessError as e:
                logger.warning(f"Connection to {config.name} is unhealthy, recreating: {e}")
                await self.evict(config.name, conn)

        return await self._create_connection(config)

    async def _create_connection(self, config: DatabaseConfig) -> Connection:
        """Return the connection for a name, joining an in-flight dial if any."""
        if self._closed:
            raise PoolError("Connection pool is closed", database_name=config.name)

        provider = self.registry.get_provider(config.type, database_name=config.name)

        async with self._lock:
            existing = self._connections.get(config.name)
            if existing is not None:
                # Another caller created it while we were probing the old one
                return existing

            task = self._pending.get(config.name)
            if task is None:
                task = asyncio.create_task(self._dial(config, provider), name=f"dial-{config.name}")
                task.add_done_callback(self._log_dial_failure)
                self._pending[config.name] = task

        # A caller whose deadline fires must not abort a dial other callers share
        return await asyncio.shield(task)

    async def _dial(self, config: DatabaseConfig, provider: StatsProvider) -> Connection:
        """Dial until the database answers, backing off between attempts."""
        backoff = ExponentialBackoff(self.pool_config.backoff_initial, self.pool_config.backoff_max)
        try:
            while True:
                try:
                    handle = await provider.connect(config, self.pool_config)
                    break
                except DialError as e:
                    delay = backoff.next_delay()
                    logger.warning(
                        f"Failed to connect to {config.display_name()} "
                        f"(attempt {backoff.attempts}): {e}. Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

            conn = Connection(config, provider, handle)
            async with self._lock:
                if self._closed:
                    await conn.close()
                    raise PoolError("Connection pool closed while connecting", database_name=config.name)
                self._connections[config.name] = conn

            logger.info(f"Created new connection for database: {config.name}")
            return conn

        finally:
            if self._pending.get(config.name) is asyncio.current_task():
                del self._pending[config.name]

    @staticmethod
    def _log_dial_failure(task: asyncio.Task) -> None:
        """Retrieve the outcome of a dial task so failures are always logged."""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, PoolError):
            logger.error(f"Connection dial task {task.get_name()} failed: {error}")

    async def evict(self, name: str, conn: Connection) -> bool:
        """Remove ``conn`` from the map if it is still the pooled connection, then close it."""
        async with self._lock:
            if self._connections.get(name) is not conn:
                return False
            del self._connections[name]

        try:
            await conn.close()
        except Exception as e:
            logger.warning(f"Error closing evicted connection to {name}: {e}")
        logger.info(f"Removed connection for database: {name}")
        return True

    async def remove_connection(self, name: str) -> None:
        """
        Remove and close the connection for a name.

        Raises:
            PoolError: when the connection fails to close
        """
        async with self._lock:
            conn = self._connections.pop(name, None)

        if conn is None:
            return

        try:
            await conn.close()
        except Exception as e:
            raise PoolError(
                f"Failed to close connection {name}",
                database_name=name,
                original_error=e
            ) from e
        logger.info(f"Manually removed connection for database: {name}")

    async def health_check(self) -> Dict[str, Optional[LivenessError]]:
        """
        Probe every pooled connection concurrently.

        Failing connections are evicted so the next ``get_connection`` call
        recreates them.

        Returns:
            Mapping of database name to ``None`` (healthy) or the probe error
        """
        connections = self.list_connections()
        if not connections:
            return {}

        async def probe(conn: Connection) -> Optional[LivenessError]:
            try:
                await conn.check_health()
                return None
            except LivenessError as e:
                return e

        names = list(connections)
        outcomes = await asyncio.gather(*(probe(connections[name]) for name in names))
        results = dict(zip(names, outcomes))

        unhealthy = [name for name, error in results.items() if error is not None]
        for name in unhealthy:
            logger.warning(f"Health check failed for {name}: {results[name]}")
        if unhealthy:
            await asyncio.gather(*(self.evict(name, connections[name]) for name in unhealthy))

        return results

    async def get_all_stats(self) -> Dict[str, PoolStats]:
        """
        Collect pool statistics for every pooled connection concurrently.

        Failures are logged; databases whose statistics could not be
        collected are left out of the result.
        """
        connections = self.list_connections()
        names = list(connections)
        outcomes = await asyncio.gather(
            *(self._connection_stats(name, connections[name]) for name in names),
            return_exceptions=True
        )

        stats: Dict[str, PoolStats] = {}
        errors = 0
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                errors += 1
                logger.error(f"Pool stats error: failed to get stats for {name}: {outcome}")
                continue
            stats[name] = outcome

        if errors:
            logger.warning(f"Encountered {errors} errors while collecting pool stats")

        return stats

    async def _connection_stats(self, name: str, conn: Connection) -> PoolStats:
        handle_stats = conn.handle_stats()
        is_healthy = await conn.is_healthy()

        stats = PoolStats(
            database_name=name,
            open_connections=handle_stats.open,
            idle_connections=handle_stats.idle,
            in_use_connections=handle_stats.in_use,
            max_connections=handle_stats.max,
            is_healthy=is_healthy,
            last_health_check=conn.last_health_check or datetime.now(timezone.utc),
        )

        if is_healthy and conn.provider.supports_extended_stats:
            try:
                stats.extended = await conn.fetch_extended_stats()
            except Exception as e:
                logger.warning(f"Failed to get extended stats for {name}: {e}")

        return stats

    def start_health_check_routine(self) -> asyncio.Task:
        """Start the background health sweep, running every ``health_check_interval`` seconds."""
        if self._health_check_task is None or self._health_check_task.done():
            self._health_check_task = asyncio.create_task(
                self._health_check_loop(), name="pool-health-check"
            )
        return self._health_check_task

    async def stop_health_check_routine(self) -> None:
        """Stop the background health sweep."""
        task, self._health_check_task = self._health_check_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _health_check_loop(self) -> None:
        interval = self.pool_config.health_check_interval
        while True:
            await asyncio.sleep(interval)
            try:
                results = await self.health_check()
            except Exception as e:
                logger.error(f"Connection pool health check failed: {e}")
                continue

            if results:
                healthy = sum(1 for error in results.values() if error is None)
                logger.info(f"Connection pool health check: {healthy}/{len(results)} healthy connections")

    async def close(self) -> None:
        """
        Close every pooled connection and clear the map.

        Continues past individual close failures.

        Raises:
            PoolError: wrapping the last close failure, after all connections were closed
        """
        await self.stop_health_check_routine()

        async with self._lock:
            self._closed = True
            pending = list(self._pending.values())
            connections = dict(self._connections)
            self._connections.clear()

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

        last_error: Optional[Exception] = None
        for name, conn in connections.items():
            try:
                await conn.close()
            except Exception as e:
                logger.error(f"Error closing connection to {name}: {e}")
                last_error = e

        if last_error is not None:
            raise PoolError("Failed to close one or more connections", original_error=last_error) from last_error
