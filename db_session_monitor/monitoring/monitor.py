"""
Database Monitor for DB Session Monitor.

This module provides the DatabaseMonitor, which polls every configured
database through the connection pool, keeps the latest session statistics,
compares them against thresholds and sends throttled alerts.

Features:
- Concurrent polling with a per-database time bound
- Connection and query failures reported as alerts
- Threshold alerts with per-database overrides
- Alert throttling per database and alert type
- Status snapshots for the HTTP surface

Author: DB Session Monitor
Version: 0.1.0
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import DatabaseConfig, MonitorConfig
from ..database.pool import ConnectionPool
from ..database.providers.registry import ProviderRegistry
from ..database.types import PoolStats, SessionStats
from ..exceptions import DatabaseError, DialError, LivenessError, QueryError
from ..notifications import Notifier
from .alerts import Alert, AlertType, format_alert
from .throttle import AlertThrottle

logger = logging.getLogger(__name__)


@dataclass
class CheckSummary:
    """Outcome of one polling cycle."""
    stats: Dict[str, SessionStats] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    @property
    def failed_count(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors


class DatabaseMonitor:
    """Polls the configured databases and raises alerts."""

    def __init__(
        self,
        config: MonitorConfig,
        notifier: Notifier,
        pool: Optional[ConnectionPool] = None,
        registry: Optional[ProviderRegistry] = None
    ):
        self.config = config
        self.notifier = notifier
        self.pool = pool or ConnectionPool(config.pool, registry=registry)
        self.throttle = AlertThrottle(config.application.alert_frequency)

        self._last_stats: Dict[str, SessionStats] = {}
        # Read by the status surface, which may run outside the event loop thread
        self._stats_lock = threading.Lock()

    def start(self) -> asyncio.Task:
        """Start the pool's background health routine."""
        return self.pool.start_health_check_routine()

    async def check_all_instances(self) -> CheckSummary:
        """
        Run one polling cycle over every configured database.

        Databases are checked concurrently; one failing database never
        prevents the others from being checked.
        """
        databases = list(self.config.databases)
        outcomes = await asyncio.gather(
            *(self.check_instance(db) for db in databases),
            return_exceptions=True
        )

        summary = CheckSummary()
        for db, outcome in zip(databases, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                summary.errors[db.name] = outcome
            else:
                summary.stats[db.name] = outcome

        if summary.errors:
            logger.warning(
                f"Monitoring cycle finished with {summary.failed_count} of {len(databases)} databases failing"
            )
        else:
            logger.debug(f"Monitoring cycle finished for {len(databases)} databases")

        return summary

    async def check_instance(self, db: DatabaseConfig) -> SessionStats:
        """
        Check one database: obtain its connection, fetch statistics and
        evaluate thresholds.

        Raises:
            DatabaseError: after the matching CONNECTION_ERROR or QUERY_ERROR alert was raised
        """
        timeout = self.config.application.check_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            conn = await asyncio.wait_for(self.pool.get_connection(db), timeout=timeout)
        except asyncio.TimeoutError as e:
            error = DialError(
                f"Timed out after {timeout:g}s waiting for a connection",
                host=db.host,
                port=db.port,
                database_name=db.name,
                engine=db.type,
                original_error=e
            )
            logger.error(f"Failed to get connection for {db.name}: {error}")
            await self._raise_alert(Alert(db.name, AlertType.CONNECTION_ERROR, f"Failed to connect: {error}"))
            raise error from e
        except DatabaseError as e:
            logger.error(f"Failed to get connection for {db.name}: {e}")
            await self._raise_alert(Alert(db.name, AlertType.CONNECTION_ERROR, f"Failed to connect: {e}"))
            raise

        try:
            stats = await asyncio.wait_for(conn.get_session_stats(), timeout=max(deadline - loop.time(), 0.0))
        except LivenessError as e:
            logger.error(f"Connection to {db.name} failed during stats collection: {e}")
            await self.pool.evict(db.name, conn)
            await self._raise_alert(Alert(db.name, AlertType.CONNECTION_ERROR, f"Connection lost: {e}"))
            raise
        except QueryError as e:
            logger.error(f"Failed to get stats for {db.name}: {e}")
            await self._raise_alert(Alert(db.name, AlertType.QUERY_ERROR, f"Failed to get stats: {e}"))
            raise
        except asyncio.TimeoutError as e:
            error = QueryError(
                f"Statistics check exceeded {timeout:g}s",
                database_name=db.name,
                engine=db.type,
                original_error=e
            )
            logger.error(f"Failed to get stats for {db.name}: {error}")
            await self._raise_alert(Alert(db.name, AlertType.QUERY_ERROR, f"Failed to get stats: {error}"))
            raise error from e

        with self._stats_lock:
            self._last_stats[db.name] = stats

        logger.info(
            f"DB: {db.name} | Total: {stats.total} | Active: {stats.active} | "
            f"Inactive: {stats.inactive} | Idle: {stats.idle} | Waiting: {stats.waiting}"
        )

        await self.check_thresholds(stats)
        return stats

    async def check_thresholds(self, stats: SessionStats) -> List[Alert]:
        """
        Compare a snapshot against the thresholds for its database.

        Returns:
            The alerts that passed the throttle and were dispatched
        """
        thresholds = self.config.thresholds_for(stats.database_name)
        checks = (
            (AlertType.HIGH_ACTIVE_CONNECTIONS, "active", stats.active, thresholds.active_connections),
            (AlertType.HIGH_INACTIVE_CONNECTIONS, "inactive", stats.inactive, thresholds.inactive_connections),
            (AlertType.HIGH_TOTAL_CONNECTIONS, "total", stats.total, thresholds.total_connections),
        )

        sent: List[Alert] = []
        for alert_type, label, value, threshold in checks:
            if value <= threshold:
                continue
            alert = Alert(
                database_name=stats.database_name,
                alert_type=alert_type,
                message=f"High number of {label} connections: {value} (threshold: {threshold})",
                value=value,
                threshold=threshold,
            )
            if await self._raise_alert(alert):
                sent.append(alert)

        return sent

    async def _raise_alert(self, alert: Alert) -> bool:
        """Count a detection and dispatch it if the throttle allows."""
        if not self.throttle.should_alert(alert.database_name, alert.alert_type):
            logger.debug(
                f"Alert throttled for {alert.database_name} {alert.alert_type.value} "
                f"(count: {self.throttle.count(alert.database_name, alert.alert_type)})"
            )
            return False

        await self.send_alert(alert)
        return True

    async def send_alert(self, alert: Alert) -> None:
        """Format and deliver an alert. Delivery failures are logged, never raised."""
        subject, body = format_alert(alert, self.config.pool.health_check_interval)
        try:
            await self.notifier.send_alert(subject, body)
        except Exception as e:
            logger.error(f"Failed to send alert for {alert.database_name} ({alert.alert_type.value}): {e}")
            return

        logger.info(f"Alert sent for {alert.database_name}: {alert.alert_type.value}")

    def get_last_stats(self) -> Dict[str, SessionStats]:
        """Get a copy of the latest snapshot per database."""
        with self._stats_lock:
            return dict(self._last_stats)

    async def get_pool_stats(self) -> Dict[str, PoolStats]:
        return await self.pool.get_all_stats()

    async def health_check(self) -> Dict[str, Optional[LivenessError]]:
        return await self.pool.health_check()

    def reset_alert_counts(self) -> None:
        self.throttle.reset()

    def get_alert_counts(self) -> Dict[str, int]:
        return self.throttle.snapshot()

    async def close(self) -> None:
        """
        Close the connection pool and drop cached statistics.

        Raises:
            PoolError: when one or more connections failed to close
        """
        try:
            await self.pool.close()
        finally:
            with self._stats_lock:
                self._last_stats.clear()
            logger.info("Database monitor closed")
