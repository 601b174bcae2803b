"""
Service runtime for DB Session Monitor.

This module provides the MonitorService, which drives a DatabaseMonitor:
an initial polling cycle, the periodic monitoring, health-check and
alert-reset loops and the uvicorn status server, until asked to stop.

Author: DB Session Monitor
Version: 0.1.0
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import uvicorn

from .api import create_status_app
from .config import MonitorConfig
from .monitoring.monitor import DatabaseMonitor

logger = logging.getLogger(__name__)


class MonitorService:
    """Runs a DatabaseMonitor until a stop event is set."""

    def __init__(self, config: MonitorConfig, monitor: DatabaseMonitor, enable_http: bool = True):
        self.config = config
        self.monitor = monitor
        self.enable_http = enable_http
        self._server: Optional[uvicorn.Server] = None
        self._tasks: List[asyncio.Task] = []

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Run until ``stop_event`` is set, then shut everything down.

        The monitor is closed on exit even when the run fails.
        """
        app_config = self.config.application
        logger.info(f"Starting database monitoring for {len(self.config.databases)} databases")

        try:
            if self.enable_http:
                self._tasks.append(asyncio.create_task(self._serve_http(), name="status-http"))

            summary = await self.monitor.check_all_instances()
            if not summary.ok:
                logger.warning(f"Initial check completed with {summary.failed_count} errors")

            self.monitor.start()

            self._tasks.extend([
                asyncio.create_task(
                    self._run_periodically("monitoring", app_config.monitoring_interval, self._monitoring_tick),
                    name="monitoring-loop"
                ),
                asyncio.create_task(
                    self._run_periodically("health check", app_config.health_check_interval, self._health_tick),
                    name="health-check-loop"
                ),
                asyncio.create_task(
                    self._run_periodically("alert reset", app_config.alert_reset_interval, self._alert_reset_tick),
                    name="alert-reset-loop"
                ),
            ])

            await stop_event.wait()
            logger.info("Stop requested, shutting down")

        finally:
            await self._shutdown()

    async def _run_periodically(self, name: str, interval: float, action: Callable[[], Awaitable[None]]) -> None:
        """Call ``action`` every ``interval`` seconds; failures are logged and the loop continues."""
        while True:
            await asyncio.sleep(interval)
            try:
                await action()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Periodic {name} task failed: {e}")

    async def _monitoring_tick(self) -> None:
        summary = await self.monitor.check_all_instances()
        if not summary.ok:
            logger.warning(f"Monitoring check completed with {summary.failed_count} errors")

    async def _health_tick(self) -> None:
        logger.info("Performing connection pool health check...")
        results = await self.monitor.health_check()
        healthy = 0
        for name, error in results.items():
            if error is None:
                healthy += 1
            else:
                logger.warning(f"Database {name} is unhealthy: {error}")
        logger.info(f"Health check complete: {healthy}/{len(results)} databases healthy")

    async def _alert_reset_tick(self) -> None:
        logger.info("Resetting alert counts...")
        self.monitor.reset_alert_counts()

    async def _serve_http(self) -> None:
        host, port = self.config.application.http_bind()
        server_config = uvicorn.Config(
            app=create_status_app(self.monitor),
            host=host,
            port=port,
            log_config=None,
            log_level=self.config.logging.level.lower(),
        )
        self._server = uvicorn.Server(server_config)

        logger.info(f"Starting HTTP status server on {host}:{port}")
        try:
            await self._server.serve()
        except SystemExit:
            # uvicorn exits when it cannot bind; monitoring keeps running
            logger.error(f"HTTP status server failed to start on {host}:{port}")

    async def _shutdown(self) -> None:
        if self._server is not None:
            self._server.should_exit = True

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            # A running uvicorn server drains through should_exit instead
            if task.get_name() != "status-http" or self._server is None:
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Task {task.get_name()} failed during shutdown: {e}")

        self._server = None

        try:
            await self.monitor.close()
        except Exception as e:
            logger.error(f"Error closing database monitor: {e}")

        logger.info("Database monitoring stopped")
