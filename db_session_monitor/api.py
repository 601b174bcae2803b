"""
Status HTTP surface for DB Session Monitor.

Read-only endpoints over the monitor's latest observations, plus a POST
endpoint that resets the alert counters.

Author: DB Session Monitor
Version: 0.1.0
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, status

from .monitoring.monitor import DatabaseMonitor
from .version import __version__

logger = logging.getLogger(__name__)

# Bound for the health and pool-stats endpoints, in seconds
REQUEST_TIMEOUT = 30.0


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


def create_status_app(monitor: DatabaseMonitor, request_timeout: float = REQUEST_TIMEOUT) -> FastAPI:
    """Create the FastAPI application serving the monitor's status."""
    app = FastAPI(
        title="db-session-monitor",
        description="Database session monitoring status",
        version=__version__,
        docs_url="/docs",
        redoc_url=None
    )

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        """Database health check."""
        try:
            results = await asyncio.wait_for(monitor.health_check(), timeout=request_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Health check exceeded {request_timeout:g}s")
            raise HTTPException(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                detail="Health check timed out"
            )

        return {
            "status": "ok",
            "timestamp": _timestamp(),
            "databases": {name: "ok" if error is None else str(error) for name, error in results.items()},
        }

    @app.get("/stats")
    async def stats() -> Dict[str, Any]:
        """Last session statistics."""
        return {
            "timestamp": _timestamp(),
            "stats": {name: snapshot.to_dict() for name, snapshot in monitor.get_last_stats().items()},
        }

    @app.get("/pool-stats")
    async def pool_stats() -> Dict[str, Any]:
        """Connection pool statistics."""
        try:
            results = await asyncio.wait_for(monitor.get_pool_stats(), timeout=request_timeout)
        except asyncio.TimeoutError:
            raise HTTPException(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                detail="Pool statistics timed out"
            )
        except Exception as e:
            logger.error(f"Failed to collect pool stats: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

        return {
            "timestamp": _timestamp(),
            "pool_stats": {name: entry.to_dict() for name, entry in results.items()},
        }

    @app.get("/alert-counts")
    async def alert_counts() -> Dict[str, Any]:
        """Current alert counters."""
        return {
            "timestamp": _timestamp(),
            "alert_counts": monitor.get_alert_counts(),
        }

    @app.post("/reset-alerts")
    async def reset_alerts() -> Dict[str, Any]:
        """Reset all alert counters."""
        monitor.reset_alert_counts()
        return {
            "status": "success",
            "message": "Alert counts reset",
            "timestamp": _timestamp(),
        }

    return app
