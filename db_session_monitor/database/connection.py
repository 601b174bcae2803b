"""
Pooled database Connection.

A Connection owns one driver handle and the statistics provider bound to it
at creation time. It exposes the liveness probe and the session statistics
fetch used by the pool and the monitor.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import DatabaseConfig
from ..exceptions import LivenessError, QueryError
from .providers.base import StatsProvider
from .types import HandleStats, SessionStats

logger = logging.getLogger(__name__)

# Fixed bound for liveness probes, in seconds
LIVENESS_TIMEOUT = 5.0


class Connection:
    """A live database handle plus its bound StatsProvider."""

    def __init__(
        self,
        config: DatabaseConfig,
        provider: StatsProvider,
        handle: Any,
        liveness_timeout: float = LIVENESS_TIMEOUT
    ):
        self.connection_id = f"{config.type}_{uuid.uuid4().hex[:8]}"
        self.config = config
        self.provider = provider
        self.handle = handle
        self.liveness_timeout = liveness_timeout
        self.created_at = datetime.now(timezone.utc)
        self.last_health_check: Optional[datetime] = None
        self.last_health_ok: Optional[bool] = None
        self.is_closed = False

    @property
    def name(self) -> str:
        return self.config.name

    async def check_health(self) -> None:
        """
        Run a short liveness probe, independent of the statistics query.

        Raises:
            LivenessError: when the probe fails or times out
        """
        self.last_health_check = datetime.now(timezone.utc)
        try:
            if self.is_closed:
                raise RuntimeError("connection is closed")
            await asyncio.wait_for(self.provider.ping(self.handle), timeout=self.liveness_timeout)
        except asyncio.TimeoutError as e:
            self.last_health_ok = False
            raise LivenessError(
                f"Liveness probe timed out after {self.liveness_timeout}s",
                database_name=self.name,
                engine=self.config.type,
                original_error=e
            ) from e
        except Exception as e:
            self.last_health_ok = False
            raise LivenessError(
                "Liveness probe failed",
                database_name=self.name,
                engine=self.config.type,
                original_error=e
            ) from e

        self.last_health_ok = True

    async def is_healthy(self) -> bool:
        """Check liveness, returning a flag instead of raising."""
        try:
            await self.check_health()
        except LivenessError:
            return False
        return True

    async def get_session_stats(self) -> SessionStats:
        """
        Fetch a session statistics snapshot.

        The liveness probe always runs first; the provider query is bounded
        by the database's query timeout.

        Raises:
            LivenessError: when the connection is not usable
            QueryError: when the probe passes but the statistics query fails
        """
        await self.check_health()

        try:
            counts = await asyncio.wait_for(
                self.provider.fetch_session_stats(self.handle),
                timeout=self.config.query_timeout
            )
        except asyncio.TimeoutError as e:
            raise QueryError(
                f"Statistics query timed out after {self.config.query_timeout}s",
                database_name=self.name,
                engine=self.config.type,
                query=self.provider.session_stats_query,
                original_error=e
            ) from e
        except Exception as e:
            raise QueryError(
                f"Failed to query {self.config.type} statistics",
                database_name=self.name,
                engine=self.config.type,
                query=self.provider.session_stats_query,
                original_error=e
            ) from e

        return SessionStats(
            database_name=self.name,
            active=counts.get('active', 0),
            inactive=counts.get('inactive', 0),
            idle=counts.get('idle', 0),
            idle_in_transaction=counts.get('idle_in_transaction', 0),
            waiting=counts.get('waiting', 0),
            total=counts.get('total', 0),
            timestamp=datetime.now(timezone.utc),
        )

    def handle_stats(self) -> HandleStats:
        return self.provider.handle_stats(self.handle)

    async def fetch_extended_stats(self) -> Optional[Dict[str, Any]]:
        """Get engine-specific extended metrics, bounded by the query timeout."""
        if not self.provider.supports_extended_stats:
            return None
        return await asyncio.wait_for(
            self.provider.fetch_extended_stats(self.handle),
            timeout=self.config.query_timeout
        )

    async def close(self) -> None:
        """Close the underlying handle."""
        if self.is_closed:
            return
        self.is_closed = True
        await self.provider.close(self.handle)
        logger.debug(f"Closed connection {self.connection_id} for database: {self.name}")

    def __repr__(self) -> str:
        return f"Connection(name={self.name!r}, id={self.connection_id!r}, engine={self.config.type!r})"
