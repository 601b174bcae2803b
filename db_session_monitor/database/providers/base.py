"""
Base Statistics Provider Interface.

This module defines the abstract base class that every engine-specific
statistics provider implements. A provider knows how to dial its engine,
probe liveness, run the session introspection query and report the state of
the driver-level handle; the pool and the monitor only ever talk to this
contract.

Author: DB Session Monitor
Version: 0.1.0
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ...config import DatabaseConfig, PoolConfig
from ..types import HandleStats


# Keys every provider returns from fetch_session_stats
SESSION_COUNT_KEYS = ('active', 'inactive', 'idle', 'idle_in_transaction', 'waiting', 'total')


def as_count(value: Any) -> int:
    """Convert an aggregate column to an int, treating NULL as zero."""
    if value is None:
        return 0
    return int(value)


class StatsProvider(ABC):
    """Abstract base class for engine-specific statistics providers."""

    engine: str = ""
    # Introspection SQL attached to QueryError context
    session_stats_query: Optional[str] = None

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def connect(self, config: DatabaseConfig, pool_config: PoolConfig) -> Any:
        """
        Dial the database and return a live driver handle.

        Raises:
            DialError: when the database cannot be reached
        """
        pass

    @abstractmethod
    async def ping(self, handle: Any) -> None:
        """Perform a minimal round trip on the handle."""
        pass

    @abstractmethod
    async def fetch_session_stats(self, handle: Any) -> Dict[str, int]:
        """
        Run the session introspection query.

        Returns:
            Counts keyed by ``SESSION_COUNT_KEYS``, excluding the monitoring session
        """
        pass

    @abstractmethod
    def handle_stats(self, handle: Any) -> HandleStats:
        """Get open/idle/in-use counts of the driver handle."""
        pass

    @abstractmethod
    async def close(self, handle: Any) -> None:
        """Close the driver handle."""
        pass

    @property
    def supports_extended_stats(self) -> bool:
        """Check if the provider offers engine-specific extended metrics."""
        return False

    async def fetch_extended_stats(self, handle: Any) -> Optional[Dict[str, Any]]:
        """Get engine-specific extended metrics, if the engine offers any."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(engine={self.engine!r})"
