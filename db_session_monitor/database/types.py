"""
Shared data types for session and pool statistics.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionStats:
    """Point-in-time snapshot of the sessions seen by one database engine."""
    database_name: str
    active: int = 0
    inactive: int = 0
    idle: int = 0
    idle_in_transaction: int = 0
    waiting: int = 0
    total: int = 0
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class HandleStats:
    """Raw statistics of a driver-level connection pool handle."""
    open: int = 0
    idle: int = 0
    in_use: int = 0
    max: int = 0


@dataclass
class PoolStats:
    """Statistics of one pooled Connection, recomputed on every request."""
    database_name: str
    open_connections: int
    idle_connections: int
    in_use_connections: int
    max_connections: int
    is_healthy: bool
    last_health_check: datetime = field(default_factory=utc_now)
    extended: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {
            'database_name': self.database_name,
            'open_connections': self.open_connections,
            'idle_connections': self.idle_connections,
            'in_use_connections': self.in_use_connections,
            'max_connections': self.max_connections,
            'is_healthy': self.is_healthy,
            'last_health_check': self.last_health_check.isoformat(),
        }
        if self.extended is not None:
            data['extended'] = self.extended
        return data
