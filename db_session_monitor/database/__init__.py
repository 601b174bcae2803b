"""
Database layer for DB Session Monitor.

This module provides the connection pool, the pooled Connection, the
per-engine statistics providers and the shared statistics types.
"""

from .backoff import ExponentialBackoff
from .connection import Connection, LIVENESS_TIMEOUT
from .pool import ConnectionPool
from .providers import (
    StatsProvider,
    MySQLStatsProvider,
    PostgreSQLStatsProvider,
    ProviderRegistry,
    default_registry,
)
from .types import HandleStats, PoolStats, SessionStats

__all__ = [
    'ExponentialBackoff',
    'Connection',
    'LIVENESS_TIMEOUT',
    'ConnectionPool',
    'StatsProvider',
    'MySQLStatsProvider',
    'PostgreSQLStatsProvider',
    'ProviderRegistry',
    'default_registry',
    'HandleStats',
    'PoolStats',
    'SessionStats',
]
