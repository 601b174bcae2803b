"""
Statistics providers for DB Session Monitor.

Each provider hides one database engine behind the StatsProvider contract.
"""

from .base import StatsProvider, SESSION_COUNT_KEYS
from .mysql import MySQLStatsProvider
from .postgresql import PostgreSQLStatsProvider
from .registry import ProviderRegistry, default_registry

__all__ = [
    'StatsProvider',
    'SESSION_COUNT_KEYS',
    'MySQLStatsProvider',
    'PostgreSQLStatsProvider',
    'ProviderRegistry',
    'default_registry',
]
