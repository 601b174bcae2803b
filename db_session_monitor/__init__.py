"""
DB Session Monitor.

Watches the session counts of MySQL and PostgreSQL databases, alerts when
they cross configured thresholds and exposes the latest observations over
HTTP.

Author: DB Session Monitor
Version: 0.1.0
"""

from .version import __version__, get_version
from .config import (
    MonitorConfig,
    DatabaseConfig,
    DatabaseEngine,
    PoolConfig,
    ThresholdConfig,
    load_config,
    parse_config,
)
from .exceptions import (
    MonitorError,
    ConfigurationError,
    DatabaseError,
    UnsupportedEngineError,
    DialError,
    LivenessError,
    QueryError,
    PoolError,
    NotificationError,
)
from .database import ConnectionPool, Connection, SessionStats, PoolStats
from .monitoring import Alert, AlertType, AlertThrottle, CheckSummary, DatabaseMonitor
from .notifications import (
    Notifier,
    EmailNotifier,
    SlackNotifier,
    WebhookNotifier,
    MultiNotifier,
    MockNotifier,
    build_notifier,
)

__all__ = [
    '__version__',
    'get_version',
    'MonitorConfig',
    'DatabaseConfig',
    'DatabaseEngine',
    'PoolConfig',
    'ThresholdConfig',
    'load_config',
    'parse_config',
    'MonitorError',
    'ConfigurationError',
    'DatabaseError',
    'UnsupportedEngineError',
    'DialError',
    'LivenessError',
    'QueryError',
    'PoolError',
    'NotificationError',
    'ConnectionPool',
    'Connection',
    'SessionStats',
    'PoolStats',
    'Alert',
    'AlertType',
    'AlertThrottle',
    'CheckSummary',
    'DatabaseMonitor',
    'Notifier',
    'EmailNotifier',
    'SlackNotifier',
    'WebhookNotifier',
    'MultiNotifier',
    'MockNotifier',
    'build_notifier',
]
