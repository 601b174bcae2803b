"""
Monitoring for DB Session Monitor.

Polling, threshold evaluation, alert formatting and alert throttling.
"""

from .alerts import Alert, AlertType, format_alert
from .monitor import CheckSummary, DatabaseMonitor
from .throttle import AlertThrottle

__all__ = [
    'Alert',
    'AlertType',
    'AlertThrottle',
    'CheckSummary',
    'DatabaseMonitor',
    'format_alert',
]
