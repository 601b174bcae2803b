"""
Alert types and message formatting.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple


class AlertType(str, Enum):
    """Alert type tags."""
    HIGH_ACTIVE_CONNECTIONS = "HIGH_ACTIVE_CONNECTIONS"
    HIGH_INACTIVE_CONNECTIONS = "HIGH_INACTIVE_CONNECTIONS"
    HIGH_TOTAL_CONNECTIONS = "HIGH_TOTAL_CONNECTIONS"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    QUERY_ERROR = "QUERY_ERROR"


@dataclass
class Alert:
    """Transient alert event. Exists only while it is formatted and dispatched."""
    database_name: str
    alert_type: AlertType
    message: str
    value: Optional[int] = None
    threshold: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_threshold_alert(self) -> bool:
        return self.value is not None and self.threshold is not None


ALERT_BODY_HEADER = "DATABASE MONITORING ALERT"

ALERT_BODY_FOOTER = """This is an automated alert from the database monitoring system.
Please check the database status immediately.

Connection Pool Information:
- Pool connections are managed automatically
- Unhealthy connections are automatically recreated
- Health checks run every {interval} seconds"""


def format_alert(alert: Alert, health_check_interval: float) -> Tuple[str, str]:
    """
    Render an alert as a notification subject and plain-text body.

    Returns:
        Tuple of (subject, body)
    """
    alert_type = AlertType(alert.alert_type).value
    subject = f"DB Monitor ALERT: {alert.database_name} - {alert_type}"

    lines = [
        ALERT_BODY_HEADER,
        "",
        f"Database: {alert.database_name}",
        f"Alert Type: {alert_type}",
        f"Message: {alert.message}",
    ]
    if alert.is_threshold_alert:
        lines.append(f"Current Value: {alert.value}")
        lines.append(f"Configured Threshold: {alert.threshold}")
    lines.append(f"Timestamp: {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}")
    lines.append("")
    lines.append(ALERT_BODY_FOOTER.format(interval=f"{health_check_interval:g}"))

    return subject, "\n".join(lines) + "\n"
