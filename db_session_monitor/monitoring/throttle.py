"""
Alert throttling.

Counts detections per (database, alert type) and decides which detections
are delivered: the first one always, then every ``frequency``-th one. With a
frequency of zero or less only the first detection is delivered until the
counters are reset.
"""

import logging
import threading
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class AlertThrottle:
    """Per (database, alert type) detection counters."""

    def __init__(self, frequency: int):
        self.frequency = frequency
        self._counts: Dict[Tuple[str, str], int] = {}
        # Read by the status surface, which may run outside the event loop thread
        self._lock = threading.Lock()

    def should_alert(self, database_name: str, alert_type: str) -> bool:
        """Record one detection and report whether it should be delivered."""
        key = (database_name, str(getattr(alert_type, 'value', alert_type)))
        with self._lock:
            count = self._counts.get(key, 0)
            self._counts[key] = count + 1

        if count == 0:
            return True
        return self.frequency > 0 and count % self.frequency == 0

    def count(self, database_name: str, alert_type: str) -> int:
        key = (database_name, str(getattr(alert_type, 'value', alert_type)))
        with self._lock:
            return self._counts.get(key, 0)

    def reset(self) -> None:
        """Clear all counters."""
        with self._lock:
            self._counts.clear()
        logger.info("Alert counts reset")

    def snapshot(self) -> Dict[str, int]:
        """Get a copy of the counters keyed by ``<database>_<ALERT_TYPE>``."""
        with self._lock:
            return {f"{database}_{alert_type}": count for (database, alert_type), count in self._counts.items()}
