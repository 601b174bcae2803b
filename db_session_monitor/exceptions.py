"""
Exceptions for DB Session Monitor.

This module provides the exception hierarchy used by the connection pool,
the statistics providers, the monitor and the notification channels. Every
error carries a context dictionary and the original driver error (when any)
so failures can be logged and serialized consistently.

Author: DB Session Monitor
Version: 0.1.0
"""

from typing import Any, Dict, Optional
from datetime import datetime, timezone


class MonitorError(Exception):
    """Base exception for all monitor errors."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        """String representation of the error."""
        base_msg = self.message
        if self.original_error is not None:
            base_msg += f": {self.original_error}"
        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'timestamp': self.timestamp.isoformat(),
            'context': self.context,
            'original_error': str(self.original_error) if self.original_error else None
        }


class ConfigurationError(MonitorError):
    """Exception raised when the configuration cannot be loaded or is invalid."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            context={'config_path': config_path},
            original_error=original_error
        )
        self.config_path = config_path


class DatabaseError(MonitorError):
    """Base exception for database-related errors."""

    def __init__(
        self,
        message: str,
        database_name: Optional[str] = None,
        engine: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        **additional_info: Any
    ):
        context = {
            'database_name': database_name,
            'engine': engine,
            'operation': operation,
        }
        context.update(additional_info)
        super().__init__(message, context=context, original_error=original_error)
        self.database_name = database_name
        self.engine = engine
        self.operation = operation

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.database_name:
            base_msg += f" (Database: {self.database_name})"
        return base_msg


class UnsupportedEngineError(DatabaseError):
    """Exception raised when no statistics provider exists for an engine."""

    def __init__(self, engine: str, database_name: Optional[str] = None, **kwargs: Any):
        super().__init__(
            f"Unsupported database engine: {engine}",
            database_name=database_name,
            engine=engine,
            operation="create_connection",
            **kwargs
        )


class DialError(DatabaseError):
    """Exception raised when a database cannot be reached. Retried by the pool."""

    def __init__(self, message: str, host: Optional[str] = None, port: Optional[int] = None, **kwargs: Any):
        kwargs.setdefault('operation', 'dial')
        super().__init__(message, host=host, port=port, **kwargs)


class LivenessError(DatabaseError):
    """Exception raised when a liveness probe fails on a pooled connection."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault('operation', 'liveness_probe')
        super().__init__(message, **kwargs)


class QueryError(DatabaseError):
    """Exception raised when the statistics query fails on a live connection."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault('operation', 'query')
        super().__init__(message, query=self._sanitize_query(query) if query else None, **kwargs)

    @staticmethod
    def _sanitize_query(query: str) -> str:
        """Collapse whitespace and truncate long queries for logging."""
        query = " ".join(query.split())
        if len(query) > 500:
            query = query[:500] + "... [truncated]"
        return query


class PoolError(DatabaseError):
    """Exception raised when pool-level operations fail."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault('operation', 'pool')
        super().__init__(message, **kwargs)


class NotificationError(MonitorError):
    """Exception raised when an alert cannot be delivered."""

    def __init__(
        self,
        message: str,
        channel_type: Optional[str] = None,
        recipient: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            context={
                'channel_type': channel_type,
                'recipient': recipient
            },
            original_error=original_error
        )
        self.channel_type = channel_type
