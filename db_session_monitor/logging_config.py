"""
Logging setup for DB Session Monitor.

This module configures the root logger from LoggingConfig, either with the
classic text format or with a JSON formatter emitting one object per record.

Author: DB Session Monitor
Version: 0.1.0
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Pattern

from .config import LogFormat, LoggingConfig

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# password=..., pwd=... and DSN credentials (user:secret@host)
DEFAULT_MASKING_PATTERN = r"(?i)((?:password|passwd|pwd)\s*[=:]\s*)\S+|(?<=://)([^:/@\s]+):[^@\s]+(?=@)"
MASKING_REPLACEMENT = "***MASKED***"

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {'message', 'asctime'}


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, indent: Optional[int] = None, masking_pattern: Optional[str] = DEFAULT_MASKING_PATTERN):
        super().__init__()
        self.indent = indent
        self._pattern: Optional[Pattern] = re.compile(masking_pattern) if masking_pattern else None

    def _mask(self, text: str) -> str:
        if self._pattern is None:
            return text

        def replace(match):
            if match.group(1) is not None:
                return match.group(1) + MASKING_REPLACEMENT
            return f"{match.group(2)}:{MASKING_REPLACEMENT}"

        return self._pattern.sub(replace, text)

    def to_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': self._mask(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            data['exception'] = self._mask(self.formatException(record.exc_info))

        # Fields passed through ``extra=``
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith('_'):
                data[key] = value

        return data

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        return json.dumps(
            self.to_dict(record),
            indent=self.indent,
            default=str,
            ensure_ascii=False,
            separators=(',', ':') if self.indent is None else None
        )


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure the root logger.

    Replaces any handlers already installed on the root logger, so calling
    it more than once does not duplicate output.
    """
    config = config or LoggingConfig()

    handler = logging.StreamHandler(sys.stderr)
    if config.format == LogFormat.JSON:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(config.level)

    # Driver loggers are noisy at INFO
    for name in ('asyncio', 'aiomysql', 'asyncpg', 'aiosmtplib'):
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))
