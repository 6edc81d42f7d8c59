"""
Logging Setup for PuppetDB Service Discovery

Human-readable console output by default; one JSON object per line when
structured logging is enabled. Both handlers stamp the cycle correlation ID.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, TextIO

from prometheus_puppetdb.utils.cycle_context import NO_CORRELATION_ID, CycleContextFilter

# Extra attributes copied into JSON log lines when present on a record
_EXTRA_FIELDS = ("job", "output", "artifact", "target", "cycle", "duration")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', NO_CORRELATION_ID),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(
    level: str = "INFO",
    json_logging: bool = False,
    stream: Optional[TextIO] = None
) -> logging.Handler:
    """
    Configure the root logger.

    Logs go to stderr by default so that the stdout output method only
    prints configuration.

    Args:
        level: Log level name
        json_logging: Emit JSON lines instead of console format
        stream: Stream to write to (defaults to stderr)

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(correlation_id)s] %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
    handler.addFilter(CycleContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    return handler
