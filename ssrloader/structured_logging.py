"""
Structured logging for the SSR dev server.

Emits one JSON object per log line so dev-server output can be piped into
log aggregation tools.  Loader context passed through ``extra`` (the
module url being instantiated, the HTTP request path) is lifted into
dedicated fields.
"""

import json
import logging
import socket
import sys
from datetime import datetime, timezone
from typing import Any, Optional


class StructuredFormatter(logging.Formatter):
    """JSON log formatter for structured output.

    Example output:
    {"timestamp":"2026-02-08T12:00:00+00:00","level":"ERROR",
     "logger":"ssrloader.module_loader","message":"Error when evaluating ...",
     "module_url":"/src/app.py","service":"ssrloader","hostname":"dev-01"}
    """

    # Fields to exclude from the extra dict (already handled explicitly)
    RESERVED_ATTRS = {
        'args', 'asctime', 'created', 'exc_info', 'exc_text', 'filename',
        'funcName', 'levelname', 'levelno', 'lineno', 'module', 'msecs',
        'message', 'msg', 'name', 'pathname', 'process', 'processName',
        'relativeCreated', 'stack_info', 'taskName', 'thread', 'threadName',
    }

    def __init__(
        self,
        service_name: str = "ssrloader",
        environment: str = "development",
        include_timestamp: bool = True,
        include_hostname: bool = True,
        include_caller: bool = False,
        extra_fields: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize the structured formatter.

        Args:
            service_name: Service identifier in log output
            environment: Deployment environment
            include_timestamp: Include ISO8601 timestamp
            include_hostname: Include hostname in output
            include_caller: Include file/line/function in output
            extra_fields: Static fields added to every log line
        """
        super().__init__()
        self.service_name = service_name
        self.environment = environment
        self.include_timestamp = include_timestamp
        self.include_hostname = include_hostname
        self.include_caller = include_caller
        self.extra_fields = extra_fields or {}
        self._hostname = socket.gethostname() if include_hostname else None

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string."""
        log_entry = {}

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        log_entry["level"] = record.levelname
        log_entry["logger"] = record.name
        log_entry["message"] = record.getMessage()
        log_entry["service"] = self.service_name
        log_entry["environment"] = self.environment

        if self._hostname:
            log_entry["hostname"] = self._hostname

        if self.include_caller:
            log_entry["caller"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        if record.stack_info:
            log_entry["stack_info"] = record.stack_info

        # module_url, request_path and friends arrive through ``extra``
        for key, value in record.__dict__.items():
            if key not in self.RESERVED_ATTRS and not key.startswith('_'):
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        log_entry.update(self.extra_fields)

        try:
            return json.dumps(log_entry, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            return json.dumps({
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": record.levelname,
                "message": record.getMessage(),
                "service": self.service_name,
                "format_error": True,
            })


class StructuredLogHandler(logging.Handler):
    """Logging handler that writes structured JSON to a stream."""

    def __init__(
        self,
        stream=None,
        formatter: Optional[StructuredFormatter] = None,
        **kwargs
    ) -> None:
        super().__init__()
        self.stream = stream or sys.stdout
        if formatter:
            self.setFormatter(formatter)
        else:
            self.setFormatter(StructuredFormatter(**kwargs))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            self.stream.write(msg + "\n")
            self.stream.flush()
        except Exception:
            self.handleError(record)
