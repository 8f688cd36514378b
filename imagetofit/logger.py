#!/usr/bin/env python3
"""
Structured logging for ImageToFit.

Supports two modes:
- Human-readable: Pretty output for interactive use
- JSON: Machine-parseable structured logs for log shippers

Set ITF_LOG_FORMAT=json for structured output.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime, timezone


class StructuredFormatter(logging.Formatter):
    """JSON formatter for machine-parseable logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name,
        }

        # Add extra fields if present
        if hasattr(record, 'extra_fields'):
            log_obj['fields'] = record.extra_fields

        if record.exc_info:
            log_obj['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for interactive use."""

    LEVEL_PREFIXES = {
        'DEBUG': '[DEBUG]',
        'INFO': '',
        'WARNING': '[WARN]',
        'ERROR': '[ERROR]',
        'CRITICAL': '[CRITICAL]',
    }

    def format(self, record: logging.LogRecord) -> str:
        prefix = self.LEVEL_PREFIXES.get(record.levelname, '')
        msg = record.getMessage()

        fields = getattr(record, 'extra_fields', None)
        if fields:
            pairs = ' | '.join(f"{k}={v}" for k, v in fields.items())
            msg = f"{msg} [{pairs}]"

        if prefix:
            return f"{prefix} {msg}"
        return msg


class ImageToFitLogger:
    """Structured logger shared by the normalizer, encoder and webapp."""

    _instance = None
    _logger = None
    _lock = threading.Lock()  # Thread-safe singleton
    _json_mode = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._logger is None:
            self._setup_logger()

    def _setup_logger(self):
        """Configure the logger."""
        self._logger = logging.getLogger('imagetofit')
        self._logger.setLevel(logging.INFO)

        # Prevent duplicate handlers
        if self._logger.handlers:
            return

        self._json_mode = os.environ.get('ITF_LOG_FORMAT', '').lower() == 'json'

        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.DEBUG)

        if self._json_mode:
            console.setFormatter(StructuredFormatter())
        else:
            console.setFormatter(HumanFormatter())

        self._logger.addHandler(console)

    @property
    def json_mode(self) -> bool:
        return self._json_mode

    @property
    def level(self) -> int:
        return self._logger.level

    def set_level(self, level: str):
        """Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
        }
        self._logger.setLevel(level_map.get(str(level).upper(), logging.INFO))

    def set_json_mode(self, enabled: bool):
        """Enable or disable JSON output mode."""
        self._json_mode = enabled
        for handler in self._logger.handlers:
            if isinstance(handler, logging.StreamHandler):
                if enabled:
                    handler.setFormatter(StructuredFormatter())
                else:
                    handler.setFormatter(HumanFormatter())

    # === Core logging methods ===

    def _log(self, level: int, msg: str, **kwargs):
        """Internal log method with extra fields support."""
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "(unknown file)",
            0,
            msg,
            (),
            None,
        )
        if kwargs:
            record.extra_fields = kwargs
        self._logger.handle(record)

    def debug(self, msg: str, **kwargs):
        """Debug level message."""
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        """Info level message."""
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        """Warning level message."""
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        """Error level message."""
        self._log(logging.ERROR, msg, **kwargs)


# Thread-safe global logger instance
_logger = None
_logger_lock = threading.Lock()


def get_logger() -> ImageToFitLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        with _logger_lock:
            if _logger is None:
                _logger = ImageToFitLogger()
    return _logger
