"""
Structured logging configuration for Purrify CRM.

Provides JSON-formatted logging for production environments with
human-readable fallback for development.
"""

import os
import sys
import json
import logging
from datetime import datetime, timezone
from typing import Optional


def _record_context(record: logging.LogRecord) -> dict:
    """Merge LogContext/log_with_context fields with ContextLogger bound fields."""
    context = dict(getattr(record, 'extra', None) or {})
    context.update(getattr(record, 'bound_context', None) or {})
    return context


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        context = _record_context(record)
        if context:
            log_entry['context'] = context

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_entry['error'] = {
                'name': exc_type.__name__ if exc_type else None,
                'message': str(exc_value),
                'stack': self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        reset = self.RESET if color else ''

        timestamp = datetime.now().strftime('%H:%M:%S')
        location = f'{record.module}:{record.lineno}'

        base = f'{color}[{timestamp}] {record.levelname:8}{reset} {location:30} {record.getMessage()}'

        context = _record_context(record)
        if context:
            extras = ' | '.join(f'{k}={v}' for k, v in context.items())
            base = f'{base} | {extras}'

        if record.exc_info:
            base = f'{base}\n{self.formatException(record.exc_info)}'

        return base


def _use_json_format() -> bool:
    """JSON in production (PRODUCTION=true or running under Gunicorn)."""
    return os.environ.get('PRODUCTION', '').lower() == 'true' or \
        'gunicorn' in os.environ.get('SERVER_SOFTWARE', '')


def setup_logging(
    level: str = 'INFO',
    json_format: Optional[bool] = None,
    logger_name: str = 'purrify'
) -> logging.Logger:
    """Configure and return the application logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting. If None, auto-detects based on environment.
        logger_name: Name for the logger instance.

    Returns:
        Configured logger instance.
    """
    if json_format is None:
        json_format = _use_json_format()

    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logger.level)
    handler.setFormatter(JSONFormatter() if json_format else DevelopmentFormatter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str = 'purrify') -> logging.Logger:
    """Get a logger instance. Creates child logger if name contains dots.

    Args:
        name: Logger name (e.g., 'purrify.crm.routes', 'purrify.health')
    """
    return logging.getLogger(name)


class ContextLogger(logging.LoggerAdapter):
    """Logger with bound context fields merged into every record.

    Usage:
        log = ContextLogger(get_logger('purrify.crm'), {'deal_id': 42})
        log.info('Stage changed', extra={'stage': 'Proposal'})
    """

    def process(self, msg, kwargs):
        context = dict(self.extra or {})
        context.update(kwargs.pop('extra', None) or {})
        kwargs['extra'] = {'bound_context': context}
        return msg, kwargs

    def child(self, **context) -> 'ContextLogger':
        """Return a new adapter with additional bound context."""
        merged = dict(self.extra or {})
        merged.update(context)
        return ContextLogger(self.logger, merged)


def create_logger(name: str = 'purrify', **context) -> ContextLogger:
    """Shortcut for a context-bound logger, e.g. per request or per entity."""
    return ContextLogger(get_logger(name), context)


class LogContext:
    """Context manager for adding extra fields to log records."""

    def __init__(self, logger: logging.Logger, **kwargs):
        self.logger = logger
        self.extra = kwargs
        self._old_factory = None

    def __enter__(self):
        self._old_factory = logging.getLogRecordFactory()

        extra = self.extra
        old_factory = self._old_factory

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            merged = dict(getattr(record, 'extra', None) or {})
            merged.update(extra)
            record.extra = merged
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self._old_factory)
        return False


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, logging.ERROR, etc.)
        message: Log message
        **context: Additional key-value pairs to include in log
    """
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(
        logger.name, level, '', 0, message, (), None
    )
    record.extra = context
    logger.handle(record)
