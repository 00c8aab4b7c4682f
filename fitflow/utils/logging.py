"""
Logging configuration and utilities for FitFlow.

Stdlib logging is configured through dictConfig with console, JSON and
rotating-file outputs; structlog sits on top and carries upload context
(user, file name, stage) as bound key/value pairs.
"""

import logging
import logging.config
import sys
from typing import Optional
from datetime import datetime
import json

import structlog
from structlog.typing import FilteringBoundLogger


# Upload context attributes promoted to top-level JSON keys
_CONTEXT_FIELDS = ('user_id', 'file_name', 'stage', 'activity_id', 'batch')

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message',
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for log shipping.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for field in _CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Colored formatter for console output.
    """

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    format_type: str = "console",
    enable_structlog: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Setup logging configuration for FitFlow.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Output format ('console', 'json')
        enable_structlog: Enable structured logging with structlog
        log_file: Optional log file path
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'console': {
                '()': 'fitflow.utils.logging.ColoredFormatter',
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S',
            },
            'json': {
                '()': 'fitflow.utils.logging.JSONFormatter',
            },
            'file': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': log_level,
                'formatter': format_type,
                'stream': sys.stdout,
            },
        },
        'loggers': {
            'fitflow': {
                'level': log_level,
                'handlers': ['console'],
                'propagate': False,
            },
            'elasticsearch': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False,
            },
            'elastic_transport': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False,
            },
            'celery': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False,
            },
        },
        'root': {
            'level': 'WARNING',
            'handlers': ['console'],
        },
    }

    if log_file:
        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': 'file',
            'filename': log_file,
            'maxBytes': 10_000_000,  # 10MB
            'backupCount': 5,
        }

        for logger_config in config['loggers'].values():
            logger_config['handlers'].append('file')
        config['root']['handlers'].append('file')

    logging.config.dictConfig(config)

    if enable_structlog:
        setup_structlog(level, json_output=(format_type == "json"))


def setup_structlog(level: str = "INFO", json_output: bool = False) -> None:
    """
    Setup structured logging with structlog.

    Events are handed to the stdlib logger of the same name, so the handlers
    configured in setup_logging decide where they end up. Timestamps come from
    those handlers' formatters.

    Args:
        level: Logging level
        json_output: Render events as JSON instead of console key/values
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **context) -> FilteringBoundLogger:
    """
    Get a structured logger, optionally bound to upload context.

    Args:
        name: Logger name, usually the module's __name__
        **context: Key/value pairs included with every event

    Returns:
        Structured logger
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_batch_progress(logger: FilteringBoundLogger, batch: int, processed: int, total: int,
                       percentage: int) -> None:
    """
    Log record batch progress.

    Args:
        logger: Bound logger
        batch: 1-based batch number
        processed: Records stored so far
        total: Records to store
        percentage: Share of records stored, as reported to progress observers
    """
    logger.info(
        "Record batch stored",
        batch=batch,
        processed=processed,
        total=total,
        percentage=percentage,
    )


def log_upload_completion(logger: FilteringBoundLogger, duration_ms: int, **result) -> None:
    """
    Log upload completion.

    Args:
        logger: Bound logger
        duration_ms: Upload duration in milliseconds
        **result: Result fields to log
    """
    logger.info("Upload completed", duration_ms=duration_ms, **result)


def log_upload_error(logger: FilteringBoundLogger, error: Exception, duration_ms: int) -> None:
    """
    Log upload failure.

    Args:
        logger: Bound logger
        error: Exception that aborted the upload
        duration_ms: Upload duration before the error
    """
    logger.error(
        "Upload failed",
        error=str(error),
        error_type=type(error).__name__,
        duration_ms=duration_ms,
    )
