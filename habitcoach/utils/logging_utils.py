"""
Structured Logging with Request Correlation IDs.

Utilities for production-ready logging around analytics runs:
- Request ID correlation across log entries (including narrative workers)
- Structured JSON logging format
- Function timing
"""
import json
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from functools import wraps
from typing import Optional

logger = logging.getLogger(__name__)

# Thread-local storage for request context
_request_context = threading.local()

_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename',
    'funcName', 'levelname', 'levelno', 'lineno',
    'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info',
    'thread', 'threadName', 'exc_info', 'exc_text',
    'message', 'taskName',
))


# ============================================================================
# REQUEST ID MANAGEMENT
# ============================================================================

def get_request_id() -> str:
    """Get current request ID or generate a new one."""
    return getattr(_request_context, 'request_id', None) or str(uuid.uuid4())[:8]


def set_request_id(request_id: str):
    """Set request ID in thread-local storage."""
    _request_context.request_id = request_id


def clear_request_context():
    """Clear all request context."""
    if hasattr(_request_context, 'request_id'):
        delattr(_request_context, 'request_id')


@contextmanager
def request_context(request_id: Optional[str] = None):
    """
    Bind a request ID for the duration of a block.

    Usage:
        with request_context() as request_id:
            build_dashboard(...)
    """
    request_id = request_id or str(uuid.uuid4())[:8]
    previous = getattr(_request_context, 'request_id', None)
    set_request_id(request_id)
    try:
        yield request_id
    finally:
        if previous is None:
            clear_request_context()
        else:
            set_request_id(previous)


# ============================================================================
# STRUCTURED LOG FORMATTER
# ============================================================================

class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in format:
    {"timestamp": "...", "level": "INFO", "request_id": "abc123", "message": "..."}
    """

    def format(self, record):
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': get_request_id(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None) -> logging.Logger:
    """
    Attach a single stream handler to the ``habitcoach`` logger.

    Level and format default to HABITCOACH_LOG_LEVEL / HABITCOACH_LOG_JSON.
    Calling it again replaces the handler instead of stacking another one.
    """
    if level is None or structured is None:
        from habitcoach.config import get_settings

        settings = get_settings()
        level = level or settings.log_level
        structured = settings.log_json if structured is None else structured

    package_logger = logging.getLogger("habitcoach")
    package_logger.setLevel(level.upper())

    for handler in list(package_logger.handlers):
        if getattr(handler, '_habitcoach_handler', False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._habitcoach_handler = True
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)
    return package_logger


# ============================================================================
# LOGGING UTILITIES
# ============================================================================

def log_with_context(level: str, message: str, **extra):
    """
    Log with current request context and extra fields.

    Usage:
        log_with_context('info', 'Dashboard built', habit_count=4)
    """
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(message, extra=extra)


# ============================================================================
# DECORATOR FOR FUNCTION LOGGING
# ============================================================================

def log_execution(log_args: bool = False, log_result: bool = False):
    """
    Decorator to log function entry/exit with timing.

    Usage:
        @log_execution(log_args=True)
        def build_weekly_report(habits, logs, ...):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            func_name = f"{func.__module__}.{func.__name__}"

            # Log entry
            if log_args:
                log_with_context('debug', f'Entering {func_name}',
                                 func_args=str(args)[:200], func_kwargs=str(kwargs)[:200])

            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
                duration = (time.perf_counter() - start) * 1000

                if log_result:
                    log_with_context('debug', f'Exited {func_name}',
                                     duration_ms=round(duration, 2),
                                     result=str(result)[:200])
                else:
                    log_with_context('debug', f'Exited {func_name}',
                                     duration_ms=round(duration, 2))

                return result
            except Exception as e:
                duration = (time.perf_counter() - start) * 1000
                log_with_context('error', f'Error in {func_name}: {e}',
                                 duration_ms=round(duration, 2),
                                 error_type=type(e).__name__)
                raise

        return wrapper
    return decorator
