"""
Performance Monitoring Utilities

Decorators and helpers for timing analytics and narrative calls,
flagging slow operations, and collecting in-process metrics.
"""
import logging
import statistics
import threading
import time
from functools import wraps
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def track_performance(threshold_seconds: float = 1.0, metric_type: Optional[str] = None):
    """
    Decorator to track function execution time.

    Args:
        threshold_seconds: Log warning if execution exceeds this (default: 1s)
        metric_type: When set, the duration is also recorded in MetricsCollector

    Usage:
        @track_performance(threshold_seconds=0.5)
        def build_dashboard(...):
            # ... expensive aggregation
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            func_name = f"{func.__module__}.{func.__name__}"
            start_time = time.perf_counter()

            result = func(*args, **kwargs)
            duration = time.perf_counter() - start_time

            if duration > threshold_seconds:
                logger.warning(f"SLOW: {func_name} took {duration:.2f}s")
            else:
                logger.debug(f"{func_name} took {duration:.2f}s")

            if metric_type:
                MetricsCollector.record(metric_type, duration, {'function': func_name})
            return result
        return wrapper
    return decorator


class PerformanceMonitor:
    """
    Context manager for tracking performance of code blocks.

    Usage:
        with PerformanceMonitor("dashboard_narratives"):
            # ... fan out narrative calls
    """

    def __init__(self, operation_name: str, metric_type: Optional[str] = None):
        self.operation_name = operation_name
        self.metric_type = metric_type
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time
        status = "failed" if exc_type else "ok"
        logger.info(f"PERF: {self.operation_name} - {self.duration:.2f}s ({status})")
        if self.metric_type:
            MetricsCollector.record(
                self.metric_type, self.duration, {'operation': self.operation_name, 'status': status}
            )
        return False


class MetricsCollector:
    """
    Thread-safe in-memory metrics collector.
    Narrative workers record from pool threads, so every access takes the lock.
    """

    _metrics: List[Dict[str, Any]] = []
    _max_size = 1000
    _lock = threading.Lock()

    @classmethod
    def record(cls, metric_type: str, value: float, metadata: dict = None):
        """Record a metric (thread-safe)"""
        entry = {
            'type': metric_type,
            'value': value,
            'timestamp': time.time(),
            'metadata': metadata or {}
        }

        with cls._lock:
            cls._metrics.append(entry)

            # Keep only recent metrics
            if len(cls._metrics) > cls._max_size:
                cls._metrics = cls._metrics[-cls._max_size:]

    @classmethod
    def get_stats(cls, metric_type: str = None) -> dict:
        """Get statistics for a metric type (thread-safe)"""
        with cls._lock:
            if metric_type:
                values = [m['value'] for m in cls._metrics if m['type'] == metric_type]
            else:
                values = [m['value'] for m in cls._metrics]

        if not values:
            return {'count': 0}

        return {
            'count': len(values),
            'avg': statistics.mean(values),
            'median': statistics.median(values),
            'min': min(values),
            'max': max(values),
        }

    @classmethod
    def entries(cls, metric_type: str = None) -> List[Dict[str, Any]]:
        with cls._lock:
            return [dict(m) for m in cls._metrics if metric_type is None or m['type'] == metric_type]

    @classmethod
    def clear(cls):
        """Clear all metrics (thread-safe)"""
        with cls._lock:
            cls._metrics = []
