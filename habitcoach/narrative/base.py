"""
Narrative generator interface and the guarded wrapper every caller uses.

A generator turns a numeric context into coaching copy. Backends are
slow and unreliable, so GuardedNarrativeGenerator bounds each call with a
timeout, validates the payload against the schema for its kind, and
substitutes the deterministic template output on any failure.
"""
import logging
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Dict, Optional

from marshmallow import ValidationError as MarshmallowValidationError

from habitcoach.exceptions import NarrativeGenerationError, NarrativeTimeoutError
from habitcoach.helpers.monitoring import MetricsCollector
from habitcoach.models import NarrativeKind
from habitcoach.schemas import validate_narrative
from habitcoach.utils.logging_utils import clear_request_context, get_request_id, set_request_id

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0
DEFAULT_MAX_WORKERS = 4

METRIC_LATENCY = "narrative_latency"
METRIC_FALLBACK = "narrative_fallback"


class NarrativeGenerator(ABC):
    """Capability interface for anything that can write coaching copy."""

    @abstractmethod
    def generate(self, kind: NarrativeKind, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return a payload conforming to NARRATIVE_SCHEMAS[kind].

        ``context`` holds only primitives (see SerializableMixin.to_dict).
        """


class GuardedNarrativeGenerator(NarrativeGenerator):
    """
    Timeout, validation and fallback around another generator.

    Never raises for backend failures: a timeout, an exception from the
    backend or a payload that fails schema validation is logged, counted
    in MetricsCollector, and answered with ``fallback.generate``.

    Usage:
        with GuardedNarrativeGenerator(OpenAINarrativeGenerator(), timeout_seconds=5) as guarded:
            payload = guarded.generate(NarrativeKind.BREAK_RISK, context)
    """

    def __init__(
        self,
        generator: NarrativeGenerator,
        timeout_seconds: Optional[float] = None,
        fallback: Optional[NarrativeGenerator] = None,
        max_workers: Optional[int] = None,
    ):
        if timeout_seconds is None or max_workers is None:
            from habitcoach.config import get_settings

            settings = get_settings()
            timeout_seconds = timeout_seconds or settings.narrative_timeout_seconds
            max_workers = max_workers or settings.max_parallel_narratives
        if fallback is None:
            from habitcoach.narrative.fallback import TemplateNarrativeGenerator

            fallback = TemplateNarrativeGenerator()

        self.generator = generator
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="narrative")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    def shutdown(self):
        # abandoned calls keep their thread until the backend returns
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _call_backend(self, kind: NarrativeKind, context: Dict[str, Any], request_id: str) -> Dict[str, Any]:
        set_request_id(request_id)
        try:
            return self.generator.generate(kind, context)
        finally:
            clear_request_context()

    def generate(self, kind: NarrativeKind, context: Dict[str, Any]) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            future = self._executor.submit(self._call_backend, kind, context, get_request_id())
            payload = future.result(timeout=self.timeout_seconds)
            result = validate_narrative(kind, payload)
        except FuturesTimeoutError:
            future.cancel()
            error = NarrativeTimeoutError(kind.value, self.timeout_seconds)
            return self._fall_back(kind, context, error, "timeout", start)
        except MarshmallowValidationError as e:
            error = NarrativeGenerationError(kind.value, f"payload failed validation: {e.messages}")
            return self._fall_back(kind, context, error, "invalid", start)
        except Exception as e:
            # backends are third-party code, any failure maps to the fallback
            error = NarrativeGenerationError(kind.value, f"{type(e).__name__}: {e}")
            return self._fall_back(kind, context, error, "error", start)

        duration = time.perf_counter() - start
        MetricsCollector.record(METRIC_LATENCY, duration, {'kind': kind.value, 'outcome': 'ok'})
        logger.debug(f"Narrative {kind.value} generated in {duration:.2f}s")
        return result

    def _fall_back(
        self,
        kind: NarrativeKind,
        context: Dict[str, Any],
        error: NarrativeGenerationError,
        outcome: str,
        start: float,
    ) -> Dict[str, Any]:
        duration = time.perf_counter() - start
        logger.warning(f"Narrative {kind.value} fell back to template ({outcome}): {error}")
        MetricsCollector.record(METRIC_LATENCY, duration, {'kind': kind.value, 'outcome': outcome})
        MetricsCollector.record(METRIC_FALLBACK, 1, {'kind': kind.value, 'outcome': outcome})
        return self.fallback.generate(kind, context)
