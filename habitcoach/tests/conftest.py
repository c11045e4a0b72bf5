"""
Pytest configuration and fixtures for the habit coach tests.

Every test starts with an empty metrics store, no bound request id and
settings rebuilt from a clean environment.
"""
import pytest

from habitcoach.config import get_settings
from habitcoach.helpers.monitoring import MetricsCollector
from habitcoach.models import HabitType
from habitcoach.utils.logging_utils import clear_request_context

from factories import REFERENCE_DATE, HabitFactory, StubNarrativeGenerator


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    """Isolates global state between tests."""
    for name in ("OPENAI_API_KEY", "OPENAI_BASE_URL", "HABITCOACH_TIMEZONE",
                 "HABITCOACH_NARRATIVE_TIMEOUT", "HABITCOACH_MAX_PARALLEL_NARRATIVES"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    MetricsCollector.clear()
    clear_request_context()
    yield
    get_settings.cache_clear()
    MetricsCollector.clear()
    clear_request_context()


@pytest.fixture
def reference_date():
    """The caller's "today" for every computation (a Wednesday)."""
    return REFERENCE_DATE


@pytest.fixture
def habit():
    """A BUILD habit without a phase path."""
    return HabitFactory.create(name='Read')


@pytest.fixture
def phased_habit():
    """A BUILD habit on phase 1 of a three-phase "7天" path."""
    return HabitFactory.with_phases(3, current_phase=1, name='Run')


@pytest.fixture
def break_habit():
    """A BREAK habit."""
    return HabitFactory.create(name='Snacking', type=HabitType.BREAK)


@pytest.fixture
def stub_generator():
    """Narrative backend answering every kind with a valid payload."""
    return StubNarrativeGenerator()
