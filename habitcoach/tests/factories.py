"""
Test factories for creating test data.

Usage:
    from factories import HabitFactory, LogFactory

    habit = HabitFactory.with_phases(3, current_phase=2)
    logs = LogFactory.series(REFERENCE_DATE, [True, True, False, True])
"""
import copy
import threading
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence

from habitcoach.models import (
    Habit, HabitLog, HabitType, NarrativeKind, PhaseConfig, TriggerRecord, TriggerType,
)
from habitcoach.narrative.base import NarrativeGenerator
from habitcoach.utils.logging_utils import get_request_id

# A Wednesday
REFERENCE_DATE = date(2025, 3, 12)


class LogFactory:
    """Factory for creating habit logs."""

    @staticmethod
    def create(day: date, completed: bool = True, **kwargs) -> HabitLog:
        defaults = {
            'logged_at': day,
            'completed': completed,
        }
        defaults.update(kwargs)
        return HabitLog(**defaults)

    @staticmethod
    def series(reference_date: date, pattern: Sequence[Optional[bool]], **kwargs) -> List[HabitLog]:
        """
        One log per entry, newest first.

        pattern[0] is the reference date, pattern[i] is i days before it.
        None leaves that day without a log.
        """
        return [
            LogFactory.create(reference_date - timedelta(days=offset), completed, **kwargs)
            for offset, completed in enumerate(pattern)
            if completed is not None
        ]

    @staticmethod
    def at(day: date, hour: int, completed: bool = True, **kwargs) -> HabitLog:
        """Log with a completion time on ``day`` at ``hour``:00."""
        return LogFactory.create(day, completed, completion_time=datetime.combine(day, time(hour)), **kwargs)


class PhaseFactory:
    """Factory for creating phase configs."""

    @staticmethod
    def create(phase: int, **kwargs) -> PhaseConfig:
        defaults = {
            'phase': phase,
            'name': f'Phase {phase}',
            'duration_hint': '7天',
            'micro_habit': f'Micro habit {phase}',
            'success_criteria': f'Criteria {phase}',
            'difficulty_score': phase,
        }
        defaults.update(kwargs)
        return PhaseConfig(**defaults)

    @staticmethod
    def path(count: int, **kwargs) -> tuple:
        return tuple(PhaseFactory.create(n, **kwargs) for n in range(1, count + 1))


class HabitFactory:
    """Factory for creating habits."""

    counter = 0

    @classmethod
    def create(cls, **kwargs) -> Habit:
        cls.counter += 1
        defaults = {
            'id': f'habit_{cls.counter}',
            'name': f'Test Habit {cls.counter}',
            'type': HabitType.BUILD,
            'created_at': REFERENCE_DATE - timedelta(days=30),
        }
        defaults.update(kwargs)
        return Habit(**defaults)

    @classmethod
    def with_phases(cls, count: int = 3, current_phase: int = 1, duration_hint: str = '7天', **kwargs) -> Habit:
        return cls.create(
            phases=PhaseFactory.path(count, duration_hint=duration_hint),
            current_phase=current_phase,
            **kwargs,
        )


class TriggerFactory:
    """Factory for creating trigger records."""

    @staticmethod
    def create(timestamp: datetime, **kwargs) -> TriggerRecord:
        defaults = {
            'timestamp': timestamp,
            'trigger_type': TriggerType.EMOTIONAL,
            'context': 'stress at work',
            'intensity': 6,
            'resisted': False,
        }
        defaults.update(kwargs)
        return TriggerRecord(**defaults)

    @staticmethod
    def days_ago(days: int, hour: int = 21, **kwargs) -> TriggerRecord:
        day = REFERENCE_DATE - timedelta(days=days)
        return TriggerFactory.create(datetime.combine(day, time(hour)), **kwargs)


# Minimal payloads that satisfy each narrative schema
VALID_PAYLOADS = {
    NarrativeKind.HABIT_INSIGHT: {
        'positive': {'title': 'On a roll', 'content': 'Eight days straight'},
        'pattern': {'title': 'Mornings', 'content': 'You finish early in the day'},
        'suggestion': {'title': 'Stack it', 'content': 'Pair it with coffee', 'action': 'Read after coffee'},
    },
    NarrativeKind.MOTIVATION_MESSAGE: {
        'message': 'Look how far you have come',
        'motivation_type': 'HOPE_FUTURE',
        'action_suggestion': 'Read one page now',
    },
    NarrativeKind.PHASE_RECOMMENDATION: {
        'message': 'Stay here a little longer',
        'encouragement': 'You are building a base',
        'tips': ['Keep the same time'],
    },
    NarrativeKind.TRIGGER_ANALYSIS: {
        'patterns': [{'type': 'EMOTIONAL', 'description': 'Stress drives it', 'confidence': 0.7, 'evidence': ['work']}],
        'deep_need': 'Relief from stress',
        'substitute_behaviors': ['Go for a walk'],
        'environment_design': ['Keep snacks out of sight'],
    },
    NarrativeKind.BREAK_RISK: {
        'summary': 'Risk is low',
        'preventive_actions': ['Keep going'],
    },
    NarrativeKind.DASHBOARD_SUMMARY: {
        'headline': 'A strong month',
        'insights': ['Reading leads the pack'],
    },
    NarrativeKind.WEEKLY_REPORT: {
        'suggestions': [{'category': 'TIMING', 'suggestion': 'Read at 8pm', 'expected_impact': 'More consistency'}],
        'next_week_goals': [{'goal': 'Read 6 days', 'measurable': '6/7 days'}],
    },
    NarrativeKind.MONTHLY_REPORT: {
        'next_month_focus': [{'area': 'CONSISTENCY', 'goal': 'Hit 90%', 'actions': ['Fixed time']}],
    },
    NarrativeKind.MILESTONE_REPORT: {
        'celebration': 'Seven days!',
        'reflection': {'journey': 'A full week'},
        'next_phase': {'suggestion': 'Keep going', 'new_goal': 'Try 21 days'},
    },
    NarrativeKind.MOOD_CORRELATION: {
        'recommendations': ['Read when you feel low, it lifts your mood'],
    },
    NarrativeKind.HABIT_CORRELATION: {
        'insights': [{'habit1_id': 'h1', 'habit2_id': 'h2', 'insight': 'Done together most days'}],
        'suggestions': [{'type': 'STACK', 'habits': ['h1', 'h2'], 'reason': 'They already share a slot'}],
    },
}


class StubNarrativeGenerator(NarrativeGenerator):
    """
    Scriptable narrative backend.

    Returns ``payloads[kind]`` (VALID_PAYLOADS by default), raises ``error``
    when set, and waits on ``block`` first when given.
    """

    def __init__(self, payloads=None, error: Exception = None, block: threading.Event = None):
        self.payloads = VALID_PAYLOADS if payloads is None else payloads
        self.error = error
        self.block = block
        self.calls = []
        self.request_ids = []
        self._lock = threading.Lock()

    def generate(self, kind, context):
        with self._lock:
            self.calls.append((kind, context))
            self.request_ids.append(get_request_id())
        if self.block is not None:
            self.block.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payloads.get(kind, {}))

    def kinds(self):
        with self._lock:
            return [kind for kind, _ in self.calls]
