"""
Every scorer is a pure function of its inputs: equal snapshots give equal
results, however often they are scored.
"""
from datetime import timedelta

import pytest

from habitcoach.services.correlation_service import CorrelationService
from habitcoach.services.motivation_service import MotivationService
from habitcoach.services.phase_service import PhaseService
from habitcoach.services.risk_service import RiskService
from habitcoach.services.stats_service import StatsService
from habitcoach.services.trigger_service import TriggerService

from factories import REFERENCE_DATE, HabitFactory, LogFactory, PhaseFactory, TriggerFactory

REF = REFERENCE_DATE
PATTERN = [True, True, False, True, None, True, False, False, True, True, True, None, False, True]


def mixed_logs():
    """Fresh log objects with ratings, moods, notes and times on a broken streak."""
    logs = []
    for offset, completed in enumerate(PATTERN):
        if completed is None:
            continue
        logs.append(LogFactory.at(
            REF - timedelta(days=offset),
            7 + offset % 5,
            completed,
            difficulty_rating=1 + offset % 5,
            mood_before=1 + offset % 4,
            mood_after=2 + offset % 4,
            notes="too hard today" if offset % 6 == 0 else "want more",
            duration_minutes=10 + offset,
            target_duration_minutes=10,
            wanted_to_do_more=offset % 3 == 0,
        ))
    return logs


def trigger_records():
    return [
        TriggerFactory.days_ago(days, hour=20 + days % 3, resisted=days % 2 == 0)
        for days in (1, 2, 4, 5, 9)
    ]


SCORERS = {
    'compute_stats': lambda: StatsService.compute_stats(mixed_logs(), REF),
    'analyze_motivation': lambda: MotivationService.analyze_motivation(mixed_logs(), 20, REF),
    'evaluate_readiness': lambda: PhaseService.evaluate_readiness(2, PhaseFactory.path(3), mixed_logs(), 9),
    'assess_retreat': lambda: PhaseService.assess_retreat(2, PhaseFactory.path(3), mixed_logs(), 9),
    'analyze_relapse': lambda: TriggerService.analyze_relapse(trigger_records(), REF),
    'predict_break_risk': lambda: RiskService.predict_break_risk(mixed_logs(), 2, 20),
    'compute_mood_correlation': lambda: CorrelationService.compute_mood_correlation(mixed_logs()),
}


class TestIdempotence:

    @pytest.mark.parametrize("name", list(SCORERS))
    def test_equal_inputs_equal_results(self, name):
        first = SCORERS[name]()
        second = SCORERS[name]()
        assert first.to_dict() == second.to_dict()

    def test_inputs_left_unchanged(self):
        logs = mixed_logs()
        before = [log.to_dict() for log in logs]

        StatsService.compute_stats(logs, REF)
        PhaseService.assess_retreat(2, PhaseFactory.path(3), logs, 9)
        RiskService.predict_break_risk(logs, 2, 20)

        assert [log.to_dict() for log in logs] == before

    def test_habit_correlations_repeatable(self):
        habits = [HabitFactory.create(id='a'), HabitFactory.create(id='b')]
        logs = {'a': mixed_logs(), 'b': mixed_logs()[::2]}

        first = CorrelationService.compute_habit_correlations(habits, logs)
        second = CorrelationService.compute_habit_correlations(habits, logs)

        assert first.to_dict() == second.to_dict()
