"""
Tests for mood correlation and habit-pair correlation.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from habitcoach.exceptions import AnalyticsError
from habitcoach.models import NarrativeKind, Relationship, Significance
from habitcoach.narrative.fallback import MOOD_NEEDS_DATA
from habitcoach.schemas import validate_narrative
from habitcoach.services.correlation_service import LOW_MOOD_TRIGGER, CorrelationService

from factories import REFERENCE_DATE, VALID_PAYLOADS, HabitFactory, LogFactory, StubNarrativeGenerator

REF = REFERENCE_DATE


def mood_logs(entries):
    """One log per (mood_before, mood_after, completed), newest first."""
    return [
        LogFactory.create(REF - timedelta(days=offset), completed, mood_before=before, mood_after=after)
        for offset, (before, after, completed) in enumerate(entries)
    ]


LIFTING_ENTRIES = [
    (2, 4, True),
    (1, 3, False),
    (2, 3, False),
    (4, 5, True),
    (5, 5, True),
    (4, 4, False),
]


class TestMoodCorrelation:

    def test_lift_and_completion_by_mood(self):
        logs = mood_logs(LIFTING_ENTRIES) + [LogFactory.create(REF - timedelta(days=10))]

        result = CorrelationService.compute_mood_correlation(logs)

        assert result.sample_size == 6
        assert result.average_mood_before == 3.0
        assert result.average_mood_after == 4.0
        assert result.mood_lift == 1.0
        assert result.significance is Significance.HIGH
        assert result.low_mood_completion_rate == 33
        assert result.high_mood_completion_rate == 67
        trigger = result.mood_triggers[0]
        assert trigger.trigger == LOW_MOOD_TRIGGER
        assert trigger.impact_on_completion == -34
        assert trigger.frequency == 3

    def test_mood_drop(self):
        result = CorrelationService.analyze_mood_correlation(mood_logs([(4, 3, True)] * 5))

        assert result.mood_lift == -1.0
        assert result.significance is Significance.LOW
        assert result.low_mood_completion_rate == 0
        assert result.high_mood_completion_rate == 100
        assert result.mood_triggers[0].frequency == 0
        assert result.narrative == {
            'recommendations': ["Try doing the habit at a time when your mood is better"],
        }

    def test_too_few_logs(self, stub_generator):
        result = CorrelationService.analyze_mood_correlation(
            mood_logs(LIFTING_ENTRIES[:4]), narrative=stub_generator,
        )

        assert result.sample_size == 4
        assert result.mood_lift == 0.0
        assert result.significance is Significance.LOW
        assert result.mood_triggers == ()
        assert result.narrative == {'recommendations': [MOOD_NEEDS_DATA]}
        assert stub_generator.calls == []

    @pytest.mark.parametrize("lift,expected", [
        (0.5, Significance.HIGH),
        (0.2, Significance.MEDIUM),
        (0.19, Significance.LOW),
        (-1.0, Significance.LOW),
    ])
    def test_significance_bands(self, lift, expected):
        assert CorrelationService.mood_significance(lift) is expected

    def test_generator_gets_numbers_only(self, stub_generator):
        result = CorrelationService.analyze_mood_correlation(mood_logs(LIFTING_ENTRIES), narrative=stub_generator)

        kind, context = stub_generator.calls[0]
        assert kind is NarrativeKind.MOOD_CORRELATION
        assert context['mood_lift'] == 1.0
        assert context['mood_triggers'][0]['impact_on_completion'] == -34
        assert 'narrative' not in context
        assert result.narrative == VALID_PAYLOADS[NarrativeKind.MOOD_CORRELATION]

    def test_template_lift(self):
        result = CorrelationService.analyze_mood_correlation(mood_logs(LIFTING_ENTRIES))
        assert result.narrative == {'recommendations': ["The habit lifts your mood, keep going"]}


class TestHabitCorrelations:

    def test_pair_counts_and_scores(self):
        a = HabitFactory.create(name='A')
        b = HabitFactory.create(name='B')
        c = HabitFactory.create(name='C')
        logs = {
            a.id: LogFactory.series(REF, [True, True, False, True]),
            b.id: LogFactory.series(REF, [True, True, False]),
            c.id: LogFactory.series(REF, [False, False, True]),
        }

        result = CorrelationService.compute_habit_correlations([a, b, c], logs)

        assert result.days == 4
        assert [(p.habit1_id, p.habit2_id) for p in result.correlations] == [
            (a.id, b.id), (a.id, c.id), (b.id, c.id),
        ]
        ab, ac, bc = result.correlations
        assert (ab.both_completed, ab.neither_completed, ab.only_first, ab.only_second) == (2, 1, 1, 0)
        assert ab.correlation_score == 0.5
        assert ab.relationship is Relationship.POSITIVE
        assert (ac.only_first, ac.only_second, ac.total) == (3, 1, 4)
        assert ac.correlation_score == -1.0
        assert ac.relationship is Relationship.NEGATIVE
        assert bc.correlation_score == -0.5
        assert bc.relationship is Relationship.NEGATIVE

    def test_last_log_of_the_day_wins(self):
        x = HabitFactory.create()
        y = HabitFactory.create()
        logs = {
            x.id: [LogFactory.create(REF, False), LogFactory.create(REF, True)],
            y.id: [LogFactory.create(REF, True)],
        }

        pair = CorrelationService.compute_habit_correlations([x, y], logs).correlations[0]

        assert pair.both_completed == 1
        assert pair.correlation_score == 1.0

    def test_no_logs_is_neutral(self):
        habits = [HabitFactory.create(), HabitFactory.create()]
        result = CorrelationService.compute_habit_correlations(habits, {})

        assert result.days == 0
        assert result.correlations[0].correlation_score == 0.0
        assert result.correlations[0].relationship is Relationship.NEUTRAL

    def test_single_habit(self, stub_generator):
        result = CorrelationService.analyze_habit_correlations(
            [HabitFactory.create()], {}, narrative=stub_generator,
        )

        assert result.correlations == ()
        assert result.narrative == {'insights': [], 'clusters': [], 'suggestions': []}
        assert stub_generator.calls == []

    def test_duplicate_ids_rejected(self):
        habits = [HabitFactory.create(id='dup'), HabitFactory.create(id='dup'), HabitFactory.create()]
        with pytest.raises(AnalyticsError) as exc:
            CorrelationService.compute_habit_correlations(habits, {})
        assert exc.value.details == {'duplicates': ['dup']}

    def test_template_insights(self):
        a = HabitFactory.create()
        b = HabitFactory.create()
        logs = {a.id: LogFactory.series(REF, [True, True]), b.id: LogFactory.series(REF, [True, True])}

        with patch('habitcoach.services.correlation_service.logger') as mock_logger:
            result = CorrelationService.analyze_habit_correlations([a, b], logs)

        assert result.narrative['insights'] == [{
            'habit1_id': a.id,
            'habit2_id': b.id,
            'insight': "These two habits are often completed together",
        }]
        validate_narrative(NarrativeKind.HABIT_CORRELATION, result.narrative)
        assert "1 habit pairs over 2 days" in mock_logger.debug.call_args[0][0]

    def test_generator_receives_names(self, stub_generator):
        a = HabitFactory.create(name='Read')
        b = HabitFactory.create(name='Run')

        result = CorrelationService.analyze_habit_correlations([a, b], {}, narrative=stub_generator)

        _, context = stub_generator.calls[0]
        assert context['habits'] == [{'id': a.id, 'name': 'Read'}, {'id': b.id, 'name': 'Run'}]
        assert context['correlations'][0]['relationship'] == 'NEUTRAL'
        assert result.narrative == dict(VALID_PAYLOADS[NarrativeKind.HABIT_CORRELATION], clusters=[])
