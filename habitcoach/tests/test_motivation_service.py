"""
Tests for the composite motivation score, state machine and trend.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from habitcoach.models import MotivationState, MotivationType, Trend
from habitcoach.services.motivation_service import (
    MotivationService,
    classify_state,
    composite_score,
    get_intervention_timing,
    select_motivation_type,
)

from factories import REFERENCE_DATE, LogFactory

REF = REFERENCE_DATE


class TestClassifyState:

    @pytest.mark.parametrize("rate,difficulty,mood,expected", [
        (0.85, 2, 0.5, MotivationState.STRONG),
        (0.8, 3, 0, MotivationState.STRONG),
        (0.9, 3.5, 0, MotivationState.NORMAL),
        (0.85, 2, -0.5, MotivationState.NORMAL),
        (0.6, 3.5, -1, MotivationState.NORMAL),
        (0.4, 3, 0, MotivationState.DECLINING),
        (0.1, 4, 0, MotivationState.DECLINING),
        (0.35, 5, 0, MotivationState.DECLINING),
        (0.2, 4.5, -1, MotivationState.CRITICAL),
    ])
    def test_first_matching_rule_wins(self, rate, difficulty, mood, expected):
        assert classify_state(rate, difficulty, mood) == expected


class TestCompositeScore:

    def test_half_rounds_up(self):
        # 4 + 1.5 + 3 = 8.5
        assert composite_score(1.0, 2, 0) == 9

    def test_clamped_to_minimum(self):
        assert composite_score(0.0, 5, -3) == 1

    def test_clamped_to_maximum(self):
        assert composite_score(1.0, 1, 3) == 10


class TestMotivationHelpers:

    def test_intervention_timing_exact_days(self):
        assert get_intervention_timing(7) == "first-week milestone"
        assert get_intervention_timing(66) == "automaticity milestone"
        assert get_intervention_timing(8) is None

    @pytest.mark.parametrize("state,primary,expected", [
        (MotivationState.STRONG, None, MotivationType.SOCIAL_PROOF),
        (MotivationState.DECLINING, None, MotivationType.FEAR_LOSS),
        (MotivationState.CRITICAL, None, MotivationType.PAIN_AVOID),
        (MotivationState.NORMAL, "PLEASURE", MotivationType.PLEASURE_GAIN),
        (MotivationState.CRITICAL, "PLEASURE", MotivationType.PAIN_AVOID),
        (MotivationState.DECLINING, "HOPE", MotivationType.HOPE_FUTURE),
        (MotivationState.CRITICAL, "SOCIAL", MotivationType.SOCIAL_PROOF),
    ])
    def test_select_motivation_type(self, state, primary, expected):
        assert select_motivation_type(state, primary) == expected


class TestScore:

    @pytest.mark.parametrize("days,expected", [
        (0, (7, MotivationState.NORMAL)),
        (3, (7, MotivationState.NORMAL)),
        (5, (7, MotivationState.CRITICAL)),
        (10, (3, MotivationState.CRITICAL)),
    ])
    def test_no_logs(self, days, expected):
        assert MotivationService.score([], days, REF) == expected

    def test_only_old_logs_is_critical(self):
        logs = LogFactory.series(REF, [None] * 8 + [True, True])
        assert MotivationService.score(logs, 30, REF) == (3, MotivationState.CRITICAL)

    def test_strong_week(self):
        logs = []
        for offset, completed in enumerate([True, True, True, False, True, True, True]):
            extra = {'mood_before': 3, 'mood_after': 4} if completed else {}
            logs.append(LogFactory.create(REF - timedelta(days=offset), completed, difficulty_rating=2, **extra))

        score, state = MotivationService.score(logs, 30, REF)

        assert state == MotivationState.STRONG
        assert score == 9

    def test_low_completion_is_declining(self):
        logs = LogFactory.series(REF, [True, False, True, False, False])
        _, state = MotivationService.score(logs, 30, REF)
        assert state == MotivationState.DECLINING


class TestTrend:

    def test_up(self):
        logs = LogFactory.series(REF, [True, True, True, False, False, False])
        assert MotivationService.trend(logs, REF) == Trend.UP

    def test_down(self):
        logs = LogFactory.series(REF, [False, False, False, True, True, True])
        assert MotivationService.trend(logs, REF) == Trend.DOWN

    def test_stable_without_logs(self):
        assert MotivationService.trend([], REF) == Trend.STABLE

    def test_empty_prior_window_counts_as_zero(self):
        logs = LogFactory.series(REF, [True])
        assert MotivationService.trend(logs, REF) == Trend.UP


class TestAnalyzeMotivation:

    def test_declining_needs_intervention(self):
        logs = LogFactory.series(REF, [True, False, True, False, False])

        with patch('habitcoach.services.motivation_service.logger') as mock_logger:
            analysis = MotivationService.analyze_motivation(logs, 30, REF)

            assert analysis.state == MotivationState.DECLINING
            assert analysis.intervention_needed is True
            assert analysis.suggested_action == "Revisit why you started and reread your vision"
            mock_logger.info.assert_called_once()

    def test_key_day_triggers_intervention(self):
        logs = LogFactory.series(REF, [True] * 7, difficulty_rating=2)
        analysis = MotivationService.analyze_motivation(logs, 7, REF)

        assert analysis.state == MotivationState.STRONG
        assert analysis.intervention_needed is True
        assert analysis.intervention_timing == "first-week milestone"
        assert analysis.suggested_action == "first-week milestone"

    def test_strong_off_milestone_keeps_pace(self):
        logs = LogFactory.series(REF, [True] * 7, difficulty_rating=2)
        analysis = MotivationService.analyze_motivation(logs, 10, REF)

        assert analysis.intervention_needed is False
        assert analysis.intervention_timing is None
        assert analysis.suggested_action == "Keep going at the current pace"
        assert 1 <= analysis.current_score <= 10
