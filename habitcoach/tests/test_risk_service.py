"""
Tests for break-risk prediction.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from habitcoach.models import RiskLevel
from habitcoach.services.risk_service import (
    INSUFFICIENT_DATA_RISK,
    PREVENTIVE_ACTIONS,
    RiskService,
    risk_level_for,
)

from factories import REFERENCE_DATE, LogFactory

REF = REFERENCE_DATE


class TestRiskLevel:

    @pytest.mark.parametrize("score,level", [
        (100, RiskLevel.CRITICAL),
        (70, RiskLevel.CRITICAL),
        (69, RiskLevel.HIGH),
        (50, RiskLevel.HIGH),
        (30, RiskLevel.MEDIUM),
        (29, RiskLevel.LOW),
        (0, RiskLevel.LOW),
    ])
    def test_thresholds(self, score, level):
        assert risk_level_for(score) == level


class TestPredictBreakRisk:

    def test_insufficient_data(self):
        risk = RiskService.predict_break_risk(LogFactory.series(REF, [True] * 6), 6)
        assert risk == INSUFFICIENT_DATA_RISK
        assert risk.risk_level == RiskLevel.LOW
        assert risk.risk_score == 20

    def test_healthy_habit(self):
        logs = LogFactory.series(REF, [True] * 14, difficulty_rating=2, mood_after=4)
        risk = RiskService.predict_break_risk(logs, 14)

        assert risk.risk_score == 0
        assert risk.risk_level == RiskLevel.LOW
        assert not any(signal.detected for signal in risk.warning_signals)
        assert risk.preventive_actions == PREVENTIVE_ACTIONS[RiskLevel.LOW]
        assert [f.factor for f in risk.risk_factors] == [
            "Completion trend", "Perceived difficulty", "Current streak", "Mood",
        ]

    def test_collapsing_habit(self):
        earlier = [
            LogFactory.create(REF - timedelta(days=offset), True, difficulty_rating=2, mood_after=4)
            for offset in range(14, 28)
        ]
        latest = [
            LogFactory.create(REF - timedelta(days=offset), offset in (5, 8, 11, 13), difficulty_rating=5, mood_after=2)
            for offset in range(14)
        ]

        with patch('habitcoach.services.risk_service.logger') as mock_logger:
            risk = RiskService.predict_break_risk(earlier + latest, 0, days_since_start=40)

            assert risk.risk_score == 100
            assert risk.risk_level == RiskLevel.CRITICAL
            assert all(signal.detected for signal in risk.warning_signals)
            assert risk.risk_factors[0].current_status == "Down 71%"
            assert risk.preventive_actions == PREVENTIVE_ACTIONS[RiskLevel.CRITICAL]
            mock_logger.info.assert_called_once()

    def test_short_streak_alone_is_low(self):
        logs = LogFactory.series(REF, [True] * 5 + [False] + [True] * 3)
        risk = RiskService.predict_break_risk(logs, 5)

        assert risk.risk_score == 10
        assert risk.risk_level == RiskLevel.LOW
        assert risk.risk_factors[2].current_status == "5 days"

    def test_neutral_defaults_without_ratings(self):
        logs = LogFactory.series(REF, [True] * 10)
        risk = RiskService.predict_break_risk(logs, 10)

        assert risk.risk_factors[1].current_status == "3.0/5"
        assert risk.risk_factors[3].current_status == "3.0/5"
        assert risk.risk_score == 0

    def test_score_bounded(self):
        logs = LogFactory.series(REF, [False] * 20, difficulty_rating=5, mood_after=1)
        risk = RiskService.predict_break_risk(logs, 0)
        assert 0 <= risk.risk_score <= 100
