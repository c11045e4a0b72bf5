"""
Break Risk Service

Estimates how likely a habit is to break, from the latest two weeks of
logs compared with the two weeks before them.
"""
import logging
from typing import Dict, List, Sequence

from habitcoach.helpers.metric_helpers import percent, round_half_up, safe_mean
from habitcoach.models import (
    BreakRisk, HabitLog, PreventiveAction, RiskFactor, RiskLevel, WarningSignal,
)
from habitcoach.services.stats_service import completion_ratio, sort_logs_asc
from habitcoach.utils.constants import (
    MEDIUM_DAYS, RISK_CRITICAL_SCORE, RISK_HIGH_SCORE, RISK_MEDIUM_SCORE, RISK_MIN_LOGS,
)

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA_RISK = BreakRisk(
    risk_level=RiskLevel.LOW,
    risk_score=20,
    risk_factors=(RiskFactor("Insufficient data", 0, "Needs more logs"),),
    warning_signals=(),
    preventive_actions=(PreventiveAction("Keep logging the habit", "HIGH", "Builds a baseline"),),
)

PREVENTIVE_ACTIONS: Dict[RiskLevel, tuple] = {
    RiskLevel.LOW: (
        PreventiveAction("Keep the current rhythm", "LOW", "Stays stable"),
    ),
    RiskLevel.MEDIUM: (
        PreventiveAction("Lower the habit's difficulty", "HIGH", "Raises completion"),
        PreventiveAction("Revisit why you started", "MEDIUM", "Restores drive"),
    ),
    RiskLevel.HIGH: (
        PreventiveAction("Lower the habit's difficulty", "HIGH", "Raises completion"),
        PreventiveAction("Revisit why you started", "MEDIUM", "Restores drive"),
    ),
    RiskLevel.CRITICAL: (
        PreventiveAction("Drop to the minimum version for a week", "HIGH", "Keeps the chain alive"),
        PreventiveAction("Lower the habit's difficulty", "HIGH", "Raises completion"),
        PreventiveAction("Revisit why you started", "MEDIUM", "Restores drive"),
    ),
}


def risk_level_for(score: int) -> RiskLevel:
    if score >= RISK_CRITICAL_SCORE:
        return RiskLevel.CRITICAL
    if score >= RISK_HIGH_SCORE:
        return RiskLevel.HIGH
    if score >= RISK_MEDIUM_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RiskService:

    @staticmethod
    def predict_break_risk(
        logs: Sequence[HabitLog],
        current_streak: int,
        days_since_start: int = 0,
    ) -> BreakRisk:
        """
        Score break risk 0..100 from four factors.

        - completion trend, latest 14 logs vs the 14 before (30 / 15)
        - average difficulty of the latest 14, neutral 3 (25 / 15)
        - streak stability, current streak relative to a week (20 / 10)
        - average mood after of the latest 14, neutral 3 (25 / 15)

        Fewer than 7 logs returns a fixed LOW/20 "insufficient data" result.
        """
        if len(logs) < RISK_MIN_LOGS:
            return INSUFFICIENT_DATA_RISK

        ordered = sort_logs_asc(logs)
        latest = ordered[-MEDIUM_DAYS:]
        earlier = ordered[-2 * MEDIUM_DAYS:-MEDIUM_DAYS]

        latest_rate = completion_ratio(latest)
        earlier_rate = completion_ratio(earlier) if earlier else latest_rate
        rate_trend = latest_rate - earlier_rate

        avg_difficulty = safe_mean(log.difficulty_rating for log in latest)
        avg_difficulty = 3.0 if avg_difficulty is None else avg_difficulty

        streak_stability = 0.8 if current_streak >= 7 else current_streak / 7

        avg_mood = safe_mean(log.mood_after for log in latest)
        avg_mood = 3.0 if avg_mood is None else avg_mood

        score = 0
        score += 30 if rate_trend < -0.2 else 15 if rate_trend < 0 else 0
        score += 25 if avg_difficulty > 4 else 15 if avg_difficulty > 3.5 else 0
        score += 20 if streak_stability < 0.5 else 10 if streak_stability < 0.8 else 0
        score += 25 if avg_mood < 2.5 else 15 if avg_mood < 3 else 0

        level = risk_level_for(score)
        trend_status = f"Down {percent(abs(rate_trend), 1)}%" if rate_trend < 0 else "Stable"

        factors: List[RiskFactor] = [
            RiskFactor("Completion trend", 30, trend_status),
            RiskFactor("Perceived difficulty", 25, f"{avg_difficulty:.1f}/5"),
            RiskFactor("Current streak", 20, f"{current_streak} days"),
            RiskFactor("Mood", 25, f"{avg_mood:.1f}/5"),
        ]
        signals = (
            WarningSignal("Completion rate dropping", rate_trend < -0.1),
            WarningSignal("Habit feels harder", avg_difficulty > 4),
            WarningSignal("Low mood", avg_mood < 3),
        )

        if level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            logger.info(
                f"Break risk {level.value} ({score}): trend {round_half_up(rate_trend, 2)}, "
                f"difficulty {avg_difficulty:.1f}, mood {avg_mood:.1f}, streak {current_streak}, "
                f"day {days_since_start}"
            )

        return BreakRisk(
            risk_level=level,
            risk_score=score,
            risk_factors=tuple(factors),
            warning_signals=signals,
            preventive_actions=PREVENTIVE_ACTIONS[level],
        )


predict_break_risk = RiskService.predict_break_risk
