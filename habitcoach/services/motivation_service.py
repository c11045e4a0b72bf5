"""
Motivation Service

Composite 1-10 motivation score and a four-state motivation level,
computed over the last seven calendar days of logs.

Default substitutions:
- average difficulty with no ratings in the window: 3 (neutral)
- average mood delta with no before/after pairs in the window: 0
"""
import logging
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from habitcoach.helpers.metric_helpers import clamp, detect_trend_direction, round_half_up
from habitcoach.models import HabitLog, MotivationAnalysis, MotivationState, MotivationType, Trend
from habitcoach.services.stats_service import (
    average_difficulty, average_mood_delta, completion_ratio, recent_logs,
)
from habitcoach.utils.constants import (
    INTERVENTION_TIMINGS, MOTIVATION_MAX_SCORE, MOTIVATION_MIN_SCORE,
    NEUTRAL_DIFFICULTY, NEUTRAL_MOOD_DELTA, NEW_HABIT_GRACE_DAYS,
    NEW_HABIT_GRACE_SCORE, NO_DATA_CRITICAL_AFTER_DAYS, NO_DATA_SCORE,
    RECENT_DAYS, TREND_DELTA_THRESHOLD, TREND_WINDOW_DAYS,
)
from habitcoach.utils.time_utils import in_offset_range

logger = logging.getLogger(__name__)

StateRule = Tuple[MotivationState, Callable[[float, float, float], bool]]

# Evaluated top to bottom, first match wins. The order is part of the contract.
STATE_RULES: List[StateRule] = [
    (MotivationState.STRONG, lambda rate, difficulty, mood: rate >= 0.8 and difficulty <= 3 and mood >= 0),
    (MotivationState.NORMAL, lambda rate, difficulty, mood: rate >= 0.5 and difficulty <= 4),
    (MotivationState.DECLINING, lambda rate, difficulty, mood: rate >= 0.3 or difficulty <= 4),
]

SUGGESTED_ACTIONS = {
    MotivationState.CRITICAL: "Lower the difficulty and rebuild confidence with the smallest version",
    MotivationState.DECLINING: "Revisit why you started and reread your vision",
}
DEFAULT_ACTION = "Keep going at the current pace"

# Message strategies per state, first entry is the default pick
STATE_STRATEGIES = {
    MotivationState.STRONG: [MotivationType.SOCIAL_PROOF, MotivationType.HOPE_FUTURE],
    MotivationState.NORMAL: [MotivationType.PLEASURE_GAIN, MotivationType.HOPE_FUTURE],
    MotivationState.DECLINING: [MotivationType.FEAR_LOSS, MotivationType.PAIN_AVOID],
    MotivationState.CRITICAL: [MotivationType.PAIN_AVOID, MotivationType.FEAR_LOSS],
}


def classify_state(completion_rate: float, avg_difficulty: float, avg_mood_delta: float) -> MotivationState:
    for state, rule in STATE_RULES:
        if rule(completion_rate, avg_difficulty, avg_mood_delta):
            return state
    return MotivationState.CRITICAL


def composite_score(completion_rate: float, avg_difficulty: float, avg_mood_delta: float) -> int:
    """
    completion (0-4) + mood (0-3) + difficulty (0-3.75), clamped to 1..10.
    """
    completion_score = completion_rate * 4
    mood_score = clamp(avg_mood_delta + 1.5, 0, 3)
    difficulty_score = max(0.0, 3 - (avg_difficulty - 2) * 0.75)
    total = clamp(completion_score + mood_score + difficulty_score, MOTIVATION_MIN_SCORE, MOTIVATION_MAX_SCORE)
    return round_half_up(total)


def get_intervention_timing(days_since_start: int) -> Optional[str]:
    """Milestone label for exact key days, otherwise None."""
    return INTERVENTION_TIMINGS.get(days_since_start)


def select_motivation_type(state: MotivationState, primary_motivation: Optional[str] = None) -> MotivationType:
    """
    Pick the message strategy for motivational copy.

    A user's own primary motivation (PLEASURE, HOPE, SOCIAL) overrides the
    state default, except that pleasure framing is not used in a crisis.
    """
    if primary_motivation == "PLEASURE" and state != MotivationState.CRITICAL:
        return MotivationType.PLEASURE_GAIN
    if primary_motivation == "HOPE":
        return MotivationType.HOPE_FUTURE
    if primary_motivation == "SOCIAL":
        return MotivationType.SOCIAL_PROOF
    return STATE_STRATEGIES[state][0]


class MotivationService:

    @staticmethod
    def _window_inputs(window: Sequence[HabitLog]) -> Tuple[float, float, float]:
        rate = completion_ratio(window)
        difficulty = average_difficulty(window, completed_only=False)
        mood = average_mood_delta(window)
        return (
            rate,
            NEUTRAL_DIFFICULTY if difficulty is None else difficulty,
            NEUTRAL_MOOD_DELTA if mood is None else mood,
        )

    @staticmethod
    def score(
        logs: Sequence[HabitLog],
        days_since_start: int,
        reference_date: date,
    ) -> Tuple[int, MotivationState]:
        """
        Motivation score and state.

        No logs at all gives new habits (within the first week) a grace
        score of 7, older habits 3; the state stays NORMAL for the first
        three days and is CRITICAL after that. An empty recent window
        scores 3 and is CRITICAL.
        """
        if not logs:
            score = NEW_HABIT_GRACE_SCORE if days_since_start <= NEW_HABIT_GRACE_DAYS else NO_DATA_SCORE
            state = (
                MotivationState.CRITICAL
                if days_since_start > NO_DATA_CRITICAL_AFTER_DAYS
                else MotivationState.NORMAL
            )
            return score, state

        window = recent_logs(logs, reference_date, RECENT_DAYS)
        if not window:
            return NO_DATA_SCORE, MotivationState.CRITICAL

        rate, difficulty, mood = MotivationService._window_inputs(window)
        return composite_score(rate, difficulty, mood), classify_state(rate, difficulty, mood)

    @staticmethod
    def trend(logs: Sequence[HabitLog], reference_date: date) -> Trend:
        """
        Completion rate of the last 3 days against the 3 days before.

        Each side is 0 when it has no logs.
        """
        latest = [log for log in logs if in_offset_range(reference_date, log.day, 0, TREND_WINDOW_DAYS)]
        prior = [
            log for log in logs
            if in_offset_range(reference_date, log.day, TREND_WINDOW_DAYS, TREND_WINDOW_DAYS * 2)
        ]
        direction = detect_trend_direction(completion_ratio(prior), completion_ratio(latest), TREND_DELTA_THRESHOLD)
        return Trend(direction)

    @staticmethod
    def analyze_motivation(
        logs: Sequence[HabitLog],
        days_since_start: int,
        reference_date: date,
    ) -> MotivationAnalysis:
        current_score, state = MotivationService.score(logs, days_since_start, reference_date)
        timing = get_intervention_timing(days_since_start)

        intervention_needed = (
            state in (MotivationState.CRITICAL, MotivationState.DECLINING) or timing is not None
        )
        suggested_action = SUGGESTED_ACTIONS.get(state) or timing or DEFAULT_ACTION

        analysis = MotivationAnalysis(
            current_score=current_score,
            state=state,
            trend=MotivationService.trend(logs, reference_date),
            intervention_needed=intervention_needed,
            intervention_timing=timing,
            suggested_action=suggested_action,
        )
        if intervention_needed:
            logger.info(
                f"Motivation intervention flagged: state={state.value}, score={current_score}, "
                f"day={days_since_start}"
            )
        return analysis


score_motivation = MotivationService.score
analyze_motivation = MotivationService.analyze_motivation
