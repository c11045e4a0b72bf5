"""
Correlation Service

How mood relates to completing a habit, and which habits tend to be
done (or skipped) on the same days. Both analyses are plain counts over
the log snapshot; the recommendations on top come from the narrative
layer.
"""
import dataclasses
import logging
from itertools import combinations
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from habitcoach.exceptions import AnalyticsError
from habitcoach.helpers.metric_helpers import percent, round_half_up
from habitcoach.models import (
    Habit, HabitCorrelations, HabitLog, HabitPairCorrelation, MoodCorrelation, MoodTrigger,
    NarrativeKind, Relationship, Significance,
)
from habitcoach.narrative import NarrativeGenerator, narrate
from habitcoach.utils.constants import (
    CORRELATION_THRESHOLD, HIGH_MOOD_MIN, LOW_MOOD_MAX, MIN_CORRELATION_HABITS, MIN_MOOD_LOGS,
    MOOD_LIFT_HIGH, MOOD_LIFT_MEDIUM,
)

logger = logging.getLogger(__name__)

LOW_MOOD_TRIGGER = "low mood state"


def _without_narrative(result) -> Dict:
    context = result.to_dict()
    context.pop('narrative', None)
    return context


class CorrelationService:
    """Mood and cross-habit correlation over read-only logs"""

    # ========================================================================
    # MOOD
    # ========================================================================

    @staticmethod
    def mood_significance(mood_lift: float) -> Significance:
        if mood_lift >= MOOD_LIFT_HIGH:
            return Significance.HIGH
        if mood_lift >= MOOD_LIFT_MEDIUM:
            return Significance.MEDIUM
        return Significance.LOW

    @staticmethod
    def compute_mood_correlation(logs: Sequence[HabitLog]) -> MoodCorrelation:
        """
        Mood before vs after, and completion by starting mood.

        Only logs carrying both moods count. Under five of them every
        average is zero and no trigger is reported.
        """
        rows = [
            {'before': log.mood_before, 'after': log.mood_after, 'completed': bool(log.completed)}
            for log in logs
            if log.mood_before is not None and log.mood_after is not None
        ]
        if len(rows) < MIN_MOOD_LOGS:
            return MoodCorrelation(
                sample_size=len(rows),
                average_mood_before=0.0,
                average_mood_after=0.0,
                mood_lift=0.0,
                significance=Significance.LOW,
            )

        df = pd.DataFrame(rows)
        average_before = float(df['before'].mean())
        average_after = float(df['after'].mean())
        mood_lift = average_after - average_before

        low = df[df['before'] <= LOW_MOOD_MAX]
        high = df[df['before'] >= HIGH_MOOD_MIN]
        low_rate = percent(int(low['completed'].sum()), len(low))
        high_rate = percent(int(high['completed'].sum()), len(high))

        return MoodCorrelation(
            sample_size=len(df),
            average_mood_before=round_half_up(average_before, 1),
            average_mood_after=round_half_up(average_after, 1),
            mood_lift=round_half_up(mood_lift, 1),
            significance=CorrelationService.mood_significance(mood_lift),
            low_mood_completion_rate=low_rate,
            high_mood_completion_rate=high_rate,
            mood_triggers=(
                MoodTrigger(
                    trigger=LOW_MOOD_TRIGGER,
                    impact_on_completion=low_rate - high_rate,
                    frequency=len(low),
                ),
            ),
        )

    @staticmethod
    def analyze_mood_correlation(
        logs: Sequence[HabitLog],
        narrative: Optional[NarrativeGenerator] = None,
    ) -> MoodCorrelation:
        """compute_mood_correlation plus recommendations; too little data never reaches the generator."""
        correlation = CorrelationService.compute_mood_correlation(logs)
        generator = narrative if correlation.sample_size >= MIN_MOOD_LOGS else None
        payload = narrate(generator, NarrativeKind.MOOD_CORRELATION, _without_narrative(correlation))
        logger.debug(
            f"Mood correlation over {correlation.sample_size} logs: lift {correlation.mood_lift}, "
            f"{correlation.significance.value}"
        )
        return dataclasses.replace(correlation, narrative=payload)

    # ========================================================================
    # HABIT PAIRS
    # ========================================================================

    @staticmethod
    def relationship(score: float) -> Relationship:
        if score > CORRELATION_THRESHOLD:
            return Relationship.POSITIVE
        if score < -CORRELATION_THRESHOLD:
            return Relationship.NEGATIVE
        return Relationship.NEUTRAL

    @staticmethod
    def completion_grid(habits: Sequence[Habit], logs_by_habit: Mapping[str, Sequence[HabitLog]]) -> pd.DataFrame:
        """
        Day x habit boolean frame over every day any listed habit was logged.

        A habit with no log that day counts as not completed; with several
        logs on one day the last one wins.
        """
        ids = [habit.id for habit in habits]
        rows = [
            {'day': log.day, 'habit_id': habit.id, 'completed': bool(log.completed)}
            for habit in habits
            for log in logs_by_habit.get(habit.id, ())
        ]
        if not rows:
            return pd.DataFrame(columns=ids, dtype=bool)

        df = pd.DataFrame(rows).drop_duplicates(['day', 'habit_id'], keep='last')
        grid = df.pivot(index='day', columns='habit_id', values='completed')
        return grid.reindex(columns=ids).eq(True).sort_index()

    @staticmethod
    def compute_habit_correlations(
        habits: Sequence[Habit],
        logs_by_habit: Mapping[str, Sequence[HabitLog]],
    ) -> HabitCorrelations:
        """
        Agreement score for every pair of habits, in habit order.

        The score maps the share of days both were done or both skipped
        onto [-1, 1]: 1 means always together, -1 means never on the same
        day.

        Raises:
            AnalyticsError: if two habits share an id
        """
        ids = [habit.id for habit in habits]
        duplicates = sorted({habit_id for habit_id in ids if ids.count(habit_id) > 1})
        if duplicates:
            raise AnalyticsError("Habit ids must be unique to correlate habits", {'duplicates': duplicates})
        if len(habits) < MIN_CORRELATION_HABITS:
            return HabitCorrelations(days=0)

        grid = CorrelationService.completion_grid(habits, logs_by_habit)
        days = len(grid)
        pairs: List[HabitPairCorrelation] = []
        for first, second in combinations(ids, 2):
            a = grid[first]
            b = grid[second]
            both = int((a & b).sum())
            neither = int((~a & ~b).sum())
            raw_score = (both + neither) / days * 2 - 1 if days else 0.0
            pairs.append(HabitPairCorrelation(
                habit1_id=first,
                habit2_id=second,
                both_completed=both,
                neither_completed=neither,
                only_first=int((a & ~b).sum()),
                only_second=int((~a & b).sum()),
                correlation_score=round_half_up(raw_score, 2),
                relationship=CorrelationService.relationship(raw_score),
            ))
        return HabitCorrelations(days=days, correlations=tuple(pairs))

    @staticmethod
    def analyze_habit_correlations(
        habits: Sequence[Habit],
        logs_by_habit: Mapping[str, Sequence[HabitLog]],
        narrative: Optional[NarrativeGenerator] = None,
    ) -> HabitCorrelations:
        """compute_habit_correlations plus insights, clusters and stacking suggestions."""
        correlations = CorrelationService.compute_habit_correlations(habits, logs_by_habit)
        generator = narrative if correlations.correlations else None
        context = _without_narrative(correlations)
        context['habits'] = [{'id': habit.id, 'name': habit.name or habit.id} for habit in habits]
        payload = narrate(generator, NarrativeKind.HABIT_CORRELATION, context)
        logger.debug(f"Correlated {len(correlations.correlations)} habit pairs over {correlations.days} days")
        return dataclasses.replace(correlations, narrative=payload)


analyze_mood_correlation = CorrelationService.analyze_mood_correlation
analyze_habit_correlations = CorrelationService.analyze_habit_correlations
