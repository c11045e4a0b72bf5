"""
Stats Service

Turns a habit's raw log sequence into streaks and completion rates.
Pure arithmetic over the snapshot: empty input gives all-zero stats and
nothing here raises on missing optional fields.
"""
import logging
from datetime import date
from typing import List, Sequence

import numpy as np
import pandas as pd

from habitcoach.helpers.metric_helpers import (
    histogram, longest_consecutive_run, percent, round_optional, safe_mean,
)
from habitcoach.models import HabitLog, Stats, TimeDistribution
from habitcoach.utils.constants import RECENT_DAYS, WEEKDAY_NAMES
from habitcoach.utils.time_utils import days_back, in_window

logger = logging.getLogger(__name__)


def sort_logs_desc(logs: Sequence[HabitLog]) -> List[HabitLog]:
    """Newest first. Same-day entries keep their input order."""
    return sorted(logs, key=lambda log: log.day, reverse=True)


def sort_logs_asc(logs: Sequence[HabitLog]) -> List[HabitLog]:
    return sorted(logs, key=lambda log: log.day)


def recent_logs(logs: Sequence[HabitLog], reference_date: date, days: int = RECENT_DAYS) -> List[HabitLog]:
    """Logs inside the last ``days`` calendar days, newest first."""
    return [log for log in sort_logs_desc(logs) if in_window(reference_date, log.day, days)]


def completion_ratio(logs: Sequence[HabitLog]) -> float:
    """Fraction of completed logs, 0.0 for an empty sequence."""
    if not logs:
        return 0.0
    return sum(1 for log in logs if log.completed) / len(logs)


def average_difficulty(logs: Sequence[HabitLog], completed_only: bool = True):
    """Mean difficulty rating over rated logs; None when no log carries one."""
    return safe_mean(
        log.difficulty_rating for log in logs
        if log.difficulty_rating is not None and (log.completed or not completed_only)
    )


def average_mood_delta(logs: Sequence[HabitLog], completed_only: bool = False):
    """Mean (mood_after - mood_before) over logs with both moods; None when none."""
    return safe_mean(
        log.mood_delta for log in logs
        if log.mood_delta is not None and (log.completed or not completed_only)
    )


class StatsService:
    """Streak and completion statistics for a single habit."""

    @staticmethod
    def current_streak(logs: Sequence[HabitLog], reference_date: date) -> int:
        """
        Consecutive completed days ending on the reference date.

        Walks newest to oldest with an expected day offset starting at 0.
        A gap or an uncompleted log at the expected offset ends the walk.
        Logs dated after the reference date, and repeats of a day already
        counted, are skipped.
        """
        streak = 0
        expected_offset = 0

        for log in sort_logs_desc(logs):
            diff = days_back(reference_date, log.day)
            if diff < expected_offset:
                continue
            if diff > expected_offset:
                break
            if not log.completed:
                break
            streak += 1
            expected_offset += 1

        return streak

    @staticmethod
    def longest_streak(logs: Sequence[HabitLog]) -> int:
        """Longest run of consecutive completed calendar days."""
        return longest_consecutive_run(log.day for log in logs if log.completed)

    @staticmethod
    def compute_stats(logs: Sequence[HabitLog], reference_date: date) -> Stats:
        """
        Compute the stats snapshot for one habit.

        Args:
            logs: HabitLog records in any order
            reference_date: the caller's "today"

        Returns:
            Stats with rates as integer percents. average_difficulty and
            mood_improvement cover completed logs only and are None when
            no completed log carries the underlying ratings.
        """
        if not logs:
            return Stats()

        total = len(logs)
        completed = [log for log in logs if log.completed]
        window = recent_logs(logs, reference_date)

        current = StatsService.current_streak(logs, reference_date)
        longest = StatsService.longest_streak(logs)

        stats = Stats(
            total_days=total,
            completed_days=len(completed),
            completion_rate=percent(len(completed), total),
            current_streak=current,
            longest_streak=longest,
            recent_rate=percent(sum(1 for log in window if log.completed), len(window)),
            average_difficulty=round_optional(average_difficulty(completed)),
            mood_improvement=round_optional(average_mood_delta(completed)),
        )
        logger.debug(
            f"Stats computed: {total} logs, streak {stats.current_streak}/{stats.longest_streak}, "
            f"rate {stats.completion_rate}%"
        )
        return stats

    @staticmethod
    def analyze_time_distribution(logs: Sequence[HabitLog]) -> TimeDistribution:
        """
        Best and worst weekday plus the most common completion hour.

        A weekday needs at least two logs to be ranked. Fewer than seven
        logs overall is not enough to say anything.
        """
        if len(logs) < RECENT_DAYS:
            return TimeDistribution(insights=("Not enough data yet: needs at least a week of logs",))

        df = pd.DataFrame({
            'weekday': [log.day.weekday() for log in logs],
            'completed': [bool(log.completed) for log in logs],
        })
        by_day = df.groupby('weekday')['completed'].agg(['sum', 'count'])
        by_day = by_day[by_day['count'] >= 2]
        by_day = by_day.assign(rate=by_day['sum'] / by_day['count']).sort_index()

        best_day = worst_day = None
        best_rate = worst_rate = 0.0
        if not by_day.empty:
            if by_day['rate'].max() > 0:
                best_day = int(by_day['rate'].idxmax())
                best_rate = float(by_day['rate'].max())
            worst_day = int(by_day['rate'].idxmin())
            worst_rate = float(by_day['rate'].min())

        hours = [
            log.completion_time.hour for log in logs
            if log.completed and log.completion_time is not None
        ]
        most_common_hour = int(np.argmax(histogram(hours, 24))) if hours else None

        insights = []
        if best_day is not None:
            insights.append(f"{WEEKDAY_NAMES[best_day]} has the highest completion rate ({percent(best_rate, 1)}%)")
        if worst_day is not None and worst_day != best_day:
            insights.append(f"{WEEKDAY_NAMES[worst_day]} has the lowest completion rate ({percent(worst_rate, 1)}%)")
        if most_common_hour is not None:
            insights.append(f"Most often completed around {most_common_hour}:00")

        return TimeDistribution(
            best_day=WEEKDAY_NAMES[best_day] if best_day is not None else None,
            worst_day=WEEKDAY_NAMES[worst_day] if worst_day is not None and worst_day != best_day else None,
            most_common_hour=most_common_hour,
            insights=tuple(insights),
        )


compute_stats = StatsService.compute_stats
