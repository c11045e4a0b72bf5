"""
Report Service

Weekly, monthly and milestone reports across a user's habits. The
summary, highlights and patterns are computed here; the forward-looking
parts (suggestions, goals, focus areas, celebration copy) come from the
narrative layer with a template fallback.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd

from habitcoach.helpers.metric_helpers import (
    compute_trend_line, longest_consecutive_run, percent, round_half_up, safe_mean,
)
from habitcoach.models import (
    Habit, HabitLog, MilestoneReport, MilestoneType, NarrativeKind, PatternFinding,
    PeriodSummary, Report, ReportHighlight, WeeklyTrendPoint,
)
from habitcoach.narrative import NarrativeGenerator, narrate
from habitcoach.utils.constants import MAX_REPORT_ITEMS, MILESTONE_STREAK_DAYS, RECENT_DAYS, WEEKDAY_NAMES
from habitcoach.utils.logging_utils import log_execution
from habitcoach.utils.time_utils import (
    calculate_days_in_range, get_month_boundaries, get_relative_date_description, get_week_boundaries,
)

logger = logging.getLogger(__name__)

LogsByHabit = Mapping[str, Sequence[HabitLog]]

MILESTONE_TYPES_BY_DAYS = dict(zip(
    MILESTONE_STREAK_DAYS,
    (MilestoneType.DAY_7, MilestoneType.DAY_21, MilestoneType.DAY_66, MilestoneType.DAY_100),
))

MILESTONE_LABELS = {
    MilestoneType.DAY_7: "7 days",
    MilestoneType.DAY_21: "21 days",
    MilestoneType.DAY_66: "66 days",
    MilestoneType.DAY_100: "100 days",
}


# ============================================================================
# HELPERS
# ============================================================================

def logs_in_period(
    logs_by_habit: LogsByHabit,
    period_start: date,
    period_end: date,
) -> Dict[str, List[HabitLog]]:
    """
    Logs whose calendar day falls inside [period_start, period_end].

    Raises:
        InvalidDateRangeError: if period_start is after period_end
    """
    calculate_days_in_range(period_start, period_end)
    return {
        habit_id: [log for log in logs if period_start <= log.day <= period_end]
        for habit_id, logs in logs_by_habit.items()
    }


def _habit_counts(habits: Sequence[Habit], logs_by_habit: LogsByHabit) -> List[Tuple[Habit, int, int]]:
    """(habit, completed, total) per habit, in habit order."""
    counts = []
    for habit in habits:
        logs = logs_by_habit.get(habit.id, ())
        counts.append((habit, sum(1 for log in logs if log.completed), len(logs)))
    return counts


def _habit_name(habit: Habit) -> str:
    return habit.name or habit.id


# ============================================================================
# SUMMARY, HIGHLIGHTS, PATTERNS
# ============================================================================

def calculate_period_summary(
    habits: Sequence[Habit],
    logs_by_habit: LogsByHabit,
    previous_rate: Optional[int] = None,
) -> PeriodSummary:
    """
    Summary of one period's logs.

    rate_change is 0 without a previous rate. The longest streak runs over
    days on which any habit was completed; a perfect day is one on which
    every habit was completed.
    """
    total = 0
    completed = 0
    active: Set[str] = set()
    completed_by_day: Dict[date, Set[str]] = defaultdict(set)

    for habit in habits:
        logs = logs_by_habit.get(habit.id, ())
        if logs:
            active.add(habit.id)
        for log in logs:
            total += 1
            if log.completed:
                completed += 1
                completed_by_day[log.day].add(habit.id)

    rate = percent(completed, total)
    perfect_days = sum(1 for ids in completed_by_day.values() if habits and len(ids) == len(habits))

    return PeriodSummary(
        completion_rate=rate,
        rate_change=rate - previous_rate if previous_rate is not None else 0,
        active_habits=len(active),
        longest_streak=longest_consecutive_run(completed_by_day.keys()),
        total_checkins=completed,
        perfect_days=perfect_days,
    )


def identify_highlights(habits: Sequence[Habit], logs_by_habit: LogsByHabit) -> Tuple[ReportHighlight, ...]:
    """
    Up to three standout habits.

    A perfect record with at least 7 completions beats a 90% rate with at
    least 5. With no standout, the habit completed most often is named.
    """
    highlights: List[ReportHighlight] = []
    counts = _habit_counts(habits, logs_by_habit)

    for habit, done, total in counts:
        if total == 0:
            continue
        if done == total and done >= 7:
            highlights.append(ReportHighlight(
                habit_id=habit.id,
                habit_name=_habit_name(habit),
                achievement="Perfect week",
                metric=f"{done} completions, none missed",
            ))
        elif done / total >= 0.9 and done >= 5:
            highlights.append(ReportHighlight(
                habit_id=habit.id,
                habit_name=_habit_name(habit),
                achievement="High completion rate",
                metric=f"{percent(done, total)}% completion",
            ))

    if not highlights:
        active = [entry for entry in counts if entry[1] > 0]
        if active:
            # max() keeps the first of equal counts
            habit, done, _ = max(active, key=lambda entry: entry[1])
            highlights.append(ReportHighlight(
                habit_id=habit.id,
                habit_name=_habit_name(habit),
                achievement="Most active habit",
                metric=f"Completed {done} times",
            ))

    return tuple(highlights[:MAX_REPORT_ITEMS])


def find_patterns(logs_by_habit: LogsByHabit) -> Tuple[PatternFinding, ...]:
    """
    Weekday and mood patterns across all habits.

    Only weekdays with at least two logs are compared. The best weekday
    must exceed 70% and the worst must fall below 50%. Ties go to the
    earlier weekday (Monday first).
    """
    patterns: List[PatternFinding] = []
    logs = [log for habit_logs in logs_by_habit.values() for log in habit_logs]
    if not logs:
        return ()

    df = pd.DataFrame({
        'weekday': [log.day.weekday() for log in logs],
        'completed': [int(log.completed) for log in logs],
    })
    by_day = df.groupby('weekday')['completed'].agg(done='sum', total='size')
    by_day = by_day[by_day['total'] >= 2]

    best_day, best_rate = None, 0.0
    worst_day, worst_rate = None, 1.0
    for weekday, row in by_day.iterrows():
        rate = row['done'] / row['total']
        if rate > best_rate:
            best_day, best_rate = int(weekday), rate
        if rate < worst_rate:
            worst_day, worst_rate = int(weekday), rate

    if best_day is not None and best_rate > 0.7:
        name = WEEKDAY_NAMES[best_day]
        patterns.append(PatternFinding(
            finding=f"{name} is your strongest day",
            implication=f"Your routine on {name} suits these habits",
            confidence=round_half_up(best_rate, 2),
            data_points=int(by_day.loc[best_day, 'total']),
        ))

    if worst_day is not None and worst_rate < 0.5 and worst_day != best_day:
        name = WEEKDAY_NAMES[worst_day]
        patterns.append(PatternFinding(
            finding=f"{name} has the lowest completion",
            implication=f"Adjust the plan or lower expectations on {name}",
            confidence=round_half_up(1 - worst_rate, 2),
            data_points=int(by_day.loc[worst_day, 'total']),
        ))

    mood_deltas = [log.mood_delta for log in logs if log.mood_delta is not None]
    if len(mood_deltas) >= 5:
        average_change = safe_mean(mood_deltas)
        if average_change >= 0.5:
            patterns.append(PatternFinding(
                finding="Your habits noticeably improve your mood",
                implication="These habits are good for your wellbeing",
                confidence=round_half_up(min(1.0, average_change / 2), 2),
                data_points=len(mood_deltas),
            ))

    return tuple(patterns[:MAX_REPORT_ITEMS])


# ============================================================================
# REPORTS
# ============================================================================

def _report_context(
    habits: Sequence[Habit],
    period_start: date,
    period_end: date,
    summary: PeriodSummary,
    highlights: Sequence[ReportHighlight],
    patterns: Sequence[PatternFinding],
) -> Dict:
    return {
        'period_start': period_start.isoformat(),
        'period_end': period_end.isoformat(),
        'habits': [{'name': _habit_name(h), 'type': h.type.value} for h in habits],
        'summary': summary.to_dict(),
        'highlights': [h.to_dict() for h in highlights],
        'patterns': [p.to_dict() for p in patterns],
    }


@log_execution()
def build_weekly_report(
    habits: Sequence[Habit],
    logs_by_habit: LogsByHabit,
    reference_date: date,
    previous_rate: Optional[int] = None,
    narrative: Optional[NarrativeGenerator] = None,
    calendar_week: bool = False,
) -> Report:
    """
    Report for the seven days ending on ``reference_date``.

    With ``calendar_week`` the Monday-to-Sunday week containing it is used
    instead. When ``previous_rate`` is not given it is taken from the
    preceding seven days, if any habit was logged in them.
    """
    if calendar_week:
        period_start, period_end = get_week_boundaries(reference_date)
    else:
        period_start, period_end = reference_date - timedelta(days=RECENT_DAYS - 1), reference_date

    if previous_rate is None:
        previous = logs_in_period(
            logs_by_habit, period_start - timedelta(days=RECENT_DAYS), period_start - timedelta(days=1)
        )
        if any(previous.values()):
            previous_rate = calculate_period_summary(habits, previous).completion_rate

    period = logs_in_period(logs_by_habit, period_start, period_end)
    summary = calculate_period_summary(habits, period, previous_rate)
    highlights = identify_highlights(habits, period)
    patterns = find_patterns(period)

    context = _report_context(habits, period_start, period_end, summary, highlights, patterns)
    report = Report(
        kind="weekly",
        period_start=period_start,
        period_end=period_end,
        summary=summary,
        highlights=highlights,
        patterns=patterns,
        narrative=narrate(narrative, NarrativeKind.WEEKLY_REPORT, context),
    )
    logger.info(
        f"Weekly report {period_start} - {period_end}: {summary.completion_rate}% "
        f"({summary.rate_change:+d}), {summary.perfect_days} perfect days"
    )
    return report


def weekly_trend(
    habits: Sequence[Habit],
    period: LogsByHabit,
    period_start: date,
    period_end: date,
) -> Tuple[WeeklyTrendPoint, ...]:
    """Completion rate per seven-day slice of the period, the last slice may be short."""
    points = []
    week = 1
    start = period_start
    while start <= period_end:
        end = min(period_end, start + timedelta(days=RECENT_DAYS - 1))
        summary = calculate_period_summary(habits, logs_in_period(period, start, end))
        points.append(WeeklyTrendPoint(
            week=week,
            completion_rate=summary.completion_rate,
            highlight=f"{summary.perfect_days} perfect days" if summary.perfect_days > 0 else "",
        ))
        week += 1
        start = end + timedelta(days=1)
    return tuple(points)


@log_execution()
def build_monthly_report(
    habits: Sequence[Habit],
    logs_by_habit: LogsByHabit,
    month_of: date,
    previous_rate: Optional[int] = None,
    milestones: Sequence[MilestoneReport] = (),
    narrative: Optional[NarrativeGenerator] = None,
) -> Report:
    """Report for the calendar month containing ``month_of``, with a weekly trend."""
    period_start, period_end = get_month_boundaries(month_of)

    if previous_rate is None:
        previous_start, previous_end = get_month_boundaries(period_start - timedelta(days=1))
        previous = logs_in_period(logs_by_habit, previous_start, previous_end)
        if any(previous.values()):
            previous_rate = calculate_period_summary(habits, previous).completion_rate

    period = logs_in_period(logs_by_habit, period_start, period_end)
    summary = calculate_period_summary(habits, period, previous_rate)
    highlights = identify_highlights(habits, period)
    patterns = find_patterns(period)
    trend = weekly_trend(habits, period, period_start, period_end)

    context = _report_context(habits, period_start, period_end, summary, highlights, patterns)
    context['weekly_trend'] = [point.to_dict() for point in trend]
    context['trend_line'] = compute_trend_line(
        np.arange(len(trend), dtype=float),
        np.array([point.completion_rate for point in trend], dtype=float),
    )
    context['milestones'] = [
        {'habit_name': m.habit_name, 'milestone': m.milestone_label} for m in milestones
    ]

    return Report(
        kind="monthly",
        period_start=period_start,
        period_end=period_end,
        summary=summary,
        highlights=highlights,
        patterns=patterns,
        weekly_trend=trend,
        narrative=narrate(narrative, NarrativeKind.MONTHLY_REPORT, context),
    )


def pending_milestones(current_streak: int, achieved: Sequence[MilestoneType] = ()) -> List[MilestoneType]:
    """Milestones the streak has reached that have not been celebrated yet, shortest first."""
    return [
        milestone for days, milestone in MILESTONE_TYPES_BY_DAYS.items()
        if current_streak >= days and milestone not in achieved
    ]


def milestone_label(milestone_type: MilestoneType, streak_days: int) -> str:
    return MILESTONE_LABELS.get(milestone_type, f"{streak_days} days")


def build_milestone_report(
    habit: Habit,
    logs: Sequence[HabitLog],
    milestone_type: MilestoneType,
    streak_days: int,
    reference_date: date,
    key_moments: Optional[Sequence[str]] = None,
    narrative: Optional[NarrativeGenerator] = None,
) -> MilestoneReport:
    completed = sum(1 for log in logs if log.completed)
    completion_rate = percent(completed, len(logs))
    label = milestone_label(milestone_type, streak_days)

    context = {
        'habit_name': _habit_name(habit),
        'habit_type': habit.type.value,
        'milestone_type': milestone_type.value,
        'milestone_label': label,
        'streak_days': streak_days,
        'start_date': habit.created_at.isoformat(),
        'started': get_relative_date_description(habit.created_at, reference_date),
        'total_logs': len(logs),
        'completion_rate': completion_rate,
    }
    if key_moments:
        context['key_moments'] = list(key_moments)

    logger.info(f"Milestone {milestone_type.value} reached for habit {habit.id} ({streak_days} days)")
    return MilestoneReport(
        habit_name=_habit_name(habit),
        milestone_type=milestone_type,
        milestone_label=label,
        streak_days=streak_days,
        completion_rate=completion_rate,
        narrative=narrate(narrative, NarrativeKind.MILESTONE_REPORT, context),
    )
