"""
Insight Service

Composes the per-habit analyses into one payload per habit and across all
habits (dashboard). Every number is computed first; narratives are
requested afterwards, fanned out in parallel, and can only add copy on
top of finished results.
"""
import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from datetime import date
from typing import Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from habitcoach.behavioral.insights_engine import get_quick_insights
from habitcoach.config import get_settings
from habitcoach.exceptions import HabitNotFoundError
from habitcoach.helpers.metric_helpers import percent
from habitcoach.helpers.monitoring import MetricsCollector, PerformanceMonitor, track_performance
from habitcoach.models import (
    DashboardInsights, DashboardSummary, Habit, HabitEvaluation, HabitInsights, HabitLog,
    HabitType, HeatmapCell, NarrativeKind, RiskEntry, TriggerRecord,
)
from habitcoach.narrative import GuardedNarrativeGenerator, NarrativeGenerator, TemplateNarrativeGenerator, narrate
from habitcoach.services.motivation_service import MotivationService, select_motivation_type
from habitcoach.services.phase_service import PhaseService
from habitcoach.services.risk_service import RiskService
from habitcoach.services.stats_service import StatsService
from habitcoach.services.trigger_service import TriggerService
from habitcoach.utils.constants import (
    ATTENTION_RATE_THRESHOLD, DEFAULT_TOP_N_RISKS, LONG_DAYS, MAX_ATTENTION_HABITS, MIN_TRIGGER_RECORDS,
)
from habitcoach.utils.logging_utils import clear_request_context, get_request_id, set_request_id
from habitcoach.utils.time_utils import days_between, in_window, localize

logger = logging.getLogger(__name__)

NarrativeTask = Callable[[], Dict]
METRIC_DEADLINE = "narrative_deadline"
DASHBOARD_NARRATIVE_KEY = (-1, NarrativeKind.DASHBOARD_SUMMARY.value)


# ============================================================================
# NARRATIVE FAN-OUT
# ============================================================================

@contextmanager
def _guarded(generator: Optional[NarrativeGenerator]):
    """Wrap a raw backend for the duration of one aggregation."""
    if generator is None or isinstance(generator, (GuardedNarrativeGenerator, TemplateNarrativeGenerator)):
        yield generator
        return
    guarded = GuardedNarrativeGenerator(generator)
    try:
        yield guarded
    finally:
        guarded.shutdown()


def _bind_request(task: NarrativeTask, request_id: str) -> NarrativeTask:
    def run():
        set_request_id(request_id)
        try:
            return task()
        finally:
            clear_request_context()
    return run


def _batch_deadline(generator: Optional[NarrativeGenerator]) -> Optional[float]:
    """One guard timeout bounds a whole batch; templates never need one."""
    if isinstance(generator, GuardedNarrativeGenerator):
        return generator.timeout_seconds
    return None


def run_narrative_tasks(
    tasks: Mapping[Hashable, NarrativeTask],
    max_workers: Optional[int] = None,
    deadline_seconds: Optional[float] = None,
    fallbacks: Optional[Mapping[Hashable, NarrativeTask]] = None,
) -> Dict[Hashable, Dict]:
    """
    Run independent narrative tasks in parallel, keyed results in input order.

    Tasks go through ``narrate`` so they never raise for backend failures.
    With ``deadline_seconds`` the batch waits that long in total; a task
    still unfinished by then is answered by its entry in ``fallbacks``
    and left to finish in the background. Tasks without a fallback are
    always waited for.
    """
    if not tasks:
        return {}
    max_workers = max_workers or get_settings().max_parallel_narratives
    fallbacks = fallbacks or {}
    request_id = get_request_id()

    pool = ThreadPoolExecutor(max_workers=min(max_workers, len(tasks)), thread_name_prefix="narrate")
    try:
        futures = {key: pool.submit(_bind_request(task, request_id)) for key, task in tasks.items()}
        wait(futures.values(), timeout=deadline_seconds)

        results = {}
        late = []
        for key, future in futures.items():
            if not future.done() and key in fallbacks:
                future.cancel()
                late.append(key)
                results[key] = fallbacks[key]()
            else:
                results[key] = future.result()
    finally:
        # late tasks still hold their thread, do not wait for them
        pool.shutdown(wait=False, cancel_futures=True)

    if late:
        logger.warning(
            f"Narrative batch passed its {deadline_seconds}s deadline, "
            f"{len(late)} of {len(tasks)} narratives use templates"
        )
        MetricsCollector.record(METRIC_DEADLINE, len(late), {'total': len(tasks)})
    return results


def _habit_narrative_tasks(
    insights: HabitInsights,
    habit: Habit,
    evaluation: Optional[HabitEvaluation],
    triggers: Sequence[TriggerRecord],
    generator: Optional[NarrativeGenerator],
    timezone_name: Optional[str],
) -> Tuple[Dict[str, NarrativeTask], Dict[str, NarrativeTask]]:
    """
    Context for every narrative a single habit gets, as deferred calls.

    Returns the generator tasks and, under the same keys, their template
    substitutes.
    """
    name = insights.habit_name
    tasks: Dict[str, NarrativeTask] = {}
    fallbacks: Dict[str, NarrativeTask] = {}

    def add(kind: NarrativeKind, context: Dict):
        tasks[kind.value] = lambda: narrate(generator, kind, context)
        fallbacks[kind.value] = lambda: narrate(None, kind, context)

    add(NarrativeKind.HABIT_INSIGHT, {
        'habit_name': name,
        'habit_type': habit.type.value,
        'stats': insights.stats.to_dict(),
        'quick_insights': list(insights.quick_insights),
    })
    add(NarrativeKind.MOTIVATION_MESSAGE, {
        'habit_name': name,
        'current_streak': insights.stats.current_streak,
        'motivation': insights.motivation.to_dict(),
        'motivation_type': select_motivation_type(insights.motivation.state).value,
    })
    add(NarrativeKind.BREAK_RISK, {
        'habit_name': name,
        'risk': insights.break_risk.to_dict(),
    })

    if evaluation is not None:
        current = habit.phase_config(habit.current_phase)
        upcoming = habit.phase_config(habit.current_phase + 1)
        add(NarrativeKind.PHASE_RECOMMENDATION, {
            'habit_name': name,
            'current_phase': current.to_dict() if current else None,
            'next_phase': upcoming.to_dict() if upcoming else None,
            'readiness': evaluation.readiness.to_dict(),
            'advance': evaluation.advance.to_dict(),
            'retreat': evaluation.retreat.to_dict(),
            'proposed_transition': evaluation.proposed_transition.value if evaluation.proposed_transition else None,
        })

    if habit.type is HabitType.BREAK and triggers:
        key = NarrativeKind.TRIGGER_ANALYSIS.value
        tasks[key] = lambda: TriggerService.build_trigger_analysis(triggers, name, generator, timezone_name)
        fallbacks[key] = lambda: TriggerService.build_trigger_analysis(triggers, name, None, timezone_name)
    return tasks, fallbacks


# ============================================================================
# PER-HABIT INSIGHTS
# ============================================================================

def _compute_habit_insights(
    habit: Habit,
    logs: Sequence[HabitLog],
    reference_date: date,
    triggers: Sequence[TriggerRecord],
    days_in_phase: Optional[int],
    timezone_name: Optional[str],
) -> Tuple[HabitInsights, Optional[HabitEvaluation]]:
    days_since_start = max(0, days_between(reference_date, habit.created_at))
    stats = StatsService.compute_stats(logs, reference_date)
    motivation = MotivationService.analyze_motivation(logs, days_since_start, reference_date)
    break_risk = RiskService.predict_break_risk(logs, stats.current_streak, days_since_start)

    evaluation = None
    if habit.phases:
        phase_days = days_since_start if days_in_phase is None else days_in_phase
        evaluation = PhaseService.evaluate_habit(habit, logs, phase_days, reference_date)

    trigger_patterns = ()
    temporal_patterns = None
    relapse = None
    if habit.type is HabitType.BREAK and triggers:
        trigger_patterns = tuple(TriggerService.analyze_trigger_patterns(triggers))
        if len(triggers) >= MIN_TRIGGER_RECORDS:
            temporal_patterns = TriggerService.identify_temporal_patterns(triggers, timezone_name)
        relapse = TriggerService.analyze_relapse(triggers, reference_date)

    insights = HabitInsights(
        habit_id=habit.id,
        habit_name=habit.name or habit.id,
        stats=stats,
        motivation=motivation,
        break_risk=break_risk,
        quick_insights=get_quick_insights(stats),
        phase_evaluation=evaluation.readiness if evaluation else None,
        retreat=evaluation.retreat if evaluation else None,
        trigger_patterns=trigger_patterns,
        temporal_patterns=temporal_patterns,
        relapse=relapse,
    )
    return insights, evaluation


def build_habit_insights(
    habit: Habit,
    logs: Sequence[HabitLog],
    reference_date: date,
    triggers: Sequence[TriggerRecord] = (),
    days_in_phase: Optional[int] = None,
    narrative: Optional[NarrativeGenerator] = None,
    timezone_name: Optional[str] = None,
) -> HabitInsights:
    """
    Everything known about one habit.

    ``days_in_phase`` defaults to the days since the habit was created,
    for stores that do not track when the current phase began. Without a
    ``narrative`` generator the narrative dict holds the template copy.
    """
    timezone_name = timezone_name or get_settings().timezone
    insights, evaluation = _compute_habit_insights(
        habit, logs, reference_date, triggers, days_in_phase, timezone_name
    )
    with _guarded(narrative) as generator:
        tasks, fallbacks = _habit_narrative_tasks(insights, habit, evaluation, triggers, generator, timezone_name)
        narratives = run_narrative_tasks(tasks, deadline_seconds=_batch_deadline(generator), fallbacks=fallbacks)
    return dataclasses.replace(insights, narrative=narratives)


def get_habit_insights(
    habit_id: str,
    habits: Sequence[Habit],
    logs_by_habit: Mapping[str, Sequence[HabitLog]],
    reference_date: date,
    **kwargs,
) -> HabitInsights:
    """
    build_habit_insights for a habit looked up by id.

    Raises:
        HabitNotFoundError: if no habit in ``habits`` has that id
    """
    habit = next((h for h in habits if h.id == habit_id), None)
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return build_habit_insights(habit, logs_by_habit.get(habit_id, ()), reference_date, **kwargs)


# ============================================================================
# DASHBOARD
# ============================================================================

def build_heatmap(logs: Sequence[HabitLog], timezone_name: Optional[str] = None) -> Tuple[HeatmapCell, ...]:
    """
    Weekday x hour completion cells, sorted by weekday then hour.

    The hour comes from the completion time, else from a datetime
    ``logged_at``; logs with neither are left out.
    """
    rows = []
    for log in logs:
        moment = localize(log.time_of_day, timezone_name)
        if moment is None:
            continue
        rows.append({'day': log.day.weekday(), 'hour': moment.hour, 'completed': int(log.completed)})
    if not rows:
        return ()

    df = pd.DataFrame(rows)
    grouped = (
        df.groupby(['day', 'hour'])['completed']
        .agg(done='sum', total='size')
        .reset_index()
        .sort_values(['day', 'hour'])
    )
    return tuple(
        HeatmapCell(
            day_of_week=int(row.day),
            hour=int(row.hour),
            completion_rate=percent(int(row.done), int(row.total)),
            count=int(row.total),
        )
        for row in grouped.itertuples(index=False)
    )


def summarize_habits(
    habits: Sequence[Habit],
    period_logs: Mapping[str, Sequence[HabitLog]],
) -> DashboardSummary:
    """Totals over the period plus the best habit and up to three needing attention."""
    all_logs = [log for habit in habits for log in period_logs.get(habit.id, ())]
    completed = sum(1 for log in all_logs if log.completed)

    rates = []
    for habit in habits:
        habit_logs = period_logs.get(habit.id, ())
        rate = percent(sum(1 for log in habit_logs if log.completed), len(habit_logs))
        rates.append((habit, rate, len(habit_logs)))

    logged = [entry for entry in rates if entry[2] > 0]
    best = max(logged, key=lambda entry: entry[1]) if logged else None
    attention = [
        habit.name or habit.id for habit, rate, _ in rates if rate < ATTENTION_RATE_THRESHOLD
    ][:MAX_ATTENTION_HABITS]

    return DashboardSummary(
        total_habits=len(habits),
        total_logs=len(all_logs),
        completed_logs=completed,
        overall_completion_rate=percent(completed, len(all_logs)),
        best_habit=(best[0].name or best[0].id) if best else None,
        needs_attention=tuple(attention),
    )


def rank_risks(per_habit: Sequence[HabitInsights], top_n: int = DEFAULT_TOP_N_RISKS) -> Tuple[RiskEntry, ...]:
    # sorted() is stable, ties keep habit order
    ranked = sorted(per_habit, key=lambda insights: insights.break_risk.risk_score, reverse=True)
    return tuple(
        RiskEntry(habit_id=i.habit_id, habit_name=i.habit_name, risk=i.break_risk)
        for i in ranked[:top_n]
    )


@track_performance(threshold_seconds=1.0, metric_type="dashboard_build")
def build_dashboard(
    habits: Sequence[Habit],
    logs_by_habit: Mapping[str, Sequence[HabitLog]],
    reference_date: date,
    period_days: int = LONG_DAYS,
    triggers_by_habit: Optional[Mapping[str, Sequence[TriggerRecord]]] = None,
    narrative: Optional[NarrativeGenerator] = None,
    top_n_risks: int = DEFAULT_TOP_N_RISKS,
    days_in_phase_by_habit: Optional[Mapping[str, int]] = None,
    timezone_name: Optional[str] = None,
) -> DashboardInsights:
    """
    Dashboard across all habits.

    Per-habit insights use each habit's full log history; the summary and
    heatmap cover the last ``period_days`` calendar days.
    """
    triggers_by_habit = triggers_by_habit or {}
    days_in_phase_by_habit = days_in_phase_by_habit or {}
    timezone_name = timezone_name or get_settings().timezone

    computed = []
    for habit in habits:
        computed.append(_compute_habit_insights(
            habit,
            logs_by_habit.get(habit.id, ()),
            reference_date,
            triggers_by_habit.get(habit.id, ()),
            days_in_phase_by_habit.get(habit.id),
            timezone_name,
        ))

    period_logs = {
        habit.id: [log for log in logs_by_habit.get(habit.id, ()) if in_window(reference_date, log.day, period_days)]
        for habit in habits
    }
    summary = summarize_habits(habits, period_logs)
    heatmap = build_heatmap([log for logs in period_logs.values() for log in logs], timezone_name)
    risks = rank_risks([insights for insights, _ in computed], top_n_risks)

    with _guarded(narrative) as generator, PerformanceMonitor("dashboard_narratives", "narrative_batch"):
        tasks: Dict[Tuple[int, str], NarrativeTask] = {}
        fallbacks: Dict[Tuple[int, str], NarrativeTask] = {}
        for index, (habit, (insights, evaluation)) in enumerate(zip(habits, computed)):
            habit_tasks, habit_fallbacks = _habit_narrative_tasks(
                insights, habit, evaluation, triggers_by_habit.get(habit.id, ()), generator, timezone_name
            )
            for kind, task in habit_tasks.items():
                tasks[(index, kind)] = task
                fallbacks[(index, kind)] = habit_fallbacks[kind]
        dashboard_context = {
            'summary': summary.to_dict(),
            'risk_assessments': [entry.to_dict() for entry in risks],
        }
        tasks[DASHBOARD_NARRATIVE_KEY] = lambda: narrate(generator, NarrativeKind.DASHBOARD_SUMMARY, dashboard_context)
        fallbacks[DASHBOARD_NARRATIVE_KEY] = lambda: narrate(None, NarrativeKind.DASHBOARD_SUMMARY, dashboard_context)
        results = run_narrative_tasks(tasks, deadline_seconds=_batch_deadline(generator), fallbacks=fallbacks)

    per_habit: List[HabitInsights] = []
    for index, (insights, _) in enumerate(computed):
        narratives = {kind: value for (owner, kind), value in results.items() if owner == index}
        per_habit.append(dataclasses.replace(insights, narrative=narratives))

    logger.info(
        f"Dashboard built: {summary.total_habits} habits, {summary.total_logs} logs, "
        f"{len(heatmap)} heatmap cells, {len(tasks)} narratives"
    )
    return DashboardInsights(
        summary=summary,
        heatmap_data=heatmap,
        risk_assessments=risks,
        per_habit=tuple(per_habit),
        narrative=results[DASHBOARD_NARRATIVE_KEY],
    )
