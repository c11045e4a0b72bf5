"""
Deterministic template narratives.

Used when no backend is configured and as the substitute whenever a
backend call fails. Every builder reads only the context dict, so the
output depends on nothing but the numbers the services computed.
"""
from typing import Any, Callable, Dict, List

from habitcoach.behavioral.insights_engine import generate_default_insights
from habitcoach.models import MotivationType, NarrativeKind, Stats
from habitcoach.narrative.base import NarrativeGenerator
from habitcoach.utils.constants import MIN_MOOD_LOGS

Context = Dict[str, Any]

# ============================================================================
# TRIGGER ANALYSIS
# ============================================================================

DEEP_NEEDS = {
    "TEMPORAL": "A break or transition at that time of day, the habit fills an empty slot",
    "CONTEXTUAL": "Relief from a place or situation that cues the habit automatically",
    "EMOTIONAL": "A way to regulate a difficult feeling such as stress or boredom",
    "BEHAVIORAL": "A reward at the end of another routine the habit is chained to",
}
DEFAULT_DEEP_NEED = "Comfort or a pause from whatever is going on at the time"

DEFAULT_SUBSTITUTES = [
    "Take ten slow breaths",
    "Drink a glass of water",
    "Get up and walk for five minutes",
]
DEFAULT_ENVIRONMENT_DESIGN = [
    "Remove the trigger objects",
    "Rearrange the space where it happens",
    "Put up a reminder card",
]


def _trigger_analysis(context: Context) -> Dict[str, Any]:
    patterns = context.get('patterns') or []
    narrative_patterns = [
        {
            'type': p['trigger_type'],
            'description': (
                f"{p['trigger_type'].lower()} triggers make up {p['percentage']}% of urges, "
                f"average intensity {p['average_intensity']}"
            ),
            'confidence': round(p['percentage'] / 100, 2),
            'evidence': list(p.get('examples') or []),
        }
        for p in patterns
    ]
    top_type = patterns[0]['trigger_type'] if patterns else None
    strategies = (context.get('strategies') or {}).get(top_type) or DEFAULT_SUBSTITUTES
    return {
        'patterns': narrative_patterns,
        'deep_need': DEEP_NEEDS.get(top_type, DEFAULT_DEEP_NEED),
        'substitute_behaviors': list(strategies),
        'environment_design': list(DEFAULT_ENVIRONMENT_DESIGN),
    }


# ============================================================================
# PER-HABIT COPY
# ============================================================================

def _habit_insight(context: Context) -> Dict[str, Any]:
    stats = Stats(**(context.get('stats') or {}))
    return generate_default_insights(stats, context.get('habit_name', ""))


def _motivation_message(context: Context) -> Dict[str, Any]:
    streak = context.get('current_streak', 0)
    motivation_type = context.get('motivation_type') or MotivationType.HOPE_FUTURE.value
    if streak > 0:
        message = f"You've kept at it for {streak} days! Every day makes the next one easier."
    else:
        message = "Today is a fresh start. One small step is enough."
    return {
        'message': message,
        'motivation_type': motivation_type,
        'action_suggestion': "Do today's habit now",
    }


def _phase_recommendation(context: Context) -> Dict[str, Any]:
    readiness = context.get('readiness') or {}
    retreat = context.get('retreat') or {}
    transition = context.get('proposed_transition')
    next_phase = context.get('next_phase')

    if transition == "RETREAT":
        return {
            'message': retreat.get('recommendation') or "Step back to the previous phase for now",
            'encouragement': retreat.get('encouragement') or "Stepping back is part of the process",
            'tips': list(retreat.get('alternative_actions') or []),
        }

    tips: List[str] = []
    if transition == "ADVANCE" and next_phase and next_phase.get('micro_habit'):
        tips.append(f"Next micro habit: {next_phase['micro_habit']}")
    if next_phase and next_phase.get('success_criteria'):
        tips.append(f"Success looks like: {next_phase['success_criteria']}")
    encouragement = (
        "You've earned this step up" if transition == "ADVANCE"
        else "Each day in this phase is building the foundation"
    )
    return {
        'message': readiness.get('recommendation') or "Keep the current pace a few more days",
        'encouragement': encouragement,
        'tips': tips,
    }


def _break_risk(context: Context) -> Dict[str, Any]:
    risk = context.get('risk') or {}
    name = context.get('habit_name') or "This habit"
    level = risk.get('risk_level', "LOW")
    return {
        'summary': f"{name} break risk is {level.lower()} ({risk.get('risk_score', 0)}/100)",
        'preventive_actions': [a['action'] for a in risk.get('preventive_actions') or []],
    }


# ============================================================================
# DASHBOARD AND REPORTS
# ============================================================================

def _dashboard_summary(context: Context) -> Dict[str, Any]:
    summary = context.get('summary') or {}
    insights = []
    if summary.get('best_habit'):
        insights.append(f"Best habit: {summary['best_habit']}")
    if summary.get('needs_attention'):
        insights.append(f"Needs attention: {', '.join(summary['needs_attention'])}")
    risks = context.get('risk_assessments') or []
    if risks and risks[0]['risk']['risk_level'] in ("HIGH", "CRITICAL"):
        insights.append(f"Highest break risk: {risks[0]['habit_name']}")
    return {
        'headline': (
            f"{summary.get('overall_completion_rate', 0)}% completion across "
            f"{summary.get('total_habits', 0)} habits"
        ),
        'insights': insights,
    }


def _weekly_report(context: Context) -> Dict[str, Any]:
    rate = (context.get('summary') or {}).get('completion_rate', 0)
    if rate < 70:
        suggestion = {
            'category': "TIMING",
            'suggestion': "Pick a fixed time of day for each habit",
            'expected_impact': "Improves consistency",
        }
    else:
        suggestion = {
            'category': "TIMING",
            'suggestion': "Keep the current pace and schedule",
            'expected_impact': "Improves consistency",
        }

    if rate < 50:
        goal = "Reach 50% completion"
    elif rate < 80:
        goal = "Reach 80% completion"
    else:
        goal = "Maintain your completion rate"
    return {
        'suggestions': [suggestion],
        'next_week_goals': [{'goal': goal, 'measurable': f"{min(100, rate + 10)}%+ completion"}],
    }


def _monthly_report(context: Context) -> Dict[str, Any]:
    rate = (context.get('summary') or {}).get('completion_rate', 0)
    return {
        'next_month_focus': [{
            'area': "CONSISTENCY",
            'goal': f"Raise overall completion to {min(100, rate + 10)}%",
            'actions': ["Set a fixed time for each habit", "Simplify the habit"],
        }],
    }


def _milestone_report(context: Context) -> Dict[str, Any]:
    milestone_type = context.get('milestone_type')
    name = context.get('habit_name') or "your habit"
    streak = context.get('streak_days', 0)

    if milestone_type == "DAY_100":
        suggestion = "Set a new challenge that builds on this habit"
    else:
        suggestion = "Keep heading for the next milestone"
    if milestone_type == "DAY_7":
        new_goal = "Try 21 days"
    elif milestone_type == "DAY_21":
        new_goal = "Try 66 days"
    else:
        new_goal = "Maintain and deepen the habit"

    label = context.get('milestone_label') or f"{streak} days"
    if context.get('start_date'):
        journey = f"Since {context['start_date']} you have come {streak} days"
    else:
        journey = f"{streak} days in a row at {context.get('completion_rate', 0)}% completion"
    return {
        'celebration': f"{label} of {name}! That is a real achievement.",
        'reflection': {
            'journey': journey,
            'key_moments': list(context.get('key_moments') or ["Every day you showed up counted"]),
            'lessons_learned': ["Consistency matters more than perfection", "Small steps bring big change"],
            'strengths_shown': ["Persistence", "Self-discipline", "Focus"],
        },
        'next_phase': {
            'suggestion': suggestion,
            'new_goal': new_goal,
            'tips': ["Keep the rhythm", "Reward yourself now and then", "Share your achievement"],
        },
    }


# ============================================================================
# CORRELATIONS
# ============================================================================

MOOD_NEEDS_DATA = "Log your mood before and after the habit to see how it affects you"


def _mood_correlation(context: Context) -> Dict[str, Any]:
    if context.get('sample_size', 0) < MIN_MOOD_LOGS:
        return {'recommendations': [MOOD_NEEDS_DATA]}
    if context.get('mood_lift', 0) > 0:
        return {'recommendations': ["The habit lifts your mood, keep going"]}
    return {'recommendations': ["Try doing the habit at a time when your mood is better"]}


def _habit_correlation(context: Context) -> Dict[str, Any]:
    insights = []
    for pair in context.get('correlations') or []:
        if pair['relationship'] == "POSITIVE":
            insight = "These two habits are often completed together"
        else:
            insight = "These two habits are fairly independent"
        insights.append({'habit1_id': pair['habit1_id'], 'habit2_id': pair['habit2_id'], 'insight': insight})
    return {'insights': insights, 'clusters': [], 'suggestions': []}


FALLBACK_BUILDERS: Dict[NarrativeKind, Callable[[Context], Dict[str, Any]]] = {
    NarrativeKind.HABIT_INSIGHT: _habit_insight,
    NarrativeKind.MOTIVATION_MESSAGE: _motivation_message,
    NarrativeKind.PHASE_RECOMMENDATION: _phase_recommendation,
    NarrativeKind.TRIGGER_ANALYSIS: _trigger_analysis,
    NarrativeKind.BREAK_RISK: _break_risk,
    NarrativeKind.DASHBOARD_SUMMARY: _dashboard_summary,
    NarrativeKind.WEEKLY_REPORT: _weekly_report,
    NarrativeKind.MONTHLY_REPORT: _monthly_report,
    NarrativeKind.MILESTONE_REPORT: _milestone_report,
    NarrativeKind.MOOD_CORRELATION: _mood_correlation,
    NarrativeKind.HABIT_CORRELATION: _habit_correlation,
}


class TemplateNarrativeGenerator(NarrativeGenerator):
    """Rule-based copy for every NarrativeKind; never calls out."""

    def generate(self, kind: NarrativeKind, context: Dict[str, Any]) -> Dict[str, Any]:
        return FALLBACK_BUILDERS[kind](context)
