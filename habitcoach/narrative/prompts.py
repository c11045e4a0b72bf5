# habitcoach/narrative/prompts.py
"""
Prompt templates for the narrative backend.

Each kind gets a task description and the exact JSON shape to return;
the numeric context is appended as JSON.
"""
import json
from typing import Any, Dict

from habitcoach.models import NarrativeKind

SYSTEM_PROMPT = """
You are a warm, practical habit coach.
You receive numbers computed by an analytics engine about one user's habits.
Explain them in plain, encouraging language. Never invent numbers that are not in the data.
Do not give medical advice.
Return STRICT JSON matching the requested shape. No commentary, no markdown.
"""

KIND_PROMPTS: Dict[NarrativeKind, str] = {
    NarrativeKind.HABIT_INSIGHT: """
Write three short insights about this habit: something positive, a pattern in the data,
and one concrete suggestion. Each "content" is at most 120 characters.
Shape:
{"positive": {"title": str, "content": str},
 "pattern": {"title": str, "content": str},
 "suggestion": {"title": str, "content": str, "action": str}}
""",
    NarrativeKind.MOTIVATION_MESSAGE: """
Write one motivational message using the strategy given in "motivation_type"
and suggest one small action the user can take today.
Shape:
{"message": str, "motivation_type": one of FEAR_LOSS|HOPE_FUTURE|SOCIAL_PROOF|PAIN_AVOID|PLEASURE_GAIN,
 "action_suggestion": str}
""",
    NarrativeKind.PHASE_RECOMMENDATION: """
Explain the phase evaluation. If "proposed_transition" is ADVANCE, introduce the next phase;
if RETREAT, reassure the user that stepping back is normal; otherwise encourage them to stay.
Shape:
{"message": str, "encouragement": str, "tips": [str]}
""",
    NarrativeKind.TRIGGER_ANALYSIS: """
Analyse the trigger records of a habit the user wants to break. Describe each pattern,
the deeper need the habit meets, healthier substitutes, and changes to the environment.
Confidence is between 0 and 1.
Shape:
{"patterns": [{"type": TEMPORAL|CONTEXTUAL|EMOTIONAL|BEHAVIORAL, "description": str,
               "confidence": float, "evidence": [str]}],
 "deep_need": str, "substitute_behaviors": [str], "environment_design": [str]}
""",
    NarrativeKind.BREAK_RISK: """
Summarise the break-risk assessment in one or two sentences and list preventive actions.
Shape:
{"summary": str, "preventive_actions": [str]}
""",
    NarrativeKind.DASHBOARD_SUMMARY: """
Write a one-line headline for the user's habit dashboard and up to three insights.
Shape:
{"headline": str, "insights": [str]}
""",
    NarrativeKind.WEEKLY_REPORT: """
Based on this week's summary, highlights and patterns, suggest improvements and goals for next week.
Shape:
{"suggestions": [{"category": str, "suggestion": str, "expected_impact": str}],
 "next_week_goals": [{"goal": str, "measurable": str}]}
""",
    NarrativeKind.MONTHLY_REPORT: """
Based on this month's summary and weekly trend, propose focus areas for next month.
Shape:
{"next_month_focus": [{"area": str, "goal": str, "actions": [str]}]}
""",
    NarrativeKind.MILESTONE_REPORT: """
Celebrate the milestone, reflect on the journey and suggest what comes next.
Shape:
{"celebration": str,
 "reflection": {"journey": str, "key_moments": [str], "lessons_learned": [str], "strengths_shown": [str]},
 "next_phase": {"suggestion": str, "new_goal": str, "tips": [str]}}
""",
    NarrativeKind.MOOD_CORRELATION: """
Explain how the user's mood before and after the habit relates to completing it,
and give two or three recommendations on when and how to do the habit.
Shape:
{"recommendations": [str]}
""",
    NarrativeKind.HABIT_CORRELATION: """
Explain which habits tend to be done together and which compete for the same days.
For each pair write one insight; group habits that belong together into clusters;
suggest stacking, separating or sequencing habits where the data supports it.
Shape:
{"insights": [{"habit1_id": str, "habit2_id": str, "insight": str}],
 "clusters": [{"name": str, "habit_ids": [str], "description": str}],
 "suggestions": [{"type": STACK|SEPARATE|SEQUENCE, "habits": [str], "reason": str}]}
""",
}


def build_prompt(kind: NarrativeKind, context: Dict[str, Any]) -> str:
    data = json.dumps(context, ensure_ascii=False, default=str, indent=2)
    return f"{SYSTEM_PROMPT}\n{KIND_PROMPTS[kind]}\nDATA:\n{data}\n"
