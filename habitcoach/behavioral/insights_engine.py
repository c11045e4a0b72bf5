"""
Behavioral Insights Engine

Rule-based quick insights derived from a habit's statistics, plus the
default positive / pattern / suggestion triple shown when no generated
narrative is available.

No AI/ML - purely deterministic rules grounded in research.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

from habitcoach.models import SerializableMixin, Severity, Stats


class InsightType(Enum):
    """Types of quick insights"""
    STREAK = "streak"
    HIGH_COMPLETION = "high_completion"
    LOW_COMPLETION = "low_completion"
    MOOD_BOOST = "mood_boost"
    TOO_EASY = "too_easy"
    TOO_HARD = "too_hard"
    MILESTONE = "milestone"


@dataclass(frozen=True)
class Insight(SerializableMixin):
    """
    A quick insight with the rule that produced it.

    Attributes:
        insight_type: Which rule fired
        severity: HIGH for problems that need action, LOW for celebrations
        message: One-line, user-facing text
        research_note: Behavioral science backing
    """
    insight_type: InsightType
    severity: Severity
    message: str
    research_note: str


# =============================================================================
# RESEARCH NOTES (Citations for insights)
# =============================================================================

RESEARCH_NOTES = {
    InsightType.STREAK: (
        "Loss aversion makes streak breaks psychologically costly, so an "
        "unbroken chain is itself a motivator (Sela & Shiv, 2009)."
    ),
    InsightType.HIGH_COMPLETION: (
        "Consistent repetition in a stable context is what turns a behavior "
        "automatic (Wood & Rünger, 2016)."
    ),
    InsightType.LOW_COMPLETION: (
        "Shrinking a behavior until it is easy to start raises completion "
        "more than adding motivation does (Fogg, 2019)."
    ),
    InsightType.MOOD_BOOST: (
        "Behavior and mood are bidirectionally linked; completing a task can "
        "lift mood through accomplishment (Baumeister et al., 2018)."
    ),
    InsightType.TOO_EASY: (
        "Engagement is highest when challenge slightly exceeds current "
        "skill (Csikszentmihalyi, 1990)."
    ),
    InsightType.TOO_HARD: (
        "Sustained high effort without recovery predicts dropout and "
        "burnout (Sonnentag, 2012)."
    ),
    InsightType.MILESTONE: (
        "Automaticity for a daily habit plateaus after a median of 66 days "
        "(Lally et al., 2010)."
    ),
}

MILESTONE_MESSAGES = {
    7: "Milestone: your first full week",
    21: "Milestone: 21 days, the habit is taking shape",
    66: "Milestone: 66 days, the habit is close to automatic",
}

_SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


class InsightsEngine:
    """
    Generates quick insights from one habit's Stats.

    Example usage:
        engine = InsightsEngine(stats)
        for insight in engine.generate_insights():
            print(insight.message)
    """

    def __init__(self, stats: Stats):
        self.stats = stats
        self.insights: List[Insight] = []

    def generate_insights(self) -> List[Insight]:
        """
        Run every rule against the stats.

        Returns:
            List of Insight objects, sorted by severity (HIGH first)
        """
        self.insights = []

        self._check_streak()
        self._check_completion()
        self._check_mood()
        self._check_difficulty()
        self._check_milestone()

        # sort is stable so rule order breaks ties
        self.insights.sort(key=lambda x: _SEVERITY_ORDER[x.severity])
        return self.insights

    def _add(self, insight_type: InsightType, severity: Severity, message: str):
        self.insights.append(Insight(
            insight_type=insight_type,
            severity=severity,
            message=message,
            research_note=RESEARCH_NOTES[insight_type],
        ))

    def _check_streak(self):
        streak = self.stats.current_streak
        if streak >= 21:
            self._add(InsightType.STREAK, Severity.LOW, f"{streak}-day streak, this is becoming part of who you are")
        elif streak >= 7:
            self._add(InsightType.STREAK, Severity.LOW, f"{streak} days in a row, a full week of momentum")
        elif streak >= 3:
            self._add(InsightType.STREAK, Severity.LOW, f"{streak}-day streak, keep the chain going")

    def _check_completion(self):
        rate = self.stats.completion_rate
        if rate >= 90:
            self._add(InsightType.HIGH_COMPLETION, Severity.LOW, f"{rate}% completion, outstanding consistency")
        elif rate < 50 and self.stats.total_days >= 7:
            self._add(
                InsightType.LOW_COMPLETION, Severity.HIGH,
                f"Completion is {rate}%, try a smaller version of the habit",
            )

    def _check_mood(self):
        improvement = self.stats.mood_improvement
        if improvement is not None and improvement >= 1:
            self._add(
                InsightType.MOOD_BOOST, Severity.LOW,
                f"Your mood rises {improvement:.1f} points on average after doing this",
            )

    def _check_difficulty(self):
        difficulty = self.stats.average_difficulty
        if difficulty is None:
            return
        if difficulty <= 2 and self.stats.total_days >= 14:
            self._add(
                InsightType.TOO_EASY, Severity.MEDIUM,
                "This feels easy now, you may be ready for the next phase",
            )
        elif difficulty >= 4.5:
            self._add(
                InsightType.TOO_HARD, Severity.HIGH,
                "This has felt very hard lately, consider easing the difficulty",
            )

    def _check_milestone(self):
        message = MILESTONE_MESSAGES.get(self.stats.longest_streak)
        if message:
            self._add(InsightType.MILESTONE, Severity.LOW, message)


def get_quick_insights(stats: Stats) -> Tuple[str, ...]:
    """Messages of every insight rule that fires, most urgent first."""
    return tuple(insight.message for insight in InsightsEngine(stats).generate_insights())


def generate_default_insights(stats: Stats, habit_name: str) -> Dict[str, Dict[str, str]]:
    """
    Deterministic positive / pattern / suggestion triple.

    Shaped like the HABIT_INSIGHT narrative so it can stand in for one.
    """
    name = habit_name or "this habit"

    if stats.current_streak >= 7:
        positive = {'title': "Strong streak", 'content': f"{stats.current_streak} days in a row on {name}"}
    elif stats.completion_rate >= 80:
        positive = {'title': "Reliable", 'content': f"{stats.completion_rate}% completion on {name}"}
    elif stats.longest_streak >= 3:
        positive = {'title': "Proven ability", 'content': f"Your best run on {name} is {stats.longest_streak} days"}
    else:
        positive = {'title': "Off the ground", 'content': f"You have started {name}, that is the hardest step"}

    difficulty = stats.average_difficulty
    if stats.mood_improvement is not None and stats.mood_improvement > 0.5:
        pattern = {'title': "Mood lift", 'content': f"Mood improves {stats.mood_improvement:.1f} points after {name}"}
    elif difficulty is not None and difficulty <= 2.5:
        pattern = {'title': "Feels easy", 'content': f"Average difficulty is {difficulty:.1f}/5"}
    elif difficulty is not None and difficulty >= 4:
        pattern = {'title': "Feels hard", 'content': f"Average difficulty is {difficulty:.1f}/5"}
    else:
        pattern = {'title': "Steady", 'content': f"{name} is holding a steady rhythm"}

    if stats.completion_rate < 50:
        suggestion = {
            'title': "Make it smaller",
            'content': "Shrink the habit until it takes two minutes",
            'action': "Do the two-minute version today",
        }
    elif stats.current_streak == 0 and stats.longest_streak > 0:
        suggestion = {
            'title': "Restart the chain",
            'content': f"You have done {stats.longest_streak} days before, you can again",
            'action': "Complete it once today",
        }
    elif difficulty is not None and difficulty <= 2:
        suggestion = {
            'title': "Raise the challenge",
            'content': "It has become easy, add a little more",
            'action': "Extend today's session slightly",
        }
    else:
        suggestion = {
            'title': "Keep going",
            'content': "The current plan is working",
            'action': "Repeat today what worked yesterday",
        }

    return {'positive': positive, 'pattern': pattern, 'suggestion': suggestion}
