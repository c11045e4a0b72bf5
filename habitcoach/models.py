"""
Domain model for the habit progression engine.

Store records (HabitLog, Habit, PhaseConfig, TriggerRecord) arrive as
read-only snapshots; every derived result is a fresh value object. All of
them are frozen dataclasses so nothing downstream can mutate a snapshot.
"""
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from habitcoach.utils.time_utils import to_date


# =============================================================================
# ENUMS
# =============================================================================

class HabitType(Enum):
    BUILD = "BUILD"
    BREAK = "BREAK"


class CompletionLevel(Enum):
    MINIMUM = "MINIMUM"
    STANDARD = "STANDARD"
    EXCEEDED = "EXCEEDED"


class TriggerType(Enum):
    """Categories a break-habit trigger can fall into"""
    TEMPORAL = "TEMPORAL"
    CONTEXTUAL = "CONTEXTUAL"
    EMOTIONAL = "EMOTIONAL"
    BEHAVIORAL = "BEHAVIORAL"


class MotivationState(Enum):
    STRONG = "STRONG"
    NORMAL = "NORMAL"
    DECLINING = "DECLINING"
    CRITICAL = "CRITICAL"


class Trend(Enum):
    UP = "UP"
    STABLE = "STABLE"
    DOWN = "DOWN"


class MotivationType(Enum):
    """Message strategy used when asking for motivational copy"""
    FEAR_LOSS = "FEAR_LOSS"
    HOPE_FUTURE = "HOPE_FUTURE"
    SOCIAL_PROOF = "SOCIAL_PROOF"
    PAIN_AVOID = "PAIN_AVOID"
    PLEASURE_GAIN = "PLEASURE_GAIN"


class PhaseTransition(Enum):
    ADVANCE = "ADVANCE"
    RETREAT = "RETREAT"

    @property
    def step(self) -> int:
        return 1 if self is PhaseTransition.ADVANCE else -1


class Severity(Enum):
    """Severity of a detected retreat signal"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RetreatUrgency(Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


_URGENCY_RANK = {
    RetreatUrgency.NONE: 0,
    RetreatUrgency.LOW: 1,
    RetreatUrgency.MEDIUM: 2,
    RetreatUrgency.HIGH: 3,
}


class AdvanceSignalType(Enum):
    CONSISTENCY = "CONSISTENCY"
    EASE = "EASE"
    DESIRE = "DESIRE"
    OVERFLOW = "OVERFLOW"
    MOMENTUM = "MOMENTUM"


class RetreatSignalType(Enum):
    STRUGGLE = "STRUGGLE"
    INCONSISTENT = "INCONSISTENT"
    NEGATIVE = "NEGATIVE"
    AVOIDANCE = "AVOIDANCE"
    DECLINING = "DECLINING"
    BURNOUT = "BURNOUT"


class RiskLevel(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Significance(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Relationship(Enum):
    """Direction of the link between two habits completed on the same days"""
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class MilestoneType(Enum):
    DAY_7 = "DAY_7"
    DAY_21 = "DAY_21"
    DAY_66 = "DAY_66"
    DAY_100 = "DAY_100"
    CUSTOM = "CUSTOM"


class NarrativeKind(Enum):
    """Every kind of coaching copy the engine can ask a generator for"""
    HABIT_INSIGHT = "habit_insight"
    MOTIVATION_MESSAGE = "motivation_message"
    PHASE_RECOMMENDATION = "phase_recommendation"
    TRIGGER_ANALYSIS = "trigger_analysis"
    BREAK_RISK = "break_risk"
    DASHBOARD_SUMMARY = "dashboard_summary"
    WEEKLY_REPORT = "weekly_report"
    MONTHLY_REPORT = "monthly_report"
    MILESTONE_REPORT = "milestone_report"
    MOOD_CORRELATION = "mood_correlation"
    HABIT_CORRELATION = "habit_correlation"


# =============================================================================
# SERIALIZATION
# =============================================================================

def _to_primitive(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value):
        return {f.name: _to_primitive(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {
            (k.value if isinstance(k, Enum) else k): _to_primitive(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_to_primitive(v) for v in value]
    return value


class SerializableMixin:
    """to_dict() for value objects handed to callers and narrative backends"""

    def to_dict(self) -> Dict[str, Any]:
        return _to_primitive(self)


# =============================================================================
# STORE RECORDS
# =============================================================================

@dataclass(frozen=True)
class PhaseConfig(SerializableMixin):
    phase: int
    name: str
    duration_hint: str = ""
    micro_habit: str = ""
    success_criteria: str = ""
    difficulty_score: int = 1


@dataclass(frozen=True)
class TriggerRecord(SerializableMixin):
    """
    One logged trigger event for a BREAK habit.

    Attributes:
        timestamp: when the urge occurred
        trigger_type: category of the trigger
        context: free-text description of the situation
        intensity: urge strength 1..10
        resisted: whether the user resisted the urge
        coping_strategy: what the user did instead, if anything
    """
    timestamp: datetime
    trigger_type: TriggerType
    context: str = ""
    intensity: int = 5
    resisted: bool = False
    coping_strategy: Optional[str] = None
    emotion: Optional[str] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class HabitLog(SerializableMixin):
    logged_at: Union[date, datetime]
    completed: bool
    completion_level: CompletionLevel = CompletionLevel.STANDARD
    difficulty_rating: Optional[int] = None
    mood_before: Optional[int] = None
    mood_after: Optional[int] = None
    trigger_context: Optional[TriggerRecord] = None
    habit_id: Optional[str] = None
    completion_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    target_duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    wanted_to_do_more: bool = False

    @property
    def day(self) -> date:
        return to_date(self.logged_at)

    @property
    def mood_delta(self) -> Optional[int]:
        if self.mood_before is None or self.mood_after is None:
            return None
        return self.mood_after - self.mood_before

    @property
    def time_of_day(self) -> Optional[datetime]:
        """Completion time, else the log timestamp when it carries one."""
        if self.completion_time is not None:
            return self.completion_time
        if isinstance(self.logged_at, datetime):
            return self.logged_at
        return None


@dataclass(frozen=True)
class Habit(SerializableMixin):
    id: str
    type: HabitType
    created_at: date
    current_phase: int = 1
    phases: Optional[Tuple[PhaseConfig, ...]] = None
    name: str = ""

    @property
    def total_phases(self) -> int:
        return len(self.phases) if self.phases else 0

    def phase_config(self, phase: int) -> Optional[PhaseConfig]:
        for config in self.phases or ():
            if config.phase == phase:
                return config
        return None


# =============================================================================
# DERIVED VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class Stats(SerializableMixin):
    total_days: int = 0
    completed_days: int = 0
    completion_rate: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    recent_rate: int = 0
    average_difficulty: Optional[float] = None
    mood_improvement: Optional[float] = None


@dataclass(frozen=True)
class TimeDistribution(SerializableMixin):
    best_day: Optional[str] = None
    worst_day: Optional[str] = None
    most_common_hour: Optional[int] = None
    insights: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MotivationAnalysis(SerializableMixin):
    current_score: int
    state: MotivationState
    trend: Trend
    intervention_needed: bool
    intervention_timing: Optional[str]
    suggested_action: str


@dataclass(frozen=True)
class PhaseEvaluationResult(SerializableMixin):
    should_upgrade: bool
    readiness_score: int
    reasons: Tuple[str, ...]
    recommendation: str


@dataclass(frozen=True)
class AdvanceSignal(SerializableMixin):
    type: AdvanceSignalType
    strength: float
    evidence: str


@dataclass(frozen=True)
class AdvanceAssessment(SerializableMixin):
    is_ready: bool
    confidence: float
    signals: Tuple[AdvanceSignal, ...]
    recommendation: str
    encouragement: str


@dataclass(frozen=True)
class RetreatSignal(SerializableMixin):
    type: RetreatSignalType
    severity: Severity
    evidence: str


@dataclass(frozen=True)
class RetreatAssessment(SerializableMixin):
    should_retreat: bool
    urgency: RetreatUrgency
    retreat_score: int
    signals: Tuple[RetreatSignal, ...]
    reasons: Tuple[str, ...]
    recommendation: str
    encouragement: str
    alternative_actions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HabitEvaluation(SerializableMixin):
    """Both directions of the phase state machine for one habit, plus the proposal"""
    readiness: PhaseEvaluationResult
    advance: AdvanceAssessment
    retreat: RetreatAssessment
    proposed_transition: Optional[PhaseTransition]


@dataclass(frozen=True)
class TriggerPatternStats(SerializableMixin):
    trigger_type: TriggerType
    count: int
    percentage: int
    average_intensity: float
    resistance_rate: int
    examples: Tuple[str, ...]


@dataclass(frozen=True)
class TemporalPatterns(SerializableMixin):
    hour_counts: Tuple[int, ...]
    day_counts: Tuple[int, ...]
    peak_hours: Tuple[int, ...]
    peak_days: Tuple[int, ...]
    weekday_count: int
    weekend_count: int
    insights: Tuple[str, ...]


@dataclass(frozen=True)
class RelapseAnalysis(SerializableMixin):
    is_relapse: bool
    days_since_last_relapse: int
    relapse_count: int
    relapse_pattern: Optional[str]
    recovery_advice: Tuple[str, ...]
    relapse_episodes: int = 0


@dataclass(frozen=True)
class RiskFactor(SerializableMixin):
    factor: str
    weight: int
    current_status: str


@dataclass(frozen=True)
class WarningSignal(SerializableMixin):
    signal: str
    detected: bool


@dataclass(frozen=True)
class PreventiveAction(SerializableMixin):
    action: str
    priority: str
    expected_impact: str


@dataclass(frozen=True)
class BreakRisk(SerializableMixin):
    risk_level: RiskLevel
    risk_score: int
    risk_factors: Tuple[RiskFactor, ...]
    warning_signals: Tuple[WarningSignal, ...]
    preventive_actions: Tuple[PreventiveAction, ...]


@dataclass(frozen=True)
class MoodTrigger(SerializableMixin):
    trigger: str
    # completion rate in this mood minus the rate in a good mood, percentage points
    impact_on_completion: int
    frequency: int


@dataclass(frozen=True)
class MoodCorrelation(SerializableMixin):
    sample_size: int
    average_mood_before: float
    average_mood_after: float
    mood_lift: float
    significance: Significance
    low_mood_completion_rate: int = 0
    high_mood_completion_rate: int = 0
    mood_triggers: Tuple[MoodTrigger, ...] = ()
    narrative: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class HabitPairCorrelation(SerializableMixin):
    habit1_id: str
    habit2_id: str
    both_completed: int
    neither_completed: int
    only_first: int
    only_second: int
    correlation_score: float
    relationship: Relationship

    @property
    def total(self) -> int:
        return self.both_completed + self.neither_completed + self.only_first + self.only_second


@dataclass(frozen=True)
class HabitCorrelations(SerializableMixin):
    days: int
    correlations: Tuple[HabitPairCorrelation, ...] = ()
    narrative: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class HeatmapCell(SerializableMixin):
    day_of_week: int
    hour: int
    completion_rate: int
    count: int


@dataclass(frozen=True)
class RiskEntry(SerializableMixin):
    habit_id: str
    habit_name: str
    risk: BreakRisk


@dataclass(frozen=True)
class HabitInsights(SerializableMixin):
    habit_id: str
    habit_name: str
    stats: Stats
    motivation: MotivationAnalysis
    break_risk: BreakRisk
    quick_insights: Tuple[str, ...] = ()
    phase_evaluation: Optional[PhaseEvaluationResult] = None
    retreat: Optional[RetreatAssessment] = None
    trigger_patterns: Tuple[TriggerPatternStats, ...] = ()
    temporal_patterns: Optional[TemporalPatterns] = None
    relapse: Optional[RelapseAnalysis] = None
    narrative: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class DashboardSummary(SerializableMixin):
    total_habits: int
    total_logs: int
    completed_logs: int
    overall_completion_rate: int
    best_habit: Optional[str]
    needs_attention: Tuple[str, ...]


@dataclass(frozen=True)
class DashboardInsights(SerializableMixin):
    summary: DashboardSummary
    heatmap_data: Tuple[HeatmapCell, ...]
    risk_assessments: Tuple[RiskEntry, ...]
    per_habit: Tuple[HabitInsights, ...]
    narrative: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PeriodSummary(SerializableMixin):
    completion_rate: int
    rate_change: int
    active_habits: int
    longest_streak: int
    total_checkins: int
    perfect_days: int


@dataclass(frozen=True)
class ReportHighlight(SerializableMixin):
    habit_id: str
    habit_name: str
    achievement: str
    metric: str


@dataclass(frozen=True)
class PatternFinding(SerializableMixin):
    finding: str
    implication: str
    confidence: float
    data_points: int


@dataclass(frozen=True)
class WeeklyTrendPoint(SerializableMixin):
    week: int
    completion_rate: int
    highlight: str = ""


@dataclass(frozen=True)
class Report(SerializableMixin):
    """Weekly or monthly report across a user's habits"""
    kind: str
    period_start: date
    period_end: date
    summary: PeriodSummary
    highlights: Tuple[ReportHighlight, ...]
    patterns: Tuple[PatternFinding, ...]
    weekly_trend: Tuple[WeeklyTrendPoint, ...] = ()
    narrative: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MilestoneReport(SerializableMixin):
    habit_name: str
    milestone_type: MilestoneType
    milestone_label: str
    streak_days: int
    completion_rate: int
    narrative: Dict[str, Any] = field(default_factory=dict)
