"""
Marshmallow schemas.

Two families live here:
- store schemas that validate raw records from the log/habit store and
  load them into the frozen domain dataclasses;
- narrative schemas that every generated coaching payload must satisfy
  before it reaches a caller.
"""
from datetime import date, datetime
from typing import Dict, List, Type

from dateutil import parser as date_parser
from marshmallow import EXCLUDE, Schema, fields, post_load, validate
from marshmallow import ValidationError as MarshmallowValidationError

from habitcoach.exceptions import ValidationError
from habitcoach.models import (
    CompletionLevel, Habit, HabitLog, HabitType, MotivationType, NarrativeKind,
    PhaseConfig, TriggerRecord, TriggerType,
)


class DayOrDateTime(fields.Field):
    """Accepts a date, a datetime, or an ISO string of either."""

    default_error_messages = {'invalid': 'Not a valid date or datetime.'}

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, (date, datetime)):
            return value
        if not isinstance(value, str):
            raise self.make_error('invalid')
        try:
            if len(value) == 10:
                return date.fromisoformat(value)
            return date_parser.isoparse(value)
        except ValueError as e:
            raise self.make_error('invalid') from e

    def _serialize(self, value, attr, obj, **kwargs):
        if value is None:
            return None
        return value.isoformat()


# =============================================================================
# STORE SCHEMAS
# =============================================================================

class StoreSchema(Schema):
    """Base for store records; columns the engine does not read are dropped."""

    class Meta:
        unknown = EXCLUDE


class PhaseConfigSchema(StoreSchema):
    phase = fields.Int(required=True, validate=validate.Range(min=1))
    name = fields.Str(required=True)
    duration_hint = fields.Str(data_key="durationHint", load_default="")
    micro_habit = fields.Str(data_key="microHabit", load_default="")
    success_criteria = fields.Str(data_key="successCriteria", load_default="")
    difficulty_score = fields.Int(
        data_key="difficultyScore", load_default=1, validate=validate.Range(min=1, max=10)
    )

    @post_load
    def make_phase(self, data, **kwargs):
        return PhaseConfig(**data)


class TriggerRecordSchema(StoreSchema):
    timestamp = fields.DateTime(required=True)
    trigger_type = fields.Enum(TriggerType, by_value=True, data_key="triggerType", required=True)
    context = fields.Str(load_default="")
    intensity = fields.Int(load_default=5, validate=validate.Range(min=1, max=10))
    resisted = fields.Bool(load_default=False)
    coping_strategy = fields.Str(data_key="copingStrategy", load_default=None, allow_none=True)
    emotion = fields.Str(load_default=None, allow_none=True)
    location = fields.Str(load_default=None, allow_none=True)

    @post_load
    def make_trigger(self, data, **kwargs):
        return TriggerRecord(**data)


_RATING = validate.Range(min=1, max=5)


class HabitLogSchema(StoreSchema):
    logged_at = DayOrDateTime(data_key="loggedAt", required=True)
    completed = fields.Bool(required=True)
    completion_level = fields.Enum(
        CompletionLevel, by_value=True, data_key="completionLevel",
        load_default=CompletionLevel.STANDARD,
    )
    difficulty_rating = fields.Int(data_key="difficultyRating", load_default=None, allow_none=True, validate=_RATING)
    mood_before = fields.Int(data_key="moodBefore", load_default=None, allow_none=True, validate=_RATING)
    mood_after = fields.Int(data_key="moodAfter", load_default=None, allow_none=True, validate=_RATING)
    trigger_context = fields.Nested(
        TriggerRecordSchema, data_key="triggerContext", load_default=None, allow_none=True
    )
    habit_id = fields.Str(data_key="habitId", load_default=None, allow_none=True)
    completion_time = fields.DateTime(data_key="completionTime", load_default=None, allow_none=True)
    duration_minutes = fields.Int(data_key="durationMinutes", load_default=None, allow_none=True)
    target_duration_minutes = fields.Int(data_key="targetDurationMinutes", load_default=None, allow_none=True)
    notes = fields.Str(load_default=None, allow_none=True)
    wanted_to_do_more = fields.Bool(data_key="wantedToDoMore", load_default=False)

    @post_load
    def make_log(self, data, **kwargs):
        return HabitLog(**data)


class HabitSchema(StoreSchema):
    id = fields.Str(required=True)
    name = fields.Str(load_default="")
    type = fields.Enum(HabitType, by_value=True, required=True)
    current_phase = fields.Int(data_key="currentPhase", load_default=1, validate=validate.Range(min=1))
    phases = fields.List(fields.Nested(PhaseConfigSchema), load_default=None, allow_none=True)
    created_at = DayOrDateTime(data_key="createdAt", required=True)

    @post_load
    def make_habit(self, data, **kwargs):
        phases = data.get('phases')
        if phases is not None:
            data['phases'] = tuple(sorted(phases, key=lambda p: p.phase))
        created_at = data['created_at']
        if isinstance(created_at, datetime):
            data['created_at'] = created_at.date()
        return Habit(**data)


def _load(schema: Schema, raw, field_name: str):
    try:
        return schema.load(raw)
    except MarshmallowValidationError as e:
        raise ValidationError(field_name, str(e.messages)) from e


def load_habit(raw: Dict) -> Habit:
    return _load(HabitSchema(), raw, 'habit')


def load_habit_logs(raw: List[Dict]) -> List[HabitLog]:
    return _load(HabitLogSchema(many=True), raw, 'logs')


def load_trigger_records(raw: List[Dict]) -> List[TriggerRecord]:
    return _load(TriggerRecordSchema(many=True), raw, 'triggers')


def load_phases(raw: List[Dict]) -> List[PhaseConfig]:
    phases = _load(PhaseConfigSchema(many=True), raw, 'phases')
    return sorted(phases, key=lambda p: p.phase)


# =============================================================================
# NARRATIVE SCHEMAS
# =============================================================================

class NarrativeSchema(Schema):
    """Base for generated payloads; extra keys from a model are dropped."""

    class Meta:
        unknown = EXCLUDE


_SHORT_TEXT = validate.Length(min=1, max=120)
_TEXT = validate.Length(min=1)


class InsightItemSchema(NarrativeSchema):
    title = fields.Str(required=True, validate=_TEXT)
    content = fields.Str(required=True, validate=_SHORT_TEXT)


class SuggestionItemSchema(InsightItemSchema):
    action = fields.Str(required=True, validate=_TEXT)


class HabitInsightNarrativeSchema(NarrativeSchema):
    positive = fields.Nested(InsightItemSchema, required=True)
    pattern = fields.Nested(InsightItemSchema, required=True)
    suggestion = fields.Nested(SuggestionItemSchema, required=True)


class MotivationMessageNarrativeSchema(NarrativeSchema):
    message = fields.Str(required=True, validate=_TEXT)
    motivation_type = fields.Str(
        required=True, validate=validate.OneOf([t.value for t in MotivationType])
    )
    action_suggestion = fields.Str(required=True, validate=_TEXT)


class PhaseRecommendationNarrativeSchema(NarrativeSchema):
    message = fields.Str(required=True, validate=_TEXT)
    encouragement = fields.Str(required=True, validate=_TEXT)
    tips = fields.List(fields.Str(), load_default=list)


class TriggerPatternNarrativeSchema(NarrativeSchema):
    type = fields.Str(required=True, validate=validate.OneOf([t.value for t in TriggerType]))
    description = fields.Str(required=True, validate=_TEXT)
    confidence = fields.Float(required=True, validate=validate.Range(min=0, max=1))
    evidence = fields.List(fields.Str(), load_default=list)


class TriggerAnalysisNarrativeSchema(NarrativeSchema):
    patterns = fields.List(fields.Nested(TriggerPatternNarrativeSchema), required=True)
    deep_need = fields.Str(required=True, validate=_TEXT)
    substitute_behaviors = fields.List(fields.Str(), required=True)
    environment_design = fields.List(fields.Str(), required=True)


class BreakRiskNarrativeSchema(NarrativeSchema):
    summary = fields.Str(required=True, validate=_TEXT)
    preventive_actions = fields.List(fields.Str(), required=True)


class DashboardSummaryNarrativeSchema(NarrativeSchema):
    headline = fields.Str(required=True, validate=_TEXT)
    insights = fields.List(fields.Str(), required=True)


class ReportSuggestionSchema(NarrativeSchema):
    category = fields.Str(required=True)
    suggestion = fields.Str(required=True, validate=_TEXT)
    expected_impact = fields.Str(required=True)


class ReportGoalSchema(NarrativeSchema):
    goal = fields.Str(required=True, validate=_TEXT)
    measurable = fields.Str(required=True)


class WeeklyReportNarrativeSchema(NarrativeSchema):
    suggestions = fields.List(fields.Nested(ReportSuggestionSchema), required=True)
    next_week_goals = fields.List(fields.Nested(ReportGoalSchema), required=True)


class FocusAreaSchema(NarrativeSchema):
    area = fields.Str(required=True)
    goal = fields.Str(required=True, validate=_TEXT)
    actions = fields.List(fields.Str(), load_default=list)


class MonthlyReportNarrativeSchema(NarrativeSchema):
    next_month_focus = fields.List(fields.Nested(FocusAreaSchema), required=True)


class MilestoneReflectionSchema(NarrativeSchema):
    journey = fields.Str(required=True, validate=_TEXT)
    key_moments = fields.List(fields.Str(), load_default=list)
    lessons_learned = fields.List(fields.Str(), load_default=list)
    strengths_shown = fields.List(fields.Str(), load_default=list)


class MilestoneNextPhaseSchema(NarrativeSchema):
    suggestion = fields.Str(required=True, validate=_TEXT)
    new_goal = fields.Str(required=True, validate=_TEXT)
    tips = fields.List(fields.Str(), load_default=list)


class MilestoneReportNarrativeSchema(NarrativeSchema):
    celebration = fields.Str(required=True, validate=_TEXT)
    reflection = fields.Nested(MilestoneReflectionSchema, required=True)
    next_phase = fields.Nested(MilestoneNextPhaseSchema, load_default=None, allow_none=True)


class MoodCorrelationNarrativeSchema(NarrativeSchema):
    recommendations = fields.List(fields.Str(validate=_TEXT), required=True)


class PairInsightSchema(NarrativeSchema):
    habit1_id = fields.Str(required=True)
    habit2_id = fields.Str(required=True)
    insight = fields.Str(required=True, validate=_TEXT)


class HabitClusterSchema(NarrativeSchema):
    name = fields.Str(required=True, validate=_TEXT)
    habit_ids = fields.List(fields.Str(), required=True)
    description = fields.Str(load_default="")


class StackingSuggestionSchema(NarrativeSchema):
    type = fields.Str(required=True, validate=validate.OneOf(["STACK", "SEPARATE", "SEQUENCE"]))
    habits = fields.List(fields.Str(), required=True)
    reason = fields.Str(required=True, validate=_TEXT)


class HabitCorrelationNarrativeSchema(NarrativeSchema):
    insights = fields.List(fields.Nested(PairInsightSchema), required=True)
    clusters = fields.List(fields.Nested(HabitClusterSchema), load_default=list)
    suggestions = fields.List(fields.Nested(StackingSuggestionSchema), load_default=list)


NARRATIVE_SCHEMAS: Dict[NarrativeKind, Type[NarrativeSchema]] = {
    NarrativeKind.HABIT_INSIGHT: HabitInsightNarrativeSchema,
    NarrativeKind.MOTIVATION_MESSAGE: MotivationMessageNarrativeSchema,
    NarrativeKind.PHASE_RECOMMENDATION: PhaseRecommendationNarrativeSchema,
    NarrativeKind.TRIGGER_ANALYSIS: TriggerAnalysisNarrativeSchema,
    NarrativeKind.BREAK_RISK: BreakRiskNarrativeSchema,
    NarrativeKind.DASHBOARD_SUMMARY: DashboardSummaryNarrativeSchema,
    NarrativeKind.WEEKLY_REPORT: WeeklyReportNarrativeSchema,
    NarrativeKind.MONTHLY_REPORT: MonthlyReportNarrativeSchema,
    NarrativeKind.MILESTONE_REPORT: MilestoneReportNarrativeSchema,
    NarrativeKind.MOOD_CORRELATION: MoodCorrelationNarrativeSchema,
    NarrativeKind.HABIT_CORRELATION: HabitCorrelationNarrativeSchema,
}


def validate_narrative(kind: NarrativeKind, payload: Dict) -> Dict:
    """
    Validate a generated payload against the schema registered for ``kind``.

    Raises:
        marshmallow.ValidationError: if the payload does not conform
    """
    if not isinstance(payload, dict):
        raise MarshmallowValidationError(f"expected an object, got {type(payload).__name__}")
    return NARRATIVE_SCHEMAS[kind]().load(payload)
