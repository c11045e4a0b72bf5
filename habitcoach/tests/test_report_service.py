"""
Tests for weekly, monthly and milestone reports.
"""
from datetime import date, timedelta

import pytest

from habitcoach.exceptions import InvalidDateRangeError
from habitcoach.models import MilestoneType, NarrativeKind
from habitcoach.services.report_service import (
    build_milestone_report,
    build_monthly_report,
    build_weekly_report,
    calculate_period_summary,
    find_patterns,
    identify_highlights,
    logs_in_period,
    milestone_label,
    pending_milestones,
)

from factories import REFERENCE_DATE, HabitFactory, LogFactory

REF = REFERENCE_DATE
MONDAY = REF - timedelta(days=2)
TUESDAY = REF - timedelta(days=1)


class TestPeriodSummary:

    def test_two_habits_three_days(self):
        a = HabitFactory.create(name='A')
        b = HabitFactory.create(name='B')
        logs = {
            a.id: LogFactory.series(REF, [True, True, True]),
            b.id: LogFactory.series(REF, [True, True, False]),
        }

        summary = calculate_period_summary([a, b], logs, previous_rate=70)

        assert summary.completion_rate == 83
        assert summary.rate_change == 13
        assert summary.active_habits == 2
        assert summary.total_checkins == 5
        assert summary.perfect_days == 2
        assert summary.longest_streak == 3

    def test_no_previous_rate(self):
        habit = HabitFactory.create()
        summary = calculate_period_summary([habit], {habit.id: LogFactory.series(REF, [True, False])})
        assert summary.rate_change == 0
        assert summary.completion_rate == 50

    def test_empty(self):
        summary = calculate_period_summary([], {})
        assert summary.completion_rate == 0
        assert summary.perfect_days == 0
        assert summary.longest_streak == 0


class TestHighlights:

    def test_perfect_and_high_completion(self):
        perfect = HabitFactory.create(name='Perfect')
        high = HabitFactory.create(name='High')
        low = HabitFactory.create(name='Low')
        logs = {
            perfect.id: LogFactory.series(REF, [True] * 7),
            high.id: LogFactory.series(REF, [True] * 9 + [False]),
            low.id: LogFactory.series(REF, [True, False, False]),
        }

        highlights = identify_highlights([perfect, high, low], logs)

        assert [(h.habit_name, h.achievement) for h in highlights] == [
            ('Perfect', "Perfect week"),
            ('High', "High completion rate"),
        ]
        assert highlights[0].metric == "7 completions, none missed"
        assert highlights[1].metric == "90% completion"

    def test_most_active_fallback(self):
        c = HabitFactory.create(name='C')
        d = HabitFactory.create(name='D')
        logs = {
            c.id: LogFactory.series(REF, [True, False, False]),
            d.id: LogFactory.series(REF, [True, True, False, False]),
        }

        highlights = identify_highlights([c, d], logs)

        assert len(highlights) == 1
        assert highlights[0].habit_name == 'D'
        assert highlights[0].achievement == "Most active habit"
        assert highlights[0].metric == "Completed 2 times"

    def test_nothing_completed(self):
        habit = HabitFactory.create()
        assert identify_highlights([habit], {habit.id: LogFactory.series(REF, [False, False])}) == ()


class TestFindPatterns:

    def test_weekday_and_mood(self):
        mood = {'mood_before': 3, 'mood_after': 4}
        logs = {'h': [
            LogFactory.create(MONDAY, True, **mood),
            LogFactory.create(MONDAY - timedelta(days=7), True, **mood),
            LogFactory.create(TUESDAY, False, **mood),
            LogFactory.create(TUESDAY - timedelta(days=7), False, **mood),
            LogFactory.create(REF, True, **mood),
        ]}

        patterns = find_patterns(logs)

        assert [p.finding for p in patterns] == [
            "Monday is your strongest day",
            "Tuesday has the lowest completion",
            "Your habits noticeably improve your mood",
        ]
        assert [p.confidence for p in patterns] == [1.0, 1.0, 0.5]
        assert [p.data_points for p in patterns] == [2, 2, 5]

    def test_single_log_days_ignored(self):
        logs = {'h': LogFactory.series(REF, [True, False, True])}
        assert find_patterns(logs) == ()

    def test_no_logs(self):
        assert find_patterns({}) == ()


class TestWeeklyReport:

    def test_rolling_week(self):
        habit = HabitFactory.create(name='Read')
        logs = {habit.id: LogFactory.series(REF, [True] * 7 + [True, True, True, False, False, False, False])}

        report = build_weekly_report([habit], logs, REF)

        assert report.kind == "weekly"
        assert report.period_start == date(2025, 3, 6)
        assert report.period_end == REF
        assert report.summary.completion_rate == 100
        assert report.summary.rate_change == 57
        assert report.highlights[0].achievement == "Perfect week"
        goal = report.narrative['next_week_goals'][0]
        assert goal == {'goal': "Maintain your completion rate", 'measurable': "100%+ completion"}

    def test_explicit_previous_rate(self):
        habit = HabitFactory.create()
        logs = {habit.id: LogFactory.series(REF, [True, False])}
        report = build_weekly_report([habit], logs, REF, previous_rate=80)
        assert report.summary.rate_change == -30

    def test_calendar_week(self):
        habit = HabitFactory.create()
        report = build_weekly_report([habit], {habit.id: []}, REF, calendar_week=True)

        assert report.period_start == date(2025, 3, 10)
        assert report.period_end == date(2025, 3, 16)
        assert report.summary.rate_change == 0

    def test_generator_receives_context(self, stub_generator):
        habit = HabitFactory.create(name='Read')
        logs = {habit.id: LogFactory.series(REF, [True] * 3)}

        build_weekly_report([habit], logs, REF, narrative=stub_generator)

        kind, context = stub_generator.calls[0]
        assert kind == NarrativeKind.WEEKLY_REPORT
        assert context['period_start'] == "2025-03-06"
        assert context['habits'] == [{'name': 'Read', 'type': 'BUILD'}]
        assert context['summary']['completion_rate'] == 100


class TestMonthlyReport:

    def test_march(self):
        habit = HabitFactory.create(name='Read')
        logs = {habit.id: LogFactory.series(REF, [True] * 12)}

        report = build_monthly_report([habit], logs, REF)

        assert report.kind == "monthly"
        assert report.period_start == date(2025, 3, 1)
        assert report.period_end == date(2025, 3, 31)
        assert [point.week for point in report.weekly_trend] == [1, 2, 3, 4, 5]
        assert report.weekly_trend[0].highlight == "7 perfect days"
        assert report.weekly_trend[1].highlight == "5 perfect days"
        assert report.weekly_trend[2].completion_rate == 0
        assert report.patterns[0].finding == "Monday is your strongest day"
        assert report.narrative['next_month_focus'][0]['goal'] == "Raise overall completion to 100%"

    def test_previous_month_rate(self):
        habit = HabitFactory.create()
        logs = {habit.id: [
            LogFactory.create(date(2025, 2, 27), False),
            LogFactory.create(date(2025, 2, 28), True),
            LogFactory.create(date(2025, 3, 3), True),
        ]}

        report = build_monthly_report([habit], logs, REF)

        assert report.summary.completion_rate == 100
        assert report.summary.rate_change == 50

    def test_trend_in_context(self, stub_generator):
        habit = HabitFactory.create()
        build_monthly_report([habit], {habit.id: LogFactory.series(REF, [True] * 12)}, REF, narrative=stub_generator)

        _, context = stub_generator.calls[0]
        assert len(context['weekly_trend']) == 5
        assert set(context['trend_line']) == {'slope', 'intercept', 'r_squared'}


class TestMilestones:

    def test_pending_milestones(self):
        assert pending_milestones(25, [MilestoneType.DAY_7]) == [MilestoneType.DAY_21]
        assert pending_milestones(6) == []
        assert pending_milestones(100) == [
            MilestoneType.DAY_7, MilestoneType.DAY_21, MilestoneType.DAY_66, MilestoneType.DAY_100,
        ]

    def test_labels(self):
        assert milestone_label(MilestoneType.DAY_66, 66) == "66 days"
        assert milestone_label(MilestoneType.CUSTOM, 30) == "30 days"

    def test_milestone_report(self, stub_generator):
        habit = HabitFactory.create(name='Read', created_at=date(2025, 3, 5))
        logs = LogFactory.series(REF, [True] * 7)

        report = build_milestone_report(habit, logs, MilestoneType.DAY_7, 7, REF, narrative=stub_generator)

        _, context = stub_generator.calls[0]
        assert context['started'] == "7 days ago"
        assert context['milestone_label'] == "7 days"
        assert report.completion_rate == 100
        assert report.narrative['next_phase']['new_goal'] == "Try 21 days"

    def test_template_milestone(self):
        habit = HabitFactory.create(name='Read', created_at=date(2025, 3, 5))
        report = build_milestone_report(
            habit, LogFactory.series(REF, [True] * 7), MilestoneType.DAY_7, 7, REF, key_moments=["Day 3 was hard"],
        )

        assert report.narrative['celebration'] == "7 days of Read! That is a real achievement."
        assert report.narrative['reflection']['key_moments'] == ["Day 3 was hard"]
        assert report.narrative['next_phase']['new_goal'] == "Try 21 days"


class TestLogsInPeriod:

    def test_filters_by_day(self):
        logs = {'h': LogFactory.series(REF, [True] * 10)}
        result = logs_in_period(logs, date(2025, 3, 10), date(2025, 3, 11))
        assert [log.day for log in result['h']] == [date(2025, 3, 11), date(2025, 3, 10)]

    def test_reversed_range(self):
        with pytest.raises(InvalidDateRangeError):
            logs_in_period({}, date(2025, 3, 12), date(2025, 3, 1))
