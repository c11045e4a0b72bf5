"""
Services package for the habit coach engine.

Analytics layer over read-only log snapshots:

Core Services:
- stats_service: Streaks, completion rates, time-of-week distribution
- motivation_service: Motivation score, state and trend
- phase_service: Phase readiness, advance/retreat signals, transitions
- trigger_service: Trigger patterns and relapse analysis for BREAK habits
- risk_service: Break-risk prediction
- correlation_service: Mood correlation and habit-pair correlation

Aggregation Services:
- insight_service: Per-habit insights and the dashboard
- report_service: Weekly, monthly and milestone reports
"""

# Explicit imports for convenience
from .stats_service import StatsService
from .motivation_service import MotivationService
from .phase_service import PhaseService
from .trigger_service import TriggerService
from .risk_service import RiskService
from .correlation_service import CorrelationService
from .insight_service import build_dashboard, build_habit_insights
from .report_service import build_milestone_report, build_monthly_report, build_weekly_report
