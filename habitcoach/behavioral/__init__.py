"""
Behavioral Insights Engine Package

Rule-based quick insights and default habit insights.

No AI/ML - purely deterministic rules grounded in research.
"""
from habitcoach.behavioral.insights_engine import (
    InsightsEngine,
    InsightType,
    Insight,
    get_quick_insights,
    generate_default_insights,
    RESEARCH_NOTES
)

__all__ = [
    'InsightsEngine',
    'InsightType',
    'Insight',
    'get_quick_insights',
    'generate_default_insights',
    'RESEARCH_NOTES'
]
