"""
Habit coach engine.

Deterministic habit progression analytics (streaks, motivation, phase
readiness, trigger and relapse analysis, break risk) with optional
generated coaching copy on top.
"""
__version__ = "1.0.0"
