"""
Helpers package for the habit coach engine.

Helper functions for specific domains:
- metric_helpers: Ratios, rounding, streak run-lengths
- monitoring: Timing decorators and the metrics collector
"""
