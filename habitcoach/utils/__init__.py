"""
Utilities package for the habit coach engine.

Common utility functions:
- time_utils: Date and time calculations
- constants: Scoring thresholds and windows
- logging_utils: Request-correlated structured logging
"""
