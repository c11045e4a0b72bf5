"""
Custom Exception Classes

Provides specific exception types for the habit progression engine.
Insufficient data is never an error; these cover broken configuration,
illegal transitions and narrative backend failures.
"""


class HabitCoachException(Exception):
    """Base exception for all habit coach errors"""
    pass


class HabitNotFoundError(HabitCoachException):
    """Raised when a habit referenced by id is not in the snapshot"""
    def __init__(self, habit_id: str):
        self.habit_id = habit_id
        super().__init__(f"Habit '{habit_id}' not found")


class PhaseConfigError(HabitCoachException):
    """Raised when a habit's phase list is asserted to exist but is missing or corrupt"""
    def __init__(self, habit_id: str, message: str):
        self.habit_id = habit_id
        self.message = message
        super().__init__(f"Phase configuration error for habit '{habit_id}': {message}")


class PhaseTransitionError(HabitCoachException):
    """Raised when a transition would leave the 1..N phase range"""
    def __init__(self, habit_id: str, current_phase: int, transition: str, total_phases: int):
        self.habit_id = habit_id
        self.current_phase = current_phase
        self.transition = transition
        self.total_phases = total_phases
        super().__init__(
            f"Cannot {transition} habit '{habit_id}' from phase {current_phase} "
            f"(valid range 1..{total_phases})"
        )


class InvalidDateRangeError(HabitCoachException):
    """Raised when date range is invalid (e.g., start > end)"""
    def __init__(self, start_date, end_date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(f"Invalid date range: {start_date} to {end_date}")


class ValidationError(HabitCoachException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Validation error for '{field}': {message}")


class AnalyticsError(HabitCoachException):
    """Raised when an aggregation cannot be computed from the given snapshot"""
    def __init__(self, message: str, details: dict = None):
        self.details = details or {}
        super().__init__(message)


class NarrativeGenerationError(HabitCoachException):
    """Raised by narrative backends when generation fails or returns malformed output"""
    def __init__(self, kind: str, message: str):
        self.kind = kind
        self.message = message
        super().__init__(f"Narrative generation failed for '{kind}': {message}")


class NarrativeTimeoutError(NarrativeGenerationError):
    """Raised when a narrative call exceeds its time budget"""
    def __init__(self, kind: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(kind, f"timed out after {timeout_seconds:.1f}s")
