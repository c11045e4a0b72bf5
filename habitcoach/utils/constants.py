# habitcoach/utils/constants.py
"""
Central constants for the progression engine.
Thresholds live here so every service scores against the same numbers.
"""

# ============================================
# TIME WINDOWS (days)
# ============================================
RECENT_DAYS = 7
MEDIUM_DAYS = 14
LONG_DAYS = 30

TREND_WINDOW_DAYS = 3
TREND_DELTA_THRESHOLD = 0.2

DEFAULT_PHASE_DURATION_DAYS = 7
MIN_DAYS_IN_PHASE_FOR_ADVANCE = 7
MIN_DAYS_IN_PHASE_FOR_RETREAT = 3
PHASE_LOG_LIMIT = 14

# ============================================
# MOTIVATION SCORING
# ============================================
MOTIVATION_MIN_SCORE = 1
MOTIVATION_MAX_SCORE = 10
NEW_HABIT_GRACE_DAYS = 7
NEW_HABIT_GRACE_SCORE = 7
NO_DATA_SCORE = 3
NO_DATA_CRITICAL_AFTER_DAYS = 3

NEUTRAL_DIFFICULTY = 3.0
NEUTRAL_MOOD_DELTA = 0.0

# Intervention timing keyed by exact days since start
INTERVENTION_TIMINGS = {
    3: "day-three check-in",
    7: "first-week milestone",
    14: "two-week consolidation",
    21: "habit-forming threshold",
    30: "one-month review",
    66: "automaticity milestone",
    100: "hundred-day celebration",
}

# ============================================
# PHASE READINESS (advance side, 0..100)
# ============================================
READINESS_UPGRADE_SCORE = 70
READINESS_STEADY_SCORE = 50

COMPLETION_BANDS = [(0.9, 40), (0.8, 30), (0.7, 20)]
DIFFICULTY_BANDS = [(2.0, 30), (3.0, 20), (4.0, 10)]
DURATION_BANDS = [(1.5, 30), (1.0, 20)]

# ============================================
# RETREAT SCORING (inverted mirror, 0..100)
# ============================================
COMPLETION_DEFICIT_BANDS = [(0.3, 40), (0.5, 30), (0.7, 20)]
DIFFICULTY_STRAIN_BANDS = [(4.5, 30), (4.0, 20), (3.5, 10)]
DISTRESS_MOOD_BANDS = [(1.5, 30), (2.0, 20)]
DISTRESS_NEGATIVE_DELTA_POINTS = 10

RETREAT_SCORE_HIGH = 70
RETREAT_SCORE_MEDIUM = 50
RETREAT_SCORE_LOW = 30

# Note keywords scanned for retreat/advance signals
NEGATIVE_NOTE_KEYWORDS = (
    "don't want", "so tired", "too hard", "can't do", "give up", "forget it",
    "pointless", "painful", "avoid", "forced", "can't keep",
    "不想做", "好累", "太难", "做不到", "放弃", "算了", "没意思", "痛苦", "逃避", "强迫", "坚持不住",
)
DESIRE_NOTE_KEYWORDS = (
    "not enough", "want more", "again", "too short", "too easy",
    "不够", "想多", "再来", "太短", "太简单", "还想",
)

# ============================================
# TRIGGER ANALYSIS
# ============================================
PEAK_FACTOR = 1.5
WORK_STRESS_RATIO = 2.0
LEISURE_RATIO = 0.8
MAX_EXAMPLE_CONTEXTS = 3
MIN_TRIGGER_RECORDS = 3
DEFAULT_TARGET_DAYS_CLEAN = 7
PATTERN_MIN_FAILURES = 3
KEYWORD_MIN_SHARE = 0.5
MAX_PATTERN_KEYWORDS = 5
WEEKEND_DAYS = (5, 6)

# ============================================
# BREAK RISK
# ============================================
RISK_MIN_LOGS = 7
RISK_CRITICAL_SCORE = 70
RISK_HIGH_SCORE = 50
RISK_MEDIUM_SCORE = 30

# ============================================
# CORRELATIONS
# ============================================
MIN_MOOD_LOGS = 5
LOW_MOOD_MAX = 2
HIGH_MOOD_MIN = 4
MOOD_LIFT_HIGH = 0.5
MOOD_LIFT_MEDIUM = 0.2
MIN_CORRELATION_HABITS = 2
# score above this is POSITIVE, below its negative NEGATIVE
CORRELATION_THRESHOLD = 0.3

# ============================================
# DASHBOARD AND REPORTS
# ============================================
DEFAULT_TOP_N_RISKS = 5
ATTENTION_RATE_THRESHOLD = 50
MAX_ATTENTION_HABITS = 3
MAX_REPORT_ITEMS = 3

# Streak lengths that earn a milestone report
MILESTONE_STREAK_DAYS = (7, 21, 66, 100)

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
