"""
Trigger Service - BREAK habits

Explainable heuristics over trigger records: category statistics, time
clustering and relapse detection. Every output cites concrete counts so
coaching copy can quote the evidence.
"""
import copy
import logging
import re
from collections import Counter
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from habitcoach.helpers.metric_helpers import histogram, percent, round_half_up, safe_mean
from habitcoach.models import (
    NarrativeKind, RelapseAnalysis, TemporalPatterns, TriggerPatternStats, TriggerRecord, TriggerType,
)
from habitcoach.narrative import narrate
from habitcoach.utils.constants import (
    DEFAULT_TARGET_DAYS_CLEAN, KEYWORD_MIN_SHARE, LEISURE_RATIO, MAX_EXAMPLE_CONTEXTS,
    MAX_PATTERN_KEYWORDS, MIN_TRIGGER_RECORDS, PATTERN_MIN_FAILURES, PEAK_FACTOR,
    WEEKDAY_NAMES, WEEKEND_DAYS, WORK_STRESS_RATIO,
)
from habitcoach.utils.time_utils import days_back, days_between, localize

logger = logging.getLogger(__name__)

# Whitespace plus ASCII and CJK punctuation
_TOKEN_SPLIT = re.compile(r"[\s,.;:!?()\"'，。、；：！？（）]+")

TRIGGER_LABELS: Dict[TriggerType, str] = {
    TriggerType.TEMPORAL: "time-based",
    TriggerType.CONTEXTUAL: "situational",
    TriggerType.EMOTIONAL: "emotional",
    TriggerType.BEHAVIORAL: "behavior-chain",
}

INTERRUPTION_STRATEGIES: Dict[TriggerType, Tuple[str, ...]] = {
    TriggerType.TEMPORAL: (
        "Schedule another activity for the high-risk hours",
        "Set a reminder just before the usual time",
        "Change your surroundings during high-risk hours",
        "Anchor a new habit to that time slot",
    ),
    TriggerType.CONTEXTUAL: (
        "Change or avoid the triggering place",
        "Leave a visible reminder where the urge starts",
        "Carry a substitute with you",
        "Enter the triggering situation with someone else",
    ),
    TriggerType.EMOTIONAL: (
        "Practice noticing and naming the feeling",
        "Build a toolkit of ways to cope with the emotion",
        "Try slow breathing or a short meditation",
        "Reach out to someone for support",
    ),
    TriggerType.BEHAVIORAL: (
        "Break the chain at the behavior that comes just before",
        "Replace the old behavior with a new one",
        "Add friction to the old behavior",
        "Create a new cue for the replacement behavior",
    ),
}

RELAPSE_ADVICE: Dict[TriggerType, str] = {
    TriggerType.TEMPORAL: "Plan something specific for the hour it usually happens",
    TriggerType.CONTEXTUAL: "Consider changing or avoiding the situation that set it off",
    TriggerType.EMOTIONAL: "Learn one emotion-regulation technique to use next time",
    TriggerType.BEHAVIORAL: "Find the behavior that leads into it and interrupt that instead",
}

GENERAL_RELAPSE_ADVICE = (
    "A slip is part of learning, don't be too hard on yourself",
    "Write down what triggered this one",
    "Set a smaller goal for the next few days",
)

NEEDS_MORE_DATA_ANALYSIS = {
    'patterns': [],
    'deep_need': "Not enough trigger records yet, log a few more to see patterns",
    'substitute_behaviors': [
        "Take ten slow breaths",
        "Drink a glass of water",
        "Get up and walk for five minutes",
        "Message a friend",
    ],
    'environment_design': [
        "Remove the trigger objects",
        "Rearrange the space where it happens",
        "Put up a reminder card",
    ],
}


def extract_keywords(texts: Sequence[str], min_share: float = KEYWORD_MIN_SHARE,
                     limit: int = MAX_PATTERN_KEYWORDS) -> List[str]:
    """
    Terms present in at least ``min_share`` of the texts.

    Tokens are lower-cased and must be longer than one character. Each
    text counts a term once. Ties keep first-seen order.
    """
    if not texts:
        return []

    document_frequency: Counter = Counter()
    first_seen: Dict[str, int] = {}
    for text in texts:
        tokens = {t.lower() for t in _TOKEN_SPLIT.split(text or "") if len(t) > 1}
        for token in sorted(tokens):
            first_seen.setdefault(token, len(first_seen))
        document_frequency.update(tokens)

    threshold = len(texts) * min_share
    frequent = [term for term, count in document_frequency.items() if count >= threshold]
    frequent.sort(key=lambda term: (-document_frequency[term], first_seen[term]))
    return frequent[:limit]


class TriggerService:

    @staticmethod
    def analyze_trigger_patterns(records: Sequence[TriggerRecord]) -> List[TriggerPatternStats]:
        """
        Per-category statistics for non-empty categories, most frequent first.
        """
        if not records:
            return []

        ordered = sorted(records, key=lambda r: r.timestamp)
        buckets: Dict[TriggerType, List[TriggerRecord]] = {t: [] for t in TriggerType}
        for record in ordered:
            buckets[record.trigger_type].append(record)

        results = []
        for trigger_type, bucket in buckets.items():
            if not bucket:
                continue
            results.append(TriggerPatternStats(
                trigger_type=trigger_type,
                count=len(bucket),
                percentage=percent(len(bucket), len(ordered)),
                average_intensity=round_half_up(safe_mean(r.intensity for r in bucket), 1),
                resistance_rate=percent(sum(1 for r in bucket if r.resisted), len(bucket)),
                examples=tuple(r.context for r in bucket[:MAX_EXAMPLE_CONTEXTS]),
            ))

        results.sort(key=lambda s: s.count, reverse=True)
        return results

    @staticmethod
    def identify_temporal_patterns(
        records: Sequence[TriggerRecord],
        timezone_name: Optional[str] = None,
    ) -> TemporalPatterns:
        """
        Hour-of-day and day-of-week clustering.

        A peak is a bucket whose count exceeds 1.5x the uniform average for
        its axis. Days run Monday=0 .. Sunday=6.
        """
        if not records:
            return TemporalPatterns(
                hour_counts=tuple([0] * 24), day_counts=tuple([0] * 7),
                peak_hours=(), peak_days=(), weekday_count=0, weekend_count=0, insights=(),
            )

        stamps = [localize(r.timestamp, timezone_name) for r in records]
        hour_counts = histogram([ts.hour for ts in stamps], 24)
        day_counts = histogram([ts.weekday() for ts in stamps], 7)

        total = len(records)
        peak_hours = [h for h, count in enumerate(hour_counts) if count > (total / 24) * PEAK_FACTOR]
        peak_days = [d for d, count in enumerate(day_counts) if count > (total / 7) * PEAK_FACTOR]

        weekend_count = sum(day_counts[d] for d in WEEKEND_DAYS)
        weekday_count = total - weekend_count

        insights = []
        if peak_hours:
            insights.append("Peak trigger hours: " + ", ".join(f"{h}:00" for h in peak_hours))
        if peak_days:
            insights.append("Peak trigger days: " + ", ".join(WEEKDAY_NAMES[d] for d in peak_days))
        if weekday_count > weekend_count * WORK_STRESS_RATIO:
            insights.append("Triggers cluster on weekdays, possibly linked to work stress")
        elif weekend_count > weekday_count * LEISURE_RATIO:
            insights.append("Triggers cluster on weekends, possibly linked to free time")

        return TemporalPatterns(
            hour_counts=tuple(hour_counts),
            day_counts=tuple(day_counts),
            peak_hours=tuple(peak_hours),
            peak_days=tuple(peak_days),
            weekday_count=weekday_count,
            weekend_count=weekend_count,
            insights=tuple(insights),
        )

    @staticmethod
    def analyze_relapse(
        records: Sequence[TriggerRecord],
        reference_date: date,
        target_days_clean: int = DEFAULT_TARGET_DAYS_CLEAN,
    ) -> RelapseAnalysis:
        """
        Detect relapses among failed-resistance events.

        A relapse is a failure within ``target_days_clean`` days of the
        failure before it. relapse_count is the total number of failures;
        relapse_episodes counts the failures that qualified as relapses.
        A recurring pattern is only named from three failures up.
        """
        ordered = sorted(records, key=lambda r: r.timestamp)
        failures = [r for r in ordered if not r.resisted]

        if not failures:
            clean_days = days_back(reference_date, ordered[0].timestamp) if ordered else 0
            return RelapseAnalysis(
                is_relapse=False,
                days_since_last_relapse=max(clean_days, 0),
                relapse_count=0,
                relapse_pattern=None,
                recovery_advice=("Keep it up, you're doing well",),
            )

        gaps = [days_between(later.timestamp, earlier.timestamp) for earlier, later in zip(failures, failures[1:])]
        episodes = sum(1 for gap in gaps if gap < target_days_clean)
        is_relapse = bool(gaps) and gaps[-1] < target_days_clean

        last = failures[-1]
        days_since = max(days_back(reference_date, last.timestamp), 0)
        pattern = TriggerService._relapse_pattern(failures)

        if is_relapse:
            advice = list(GENERAL_RELAPSE_ADVICE)
            advice.append(RELAPSE_ADVICE[last.trigger_type])
        else:
            advice = [
                f"{days_since} days since the last slip, keep going",
                "Note what helped you resist so you can reuse it",
            ]

        if is_relapse:
            logger.info(f"Relapse detected: {len(failures)} failures, last gap {gaps[-1]} days")

        return RelapseAnalysis(
            is_relapse=is_relapse,
            days_since_last_relapse=days_since,
            relapse_count=len(failures),
            relapse_pattern=pattern,
            recovery_advice=tuple(advice),
            relapse_episodes=episodes,
        )

    @staticmethod
    def _relapse_pattern(failures: Sequence[TriggerRecord]) -> Optional[str]:
        if len(failures) < PATTERN_MIN_FAILURES:
            return None

        parts = []
        type_counts = Counter(r.trigger_type for r in failures)
        top_type, top_count = max(
            type_counts.items(), key=lambda item: (item[1], -list(TriggerType).index(item[0]))
        )
        if top_count > len(failures) * 0.5:
            parts.append(f"{top_count} of {len(failures)} slips followed {TRIGGER_LABELS[top_type]} triggers")

        keywords = extract_keywords([r.context for r in failures])
        if keywords:
            parts.append("recurring context: " + ", ".join(keywords))

        return "; ".join(parts) if parts else None

    @staticmethod
    def generate_interruption_strategies(trigger_type: TriggerType) -> List[str]:
        return list(INTERRUPTION_STRATEGIES[trigger_type])

    @staticmethod
    def build_analysis_context(
        records: Sequence[TriggerRecord],
        habit_name: str,
        timezone_name: Optional[str] = None,
    ) -> Dict:
        """Numeric context handed to a narrative generator for trigger analysis."""
        patterns = TriggerService.analyze_trigger_patterns(records)
        temporal = TriggerService.identify_temporal_patterns(records, timezone_name)
        latest = sorted(records, key=lambda r: r.timestamp)[-5:]
        return {
            'habit_name': habit_name,
            'record_count': len(records),
            'patterns': [p.to_dict() for p in patterns],
            'temporal': temporal.to_dict(),
            'recent_records': [r.to_dict() for r in latest],
            'strategies': {
                p.trigger_type.value: list(INTERRUPTION_STRATEGIES[p.trigger_type]) for p in patterns
            },
        }

    @staticmethod
    def build_trigger_analysis(
        records: Sequence[TriggerRecord],
        habit_name: str,
        generator=None,
        timezone_name: Optional[str] = None,
    ) -> Dict:
        """
        Deep trigger analysis payload.

        Under three records there is nothing to analyse and the fixed
        "needs more data" answer is returned without calling a generator.
        """
        if len(records) < MIN_TRIGGER_RECORDS:
            return copy.deepcopy(NEEDS_MORE_DATA_ANALYSIS)

        context = TriggerService.build_analysis_context(records, habit_name, timezone_name)
        return narrate(generator, NarrativeKind.TRIGGER_ANALYSIS, context)


analyze_trigger_patterns = TriggerService.analyze_trigger_patterns
identify_temporal_patterns = TriggerService.identify_temporal_patterns
analyze_relapse = TriggerService.analyze_relapse
