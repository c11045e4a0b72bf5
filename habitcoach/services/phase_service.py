"""
Phase Service - progression state machine

A habit with N configured phases sits in one phase 1..N and moves by
ADVANCE (+1) or RETREAT (-1). Phase 1 never retreats, phase N never
advances, and there is no terminal state.

The evaluators here only score and recommend. The single writer of
``Habit.current_phase`` is ``PhaseService.apply_transition`` (plus the
explicit user override and path redesign), each returning a new Habit.
"""
import logging
from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from habitcoach.exceptions import PhaseConfigError, PhaseTransitionError
from habitcoach.helpers.metric_helpers import (
    band_points, band_points_below, percent, round_half_up, safe_mean, safe_ratio,
)
from habitcoach.models import (
    AdvanceAssessment, AdvanceSignal, AdvanceSignalType, Habit, HabitEvaluation,
    HabitLog, PhaseConfig, PhaseEvaluationResult, PhaseTransition,
    RetreatAssessment, RetreatSignal, RetreatSignalType, RetreatUrgency, Severity,
)
from habitcoach.services.stats_service import (
    average_difficulty, average_mood_delta, completion_ratio, sort_logs_desc,
)
from habitcoach.utils.constants import (
    COMPLETION_BANDS, COMPLETION_DEFICIT_BANDS, DESIRE_NOTE_KEYWORDS,
    DIFFICULTY_BANDS, DIFFICULTY_STRAIN_BANDS, DISTRESS_MOOD_BANDS,
    DISTRESS_NEGATIVE_DELTA_POINTS, DURATION_BANDS, MIN_DAYS_IN_PHASE_FOR_ADVANCE,
    MIN_DAYS_IN_PHASE_FOR_RETREAT, NEGATIVE_NOTE_KEYWORDS, PHASE_LOG_LIMIT,
    READINESS_STEADY_SCORE, READINESS_UPGRADE_SCORE, RETREAT_SCORE_HIGH,
    RETREAT_SCORE_LOW, RETREAT_SCORE_MEDIUM,
)
from habitcoach.utils.time_utils import in_window, parse_duration_hint

logger = logging.getLogger(__name__)

PHASE_CONFIG_MISSING = "phase config missing"


def find_phase(phases: Optional[Sequence[PhaseConfig]], phase: int) -> Optional[PhaseConfig]:
    for config in phases or ():
        if config.phase == phase:
            return config
    return None


def logs_in_phase(
    logs: Sequence[HabitLog],
    reference_date: date,
    days_in_phase: int,
    limit: int = PHASE_LOG_LIMIT,
) -> List[HabitLog]:
    """Newest logs since the phase began, capped at ``limit``."""
    window = max(days_in_phase, 1)
    return [log for log in sort_logs_desc(logs) if in_window(reference_date, log.day, window)][:limit]


def _notes_match(log: HabitLog, keywords: Sequence[str]) -> bool:
    if not log.notes:
        return False
    text = log.notes.lower()
    return any(keyword in text for keyword in keywords)


def _leading_run(logs: Sequence[HabitLog], completed: bool) -> int:
    run = 0
    for log in logs:
        if log.completed != completed:
            break
        run += 1
    return run


def _duration_halves(logs: Sequence[HabitLog]) -> Optional[Tuple[float, float]]:
    """Average duration of the older and newer half of the last 7 timed completions."""
    timed = [log for log in logs if log.completed and log.duration_minutes][:7]
    timed.reverse()
    if len(timed) < 4:
        return None
    mid = len(timed) // 2
    first = safe_mean(log.duration_minutes for log in timed[:mid])
    second = safe_mean(log.duration_minutes for log in timed[mid:])
    if not first:
        return None
    return first, second


# =============================================================================
# ADVANCE SIGNALS
# =============================================================================

def detect_consistency_signal(logs: Sequence[HabitLog]) -> Optional[AdvanceSignal]:
    run = _leading_run(logs, completed=True)
    if run >= 5:
        return AdvanceSignal(AdvanceSignalType.CONSISTENCY, min(1.0, run / 10), f"Completed {run} times in a row")
    return None


def detect_ease_signal(logs: Sequence[HabitLog]) -> Optional[AdvanceSignal]:
    rated = [log for log in logs if log.completed and log.difficulty_rating is not None][:5]
    if len(rated) < 3:
        return None
    avg = safe_mean(log.difficulty_rating for log in rated)
    if avg <= 2:
        return AdvanceSignal(
            AdvanceSignalType.EASE, round_half_up(1 - avg / 5, 2),
            f"Average difficulty {avg:.1f} over the last {len(rated)} completions",
        )
    return None


def detect_desire_signal(logs: Sequence[HabitLog]) -> Optional[AdvanceSignal]:
    latest = list(logs[:7])
    desire_count = sum(1 for log in latest if log.wanted_to_do_more)
    if desire_count >= 2:
        return AdvanceSignal(
            AdvanceSignalType.DESIRE, min(1.0, desire_count / 5),
            f"Asked for more {desire_count} times in the last 7 logs",
        )
    if any(_notes_match(log, DESIRE_NOTE_KEYWORDS) for log in latest):
        return AdvanceSignal(AdvanceSignalType.DESIRE, 0.6, "Notes mention wanting to do more")
    return None


def detect_overflow_signal(logs: Sequence[HabitLog]) -> Optional[AdvanceSignal]:
    timed = [
        log for log in logs
        if log.completed and log.duration_minutes and log.target_duration_minutes
    ]
    if len(timed) < 3:
        return None
    overflow = sum(1 for log in timed if log.duration_minutes > log.target_duration_minutes * 1.2)
    rate = overflow / len(timed)
    if rate >= 0.5:
        return AdvanceSignal(
            AdvanceSignalType.OVERFLOW, round_half_up(rate, 2),
            f"Went past the target {percent(overflow, len(timed))}% of the time",
        )
    return None


def detect_momentum_signal(logs: Sequence[HabitLog]) -> Optional[AdvanceSignal]:
    halves = _duration_halves(logs)
    if halves is None:
        return None
    first, second = halves
    if second > first * 1.2:
        growth = (second - first) / first
        return AdvanceSignal(
            AdvanceSignalType.MOMENTUM, round_half_up(min(1.0, growth), 2),
            f"Session length trending up (+{percent(growth, 1)}%)",
        )
    return None


ADVANCE_DETECTORS = (
    detect_consistency_signal,
    detect_ease_signal,
    detect_desire_signal,
    detect_overflow_signal,
    detect_momentum_signal,
)


# =============================================================================
# RETREAT SIGNALS
# =============================================================================

def detect_struggle_signal(logs: Sequence[HabitLog]) -> Optional[RetreatSignal]:
    rated = [log for log in logs if log.completed and log.difficulty_rating is not None][:5]
    if len(rated) < 3:
        return None
    avg = safe_mean(log.difficulty_rating for log in rated)
    if avg >= 4.5:
        return RetreatSignal(RetreatSignalType.STRUGGLE, Severity.HIGH, f"Average difficulty {avg:.1f}, a real strain")
    if avg >= 4:
        return RetreatSignal(RetreatSignalType.STRUGGLE, Severity.MEDIUM, f"Average difficulty {avg:.1f}, somewhat hard")
    return None


def detect_inconsistent_signal(logs: Sequence[HabitLog]) -> Optional[RetreatSignal]:
    latest = list(logs[:7])
    if len(latest) < 5:
        return None
    done = sum(1 for log in latest if log.completed)
    rate = done / len(latest)
    if 0.3 <= rate <= 0.7:
        severity = Severity.HIGH if rate < 0.5 else Severity.MEDIUM
        return RetreatSignal(RetreatSignalType.INCONSISTENT, severity, f"Completed {done} of the last {len(latest)} logs, on and off")
    return None


def detect_negative_signal(logs: Sequence[HabitLog]) -> Optional[RetreatSignal]:
    latest = list(logs[:7])
    with_mood = [log for log in latest if log.completed and log.mood_after is not None]
    if len(with_mood) >= 3:
        avg = safe_mean(log.mood_after for log in with_mood)
        if avg <= 2:
            severity = Severity.HIGH if avg <= 1.5 else Severity.MEDIUM
            return RetreatSignal(RetreatSignalType.NEGATIVE, severity, f"Mood after completing averages {avg:.1f}")

    if sum(1 for log in latest if _notes_match(log, NEGATIVE_NOTE_KEYWORDS)) >= 2:
        return RetreatSignal(RetreatSignalType.NEGATIVE, Severity.MEDIUM, "Notes repeatedly express frustration")
    return None


def detect_avoidance_signal(logs: Sequence[HabitLog]) -> Optional[RetreatSignal]:
    missed = _leading_run(logs, completed=False)
    if missed >= 5:
        return RetreatSignal(RetreatSignalType.AVOIDANCE, Severity.HIGH, f"Missed {missed} times in a row")
    if missed >= 3:
        return RetreatSignal(RetreatSignalType.AVOIDANCE, Severity.MEDIUM, f"Missed {missed} times in a row")
    return None


def detect_declining_signal(logs: Sequence[HabitLog]) -> Optional[RetreatSignal]:
    halves = _duration_halves(logs)
    if halves is None:
        return None
    first, second = halves
    if second < first * 0.7:
        severity = Severity.HIGH if second < first * 0.5 else Severity.MEDIUM
        drop = (first - second) / first
        return RetreatSignal(RetreatSignalType.DECLINING, severity, f"Session length trending down (-{percent(drop, 1)}%)")
    return None


def detect_burnout_signal(logs: Sequence[HabitLog]) -> Optional[RetreatSignal]:
    rated = [
        log for log in logs
        if log.completed and log.difficulty_rating is not None and log.mood_after is not None
    ][:5]
    if len(rated) < 3:
        return None
    avg_difficulty = safe_mean(log.difficulty_rating for log in rated)
    avg_mood = safe_mean(log.mood_after for log in rated)
    if avg_difficulty >= 4 and avg_mood <= 2:
        return RetreatSignal(
            RetreatSignalType.BURNOUT, Severity.HIGH,
            f"Hard ({avg_difficulty:.1f}) and joyless ({avg_mood:.1f}), possible burnout",
        )
    return None


RETREAT_DETECTORS = (
    detect_struggle_signal,
    detect_inconsistent_signal,
    detect_negative_signal,
    detect_avoidance_signal,
    detect_declining_signal,
    detect_burnout_signal,
)

RETREAT_GUIDANCE: Dict[RetreatUrgency, Tuple[str, str, Tuple[str, ...]]] = {
    RetreatUrgency.HIGH: (
        "Step back to the previous phase and give yourself room to breathe",
        "Stepping back is not failing. A solid base matters more than height.",
        ("Lower the daily target", "Take a rest day", "Do only the minimum version"),
    ),
    RetreatUrgency.MEDIUM: (
        "Consider returning to the previous phase and consolidating first",
        "Comfort zones move up and down. One step back sets up the next step forward.",
        ("Do only the minimum this week", "Shorten the daily session", "Plan a recovery week"),
    ),
    RetreatUrgency.LOW: (
        "Some wobble lately, worth keeping an eye on",
        "A few small signals, nothing to worry about. You can adjust any time.",
        ("Note what got in the way", "Try an easier version", "Agree on a flexible rule with yourself"),
    ),
    RetreatUrgency.NONE: (
        "Things look steady, keep going",
        "You are moving forward and every day counts.",
        (),
    ),
}


def _signal_urgency(signals: Sequence[RetreatSignal]) -> RetreatUrgency:
    high = sum(1 for s in signals if s.severity == Severity.HIGH)
    medium = sum(1 for s in signals if s.severity == Severity.MEDIUM)
    burnout = any(s.type == RetreatSignalType.BURNOUT and s.severity == Severity.HIGH for s in signals)

    if burnout or high >= 2:
        return RetreatUrgency.HIGH
    if high >= 1 or medium >= 2:
        return RetreatUrgency.MEDIUM
    if medium >= 1:
        return RetreatUrgency.LOW
    return RetreatUrgency.NONE


def _score_urgency(score: int) -> RetreatUrgency:
    if score >= RETREAT_SCORE_HIGH:
        return RetreatUrgency.HIGH
    if score >= RETREAT_SCORE_MEDIUM:
        return RetreatUrgency.MEDIUM
    if score >= RETREAT_SCORE_LOW:
        return RetreatUrgency.LOW
    return RetreatUrgency.NONE


class PhaseService:
    """Readiness scoring, retreat protection and the phase transition operations."""

    # =========================================================================
    # ADVANCE SIDE
    # =========================================================================

    @staticmethod
    def evaluate_readiness(
        current_phase: int,
        phases: Optional[Sequence[PhaseConfig]],
        recent_logs: Sequence[HabitLog],
        days_in_phase: int,
    ) -> PhaseEvaluationResult:
        """
        Score readiness to advance, 0..100.

        Completion (0-40) + difficulty adaptation (0-30, rated logs only)
        + duration adequacy (0-30). Upgrade needs a score of 70 and at
        least 7 days in the phase regardless of score.
        """
        config = find_phase(phases, current_phase)
        if config is None:
            logger.warning(f"Readiness requested for phase {current_phase} with no matching config")
            return PhaseEvaluationResult(
                should_upgrade=False,
                readiness_score=0,
                reasons=(PHASE_CONFIG_MISSING,),
                recommendation="Check the habit's phase path before evaluating progress",
            )

        reasons = []

        rate = completion_ratio(recent_logs)
        completion_points = band_points(rate, COMPLETION_BANDS)
        reasons.append(f"Completion rate {percent(rate, 1)}% ({completion_points}/40)")

        avg_difficulty = average_difficulty(recent_logs, completed_only=False)
        if avg_difficulty is None:
            difficulty_points = 0
            reasons.append("No difficulty ratings yet (0/30)")
        else:
            difficulty_points = band_points(avg_difficulty, DIFFICULTY_BANDS, higher_is_better=False)
            reasons.append(f"Average difficulty {avg_difficulty:.1f} ({difficulty_points}/30)")

        suggested_days = parse_duration_hint(config.duration_hint)
        duration_points = band_points(safe_ratio(days_in_phase, suggested_days), DURATION_BANDS)
        if duration_points:
            reasons.append(
                f"{days_in_phase} days in phase against a suggested {suggested_days} ({duration_points}/30)"
            )
        else:
            remaining = suggested_days - days_in_phase
            reasons.append(f"{remaining} more days suggested in this phase (0/30)")

        score = completion_points + difficulty_points + duration_points
        should_upgrade = score >= READINESS_UPGRADE_SCORE and days_in_phase >= MIN_DAYS_IN_PHASE_FOR_ADVANCE

        if should_upgrade:
            next_config = find_phase(phases, current_phase + 1)
            if next_config is None:
                recommendation = "All phases complete: keep this habit steady at its current level"
            else:
                recommendation = f"Ready for phase {next_config.phase}: {next_config.name}"
        elif score >= READINESS_STEADY_SCORE:
            recommendation = "Keep the current pace a few more days"
        else:
            recommendation = "Consolidate this phase, don't rush"

        return PhaseEvaluationResult(
            should_upgrade=should_upgrade,
            readiness_score=score,
            reasons=tuple(reasons),
            recommendation=recommendation,
        )

    @staticmethod
    def assess_advance_signals(recent_logs: Sequence[HabitLog]) -> AdvanceAssessment:
        """
        Behavioral "wants more" signals, the softer companion to readiness.

        Ready with two or more signals at confidence >= 0.6, or any two
        signals where one is an explicit desire for more.
        """
        logs = sort_logs_desc(recent_logs)
        signals = [s for s in (detect(logs) for detect in ADVANCE_DETECTORS) if s is not None]
        kinds = {s.type for s in signals}

        confidence = round_half_up(min(1.0, sum(s.strength for s in signals) / 2), 2)
        has_desire = AdvanceSignalType.DESIRE in kinds
        is_ready = (len(signals) >= 2 and confidence >= 0.6) or (has_desire and len(signals) >= 2)

        if is_ready and has_desire:
            recommendation = "You're ready: wanting more is the best signal there is"
            encouragement = "Your routine is asking for more. Give it a little."
        elif is_ready and {AdvanceSignalType.EASE, AdvanceSignalType.CONSISTENCY} <= kinds:
            recommendation = "This phase is part of you now, the next step should feel easy"
            encouragement = "Steady work has built a solid base."
        elif is_ready:
            recommendation = "Several signals say you're ready to advance"
            encouragement = "Your persistence is paying off."
        elif len(signals) == 1:
            recommendation = "Keep going, a few more signals and you can think about advancing"
            encouragement = "You're on the right track, let the habit grow naturally."
        else:
            recommendation = "This phase still needs consolidating, keep at it"
            encouragement = "Every day you show up strengthens the base."

        return AdvanceAssessment(
            is_ready=is_ready,
            confidence=confidence,
            signals=tuple(signals),
            recommendation=recommendation,
            encouragement=encouragement,
        )

    # =========================================================================
    # RETREAT SIDE
    # =========================================================================

    @staticmethod
    def assess_retreat(
        current_phase: int,
        phases: Optional[Sequence[PhaseConfig]],
        recent_logs: Sequence[HabitLog],
        days_in_phase: int,
    ) -> RetreatAssessment:
        """
        Inverted mirror of the readiness score, plus distress signals.

        Completion deficit (0-40) + difficulty strain (0-30, rated logs
        only) + distress (0-30). Urgency is the higher of the signal tier
        and the score tier. A retreat is only proposed at MEDIUM urgency or
        above, above phase 1, and after 3 days in the phase so a single
        bad day cannot flip the phase straight back.
        """
        if not recent_logs:
            return RetreatAssessment(
                should_retreat=False,
                urgency=RetreatUrgency.NONE,
                retreat_score=0,
                signals=(),
                reasons=("No recent logs to assess",),
                recommendation="Log a few days first",
                encouragement=RETREAT_GUIDANCE[RetreatUrgency.NONE][1],
            )

        logs = sort_logs_desc(recent_logs)
        signals = [s for s in (detect(logs) for detect in RETREAT_DETECTORS) if s is not None]
        reasons = []

        rate = completion_ratio(logs)
        deficit_points = band_points_below(rate, COMPLETION_DEFICIT_BANDS)
        reasons.append(f"Completion rate {percent(rate, 1)}% ({deficit_points}/40 deficit)")

        avg_difficulty = average_difficulty(logs, completed_only=False)
        if avg_difficulty is None:
            strain_points = 0
            reasons.append("No difficulty ratings yet (0/30 strain)")
        else:
            strain_points = band_points(avg_difficulty, DIFFICULTY_STRAIN_BANDS)
            reasons.append(f"Average difficulty {avg_difficulty:.1f} ({strain_points}/30 strain)")

        burnout = any(s.type == RetreatSignalType.BURNOUT for s in signals)
        avg_mood_after = safe_mean(log.mood_after for log in logs)
        avg_delta = average_mood_delta(logs)
        if burnout:
            distress_points = DISTRESS_MOOD_BANDS[0][1]
            reasons.append(f"Burnout pattern detected ({distress_points}/30 distress)")
        else:
            distress_points = 0
            if avg_mood_after is not None:
                distress_points = band_points(avg_mood_after, DISTRESS_MOOD_BANDS, higher_is_better=False)
            if not distress_points and avg_delta is not None and avg_delta < 0:
                distress_points = DISTRESS_NEGATIVE_DELTA_POINTS
            if avg_mood_after is None and avg_delta is None:
                reasons.append("No mood ratings yet (0/30 distress)")
            else:
                mood_text = f"{avg_mood_after:.1f}" if avg_mood_after is not None else "n/a"
                reasons.append(f"Mood after averages {mood_text} ({distress_points}/30 distress)")

        score = deficit_points + strain_points + distress_points
        signal_tier = _signal_urgency(signals)
        score_tier = _score_urgency(score)
        urgency = signal_tier if signal_tier.rank >= score_tier.rank else score_tier

        wants_retreat = urgency.rank >= RetreatUrgency.MEDIUM.rank
        should_retreat = (
            wants_retreat
            and current_phase > 1
            and days_in_phase >= MIN_DAYS_IN_PHASE_FOR_RETREAT
        )

        recommendation, encouragement, alternatives = RETREAT_GUIDANCE[urgency]
        if wants_retreat and not should_retreat:
            if current_phase <= 1:
                recommendation = "Already at the first phase: shrink today's target instead of stepping back"
                reasons.append("Phase 1 cannot retreat")
            else:
                recommendation = "Give this phase a few more days before deciding to step back"
                reasons.append(
                    f"Only {days_in_phase} days in phase, retreat needs {MIN_DAYS_IN_PHASE_FOR_RETREAT}"
                )

        previous = find_phase(phases, current_phase - 1)
        if should_retreat and previous is not None:
            recommendation = f"{recommendation} (phase {previous.phase}: {previous.name})"

        return RetreatAssessment(
            should_retreat=should_retreat,
            urgency=urgency,
            retreat_score=score,
            signals=tuple(signals),
            reasons=tuple(reasons),
            recommendation=recommendation,
            encouragement=encouragement,
            alternative_actions=alternatives,
        )

    # =========================================================================
    # COMBINED EVALUATION
    # =========================================================================

    @staticmethod
    def evaluate_habit(
        habit: Habit,
        logs: Sequence[HabitLog],
        days_in_phase: int,
        reference_date: date,
    ) -> HabitEvaluation:
        """
        Run both directions for a habit whose phase path must exist.

        Retreat takes priority: an advance is only proposed when no retreat
        is, and never from the last phase.

        Raises:
            PhaseConfigError: if the habit has no phase path
        """
        if not habit.phases:
            raise PhaseConfigError(habit.id, "habit has no phase path")

        phase_logs = logs_in_phase(logs, reference_date, days_in_phase)
        readiness = PhaseService.evaluate_readiness(habit.current_phase, habit.phases, phase_logs, days_in_phase)
        advance = PhaseService.assess_advance_signals(phase_logs)
        retreat = PhaseService.assess_retreat(habit.current_phase, habit.phases, phase_logs, days_in_phase)

        proposed = None
        if retreat.should_retreat:
            proposed = PhaseTransition.RETREAT
        elif readiness.should_upgrade and habit.current_phase < habit.total_phases:
            proposed = PhaseTransition.ADVANCE

        return HabitEvaluation(
            readiness=readiness,
            advance=advance,
            retreat=retreat,
            proposed_transition=proposed,
        )

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    @staticmethod
    def apply_transition(habit: Habit, transition: PhaseTransition) -> Habit:
        """
        Move the habit one phase forward or back.

        Returns:
            A new Habit; the input is left untouched.

        Raises:
            PhaseConfigError: if the habit has no phase path
            PhaseTransitionError: if the move would leave 1..N
        """
        if not habit.phases:
            raise PhaseConfigError(habit.id, "cannot transition a habit without a phase path")

        target = habit.current_phase + transition.step
        if target < 1 or target > habit.total_phases:
            raise PhaseTransitionError(
                habit.id, habit.current_phase, transition.value.lower(), habit.total_phases
            )

        logger.info(f"Habit {habit.id}: {transition.value} phase {habit.current_phase} -> {target}")
        return replace(habit, current_phase=target)

    @staticmethod
    def override_phase(habit: Habit, phase: int) -> Habit:
        """Explicit user override to any phase inside the path."""
        if not habit.phases:
            raise PhaseConfigError(habit.id, "cannot override the phase of a habit without a phase path")
        if phase < 1 or phase > habit.total_phases:
            raise PhaseTransitionError(habit.id, habit.current_phase, f"override to phase {phase}", habit.total_phases)

        logger.info(f"Habit {habit.id}: phase overridden {habit.current_phase} -> {phase}")
        return replace(habit, current_phase=phase)

    @staticmethod
    def redesign_path(habit: Habit, phases: Sequence[PhaseConfig]) -> Habit:
        """
        Replace the whole phase path.

        Phases must be numbered 1..N without gaps. The current phase is
        kept when it still exists, otherwise clamped to the new last phase.
        """
        ordered = tuple(sorted(phases, key=lambda p: p.phase))
        if not ordered:
            raise PhaseConfigError(habit.id, "a phase path needs at least one phase")
        numbers = [p.phase for p in ordered]
        if numbers != list(range(1, len(ordered) + 1)):
            raise PhaseConfigError(habit.id, f"phases must be numbered 1..{len(ordered)}, got {numbers}")

        current = min(habit.current_phase, len(ordered))
        logger.info(f"Habit {habit.id}: phase path redesigned with {len(ordered)} phases, now at phase {current}")
        return replace(habit, phases=ordered, current_phase=current)


evaluate_readiness = PhaseService.evaluate_readiness
assess_retreat = PhaseService.assess_retreat
apply_transition = PhaseService.apply_transition
