"""Multi-signal fatigue detection.

Each component compares the first and second half of a session and scores
0-100:

1. Accuracy decline:        first-half vs second-half accuracy
2. Response time increase:  first-half vs second-half response time
3. Hint usage increase:     first-half vs second-half hint frequency
4. Session duration:        linear 0-100 over 0-90 minutes
5. Error burstiness:        runs of consecutive incorrect answers

The composite is a weighted sum of the components.
"""

from statistics import fmean
from typing import Iterable, Sequence

from src.modules.adaptation.interface import (
    AdaptationEvent,
    AdaptationSignal,
    EMAState,
    FatigueAssessment,
    FatigueComponents,
)
from src.shared.constants import (
    CORRECT_RESPONSE_THRESHOLD,
    FATIGUE_END_SESSION_THRESHOLD,
    FATIGUE_MAX_DURATION_MINUTES,
    FATIGUE_MAX_ERROR_RUN,
    FATIGUE_MIN_BURST_LENGTH,
    FATIGUE_MIN_BURST_SIGNALS,
    FATIGUE_MIN_HALF_SIGNALS,
    FATIGUE_MIN_HINT_SIGNALS,
    FATIGUE_RATE_NORMALIZER,
    FATIGUE_REDUCE_DIFFICULTY_THRESHOLD,
    FATIGUE_SWITCH_TOPIC_THRESHOLD,
    FATIGUE_TAKE_BREAK_THRESHOLD,
    FATIGUE_WEIGHTS,
)
from src.shared.datetime_utils import ensure_utc, minutes_between
from src.shared.models import FatigueRecommendation, RuleActionType, SignalType


def _cap(score: float) -> float:
    return min(100.0, score)


def _half_averages(values: Sequence[float]) -> tuple[float, float]:
    mid = len(values) // 2
    return fmean(values[:mid]), fmean(values[mid:])


def session_signals(
    events: Iterable[AdaptationEvent], session_id: str
) -> list[AdaptationSignal]:
    """Collect a session's signals from the event log, oldest first.

    Only signal-batch events count. Decision-gate events may echo signals
    that were already applied and would be counted twice.
    """
    signals = [
        signal
        for event in events
        if event.action.type is RuleActionType.RECORD_SIGNALS
        for signal in event.trigger_signals
        if signal.context.session_id == session_id
    ]
    # sort is stable, so same-timestamp signals keep log order
    signals.sort(key=lambda s: ensure_utc(s.timestamp))
    return signals


def accuracy_decline(signals: Sequence[AdaptationSignal]) -> float:
    """Drop in accuracy from first to second half; a 0.5 drop scores 100."""
    values = [s.value for s in signals if s.type is SignalType.ACCURACY]
    if len(values) < FATIGUE_MIN_HALF_SIGNALS:
        return 0.0

    first, second = _half_averages(values)
    return _cap(max(0.0, first - second) / FATIGUE_RATE_NORMALIZER * 100)


def response_time_increase(signals: Sequence[AdaptationSignal]) -> float:
    """Relative slowdown from first to second half; doubling scores 100."""
    values = [s.value for s in signals if s.type is SignalType.RESPONSE_TIME]
    if len(values) < FATIGUE_MIN_HALF_SIGNALS:
        return 0.0

    first, second = _half_averages(values)
    if first <= 0:
        return 0.0
    return _cap(max(0.0, second / first - 1) * 100)


def hint_usage_increase(signals: Sequence[AdaptationSignal]) -> float:
    """Rise in hints-per-signal between the halves of the whole session."""
    total = len(signals)
    if total < FATIGUE_MIN_HALF_SIGNALS:
        return 0.0

    mid = total // 2
    first_hints = second_hints = 0
    for index, signal in enumerate(signals):
        if signal.type is not SignalType.HINT_USAGE:
            continue
        if index < mid:
            first_hints += 1
        else:
            second_hints += 1

    if first_hints + second_hints < FATIGUE_MIN_HINT_SIGNALS:
        return 0.0

    first_freq = first_hints / mid
    second_freq = second_hints / (total - mid)
    return _cap(max(0.0, second_freq - first_freq) / FATIGUE_RATE_NORMALIZER * 100)


def session_duration(signals: Sequence[AdaptationSignal]) -> float:
    """Elapsed session time; 90 minutes or more scores 100."""
    if len(signals) < 2:
        return 0.0

    minutes = minutes_between(signals[0].timestamp, signals[-1].timestamp)
    return _cap(max(0.0, minutes) / FATIGUE_MAX_DURATION_MINUTES * 100)


def error_burstiness(signals: Sequence[AdaptationSignal]) -> float:
    """Clusters of consecutive errors.

    Blends the longest error run (a run of 5 scores 100) with the share of
    answers that fall inside runs of two or more.
    """
    outcomes = [
        s.value >= CORRECT_RESPONSE_THRESHOLD
        for s in signals
        if s.type is SignalType.ACCURACY
    ]
    if len(outcomes) < FATIGUE_MIN_BURST_SIGNALS:
        return 0.0

    max_run = current_run = in_bursts = 0
    for correct in outcomes + [True]:
        if not correct:
            current_run += 1
            max_run = max(max_run, current_run)
            continue
        if current_run >= FATIGUE_MIN_BURST_LENGTH:
            in_bursts += current_run
        current_run = 0

    max_run_score = _cap(max_run / FATIGUE_MAX_ERROR_RUN * 100)
    frequency_score = _cap(in_bursts / len(outcomes) * 200)
    return 0.6 * max_run_score + 0.4 * frequency_score


def composite_score(components: FatigueComponents) -> float:
    """Weighted sum of the component scores."""
    return (
        FATIGUE_WEIGHTS["accuracy_decline"] * components.accuracy_decline
        + FATIGUE_WEIGHTS["response_time_increase"] * components.response_time_increase
        + FATIGUE_WEIGHTS["hint_usage_increase"] * components.hint_usage_increase
        + FATIGUE_WEIGHTS["session_duration"] * components.session_duration
        + FATIGUE_WEIGHTS["error_burstiness"] * components.error_burstiness
    )


def recommend(score: float) -> FatigueRecommendation:
    """Map a composite score to a recommendation."""
    if score > FATIGUE_END_SESSION_THRESHOLD:
        return FatigueRecommendation.END_SESSION
    if score > FATIGUE_TAKE_BREAK_THRESHOLD:
        return FatigueRecommendation.TAKE_BREAK
    if score > FATIGUE_SWITCH_TOPIC_THRESHOLD:
        return FatigueRecommendation.SWITCH_TOPIC
    if score > FATIGUE_REDUCE_DIFFICULTY_THRESHOLD:
        return FatigueRecommendation.REDUCE_DIFFICULTY
    return FatigueRecommendation.CONTINUE


def assess_fatigue(
    learner_id: str,
    session_id: str,
    signals: Sequence[AdaptationSignal],
) -> FatigueAssessment:
    """Score fatigue over a session's chronologically ordered signals."""
    components = FatigueComponents(
        accuracy_decline=accuracy_decline(signals),
        response_time_increase=response_time_increase(signals),
        hint_usage_increase=hint_usage_increase(signals),
        session_duration=session_duration(signals),
        error_burstiness=error_burstiness(signals),
    )
    overall = composite_score(components)

    return FatigueAssessment(
        learner_id=learner_id,
        session_id=session_id,
        overall_score=round(overall, 2),
        components=FatigueComponents(
            accuracy_decline=round(components.accuracy_decline, 2),
            response_time_increase=round(components.response_time_increase, 2),
            hint_usage_increase=round(components.hint_usage_increase, 2),
            session_duration=round(components.session_duration, 2),
            error_burstiness=round(components.error_burstiness, 2),
        ),
        recommendation=recommend(overall),
        signal_count=len(signals),
    )


def live_fatigue_proxy(ema_state: EMAState, total_time_minutes: float) -> float:
    """Approximate fatigue from live profile state for decision gates.

    Reuses the component weights of ``assess_fatigue`` but feeds them EMA
    proxies instead of session history, so the two scores are not
    interchangeable. Skip rate stands in for the response-time component and
    low accuracy feeds both accuracy and burstiness.
    """
    accuracy_fatigue = max(0.0, (0.5 - ema_state.accuracy) * 200)
    hint_fatigue = _cap(ema_state.hint_usage * 100)
    skip_fatigue = _cap(ema_state.skip_rate * 100)
    duration_fatigue = _cap(total_time_minutes / FATIGUE_MAX_DURATION_MINUTES * 100)

    return (
        FATIGUE_WEIGHTS["accuracy_decline"] * accuracy_fatigue
        + FATIGUE_WEIGHTS["hint_usage_increase"] * hint_fatigue
        + FATIGUE_WEIGHTS["session_duration"] * duration_fatigue
        + FATIGUE_WEIGHTS["response_time_increase"] * skip_fatigue
        + FATIGUE_WEIGHTS["error_burstiness"] * accuracy_fatigue
    )
