"""Signal processing: EMA smoothing, BKT dispatch and difficulty calibration."""

from typing import Sequence

from src.modules.adaptation.bkt import bkt_update
from src.modules.adaptation.interface import (
    AdaptationProfile,
    AdaptationSignal,
    BKTCompetencyState,
    EMAState,
)
from src.shared.constants import (
    CORRECT_RESPONSE_THRESHOLD,
    DEFAULT_COMPETENCY_DOMAIN,
    DIFFICULTY_MAX,
    DIFFICULTY_MIN,
    DIFFICULTY_STEP,
    EMA_ALPHA,
    TARGET_SUCCESS_HIGH,
    TARGET_SUCCESS_LOW,
)
from src.shared.datetime_utils import utc_now
from src.shared.models import SignalType


def ema(previous: float, value: float, alpha: float = EMA_ALPHA) -> float:
    """One exponential moving average step."""
    return alpha * value + (1 - alpha) * previous


def apply_ema_update(state: EMAState, signal: AdaptationSignal) -> None:
    """Fold a signal into its EMA slot.

    Signal types without a dedicated slot leave the EMA values unchanged.
    """
    match signal.type:
        case SignalType.ACCURACY:
            state.accuracy = ema(state.accuracy, signal.value)
        case SignalType.RESPONSE_TIME:
            state.response_time = ema(state.response_time, signal.value)
        case SignalType.ENGAGEMENT:
            state.engagement = ema(state.engagement, signal.value)
        case SignalType.HINT_USAGE:
            state.hint_usage = ema(state.hint_usage, signal.value)
        case SignalType.SKIP_RATE:
            state.skip_rate = ema(state.skip_rate, signal.value)
        case _:
            return
    state.last_updated = utc_now()


def adjust_difficulty(current_difficulty: float, ema_accuracy: float) -> float:
    """Nudge difficulty to keep accuracy in the 75-85% band.

    Returns the new difficulty, clamped to [0.1, 1.0].
    """
    new_difficulty = current_difficulty
    if ema_accuracy > TARGET_SUCCESS_HIGH:
        new_difficulty += DIFFICULTY_STEP
    elif ema_accuracy < TARGET_SUCCESS_LOW:
        new_difficulty -= DIFFICULTY_STEP

    return max(DIFFICULTY_MIN, min(DIFFICULTY_MAX, new_difficulty))


def _track_session(profile: AdaptationProfile, signal: AdaptationSignal) -> None:
    session_id = signal.context.session_id
    if session_id is not None and session_id != profile.last_session_id:
        profile.last_session_id = session_id
        profile.session_count += 1
        profile.last_session_at = signal.timestamp

    if signal.type in (SignalType.SESSION_DURATION, SignalType.TIME_ON_TASK):
        profile.total_time_minutes += max(0.0, signal.value)


def apply_signal_batch(
    profile: AdaptationProfile,
    signals: Sequence[AdaptationSignal],
) -> AdaptationProfile:
    """Apply signals in order to a working copy of the profile.

    Order matters: EMA and BKT are both recency-weighted. Difficulty is
    recalibrated once, after the whole batch.
    """
    # Latest response time per competency, attached to the next accuracy snapshot
    pending_response_times: dict[str, float] = {}

    for signal in signals:
        apply_ema_update(profile.ema_state, signal)
        _track_session(profile, signal)

        competency_id = signal.context.competency_id
        if competency_id is None:
            continue

        if signal.type is SignalType.RESPONSE_TIME:
            pending_response_times[competency_id] = signal.value
        elif signal.type is SignalType.ACCURACY:
            state = profile.get_competency(competency_id)
            if state is None:
                state = BKTCompetencyState(
                    competency_id=competency_id,
                    domain=signal.context.domain or DEFAULT_COMPETENCY_DOMAIN,
                    last_observation_at=signal.timestamp,
                )
            profile.put_competency(
                bkt_update(
                    state,
                    was_correct=signal.value >= CORRECT_RESPONSE_THRESHOLD,
                    response_time_ms=pending_response_times.pop(competency_id, None),
                    now=signal.timestamp,
                )
            )

    profile.current_difficulty = adjust_difficulty(
        profile.current_difficulty, profile.ema_state.accuracy
    )
    profile.updated_at = utc_now()
    return profile
