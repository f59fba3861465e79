"""Bayesian Knowledge Tracing.

Standard BKT update equations, with prior L = P(Known):

    If correct:
        P(Known|correct) = L(1 - P(Slip)) / (L(1 - P(Slip)) + (1 - L)P(Guess))

    If incorrect:
        P(Known|incorrect) = L P(Slip) / (L P(Slip) + (1 - L)(1 - P(Guess)))

    Learning transition:
        P(Known_new) = P(Known|obs) + (1 - P(Known|obs)) P(Learn)
"""

import math
from dataclasses import replace
from datetime import datetime
from typing import Sequence

from src.modules.adaptation.interface import (
    BKTCompetencyState,
    BKTParameters,
    MasteryEstimate,
    MasterySnapshot,
)
from src.shared.constants import (
    CONFIDENCE_OBSERVATION_SCALE,
    TREND_SLOPE_THRESHOLD,
    TREND_WINDOW,
)
from src.shared.datetime_utils import utc_now
from src.shared.models import MasteryTrend


def _clamp_probability(value: float) -> float:
    return max(0.0, min(1.0, value))


def posterior_p_known(params: BKTParameters, was_correct: bool) -> float:
    """P(Known | observation), before the learning transition.

    A zero denominator (degenerate parameters) leaves the prior unchanged.
    """
    p_known = params.p_known
    if was_correct:
        numerator = p_known * (1 - params.p_slip)
        denominator = numerator + (1 - p_known) * params.p_guess
    else:
        numerator = p_known * params.p_slip
        denominator = numerator + (1 - p_known) * (1 - params.p_guess)

    if denominator <= 0:
        return p_known
    return numerator / denominator


def simulate_bkt_update(params: BKTParameters, was_correct: bool) -> float:
    """Preview the p_known that one observation would produce.

    Pure: nothing is mutated and no history is recorded.
    """
    posterior = posterior_p_known(params, was_correct)
    return _clamp_probability(posterior + (1 - posterior) * params.p_learn)


def bkt_update(
    state: BKTCompetencyState,
    was_correct: bool,
    response_time_ms: float | None = None,
    now: datetime | None = None,
) -> BKTCompetencyState:
    """Apply one observation and return the updated competency state."""
    now = now or utc_now()
    p_known = simulate_bkt_update(state.params, was_correct)

    snapshot = MasterySnapshot(
        timestamp=now,
        p_known=p_known,
        was_correct=was_correct,
        response_time_ms=response_time_ms,
    )
    return replace(
        state,
        params=replace(state.params, p_known=p_known),
        observations=state.observations + 1,
        last_observation_at=now,
        mastery_history=state.mastery_history + (snapshot,),
    )


def mastery_confidence(observations: int) -> float:
    """Asymptotic confidence: 0 with no observations, approaching 1."""
    return min(1.0, 1 - math.exp(-observations / CONFIDENCE_OBSERVATION_SCALE))


def calculate_trend(history: Sequence[MasterySnapshot]) -> MasteryTrend:
    """Classify the least-squares slope of recent p_known values."""
    if len(history) < 2:
        return MasteryTrend.STABLE

    recent = list(history)[-TREND_WINDOW:]
    n = len(recent)

    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for i, snapshot in enumerate(recent):
        sum_x += i
        sum_y += snapshot.p_known
        sum_xy += i * snapshot.p_known
        sum_x2 += i * i

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return MasteryTrend.STABLE

    slope = (n * sum_xy - sum_x * sum_y) / denominator

    if slope > TREND_SLOPE_THRESHOLD:
        return MasteryTrend.IMPROVING
    if slope < -TREND_SLOPE_THRESHOLD:
        return MasteryTrend.DECLINING
    return MasteryTrend.STABLE


def estimate_mastery(state: BKTCompetencyState) -> MasteryEstimate:
    """Summarize a competency state as a mastery estimate."""
    return MasteryEstimate(
        competency_id=state.competency_id,
        domain=state.domain,
        p_known=state.params.p_known,
        confidence=mastery_confidence(state.observations),
        trend=calculate_trend(state.mastery_history),
        total_observations=state.observations,
        last_updated=state.last_observation_at,
    )


def truncate_history(state: BKTCompetencyState, limit: int) -> BKTCompetencyState:
    """Keep only the most recent ``limit`` snapshots."""
    if len(state.mastery_history) <= limit:
        return state
    if limit <= 0:
        return replace(state, mastery_history=())
    return replace(state, mastery_history=state.mastery_history[-limit:])
