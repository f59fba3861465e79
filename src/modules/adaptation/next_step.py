"""Multi-factor next-step scoring.

For each candidate step:

1. mastery_gain:            expected BKT p_known increase (correct and
                            incorrect outcomes blended by EMA accuracy)
2. engagement_probability:  difficulty match and EMA engagement
3. time_efficiency:         mastery gain per minute, normalized to 0-1
4. prerequisite_coverage:   fraction of prerequisites already mastered
5. curiosity_alignment:     fixed placeholder

The composite score is a weighted sum; results are sorted best first.
"""

from typing import Sequence

from src.modules.adaptation.bkt import simulate_bkt_update
from src.modules.adaptation.interface import (
    AdaptationProfile,
    BKTParameters,
    CandidateStep,
    ScoredStep,
    StepScoreComponents,
)
from src.shared.constants import (
    CURIOSITY_ALIGNMENT_PLACEHOLDER,
    DEFAULT_P_KNOWN,
    MAX_GAIN_PER_MINUTE,
    STEP_SCORE_WEIGHTS,
    ZPD_MASTERED_THRESHOLD,
)


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def _reasoning(
    step: CandidateStep,
    mastery_gain: float,
    prerequisite_coverage: float,
    difficulty_match: float,
    engagement_probability: float,
) -> str:
    parts: list[str] = []
    if mastery_gain > 0.05:
        parts.append(f"High mastery gain potential (+{mastery_gain * 100:.1f}%)")
    if prerequisite_coverage < 1:
        missing = round((1 - prerequisite_coverage) * len(step.prerequisites))
        parts.append(f"Missing {missing} prerequisites")
    if difficulty_match > 0.8:
        parts.append("Difficulty well-matched to learner level")
    if engagement_probability > 0.7:
        parts.append("High engagement predicted")
    return "; ".join(parts) if parts else "Standard recommendation"


def score_step(
    step: CandidateStep,
    profile: AdaptationProfile,
    mastery: dict[str, float],
) -> ScoredStep:
    """Score a single candidate against the learner's current state."""
    current_p_known = mastery.get(step.competency_id, DEFAULT_P_KNOWN)
    params = BKTParameters(p_known=current_p_known)

    expected_accuracy = profile.ema_state.accuracy
    expected_p_known = (
        expected_accuracy * simulate_bkt_update(params, True)
        + (1 - expected_accuracy) * simulate_bkt_update(params, False)
    )
    mastery_gain = max(0.0, expected_p_known - current_p_known)

    difficulty_match = 1 - abs(step.difficulty - profile.current_difficulty)
    engagement_probability = (
        0.5 * _clamp_unit(difficulty_match) + 0.5 * profile.ema_state.engagement
    )

    if step.estimated_duration_minutes > 0:
        gain_per_minute = mastery_gain / step.estimated_duration_minutes
        time_efficiency = min(1.0, gain_per_minute / MAX_GAIN_PER_MINUTE)
    else:
        time_efficiency = 0.0

    if step.prerequisites:
        mastered = sum(
            1
            for prereq in step.prerequisites
            if mastery.get(prereq, 0.0) > ZPD_MASTERED_THRESHOLD
        )
        prerequisite_coverage = mastered / len(step.prerequisites)
    else:
        prerequisite_coverage = 1.0

    curiosity_alignment = CURIOSITY_ALIGNMENT_PLACEHOLDER

    score = (
        STEP_SCORE_WEIGHTS["mastery_gain"] * mastery_gain
        + STEP_SCORE_WEIGHTS["engagement_probability"] * engagement_probability
        + STEP_SCORE_WEIGHTS["time_efficiency"] * time_efficiency
        + STEP_SCORE_WEIGHTS["prerequisite_coverage"] * prerequisite_coverage
        + STEP_SCORE_WEIGHTS["curiosity_alignment"] * curiosity_alignment
    )

    return ScoredStep(
        step=step,
        score=round(score, 4),
        components=StepScoreComponents(
            mastery_gain=round(mastery_gain, 4),
            engagement_probability=round(engagement_probability, 4),
            time_efficiency=round(time_efficiency, 4),
            prerequisite_coverage=round(prerequisite_coverage, 4),
            curiosity_alignment=curiosity_alignment,
        ),
        reasoning=_reasoning(
            step,
            mastery_gain,
            prerequisite_coverage,
            difficulty_match,
            engagement_probability,
        ),
    )


def score_next_steps(
    profile: AdaptationProfile,
    candidates: Sequence[CandidateStep],
) -> list[ScoredStep]:
    """Score and rank candidates, best first. Ties keep input order."""
    if not candidates:
        return []

    mastery = {cs.competency_id: cs.params.p_known for cs in profile.competency_states}
    scored = [score_step(step, profile, mastery) for step in candidates]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored
