"""Unit tests for next-step scoring."""

import pytest

from src.modules.adaptation.interface import (
    AdaptationProfile,
    BKTCompetencyState,
    BKTParameters,
    CandidateStep,
)
from src.modules.adaptation.next_step import score_next_steps, score_step


@pytest.fixture
def profile():
    """Default profile with one mastered competency."""
    profile = AdaptationProfile(tenant_id="t", learner_id="l")
    profile.competency_states = [
        BKTCompetencyState(competency_id="counting", domain="math", params=BKTParameters(p_known=0.95)),
    ]
    return profile


class TestScoreStep:
    """Tests for single-candidate scoring."""

    def test_unseen_competency(self, profile):
        step = CandidateStep(step_id="s1", competency_id="fractions", difficulty=0.5, estimated_duration_minutes=10)

        scored = score_next_steps(profile, [step])[0]

        assert scored.components.mastery_gain == pytest.approx(0.0182, abs=1e-4)
        assert scored.components.engagement_probability == pytest.approx(0.75)
        assert scored.components.time_efficiency == pytest.approx(0.0182, abs=1e-4)
        assert scored.components.prerequisite_coverage == 1.0
        assert scored.components.curiosity_alignment == 0.5
        assert scored.score == pytest.approx(0.3966, abs=1e-4)
        assert scored.reasoning == "Difficulty well-matched to learner level; High engagement predicted"

    def test_zero_duration_has_no_time_efficiency(self, profile):
        step = CandidateStep(step_id="s1", competency_id="fractions", difficulty=0.5, estimated_duration_minutes=0)

        scored = score_step(step, profile, {})

        assert scored.components.time_efficiency == 0.0

    def test_prerequisite_coverage(self, profile):
        step = CandidateStep(
            step_id="s1",
            competency_id="fractions",
            difficulty=0.5,
            estimated_duration_minutes=10,
            prerequisites=("counting", "division"),
        )

        scored = score_next_steps(profile, [step])[0]

        assert scored.components.prerequisite_coverage == 0.5
        assert "Missing 1 prerequisites" in scored.reasoning

    def test_far_difficulty_lowers_engagement(self, profile):
        near = CandidateStep(step_id="near", competency_id="x", difficulty=0.5, estimated_duration_minutes=10)
        far = CandidateStep(step_id="far", competency_id="x", difficulty=1.0, estimated_duration_minutes=10)

        scored = {s.step.step_id: s for s in score_next_steps(profile, [far, near])}

        assert scored["near"].components.engagement_probability > scored["far"].components.engagement_probability


class TestRanking:
    """Tests for ordering."""

    def test_empty_candidates(self, profile):
        assert score_next_steps(profile, []) == []

    def test_sorted_best_first(self, profile):
        steps = [
            CandidateStep(step_id="mastered", competency_id="counting", difficulty=0.9, estimated_duration_minutes=30),
            CandidateStep(step_id="fresh", competency_id="fractions", difficulty=0.5, estimated_duration_minutes=5),
        ]

        ranked = score_next_steps(profile, steps)

        assert [s.step.step_id for s in ranked] == ["fresh", "mastered"]
        assert ranked[0].score >= ranked[1].score

    def test_ties_keep_input_order(self, profile):
        steps = [
            CandidateStep(step_id=f"s{i}", competency_id="fractions", difficulty=0.5, estimated_duration_minutes=10)
            for i in range(3)
        ]

        ranked = score_next_steps(profile, steps)

        assert [s.step.step_id for s in ranked] == ["s0", "s1", "s2"]

    def test_deterministic(self, profile):
        steps = [
            CandidateStep(step_id=f"s{i}", competency_id=f"c{i % 2}", difficulty=0.1 * i, estimated_duration_minutes=5 + i)
            for i in range(8)
        ]

        first = score_next_steps(profile, steps)
        second = score_next_steps(profile, steps)

        assert [(s.step.step_id, s.score) for s in first] == [(s.step.step_id, s.score) for s in second]
