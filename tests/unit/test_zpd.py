"""Unit tests for ZPD calculation."""

import pytest

from src.modules.adaptation.interface import BKTCompetencyState, BKTParameters
from src.modules.adaptation.zpd import (
    BEYOND_REACH_ACTIONS,
    MASTERED_ACTIONS,
    ZPD_HIGH_ACTIONS,
    ZPD_LOW_ACTIONS,
    ZPD_OPTIMAL_ACTIONS,
    calculate_zpd,
    classify_zone,
    recommended_actions,
)
from src.shared.exceptions import NoDomainDataError
from src.shared.models import ZPDZone


def _state(competency_id: str, p_known: float, domain: str = "math") -> BKTCompetencyState:
    return BKTCompetencyState(
        competency_id=competency_id,
        domain=domain,
        params=BKTParameters(p_known=p_known),
    )


class TestClassification:
    """Tests for zone thresholds and advice."""

    @pytest.mark.parametrize(
        "p_known,zone",
        [
            (0.81, ZPDZone.MASTERED),
            (0.8, ZPDZone.ZPD),
            (0.3, ZPDZone.ZPD),
            (0.29, ZPDZone.BEYOND_REACH),
        ],
    )
    def test_thresholds(self, p_known, zone):
        assert classify_zone(p_known) == zone

    def test_zpd_sub_bands(self):
        assert recommended_actions(ZPDZone.ZPD, 0.35) == list(ZPD_LOW_ACTIONS)
        assert recommended_actions(ZPDZone.ZPD, 0.55) == list(ZPD_OPTIMAL_ACTIONS)
        assert recommended_actions(ZPDZone.ZPD, 0.75) == list(ZPD_HIGH_ACTIONS)


class TestCalculateZPD:
    """Tests for domain ZPD ranges."""

    def test_three_zones(self):
        states = [_state("a", 0.85), _state("b", 0.55), _state("c", 0.25)]

        result = calculate_zpd("learner-1", states, "math")

        zones = {c.competency_id: c.zone for c in result.competencies}
        assert zones == {
            "a": ZPDZone.MASTERED,
            "b": ZPDZone.ZPD,
            "c": ZPDZone.BEYOND_REACH,
        }
        assert result.lower_bound == 0.85
        assert result.upper_bound == 0.25
        assert result.optimal_difficulty == pytest.approx(0.55)

    def test_weakest_first(self):
        states = [_state("a", 0.85), _state("b", 0.55), _state("c", 0.25)]

        result = calculate_zpd("learner-1", states, "math")

        assert [c.competency_id for c in result.competencies] == ["c", "b", "a"]
        assert result.competencies[0].recommended_actions == list(BEYOND_REACH_ACTIONS)
        assert result.competencies[2].recommended_actions == list(MASTERED_ACTIONS)

    def test_other_domains_ignored(self):
        states = [_state("a", 0.5), _state("b", 0.9, domain="reading")]

        result = calculate_zpd("learner-1", states, "math")

        assert [c.competency_id for c in result.competencies] == ["a"]
        assert result.lower_bound == 0.0
        assert result.upper_bound == 1.0

    def test_no_zpd_competencies_uses_midpoint(self):
        states = [_state("a", 0.9), _state("b", 0.1)]

        result = calculate_zpd("learner-1", states, "math")

        assert result.optimal_difficulty == pytest.approx(0.5)

    def test_empty_domain_raises(self):
        with pytest.raises(NoDomainDataError) as exc_info:
            calculate_zpd("learner-1", [_state("a", 0.5)], "science")

        assert exc_info.value.code == "NO_DATA"
