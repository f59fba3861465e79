"""Zone of Proximal Development calculation.

Competencies are classified by p_known:

- mastered:      p_known > 0.8
- beyond_reach:  p_known < 0.3
- zpd:           everything in between (sub-banded at 0.4 / 0.7 for advice only)

The lower bound is the strongest mastered competency, the upper bound the
weakest out-of-reach one; the optimal difficulty sits among the zpd
competencies.
"""

from statistics import fmean
from typing import Sequence

from src.modules.adaptation.interface import (
    BKTCompetencyState,
    ZPDCompetency,
    ZPDRange,
)
from src.shared.constants import (
    ZPD_BEYOND_REACH_THRESHOLD,
    ZPD_MASTERED_THRESHOLD,
    ZPD_OPTIMAL_HIGH,
    ZPD_OPTIMAL_LOW,
)
from src.shared.exceptions import NoDomainDataError
from src.shared.models import ZPDZone

MASTERED_ACTIONS = (
    "Use as scaffold for new topics",
    "Introduce extension challenges",
)
BEYOND_REACH_ACTIONS = (
    "Build prerequisite knowledge first",
    "Provide heavy scaffolding if attempted",
)
ZPD_LOW_ACTIONS = (
    "Provide moderate scaffolding",
    "Use worked examples",
)
ZPD_HIGH_ACTIONS = (
    "Reduce scaffolding",
    "Introduce independent practice",
)
ZPD_OPTIMAL_ACTIONS = (
    "Optimal challenge level - maintain",
    "Encourage productive struggle",
)


def classify_zone(p_known: float) -> ZPDZone:
    """Place a mastery probability in its zone."""
    if p_known > ZPD_MASTERED_THRESHOLD:
        return ZPDZone.MASTERED
    if p_known < ZPD_BEYOND_REACH_THRESHOLD:
        return ZPDZone.BEYOND_REACH
    return ZPDZone.ZPD


def recommended_actions(zone: ZPDZone, p_known: float) -> list[str]:
    """Fixed pedagogical advice for a zone and sub-band."""
    match zone:
        case ZPDZone.MASTERED:
            return list(MASTERED_ACTIONS)
        case ZPDZone.BEYOND_REACH:
            return list(BEYOND_REACH_ACTIONS)
        case ZPDZone.ZPD:
            if p_known < ZPD_OPTIMAL_LOW:
                return list(ZPD_LOW_ACTIONS)
            if p_known > ZPD_OPTIMAL_HIGH:
                return list(ZPD_HIGH_ACTIONS)
            return list(ZPD_OPTIMAL_ACTIONS)


def calculate_zpd(
    learner_id: str,
    competency_states: Sequence[BKTCompetencyState],
    domain: str,
) -> ZPDRange:
    """Compute the ZPD for one domain.

    Raises:
        NoDomainDataError: If the learner has no competency states in the domain
    """
    domain_states = [cs for cs in competency_states if cs.domain == domain]
    if not domain_states:
        raise NoDomainDataError(learner_id, domain)

    # Weakest first
    domain_states.sort(key=lambda cs: cs.params.p_known)

    competencies: list[ZPDCompetency] = []
    mastered: list[float] = []
    beyond_reach: list[float] = []
    in_zone: list[float] = []

    for cs in domain_states:
        p_known = cs.params.p_known
        zone = classify_zone(p_known)
        competencies.append(
            ZPDCompetency(
                competency_id=cs.competency_id,
                p_known=p_known,
                zone=zone,
                recommended_actions=recommended_actions(zone, p_known),
            )
        )
        match zone:
            case ZPDZone.MASTERED:
                mastered.append(p_known)
            case ZPDZone.BEYOND_REACH:
                beyond_reach.append(p_known)
            case ZPDZone.ZPD:
                in_zone.append(p_known)

    lower_bound = max(mastered) if mastered else 0.0
    upper_bound = min(beyond_reach) if beyond_reach else 1.0
    optimal = fmean(in_zone) if in_zone else (lower_bound + upper_bound) / 2

    return ZPDRange(
        domain=domain,
        lower_bound=lower_bound,
        upper_bound=upper_bound,
        optimal_difficulty=optimal,
        competencies=competencies,
    )
