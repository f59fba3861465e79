"""Decision-gate rule evaluation.

Rules arrive sorted ascending by priority. Each rule is scope-filtered
against the learner's current position, then its conditions are evaluated
against live signal values derived from the profile. The first satisfied
rule wins and later rules are never evaluated.
"""

from statistics import fmean
from typing import Iterable, Sequence

from src.modules.adaptation.fatigue import live_fatigue_proxy
from src.modules.adaptation.interface import (
    AdaptationProfile,
    AdaptationRule,
    DecisionGateInput,
    RuleCondition,
)
from src.shared.constants import CONDITION_EPSILON, DEFAULT_MASTERY_SIGNAL
from src.shared.exceptions import InvalidConditionError
from src.shared.models import ConditionLogic, ConditionOperator, RuleScope, SignalType


def signal_value(signal: SignalType, profile: AdaptationProfile) -> float:
    """Current value of a signal kind, derived from the profile."""
    ema = profile.ema_state
    match signal:
        case SignalType.ACCURACY:
            return ema.accuracy
        case SignalType.RESPONSE_TIME:
            return ema.response_time
        case SignalType.ENGAGEMENT:
            return ema.engagement
        case SignalType.HINT_USAGE | SignalType.HELP_SEEKING:
            return ema.hint_usage
        case SignalType.SKIP_RATE:
            return ema.skip_rate
        case SignalType.TIME_ON_TASK | SignalType.SESSION_DURATION:
            return profile.total_time_minutes
        case SignalType.RETRY_COUNT | SignalType.STREAK:
            return float(profile.session_count)
        case SignalType.ERROR_PATTERN:
            return 1 - ema.accuracy
        case SignalType.MASTERY:
            if not profile.competency_states:
                return DEFAULT_MASTERY_SIGNAL
            return fmean(cs.params.p_known for cs in profile.competency_states)
        case SignalType.FATIGUE:
            return live_fatigue_proxy(ema, profile.total_time_minutes)
    raise ValueError(f"Unsupported signal type: {signal}")


def apply_operator(
    operator: ConditionOperator,
    current: float,
    threshold: float,
    secondary: float | None = None,
) -> bool:
    """Compare a live value against a condition's threshold(s)."""
    match operator:
        case ConditionOperator.GT:
            return current > threshold
        case ConditionOperator.GTE:
            return current >= threshold
        case ConditionOperator.LT:
            return current < threshold
        case ConditionOperator.LTE:
            return current <= threshold
        case ConditionOperator.EQ:
            return abs(current - threshold) < CONDITION_EPSILON
        case ConditionOperator.NEQ:
            return abs(current - threshold) >= CONDITION_EPSILON
        case ConditionOperator.BETWEEN:
            return secondary is not None and threshold <= current <= secondary
    raise ValueError(f"Unsupported operator: {operator}")


def validate_conditions(conditions: Iterable[RuleCondition]) -> None:
    """Reject malformed conditions before a rule is stored.

    Raises:
        InvalidConditionError: If a ``between`` condition lacks ``secondary_value``
    """
    for index, condition in enumerate(conditions):
        if condition.operator is ConditionOperator.BETWEEN and condition.secondary_value is None:
            raise InvalidConditionError(index, "'between' requires secondary_value")


def evaluate_condition(condition: RuleCondition, profile: AdaptationProfile) -> bool:
    """Evaluate one condition against the profile."""
    return apply_operator(
        condition.operator,
        signal_value(condition.signal, profile),
        condition.value,
        condition.secondary_value,
    )


def evaluate_conditions(
    conditions: Sequence[RuleCondition],
    logic: ConditionLogic,
    profile: AdaptationProfile,
) -> bool:
    """Combine conditions with AND/OR. An empty list is always satisfied."""
    if not conditions:
        return True

    match logic:
        case ConditionLogic.AND:
            return all(evaluate_condition(c, profile) for c in conditions)
        case ConditionLogic.OR:
            return any(evaluate_condition(c, profile) for c in conditions)
    raise ValueError(f"Unsupported condition logic: {logic}")


def rule_in_scope(rule: AdaptationRule, gate_input: DecisionGateInput) -> bool:
    """Whether a rule applies at the learner's current position."""
    match rule.scope:
        case RuleScope.GLOBAL:
            return True
        case RuleScope.DOMAIN:
            return rule.scope_id is None or rule.scope_id == gate_input.current_domain
        case RuleScope.COMPETENCY:
            return (
                rule.scope_id is None
                or rule.scope_id == gate_input.current_competency_id
            )
    raise ValueError(f"Unsupported rule scope: {rule.scope}")


def first_triggered_rule(
    rules: Sequence[AdaptationRule],
    profile: AdaptationProfile,
    gate_input: DecisionGateInput,
) -> AdaptationRule | None:
    """Return the first in-scope rule whose conditions hold, if any."""
    for rule in rules:
        if not rule_in_scope(rule, gate_input):
            continue
        if evaluate_conditions(rule.conditions, rule.condition_logic, profile):
            return rule
    return None
