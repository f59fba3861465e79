"""Unit tests for decision-gate rule evaluation."""

import pytest

from src.modules.adaptation.decision_gate import (
    apply_operator,
    evaluate_conditions,
    first_triggered_rule,
    rule_in_scope,
    signal_value,
    validate_conditions,
)
from src.modules.adaptation.interface import (
    AdaptationProfile,
    AdaptationRule,
    BKTCompetencyState,
    BKTParameters,
    DecisionGateInput,
    EMAState,
    RuleAction,
    RuleCondition,
)
from src.shared.exceptions import InvalidConditionError
from src.shared.models import (
    ConditionLogic,
    ConditionOperator,
    RuleActionType,
    RuleScope,
    SignalType,
)


def _profile(**ema) -> AdaptationProfile:
    return AdaptationProfile(tenant_id="t", learner_id="l", ema_state=EMAState(**ema))


def _rule(name: str, priority: int, conditions=(), **kwargs) -> AdaptationRule:
    return AdaptationRule(
        tenant_id="t",
        name=name,
        priority=priority,
        conditions=list(conditions),
        action=RuleAction(type=RuleActionType.SUGGEST_BREAK, parameters={"rule": name}),
        **kwargs,
    )


class TestSignalValues:
    """Tests for mapping signal kinds to live profile values."""

    def test_ema_slots(self):
        profile = _profile(accuracy=0.7, response_time=3000, engagement=0.9, hint_usage=0.2, skip_rate=0.1)

        assert signal_value(SignalType.ACCURACY, profile) == 0.7
        assert signal_value(SignalType.RESPONSE_TIME, profile) == 3000
        assert signal_value(SignalType.ENGAGEMENT, profile) == 0.9
        assert signal_value(SignalType.HINT_USAGE, profile) == 0.2
        assert signal_value(SignalType.HELP_SEEKING, profile) == 0.2
        assert signal_value(SignalType.SKIP_RATE, profile) == 0.1
        assert signal_value(SignalType.ERROR_PATTERN, profile) == pytest.approx(0.3)

    def test_profile_counters(self):
        profile = _profile()
        profile.total_time_minutes = 42
        profile.session_count = 3

        assert signal_value(SignalType.SESSION_DURATION, profile) == 42
        assert signal_value(SignalType.TIME_ON_TASK, profile) == 42
        assert signal_value(SignalType.STREAK, profile) == 3
        assert signal_value(SignalType.RETRY_COUNT, profile) == 3

    def test_mastery_is_mean_p_known(self):
        profile = _profile()
        assert signal_value(SignalType.MASTERY, profile) == 0.5

        profile.competency_states = [
            BKTCompetencyState(competency_id="a", domain="d", params=BKTParameters(p_known=0.2)),
            BKTCompetencyState(competency_id="b", domain="d", params=BKTParameters(p_known=0.6)),
        ]
        assert signal_value(SignalType.MASTERY, profile) == pytest.approx(0.4)

    def test_every_signal_type_has_a_value(self):
        profile = _profile()
        for signal in SignalType:
            assert isinstance(signal_value(signal, profile), float)


class TestOperators:
    """Tests for comparison operators."""

    @pytest.mark.parametrize(
        "operator,current,threshold,expected",
        [
            (ConditionOperator.GT, 0.6, 0.5, True),
            (ConditionOperator.GT, 0.5, 0.5, False),
            (ConditionOperator.GTE, 0.5, 0.5, True),
            (ConditionOperator.LT, 0.4, 0.5, True),
            (ConditionOperator.LTE, 0.5, 0.5, True),
            (ConditionOperator.EQ, 0.1 + 0.2, 0.3, True),
            (ConditionOperator.NEQ, 0.1 + 0.2, 0.3, False),
            (ConditionOperator.NEQ, 0.4, 0.3, True),
        ],
    )
    def test_comparisons(self, operator, current, threshold, expected):
        assert apply_operator(operator, current, threshold) is expected

    def test_between_is_inclusive(self):
        assert apply_operator(ConditionOperator.BETWEEN, 0.3, 0.3, 0.6) is True
        assert apply_operator(ConditionOperator.BETWEEN, 0.6, 0.3, 0.6) is True
        assert apply_operator(ConditionOperator.BETWEEN, 0.7, 0.3, 0.6) is False

    def test_between_without_secondary_is_false(self):
        assert apply_operator(ConditionOperator.BETWEEN, 0.3, 0.3) is False

    def test_validate_rejects_between_without_secondary(self):
        conditions = [
            RuleCondition(signal=SignalType.ACCURACY, operator=ConditionOperator.GT, value=0.5),
            RuleCondition(signal=SignalType.ACCURACY, operator=ConditionOperator.BETWEEN, value=0.5),
        ]
        with pytest.raises(InvalidConditionError) as exc_info:
            validate_conditions(conditions)

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "conditions[1]"


class TestConditionLogic:
    """Tests for AND/OR combination."""

    low_accuracy = RuleCondition(signal=SignalType.ACCURACY, operator=ConditionOperator.LT, value=0.5)
    high_hints = RuleCondition(signal=SignalType.HINT_USAGE, operator=ConditionOperator.GT, value=0.5)

    def test_empty_is_satisfied(self):
        assert evaluate_conditions([], ConditionLogic.AND, _profile()) is True
        assert evaluate_conditions([], ConditionLogic.OR, _profile()) is True

    def test_and_requires_all(self):
        profile = _profile(accuracy=0.3, hint_usage=0.1)
        assert evaluate_conditions([self.low_accuracy, self.high_hints], ConditionLogic.AND, profile) is False

    def test_or_requires_any(self):
        profile = _profile(accuracy=0.3, hint_usage=0.1)
        assert evaluate_conditions([self.low_accuracy, self.high_hints], ConditionLogic.OR, profile) is True


class TestScope:
    """Tests for scope filtering."""

    def test_global_always_applies(self):
        assert rule_in_scope(_rule("g", 1), DecisionGateInput()) is True

    def test_domain_scope(self):
        rule = _rule("d", 1, scope=RuleScope.DOMAIN, scope_id="math")
        assert rule_in_scope(rule, DecisionGateInput(current_domain="math")) is True
        assert rule_in_scope(rule, DecisionGateInput(current_domain="reading")) is False
        assert rule_in_scope(rule, DecisionGateInput()) is False

    def test_competency_scope(self):
        rule = _rule("c", 1, scope=RuleScope.COMPETENCY, scope_id="fractions")
        assert rule_in_scope(rule, DecisionGateInput(current_competency_id="fractions")) is True
        assert rule_in_scope(rule, DecisionGateInput(current_competency_id="decimals")) is False

    def test_scope_without_id_applies_everywhere(self):
        rule = _rule("d", 1, scope=RuleScope.DOMAIN)
        assert rule_in_scope(rule, DecisionGateInput(current_domain="anything")) is True


class TestFirstTriggeredRule:
    """Tests for priority-ordered evaluation."""

    def test_first_satisfied_rule_wins(self):
        rules = [_rule("first", 1), _rule("second", 2)]

        assert first_triggered_rule(rules, _profile(), DecisionGateInput()).name == "first"

    def test_skips_unsatisfied_and_out_of_scope(self):
        never = RuleCondition(signal=SignalType.ACCURACY, operator=ConditionOperator.GT, value=2)
        rules = [
            _rule("unsatisfied", 1, conditions=[never]),
            _rule("elsewhere", 2, scope=RuleScope.DOMAIN, scope_id="reading"),
            _rule("match", 3),
        ]

        result = first_triggered_rule(rules, _profile(), DecisionGateInput(current_domain="math"))

        assert result.name == "match"

    def test_no_match(self):
        never = RuleCondition(signal=SignalType.ACCURACY, operator=ConditionOperator.GT, value=2)
        assert first_triggered_rule([_rule("r", 1, conditions=[never])], _profile(), DecisionGateInput()) is None
