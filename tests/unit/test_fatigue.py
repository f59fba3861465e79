"""Unit tests for fatigue detection."""

import pytest

from src.modules.adaptation.fatigue import (
    accuracy_decline,
    assess_fatigue,
    composite_score,
    error_burstiness,
    hint_usage_increase,
    live_fatigue_proxy,
    recommend,
    response_time_increase,
    session_duration,
    session_signals,
)
from src.modules.adaptation.interface import (
    AdaptationEvent,
    EMAState,
    FatigueComponents,
    RuleAction,
)
from src.shared.models import FatigueRecommendation, RuleActionType, SignalType


def _accuracy(make_signal, values, step=1.0):
    return [make_signal(SignalType.ACCURACY, v, minutes=i * step) for i, v in enumerate(values)]


class TestComponents:
    """Tests for the individual fatigue components."""

    def test_accuracy_decline(self, make_signal):
        assert accuracy_decline(_accuracy(make_signal, [1, 1, 0.8, 0.8])) == pytest.approx(40)
        assert accuracy_decline(_accuracy(make_signal, [1, 1, 0, 0])) == 100
        assert accuracy_decline(_accuracy(make_signal, [0, 0, 1, 1])) == 0

    def test_accuracy_decline_needs_four_signals(self, make_signal):
        assert accuracy_decline(_accuracy(make_signal, [1, 1, 0])) == 0

    def test_response_time_increase(self, make_signal):
        signals = [
            make_signal(SignalType.RESPONSE_TIME, v, minutes=i)
            for i, v in enumerate([1000, 1000, 1500, 1500])
        ]
        assert response_time_increase(signals) == pytest.approx(50)

    def test_response_time_zero_baseline(self, make_signal):
        signals = [
            make_signal(SignalType.RESPONSE_TIME, v, minutes=i)
            for i, v in enumerate([0, 0, 1500, 1500])
        ]
        assert response_time_increase(signals) == 0

    def test_hint_usage_increase(self, make_signal):
        types = [
            SignalType.ACCURACY,
            SignalType.HINT_USAGE,
            SignalType.ACCURACY,
            SignalType.ACCURACY,
            SignalType.ACCURACY,
            SignalType.HINT_USAGE,
            SignalType.HINT_USAGE,
            SignalType.ACCURACY,
        ]
        signals = [make_signal(t, 1.0, minutes=i) for i, t in enumerate(types)]

        # 1/4 hints in the first half, 2/4 in the second
        assert hint_usage_increase(signals) == pytest.approx(50)

    def test_hint_usage_needs_two_hints(self, make_signal):
        types = [SignalType.ACCURACY] * 5 + [SignalType.HINT_USAGE]
        signals = [make_signal(t, 1.0, minutes=i) for i, t in enumerate(types)]
        assert hint_usage_increase(signals) == 0

    def test_session_duration(self, make_signal):
        signals = [
            make_signal(SignalType.ENGAGEMENT, 0.5, minutes=0),
            make_signal(SignalType.ENGAGEMENT, 0.5, minutes=45),
        ]
        assert session_duration(signals) == pytest.approx(50)
        assert session_duration(signals[:1]) == 0

    def test_session_duration_saturates(self, make_signal):
        signals = [
            make_signal(SignalType.ENGAGEMENT, 0.5, minutes=0),
            make_signal(SignalType.ENGAGEMENT, 0.5, minutes=200),
        ]
        assert session_duration(signals) == 100

    def test_error_burstiness(self, make_signal):
        signals = _accuracy(make_signal, [0, 0, 0, 1, 1, 1])
        # max run 3 -> 60; 3 of 6 in bursts -> 100
        assert error_burstiness(signals) == pytest.approx(76)

    def test_isolated_errors_are_not_bursts(self, make_signal):
        signals = _accuracy(make_signal, [1, 0, 1, 0])
        assert error_burstiness(signals) == pytest.approx(12)

    def test_trailing_error_run_counts(self, make_signal):
        signals = _accuracy(make_signal, [1, 1, 0, 0])
        assert error_burstiness(signals) == pytest.approx(0.6 * 40 + 0.4 * 100)

    def test_burstiness_needs_three_signals(self, make_signal):
        assert error_burstiness(_accuracy(make_signal, [0, 0])) == 0


class TestAssessment:
    """Tests for the composite assessment."""

    @pytest.mark.parametrize(
        "score,expected",
        [
            (86, FatigueRecommendation.END_SESSION),
            (85, FatigueRecommendation.TAKE_BREAK),
            (70.5, FatigueRecommendation.TAKE_BREAK),
            (70, FatigueRecommendation.SWITCH_TOPIC),
            (50.1, FatigueRecommendation.SWITCH_TOPIC),
            (31, FatigueRecommendation.REDUCE_DIFFICULTY),
            (30, FatigueRecommendation.CONTINUE),
            (0, FatigueRecommendation.CONTINUE),
        ],
    )
    def test_recommendation_thresholds(self, score, expected):
        assert recommend(score) == expected

    def test_no_signals(self):
        assessment = assess_fatigue("learner-1", "s1", [])

        assert assessment.overall_score == 0
        assert assessment.recommendation == FatigueRecommendation.CONTINUE
        assert assessment.components == FatigueComponents()
        assert assessment.signal_count == 0

    def test_declining_session(self, make_signal):
        signals = _accuracy(make_signal, [1, 1, 0, 0], step=10)

        assessment = assess_fatigue("learner-1", "s1", signals)

        assert assessment.components.accuracy_decline == 100
        assert assessment.components.session_duration == pytest.approx(33.33)
        assert assessment.components.error_burstiness == pytest.approx(64)
        assert assessment.overall_score == pytest.approx(41.4)
        assert assessment.recommendation == FatigueRecommendation.REDUCE_DIFFICULTY
        assert assessment.signal_count == 4

    def test_composite_weights(self):
        components = FatigueComponents(100, 100, 100, 100, 100)
        assert composite_score(components) == pytest.approx(100)


class TestSessionSignals:
    """Tests for reconstructing a session from the event log."""

    def test_filters_and_sorts(self, make_signal):
        late = make_signal(SignalType.ACCURACY, 1.0, minutes=5, session_id="s1")
        early = make_signal(SignalType.ACCURACY, 0.0, minutes=1, session_id="s1")
        other = make_signal(SignalType.ACCURACY, 1.0, minutes=2, session_id="s2")
        action = RuleAction(type=RuleActionType.RECORD_SIGNALS)
        events = [
            AdaptationEvent(tenant_id="t", learner_id="l", action=action, trigger_signals=[late, other]),
            AdaptationEvent(tenant_id="t", learner_id="l", action=action, trigger_signals=[early]),
        ]

        assert session_signals(events, "s1") == [early, late]

    def test_ignores_decision_gate_events(self, make_signal):
        applied = make_signal(SignalType.ACCURACY, 0.0, minutes=1, session_id="s1")
        events = [
            AdaptationEvent(
                tenant_id="t", learner_id="l",
                action=RuleAction(type=RuleActionType.RECORD_SIGNALS),
                trigger_signals=[applied],
            ),
            AdaptationEvent(
                tenant_id="t", learner_id="l",
                action=RuleAction(type=RuleActionType.SUGGEST_BREAK),
                trigger_signals=[applied],
            ),
        ]

        assert session_signals(events, "s1") == [applied]


class TestLiveFatigueProxy:
    """Tests for the EMA-based fatigue proxy used by decision gates."""

    def test_fresh_profile_is_rested(self):
        assert live_fatigue_proxy(EMAState(), 0) == 0

    def test_low_accuracy_feeds_two_components(self):
        assert live_fatigue_proxy(EMAState(accuracy=0.0), 0) == pytest.approx(40)

    def test_hints_and_duration(self):
        state = EMAState(hint_usage=0.5, skip_rate=0.2)
        # 0.20 * 50 + 0.25 * 20 + 0.15 * 50
        assert live_fatigue_proxy(state, 45) == pytest.approx(22.5)
