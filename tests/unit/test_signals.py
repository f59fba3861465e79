"""Unit tests for EMA smoothing, batch application and difficulty."""

import pytest

from src.modules.adaptation.interface import AdaptationProfile, EMAState
from src.modules.adaptation.signals import (
    adjust_difficulty,
    apply_ema_update,
    apply_signal_batch,
    ema,
)
from src.shared.models import SignalType


class TestEMA:
    """Tests for exponential moving average."""

    def test_single_step(self):
        assert ema(0.5, 1.0) == pytest.approx(0.65)

    def test_converges_monotonically(self):
        value = 0.5
        previous_gap = 0.5
        for _ in range(50):
            value = ema(value, 1.0)
            gap = 1.0 - value
            assert 0 <= gap < previous_gap
            previous_gap = gap

    def test_slot_update(self, make_signal):
        state = EMAState()
        apply_ema_update(state, make_signal(SignalType.ACCURACY, 1.0))
        apply_ema_update(state, make_signal(SignalType.RESPONSE_TIME, 2000))
        apply_ema_update(state, make_signal(SignalType.HINT_USAGE, 1.0))

        assert state.accuracy == pytest.approx(0.65)
        assert state.response_time == pytest.approx(0.3 * 2000 + 0.7 * 5000)
        assert state.hint_usage == pytest.approx(0.3)
        assert state.engagement == 0.5
        assert state.skip_rate == 0.0

    def test_non_ema_signal_leaves_state_unchanged(self, make_signal):
        state = EMAState()
        before = state.last_updated
        apply_ema_update(state, make_signal(SignalType.STREAK, 7))
        apply_ema_update(state, make_signal(SignalType.FATIGUE, 80))

        assert state == EMAState(last_updated=before)


class TestDifficulty:
    """Tests for the difficulty rule."""

    def test_high_accuracy_raises(self):
        assert adjust_difficulty(0.5, 0.90) == pytest.approx(0.55)

    def test_low_accuracy_lowers(self):
        assert adjust_difficulty(0.5, 0.60) == pytest.approx(0.45)

    def test_in_band_unchanged(self):
        assert adjust_difficulty(0.5, 0.80) == 0.5
        assert adjust_difficulty(0.5, 0.85) == 0.5
        assert adjust_difficulty(0.5, 0.75) == 0.5

    def test_clamped(self):
        assert adjust_difficulty(1.0, 0.99) == 1.0
        assert adjust_difficulty(0.1, 0.0) == 0.1


class TestApplySignalBatch:
    """Tests for ordered batch application."""

    def test_accuracy_with_competency_runs_bkt(self, make_signal):
        profile = AdaptationProfile(tenant_id="t", learner_id="l")

        apply_signal_batch(profile, [
            make_signal(SignalType.RESPONSE_TIME, 4200, competency_id="fractions", domain="math"),
            make_signal(SignalType.ACCURACY, 1.0, minutes=1, competency_id="fractions", domain="math"),
        ])

        state = profile.get_competency("fractions")
        assert state is not None
        assert state.domain == "math"
        assert state.observations == 1
        assert state.params.p_known == pytest.approx(0.836364, abs=1e-6)
        assert state.mastery_history[0].response_time_ms == 4200

    def test_accuracy_without_competency_only_updates_ema(self, make_signal):
        profile = AdaptationProfile(tenant_id="t", learner_id="l")

        apply_signal_batch(profile, [make_signal(SignalType.ACCURACY, 1.0)])

        assert profile.competency_states == []
        assert profile.ema_state.accuracy == pytest.approx(0.65)

    def test_missing_domain_defaults_to_general(self, make_signal):
        profile = AdaptationProfile(tenant_id="t", learner_id="l")

        apply_signal_batch(profile, [make_signal(SignalType.ACCURACY, 0.0, competency_id="c1")])

        state = profile.get_competency("c1")
        assert state.domain == "general"
        assert state.mastery_history[0].was_correct is False

    def test_order_matters(self, make_signal):
        first = AdaptationProfile(tenant_id="t", learner_id="l")
        second = AdaptationProfile(tenant_id="t", learner_id="l")
        hit = make_signal(SignalType.ACCURACY, 1.0)
        miss = make_signal(SignalType.ACCURACY, 0.0)

        apply_signal_batch(first, [hit, miss])
        apply_signal_batch(second, [miss, hit])

        assert first.ema_state.accuracy != pytest.approx(second.ema_state.accuracy)

    def test_difficulty_adjusted_once_per_batch(self, make_signal):
        profile = AdaptationProfile(tenant_id="t", learner_id="l")

        apply_signal_batch(profile, [make_signal(SignalType.ACCURACY, 1.0) for _ in range(10)])

        assert profile.ema_state.accuracy > 0.85
        assert profile.current_difficulty == pytest.approx(0.55)

    def test_session_tracking(self, make_signal):
        profile = AdaptationProfile(tenant_id="t", learner_id="l")

        apply_signal_batch(profile, [
            make_signal(SignalType.ENGAGEMENT, 0.8, session_id="s1"),
            make_signal(SignalType.SESSION_DURATION, 12, minutes=12, session_id="s1"),
            make_signal(SignalType.TIME_ON_TASK, 3, minutes=20, session_id="s2"),
        ])

        assert profile.session_count == 2
        assert profile.last_session_id == "s2"
        assert profile.total_time_minutes == pytest.approx(15)
        assert profile.last_session_at == make_signal(SignalType.TIME_ON_TASK, 3, minutes=20).timestamp
