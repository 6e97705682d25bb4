"""Tests for the built-in signal providers and their pattern helpers."""

import numpy as np
import pytest

from adaptive_ensemble import Category, Event, PredictionSignal, RoundContext
from adaptive_ensemble.signals import (
    engine_name,
    fibonacci_signal,
    hybrid_signal,
    learned_signal,
    network_signal,
    trend_signal,
)
from adaptive_ensemble.signals import helpers
from adaptive_ensemble.signals.hybrid import interval_model, magnitude_model, pattern_model


def history(pattern, spacing=None):
    events = []
    for i, c in enumerate(pattern):
        ts = None if spacing is None else 1_700_000_000.0 - spacing * i
        events.append(Event("BIG" if c == "B" else "SMALL", timestamp=ts))
    return tuple(events)


def random_history(n, seed=0):
    rng = np.random.default_rng(seed)
    return tuple(
        Event.from_magnitude(int(m), 1_700_000_000.0 - 60 * i)
        for i, m in enumerate(rng.integers(0, 10, size=n))
    )


class TestHelpers:
    def test_current_streak(self):
        assert helpers.current_streak(history("BBBS")) == (Category.BIG, 3)
        assert helpers.current_streak(()) == (None, 0)

    def test_run_lengths(self):
        assert helpers.run_lengths(history("BBSBBB")) == [2, 1, 3]

    def test_is_alternating(self):
        assert helpers.is_alternating(history("BSBSBS"))
        assert not helpers.is_alternating(history("BSBBSB"))

    def test_volatility(self):
        assert helpers.volatility(history("BSBS")) == 1.0
        assert helpers.volatility(history("BBBB")) == 0.0
        assert helpers.volatility(history("B")) == 0.0

    def test_intervals_are_absolute_seconds(self):
        gaps = helpers.intervals(history("BSB", spacing=60))
        assert list(gaps) == [60.0, 60.0]
        assert helpers.intervals(history("BSB")).size == 0

    def test_runs_randomness(self):
        assert helpers.runs_randomness(history("BSB")) == 0.5
        assert helpers.runs_randomness(history("B" * 12)) == 0.0
        # strict alternation has far too many runs to look random
        assert helpers.runs_randomness(history("BS" * 20)) == 0.0

    def test_distribution_strength(self):
        even = helpers.distribution_strength(history("BSBS"))
        assert even["strength"] == 1.0
        assert even["prediction"] is None
        skewed = helpers.distribution_strength(history("BBBS"))
        assert skewed["prediction"] is Category.SMALL
        assert skewed["strength"] == pytest.approx(0.5)

    def test_weighted_vote(self):
        result = helpers.weighted_vote(
            {"a": (Category.BIG, 0.8), "b": (Category.SMALL, 0.2)}, {"a": 0.5, "b": 0.5}
        )
        assert result["prediction"] is Category.BIG
        assert result["strength"] == pytest.approx(0.3)


class TestTrendSignal:
    def test_short_history_fallback(self):
        signal = trend_signal(history("BS"))
        assert signal.category is Category.BIG
        assert signal.confidence == 60
        assert signal.pattern_tags == ("fallback",)

    def test_streak_fades(self):
        signal = trend_signal(history("BBBBS"))
        assert signal.category is Category.SMALL
        assert signal.confidence == 90
        assert signal.source_logic_id == 1
        assert "Streak of 4" in signal.pattern_tags
        assert "Triple pattern" in signal.pattern_tags

    def test_loss_recovery_flips_last_call(self):
        signal = trend_signal(
            history("BSB"), RoundContext(consecutive_losses=3, last_known_category="SMALL")
        )
        assert signal.category is Category.BIG
        assert signal.confidence == 90
        assert signal.source_logic_id == 22
        assert "Loss recovery" in signal.pattern_tags

    def test_network_confidence_range(self):
        for seed in range(5):
            signal = network_signal(random_history(30, seed))
            assert 70 <= signal.confidence <= 92
            assert signal.source_logic_id == 19

    def test_fibonacci_fades_imbalance(self):
        assert fibonacci_signal(history("BBBBBBBS")).category is Category.SMALL
        assert fibonacci_signal(history("SSSSSSSB")).category is Category.BIG

    def test_learned_rules(self):
        assert learned_signal(history("SSSB")).category is Category.BIG
        assert learned_signal(history("SSSB")).confidence == 85
        assert learned_signal(history("BSBSBS")).confidence == 80


class TestHybridSignal:
    def test_insufficient_data(self):
        signal = hybrid_signal(history("BSBSB"))
        assert signal.category is Category.BIG
        assert signal.confidence == 55
        assert signal.source_logic_id == "fallback"

    def test_confidence_floor(self):
        for seed in range(5):
            signal = hybrid_signal(random_history(40, seed))
            assert signal.confidence >= 65
            assert signal.source_logic_id == "FLONZA_V4_ENHANCED"

    def test_magnitude_model_hot_number(self):
        events = [Event.from_magnitude(m) for m in (7, 7, 7, 2)]
        result = magnitude_model(events)
        assert result["prediction"] is Category.BIG
        assert result["patterns"] == ["Hot_BIG_7"]

    def test_interval_model(self):
        assert not interval_model(history("BS" * 10, spacing=60))["is_manipulated"]
        # one 5-minute gap between regular draws
        stalled = [Event("BIG", timestamp=t) for t in (1000.0, 940.0, 880.0, 580.0, 520.0)]
        assert interval_model(stalled)["is_manipulated"]

    def test_pattern_model_streak(self):
        result = pattern_model(history("SSSSBB"))
        assert result["prediction"] is Category.BIG
        assert result["patterns"] == ["Streak_4"]


class TestProvidersAreTotal:
    @pytest.mark.parametrize("provider", [trend_signal, hybrid_signal])
    @pytest.mark.parametrize("n", [0, 1, 3, 8, 10, 25, 60])
    def test_any_length(self, provider, n):
        signal = provider(random_history(n, seed=n), RoundContext())
        assert isinstance(signal, PredictionSignal)
        assert signal.category in (Category.BIG, Category.SMALL)
        assert 0 <= signal.confidence <= 100

    def test_events_without_timestamps(self):
        events = tuple(Event("BIG" if i % 3 else "SMALL") for i in range(30))
        assert isinstance(trend_signal(events), PredictionSignal)
        assert isinstance(hybrid_signal(events), PredictionSignal)


class TestEngineName:
    @pytest.mark.parametrize(
        "logic, expected",
        [
            (19, "Machine Learning"),
            ("KBT:28", "Machine Learning"),
            ("KBT:25", "Fibonacci Engine"),
            ("KBT:22:low_consensus", "Loss Recovery"),
            ("KBT:1", "Pattern Bias"),
            ("AI_FLONZA:FLONZA_V4_ENHANCED", "Advanced AI"),
            ("ENHANCED_ENSEMBLE: KBT+AI_FLONZA", "Hybrid AI"),
            ("fallback-low-consensus-bias", "Bias Fallback"),
            (99, "Trend Logic"),
            (None, "Trend Logic"),
        ],
    )
    def test_labels(self, logic, expected):
        assert engine_name(logic) == expected
