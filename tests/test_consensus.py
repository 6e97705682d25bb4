"""Tests for consensus analysis and credit-assignment math."""

import pytest

from adaptive_ensemble import (
    Category,
    Contributor,
    PredictionSignal,
    Predictor,
    agreement,
    contribution_shares,
    enhanced_confidence,
    pattern_overlap,
    reliability,
    share_learning_rate,
    streak_learning_rate,
)
from adaptive_ensemble.consensus import ScoredVote, reliability_map, round_half_up


def vote(pid, category="BIG", confidence=70, tags=(), weight=1.0, ema=0.5):
    signal = PredictionSignal(category, confidence, tuple(tags))
    predictor = Predictor(pid, lambda h, c: signal)
    return ScoredVote(predictor, signal, confidence * weight, weight, ema)


def contributor(pid, weight=1.0, confidence=50.0):
    return Contributor(pid, pid, weight, Category.BIG, confidence)


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(67.5) == 68
        assert round_half_up(67.49) == 67


class TestAgreement:
    def test_majority_fraction(self):
        votes = [vote("a"), vote("b"), vote("c"), vote("d", "SMALL")]
        assert agreement(votes) == (0.75, Category.BIG)

    def test_tie_goes_to_small(self):
        assert agreement([vote("a", "BIG"), vote("b", "SMALL")]) == (0.5, Category.SMALL)

    def test_unanimous_small(self):
        assert agreement([vote("a", "SMALL"), vote("b", "SMALL")]) == (1.0, Category.SMALL)

    def test_empty(self):
        assert agreement([]) == (0.0, Category.UNKNOWN)


class TestPatternOverlap:
    def test_identical_tags(self):
        overlap, tags = pattern_overlap([vote("a", tags=("x", "y")), vote("b", tags=("x", "y"))])
        assert overlap == pytest.approx(0.5)
        assert tags == ["x", "y"]

    def test_three_shared_tags(self):
        votes = [vote(pid, tags=("Streak",)) for pid in "abc"]
        overlap, tags = pattern_overlap(votes)
        assert overlap == pytest.approx(2 / 3)
        assert tags == ["Streak"]

    def test_disjoint_tags(self):
        overlap, tags = pattern_overlap([vote("a", tags=("x",)), vote("b", tags=("y",))])
        assert overlap == 0.0
        assert tags == ["x", "y"]

    def test_no_tags_is_zero(self):
        assert pattern_overlap([vote("a"), vote("b")]) == (0.0, [])


class TestReliability:
    def test_neutral_state_is_fully_reliable(self):
        assert reliability(1.0, 0.5) == 1.0

    def test_scales_with_weight(self):
        assert reliability(0.2, 0.5) == pytest.approx(0.2)

    def test_clamped(self):
        assert reliability(3.0, 0.9) == 1.0
        assert reliability(1.0, 0.0) == 0.0

    def test_map_keyed_by_predictor(self):
        rel = reliability_map([vote("a", weight=0.5, ema=0.5), vote("b")])
        assert rel == {"a": pytest.approx(0.5), "b": 1.0}


class TestEnhancedConfidence:
    def test_capped_at_consensus_cap(self):
        votes = [vote("a", confidence=80), vote("b", confidence=70)]
        # mean 75 * min(1.3, 1.25) = 93.75 -> 94 -> capped
        assert enhanced_confidence(votes, 1.0, 0.5, {"a": 1.0, "b": 1.0}) == 92

    def test_boost_below_cap(self):
        votes = [vote("a", confidence=60), vote("b", confidence=60)]
        assert enhanced_confidence(votes, 1.0, 0.5, {"a": 1.0, "b": 1.0}) == 75

    def test_unreliable_votes_discount_the_mean(self):
        votes = [vote("a", confidence=80), vote("b", confidence=40)]
        # (80*1 + 40*0.2) / 2 = 44, * 1.2 = 52.8
        assert enhanced_confidence(votes, 1.0, 0.0, {"a": 1.0, "b": 0.2}) == 53

    def test_equal_low_reliability_is_not_renormalized(self):
        votes = [vote("a", confidence=80), vote("b", confidence=80)]
        assert enhanced_confidence(votes, 1.0, 0.0, {"a": 0.5, "b": 0.5}) == 48

    def test_zero_reliability_gives_zero(self):
        votes = [vote("a", confidence=80), vote("b", confidence=40)]
        assert enhanced_confidence(votes, 1.0, 0.0, {"a": 0.0, "b": 0.0}) == 0

    def test_enhancement_cap(self):
        votes = [vote("a", confidence=50), vote("b", confidence=50)]
        result = enhanced_confidence(
            votes, 1.0, 1.0, {"a": 1.0, "b": 1.0}, enhancement_cap=1.1
        )
        assert result == 55


class TestCredit:
    def test_streak_learning_rate(self):
        assert streak_learning_rate(0) == 1
        assert streak_learning_rate(2) == pytest.approx(1.8)
        assert streak_learning_rate(7) == pytest.approx(3.8)
        assert streak_learning_rate(10) == 4

    def test_shares_sum_to_one(self):
        shares = contribution_shares(
            [contributor("a", 1.0, 80), contributor("b", 2.0, 30), contributor("c", 0.5, 60)]
        )
        assert sum(shares) == pytest.approx(1.0)
        assert shares[0] == pytest.approx(80 / 170)

    def test_zero_total_gives_zero_shares(self):
        shares = contribution_shares([contributor("a", 0.0, 80), contributor("b", 0.0, 60)])
        assert shares == [0.0, 0.0]

    def test_share_learning_rate(self):
        assert share_learning_rate(2.0, 0.5) == pytest.approx(1.2)
        assert share_learning_rate(1.0, 0.0) == pytest.approx(0.2)
        assert share_learning_rate(1.0, 1.0) == pytest.approx(1.0)
