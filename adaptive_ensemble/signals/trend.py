"""
Trend provider: a bank of short-horizon pattern checks.

Each check that fires adds a candidate (category, confidence, logic id) and
a pattern tag. The most confident candidate is the provider's vote; every
tag that fired travels with it.

Logic ids identify which check produced the vote:
  1 streak, 3 alternation, 4/12 default, 5 triple, 6 mirror,
  8 weighted probability, 19 network, 22 loss recovery,
  25 fibonacci, 28 learned rules
"""

from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from ..types import Category, Event, PredictionSignal, RoundContext
from . import helpers


class Candidate(NamedTuple):
    category: Category
    confidence: float
    logic: int


FIB_LEVELS = np.array([0, 0.236, 0.382, 0.5, 0.618, 0.786, 1])


def network_signal(history: Sequence[Event]) -> PredictionSignal:
    """Weighted blend of streak, alternation, distribution and timing checks."""
    patterns = {
        "streaks": helpers.streak_strength(history),
        "alternations": helpers.alternation_strength(history),
        "distribution": helpers.distribution_strength(history),
        "timing": helpers.timing_stability(history),
    }
    weights = {
        "streaks": min(1.0, patterns["streaks"]["strength"] * 1.2),
        "alternations": patterns["alternations"]["strength"] * 0.8,
        "distribution": patterns["distribution"]["strength"] * 0.6,
        "timing": patterns["timing"]["strength"] * 0.4,
    }

    prediction, best = Category.BIG, 0.0
    for name, data in patterns.items():
        weighted = data["strength"] * weights[name]
        if data["prediction"] is not None and weighted > best:
            prediction, best = data["prediction"], weighted

    avg_strength = float(np.mean([p["strength"] for p in patterns.values()]))
    base = 70 + avg_strength * 25
    market = max(
        0.7,
        1 - max(helpers.volatility(history), helpers.interval_anomaly(history)),
    )
    confidence = max(70.0, min(92.0, base * market))
    tags = [f"Strong_{name}" for name, p in patterns.items() if p["strength"] > 0.7]
    return PredictionSignal(prediction, confidence, tuple(tags), 19)


def fibonacci_signal(history: Sequence[Event]) -> PredictionSignal:
    """Snap the BIG ratio to the nearest retracement level and fade it."""
    if not history:
        return PredictionSignal(Category.BIG, 50, (), 25)
    ratio = helpers.big_ratio(history)
    level = FIB_LEVELS[int(np.argmin(np.abs(FIB_LEVELS - ratio)))]
    if level >= 0.618:
        return PredictionSignal(Category.SMALL, 75, (), 25)
    if 0 < level <= 0.382:
        return PredictionSignal(Category.BIG, 75, (), 25)
    return PredictionSignal(history[0].category.opposite, 70, (), 25)


def learned_signal(history: Sequence[Event]) -> PredictionSignal:
    """Fixed rule cascade: streak, alternation, then imbalance."""
    if not history:
        return PredictionSignal(Category.BIG, 50, (), 28)
    head, length = helpers.current_streak(history)
    ratio = helpers.big_ratio(history)
    if length >= 3:
        return PredictionSignal(head.opposite, 85, (), 28)
    if helpers.is_alternating(history):
        return PredictionSignal(head.opposite, 80, (), 28)
    if ratio > 0.6:
        return PredictionSignal(Category.SMALL, 78, (), 28)
    if ratio < 0.4:
        return PredictionSignal(Category.BIG, 78, (), 28)
    return PredictionSignal(
        Category.SMALL if ratio > 0.5 else Category.BIG, 75, (), 28
    )


def trend_signal(
    history: Sequence[Event], context: Optional[RoundContext] = None
) -> PredictionSignal:
    """Run every check and return the most confident one."""
    if len(history) < 3:
        return PredictionSignal(Category.BIG, 60, ("fallback",), 8)
    context = context or RoundContext()

    tags: List[str] = []
    candidates: List[Candidate] = []
    head, length = helpers.current_streak(history)

    if length >= 3:
        tags.append(f"Streak of {length}")
        candidates.append(Candidate(head.opposite, min(90, 70 + length * 5), 1))

    if len(history) >= 4 and helpers.is_alternating(history):
        tags.append("Alternating pattern")
        candidates.append(Candidate(head.opposite, 80, 3))

    if len(history) >= 5 and length >= 3:
        tags.append("Triple pattern")
        candidates.append(Candidate(head.opposite, 85, 5))

    lookback = min(30, len(history))
    long_pct = helpers.big_ratio(history[:lookback]) * 100
    short_pct = helpers.big_ratio(history[:10]) * 100
    if abs(long_pct - 50) > 15 and abs(short_pct - long_pct) < 20:
        tags.append("Stable weighted probability")
        candidates.append(
            Candidate(
                Category.SMALL if long_pct > 50 else Category.BIG,
                min(85, abs(long_pct - 50) + 35),
                8,
            )
        )

    if context.consecutive_losses >= 2 and context.last_known_category is not None:
        tags.append("Loss recovery")
        candidates.append(
            Candidate(
                context.last_known_category.opposite,
                min(100, 75 + context.consecutive_losses * 5),
                22,
            )
        )

    if (
        len(history) >= 4
        and history[0].category is history[2].category
        and history[1].category is history[3].category
    ):
        tags.append("Mirror pattern")
        candidates.append(Candidate(history[1].category.opposite, 75, 6))

    if len(history) >= 8:
        for label, scorer, threshold in (
            ("AI detected", network_signal, 70),
            ("Fibonacci pattern", fibonacci_signal, 65),
        ):
            sub = scorer(history)
            if sub.confidence > threshold:
                tags.append(label)
                candidates.append(
                    Candidate(sub.category, sub.confidence, sub.source_logic_id)
                )

    if len(history) >= 10:
        sub = learned_signal(history)
        if sub.confidence > 75:
            tags.append("ML detected")
            candidates.append(Candidate(sub.category, sub.confidence, 28))

    if not candidates:
        if history[0].category is history[1].category:
            candidates.append(Candidate(head.opposite, 65, 4))
        else:
            candidates.append(Candidate(head.opposite, 60, 12))

    # First candidate wins ties
    best = candidates[0]
    for candidate in candidates[1:]:
        if candidate.confidence > best.confidence:
            best = candidate
    return PredictionSignal(best.category, best.confidence, tuple(tags), best.logic)
