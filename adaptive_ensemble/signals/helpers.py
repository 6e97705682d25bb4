"""
Pattern primitives shared by the signal providers.

Every function takes a most-recent-first sequence of Events and returns
plain numbers or small dicts. They are total: empty or short histories give
neutral values instead of raising.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..types import Category, Event


def big_flags(history: Sequence[Event]) -> np.ndarray:
    """1.0 for BIG, 0.0 for SMALL, most recent first."""
    return np.array([1.0 if e.is_big else 0.0 for e in history])


def big_ratio(history: Sequence[Event], default: float = 0.5) -> float:
    if not history:
        return default
    return float(big_flags(history).mean())


def current_streak(history: Sequence[Event]) -> Tuple[Optional[Category], int]:
    """Category and length of the run that ends at the most recent event."""
    if not history:
        return None, 0
    head = history[0].category
    length = 1
    for event in history[1:]:
        if event.category is not head:
            break
        length += 1
    return head, length


def run_lengths(history: Sequence[Event]) -> List[int]:
    """Lengths of consecutive same-category runs, most recent first."""
    if not history:
        return []
    runs = [1]
    for prev, event in zip(history, history[1:]):
        if event.category is prev.category:
            runs[-1] += 1
        else:
            runs.append(1)
    return runs


def is_alternating(history: Sequence[Event], span: int = 6) -> bool:
    """True when each of the first `span` events differs from its neighbour."""
    window = history[:span]
    return all(a.category is not b.category for a, b in zip(window, window[1:]))


def streak_strength(history: Sequence[Event]) -> Dict:
    """Longest run seen, scaled so a 10-run is full strength.

    The vote is against the current run.
    """
    runs = run_lengths(history)
    head, _ = current_streak(history)
    strength = min(1.0, max(runs) / 10) if runs else 0.0
    return {
        "strength": strength,
        "prediction": head.opposite if head else None,
    }


def alternation_strength(history: Sequence[Event]) -> Dict:
    """How often the sequence flips back to the value two steps earlier."""
    n = len(history)
    if n < 3:
        return {"strength": 0.0, "prediction": None}
    perfect = sum(
        1
        for i in range(2, n)
        if history[i].category is not history[i - 1].category
        and history[i].category is history[i - 2].category
    )
    return {
        "strength": perfect / (n - 2),
        "prediction": history[0].category.opposite,
    }


def distribution_strength(history: Sequence[Event]) -> Dict:
    """Balance of the window: 1.0 perfectly even, 0.0 all one side.

    The vote goes to the under-represented side.
    """
    if not history:
        return {"ratio": 0.5, "bias": 0.0, "strength": 0.0, "prediction": None}
    ratio = big_ratio(history)
    bias = abs(0.5 - ratio)
    prediction = None
    if ratio != 0.5:
        prediction = Category.SMALL if ratio > 0.5 else Category.BIG
    return {
        "ratio": ratio,
        "bias": bias,
        "strength": 1 - 2 * bias,
        "prediction": prediction,
    }


def intervals(history: Sequence[Event]) -> np.ndarray:
    """Absolute seconds between neighbouring events that carry timestamps."""
    stamps = [e.timestamp for e in history if e.timestamp is not None]
    if len(stamps) < 2:
        return np.array([])
    return np.abs(np.diff(np.array(stamps, dtype=float)))


def timing_stability(history: Sequence[Event]) -> Dict:
    """1 - coefficient of variation of the draw intervals, floored at 0."""
    gaps = intervals(history)
    if gaps.size == 0 or gaps.mean() <= 0:
        return {"strength": 0.0, "prediction": None}
    stability = 1 - min(1.0, float(gaps.std() / gaps.mean()))
    return {"strength": stability, "prediction": None}


def volatility(history: Sequence[Event]) -> float:
    """Fraction of neighbouring pairs that change category."""
    flags = big_flags(history)
    if flags.size < 2:
        return 0.0
    return float(np.mean(flags[1:] != flags[:-1]))


def interval_anomaly(history: Sequence[Event], tolerance: float = 0.5) -> float:
    """Fraction of intervals further than tolerance*mean from the mean."""
    gaps = intervals(history)
    if gaps.size == 0 or gaps.mean() <= 0:
        return 0.0
    avg = gaps.mean()
    return float(np.mean(np.abs(gaps - avg) > avg * tolerance))


def trend_consistency(history: Sequence[Event], windows=(5, 10, 15, 20)) -> float:
    """1 - mean change of BIG ratio between nested windows."""
    ratios = [big_ratio(history[:w]) for w in windows]
    return 1 - float(np.mean(np.abs(np.diff(ratios))))


def window_bias(history: Sequence[Event], size: int = 15) -> Dict:
    """Majority of the last `size` events and how lopsided it is."""
    window = history[:size]
    if not window:
        return {"prediction": Category.BIG, "confidence": 0.5, "bias": 0.5}
    ratio = big_ratio(window)
    return {
        "prediction": Category.BIG if ratio > 0.5 else Category.SMALL,
        "confidence": abs(ratio - 0.5),
        "bias": ratio,
    }


def momentum(history: Sequence[Event]) -> Dict:
    """BIG ratio of the last 10 events minus that of the 10 before."""
    change = big_ratio(history[:10]) - big_ratio(history[10:20])
    return {
        "momentum": change,
        "prediction": Category.BIG if change > 0 else Category.SMALL,
        "confidence": abs(change),
    }


def market_stability(history: Sequence[Event]) -> Dict:
    factor = 1 - max(volatility(history), interval_anomaly(history))
    factor = min(1.0, max(0.0, factor))
    return {"stability": factor, "is_stable": factor > 0.5}


def cycle_length(history: Sequence[Event]) -> Dict:
    """Average run length; near-integer averages count as cyclical."""
    runs = run_lengths(history)
    if not runs:
        return {"is_cyclical": False, "length": 0, "strength": 0.0}
    avg = float(np.mean(runs))
    cyclical = abs(avg - round(avg)) < 0.25
    return {
        "is_cyclical": cyclical,
        "length": int(round(avg)),
        "strength": 0.8 if cyclical else 0.2,
    }


def runs_randomness(history: Sequence[Event], limit: int = 50) -> float:
    """Wald-Wolfowitz runs test as a score: 1.0 looks random, 0.0 does not.

    Fewer than 10 events gives 0.5.
    """
    flags = big_flags(history[:limit])
    if flags.size < 10:
        return 0.5
    runs = 1 + int(np.sum(flags[1:] != flags[:-1]))
    n1 = float(flags.sum())
    n2 = flags.size - n1
    if n1 == 0 or n2 == 0:
        return 0.0
    expected = 2 * n1 * n2 / (n1 + n2) + 1
    variance = (2 * n1 * n2 * (2 * n1 * n2 - n1 - n2)) / (
        (n1 + n2) ** 2 * (n1 + n2 - 1)
    )
    if variance <= 0:
        return 0.0
    z = abs(runs - expected) / np.sqrt(variance)
    return float(max(0.0, 1 - z / 3))


def weighted_vote(votes: Dict[str, Tuple[Optional[Category], float]], weights: Dict[str, float]) -> Dict:
    """Combine (category, strength) votes with per-name weights.

    Returns the winning category and the normalized margin.
    """
    big = small = total = 0.0
    for name, (category, strength) in votes.items():
        w = weights.get(name, 0.1)
        total += w
        if category is Category.BIG:
            big += w * strength
        elif category is Category.SMALL:
            small += w * strength
    if total == 0:
        return {"prediction": Category.BIG, "strength": 0.0}
    big, small = big / total, small / total
    return {
        "prediction": Category.BIG if big > small else Category.SMALL,
        "strength": abs(big - small),
    }
