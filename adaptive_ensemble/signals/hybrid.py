"""
Hybrid provider: four sub-models voted together, then discounted by how
random the recent sequence looks.

  pattern    streak / alternation / mirror / imbalance over the last 20
  magnitude  hottest drawn number over the last 30
  intervals  irregular draw timing flags a manipulation risk
  windows    short and long window bias, momentum and run structure
"""

from typing import Dict, Optional, Sequence

import numpy as np

from ..types import Category, Event, PredictionSignal, RoundContext
from . import helpers

LOGIC_ID = "FLONZA_V4_ENHANCED"

# Draw interval limits, in seconds
MAX_INTERVAL_STD = 8.0
MAX_INTERVAL = 120.0


def pattern_model(history: Sequence[Event]) -> Dict:
    recent = history[:20]
    head, length = helpers.current_streak(recent)
    if length >= 3:
        return {
            "prediction": head.opposite,
            "confidence": min(90, 70 + length * 3),
            "patterns": [f"Streak_{length}"],
        }
    if len(recent) >= 4 and helpers.is_alternating(recent):
        return {"prediction": head.opposite, "confidence": 82, "patterns": ["Alternating"]}
    if (
        len(recent) >= 4
        and recent[0].category is recent[2].category
        and recent[1].category is recent[3].category
    ):
        return {
            "prediction": recent[1].category.opposite,
            "confidence": 78,
            "patterns": ["Mirror"],
        }
    ratio = helpers.big_ratio(recent)
    imbalance = abs(2 * ratio - 1)
    if imbalance > 0.3:
        majority = Category.BIG if ratio > 0.5 else Category.SMALL
        return {
            "prediction": majority.opposite,
            "confidence": 70 + imbalance * 30,
            "patterns": [f"Bias_{majority.value}"],
        }
    return {"prediction": Category.BIG, "confidence": 60, "patterns": ["No_clear_pattern"]}


def magnitude_model(history: Sequence[Event]) -> Dict:
    numbers = [e.magnitude for e in history[:30] if e.magnitude is not None]
    if not numbers:
        return {"prediction": Category.BIG, "confidence": 62, "patterns": ["Neutral_numbers"]}
    hot = int(np.argmax(np.bincount(numbers, minlength=10)))
    if hot >= 5:
        return {"prediction": Category.BIG, "confidence": 75, "patterns": [f"Hot_BIG_{hot}"]}
    return {"prediction": Category.SMALL, "confidence": 75, "patterns": [f"Hot_SMALL_{hot}"]}


def interval_model(history: Sequence[Event]) -> Dict:
    gaps = helpers.intervals(history[:50])
    if gaps.size == 0:
        return {"is_manipulated": False, "risk": 0.1}
    manipulated = bool(gaps.std() > MAX_INTERVAL_STD or np.any(gaps > MAX_INTERVAL))
    return {"is_manipulated": manipulated, "risk": 0.9 if manipulated else 0.1}


def window_model(history: Sequence[Event]) -> Dict:
    recent = history[:15]
    extended = history[:30]
    if not recent:
        return {"prediction": Category.BIG, "confidence": 60, "patterns": ["no_data"]}

    short = helpers.window_bias(recent)
    long = helpers.window_bias(extended)
    streak = helpers.streak_strength(recent)
    alternation = helpers.alternation_strength(recent)
    structure = streak if streak["strength"] >= alternation["strength"] else alternation
    trend = helpers.momentum(history)
    stability = helpers.market_stability(extended)["stability"]

    combined = helpers.weighted_vote(
        {
            "short": (short["prediction"], short["confidence"]),
            "long": (long["prediction"], long["confidence"]),
            "pattern": (structure["prediction"], structure["strength"]),
            "trend": (trend["prediction"], trend["confidence"] * helpers.trend_consistency(extended)),
        },
        {"short": 0.3, "long": 0.2, "pattern": 0.2, "trend": 0.1},
    )
    base = min(92.0, 70 + combined["strength"] * 25)
    patterns = ["Neural_Trend"]
    cycle = helpers.cycle_length(extended)
    if cycle["is_cyclical"]:
        patterns.append(f"Cycle_{cycle['length']}")
    return {
        "prediction": combined["prediction"],
        "confidence": max(70.0, min(92.0, base * stability)),
        "patterns": patterns,
    }


def hybrid_signal(
    history: Sequence[Event], context: Optional[RoundContext] = None
) -> PredictionSignal:
    if len(history) < 10:
        return PredictionSignal(Category.BIG, 55, ("insufficient_data",), "fallback")

    voters = {
        "pattern": pattern_model(history),
        "magnitude": magnitude_model(history),
        "windows": window_model(history),
    }
    anomaly = interval_model(history)

    totals = {Category.BIG: 0.0, Category.SMALL: 0.0}
    for result in voters.values():
        totals[result["prediction"]] += result["confidence"] / 100
    total_weight = sum(totals.values())
    final = Category.BIG if totals[Category.BIG] > totals[Category.SMALL] else Category.SMALL
    avg_confidence = min(90.0, max(65.0, totals[final] / total_weight * 100))

    randomness = helpers.runs_randomness(history)
    pattern_strength = voters["pattern"]["confidence"] / 100
    anomaly_factor = 0.5 if anomaly["is_manipulated"] else 1.0
    stability = (pattern_strength + (1 - randomness) + anomaly_factor) / 3
    confidence = max(65, int(np.floor(avg_confidence * stability + 0.5)))

    tags = voters["pattern"]["patterns"] + voters["magnitude"]["patterns"]
    if anomaly["is_manipulated"]:
        tags.append("manipulation_risk")
    return PredictionSignal(final, confidence, tuple(tags), LOGIC_ID)
