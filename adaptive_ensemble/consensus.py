"""
Consensus analysis over one round of predictor votes.

Three questions, each answered by a small pure function:
  - AGREEMENT: how many predictors voted for the majority category?
  - OVERLAP: do the votes cite the same pattern evidence?
  - RELIABILITY: is this predictor both accurate and currently trusted?

Plus the confidence used when the coordinator takes the consensus path.
"""

import math
from typing import Dict, List, NamedTuple, Sequence, Tuple

import numpy as np

from .predictor import Predictor
from .types import Category, PredictionSignal


class ScoredVote(NamedTuple):
    """One predictor's signal for a round with its ranking score."""

    predictor: Predictor
    signal: PredictionSignal
    score: float
    weight: float  # weight observed when the score was taken
    ema_accuracy: float


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives, like the tuned thresholds expect."""
    return int(math.floor(value + 0.5))


def agreement(votes: Sequence[ScoredVote]) -> Tuple[float, Category]:
    """Fraction voting with the majority, and the majority category.

    BIG is the majority only with a strict majority of BIG votes.
    """
    total = len(votes)
    if total == 0:
        return 0.0, Category.UNKNOWN
    big = sum(1 for v in votes if v.signal.category is Category.BIG)
    strength = max(big, total - big) / total
    majority = Category.BIG if big > total / 2 else Category.SMALL
    return strength, majority


def pattern_overlap(votes: Sequence[ScoredVote]) -> Tuple[float, List[str]]:
    """1 - distinct/total over all pattern tags; 0.0 when nobody cites any.

    Returns (overlap, distinct tags in first-seen order).
    """
    all_tags = [tag for v in votes for tag in v.signal.pattern_tags]
    distinct = list(dict.fromkeys(all_tags))
    if not all_tags:
        return 0.0, distinct
    return 1.0 - len(distinct) / len(all_tags), distinct


def reliability(weight: float, ema_accuracy: float) -> float:
    """clamp(weight * ema_accuracy * 2, 0, 1)."""
    return min(1.0, max(0.0, weight * ema_accuracy * 2))


def reliability_map(votes: Sequence[ScoredVote]) -> Dict[str, float]:
    return {v.predictor.id: reliability(v.weight, v.ema_accuracy) for v in votes}


def enhanced_confidence(
    votes: Sequence[ScoredVote],
    agreement_score: float,
    overlap_score: float,
    reliabilities: Dict[str, float],
    enhancement_cap: float = 1.3,
    confidence_cap: float = 92,
) -> int:
    """Reliability-discounted mean confidence, boosted by agreement and overlap.

    base   = sum(confidence * reliability) / n
    factor = min(enhancement_cap, 1 + agreement*0.2 + overlap*0.1)
    result = min(confidence_cap, round(base * factor))

    Unreliable predictors pull the base down; they are not renormalized away.
    """
    if not votes:
        return 0
    confidences = np.array([v.signal.confidence for v in votes], dtype=float)
    rel = np.array([reliabilities.get(v.predictor.id, 1.0) for v in votes], dtype=float)
    base = float(np.sum(confidences * rel) / len(votes))

    factor = min(enhancement_cap, 1 + agreement_score * 0.2 + overlap_score * 0.1)
    return min(round_half_up(confidence_cap), round_half_up(base * factor))
