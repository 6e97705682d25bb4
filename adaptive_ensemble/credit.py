"""
Credit assignment math.

After an outcome is known the coordinator decides how hard to update each
predictor. Two rules:

  - Losing streaks speed learning up: lr = 1 + min(cap, losses * step).
  - A consensus decision splits that rate by contribution share, with a
    floor so no contributor is ignored: lr_i = lr * (floor + (1 - floor) * share_i).

These are plain functions; the coordinator applies the results.
"""

from typing import List, Sequence

from .types import Contributor


def streak_learning_rate(
    consecutive_losses: int, step: float = 0.4, max_boost: float = 3
) -> float:
    """Base learning-rate multiplier for the current losing streak."""
    return 1 + min(max_boost, max(0, consecutive_losses) * step)


def contribution_shares(contributors: Sequence[Contributor]) -> List[float]:
    """Each contributor's weight*confidence as a fraction of the total.

    A zero total is replaced by 1, so all shares are then zero.
    """
    scores = [c.weight * c.confidence for c in contributors]
    total = sum(scores) or 1
    return [s / total for s in scores]


def share_learning_rate(base_rate: float, share: float, floor: float = 0.2) -> float:
    """Scale the base rate by share, never below `floor` of it."""
    return base_rate * (floor + (1 - floor) * share)
