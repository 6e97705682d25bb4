"""
RoundTracker — the predict-then-settle loop around a coordinator.

The hosting service sees one new event per period. For each period it
opens a round (predict the next event) and, once that event is drawn,
settles it (compare, update the loss streak, credit the predictors).

Credit routing by strategy:
  CONSENSUS      every contributor, proportionally (learn_multiple)
  TOP_MODEL      the chosen predictor (learn)
  FALLBACK_BIAS  nobody; the call came from the event stream, not a predictor
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .ensemble import EnsembleCoordinator
from .logging_config import get_logger
from .types import Category, EnsembleDecision, RoundContext, Strategy

logger = get_logger(__name__)


@dataclass
class Settlement:
    """Outcome of settling one period."""

    period: str
    won: bool
    actual: Category
    strategy: Strategy
    updates: List[Any] = field(default_factory=list)


class RoundTracker:
    """Keeps pending decisions per period and the running loss streak."""

    def __init__(self, coordinator: EnsembleCoordinator, max_pending: int = 100):
        self.coordinator = coordinator
        self.max_pending = max_pending
        self.pending: Dict[str, EnsembleDecision] = {}

        self.consecutive_losses: int = 0
        self.last_prediction: Optional[Category] = None

        self.wins: int = 0
        self.losses: int = 0
        self._win_streak: int = 0
        self.max_win_streak: int = 0
        self.max_loss_streak: int = 0

    @property
    def context(self) -> RoundContext:
        return RoundContext(
            consecutive_losses=self.consecutive_losses,
            last_known_category=self.last_prediction,
        )

    def open_round(self, period, history: Sequence[Any]) -> EnsembleDecision:
        """Predict the event for `period`. Re-opening returns the stored decision."""
        period = str(period)
        if period in self.pending:
            logger.debug("round_already_open", period=period)
            return self.pending[period]

        decision = self.coordinator.predict(history, self.context)
        if decision.is_sentinel:
            return decision

        self.pending[period] = decision
        self.last_prediction = decision.category
        # Oldest periods first out
        while len(self.pending) > self.max_pending:
            stale = next(iter(self.pending))
            del self.pending[stale]
            logger.warning("round_expired_unsettled", period=stale)
        return decision

    def settle(self, period, actual) -> Optional[Settlement]:
        """Resolve `period` against the drawn category.

        Returns None when nothing is pending for the period.
        """
        period = str(period)
        actual_category = Category.parse(actual)
        if actual_category is None:
            raise ValueError(f"invalid outcome category: {actual!r}")
        decision = self.pending.pop(period, None)
        if decision is None:
            return None

        won = decision.category is actual_category
        self._record(won)

        context = self.context
        if decision.strategy is Strategy.CONSENSUS:
            updates = self.coordinator.learn_multiple(decision.contributors, won, context)
        elif decision.strategy is Strategy.TOP_MODEL and decision.chosen_predictor_id:
            result = self.coordinator.learn(decision.chosen_predictor_id, won, context)
            updates = [result] if result is not None else []
        else:
            updates = []

        logger.info(
            "round_settled",
            period=period,
            predicted=decision.category.value,
            actual=actual_category.value,
            won=won,
            strategy=decision.strategy.value,
            consecutive_losses=self.consecutive_losses,
        )
        return Settlement(period, won, actual_category, decision.strategy, updates)

    def _record(self, won: bool) -> None:
        if won:
            self.wins += 1
            self._win_streak += 1
            self.consecutive_losses = 0
            self.max_win_streak = max(self.max_win_streak, self._win_streak)
        else:
            self.losses += 1
            self._win_streak = 0
            self.consecutive_losses += 1
            self.max_loss_streak = max(self.max_loss_streak, self.consecutive_losses)

    def stats(self) -> dict:
        total = self.wins + self.losses
        return {
            "total": total,
            "wins": self.wins,
            "losses": self.losses,
            "accuracy_percent": round(self.wins / total * 100, 2) if total else 0.0,
            "consecutive_losses": self.consecutive_losses,
            "max_win_streak": self.max_win_streak,
            "max_loss_streak": self.max_loss_streak,
            "pending": len(self.pending),
        }
