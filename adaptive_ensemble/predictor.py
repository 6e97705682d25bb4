"""
The Predictor — one heuristic strategy plus its learned trust.

A predictor is NOT the heuristic itself. It wraps an opaque signal provider
(a function of history -> signal) and owns the state the ensemble learns
about that provider:
  1. weight: how much the coordinator trusts it right now
  2. wins / losses: lifetime counters
  3. ema_accuracy: smoothed long-run win rate
  4. outcome_history: last `lookback` outcomes, for diagnostics

predict() is read-only and never raises. learn() is the only mutator and
applies its update atomically under the predictor's lock.
"""

import threading
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from .config import PredictorConfig
from .errors import SignalValidationError
from .logging_config import get_logger
from .types import (
    Event,
    LearnOptions,
    LearnResult,
    PredictionSignal,
    PredictorStats,
    RoundContext,
)

logger = get_logger(__name__)

SignalProvider = Callable[[Sequence[Event], RoundContext], Any]


class Predictor:
    """A signal provider with an adaptive weight and accuracy estimate."""

    def __init__(
        self,
        predictor_id: str,
        provider: SignalProvider,
        name: Optional[str] = None,
        config: Optional[PredictorConfig] = None,
    ):
        # --- Identity ---
        self.id: str = predictor_id
        self.name: str = name or predictor_id
        self.provider = provider

        # --- Hyperparameters ---
        self.config: PredictorConfig = (config or PredictorConfig()).validate()

        # --- Learned state ---
        self.weight: float = self.config.initial_weight
        self.wins: int = 0
        self.losses: int = 0
        self.ema_accuracy: float = self.config.initial_ema_accuracy
        self.outcome_history: List[int] = []

        self._lock = threading.Lock()

    # ================================================================
    # CORE OPERATION 1: PREDICT (read-only)
    # ================================================================

    def predict(
        self, history: Sequence[Event], context: Optional[RoundContext] = None
    ) -> PredictionSignal:
        """Ask the provider for a signal and validate it.

        Any provider fault (exception or malformed output) is replaced by the
        neutral signal {BIG, 50}; the round always gets a vote from us.
        """
        context = context or RoundContext()
        try:
            raw = self.provider(tuple(history), context)
            return PredictionSignal.coerce(raw)
        except SignalValidationError as exc:
            logger.warning(
                "signal_malformed", predictor_id=self.id, error=str(exc)
            )
        except Exception as exc:
            logger.warning(
                "signal_provider_failed",
                predictor_id=self.id,
                error=str(exc),
                exc_type=type(exc).__name__,
            )
        return PredictionSignal.neutral()

    # ================================================================
    # CORE OPERATION 2: LEARN (the only mutator)
    # ================================================================

    def learn(self, was_win: bool, options: Optional[LearnOptions] = None) -> LearnResult:
        """Record one outcome and update weight and accuracy.

        The step order is fixed:
          1. push 1/0 onto outcome_history (bounded by lookback)
          2. bump wins or losses
          3. instant accuracy = wins / (wins + losses)
          4. ema_accuracy moves toward it by ema_alpha
          5. delta = (ema_accuracy - 0.5) * 0.5
          6. weight = clamp(weight * decay**lr + (1 + delta) * lr)
        """
        cfg = self.config
        lr = (options or LearnOptions()).rate
        with self._lock:
            self.outcome_history.append(1 if was_win else 0)
            if len(self.outcome_history) > cfg.lookback:
                self.outcome_history.pop(0)

            if was_win:
                self.wins += 1
            else:
                self.losses += 1

            instant_accuracy = self.wins / (self.wins + self.losses)
            self.ema_accuracy = (
                self.ema_accuracy * (1 - cfg.ema_alpha)
                + instant_accuracy * cfg.ema_alpha
            )

            advantage = self.ema_accuracy - 0.5
            delta = advantage * 0.5
            raw_weight = self.weight * cfg.decay ** lr + (1 + delta) * lr
            self.weight = min(cfg.max_weight, max(cfg.min_weight, raw_weight))

            result = LearnResult(
                wins=self.wins,
                losses=self.losses,
                weight=self.weight,
                ema_accuracy=self.ema_accuracy,
            )

        logger.debug(
            "predictor_learned",
            predictor_id=self.id,
            was_win=bool(was_win),
            lr=lr,
            **result.to_dict(),
        )
        return result

    # ================================================================
    # STATE ACCESS
    # ================================================================

    def stats(self) -> PredictorStats:
        """Consistent snapshot of the persisted fields."""
        with self._lock:
            return PredictorStats(
                id=self.id,
                name=self.name,
                weight=self.weight,
                wins=self.wins,
                losses=self.losses,
                ema_accuracy=self.ema_accuracy,
            )

    def restore(self, stats: PredictorStats) -> None:
        """Load persisted state. Values are forced back inside their bounds."""
        if stats.wins < 0 or stats.losses < 0:
            raise ValueError(f"negative counters for {stats.id}")
        cfg = self.config
        with self._lock:
            self.weight = min(cfg.max_weight, max(cfg.min_weight, float(stats.weight)))
            self.wins = int(stats.wins)
            self.losses = int(stats.losses)
            self.ema_accuracy = min(1.0, max(0.0, float(stats.ema_accuracy)))

    def recent_accuracy(self, n: Optional[int] = None) -> Optional[float]:
        """Win rate over the last n recorded outcomes (all when n is None)."""
        with self._lock:
            window = self.outcome_history[-n:] if n else list(self.outcome_history)
        if not window:
            return None
        return float(np.mean(window))

    def __repr__(self):
        return (
            f"Predictor(id={self.id}, name={self.name}, weight={self.weight:.3f}, "
            f"wins={self.wins}, losses={self.losses}, ema={self.ema_accuracy:.3f})"
        )
