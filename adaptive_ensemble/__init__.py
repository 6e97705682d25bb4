"""
adaptive_ensemble — an online-learning ensemble of BIG/SMALL predictors.

Each Predictor wraps one heuristic and learns how far to trust it.
The EnsembleCoordinator turns their votes into one decision per round and
routes the outcome back as credit.
"""

from .types import (
    Category,
    Strategy,
    Event,
    PredictionSignal,
    Contributor,
    EnsembleDecision,
    RoundContext,
    LearnOptions,
    LearnResult,
    PredictorStats,
    CreditUpdate,
    as_history,
)
from .errors import EnsembleError, ConfigError, SignalValidationError
from .config import EnsembleConfig, PredictorConfig
from .logging_config import configure_structlog, get_logger
from .predictor import Predictor
from .consensus import agreement, pattern_overlap, reliability, enhanced_confidence
from .credit import streak_learning_rate, contribution_shares, share_learning_rate
from .store import StateStore, InMemoryStore, SQLiteStore
from .ensemble import EnsembleCoordinator, build_default_ensemble
from .session import RoundTracker, Settlement

__all__ = [
    "Category",
    "Strategy",
    "Event",
    "PredictionSignal",
    "Contributor",
    "EnsembleDecision",
    "RoundContext",
    "LearnOptions",
    "LearnResult",
    "PredictorStats",
    "CreditUpdate",
    "as_history",
    "EnsembleError",
    "ConfigError",
    "SignalValidationError",
    "EnsembleConfig",
    "PredictorConfig",
    "configure_structlog",
    "get_logger",
    "Predictor",
    "agreement",
    "pattern_overlap",
    "reliability",
    "enhanced_confidence",
    "streak_learning_rate",
    "contribution_shares",
    "share_learning_rate",
    "StateStore",
    "InMemoryStore",
    "SQLiteStore",
    "EnsembleCoordinator",
    "build_default_ensemble",
    "RoundTracker",
    "Settlement",
]
