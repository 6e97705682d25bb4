"""
Configuration for predictors and the ensemble coordinator.

Defaults reproduce the tuned constants of the production system. They are
empirical, so every one of them can be overridden by keyword, by mapping
(from_mapping) or by environment variable (EnsembleConfig.from_env).
"""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional

from .errors import ConfigError
from .logging_config import get_logger
from .types import split_known

logger = get_logger(__name__)


def _filter_keys(cls, data: Mapping[str, Any], strict: bool) -> dict:
    known, unknown = split_known(cls, data)
    if unknown:
        if strict:
            raise ConfigError(f"unknown {cls.__name__} keys: {', '.join(unknown)}")
        logger.info("config_keys_ignored", config=cls.__name__, keys=unknown)
    return known


@dataclass
class PredictorConfig:
    """Learning-state parameters shared by every predictor."""

    initial_weight: float = 1.0
    min_weight: float = 0.2
    max_weight: float = 3.0
    ema_alpha: float = 0.05  # smoothing factor for accuracy EMA
    initial_ema_accuracy: float = 0.5
    lookback: int = 200  # outcomes kept for diagnostics
    decay: float = 0.999  # keeps weights from running away on long streaks

    def validate(self) -> "PredictorConfig":
        if not 0 < self.min_weight <= self.max_weight:
            raise ConfigError(
                f"need 0 < min_weight <= max_weight, got {self.min_weight}/{self.max_weight}"
            )
        if not self.min_weight <= self.initial_weight <= self.max_weight:
            raise ConfigError(f"initial_weight out of bounds: {self.initial_weight}")
        if not 0 < self.ema_alpha <= 1:
            raise ConfigError(f"ema_alpha must be in (0, 1]: {self.ema_alpha}")
        if not 0 <= self.initial_ema_accuracy <= 1:
            raise ConfigError(
                f"initial_ema_accuracy must be in [0, 1]: {self.initial_ema_accuracy}"
            )
        if self.lookback < 1:
            raise ConfigError(f"lookback must be positive: {self.lookback}")
        if not 0 < self.decay <= 1:
            raise ConfigError(f"decay must be in (0, 1]: {self.decay}")
        return self

    @classmethod
    def from_mapping(
        cls, data: Optional[Mapping[str, Any]], strict: bool = False
    ) -> "PredictorConfig":
        return cls(**_filter_keys(cls, data or {}, strict)).validate()


@dataclass
class EnsembleConfig:
    """Decision-policy and credit-assignment parameters."""

    # Global floor on every emitted confidence
    min_confidence: float = 65

    # Consensus gate: both must be exceeded
    consensus_agreement: float = 0.75
    consensus_overlap: float = 0.6
    enhancement_cap: float = 1.3
    consensus_confidence_cap: float = 92

    # Top-model vs fallback
    gap_threshold: float = 15
    bias_window: int = 20
    bias_high: float = 0.6
    bias_low: float = 0.4
    fallback_floor: float = 55
    fallback_penalty: float = 10
    low_consensus_floor: float = 50
    low_consensus_penalty: float = 12

    # Credit assignment
    streak_lr_step: float = 0.4
    max_streak_boost: float = 3
    min_share_rate: float = 0.2

    predictor: PredictorConfig = field(default_factory=PredictorConfig)

    def validate(self) -> "EnsembleConfig":
        if not 0 <= self.min_confidence <= 100:
            raise ConfigError(f"min_confidence must be in [0, 100]: {self.min_confidence}")
        if not 0 <= self.bias_low <= self.bias_high <= 1:
            raise ConfigError(
                f"need 0 <= bias_low <= bias_high <= 1, got {self.bias_low}/{self.bias_high}"
            )
        if self.bias_window < 1:
            raise ConfigError(f"bias_window must be positive: {self.bias_window}")
        if self.gap_threshold < 0:
            raise ConfigError(f"gap_threshold must be >= 0: {self.gap_threshold}")
        if not 0 <= self.min_share_rate <= 1:
            raise ConfigError(f"min_share_rate must be in [0, 1]: {self.min_share_rate}")
        if self.enhancement_cap < 1:
            raise ConfigError(f"enhancement_cap must be >= 1: {self.enhancement_cap}")
        self.predictor.validate()
        return self

    @classmethod
    def from_mapping(
        cls, data: Optional[Mapping[str, Any]], strict: bool = False
    ) -> "EnsembleConfig":
        """Build from a plain dict, e.g. a parsed settings file.

        A nested "predictor" mapping configures PredictorConfig. Unknown keys
        are logged and ignored, or rejected with ConfigError when strict.
        """
        known = _filter_keys(cls, data or {}, strict)
        predictor = known.pop("predictor", None)
        if isinstance(predictor, Mapping):
            known["predictor"] = PredictorConfig.from_mapping(predictor, strict)
        elif predictor is not None:
            known["predictor"] = predictor
        return cls(**known).validate()

    @classmethod
    def from_env(
        cls, prefix: str = "ENSEMBLE_", environ: Optional[Mapping[str, str]] = None
    ) -> "EnsembleConfig":
        """Read overrides such as ENSEMBLE_MIN_CONFIDENCE=70.

        Predictor fields use the nested prefix, e.g. ENSEMBLE_PREDICTOR_DECAY.
        """
        env = os.environ if environ is None else environ

        def collect(target, pfx):
            values = {}
            for f in fields(target):
                if f.name == "predictor":
                    continue
                raw = env.get(pfx + f.name.upper())
                if raw is None:
                    continue
                caster = int if f.type in (int, "int") else float
                try:
                    values[f.name] = caster(raw)
                except ValueError:
                    raise ConfigError(f"{pfx}{f.name.upper()}={raw!r} is not a number")
            return values

        predictor = PredictorConfig(**collect(PredictorConfig, prefix + "PREDICTOR_"))
        return cls(predictor=predictor, **collect(cls, prefix)).validate()
