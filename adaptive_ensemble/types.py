"""
Shared data structures for the adaptive ensemble.

Events flow in (most-recent-first history).
PredictionSignals flow out of each predictor.
EnsembleDecisions flow out of the coordinator and come back, once the real
outcome is known, as the contributor list for credit assignment.
"""

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .errors import SignalValidationError
from .logging_config import get_logger

logger = get_logger(__name__)

LogicId = Union[str, int]


class Category(str, Enum):
    """Outcome class of one event."""

    BIG = "BIG"
    SMALL = "SMALL"
    UNKNOWN = "UNKNOWN"  # only ever used by the empty-roster decision

    @property
    def opposite(self) -> "Category":
        if self is Category.BIG:
            return Category.SMALL
        if self is Category.SMALL:
            return Category.BIG
        return Category.UNKNOWN

    @classmethod
    def parse(cls, value: Any) -> Optional["Category"]:
        """BIG/SMALL from a Category or a case-insensitive string, else None."""
        if isinstance(value, Category):
            return value if value is not Category.UNKNOWN else None
        if isinstance(value, str):
            upper = value.strip().upper()
            if upper in ("BIG", "SMALL"):
                return cls(upper)
        return None


class Strategy(str, Enum):
    """How the coordinator arrived at a decision."""

    CONSENSUS = "CONSENSUS"
    TOP_MODEL = "TOP_MODEL"
    FALLBACK_BIAS = "FALLBACK_BIAS"
    NONE = "NONE"


def split_known(cls, data: Mapping[str, Any]) -> Tuple[Dict[str, Any], list]:
    """Split a mapping into (dataclass field kwargs, sorted unknown keys)."""
    names = {f.name for f in fields(cls)}
    known = {k: v for k, v in data.items() if k in names}
    unknown = sorted(str(k) for k in data if k not in names)
    return known, unknown


@dataclass(frozen=True)
class Event:
    """One historical observation. Immutable once recorded."""

    category: Category
    magnitude: Optional[int] = None  # 0..9
    timestamp: Optional[float] = None  # epoch seconds

    def __post_init__(self):
        category = Category.parse(self.category)
        if category is None:
            raise ValueError(f"invalid event category: {self.category!r}")
        object.__setattr__(self, "category", category)
        if self.magnitude is not None:
            if isinstance(self.magnitude, bool) or not isinstance(self.magnitude, int):
                raise ValueError(f"magnitude must be an int: {self.magnitude!r}")
            if not 0 <= self.magnitude <= 9:
                raise ValueError(f"magnitude out of range: {self.magnitude}")

    @property
    def is_big(self) -> bool:
        return self.category is Category.BIG

    @classmethod
    def from_magnitude(
        cls, magnitude: int, timestamp: Optional[float] = None
    ) -> "Event":
        """Derive the category from the drawn number: 5..9 is BIG."""
        category = Category.BIG if magnitude >= 5 else Category.SMALL
        return cls(category=category, magnitude=magnitude, timestamp=timestamp)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Event":
        """Build from a feed record. Raises ValueError on malformed input."""
        raw_magnitude = data.get("magnitude", data.get("number"))
        magnitude = None
        if raw_magnitude is not None:
            magnitude = int(raw_magnitude)
        raw_category = data.get("category", data.get("resultType"))
        timestamp = data.get("timestamp", data.get("createTime"))
        if timestamp is not None:
            timestamp = float(timestamp)
        if raw_category is None and magnitude is not None:
            return cls.from_magnitude(magnitude, timestamp)
        return cls(category=raw_category, magnitude=magnitude, timestamp=timestamp)


def as_history(items: Optional[Iterable[Any]]) -> Tuple[Event, ...]:
    """Normalize a most-recent-first sequence into an immutable tuple of Events.

    Accepts Events and feed mappings. Malformed items are dropped; this
    function never raises.
    """
    if items is None:
        return ()
    try:
        iterator = iter(items)
    except TypeError:
        logger.warning("history_not_iterable", type=type(items).__name__)
        return ()

    events = []
    dropped = 0
    for item in iterator:
        if isinstance(item, Event):
            events.append(item)
            continue
        if isinstance(item, Mapping):
            try:
                events.append(Event.from_mapping(item))
                continue
            except (TypeError, ValueError):
                pass
        dropped += 1
    if dropped:
        logger.debug("history_items_dropped", dropped=dropped, kept=len(events))
    return tuple(events)


@dataclass(frozen=True)
class PredictionSignal:
    """A single predictor's vote for one round."""

    category: Category
    confidence: float  # 0..100
    pattern_tags: Tuple[str, ...] = ()
    source_logic_id: LogicId = "model"

    def __post_init__(self):
        category = Category.parse(self.category)
        if category is None:
            raise SignalValidationError(f"invalid category: {self.category!r}")
        conf = self.confidence
        if isinstance(conf, bool) or not isinstance(conf, (int, float)):
            raise SignalValidationError(f"confidence is not a number: {conf!r}")
        if not math.isfinite(conf):
            raise SignalValidationError(f"confidence is not finite: {conf!r}")
        tags = self.pattern_tags
        if isinstance(tags, str) or tags is None:
            tags = () if tags is None else (tags,)
        # De-duplicate, keep first-seen order
        unique = tuple(dict.fromkeys(str(t) for t in tags if t))
        object.__setattr__(self, "category", category)
        object.__setattr__(self, "confidence", min(100.0, max(0.0, conf)))
        object.__setattr__(self, "pattern_tags", unique)

    @classmethod
    def neutral(cls) -> "PredictionSignal":
        """The documented substitute for a failed or empty provider."""
        return cls(Category.BIG, 50, (), "neutral")

    @classmethod
    def coerce(cls, raw: Any) -> "PredictionSignal":
        """Validate provider output. Raises SignalValidationError."""
        if isinstance(raw, PredictionSignal):
            return raw
        if not isinstance(raw, Mapping):
            raise SignalValidationError(
                f"provider returned {type(raw).__name__}, expected a signal"
            )
        category = raw.get("category", raw.get("prediction"))
        tags = raw.get("pattern_tags", raw.get("patterns", ()))
        logic = raw.get("source_logic_id", raw.get("logic", "model"))
        if tags is not None and not isinstance(tags, (list, tuple, set, frozenset, str)):
            raise SignalValidationError(f"pattern tags malformed: {tags!r}")
        return cls(category, raw.get("confidence"), tuple(tags or ()), logic)

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "pattern_tags": list(self.pattern_tags),
            "source_logic_id": self.source_logic_id,
        }


@dataclass(frozen=True)
class Contributor:
    """One predictor's part in a decision, kept for credit assignment."""

    predictor_id: str
    name: str
    weight: float
    category: Category
    confidence: float
    reliability: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Contributor":
        """Lenient constructor for stored contributor rows.

        Missing weight counts as 1 and missing confidence as 50.
        """
        pid = data.get("predictor_id", data.get("id"))
        return cls(
            predictor_id=str(pid) if pid is not None else "",
            name=str(data.get("name", pid or "")),
            weight=float(data.get("weight") or 1.0),
            category=Category.parse(data.get("category", data.get("prediction")))
            or Category.UNKNOWN,
            confidence=float(data.get("confidence") or 50.0),
            reliability=data.get("reliability"),
        )

    def to_dict(self) -> dict:
        return {
            "predictor_id": self.predictor_id,
            "name": self.name,
            "weight": self.weight,
            "category": self.category.value,
            "confidence": self.confidence,
            "reliability": self.reliability,
        }


@dataclass(frozen=True)
class EnsembleDecision:
    """The coordinator's output for one round."""

    category: Category
    confidence: float
    strategy: Strategy
    pattern_tags: Tuple[str, ...] = ()
    contributors: Tuple[Contributor, ...] = ()
    chosen_predictor_id: Optional[str] = None
    logic: str = ""

    @property
    def is_sentinel(self) -> bool:
        """True for the empty-roster decision; callers must not act on it."""
        return self.category is Category.UNKNOWN

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "strategy": self.strategy.value,
            "pattern_tags": list(self.pattern_tags),
            "contributors": [c.to_dict() for c in self.contributors],
            "chosen_predictor_id": self.chosen_predictor_id,
            "logic": self.logic,
        }


@dataclass
class RoundContext:
    """Caller-side state passed to providers and to credit assignment."""

    consecutive_losses: int = 0
    last_known_category: Optional[Category] = None

    def __post_init__(self):
        self.consecutive_losses = max(0, int(self.consecutive_losses or 0))
        self.last_known_category = Category.parse(self.last_known_category)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "RoundContext":
        """Unknown keys are ignored."""
        if not data:
            return cls()
        known, unknown = split_known(cls, data)
        if unknown:
            logger.debug("context_keys_ignored", keys=unknown)
        return cls(**known)


@dataclass
class LearnOptions:
    """Options recognised by Predictor.learn."""

    learning_rate_multiplier: float = 1.0

    MIN_RATE = 0.1

    @property
    def rate(self) -> float:
        """Effective multiplier, never below MIN_RATE."""
        return max(self.MIN_RATE, float(self.learning_rate_multiplier))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "LearnOptions":
        """Unknown keys are ignored."""
        if not data:
            return cls()
        known, unknown = split_known(cls, data)
        if unknown:
            logger.debug("learn_option_keys_ignored", keys=unknown)
        return cls(**known)


@dataclass
class LearnResult:
    """Predictor state right after one learn() call."""

    wins: int
    losses: int
    weight: float
    ema_accuracy: float

    def to_dict(self) -> dict:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "weight": self.weight,
            "ema_accuracy": self.ema_accuracy,
        }


@dataclass
class PredictorStats:
    """Observable / persisted state of one predictor, keyed by id."""

    id: str
    name: str
    weight: float
    wins: int = 0
    losses: int = 0
    ema_accuracy: float = 0.5

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "wins": self.wins,
            "losses": self.losses,
            "ema_accuracy": self.ema_accuracy,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PredictorStats":
        """Accepts snake_case rows and the legacy emaAccuracy column."""
        ema = data.get("ema_accuracy", data.get("emaAccuracy", data.get("emaaccuracy")))
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            weight=float(data["weight"]),
            wins=int(data.get("wins") or 0),
            losses=int(data.get("losses") or 0),
            ema_accuracy=float(ema) if ema is not None else 0.5,
        )


@dataclass
class CreditUpdate:
    """One contributor's share of a multi-predictor learning update."""

    predictor_id: str
    share: float
    learning_rate: float
    result: LearnResult = field(repr=False, default=None)
