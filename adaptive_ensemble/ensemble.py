"""
The EnsembleCoordinator — turns many predictor votes into one decision.

IMPORTANT: The coordinator does NOT contain heuristics.
Heuristics live inside each predictor's signal provider. The coordinator's
job is:

  1. Collect one vote per predictor and score it (confidence * weight)
  2. Decide between CONSENSUS, TOP_MODEL and FALLBACK_BIAS
  3. Enforce the global confidence floor
  4. Route outcome credit back to one or many predictors (learn)
  5. Hand updated predictor rows to the optional store

Rounds and learning updates are serialized on one lock, so a round never
sees a half-applied update and a predictor is never updated mid-round.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import replace
from functools import partial
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .config import EnsembleConfig
from .consensus import (
    ScoredVote,
    agreement,
    enhanced_confidence,
    pattern_overlap,
    reliability_map,
    round_half_up,
)
from .credit import contribution_shares, share_learning_rate, streak_learning_rate
from .logging_config import get_logger
from .predictor import Predictor, SignalProvider
from .signals import hybrid_signal, trend_signal
from .store import StateStore
from .types import (
    Category,
    Contributor,
    CreditUpdate,
    EnsembleDecision,
    Event,
    LearnOptions,
    LearnResult,
    PredictorStats,
    RoundContext,
    Strategy,
    as_history,
)

logger = get_logger(__name__)

ContextLike = Union[RoundContext, Mapping[str, Any], None]


def _as_context(context: ContextLike) -> RoundContext:
    """Normalize caller context. Unusable context counts as an empty one."""
    if isinstance(context, RoundContext):
        return context
    try:
        return RoundContext.from_mapping(context)
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning("context_invalid", error=str(exc))
        return RoundContext()


class EnsembleCoordinator:
    """Runs decision rounds over a fixed roster of predictors."""

    def __init__(
        self,
        predictors: Optional[Iterable[Predictor]] = None,
        config: Optional[EnsembleConfig] = None,
        store: Optional[StateStore] = None,
    ):
        self.config: EnsembleConfig = (config or EnsembleConfig()).validate()
        self.store = store
        self._round_lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: List[Future] = []
        self._pending_lock = threading.Lock()
        self._closed = False

        self.predictors: Dict[str, Predictor] = {}
        for predictor in predictors or ():
            self.add_predictor(predictor)

    # ================================================================
    # ROSTER
    # ================================================================

    def add_predictor(self, predictor: Predictor) -> Predictor:
        with self._round_lock:
            if predictor.id in self.predictors:
                raise ValueError(f"duplicate predictor id: {predictor.id}")
            self.predictors[predictor.id] = predictor
        return predictor

    def register(
        self, predictor_id: str, provider: SignalProvider, name: Optional[str] = None
    ) -> Predictor:
        """Create a predictor with the ensemble's PredictorConfig and add it."""
        predictor = Predictor(
            predictor_id, provider, name=name, config=self.config.predictor
        )
        return self.add_predictor(predictor)

    def get(self, predictor_id: str) -> Optional[Predictor]:
        return self.predictors.get(predictor_id)

    # ================================================================
    # DECISION ROUND
    # ================================================================

    def predict(
        self, history: Optional[Sequence[Any]], context: ContextLike = None
    ) -> EnsembleDecision:
        """Run one round and return the decision.

        1. Ask every predictor for a signal and score it
        2. Sort by score, highest first
        3. Pick a strategy (consensus / top model / fallback bias)
        4. Raise the confidence to min_confidence if needed

        Never raises for bad history or failing providers. An empty roster
        yields the UNKNOWN sentinel decision.
        """
        context = _as_context(context)
        events = as_history(history)

        with self._round_lock:
            if not self.predictors:
                logger.warning("round_without_predictors")
                return self._sentinel()
            votes = [self._vote(p, events, context) for p in self.predictors.values()]

        votes.sort(key=lambda v: v.score, reverse=True)
        if len(votes) == 1:
            decision = self._single_vote(votes[0])
        else:
            decision = self._decide(votes, events)

        if decision.confidence < self.config.min_confidence:
            decision = replace(decision, confidence=self.config.min_confidence)

        logger.info(
            "round_decided",
            category=decision.category.value,
            confidence=decision.confidence,
            strategy=decision.strategy.value,
            logic=decision.logic,
            predictors=len(votes),
        )
        return decision

    def _vote(
        self, predictor: Predictor, events: Sequence[Event], context: RoundContext
    ) -> ScoredVote:
        signal = predictor.predict(events, context)
        snapshot = predictor.stats()
        return ScoredVote(
            predictor=predictor,
            signal=signal,
            score=signal.confidence * snapshot.weight,
            weight=snapshot.weight,
            ema_accuracy=snapshot.ema_accuracy,
        )

    def _decide(self, votes: List[ScoredVote], events: Sequence[Event]) -> EnsembleDecision:
        cfg = self.config
        agree, majority = agreement(votes)
        overlap, tags = pattern_overlap(votes)

        # --- Strong agreement backed by shared evidence ---
        if agree > cfg.consensus_agreement and overlap > cfg.consensus_overlap:
            reliabilities = reliability_map(votes)
            confidence = enhanced_confidence(
                votes,
                agree,
                overlap,
                reliabilities,
                enhancement_cap=cfg.enhancement_cap,
                confidence_cap=cfg.consensus_confidence_cap,
            )
            contributors = tuple(
                self._contributor(
                    v,
                    weight=v.weight * reliabilities[v.predictor.id],
                    reliability=reliabilities[v.predictor.id],
                )
                for v in votes
            )
            tags = tags + [
                f"Consensus_{round_half_up(agree * 100)}",
                f"PatternMatch_{round_half_up(overlap * 100)}",
            ]
            return EnsembleDecision(
                category=majority,
                confidence=confidence,
                strategy=Strategy.CONSENSUS,
                pattern_tags=tuple(tags),
                contributors=contributors,
                logic=f"ENHANCED_ENSEMBLE: {votes[0].predictor.id}+{votes[1].predictor.id}",
            )

        top = votes[0]
        contributors = tuple(self._contributor(v) for v in votes)
        top_confidence = top.signal.confidence
        gap = top.score - votes[1].score

        if gap >= cfg.gap_threshold:
            return self._top_decision(top, top_confidence, tags, contributors)

        # --- Close call: lean on the recent bias of the event stream ---
        bias = self.recent_bias(events)
        if bias > cfg.bias_high or bias < cfg.bias_low:
            category = Category.BIG if bias > cfg.bias_high else Category.SMALL
            confidence = max(
                cfg.fallback_floor, round_half_up(top_confidence - cfg.fallback_penalty)
            )
            return EnsembleDecision(
                category=category,
                confidence=confidence,
                strategy=Strategy.FALLBACK_BIAS,
                pattern_tags=tuple(tags),
                contributors=contributors,
                logic="fallback-low-consensus-bias",
            )

        confidence = max(
            cfg.low_consensus_floor,
            round_half_up(top_confidence - cfg.low_consensus_penalty),
        )
        return self._top_decision(
            top, confidence, tags, contributors, suffix=":low_consensus"
        )

    def _single_vote(self, vote: ScoredVote) -> EnsembleDecision:
        return self._top_decision(
            vote,
            max(self.config.min_confidence, vote.signal.confidence),
            list(vote.signal.pattern_tags),
            (self._contributor(vote),),
        )

    def _top_decision(self, vote, confidence, tags, contributors, suffix=""):
        return EnsembleDecision(
            category=vote.signal.category,
            confidence=confidence,
            strategy=Strategy.TOP_MODEL,
            pattern_tags=tuple(tags),
            contributors=contributors,
            chosen_predictor_id=vote.predictor.id,
            logic=f"{vote.predictor.id}:{vote.signal.source_logic_id}{suffix}",
        )

    @staticmethod
    def _contributor(vote: ScoredVote, weight=None, reliability=None) -> Contributor:
        return Contributor(
            predictor_id=vote.predictor.id,
            name=vote.predictor.name,
            weight=vote.weight if weight is None else weight,
            category=vote.signal.category,
            confidence=vote.signal.confidence,
            reliability=reliability,
        )

    def _sentinel(self) -> EnsembleDecision:
        return EnsembleDecision(
            category=Category.UNKNOWN,
            confidence=self.config.min_confidence,
            strategy=Strategy.NONE,
            logic="no-predictors",
        )

    def recent_bias(self, events: Sequence[Event]) -> float:
        """Fraction of BIG among the latest bias_window events (0.5 if none)."""
        window = events[: self.config.bias_window]
        if not window:
            return 0.5
        return float(np.mean([e.is_big for e in window]))

    # ================================================================
    # CREDIT ASSIGNMENT
    # ================================================================

    def learn(
        self, predictor_id: str, was_win: bool, context: ContextLike = None
    ) -> Optional[LearnResult]:
        """Credit a single predictor. Unknown ids are skipped (None)."""
        context = _as_context(context)
        cfg = self.config
        with self._round_lock:
            predictor = self.predictors.get(predictor_id)
            if predictor is None:
                logger.debug("learn_unknown_predictor", predictor_id=predictor_id)
                return None
            rate = streak_learning_rate(
                context.consecutive_losses, cfg.streak_lr_step, cfg.max_streak_boost
            )
            result = predictor.learn(bool(was_win), LearnOptions(rate))
            # Queued under the round lock so rows reach the store in update order
            self._notify([predictor.stats()])
        return result

    def learn_multiple(
        self,
        contributors: Optional[Iterable[Union[Contributor, Mapping[str, Any]]]],
        was_win: bool,
        context: ContextLike = None,
    ) -> List[CreditUpdate]:
        """Split one outcome across the contributors of a decision.

        Shares are weight*confidence over the total of ALL listed
        contributors; ids no longer on the roster are skipped.
        """
        context = _as_context(context)
        cfg = self.config
        entries = []
        for item in contributors or ():
            if isinstance(item, Contributor):
                entries.append(item)
                continue
            try:
                entries.append(Contributor.from_mapping(item))
            except (AttributeError, TypeError, ValueError):
                logger.debug("contributor_malformed", item=repr(item)[:80])
        if not entries:
            return []

        base_rate = streak_learning_rate(
            context.consecutive_losses, cfg.streak_lr_step, cfg.max_streak_boost
        )
        shares = contribution_shares(entries)
        updates: List[CreditUpdate] = []
        rows: List[PredictorStats] = []

        with self._round_lock:
            for entry, share in zip(entries, shares):
                predictor = self.predictors.get(entry.predictor_id)
                if predictor is None:
                    logger.debug(
                        "learn_unknown_predictor", predictor_id=entry.predictor_id
                    )
                    continue
                rate = share_learning_rate(base_rate, share, cfg.min_share_rate)
                result = predictor.learn(bool(was_win), LearnOptions(rate))
                updates.append(CreditUpdate(predictor.id, share, rate, result))
                rows.append(predictor.stats())
            self._notify(rows)

        logger.info(
            "credit_assigned",
            was_win=bool(was_win),
            base_rate=base_rate,
            credited=[u.predictor_id for u in updates],
        )
        return updates

    # ================================================================
    # STATE, PERSISTENCE
    # ================================================================

    def snapshot(self) -> List[PredictorStats]:
        """{id, name, weight, wins, losses, ema_accuracy} per predictor."""
        with self._round_lock:
            return [p.stats() for p in self.predictors.values()]

    def load_state(self, store: Optional[StateStore] = None) -> int:
        """Bulk-load stored rows onto matching predictors.

        Returns how many predictors were restored. Load failures leave the
        defaults in place.
        """
        store = store or self.store
        if store is None:
            return 0
        try:
            rows = store.load_all()
        except Exception as exc:
            logger.error("state_load_failed", error=str(exc))
            return 0

        loaded = 0
        with self._round_lock:
            for row in rows:
                predictor = self.predictors.get(row.id)
                if predictor is None:
                    logger.info("stored_predictor_unknown", predictor_id=row.id)
                    continue
                try:
                    predictor.restore(row)
                    loaded += 1
                except (TypeError, ValueError) as exc:
                    logger.warning(
                        "stored_row_invalid", predictor_id=row.id, error=str(exc)
                    )
        logger.info("state_loaded", loaded=loaded, rows=len(rows))
        return loaded

    def persist_all(self) -> List[Future]:
        """Queue every predictor's row for writing."""
        with self._round_lock:
            return self._notify(self.snapshot())

    def _notify(self, rows: List[PredictorStats]) -> List[Future]:
        """Queue rows for the store. Fire-and-forget unless flush() is used."""
        if self.store is None or not rows:
            return []
        futures = []
        with self._round_lock:
            if self._closed:
                logger.warning("persist_after_close", rows=len(rows))
                return []
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="ensemble-persist"
                )
            for row in rows:
                future = self._executor.submit(self.store.upsert, row)
                future.add_done_callback(partial(self._log_persist_result, row.id))
                futures.append(future)
        with self._pending_lock:
            self._pending = [f for f in self._pending if not f.done()] + futures
        return futures

    @staticmethod
    def _log_persist_result(predictor_id: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("persist_failed", predictor_id=predictor_id, error=str(exc))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued writes. True when none are left outstanding."""
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Finish queued writes and stop the persistence worker."""
        with self._round_lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        return f"EnsembleCoordinator(predictors={list(self.predictors)})"


def build_default_ensemble(
    config: Optional[EnsembleConfig] = None, store: Optional[StateStore] = None
) -> EnsembleCoordinator:
    """The production roster: the trend provider and the hybrid provider.

    When a store is given its rows are loaded before the first round.
    """
    coordinator = EnsembleCoordinator(config=config, store=store)
    coordinator.register("KBT", trend_signal, name="KBT Ultralogic")
    coordinator.register("AI_FLONZA", hybrid_signal, name="FLONZA_V4_HYBRID")
    if store is not None:
        coordinator.load_state()
    return coordinator
