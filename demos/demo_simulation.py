#!/usr/bin/env python3
"""
Demo: Adaptive Ensemble Simulation

Two draw streams:
  1. Fair: magnitudes uniform on 0..9 (nothing to learn, accuracy ~50%)
  2. Sticky: each draw repeats the previous category with probability 0.7

Runs the default two-predictor ensemble through the predict-then-settle
loop and shows how weights, strategies and accuracy evolve.
"""

import sys
import os
import tempfile
from collections import Counter

import numpy as np

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from adaptive_ensemble import (
    Event,
    RoundTracker,
    SQLiteStore,
    build_default_ensemble,
    configure_structlog,
)
from adaptive_ensemble.signals import engine_name


def fair_draws(rng, n):
    for _ in range(n):
        yield int(rng.integers(0, 10))


def sticky_draws(rng, n, stay=0.7):
    big = bool(rng.random() < 0.5)
    for _ in range(n):
        if rng.random() >= stay:
            big = not big
        yield int(rng.integers(5, 10)) if big else int(rng.integers(0, 5))


def run_stream(title, draws, store=None):
    print("-" * 64)
    print(f"  SCENARIO: {title}")
    print("-" * 64)
    print()

    ensemble = build_default_ensemble(store=store)
    tracker = RoundTracker(ensemble)
    history = []
    strategies = Counter()
    engines = Counter()
    clock = 1_700_000_000.0

    for period, magnitude in enumerate(draws):
        decision = tracker.open_round(period, history)
        strategies[decision.strategy.value] += 1
        engines[engine_name(decision.logic)] += 1

        clock += 60
        event = Event.from_magnitude(magnitude, clock)
        tracker.settle(period, event.category)
        history.insert(0, event)
        del history[200:]

        if (period + 1) % 100 == 0:
            stats = tracker.stats()
            weights = "  ".join(
                f"{row.id}={row.weight:.3f}" for row in ensemble.snapshot()
            )
            print(f"  Round {period + 1:4d}: accuracy={stats['accuracy_percent']:6.2f}%  "
                  f"{weights}")

    stats = tracker.stats()
    print()
    print(f"  Wins / losses:     {stats['wins']} / {stats['losses']}")
    print(f"  Longest win run:   {stats['max_win_streak']}")
    print(f"  Longest loss run:  {stats['max_loss_streak']}")
    print(f"  Strategies used:   {dict(strategies)}")
    print(f"  Decision engines:  {dict(engines.most_common(4))}")
    for row in ensemble.snapshot():
        print(f"    {row.name:<18s} weight={row.weight:.3f}  ema={row.ema_accuracy:.3f}  "
              f"W/L={row.wins}/{row.losses}")
    print()

    ensemble.flush(timeout=5)
    ensemble.close()
    return stats


def main():
    configure_structlog(log_level="WARNING", json=False)
    rng = np.random.default_rng(42)

    print("=" * 64)
    print("  ADAPTIVE ENSEMBLE: SIMULATED DRAWS")
    print("=" * 64)
    print()

    with tempfile.TemporaryDirectory() as tmp:
        store = SQLiteStore(os.path.join(tmp, "predictors.db"))
        fair = run_stream("FAIR DRAWS", fair_draws(rng, 300), store)
        # Second stream starts from the weights the first one persisted
        sticky = run_stream("STICKY DRAWS (p_stay=0.7)", sticky_draws(rng, 300), store)
        store.close()

    print("=" * 64)
    print(f"  Fair accuracy:   {fair['accuracy_percent']:.2f}%")
    print(f"  Sticky accuracy: {sticky['accuracy_percent']:.2f}%")
    print("=" * 64)


if __name__ == "__main__":
    main()
