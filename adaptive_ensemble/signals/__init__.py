"""
Signal providers: pure functions of (history, context) -> PredictionSignal.

The ensemble treats them as black boxes. They never raise for well-formed
histories of any length, including empty ones.
"""

from .hybrid import hybrid_signal
from .naming import engine_name
from .trend import fibonacci_signal, learned_signal, network_signal, trend_signal

__all__ = [
    "trend_signal",
    "hybrid_signal",
    "network_signal",
    "fibonacci_signal",
    "learned_signal",
    "engine_name",
]
