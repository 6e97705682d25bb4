"""Display labels for the logic that produced a signal or decision."""

from typing import Union

PATTERN_BIAS_IDS = {1, 3, 4, 5, 6, 8, 12}
LEARNED_IDS = {19, 28}
FIBONACCI_ID = 25
LOSS_RECOVERY_ID = 22


def engine_name(logic: Union[str, int, None]) -> str:
    """Map a source logic id or decision logic label to a readable engine name.

    Decision labels look like "KBT:19", "KBT:19:low_consensus" or
    "AI_FLONZA:FLONZA_V4_ENHANCED"; the part after the predictor id is the
    provider's logic id.
    """
    if isinstance(logic, str):
        if "ENSEMBLE" in logic:
            return "Hybrid AI"
        if "FLONZA" in logic:
            return "Advanced AI"
        if logic.startswith("fallback"):
            return "Bias Fallback"
        parts = logic.split(":")
        logic = parts[1] if len(parts) > 1 else parts[0]
        try:
            logic = int(logic)
        except ValueError:
            return "Trend Logic"
    if logic in PATTERN_BIAS_IDS:
        return "Pattern Bias"
    if logic in LEARNED_IDS:
        return "Machine Learning"
    if logic == FIBONACCI_ID:
        return "Fibonacci Engine"
    if logic == LOSS_RECOVERY_ID:
        return "Loss Recovery"
    return "Trend Logic"
