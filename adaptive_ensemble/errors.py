"""
Error classes for the adaptive ensemble.

Most faults are recovered inside the ensemble and never reach the caller;
these exist for the places where a caller has genuinely done something wrong.
"""


class EnsembleError(Exception):
    """Base error for ensemble operations."""
    pass


class ConfigError(EnsembleError):
    """Invalid configuration value or unknown key in strict mode."""
    pass


class SignalValidationError(EnsembleError):
    """A signal provider returned something that is not a usable signal."""
    pass
