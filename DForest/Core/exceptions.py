"""
Error taxonomy for forest training and evaluation.

Insufficient data (no usable split, low support, pure nodes) is not an
error: construction turns it into a leaf. The classes below are raised for
misconfiguration and for broken training invariants, and propagate to the
caller.
"""


class DForestError(Exception):
    """Base class for all errors raised by the forest engine."""


class ConfigurationError(DForestError, ValueError):
    """Training was asked to run with inconsistent settings or unusable input."""


class TrainingInvariantError(DForestError, RuntimeError):
    """An internal assumption of the construction algorithms was violated."""


class InvalidFeatureValueError(TrainingInvariantError):
    """A feature produced NaN or an infinite value."""

    def __init__(self, feature_name: str, value: float):
        super().__init__(f"Feature {feature_name} produced a non-finite value: {value}")
        self.feature_name = feature_name
        self.value = value
