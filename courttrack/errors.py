"""
Exception types raised at the courttrack boundaries.

The per-frame tracking cycle never raises for the conditions it is built
to absorb (singular innovation covariance, empty frames, dropout, capacity
exhaustion). These types cover bad input handed to it from outside.
"""


class CourtTrackError(Exception):
    """Base class for courttrack errors."""


class ConfigError(CourtTrackError):
    """Invalid tracker or filter configuration."""


class InvalidDetectionError(CourtTrackError):
    """Detection box is non-finite or has negative size."""
