"""
courttrack Source Package

Real-time multi-object tracking for sports video:
- Constant-velocity and ballistic Kalman filters
- Hungarian assignment with observation-centric recovery
- Track lifecycle with primary-track recovery mode
- Headless simulation and parameter sweeps
"""

from .errors import ConfigError, CourtTrackError, InvalidDetectionError
from .tracking import (
    BallisticKalmanFilter,
    BoundingBox,
    Classification,
    Detection,
    HungarianSolver,
    LinearKalmanFilter,
    Track,
    TrackerConfig,
    TrackManager,
    TrackSnapshot,
    TrackStatus,
)

__version__ = "1.0.0"
__author__ = "courttrack Contributors"

__all__ = [
    # Tracking
    "TrackManager",
    "TrackerConfig",
    "Track",
    "TrackSnapshot",
    "TrackStatus",
    "Detection",
    "BoundingBox",
    "Classification",
    "LinearKalmanFilter",
    "BallisticKalmanFilter",
    "HungarianSolver",
    # Errors
    "CourtTrackError",
    "ConfigError",
    "InvalidDetectionError",
]
