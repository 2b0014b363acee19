"""
Tracking Module

Multi-object tracking core: motion filters, optimal assignment, track
lifecycle and the per-frame track manager.

Components:
    - LinearKalmanFilter: Constant Velocity Kalman Filter
    - BallisticKalmanFilter: CV filter with gravity while in flight
    - HungarianSolver: Minimum-cost assignment for non-square matrices
    - Track / TrackStatus: Individual track and its lifecycle
    - TrackManager: Per-frame predict, match, update, lifecycle cycle

Example:
    >>> from courttrack.tracking import TrackManager, Detection, BoundingBox
    >>> manager = TrackManager()
    >>> tracks = manager.update([Detection(BoundingBox(0.4, 0.4, 0.1, 0.2))], dt=1 / 30)
"""

from .arena import TrackArena, TrackHandle
from .ballistic import BallisticKalmanFilter, BallisticParams
from .detection import BoundingBox, Classification, Detection
from .hungarian import HungarianSolver, solve_assignment
from .kalman import BALL_PROFILE, PLAYER_PROFILE, KalmanState, LinearKalmanFilter, NoiseProfile
from .track import Confirmed, Deleted, Lost, Tentative, Track, TrackSnapshot, TrackStatus
from .tracker import TrackerConfig, TrackManager

__all__ = [
    "LinearKalmanFilter",
    "KalmanState",
    "NoiseProfile",
    "PLAYER_PROFILE",
    "BALL_PROFILE",
    "BallisticKalmanFilter",
    "BallisticParams",
    "HungarianSolver",
    "solve_assignment",
    "BoundingBox",
    "Classification",
    "Detection",
    "Track",
    "TrackSnapshot",
    "TrackStatus",
    "Tentative",
    "Confirmed",
    "Lost",
    "Deleted",
    "TrackArena",
    "TrackHandle",
    "TrackManager",
    "TrackerConfig",
]
