"""
Single Tracked Object

A Track owns one motion filter, the latest box and classification from
its matched detection, hit/miss streaks, reliability and occlusion scores,
and a lifecycle state.

Track Lifecycle:
    TENTATIVE -> CONFIRMED -> LOST -> DELETED
                     ^          |
                     +----------+  (re-matched)

The lifecycle is a tagged variant: each state class carries only its own
data (Confirmed counts hits since confirmation, Lost holds the virtual
trajectory and the time it was entered).

Observation-centric recovery:
    The track keeps its last observed positions and a velocity computed
    from them ("observation momentum"). Matching and lost-track
    extrapolation use this momentum instead of the filter velocity.

Reference:
    - Cao, J. et al. "Observation-Centric SORT", CVPR 2023
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, List, Optional, Tuple, Union

import numpy as np

from .detection import BoundingBox, Classification, Detection
from .kalman import LinearKalmanFilter

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


class TrackStatus(Enum):
    """Track lifecycle states."""

    TENTATIVE = "tentative"  # New track, needs confirmation
    CONFIRMED = "confirmed"  # Established track
    LOST = "lost"  # Missed too often, extrapolating from momentum
    DELETED = "deleted"  # Marked for removal


@dataclass
class Tentative:
    status = TrackStatus.TENTATIVE


@dataclass
class Confirmed:
    """hits: matched frames since (re)confirmation."""

    hits: int = 0
    status = TrackStatus.CONFIRMED


@dataclass
class Lost:
    """
    Attributes:
        lost_since: Tracker clock when the track was lost
        virtual_trajectory: Positions extrapolated from observation momentum
    """

    lost_since: float
    virtual_trajectory: List[Point] = field(default_factory=list)
    status = TrackStatus.LOST


@dataclass
class Deleted:
    status = TrackStatus.DELETED


Lifecycle = Union[Tentative, Confirmed, Lost, Deleted]


@dataclass(frozen=True)
class TrackSnapshot:
    """
    Immutable view of a track published after each frame.

    Attributes:
        id: Track identity
        position: Filtered position (x, y)
        velocity: Filtered velocity (vx, vy)
        bbox: Box from the latest matched detection
        classification: Class from the latest matched detection
        reliability_score: 0-1, drops with consecutive misses
        occlusion_score: 0-1, rises while a confirmed track goes unmatched
        status: Lifecycle state
        hit_streak: Consecutive matched frames
        miss_streak: Consecutive unmatched frames
        age: Frames since creation
    """

    id: int
    position: Point
    velocity: Point
    bbox: BoundingBox
    classification: Classification
    reliability_score: float
    occlusion_score: float
    status: TrackStatus
    hit_streak: int
    miss_streak: int
    age: int

    @property
    def is_confirmed(self) -> bool:
        return self.status == TrackStatus.CONFIRMED


class Track:
    """
    Single tracked object with Kalman filter and observation-centric recovery.

    Example:
        >>> det = Detection(BoundingBox.from_center(0.5, 0.5, 0.1, 0.2))
        >>> track = Track(1, det)
        >>> _ = track.predict(1 / 30, clock=1 / 30)
        >>> track.update(det, clock=1 / 30)
        >>> track.hit_streak
        1
    """

    # Thresholds
    CONFIRM_HITS = 3  # Frames to confirm track
    MAX_MISSES = 15  # Frames before deletion (~0.5 s at 30 fps)
    RELIABILITY_THRESHOLD = 0.5
    OBSERVATION_HISTORY_SIZE = 5

    # Score steps
    RELIABILITY_GAIN = 0.2
    OCCLUSION_DECAY = 0.3
    OCCLUSION_GAIN = 0.2

    def __init__(
        self,
        track_id: int,
        detection: Detection,
        kalman: Optional[LinearKalmanFilter] = None,
        confirm_hits: int = CONFIRM_HITS,
        max_misses: int = MAX_MISSES,
        reliability_threshold: float = RELIABILITY_THRESHOLD,
        created_at: float = 0.0,
    ) -> None:
        """
        Start a tentative track from an unmatched detection.

        Args:
            track_id: Unique identity
            detection: Detection that spawned the track
            kalman: Motion filter, defaults to a CV filter at the box centre
            confirm_hits: Consecutive matches needed to confirm
            max_misses: Consecutive misses before deletion
            reliability_threshold: Reliability below which the track is lost
            created_at: Tracker clock at creation
        """
        self.id = track_id
        self.confirm_hits = confirm_hits
        self.max_misses = max_misses
        self.reliability_threshold = reliability_threshold

        center = detection.center
        self.kalman = kalman or LinearKalmanFilter(center)

        self.classification = detection.classification
        self.bbox = detection.bbox
        self.confidence = detection.confidence
        self.color_histogram = detection.appearance

        self.hit_streak = 0  # Consecutive frames with detection
        self.miss_streak = 0  # Consecutive frames without detection
        self.reliability_score = 1.0
        self.occlusion_score = 0.0
        self.lifecycle: Lifecycle = Tentative()

        self.created_at = created_at
        self.age = 0

        # Observation-centric momentum: velocity from observed centres, not the filter
        self.observation_history: Deque[Point] = deque(
            [center], maxlen=self.OBSERVATION_HISTORY_SIZE
        )
        self.last_observed_position: Optional[Point] = center
        self.observation_momentum: Point = (0.0, 0.0)
        self.time_since_observation = 0.0

        self._hits_before_predict = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def status(self) -> TrackStatus:
        return self.lifecycle.status

    @property
    def is_trackable(self) -> bool:
        return self.status in (TrackStatus.TENTATIVE, TrackStatus.CONFIRMED)

    @property
    def virtual_trajectory(self) -> List[Point]:
        if isinstance(self.lifecycle, Lost):
            return self.lifecycle.virtual_trajectory
        return []

    @property
    def lost_since(self) -> Optional[float]:
        if isinstance(self.lifecycle, Lost):
            return self.lifecycle.lost_since
        return None

    def _transition(self, lifecycle: Lifecycle) -> None:
        if lifecycle.status != self.status:
            logger.debug("Track %d: %s -> %s", self.id, self.status.value, lifecycle.status.value)
        self.lifecycle = lifecycle

    def predict(self, dt: float, clock: float = 0.0) -> Point:
        """
        Advance one frame assuming no match.

        Counts a miss, updates reliability and lifecycle, and runs the
        filter prediction. A lost track extends its virtual trajectory from
        the last observed position plus momentum times the time since that
        observation.

        Args:
            dt: Frame time step (seconds)
            clock: Tracker clock after this step

        Returns:
            Virtual trajectory point while lost, filter prediction otherwise
        """
        self.age += 1
        self.miss_streak += 1
        self._hits_before_predict = self.hit_streak
        self.hit_streak = 0
        self.time_since_observation += dt

        self.reliability_score = max(0.0, 1.0 - self.miss_streak / self.max_misses)

        lifecycle = self.lifecycle
        if self.reliability_score < self.reliability_threshold and not isinstance(
            lifecycle, (Lost, Deleted)
        ):
            self._transition(Lost(lost_since=clock))
        if self.miss_streak >= self.max_misses and not isinstance(self.lifecycle, Deleted):
            self._transition(Deleted())

        prediction = self.kalman.predict(dt)

        if isinstance(self.lifecycle, Lost) and self.last_observed_position is not None:
            last_x, last_y = self.last_observed_position
            mx, my = self.observation_momentum
            virtual_point = (
                last_x + mx * self.time_since_observation,
                last_y + my * self.time_since_observation,
            )
            self.lifecycle.virtual_trajectory.append(virtual_point)
            return virtual_point

        return prediction

    def update(self, detection: Detection, clock: float = 0.0) -> None:
        """
        Correct the track with its matched detection for this frame.

        Args:
            detection: Matched detection
            clock: Tracker clock for this frame
        """
        center = detection.center
        self.kalman.update(center)

        self.bbox = detection.bbox
        self.classification = detection.classification
        self.confidence = detection.confidence
        if detection.appearance is not None:
            self.color_histogram = detection.appearance

        if self.last_observed_position is not None and self.time_since_observation > 0:
            last_x, last_y = self.last_observed_position
            self.observation_momentum = (
                (center[0] - last_x) / self.time_since_observation,
                (center[1] - last_y) / self.time_since_observation,
            )

        self.last_observed_position = center
        self.observation_history.append(center)
        self.time_since_observation = 0.0

        self.hit_streak = self._hits_before_predict + 1
        self.miss_streak = 0
        self.reliability_score = min(1.0, self.reliability_score + self.RELIABILITY_GAIN)
        self.occlusion_score = max(0.0, self.occlusion_score - self.OCCLUSION_DECAY)

        lifecycle = self.lifecycle
        if isinstance(lifecycle, Tentative):
            if self.hit_streak >= self.confirm_hits:
                self._transition(Confirmed(hits=1))
        elif isinstance(lifecycle, Confirmed):
            lifecycle.hits += 1
        elif isinstance(lifecycle, Lost):
            # Ends the recovery excursion and drops the virtual trajectory
            self._transition(Confirmed(hits=1))

    def mark_occluded(self) -> None:
        """Unmatched this frame: raise occlusion on confirmed tracks."""
        if isinstance(self.lifecycle, Confirmed):
            self.occlusion_score = min(1.0, self.occlusion_score + self.OCCLUSION_GAIN)

    # ------------------------------------------------------------------
    # Matching geometry
    # ------------------------------------------------------------------

    @property
    def position(self) -> Point:
        return self.kalman.position

    @property
    def velocity(self) -> Point:
        return self.kalman.velocity

    @property
    def predicted_box(self) -> BoundingBox:
        """Current box size centred on the filter position."""
        return self.bbox.recentered(*self.kalman.position)

    @property
    def observation_centric_box(self) -> BoundingBox:
        """Current box size centred on last observation plus momentum."""
        if self.last_observed_position is None:
            return self.predicted_box

        last_x, last_y = self.last_observed_position
        mx, my = self.observation_momentum
        dt = self.time_since_observation
        return self.bbox.recentered(last_x + mx * dt, last_y + my * dt)

    def iou(self, detection: Detection, observation_centric: bool = True) -> float:
        """IoU between the detection box and the track's predicted box."""
        box = self.observation_centric_box if observation_centric else self.predicted_box
        return box.iou(detection.bbox)

    def velocity_consistency(
        self, detection: Detection, previous_position: Optional[Point]
    ) -> float:
        """
        Agreement between detection-implied velocity and observation momentum.

        Returns:
            1.0 for identical velocities falling to 0.0 at a difference of
            2 frame units per second; 0.5 when no previous position is known
        """
        if previous_position is None or self.time_since_observation <= 0:
            return 0.5

        cx, cy = detection.center
        elapsed = self.time_since_observation
        det_vx = (cx - previous_position[0]) / elapsed
        det_vy = (cy - previous_position[1]) / elapsed

        mx, my = self.observation_momentum
        diff = float(np.hypot(det_vx - mx, det_vy - my))
        return max(0.0, 1.0 - diff / 2.0)

    def snapshot(self) -> TrackSnapshot:
        return TrackSnapshot(
            id=self.id,
            position=self.kalman.position,
            velocity=self.kalman.velocity,
            bbox=self.bbox,
            classification=self.classification,
            reliability_score=self.reliability_score,
            occlusion_score=self.occlusion_score,
            status=self.status,
            hit_streak=self.hit_streak,
            miss_streak=self.miss_streak,
            age=self.age,
        )

    def __repr__(self) -> str:
        return (
            f"Track(id={self.id}, status={self.status.value}, "
            f"pos=({self.position[0]:.3f}, {self.position[1]:.3f}), "
            f"reliability={self.reliability_score:.2f})"
        )
