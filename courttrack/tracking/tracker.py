"""
Track Manager for Multi-Object Tracking

Turns per-frame detections into identity-persistent tracks. Each call to
update() runs one frame to completion:

    1. Predict every live track (counts a provisional miss)
    2. Match: Hungarian assignment on a blended cost, gated by IoU
    3. Match: recover lost tracks near their virtual trajectory
    4. Update matched tracks
    5. Raise occlusion on unmatched confirmed tracks
    6. Spawn tentative tracks from unmatched detections (capped)
    7. Reap deleted tracks and their cached state
    8. Primary-track recovery-mode bookkeeping
    9. Publish the active tracks sorted by reliability

Matching cost:
    score = 0.5 * IoU(observation-centric box, detection)
          + 0.3 * velocity consistency
          + 0.2 * [same classification]
    cost  = 1 - score

Reference:
    - Bewley, A. et al. "Simple Online and Realtime Tracking", ICIP 2016
    - Cao, J. et al. "Observation-Centric SORT", CVPR 2023
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigError
from .arena import TrackArena
from .ballistic import BallisticKalmanFilter, BallisticParams
from .detection import BoundingBox, Classification, Detection
from .hungarian import HungarianSolver
from .kalman import BALL_PROFILE, PLAYER_PROFILE, LinearKalmanFilter, NoiseProfile
from .track import Track, TrackSnapshot, TrackStatus

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass
class TrackerConfig:
    """
    Tracker configuration.

    Attributes:
        iou_threshold: Minimum direct IoU to accept a first-pass match
        max_tracks: Hard cap on simultaneous live tracks
        confirm_hits: Consecutive hits required to confirm a tentative track
        max_misses: Consecutive misses before deletion (~0.5 s at 30 fps)
        recovery_timeout: Maximum recovery-mode duration (seconds)
        reliability_threshold: Reliability below which a track is lost
        recovery_radius: Distance from the virtual trajectory for second-pass matches
        default_dt: Frame step used when the caller has none (seconds)
        iou_weight: Weight of IoU in the matching score
        velocity_weight: Weight of velocity consistency in the matching score
        class_bonus: Score bonus for matching classification
        default_profile: Noise profile for classes without their own
        noise_profiles: Per-classification noise profiles
        ballistic_classes: Classes tracked with the ballistic filter
        ballistic: Flight-mode tuning for the ballistic filter
    """

    iou_threshold: float = 0.3
    max_tracks: int = 20
    confirm_hits: int = 3
    max_misses: int = 15
    recovery_timeout: float = 2.0
    reliability_threshold: float = 0.5
    recovery_radius: float = 0.1
    default_dt: float = 1.0 / 30.0

    iou_weight: float = 0.5
    velocity_weight: float = 0.3
    class_bonus: float = 0.2

    default_profile: NoiseProfile = field(default_factory=lambda: PLAYER_PROFILE)
    noise_profiles: Dict[Classification, NoiseProfile] = field(
        default_factory=lambda: {Classification.BALL: BALL_PROFILE}
    )
    ballistic_classes: FrozenSet[Classification] = frozenset({Classification.BALL})
    ballistic: BallisticParams = field(default_factory=BallisticParams)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError for values the tracker cannot run with."""
        if self.max_tracks < 1:
            raise ConfigError(f"max_tracks must be >= 1, got {self.max_tracks}")
        if self.confirm_hits < 1:
            raise ConfigError(f"confirm_hits must be >= 1, got {self.confirm_hits}")
        if self.max_misses < 1:
            raise ConfigError(f"max_misses must be >= 1, got {self.max_misses}")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ConfigError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")
        if not 0.0 <= self.reliability_threshold <= 1.0:
            raise ConfigError(
                f"reliability_threshold must be in [0, 1], got {self.reliability_threshold}"
            )
        if self.recovery_timeout < 0 or self.recovery_radius < 0:
            raise ConfigError("recovery_timeout and recovery_radius must be non-negative")
        if not (self.default_dt > 0 and math.isfinite(self.default_dt)):
            raise ConfigError(f"default_dt must be positive, got {self.default_dt}")

    def profile_for(self, classification: Classification) -> NoiseProfile:
        return self.noise_profiles.get(classification, self.default_profile)

    def make_filter(self, classification: Classification, position: Point) -> LinearKalmanFilter:
        """Motion filter for a new track of the given class."""
        profile = self.profile_for(classification)
        if classification in self.ballistic_classes:
            return BallisticKalmanFilter(position, profile=profile, params=self.ballistic)
        return LinearKalmanFilter(position, profile=profile)


class TrackManager:
    """
    Multi-object track manager with Hungarian association and
    observation-centric recovery.

    Features:
        - Automatic track initiation from unassigned detections (capped)
        - Optimal assignment over a blended IoU / velocity / class cost
        - Lost-track recovery along observation-momentum trajectories
        - Primary-track recovery mode with timeout
        - Immutable per-frame snapshots safe to read from other threads

    Example:
        >>> manager = TrackManager()
        >>> det = Detection(BoundingBox(0.4, 0.4, 0.1, 0.2), Classification.PLAYER)
        >>> tracks = manager.update([det], dt=1 / 30)
        >>> tracks[0].status
        <TrackStatus.TENTATIVE: 'tentative'>
    """

    def __init__(self, config: Optional[TrackerConfig] = None) -> None:
        """
        Initialize Track Manager.

        Args:
            config: Tracker configuration, defaults to TrackerConfig()
        """
        self.config = config or TrackerConfig()

        # Track storage
        self.arena = TrackArena()
        self._next_id = 1

        # Last observed centre per track id, for velocity consistency
        self._previous_positions: Dict[int, Point] = {}

        self._solver = HungarianSolver(capacity=self.config.max_tracks)

        # Recovery state
        self._primary_track_id: Optional[int] = None
        self.in_recovery_mode = False
        self._recovery_started: Optional[float] = None

        self.clock = 0.0
        self.frame_count = 0

        self._lock = threading.Lock()
        self._snapshot: Tuple[TrackSnapshot, ...] = ()

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def update(
        self, detections: Sequence[Detection], dt: Optional[float] = None
    ) -> List[TrackSnapshot]:
        """
        Process one frame of detections.

        Args:
            detections: This frame's detections (may be empty)
            dt: Seconds since the previous frame, defaults to config.default_dt

        Returns:
            Tentative and confirmed tracks sorted by descending reliability
        """
        if dt is None or not math.isfinite(dt) or dt <= 0:
            dt = self.config.default_dt

        with self._lock:
            self.clock += dt
            self.frame_count += 1

            # 1. Predict all tracks
            for track in self.arena:
                track.predict(dt, self.clock)

            live = [t for t in self.arena if t.status != TrackStatus.DELETED]

            # 2-3. Association
            matches, unmatched_tracks, unmatched_detections = self._associate(live, detections)

            # 4. Update matched tracks
            for track_idx, det_idx in matches:
                live[track_idx].update(detections[det_idx], self.clock)

            # 5. Unmatched tracks may be occluded rather than gone
            for track_idx in unmatched_tracks:
                live[track_idx].mark_occluded()

            # 6. Spawn tracks from unmatched detections
            self._spawn(detections, unmatched_detections, len(live))

            # 7. Reap deleted tracks
            self._reap()

            for track in self.arena:
                if track.is_trackable and track.last_observed_position is not None:
                    self._previous_positions[track.id] = track.last_observed_position

            # 8. Recovery mode
            self._update_recovery_mode()

            # 9. Publish
            self._snapshot = self._build_snapshot()
            return list(self._snapshot)

    def _associate(
        self, tracks: List[Track], detections: Sequence[Detection]
    ) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
        """
        Two-pass association.

        Returns:
            - matches: [(track index, detection index)]
            - unmatched track indices
            - unmatched detection indices
        """
        if not tracks or not detections:
            return [], list(range(len(tracks))), list(range(len(detections)))

        cost = self.build_cost_matrix(tracks, detections)
        assignments = self._solver.solve(cost)

        matches = []
        used_tracks = set()
        used_detections = set()

        # First pass: solver proposals gated by direct IoU
        for track_idx, det_idx in assignments:
            iou = tracks[track_idx].iou(detections[det_idx], observation_centric=True)
            if iou >= self.config.iou_threshold:
                matches.append((track_idx, det_idx))
                used_tracks.add(track_idx)
                used_detections.add(det_idx)

        # Second pass: lost tracks near the end of their virtual trajectory
        radius = self.config.recovery_radius
        for track_idx, track in enumerate(tracks):
            if track_idx in used_tracks or track.status != TrackStatus.LOST:
                continue
            trajectory = track.virtual_trajectory
            if not trajectory:
                continue

            vx, vy = trajectory[-1]
            best_idx = None
            best_distance = radius
            for det_idx, det in enumerate(detections):
                if det_idx in used_detections:
                    continue
                cx, cy = det.center
                distance = math.hypot(cx - vx, cy - vy)
                if distance < best_distance:
                    best_distance = distance
                    best_idx = det_idx

            if best_idx is not None:
                logger.debug(
                    "Track %d recovered from virtual trajectory (%.3f)", track.id, best_distance
                )
                matches.append((track_idx, best_idx))
                used_tracks.add(track_idx)
                used_detections.add(best_idx)

        unmatched_tracks = [i for i in range(len(tracks)) if i not in used_tracks]
        unmatched_detections = [j for j in range(len(detections)) if j not in used_detections]

        return matches, unmatched_tracks, unmatched_detections

    def build_cost_matrix(
        self, tracks: Sequence[Track], detections: Sequence[Detection]
    ) -> np.ndarray:
        """Blended matching cost (tracks x detections); lower is better."""
        cfg = self.config
        cost = np.ones((len(tracks), len(detections)), dtype=np.float64)

        for i, track in enumerate(tracks):
            previous = self._previous_positions.get(track.id)
            for j, det in enumerate(detections):
                iou_score = track.iou(det, observation_centric=True)
                velocity_score = track.velocity_consistency(det, previous)
                same_class = track.classification == det.classification
                class_score = cfg.class_bonus if same_class else 0.0
                score = cfg.iou_weight * iou_score + cfg.velocity_weight * velocity_score
                cost[i, j] = 1.0 - (score + class_score)

        return cost

    def _spawn(self, detections: Sequence[Detection], indices: List[int], n_live: int) -> None:
        """Create tentative tracks until the cap; later detections are dropped."""
        dropped = 0
        for det_idx in indices:
            if n_live >= self.config.max_tracks:
                dropped += 1
                continue
            self._create_track(detections[det_idx])
            n_live += 1

        if dropped:
            logger.debug(
                "Track cap %d reached, dropped %d detections", self.config.max_tracks, dropped
            )

    def _create_track(self, detection: Detection) -> Track:
        """Create a new track from unassigned detection."""
        cfg = self.config
        track = Track(
            self._next_id,
            detection,
            kalman=cfg.make_filter(detection.classification, detection.center),
            confirm_hits=cfg.confirm_hits,
            max_misses=cfg.max_misses,
            reliability_threshold=cfg.reliability_threshold,
            created_at=self.clock,
        )
        self.arena.insert(track)
        self._previous_positions[track.id] = detection.center
        self._next_id += 1

        logger.debug("Spawned track %d (%s)", track.id, detection.classification.value)
        return track

    def _reap(self) -> None:
        deleted = [t.id for t in self.arena if t.status == TrackStatus.DELETED]
        for track_id in deleted:
            self.arena.remove(track_id)
            self._previous_positions.pop(track_id, None)
            logger.debug("Deleted track %d", track_id)

            if track_id == self._primary_track_id and not self.in_recovery_mode:
                self._primary_track_id = None

    def _update_recovery_mode(self) -> None:
        if self._primary_track_id is not None:
            primary = self.arena.get(self._primary_track_id)
            if primary is not None:
                if primary.status == TrackStatus.LOST and not self.in_recovery_mode:
                    self.in_recovery_mode = True
                    self._recovery_started = self.clock
                    logger.info("Entering recovery mode for track %d", primary.id)

                if primary.status == TrackStatus.CONFIRMED and self.in_recovery_mode:
                    self.in_recovery_mode = False
                    self._recovery_started = None
                    logger.info("Recovery successful for track %d", primary.id)

        if self.in_recovery_mode and self._recovery_started is not None:
            if self.clock - self._recovery_started > self.config.recovery_timeout:
                logger.info(
                    "Recovery timeout, releasing primary track %s", self._primary_track_id
                )
                self.in_recovery_mode = False
                self._recovery_started = None
                self._primary_track_id = None

    def _build_snapshot(self) -> Tuple[TrackSnapshot, ...]:
        active = [t.snapshot() for t in self.arena if t.is_trackable]
        active.sort(key=lambda s: s.reliability_score, reverse=True)
        return tuple(active)

    # ------------------------------------------------------------------
    # Primary track
    # ------------------------------------------------------------------

    @property
    def primary_track_id(self) -> Optional[int]:
        return self._primary_track_id

    @primary_track_id.setter
    def primary_track_id(self, track_id: Optional[int]) -> None:
        with self._lock:
            if track_id is not None and track_id not in self.arena:
                raise KeyError(f"No live track with id {track_id}")
            self._primary_track_id = track_id
            self.in_recovery_mode = False
            self._recovery_started = None

    @property
    def recovery_elapsed(self) -> Optional[float]:
        """Seconds spent in the current recovery episode."""
        if self._recovery_started is None:
            return None
        return self.clock - self._recovery_started

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def active_tracks(self) -> List[TrackSnapshot]:
        """Last published snapshot (tentative and confirmed tracks)."""
        return list(self._snapshot)

    @property
    def tracks_created(self) -> int:
        """Identities issued since construction or the last reset."""
        return self._next_id - 1

    @property
    def tracks(self) -> List[Track]:
        """Live track objects, including lost ones."""
        return list(self.arena)

    def get_track_by_id(self, track_id: int) -> Optional[Track]:
        """Get track by ID."""
        return self.arena.get(track_id)

    def get_confirmed_tracks(self) -> List[TrackSnapshot]:
        """Get only confirmed tracks."""
        return [s for s in self._snapshot if s.status == TrackStatus.CONFIRMED]

    @property
    def confirmed_track_count(self) -> int:
        return len(self.get_confirmed_tracks())

    def count_by_classification(self) -> Dict[Classification, int]:
        counts: Dict[Classification, int] = {}
        for snap in self._snapshot:
            counts[snap.classification] = counts.get(snap.classification, 0) + 1
        return counts

    @property
    def average_reliability(self) -> float:
        """Average reliability of confirmed tracks."""
        confirmed = self.get_confirmed_tracks()
        if not confirmed:
            return 0.0
        return sum(s.reliability_score for s in confirmed) / len(confirmed)

    def action_center(self, filter_players: bool = True) -> Point:
        """
        Reliability- and size-weighted centre of the active tracks.

        The primary track counts double and referees count 0.3. Returns
        the frame centre when nothing qualifies.
        """
        snapshots = self._filtered_snapshot(filter_players)
        weighted_x = weighted_y = total = 0.0

        for snap in snapshots:
            weight = snap.reliability_score
            if snap.id == self._primary_track_id:
                weight *= 2.0
            weight *= snap.bbox.area * 100
            if snap.classification == Classification.REFEREE:
                weight *= 0.3

            weighted_x += snap.position[0] * weight
            weighted_y += snap.position[1] * weight
            total += weight

        if total <= 0:
            return (0.5, 0.5)
        return (weighted_x / total, weighted_y / total)

    def group_bounding_box(self, filter_players: bool = True, margin: float = 0.05) -> BoundingBox:
        """Union of the active tracks' predicted boxes plus a margin, clipped to the frame."""
        snapshots = self._filtered_snapshot(filter_players)
        if not snapshots:
            return BoundingBox(0.25, 0.25, 0.5, 0.5)

        boxes = [s.bbox.recentered(*s.position) for s in snapshots]
        min_x = min(b.x for b in boxes)
        min_y = min(b.y for b in boxes)
        max_x = max(b.max_x for b in boxes)
        max_y = max(b.max_y for b in boxes)

        return BoundingBox(
            max(0.0, min_x - margin),
            max(0.0, min_y - margin),
            min(1.0, max_x - min_x + 2 * margin),
            min(1.0, max_y - min_y + 2 * margin),
        )

    def _filtered_snapshot(self, filter_players: bool) -> List[TrackSnapshot]:
        if not filter_players:
            return list(self._snapshot)
        return [s for s in self._snapshot if s.classification == Classification.PLAYER]

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Clear all tracks, identity counters and recovery state."""
        with self._lock:
            self.arena.clear()
            self._next_id = 1
            self._previous_positions.clear()
            self._primary_track_id = None
            self.in_recovery_mode = False
            self._recovery_started = None
            self.clock = 0.0
            self.frame_count = 0
            self._snapshot = ()
