"""
Synthetic Detection Streams

Deterministic per-frame detection feeds with known ground truth, used to
exercise the tracker without a camera or detector.

Each generator returns a list of SceneFrame. A frame carries the
detections handed to the tracker, the ground-truth object id behind each
detection, and the noise-free centre of every object in view.

Coordinates are normalized (0-1) with the origin at the top-left.

Usage:
    frames = linear_motion(n_objects=4, n_frames=90, noise_std=0.003, seed=7)
    frames = dropout(frames, start=30, end=40)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..tracking.ballistic import simulate_parabola
from ..tracking.detection import BoundingBox, Classification, Detection

Point = Tuple[float, float]

FRAME_DT = 1.0 / 30.0
PLAYER_BOX = (0.05, 0.12)
BALL_BOX = (0.06, 0.06)


@dataclass
class SceneFrame:
    """
    One frame of a synthetic stream.

    Attributes:
        detections: Detector output for the frame
        object_ids: Ground-truth object behind each detection (parallel list)
        truth: Noise-free centre of every object in view, by object id
        dt: Seconds since the previous frame
    """

    detections: List[Detection] = field(default_factory=list)
    object_ids: List[int] = field(default_factory=list)
    truth: Dict[int, Point] = field(default_factory=dict)
    dt: float = FRAME_DT

    def add(self, object_id: int, center: Point, detection: Optional[Detection]) -> None:
        self.truth[object_id] = center
        if detection is not None:
            self.detections.append(detection)
            self.object_ids.append(object_id)


def _make_detection(
    center: Point,
    size: Tuple[float, float],
    classification: Classification,
    rng: np.random.Generator,
    noise_std: float,
) -> Detection:
    cx, cy = center
    if noise_std > 0:
        cx += float(rng.normal(0.0, noise_std))
        cy += float(rng.normal(0.0, noise_std))
    return Detection(
        BoundingBox.from_center(cx, cy, size[0], size[1]),
        classification=classification,
        confidence=0.9,
    )


def linear_motion(
    n_objects: int = 3,
    n_frames: int = 90,
    speed: float = 0.15,
    noise_std: float = 0.0,
    dt: float = FRAME_DT,
    seed: Optional[int] = None,
    box_size: Tuple[float, float] = PLAYER_BOX,
) -> List[SceneFrame]:
    """
    Players running horizontally in separate lanes, turning at the frame edges.

    Args:
        n_objects: Number of players
        n_frames: Stream length
        speed: Horizontal speed (frame widths per second)
        noise_std: Std-dev of centre jitter on each detection
        dt: Frame step (seconds)
        seed: Random seed for the jitter
        box_size: (width, height) of each detection box

    Returns:
        List of SceneFrame
    """
    rng = np.random.default_rng(seed)

    if n_objects == 1:
        lanes = [0.5]
    else:
        lanes = list(np.linspace(0.2, 0.8, n_objects))

    xs = list(np.linspace(0.2, 0.8, max(n_objects, 1)))
    vxs = [speed if i % 2 == 0 else -speed for i in range(n_objects)]

    frames = []
    for _ in range(n_frames):
        frame = SceneFrame(dt=dt)
        for obj in range(n_objects):
            x = xs[obj] + vxs[obj] * dt
            if x < 0.05 or x > 0.95:
                vxs[obj] = -vxs[obj]
                x = xs[obj] + vxs[obj] * dt
            xs[obj] = x

            center = (float(x), float(lanes[obj]))
            det = _make_detection(center, box_size, Classification.PLAYER, rng, noise_std)
            frame.add(obj, center, det)
        frames.append(frame)

    return frames


def crossing_pair(
    n_frames: int = 60,
    speed: float = 0.3,
    noise_std: float = 0.0,
    dt: float = FRAME_DT,
    seed: Optional[int] = None,
    box_size: Tuple[float, float] = (0.1, 0.2),
) -> List[SceneFrame]:
    """
    Two players running towards each other on slightly offset lines.

    Object 0 starts at (0.2, 0.48) moving right; object 1 starts at
    (0.8, 0.52) moving left. Their boxes overlap around the middle of the
    stream.
    """
    rng = np.random.default_rng(seed)
    starts = [(0.2, 0.48, speed), (0.8, 0.52, -speed)]

    frames = []
    for k in range(1, n_frames + 1):
        frame = SceneFrame(dt=dt)
        for obj, (x0, y0, vx) in enumerate(starts):
            center = (x0 + vx * k * dt, y0)
            det = _make_detection(center, box_size, Classification.PLAYER, rng, noise_std)
            frame.add(obj, center, det)
        frames.append(frame)

    return frames


def thrown_ball(
    start: Point = (0.2, 0.7),
    velocity: Point = (0.15, -0.75),
    gravity: float = 2.0,
    n_frames: int = 60,
    noise_std: float = 0.0,
    dt: float = FRAME_DT,
    seed: Optional[int] = None,
    box_size: Tuple[float, float] = BALL_BOX,
) -> List[SceneFrame]:
    """
    A ball on a parabolic arc (up is negative y, gravity positive).

    Frames where the ball is outside the image carry no detection and no truth.
    """
    rng = np.random.default_rng(seed)
    path = simulate_parabola(start, velocity, gravity, dt, n_frames)

    frames = []
    for x, y in path:
        frame = SceneFrame(dt=dt)
        if 0.0 <= x <= 1.0 and 0.0 <= y <= 1.0:
            center = (float(x), float(y))
            det = _make_detection(center, box_size, Classification.BALL, rng, noise_std)
            frame.add(0, center, det)
        frames.append(frame)

    return frames


def dropout(
    frames: Sequence[SceneFrame],
    start: int,
    end: int,
    object_ids: Optional[Sequence[int]] = None,
) -> List[SceneFrame]:
    """
    Remove detections in frames [start, end).

    Args:
        frames: Source stream (left untouched)
        start: First frame index without detections
        end: First frame index with detections again
        object_ids: Objects to drop, all objects when None

    Returns:
        New list of SceneFrame
    """
    result = []
    for idx, frame in enumerate(frames):
        if not start <= idx < end:
            result.append(frame)
            continue

        kept = SceneFrame(truth=dict(frame.truth), dt=frame.dt)
        for det, obj in zip(frame.detections, frame.object_ids):
            if object_ids is None or obj in object_ids:
                continue
            kept.detections.append(det)
            kept.object_ids.append(obj)
        result.append(kept)

    return result


def random_dropout(
    frames: Sequence[SceneFrame], rate: float, seed: Optional[int] = None
) -> List[SceneFrame]:
    """Drop each detection independently with probability rate."""
    if rate <= 0:
        return list(frames)

    rng = np.random.default_rng(seed)
    result = []
    for frame in frames:
        kept = SceneFrame(truth=dict(frame.truth), dt=frame.dt)
        for det, obj in zip(frame.detections, frame.object_ids):
            if rng.random() >= rate:
                kept.detections.append(det)
                kept.object_ids.append(obj)
        result.append(kept)

    return result


SCENES = {
    "linear": linear_motion,
    "crossing": crossing_pair,
    "ball": thrown_ball,
}
