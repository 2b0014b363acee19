"""
Config and Track Exporter

Serializes a TrackerConfig back to the YAML layout read by ConfigLoader,
and writes published track snapshots to CSV for offline analysis.
"""

import csv
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Sequence, Tuple

import yaml

from ..tracking.track import TrackSnapshot
from ..tracking.tracker import TrackerConfig

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = [
    "frame",
    "id",
    "status",
    "classification",
    "x",
    "y",
    "vx",
    "vy",
    "bbox_x",
    "bbox_y",
    "bbox_w",
    "bbox_h",
    "reliability",
    "occlusion",
    "hit_streak",
    "miss_streak",
    "age",
]


def config_to_dict(config: TrackerConfig, description: str = "") -> Dict[str, Any]:
    """Build the YAML document for a tracker configuration."""
    return {
        "description": description
        or f"Exported on {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        "tracker": {
            "iou_threshold": float(config.iou_threshold),
            "max_tracks": int(config.max_tracks),
            "confirm_hits": int(config.confirm_hits),
            "max_misses": int(config.max_misses),
            "recovery_timeout": float(config.recovery_timeout),
            "reliability_threshold": float(config.reliability_threshold),
            "recovery_radius": float(config.recovery_radius),
            "default_dt": float(config.default_dt),
            "iou_weight": float(config.iou_weight),
            "velocity_weight": float(config.velocity_weight),
            "class_bonus": float(config.class_bonus),
        },
        "noise_profiles": _extract_profiles(config),
        "ballistic": {
            **config.ballistic.to_dict(),
            "classes": sorted(c.value for c in config.ballistic_classes),
        },
    }


def _extract_profiles(config: TrackerConfig) -> Dict[str, Any]:
    profiles = {"default": config.default_profile.to_dict()}
    for classification, profile in config.noise_profiles.items():
        profiles[classification.value] = profile.to_dict()
    return profiles


def export_config_to_yaml(config: TrackerConfig, filepath: str, description: str = "") -> bool:
    """
    Export a tracker configuration to a YAML file.

    Args:
        config: Tracker configuration
        filepath: Output file path
        description: Free-text description stored in the file

    Returns:
        True if export successful, False otherwise
    """
    data = config_to_dict(config, description)
    try:
        with open(filepath, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    except OSError as e:
        logger.error("Failed to export config to %s: %s", filepath, e)
        return False

    logger.info("Config saved to %s", filepath)
    return True


def snapshot_to_row(frame: int, snap: TrackSnapshot) -> Dict[str, Any]:
    """Flatten one snapshot to a CSV row."""
    bx, by, bw, bh = snap.bbox.to_tuple()
    return {
        "frame": frame,
        "id": snap.id,
        "status": snap.status.value,
        "classification": snap.classification.value,
        "x": snap.position[0],
        "y": snap.position[1],
        "vx": snap.velocity[0],
        "vy": snap.velocity[1],
        "bbox_x": bx,
        "bbox_y": by,
        "bbox_w": bw,
        "bbox_h": bh,
        "reliability": snap.reliability_score,
        "occlusion": snap.occlusion_score,
        "hit_streak": snap.hit_streak,
        "miss_streak": snap.miss_streak,
        "age": snap.age,
    }


def export_snapshots_to_csv(
    frames: Iterable[Tuple[int, Sequence[TrackSnapshot]]], filepath: str
) -> int:
    """
    Write per-frame track snapshots to CSV.

    Args:
        frames: (frame number, snapshots) pairs
        filepath: Output file path

    Returns:
        Number of rows written
    """
    n_rows = 0
    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=SNAPSHOT_FIELDS)
        writer.writeheader()
        for frame, snapshots in frames:
            for snap in snapshots:
                writer.writerow(snapshot_to_row(frame, snap))
                n_rows += 1

    logger.info("Wrote %d track rows to %s", n_rows, filepath)
    return n_rows
