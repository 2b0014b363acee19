"""
Tracker Config Loader

YAML-based configuration parser for courttrack.

Loads tracker options, per-classification noise profiles and ballistic
flight tuning from YAML and builds a TrackerConfig. Any key left out
keeps its default.

Supported sections:
    - tracker: scalar options (iou_threshold, max_tracks, confirm_hits, ...)
    - noise_profiles: profile per classification ("default" for the fallback)
    - ballistic: flight-mode tuning and the classes that use it

Usage:
    loader = ConfigLoader('configs/indoor_court.yaml')
    manager = loader.create_track_manager()
"""

import os
from dataclasses import fields
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigError
from ..tracking.ballistic import BallisticParams
from ..tracking.detection import Classification
from ..tracking.kalman import NoiseProfile
from ..tracking.tracker import TrackerConfig, TrackManager

# tracker: section keys that map straight onto TrackerConfig fields
_SCALAR_KEYS = {
    "iou_threshold": float,
    "max_tracks": int,
    "confirm_hits": int,
    "max_misses": int,
    "recovery_timeout": float,
    "reliability_threshold": float,
    "recovery_radius": float,
    "default_dt": float,
    "iou_weight": float,
    "velocity_weight": float,
    "class_bonus": float,
}


class ConfigLoader:
    """
    Loads tracker configuration from YAML files.

    Usage:
        loader = ConfigLoader('configs/indoor_court.yaml')
        config = loader.get_config()
        manager = loader.create_track_manager()
    """

    def __init__(self, filepath: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            filepath: Path to YAML config file (optional)
        """
        self.filepath = filepath
        self.data: Dict[str, Any] = {}
        self._config: Optional[TrackerConfig] = None

        if filepath:
            self.load(filepath)

    def load(self, filepath: str) -> bool:
        """
        Load configuration from YAML file.

        Args:
            filepath: Path to YAML config file

        Returns:
            True if loaded successfully

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ConfigError: If values are invalid
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Config file not found: {filepath}")

        self.filepath = filepath

        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        self.load_dict(data or {})
        return True

    def load_dict(self, data: Dict[str, Any]) -> TrackerConfig:
        """Parse an already-loaded YAML document."""
        if not isinstance(data, dict):
            raise ConfigError("Config document must be a mapping")

        self.data = data
        self._config = self._parse_config()
        return self._config

    def _parse_config(self) -> TrackerConfig:
        """Parse loaded YAML data into TrackerConfig."""
        tracker = self._section("tracker")

        kwargs: Dict[str, Any] = {}
        for key, cast in _SCALAR_KEYS.items():
            if key in tracker:
                try:
                    kwargs[key] = cast(tracker[key])
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"tracker.{key}: {e}") from e

        default_profile, profiles = self._parse_noise_profiles()
        if default_profile is not None:
            kwargs["default_profile"] = default_profile
        if profiles is not None:
            kwargs["noise_profiles"] = profiles

        ballistic = self._section("ballistic")
        kwargs["ballistic"] = self._parse_ballistic(ballistic)
        if "classes" in ballistic:
            if not isinstance(ballistic["classes"], list):
                raise ConfigError("ballistic.classes must be a list")
            kwargs["ballistic_classes"] = frozenset(
                self._parse_classification(c) for c in ballistic["classes"]
            )

        return TrackerConfig(**kwargs)

    def _section(self, name: str) -> Dict[str, Any]:
        """Top-level section as a mapping; missing or empty sections are {}."""
        section = self.data.get(name)
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"{name}: section must be a mapping")
        return section

    def _parse_noise_profiles(self):
        """Parse noise_profiles: section into (default, per-class dict)."""
        if self.data.get("noise_profiles") is None:
            return None, None
        section = self._section("noise_profiles")

        # Listed classes override the built-in per-class profiles
        default = None
        profiles: Dict[Classification, NoiseProfile] = dict(TrackerConfig().noise_profiles)
        for key, values in section.items():
            if values is not None and not isinstance(values, dict):
                raise ConfigError(f"noise_profiles.{key} must be a mapping")
            profile = self._parse_profile(key, values or {})
            if key == "default":
                default = profile
            else:
                profiles[self._parse_classification(key)] = profile

        return default, profiles

    @staticmethod
    def _parse_profile(name: str, values: Dict[str, Any]) -> NoiseProfile:
        base = NoiseProfile()
        try:
            return NoiseProfile(
                initial_covariance=_vector4(
                    values.get("initial_covariance", base.initial_covariance)
                ),
                process_noise=_vector4(values.get("process_noise", base.process_noise)),
                measurement_noise=float(values.get("measurement_noise", base.measurement_noise)),
                covariance_limits=_vector4(
                    values.get("covariance_limits", base.covariance_limits)
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"noise_profiles.{name}: {e}") from e

    @staticmethod
    def _parse_ballistic(values: Dict[str, Any]) -> BallisticParams:
        names = {f.name for f in fields(BallisticParams)}
        try:
            return BallisticParams(**{k: float(v) for k, v in values.items() if k in names})
        except (TypeError, ValueError) as e:
            raise ConfigError(f"ballistic: {e}") from e

    @staticmethod
    def _parse_classification(name: str) -> Classification:
        try:
            return Classification(str(name).lower())
        except ValueError as e:
            raise ConfigError(f"Unknown classification: {name}") from e

    def get_config(self) -> Optional[TrackerConfig]:
        """
        Get parsed tracker configuration.

        Returns:
            TrackerConfig or None if not loaded
        """
        return self._config

    def create_track_manager(self) -> TrackManager:
        """
        Create a TrackManager from the loaded configuration.

        Raises:
            ValueError: If no configuration is loaded
        """
        if not self._config:
            raise ValueError("No config loaded. Call load() first.")
        return TrackManager(self._config)


def _vector4(values) -> tuple:
    vec = tuple(float(v) for v in values)
    if len(vec) != 4:
        raise ValueError(f"expected 4 values, got {len(vec)}")
    return vec


def load_config(filepath: str) -> TrackerConfig:
    """
    Convenience function to load a config file.

    Args:
        filepath: Path to YAML config file

    Returns:
        TrackerConfig instance
    """
    loader = ConfigLoader(filepath)
    return loader.get_config()
