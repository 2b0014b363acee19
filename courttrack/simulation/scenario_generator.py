"""
Scenario Generator

Generates run configurations from parameter ranges for tracker sweeps.

Features:
    - Cartesian product of parameter values
    - Several seeded runs per configuration
    - Quick noise sweep for error-vs-noise curves

Usage:
    space = ParameterSpace(
        scenes=["linear", "crossing"],
        noise_stds=[0.0, 0.005],
    )
    configs = ScenarioGenerator.generate(space)
"""

from dataclasses import dataclass, field
from itertools import product
from typing import Iterator, List, Optional

import numpy as np

from ..tracking.tracker import TrackerConfig
from .headless_runner import RunConfig


@dataclass
class ParameterSpace:
    """
    Parameter space definition for a tracker sweep.

    Attributes:
        scenes: Scene names
        object_counts: Player counts (used by the "linear" scene)
        noise_stds: Detection jitter values
        dropout_rates: Per-detection dropout probabilities
        n_runs_per_config: Seeded runs per configuration
    """

    scenes: List[str] = field(default_factory=lambda: ["linear", "crossing", "ball"])
    object_counts: List[int] = field(default_factory=lambda: [3])
    noise_stds: List[float] = field(default_factory=lambda: [0.0, 0.002, 0.005])
    dropout_rates: List[float] = field(default_factory=lambda: [0.0, 0.1])
    n_runs_per_config: int = 5

    # Fixed parameters
    n_frames: int = 90
    tracker: Optional[TrackerConfig] = None

    @property
    def total_configs(self) -> int:
        """Total number of configurations."""
        return (
            len(self.scenes)
            * len(self.object_counts)
            * len(self.noise_stds)
            * len(self.dropout_rates)
        )

    @property
    def total_runs(self) -> int:
        """Total number of runs."""
        return self.total_configs * self.n_runs_per_config


class ScenarioGenerator:
    """
    Generates run configurations from a parameter space.
    """

    @staticmethod
    def generate(space: ParameterSpace) -> List[RunConfig]:
        """
        Generate all configurations from parameter space.

        Args:
            space: Parameter space definition

        Returns:
            List of RunConfig objects
        """
        return list(ScenarioGenerator.generate_iterator(space))

    @staticmethod
    def generate_iterator(space: ParameterSpace) -> Iterator[RunConfig]:
        """
        Generate configurations as iterator (memory efficient).

        Args:
            space: Parameter space definition

        Yields:
            RunConfig objects
        """
        for scene, n_objects, noise, rate in product(
            space.scenes, space.object_counts, space.noise_stds, space.dropout_rates
        ):
            for run_idx in range(space.n_runs_per_config):
                yield RunConfig(
                    scene=scene,
                    n_objects=n_objects,
                    n_frames=space.n_frames,
                    noise_std=noise,
                    dropout_rate=rate,
                    tracker=space.tracker,
                    seed=run_idx * 1000 + n_objects * 10 + int(noise * 1e4) + int(rate * 100),
                )

    @staticmethod
    def quick_sweep(
        scene: str = "linear",
        noise_min: float = 0.0,
        noise_max: float = 0.01,
        n_levels: int = 5,
        n_runs: int = 3,
    ) -> List[RunConfig]:
        """
        Quick noise sweep for an error-vs-noise curve.

        Args:
            scene: Scene name
            noise_min: Lowest jitter std-dev
            noise_max: Highest jitter std-dev
            n_levels: Number of noise levels
            n_runs: Runs per level

        Returns:
            List of configs
        """
        levels = np.linspace(noise_min, noise_max, n_levels)

        configs = []
        for noise in levels:
            for run_idx in range(n_runs):
                configs.append(
                    RunConfig(
                        scene=scene,
                        noise_std=float(noise),
                        seed=run_idx * 1000 + int(noise * 1e4),
                    )
                )

        return configs
