"""
courttrack Simulation Package

Synthetic detection streams, headless runners and sweep tools.
"""

from .headless_runner import HeadlessRunner, RunConfig, RunResult, run_single_simulation
from .scenario_generator import ParameterSpace, ScenarioGenerator
from .scenes import SceneFrame, crossing_pair, dropout, linear_motion, thrown_ball

__all__ = [
    "HeadlessRunner",
    "RunConfig",
    "RunResult",
    "run_single_simulation",
    "ScenarioGenerator",
    "ParameterSpace",
    "SceneFrame",
    "linear_motion",
    "crossing_pair",
    "thrown_ball",
    "dropout",
]
