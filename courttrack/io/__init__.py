"""
courttrack I/O Package

Tracker configuration loading and export of configs and track logs.
"""

from .config_loader import ConfigLoader, load_config
from .exporter import export_config_to_yaml, export_snapshots_to_csv

__all__ = ["ConfigLoader", "load_config", "export_config_to_yaml", "export_snapshots_to_csv"]
