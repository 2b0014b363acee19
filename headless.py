#!/usr/bin/env python3
"""
Headless Tracking CLI

Run the tracker over one synthetic scene without any display.

Usage:
    python headless.py                              # Default scene
    python headless.py --scene crossing --noise 0.003
    python headless.py --config tracker.yaml        # Tracker options from file

Examples:
    # Players with detector jitter and 10% missed detections
    python headless.py --scene linear --objects 5 --noise 0.004 --dropout 0.1

    # Ball flight, per-frame track log
    python headless.py --scene ball --export-csv output/ball_tracks.csv
"""

import argparse
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from courttrack.errors import ConfigError
from courttrack.io.config_loader import load_config
from courttrack.io.exporter import export_snapshots_to_csv
from courttrack.simulation.headless_runner import HeadlessRunner, RunConfig
from courttrack.simulation.scenes import SCENES


def main():
    parser = argparse.ArgumentParser(description="Run headless tracking simulation")

    # Config file
    parser.add_argument("--config", type=str, default=None, help="YAML tracker configuration")

    # Scene parameters
    parser.add_argument(
        "--scene", choices=sorted(SCENES), default="linear", help="Scene (default: linear)"
    )
    parser.add_argument(
        "--objects", type=int, default=3, help="Players in the linear scene (default: 3)"
    )
    parser.add_argument("--frames", type=int, default=90, help="Frames to run (default: 90)")
    parser.add_argument(
        "--noise", type=float, default=0.0, help="Detection jitter std-dev (default: 0)"
    )
    parser.add_argument(
        "--dropout", type=float, default=0.0, help="Per-detection dropout rate (default: 0)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")

    # Options
    parser.add_argument("--export-csv", type=str, default=None, help="Write track log to CSV")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--quiet", action="store_true", help="Suppress output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load config
    tracker_config = None
    if args.config:
        if not os.path.exists(args.config):
            print(f"Error: Config file not found: {args.config}")
            return 1
        try:
            tracker_config = load_config(args.config)
        except ConfigError as e:
            print(f"Error: Invalid config: {e}")
            return 1

    config = RunConfig(
        scene=args.scene,
        n_objects=args.objects,
        n_frames=args.frames,
        noise_std=args.noise,
        dropout_rate=args.dropout,
        tracker=tracker_config,
        seed=args.seed,
    )

    if not args.quiet:
        print("=" * 60)
        print("courttrack Headless Mode")
        print("=" * 60)
        print(f"Scene: {config.scene}")
        if config.scene == "linear":
            print(f"Players: {config.n_objects}")
        print(f"Frames: {config.n_frames}")
        print(f"Noise std: {config.noise_std:.4f}")
        print(f"Dropout: {config.dropout_rate:.0%}")
        print(f"Tracker config: {args.config or 'defaults'}")
        print("=" * 60)

    # Run simulation
    runner = HeadlessRunner(config, record=args.export_csv is not None)
    result = runner.run()

    if args.export_csv:
        out_dir = os.path.dirname(args.export_csv)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        export_snapshots_to_csv(runner.history, args.export_csv)

    if not args.quiet:
        print("\n--- RESULTS ---")
        print(f"Frames processed: {result.n_frames:,}")
        print(f"Tracks created: {result.tracks_created}")
        print(f"Identity switches: {result.id_switches}")
        print(
            f"Active tracks (mean/max): "
            f"{result.mean_active_tracks:.2f} / {result.max_active_tracks}"
        )
        print(f"Mean position error: {result.mean_position_error:.4f}")
        print(f"Coverage: {result.coverage:.1%}")
        print(f"Runtime: {result.runtime_s * 1000:.1f} ms")
        print("=" * 60)
    else:
        # Machine-readable output
        print(f"{result.id_switches} {result.mean_position_error:.5f}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
