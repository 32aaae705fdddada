"""
Command-line interface for fm_drone.

Usage:
    fm-drone presets
    fm-drone describe <algorithm> [--json]
    fm-drone simulate <algorithm> [--frames N] [--x X] [--y Y] [--json]

<algorithm> is a preset name, a path to a JSON descriptor, or inline JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from fm_drone import __version__
from fm_drone.core.algorithm import (
    check_algorithm,
    get_preset,
    list_presets,
    resolve_algorithm,
)
from fm_drone.core.config import SynthConfig, load_config
from fm_drone.core.scheduler import FrameClock
from fm_drone.core.synth import DroneSynth
from fm_drone.engine import AudioContext, create_clipper
from fm_drone.errors import FmDroneError


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fm-drone",
        description="Build and inspect 4-operator FM drone routings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List the built-in algorithms
  fm-drone presets

  # Show the graph a preset produces, including inserted delays
  fm-drone describe cross

  # Describe an algorithm given inline
  fm-drone describe '{"mod": [[0, 1], [1, 0]], "out": [0, 1]}'

  # Glide towards the top-right corner for two seconds
  fm-drone simulate ring --frames 120 --x 1 --y 0
""",
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"fm-drone {__version__}",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log graph operations to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "presets",
        help="List built-in algorithms",
        description="List the names and routings of the built-in algorithms.",
    )

    describe_parser = subparsers.add_parser(
        "describe",
        help="Show the routing graph an algorithm produces",
        description="Build an algorithm on the reference engine and print its graph.",
    )
    describe_parser.add_argument(
        "algorithm",
        help="Preset name, path to a JSON descriptor, or inline JSON",
    )
    describe_parser.add_argument(
        "--config",
        type=Path,
        help="JSON synth configuration",
    )
    describe_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    simulate_parser = subparsers.add_parser(
        "simulate",
        help="Run the amplitude smoothing for a number of frames",
        description="Start the synth on the reference engine and tick the frame clock.",
    )
    simulate_parser.add_argument(
        "algorithm",
        help="Preset name, path to a JSON descriptor, or inline JSON",
    )
    simulate_parser.add_argument(
        "--config",
        type=Path,
        help="JSON synth configuration",
    )
    simulate_parser.add_argument(
        "--frames",
        type=int,
        default=60,
        help="Number of frames to run (default: 60)",
    )
    simulate_parser.add_argument(
        "--frame-rate",
        type=float,
        default=60.0,
        help="Frames per second (default: 60)",
    )
    simulate_parser.add_argument(
        "--x",
        type=float,
        default=0.5,
        help="Horizontal position in the amplitude square, 0-1 (default: 0.5)",
    )
    simulate_parser.add_argument(
        "--y",
        type=float,
        default=0.5,
        help="Vertical position in the amplitude square, 0-1 (default: 0.5)",
    )
    simulate_parser.add_argument(
        "--base-freq",
        type=float,
        help="Base frequency in Hz",
    )
    simulate_parser.add_argument(
        "--depth",
        type=float,
        help="Modulation depth",
    )
    simulate_parser.add_argument(
        "--volume-db",
        type=float,
        help="Master volume in dB",
    )
    simulate_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    return parser


def _build_synth(
    algorithm_arg: str,
    config_path: Optional[Path],
    clock: FrameClock,
) -> DroneSynth:
    config = load_config(config_path) if config_path else SynthConfig()
    algorithm = resolve_algorithm(algorithm_arg)
    context = AudioContext()
    synth = DroneSynth(context, clock, algorithm, config)
    synth.set_clipper(create_clipper(context, config.clipper_threshold))
    return synth


def cmd_presets(args: argparse.Namespace) -> int:
    """Handle the presets command."""
    for name in list_presets():
        print(f"{name:10s} {get_preset(name).to_json()}")
    return 0


def cmd_describe(args: argparse.Namespace) -> int:
    """Handle the describe command."""
    try:
        synth = _build_synth(args.algorithm, args.config, FrameClock())
    except FmDroneError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    synth.start()
    graph = synth.graph
    warnings = check_algorithm(synth.algorithm)

    if args.json:
        data = {
            "algorithm": synth.algorithm.to_dict(),
            "nodes": [
                {"id": node.id, "name": node.name, "kind": node.kind.value}
                for node in graph.nodes
            ],
            "edges": [
                {
                    "source": edge.source_id,
                    "destination": edge.destination_id,
                    "param": edge.param,
                }
                for edge in graph.edges()
            ],
            "delays": [node.name for node in graph.delay_nodes()],
            "modulations": synth.chain.modulation_count(),
            "connections": graph.connection_count(),
            "warnings": warnings,
        }
        print(json.dumps(data, indent=2))
    else:
        print(f"Algorithm: {synth.algorithm.to_json()}")
        print(f"  Nodes: {len(graph)}")
        print(f"  Connections: {graph.connection_count()}")
        print(f"  Modulations: {synth.chain.modulation_count()}")
        delays = graph.delay_nodes()
        print(f"  Delays: {', '.join(d.name for d in delays) if delays else '(none)'}")
        print()
        for line in graph.describe():
            print(f"  {line}")
        for warning in warnings:
            print(f"Warning: {warning}", file=sys.stderr)

    synth.stop()
    return 0


def cmd_simulate(args: argparse.Namespace) -> int:
    """Handle the simulate command."""
    if args.frames < 0:
        print("Error: --frames must not be negative", file=sys.stderr)
        return 1

    try:
        clock = FrameClock(frame_rate=args.frame_rate)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        synth = _build_synth(args.algorithm, args.config, clock)
    except FmDroneError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.base_freq is not None:
        synth.set_base_freq(args.base_freq)
    if args.depth is not None:
        synth.set_mod_depth(args.depth)
    if args.volume_db is not None:
        synth.set_volume(args.volume_db)

    # the audio clock follows the frame clock; scheduled before the synth
    # so ramps are computed against the current frame's time
    clock.schedule(
        lambda now: synth.context.advance(clock.frame_interval), name="audio-clock"
    )
    synth.start()
    synth.update_target_amplitudes(args.x, args.y)

    history: list[dict] = []
    clock.schedule(lambda now: history.append(synth.snapshot()), name="monitor")
    clock.run(args.frames)

    final = synth.snapshot()
    synth.stop()

    if args.json:
        final["frames"] = args.frames
        final["time"] = clock.now
        print(json.dumps(final, indent=2))
    else:
        print(f"Simulated {args.frames} frames ({clock.now:.3f} s)")
        print(f"  Base frequency: {final['base_freq']} Hz")
        print(f"  Modulation depth: {final['mod_depth']}")
        print(f"  Volume: {final['current_volume']:.4f} -> {final['target_volume']:.4f}")
        for i, (current, target) in enumerate(
            zip(final["current_amps"], final["target_amps"])
        ):
            print(f"  Operator {i}: {current:.4f} -> {target:.4f}")
        if history:
            print(f"  Snapshots recorded: {len(history)}")

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s"
        )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "presets": cmd_presets,
        "describe": cmd_describe,
        "simulate": cmd_simulate,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
