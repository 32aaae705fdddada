"""
fm_drone - A 4-operator FM drone synthesizer with runtime signal routing.

This package provides:
- A routing graph over audio primitives that deduplicates connections and
  breaks feedback cycles by inserting unit-delay nodes
- A chain builder that realizes declarative FM algorithms on that graph
  and keeps it consistent as frequency, depth and volume change
- A frame-clocked smoothing task for operator amplitudes and master volume
- An offline reference engine for running the synth without audio hardware
"""

from fm_drone.core.algorithm import RoutingAlgorithm, parse_algorithm
from fm_drone.core.config import SynthConfig
from fm_drone.core.graph import RoutingGraph
from fm_drone.core.scheduler import FrameClock
from fm_drone.core.synth import DroneSynth
from fm_drone.engine import AudioContext
from fm_drone.errors import FmDroneError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AudioContext",
    "DroneSynth",
    "FmDroneError",
    "FrameClock",
    "RoutingAlgorithm",
    "RoutingGraph",
    "SynthConfig",
    "parse_algorithm",
]
