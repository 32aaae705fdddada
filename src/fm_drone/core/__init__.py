"""
Core modules for fm_drone.
"""

from fm_drone.core.algorithm import RoutingAlgorithm
from fm_drone.core.chain import ChainBuilder
from fm_drone.core.cycles import CycleBreaker
from fm_drone.core.graph import RoutingGraph
from fm_drone.core.scheduler import FrameClock, PeriodicTask
from fm_drone.core.synth import DroneSynth

__all__ = [
    "RoutingAlgorithm",
    "ChainBuilder",
    "CycleBreaker",
    "RoutingGraph",
    "FrameClock",
    "PeriodicTask",
    "DroneSynth",
]
