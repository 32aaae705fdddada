"""Pytest configuration and fixtures for fm_drone tests."""

import pytest

from fm_drone.core.algorithm import get_preset
from fm_drone.core.graph import RoutingGraph
from fm_drone.core.nodes import NodeKind
from fm_drone.core.scheduler import FrameClock
from fm_drone.core.synth import DroneSynth
from fm_drone.engine import AudioContext


def _is_acyclic(graph: RoutingGraph) -> bool:
    """Kahn's algorithm over the graph with delay nodes as terminators.

    Edges leaving a delay node are dropped, so a feedback loop that passes
    through a delay does not count as a cycle.
    """
    ids = [node.id for node in graph.nodes]
    adj: dict[int, list[int]] = {i: [] for i in ids}
    in_degree: dict[int, int] = {i: 0 for i in ids}
    for edge in graph.edges():
        if graph.get_node(edge.source_id).kind is NodeKind.DELAY:
            continue
        adj[edge.source_id].append(edge.destination_id)
        in_degree[edge.destination_id] += 1

    queue = [i for i in ids if in_degree[i] == 0]
    visited = 0
    while queue:
        node_id = queue.pop()
        visited += 1
        for successor in adj[node_id]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)
    return visited == len(ids)


@pytest.fixture
def is_acyclic():
    """Fixture providing the delay-aware acyclicity check."""
    return _is_acyclic


@pytest.fixture
def context() -> AudioContext:
    """Fresh reference-engine context."""
    return AudioContext()


@pytest.fixture
def clock() -> FrameClock:
    """Frame clock at the nominal 60 Hz."""
    return FrameClock()


@pytest.fixture
def graph(context: AudioContext) -> RoutingGraph:
    """Empty routing graph bound to the test context."""
    return RoutingGraph(context)


@pytest.fixture
def synth(context: AudioContext, clock: FrameClock) -> DroneSynth:
    """Idle synth configured with the cross-feedback algorithm."""
    return DroneSynth(context, clock, get_preset("cross"))
