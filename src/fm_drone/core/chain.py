"""
Chain builder: realizes a RoutingAlgorithm on a RoutingGraph.

For 4 operators and an algorithm {"mod": [[m, t], ...], "out": [o, ...]}:

    osc_m -> mod_gain_m_t -> osc_t.frequency      for each modulation pair
    osc_o -> carrier_gain_o -> master_output     for each output
    master_output -> output stage                if one is attached

Switching algorithms is a full teardown followed by a full rebuild; the
operator count is fixed and small, so no incremental diff is attempted.
Live frequency and depth changes rewrite parameter values in place.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fm_drone.core.algorithm import RoutingAlgorithm
from fm_drone.core.graph import RoutingGraph
from fm_drone.core.nodes import GraphNode, NodeKind

logger = logging.getLogger(__name__)


@dataclass
class Operator:
    """One FM voice: an oscillator plus its carrier gain.

    Attributes:
        index: Operator position, 0..3.
        ratio: Frequency ratio against the base frequency.
        beat: Fixed offset in Hz added after the ratio.
        target_amp: Amplitude the smoothing task moves towards.
        current_amp: Smoothed amplitude last written to the carrier gain.
    """

    index: int
    ratio: float
    beat: float
    target_amp: float = 0.25
    current_amp: float = 0.25
    oscillator: Optional[GraphNode] = None
    carrier_gain: Optional[GraphNode] = None

    def frequency(self, base_freq: float) -> float:
        return base_freq * self.ratio + self.beat


@dataclass
class ModulationGain:
    """A modulation-gain node scaling one operator's output into another's
    frequency parameter."""

    source_index: int
    target_index: int
    node: GraphNode

    @property
    def key(self) -> str:
        return f"{self.source_index}_{self.target_index}"


class ChainBuilder:
    """Translates algorithms into graph operations for a fixed operator set.

    The builder never owns primitives; it holds GraphNode references into
    the graph, which owns them.
    """

    def __init__(
        self,
        graph: RoutingGraph,
        operators: list[Operator],
        base_freq: float = 55.0,
        mod_depth: float = 1.0,
    ):
        self.graph = graph
        self.operators = operators
        self.base_freq = base_freq
        self.mod_depth = mod_depth
        self.master: Optional[GraphNode] = None
        self.output: Optional[GraphNode] = None
        self.mod_gains: dict[tuple[int, int], ModulationGain] = {}

    def operator(self, index: int) -> Optional[Operator]:
        if 0 <= index < len(self.operators):
            return self.operators[index]
        return None

    def oscillator(self, index: int) -> Optional[GraphNode]:
        op = self.operator(index)
        return op.oscillator if op else None

    def carrier_gain(self, index: int) -> Optional[GraphNode]:
        op = self.operator(index)
        return op.carrier_gain if op else None

    # -- topology -----------------------------------------------------------

    def build(self, algorithm: RoutingAlgorithm) -> None:
        """Materialize an algorithm on the current nodes.

        Steps referring to an operator index with no operator, or to an
        oscillator that does not exist yet, are skipped.
        """
        self.reset_frequencies()

        for source, target in algorithm.mod:
            self._build_modulation(source, target)

        for index in algorithm.out:
            osc = self.oscillator(index)
            carrier = self.carrier_gain(index)
            if osc is None or carrier is None:
                logger.debug("Skipping output %d: no operator nodes", index)
                continue
            osc.connect(carrier)
            if self.master is not None:
                carrier.connect(self.master)

        if self.master is not None and self.output is not None:
            self.master.connect(self.output)

    def _build_modulation(self, source: int, target: int) -> None:
        target_op = self.operator(target)
        if self.operator(source) is None or target_op is None:
            logger.debug("Skipping modulation %d -> %d: index out of range", source, target)
            return
        if (source, target) in self.mod_gains:
            logger.debug("Skipping repeated modulation %d -> %d", source, target)
            return

        context = self._context(source, target)
        if context is None:
            logger.warning(
                "Cannot create modulation gain %d -> %d: no audio context", source, target
            )
            return

        handle = context.create_gain()
        handle.gain.value = self.mod_depth * target_op.frequency(self.base_freq)
        node = self.graph.create_node(handle, f"mod_gain_{source}_{target}", NodeKind.GAIN)
        self.mod_gains[(source, target)] = ModulationGain(source, target, node)

        modulator = self.oscillator(source)
        if modulator is not None:
            modulator.connect(node)
        carrier = self.oscillator(target)
        if carrier is not None:
            node.connect_to_param(carrier, "frequency")

    def _context(self, source: int, target: int) -> Any:
        """The graph's context, else the context of an operator's oscillator."""
        if self.graph.context is not None:
            return self.graph.context
        for index in (source, target):
            osc = self.oscillator(index)
            if osc is not None:
                return osc.handle.context
        return None

    def teardown(self) -> None:
        """Disconnect all operator nodes and remove every modulation gain."""
        for op in self.operators:
            if op.oscillator is not None:
                op.oscillator.disconnect()
            if op.carrier_gain is not None:
                op.carrier_gain.disconnect()

        for mod_gain in self.mod_gains.values():
            self.graph.remove_node(mod_gain.node)
        self.mod_gains.clear()

        if self.master is not None:
            self.master.disconnect()

    def rebuild(self, algorithm: RoutingAlgorithm) -> None:
        self.teardown()
        self.build(algorithm)

    def modulation_count(self) -> int:
        return len(self.mod_gains)

    # -- parameters ---------------------------------------------------------

    def reset_frequencies(self) -> None:
        for op in self.operators:
            if op.oscillator is not None and op.oscillator.kind is NodeKind.OSCILLATOR:
                op.oscillator.frequency.value = op.frequency(self.base_freq)

    def set_base_freq(self, freq: float) -> None:
        """Retune all live oscillators and modulation gains.

        Modulation gains are rescaled from the target operator's ratio
        alone; beat offsets only enter on build and on depth changes.
        """
        self.base_freq = freq
        self.reset_frequencies()
        for mod_gain in self.mod_gains.values():
            target_op = self.operators[mod_gain.target_index]
            mod_gain.node.gain.value = self.mod_depth * (freq * target_op.ratio)

    def set_mod_depth(self, depth: float) -> None:
        self.mod_depth = depth
        for mod_gain in self.mod_gains.values():
            target_op = self.operators[mod_gain.target_index]
            mod_gain.node.gain.value = depth * target_op.frequency(self.base_freq)
