"""
4-operator FM drone synthesizer.

Lifecycle:

    Idle --start()--> Running --stop()--> Idle

start() stops any running voice, recreates every node (oscillators are
one-shot sources), builds the chain for the current algorithm, starts
the oscillators and only then schedules the smoothing task. stop()
cancels the smoothing task before any node is stopped or disconnected.
While Idle, set_algorithm() only stores the algorithm for the next
start().
"""

import enum
import logging
import math
from typing import TYPE_CHECKING, Any, Optional, Union

from fm_drone.core.algorithm import NUM_OPERATORS, RoutingAlgorithm, parse_algorithm
from fm_drone.core.chain import ChainBuilder, Operator
from fm_drone.core.config import SynthConfig
from fm_drone.core.graph import RoutingGraph
from fm_drone.core.nodes import GraphNode, NodeKind
from fm_drone.core.scheduler import FrameClock, PeriodicTask

if TYPE_CHECKING:
    from fm_drone.engine import AudioContext

logger = logging.getLogger(__name__)


def cos_weighting(t: float) -> float:
    """Perceptual amplitude curve: 0 -> 0, 1 -> 1, concave in between."""
    return math.cos((1 - t) * math.pi * 0.5)


def db_to_gain(db: float) -> float:
    return math.pow(10, db / 20)


class SynthState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class DroneSynth:
    """Owns the routing graph and drives it through a ChainBuilder.

    Args:
        context: Engine context providing primitives and current_time.
        clock: Frame clock that runs the smoothing task.
        algorithm: Initial routing (a RoutingAlgorithm, dict or JSON string).
        config: Tuning and smoothing constants.
    """

    def __init__(
        self,
        context: "AudioContext",
        clock: FrameClock,
        algorithm: Union[RoutingAlgorithm, dict, str, None] = None,
        config: Optional[SynthConfig] = None,
    ):
        self.context = context
        self.clock = clock
        self.config = config or SynthConfig()
        self.graph = RoutingGraph(context)
        self.algorithm = self._coerce(algorithm) if algorithm is not None else RoutingAlgorithm()

        self.operators = [
            Operator(
                index=i,
                ratio=self.config.freq_ratios[i],
                beat=self.config.beat_freqs[i],
                target_amp=self.config.initial_amps[i],
                current_amp=self.config.initial_amps[i],
            )
            for i in range(NUM_OPERATORS)
        ]
        self.chain = ChainBuilder(
            self.graph,
            self.operators,
            base_freq=self.config.base_freq,
            mod_depth=self.config.mod_depth,
        )

        self.target_volume = self.config.volume
        self.current_volume = self.config.volume

        self._state = SynthState.IDLE
        self._smoothing: Optional[PeriodicTask] = None
        self._destination: Optional[GraphNode] = None
        self._clipper: Optional[GraphNode] = None

    @staticmethod
    def _coerce(algorithm: Union[RoutingAlgorithm, dict, str]) -> RoutingAlgorithm:
        if isinstance(algorithm, RoutingAlgorithm):
            return algorithm
        return parse_algorithm(algorithm)

    # -- state --------------------------------------------------------------

    @property
    def state(self) -> SynthState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self.state is SynthState.RUNNING

    @property
    def base_freq(self) -> float:
        return self.chain.base_freq

    @property
    def mod_depth(self) -> float:
        return self.chain.mod_depth

    @property
    def master(self) -> Optional[GraphNode]:
        return self.chain.master

    @property
    def smoothing_task(self) -> Optional[PeriodicTask]:
        return self._smoothing

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Recreate all nodes, build the chain and start sounding."""
        self.stop()
        # nodes left by a start() that raised part-way
        self._release_nodes()

        for op in self.operators:
            osc = self.context.create_oscillator()
            osc.type = "sine"
            osc.frequency.value = op.frequency(self.base_freq)
            op.oscillator = self.graph.create_node(osc, f"osc_{op.index}")

            gain = self.context.create_gain()
            gain.gain.value = cos_weighting(op.current_amp) * self.config.carrier_scale
            op.carrier_gain = self.graph.create_node(gain, f"carrier_gain_{op.index}")

        master = self.context.create_gain()
        master.gain.value = self.current_volume
        self.chain.master = self.graph.create_node(master, "master_output")

        self.chain.build(self.algorithm)

        for op in self.operators:
            op.oscillator.start()

        self._state = SynthState.RUNNING
        self._smoothing = self.clock.schedule(self._smooth, name="smoothing")
        logger.info(
            "Synth started: %d connections, %d delay(s)",
            self.graph.connection_count(),
            len(self.graph.delay_nodes()),
        )

    def stop(self) -> None:
        """Cancel smoothing, stop the oscillators and release every node."""
        self._cancel_smoothing()
        if not self.is_running:
            return
        for op in self.operators:
            if op.oscillator is not None:
                op.oscillator.stop()
        self._release_nodes()
        self._state = SynthState.IDLE
        logger.info("Synth stopped")

    def _cancel_smoothing(self) -> None:
        if self._smoothing is not None:
            self._smoothing.cancel()
            self._smoothing = None

    def _release_nodes(self) -> None:
        self.chain.teardown()
        for op in self.operators:
            for node in (op.oscillator, op.carrier_gain):
                if node is not None:
                    self.graph.remove_node(node)
            op.oscillator = None
            op.carrier_gain = None
        if self.chain.master is not None:
            self.graph.remove_node(self.chain.master)
            self.chain.master = None

    # -- routing ------------------------------------------------------------

    def set_algorithm(self, algorithm: Union[RoutingAlgorithm, dict, str]) -> None:
        """Switch routing; rebuilds immediately only while running.

        Raises:
            ValidationError: If the descriptor is malformed.
        """
        self.algorithm = self._coerce(algorithm)
        logger.info("Switching to algorithm: %s", self.algorithm.to_json())
        if self.is_running:
            self.chain.rebuild(self.algorithm)
            logger.debug(
                "Audio graph after algorithm change: %d connections",
                self.graph.connection_count(),
            )
            self.graph.log_connections()

    def set_clipper(self, handle: Any) -> GraphNode:
        """Attach an output stage between the master gain and the destination.

        The stage persists across start()/stop(); attaching a new one
        replaces the previous stage.
        """
        if self._destination is None:
            self._destination = self.graph.create_node(
                self.context.destination, "destination", NodeKind.OTHER
            )
        if self._clipper is not None:
            self.graph.remove_node(self._clipper)

        self._clipper = self.graph.create_node(handle, "clipper")
        self._clipper.connect(self._destination)
        self.chain.output = self._clipper
        if self.chain.master is not None:
            self.chain.master.connect(self._clipper)
        return self._clipper

    # -- parameters ---------------------------------------------------------

    def set_mod_depth(self, depth: float) -> None:
        self.chain.set_mod_depth(depth)

    def set_base_freq(self, freq: float) -> None:
        self.chain.set_base_freq(freq)

    def set_volume(self, db: float, immediate: bool = False) -> None:
        """Set the master volume target in dB (jump there if immediate)."""
        gain = db_to_gain(db)
        self.target_volume = gain
        if immediate:
            self.current_volume = gain

    def update_target_amplitudes(self, norm_x: float, norm_y: float) -> None:
        """Set operator targets from a position in the unit square.

        Each operator owns one corner: 0 top-left, 1 top-right,
        2 bottom-left, 3 bottom-right.
        """
        self.operators[0].target_amp = (1 - norm_x) * (1 - norm_y)
        self.operators[1].target_amp = norm_x * (1 - norm_y)
        self.operators[2].target_amp = (1 - norm_x) * norm_y
        self.operators[3].target_amp = norm_x * norm_y

    def _smooth(self, now: float) -> None:
        cfg = self.config
        scheduled_time = self.context.current_time + cfg.lookahead

        for op in self.operators:
            op.current_amp += (op.target_amp - op.current_amp) * cfg.amp_smoothing
            if op.carrier_gain is not None and op.carrier_gain.kind is NodeKind.GAIN:
                op.carrier_gain.gain.set_target_at_time(
                    cos_weighting(op.current_amp) * cfg.carrier_scale,
                    scheduled_time,
                    cfg.time_constant,
                )

        self.current_volume += (
            self.target_volume - self.current_volume
        ) * cfg.volume_smoothing
        master = self.chain.master
        if master is not None and master.kind is NodeKind.GAIN:
            master.gain.set_target_at_time(
                self.current_volume, scheduled_time, cfg.time_constant
            )

    # -- observation --------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Read-only view of the synth for visualization tasks."""
        return {
            "state": self.state.value,
            "algorithm": self.algorithm.to_dict(),
            "base_freq": self.base_freq,
            "mod_depth": self.mod_depth,
            "target_amps": [op.target_amp for op in self.operators],
            "current_amps": [op.current_amp for op in self.operators],
            "target_volume": self.target_volume,
            "current_volume": self.current_volume,
            "connections": self.graph.connection_count(),
            "delays": len(self.graph.delay_nodes()),
        }
