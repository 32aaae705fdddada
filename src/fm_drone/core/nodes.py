"""
Node wrappers for the routing graph.

A GraphNode binds an opaque engine handle (oscillator, gain, delay, ...)
to a graph-assigned id, a display name and a kind tag fixed at creation.
Auto-inserted delay nodes also carry a DelayLink recording which
connection they were created for.
"""

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from fm_drone.core.graph import RoutingGraph


class NodeKind(enum.Enum):
    """Capability tag for a graph node, decided when the node is created."""

    OSCILLATOR = "oscillator"
    GAIN = "gain"
    DELAY = "delay"
    WAVE_SHAPER = "wave-shaper"
    OTHER = "other"

    @property
    def is_source(self) -> bool:
        """True for kinds that can be started and stopped."""
        return self is NodeKind.OSCILLATOR


@dataclass(frozen=True)
class DelayLink:
    """Identity of an auto-inserted delay node.

    Attributes:
        source_id: Id of the node feeding the delay.
        destination_id: Id of the node (or node parameter) the delay feeds.
        param: Parameter name when the delay feeds a parameter, else None.
    """

    source_id: int
    destination_id: int
    param: Optional[str] = None

    def touches(self, node_id: int) -> bool:
        return node_id in (self.source_id, self.destination_id)


@dataclass(frozen=True)
class Edge:
    """A recorded connection, as reported by RoutingGraph.edges()."""

    source_id: int
    destination_id: int
    param: Optional[str] = None


class GraphNode:
    """A primitive registered in a RoutingGraph.

    Connection methods delegate to the owning graph so that every
    connection goes through deduplication and cycle breaking.
    """

    def __init__(
        self,
        handle: Any,
        node_id: int,
        name: str,
        kind: NodeKind,
        graph: "RoutingGraph",
        link: Optional[DelayLink] = None,
    ):
        self.handle = handle
        self.id = node_id
        self.name = name
        self.kind = kind
        self.link = link
        self._graph = graph

    def __repr__(self) -> str:
        return f"GraphNode(id={self.id}, name={self.name!r}, kind={self.kind.value})"

    @property
    def is_delay(self) -> bool:
        return self.kind is NodeKind.DELAY

    @property
    def graph(self) -> "RoutingGraph":
        return self._graph

    def connect(self, destination: "GraphNode") -> bool:
        return self._graph.connect(self, destination)

    def connect_to_param(self, destination: "GraphNode", param_name: str) -> bool:
        return self._graph.connect_to_param(self, destination, param_name)

    def disconnect(self, destination: Optional["GraphNode"] = None) -> None:
        self._graph.disconnect(self, destination)

    # convenience accessors for the common parameters
    @property
    def frequency(self) -> Any:
        return getattr(self.handle, "frequency", None)

    @property
    def gain(self) -> Any:
        return getattr(self.handle, "gain", None)

    def start(self, when: Optional[float] = None) -> None:
        if self.kind.is_source:
            self.handle.start(when)

    def stop(self, when: Optional[float] = None) -> None:
        if self.kind.is_source:
            self.handle.stop(when)
