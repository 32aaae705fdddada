"""
Routing graph over opaque audio primitives.

The graph owns every primitive registered with it and records directed
edges as a per-source set of destination ids, so duplicate edges cannot
exist. Each connect call is checked for structural cycles; a connection
that would close one is routed through an auto-inserted delay node
instead (see fm_drone.core.cycles).

Typical flow:
    graph = RoutingGraph(context)
    osc = graph.create_node(context.create_oscillator(), "osc_0")
    amp = graph.create_node(context.create_gain(), "carrier_gain_0")
    osc.connect(amp)                       -> True, edge osc -> amp
    osc.connect(amp)                       -> True, no-op (already connected)
    amp.connect_to_param(osc, "frequency") -> True, via delay_1_to_0_frequency
"""

import logging
import numbers
from typing import Any, Optional

from fm_drone.core.cycles import CycleBreaker
from fm_drone.core.nodes import DelayLink, Edge, GraphNode, NodeKind

logger = logging.getLogger(__name__)


class RoutingGraph:
    """Directed graph of GraphNodes with deduplication and cycle breaking.

    Args:
        context: Engine context used to create delay primitives. When None,
            delays are created from the source handle's own context.
    """

    def __init__(self, context: Any = None):
        self.context = context
        self.cycle_breaker = CycleBreaker(self)
        self._nodes: dict[int, GraphNode] = {}
        self._connections: dict[int, set[int]] = {}
        # (source_id, destination_id) -> param name for parameter edges
        self._param_edges: dict[tuple[int, int], str] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return isinstance(node, GraphNode) and self._nodes.get(node.id) is node

    # -- registry -----------------------------------------------------------

    def create_node(
        self,
        handle: Any,
        name: Optional[str] = None,
        kind: Optional[NodeKind] = None,
        link: Optional[DelayLink] = None,
    ) -> GraphNode:
        """Register a primitive and return its graph node.

        Args:
            handle: Engine primitive (anything with connect/disconnect).
            name: Display name; defaults to "Node{id}".
            kind: Capability tag; defaults to the handle's `kind` attribute,
                or NodeKind.OTHER.
            link: Delay identity, only set by the cycle breaker.
        """
        node_id = self._next_id
        self._next_id += 1

        if kind is None:
            kind = getattr(handle, "kind", NodeKind.OTHER)
            if not isinstance(kind, NodeKind):
                kind = NodeKind.OTHER

        node = GraphNode(handle, node_id, name or f"Node{node_id}", kind, self, link)
        self._nodes[node_id] = node
        self._connections[node_id] = set()
        logger.debug("Created node %s (%s)", node.name, kind.value)
        return node

    def remove_node(self, node: GraphNode) -> None:
        """Disconnect a node from everything and drop it from the registry.

        Removes edges where the node is source or destination, and every
        delay node created for a connection that started or ended here.
        """
        if node not in self:
            return

        for source_id, destinations in list(self._connections.items()):
            if source_id != node.id and node.id in destinations:
                self._disconnect_primitive(self._nodes[source_id], node)

        self.cycle_breaker.remove_delays_touching(node.id)
        self._disconnect_all(node)

        del self._nodes[node.id]
        del self._connections[node.id]
        logger.debug("Removed node from graph: %s", node.name)

    def get_node(self, node_id: int) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def find_node(self, name: str) -> Optional[GraphNode]:
        for node in self._nodes.values():
            if node.name == name:
                return node
        return None

    @property
    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    # -- connections --------------------------------------------------------

    def connect(self, source: GraphNode, destination: GraphNode) -> bool:
        """Connect source to destination.

        Returns:
            True if the nodes are connected afterwards (directly, already,
            or through a delay), False if the primitive refused.
        """
        if not self._check_live(source, destination):
            return False

        if self._is_routed(source, destination):
            logger.debug("Already connected: %s => %s", source.name, destination.name)
            return True

        if self.would_create_cycle(source.id, destination.id):
            logger.warning(
                "Connection would create cycle: %s => %s; "
                "routing through intermediate delay",
                source.name,
                destination.name,
            )
            return self.cycle_breaker.insert_delay(source, destination)

        return self.connect_primitive(source, destination)

    def connect_to_param(
        self, source: GraphNode, destination: GraphNode, param_name: str
    ) -> bool:
        """Connect source to a named parameter of destination.

        The edge is recorded against the destination node's id, exactly
        like a node-to-node edge.

        Returns:
            False if the parameter does not exist or is not numeric, or if
            the primitive refused; True otherwise.
        """
        if not self._has_numeric_param(destination, param_name):
            logger.warning("Parameter %s not found on %s", param_name, destination.name)
            return False

        if not self._check_live(source, destination):
            return False

        if self._is_routed(source, destination):
            logger.debug(
                "Already connected: %s => %s.%s",
                source.name,
                destination.name,
                param_name,
            )
            return True

        if self.would_create_cycle(source.id, destination.id):
            logger.warning(
                "Parameter connection would create cycle: %s => %s.%s",
                source.name,
                destination.name,
                param_name,
            )
            return self.cycle_breaker.insert_delay(source, destination, param_name)

        return self.connect_primitive(source, destination, param_name)

    def connect_primitive(
        self,
        source: GraphNode,
        destination: GraphNode,
        param_name: Optional[str] = None,
    ) -> bool:
        """Connect the underlying primitives and record the edge.

        Skips deduplication and cycle checks; used by connect() and by the
        cycle breaker once the policy has been applied.
        """
        label = self._label(destination, param_name)
        try:
            source.handle.connect(self._target(destination, param_name))
        except Exception as e:
            logger.error("Failed to connect %s to %s: %s", source.name, label, e)
            return False

        self._connections[source.id].add(destination.id)
        if param_name is not None:
            self._param_edges[(source.id, destination.id)] = param_name
        logger.debug("Connected: %s => %s", source.name, label)
        return True

    def disconnect(
        self, source: GraphNode, destination: Optional[GraphNode] = None
    ) -> None:
        """Remove one connection, or every connection from source.

        Delay nodes interposed for the removed connection(s) are removed
        first so they cannot be left orphaned.
        """
        if source not in self:
            return

        if destination is not None:
            if destination not in self:
                return
            if destination.link is not None and destination.link.source_id == source.id:
                # cutting the feed of an inserted delay removes the delay
                self.remove_node(destination)
                return
            self.cycle_breaker.remove_delays_between(source.id, destination.id)
            self._disconnect_primitive(source, destination)
        else:
            self.cycle_breaker.remove_delays_from(source.id)
            self._disconnect_all(source)

    def _disconnect_primitive(self, source: GraphNode, destination: GraphNode) -> None:
        destinations = self._connections[source.id]
        if destination.id not in destinations:
            return
        param_name = self._param_edges.pop((source.id, destination.id), None)
        source.handle.disconnect(self._target(destination, param_name))
        destinations.discard(destination.id)
        logger.debug(
            "Disconnected: %s => %s", source.name, self._label(destination, param_name)
        )

    def _disconnect_all(self, source: GraphNode) -> None:
        source.handle.disconnect()
        for destination_id in self._connections[source.id]:
            self._param_edges.pop((source.id, destination_id), None)
        self._connections[source.id] = set()
        logger.debug("Disconnected all from: %s", source.name)

    # -- cycle detection ----------------------------------------------------

    def would_create_cycle(self, source_id: int, destination_id: int) -> bool:
        """Check whether adding source -> destination closes a cycle.

        The candidate edge is added speculatively, a DFS runs from the
        destination, and the edge is rolled back whatever the outcome.
        Delay nodes terminate the search: a path through a unit delay is
        not a structural cycle.
        """
        successors = self._connections[source_id]
        added = destination_id not in successors
        successors.add(destination_id)
        try:
            return self._has_cycle_from(destination_id)
        finally:
            if added:
                successors.discard(destination_id)

    def _has_cycle_from(self, start_id: int) -> bool:
        WHITE, GRAY, BLACK = 0, 1, 2
        color: dict[int, int] = {}

        def _dfs_cycle(u: int) -> bool:
            node = self._nodes.get(u)
            if node is not None and node.is_delay:
                return False
            color[u] = GRAY
            for v in self._connections.get(u, ()):
                neighbor = self._nodes.get(v)
                if neighbor is not None and neighbor.is_delay:
                    continue
                state = color.get(v, WHITE)
                if state == GRAY:
                    return True  # back edge = cycle
                if state == WHITE and _dfs_cycle(v):
                    return True
            color[u] = BLACK
            return False

        return _dfs_cycle(start_id)

    # -- introspection ------------------------------------------------------

    def is_connected(self, source: GraphNode, destination: GraphNode) -> bool:
        return destination.id in self._connections.get(source.id, ())

    def successors(self, node: GraphNode) -> list[GraphNode]:
        return [
            self._nodes[i]
            for i in sorted(self._connections.get(node.id, ()))
            if i in self._nodes
        ]

    def edges(self) -> list[Edge]:
        result: list[Edge] = []
        for source_id in sorted(self._connections):
            for destination_id in sorted(self._connections[source_id]):
                param_name = self._param_edges.get((source_id, destination_id))
                result.append(Edge(source_id, destination_id, param_name))
        return result

    def connection_count(self) -> int:
        return sum(len(destinations) for destinations in self._connections.values())

    def delay_nodes(self) -> list[GraphNode]:
        return [node for node in self._nodes.values() if node.is_delay]

    def describe(self) -> list[str]:
        """One line per node: "name => [destination, ...]"."""
        lines = []
        for node_id, destinations in self._connections.items():
            node = self._nodes[node_id]
            names = []
            for destination_id in sorted(destinations):
                destination = self._nodes.get(destination_id)
                name = destination.name if destination else f"Node{destination_id}"
                param_name = self._param_edges.get((node_id, destination_id))
                names.append(f"{name}.{param_name}" if param_name else name)
            lines.append(f"{node.name} => [{', '.join(names)}]")
        return lines

    def log_connections(self, level: int = logging.DEBUG) -> None:
        logger.log(level, "Audio graph connections:")
        for line in self.describe():
            logger.log(level, "  %s", line)

    # -- helpers ------------------------------------------------------------

    def _is_routed(self, source: GraphNode, destination: GraphNode) -> bool:
        """Directly connected, or already routed through a delay."""
        if self.is_connected(source, destination):
            return True
        return bool(self.cycle_breaker.delays_between(source.id, destination.id))

    def _check_live(self, source: GraphNode, destination: GraphNode) -> bool:
        for node in (source, destination):
            if node not in self:
                logger.error("Node %s is not registered in this graph", node.name)
                return False
        return True

    @staticmethod
    def _has_numeric_param(node: GraphNode, param_name: str) -> bool:
        param = getattr(node.handle, param_name, None)
        value = getattr(param, "value", None)
        return isinstance(value, numbers.Real) and not isinstance(value, bool)

    @staticmethod
    def _target(node: GraphNode, param_name: Optional[str]) -> Any:
        if param_name is None:
            return node.handle
        return getattr(node.handle, param_name)

    @staticmethod
    def _label(node: GraphNode, param_name: Optional[str]) -> str:
        return f"{node.name}.{param_name}" if param_name else node.name
