"""
Cycle breaking by unit-delay insertion.

When a connection would close a structural cycle, the routing graph hands
it to the CycleBreaker, which routes it through a freshly created delay
node instead:

    source -> delay_{src}_to_{dst}[_{param}] -> destination[.param]

The delay node carries a DelayLink naming the connection it was made
for. Lookup and teardown go through that link; the generated name is for
display only.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from fm_drone.core.nodes import DelayLink, GraphNode, NodeKind

if TYPE_CHECKING:
    from fm_drone.core.graph import RoutingGraph

logger = logging.getLogger(__name__)


class CycleBreaker:
    """Creates, finds and removes the delay nodes of a RoutingGraph."""

    def __init__(self, graph: "RoutingGraph"):
        self.graph = graph

    @staticmethod
    def delay_name(
        source_id: int, destination_id: int, param: Optional[str] = None
    ) -> str:
        name = f"delay_{source_id}_to_{destination_id}"
        return f"{name}_{param}" if param else name

    def insert_delay(
        self,
        source: GraphNode,
        destination: GraphNode,
        param: Optional[str] = None,
    ) -> bool:
        """Route source -> destination[.param] through a new delay node.

        Returns:
            True if both legs were connected. On failure the partially
            wired delay is removed again and False is returned.
        """
        try:
            handle = self._create_delay_handle(source)
        except Exception as e:
            logger.error(
                "Failed to create delay for %s => %s: %s",
                source.name,
                destination.name,
                e,
            )
            return False

        link = DelayLink(source.id, destination.id, param)
        delay = self.graph.create_node(
            handle,
            self.delay_name(source.id, destination.id, param),
            kind=NodeKind.DELAY,
            link=link,
        )

        if not (
            self.graph.connect_primitive(source, delay)
            and self.graph.connect_primitive(delay, destination, param)
        ):
            self.graph.remove_node(delay)
            return False

        target = f"{destination.name}.{param}" if param else destination.name
        logger.debug(
            "Connected via delay: %s => %s => %s", source.name, delay.name, target
        )
        return True

    def _create_delay_handle(self, source: GraphNode) -> Any:
        context = self.graph.context
        if context is None:
            context = source.handle.context
        return context.create_delay()

    # -- lookup -------------------------------------------------------------

    def delays(self) -> list[GraphNode]:
        return [node for node in self.graph.nodes if node.link is not None]

    def find_delay(
        self, source_id: int, destination_id: int, param: Optional[str] = None
    ) -> Optional[GraphNode]:
        wanted = DelayLink(source_id, destination_id, param)
        for node in self.delays():
            if node.link == wanted:
                return node
        return None

    def delays_between(self, source_id: int, destination_id: int) -> list[GraphNode]:
        return [
            node
            for node in self.delays()
            if node.link.source_id == source_id
            and node.link.destination_id == destination_id
        ]

    def delays_from(self, source_id: int) -> list[GraphNode]:
        return [node for node in self.delays() if node.link.source_id == source_id]

    def delays_touching(self, node_id: int) -> list[GraphNode]:
        return [node for node in self.delays() if node.link.touches(node_id)]

    # -- teardown -----------------------------------------------------------

    def remove_delays_between(self, source_id: int, destination_id: int) -> int:
        return self._remove(self.delays_between(source_id, destination_id))

    def remove_delays_from(self, source_id: int) -> int:
        return self._remove(self.delays_from(source_id))

    def remove_delays_touching(self, node_id: int) -> int:
        return self._remove(self.delays_touching(node_id))

    def _remove(self, delays: list[GraphNode]) -> int:
        for delay in delays:
            self.graph.remove_node(delay)
            logger.debug("Cleaned up intermediate delay: %s", delay.name)
        return len(delays)
