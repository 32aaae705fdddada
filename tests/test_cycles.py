"""Tests for delay insertion, lookup and teardown."""

from fm_drone.core.cycles import CycleBreaker
from fm_drone.core.graph import RoutingGraph
from fm_drone.core.nodes import DelayLink
from fm_drone.engine import AudioContext
from fm_drone.errors import EngineError


class BrokenContext:
    """Context whose delay factory always fails."""

    def create_delay(self):
        raise EngineError("no delay lines left")


def _ring(graph: RoutingGraph, context: AudioContext):
    """a -> b -> a, the second edge through a delay."""
    a = graph.create_node(context.create_gain(), "a")
    b = graph.create_node(context.create_gain(), "b")
    a.connect(b)
    b.connect(a)
    return a, b


class TestDelayNames:
    """Test generated delay names."""

    def test_node_name(self):
        assert CycleBreaker.delay_name(3, 1) == "delay_3_to_1"

    def test_param_name(self):
        assert CycleBreaker.delay_name(3, 1, "frequency") == "delay_3_to_1_frequency"

    def test_link_touches_endpoints(self):
        link = DelayLink(3, 1, "frequency")
        assert link.touches(3)
        assert link.touches(1)
        assert not link.touches(2)


class TestDelayLookup:
    """Test find_delay() and the delays_* queries."""

    def test_find_delay_by_link(self, graph, context):
        """Delays are found by their structured identity."""
        a, b = _ring(graph, context)
        breaker = graph.cycle_breaker

        delay = breaker.find_delay(b.id, a.id)
        assert delay is not None
        assert delay.link == DelayLink(b.id, a.id)
        assert breaker.find_delay(a.id, b.id) is None
        assert breaker.find_delay(b.id, a.id, "gain") is None

    def test_queries(self, graph, context):
        """delays_from/delays_between/delays_touching select by endpoint."""
        a, b = _ring(graph, context)
        breaker = graph.cycle_breaker
        (delay,) = breaker.delays()

        assert breaker.delays_from(b.id) == [delay]
        assert breaker.delays_from(a.id) == []
        assert breaker.delays_between(b.id, a.id) == [delay]
        assert breaker.delays_touching(a.id) == [delay]
        assert breaker.delays_touching(b.id) == [delay]

    def test_renamed_delay_still_found(self, graph, context):
        """Lookup does not depend on the display name."""
        a, b = _ring(graph, context)
        (delay,) = graph.delay_nodes()
        delay.name = "renamed"
        assert graph.cycle_breaker.find_delay(b.id, a.id) is delay


class TestDelayTeardown:
    """Test that removal is the exact inverse of insertion."""

    def test_remove_delays_between(self, graph, context):
        """Removing a pair's delay removes both of its edges."""
        a, b = _ring(graph, context)
        assert graph.connection_count() == 3

        removed = graph.cycle_breaker.remove_delays_between(b.id, a.id)

        assert removed == 1
        assert graph.delay_nodes() == []
        assert graph.connection_count() == 1
        assert b.handle.outputs == []

    def test_remove_delays_touching(self, graph, context):
        """Delays are removed when either endpoint goes away."""
        a, b = _ring(graph, context)
        assert graph.cycle_breaker.remove_delays_touching(a.id) == 1
        assert graph.cycle_breaker.remove_delays_touching(a.id) == 0


class TestDelayInsertionFailure:
    """Test that a failed insertion leaves no partial delay behind."""

    def test_delay_factory_failure(self, context):
        """If no delay can be created the connection fails."""
        graph = RoutingGraph(BrokenContext())
        a = graph.create_node(context.create_gain(), "a")
        b = graph.create_node(context.create_gain(), "b")
        a.connect(b)

        assert b.connect(a) is False
        assert graph.delay_nodes() == []
        assert graph.connection_count() == 1

    def test_leg_failure_removes_delay(self, context):
        """A delay the source cannot reach is cleaned up again."""
        graph = RoutingGraph(AudioContext())
        a = graph.create_node(context.create_gain(), "a")
        b = graph.create_node(context.create_gain(), "b")
        a.connect(b)

        assert b.connect(a) is False
        assert graph.delay_nodes() == []
        assert len(graph) == 2
        assert graph.connection_count() == 1

    def test_context_falls_back_to_source_handle(self, context):
        """Without a graph context the source's own context makes the delay."""
        graph = RoutingGraph()
        a = graph.create_node(context.create_gain(), "a")
        b = graph.create_node(context.create_gain(), "b")
        a.connect(b)

        assert b.connect(a)
        (delay,) = graph.delay_nodes()
        assert delay.handle.context is context
