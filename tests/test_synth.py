"""Tests for DroneSynth lifecycle, routing switches and smoothing."""

import math

import pytest

from fm_drone.core.algorithm import get_preset
from fm_drone.core.config import SynthConfig
from fm_drone.core.synth import DroneSynth, SynthState, cos_weighting, db_to_gain
from fm_drone.engine import create_clipper
from fm_drone.errors import ValidationError


class TestHelpers:
    """Test the amplitude and volume curves."""

    def test_cos_weighting_endpoints(self):
        assert cos_weighting(0.0) == pytest.approx(0.0, abs=1e-12)
        assert cos_weighting(1.0) == pytest.approx(1.0)
        assert cos_weighting(0.5) == pytest.approx(math.sqrt(0.5))

    def test_db_to_gain(self):
        assert db_to_gain(0) == 1.0
        assert db_to_gain(-20) == pytest.approx(0.1)
        assert db_to_gain(6) == pytest.approx(1.9953, rel=1e-4)


class TestLifecycle:
    """Test start()/stop() ordering and node ownership."""

    def test_idle_until_started(self, synth):
        assert synth.state is SynthState.IDLE
        assert len(synth.graph) == 0
        assert synth.smoothing_task is None

    def test_start_builds_graph(self, synth, clock, is_acyclic):
        synth.start()
        assert synth.is_running
        assert synth.graph.find_node("osc_3") is not None
        assert synth.graph.find_node("carrier_gain_0") is not None
        assert synth.graph.find_node("master_output") is synth.master
        assert synth.graph.connection_count() == 18
        assert len(synth.graph.delay_nodes()) == 2
        assert is_acyclic(synth.graph)
        assert all(op.oscillator.handle.playing for op in synth.operators)
        assert [task.name for task in clock.tasks] == ["smoothing"]

    def test_initial_node_values(self, synth):
        synth.start()
        carrier = synth.operators[0].carrier_gain
        assert carrier.gain.value == pytest.approx(cos_weighting(0.25) * 0.2)
        assert synth.master.gain.value == pytest.approx(0.8)
        assert synth.operators[2].oscillator.frequency.value == pytest.approx(167.3035)

    def test_stop_cancels_smoothing_first(self, synth):
        """No oscillator is stopped while the smoothing task is still live."""
        synth.start()
        task = synth.smoothing_task
        seen = []
        for op in synth.operators:
            op.oscillator.handle.stop = lambda when=None: seen.append(task.active)

        synth.stop()

        assert seen == [False] * 4
        assert synth.state is SynthState.IDLE
        assert synth.smoothing_task is None

    def test_stop_releases_everything(self, synth, clock):
        synth.start()
        handles = [op.oscillator.handle for op in synth.operators]
        synth.stop()
        assert len(synth.graph) == 0
        assert synth.graph.connection_count() == 0
        assert not any(h.playing for h in handles)
        assert clock.tasks == []

    def test_running_only_after_start_completes(self, synth):
        """The state switches to Running once the oscillators are started."""
        seen = []
        build = synth.chain.build

        def recording_build(algorithm):
            seen.append(synth.state)
            build(algorithm)

        synth.chain.build = recording_build
        synth.start()

        assert seen == [SynthState.IDLE]
        assert synth.state is SynthState.RUNNING
        synth.stop()
        assert synth.state is SynthState.IDLE

    def test_failed_start_recovers(self, synth, clock):
        """A start() that raised leaves the synth Idle and the next start() clean."""
        build = synth.chain.build

        def failing_build(algorithm):
            raise RuntimeError("build failed")

        synth.chain.build = failing_build
        with pytest.raises(RuntimeError):
            synth.start()
        assert synth.state is SynthState.IDLE
        assert clock.tasks == []

        synth.chain.build = build
        synth.start()
        assert synth.is_running
        assert len(synth.graph) == 9 + 4 + 2
        assert synth.graph.connection_count() == 18

    def test_stop_when_idle(self, synth):
        synth.stop()
        assert synth.state is SynthState.IDLE

    def test_restart(self, synth, clock):
        """Restarting makes fresh one-shot oscillators and one smoothing task."""
        synth.start()
        old = synth.operators[0].oscillator.handle
        synth.start()

        assert not old.playing
        assert synth.operators[0].oscillator.handle is not old
        assert synth.operators[0].oscillator.handle.playing
        assert len(clock.tasks) == 1
        assert synth.graph.connection_count() == 18
        assert len(synth.graph) == 9 + 4 + 2


class TestSetAlgorithm:
    """Test algorithm switching."""

    def test_idle_switch_only_stores(self, synth):
        synth.set_algorithm({"mod": [[0, 1]], "out": [1]})
        assert synth.algorithm.mod == [(0, 1)]
        assert len(synth.graph) == 0

    def test_switch_while_running(self, synth, is_acyclic):
        """The previous chain is fully torn down before the new build."""
        synth.start()
        baselines = []
        build = synth.chain.build

        def recording_build(algorithm):
            baselines.append(synth.graph.connection_count())
            build(algorithm)

        synth.chain.build = recording_build
        for name in ("ring", "feedback", "additive", "cross"):
            synth.set_algorithm(get_preset(name))
            assert synth.chain.modulation_count() == len(get_preset(name).mod)
            assert is_acyclic(synth.graph)

        assert baselines == [0, 0, 0, 0]
        assert synth.graph.connection_count() == 18

    def test_malformed_keeps_previous(self, synth):
        synth.start()
        with pytest.raises(ValidationError):
            synth.set_algorithm('{"mod": [[0]], "out": []}')
        assert synth.algorithm == get_preset("cross")
        assert synth.chain.modulation_count() == 4

    def test_json_string(self, synth):
        synth.start()
        synth.set_algorithm('{"mod": [[0, 1], [1, 0]], "out": [0, 1]}')
        assert len(synth.graph.delay_nodes()) == 1


class TestClipper:
    """Test the output stage between master and destination."""

    def test_clipper_before_start(self, synth, context):
        synth.set_clipper(create_clipper(context, 0.8))
        assert synth.graph.connection_count() == 1

        synth.start()
        clipper = synth.graph.find_node("clipper")
        assert synth.graph.is_connected(synth.master, clipper)
        assert synth.graph.connection_count() == 20

        synth.stop()
        assert synth.graph.connection_count() == 1
        assert len(synth.graph) == 2

    def test_replace_clipper_while_running(self, synth, context):
        synth.start()
        synth.set_clipper(create_clipper(context, 0.8))
        second = synth.set_clipper(create_clipper(context, 0.5))

        assert synth.graph.is_connected(synth.master, second)
        assert synth.graph.connection_count() == 20
        assert len([n for n in synth.graph.nodes if n.name == "clipper"]) == 1

    def test_baseline_with_clipper(self, synth, context):
        synth.set_clipper(create_clipper(context, 0.8))
        synth.start()
        baselines = []
        build = synth.chain.build

        def recording_build(algorithm):
            baselines.append(synth.graph.connection_count())
            build(algorithm)

        synth.chain.build = recording_build
        synth.set_algorithm(get_preset("stack"))
        assert baselines == [1]


class TestSmoothing:
    """Test the per-frame amplitude and volume glide."""

    def test_amplitude_step(self, synth, clock, context):
        synth.start()
        synth.update_target_amplitudes(1.0, 0.0)
        clock.tick()

        assert [op.target_amp for op in synth.operators] == [0.0, 1.0, 0.0, 0.0]
        assert synth.operators[1].current_amp == pytest.approx(0.325)
        assert synth.operators[0].current_amp == pytest.approx(0.225)

        (event,) = synth.operators[1].carrier_gain.gain.events
        assert event.target == pytest.approx(cos_weighting(0.325) * 0.2)
        assert event.start_time == pytest.approx(context.current_time + 0.05)
        assert event.time_constant == 0.015

    def test_volume_step(self, synth, clock):
        synth.start()
        synth.set_volume(0.0)
        clock.tick()
        assert synth.current_volume == pytest.approx(0.9)
        assert synth.master.gain.events[-1].target == pytest.approx(0.9)

    def test_immediate_volume(self, synth):
        synth.set_volume(-6.0, immediate=True)
        assert synth.current_volume == synth.target_volume == pytest.approx(db_to_gain(-6.0))

    def test_converges(self, synth, clock):
        synth.start()
        synth.update_target_amplitudes(0.0, 1.0)
        clock.run(300)
        assert synth.operators[2].current_amp == pytest.approx(1.0, abs=1e-6)
        assert synth.operators[1].current_amp == pytest.approx(0.0, abs=1e-6)

    def test_no_smoothing_after_stop(self, synth, clock):
        synth.start()
        synth.stop()
        synth.update_target_amplitudes(1.0, 1.0)
        clock.tick()
        assert synth.operators[3].current_amp == 0.25

    def test_center_targets(self, synth):
        synth.update_target_amplitudes(0.5, 0.5)
        assert [op.target_amp for op in synth.operators] == [0.25] * 4


class TestParameters:
    """Test live frequency and depth changes through the synth."""

    def test_base_freq_and_depth(self, synth):
        synth.start()
        synth.set_base_freq(110.0)
        synth.set_mod_depth(2.0)
        assert synth.base_freq == 110.0
        assert synth.mod_depth == 2.0
        mod_gain = synth.chain.mod_gains[(0, 2)].node
        assert mod_gain.gain.value == pytest.approx(2.0 * (330.0 + 2.3035))

    def test_config_applied(self, context, clock):
        config = SynthConfig(base_freq=100.0, initial_amps=[1.0, 0.0, 0.0, 0.0])
        synth = DroneSynth(context, clock, get_preset("additive"), config)
        synth.start()
        assert synth.operators[0].oscillator.frequency.value == pytest.approx(100.0)
        assert synth.operators[0].carrier_gain.gain.value == pytest.approx(0.2)


class TestSnapshot:
    """Test snapshot() contents."""

    def test_snapshot(self, synth):
        synth.start()
        snap = synth.snapshot()
        assert snap["state"] == "running"
        assert snap["algorithm"] == get_preset("cross").to_dict()
        assert snap["connections"] == 18
        assert snap["delays"] == 2
        assert snap["current_amps"] == [0.25] * 4
