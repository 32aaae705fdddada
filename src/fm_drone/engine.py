"""
Offline reference audio engine.

Implements the primitive capability contract the routing graph relies on
(oscillator, gain, delay and wave-shaper nodes with connectable
parameters) entirely in-process. Nothing is rendered: nodes record what
they are connected to and parameters record their scheduled automation,
which is enough to drive and inspect the synth without an audio device.

Typical use:

    context = AudioContext()
    osc = context.create_oscillator()
    amp = context.create_gain()
    osc.connect(amp)
    amp.connect(context.destination)
    osc.start()
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Union

import numpy as np

from fm_drone.core.nodes import NodeKind
from fm_drone.errors import EngineError


@dataclass
class TargetEvent:
    """A set_target_at_time() automation event."""

    target: float
    start_time: float
    time_constant: float

    def approach(self, from_value: float, time: float) -> float:
        """Value at `time` of an exponential glide from `from_value`."""
        elapsed = max(0.0, time - self.start_time)
        return self.target + (from_value - self.target) * math.exp(
            -elapsed / self.time_constant
        )


class AudioParam:
    """A controllable node parameter with scheduled exponential ramps."""

    def __init__(self, owner: "AudioNode", name: str, value: float = 0.0):
        self.owner = owner
        self.name = name
        self.value = value
        self.events: list[TargetEvent] = []

    def __repr__(self) -> str:
        return f"AudioParam({self.name}={self.value})"

    def set_target_at_time(
        self, target: float, start_time: float, time_constant: float
    ) -> None:
        if time_constant <= 0:
            raise EngineError(
                f"{self.name}: time constant must be positive, got {time_constant}"
            )
        self.events.append(TargetEvent(target, start_time, time_constant))
        self.events.sort(key=lambda e: e.start_time)

    def cancel_scheduled_values(self, start_time: float = 0.0) -> None:
        self.events = [e for e in self.events if e.start_time < start_time]

    def value_at(self, time: float) -> float:
        """Evaluate the automation curve at `time`."""
        value = self.value
        active: Optional[TargetEvent] = None
        for event in self.events:
            if event.start_time > time:
                break
            if active is not None:
                value = active.approach(value, event.start_time)
            active = event
        if active is not None:
            value = active.approach(value, time)
        return value


Target = Union["AudioNode", AudioParam]


class AudioNode:
    """Base primitive: tracks outgoing connections to nodes or params."""

    kind = NodeKind.OTHER

    def __init__(self, context: "AudioContext"):
        self.context = context
        self.outputs: list[Target] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(outputs={len(self.outputs)})"

    def connect(self, target: Target) -> Target:
        if isinstance(target, AudioParam):
            target_context = target.owner.context
        else:
            target_context = getattr(target, "context", None)
        if target_context is not self.context:
            raise EngineError(
                f"Cannot connect {type(self).__name__} to a target "
                "from a different context"
            )
        if not self.is_connected_to(target):
            self.outputs.append(target)
        return target

    def disconnect(self, target: Optional[Target] = None) -> None:
        if target is None:
            self.outputs.clear()
            return
        for i, output in enumerate(self.outputs):
            if output is target:
                del self.outputs[i]
                return
        raise EngineError(f"{type(self).__name__} is not connected to {target!r}")

    def is_connected_to(self, target: Target) -> bool:
        return any(output is target for output in self.outputs)


class Oscillator(AudioNode):
    """A one-shot periodic source. Can be started once and stopped once."""

    kind = NodeKind.OSCILLATOR

    def __init__(self, context: "AudioContext", frequency: float = 440.0):
        super().__init__(context)
        self.type = "sine"
        self.frequency = AudioParam(self, "frequency", frequency)
        self.detune = AudioParam(self, "detune", 0.0)
        self.started_at: Optional[float] = None
        self.stopped_at: Optional[float] = None

    @property
    def playing(self) -> bool:
        return self.started_at is not None and self.stopped_at is None

    def start(self, when: Optional[float] = None) -> None:
        if self.started_at is not None:
            raise EngineError("Oscillator can only be started once")
        self.started_at = self.context.current_time if when is None else when

    def stop(self, when: Optional[float] = None) -> None:
        if self.started_at is None:
            raise EngineError("Oscillator was never started")
        if self.stopped_at is None:
            self.stopped_at = self.context.current_time if when is None else when


class Gain(AudioNode):
    kind = NodeKind.GAIN

    def __init__(self, context: "AudioContext", gain: float = 1.0):
        super().__init__(context)
        self.gain = AudioParam(self, "gain", gain)


class Delay(AudioNode):
    kind = NodeKind.DELAY

    def __init__(self, context: "AudioContext", max_delay_time: float = 1.0):
        super().__init__(context)
        self.max_delay_time = max_delay_time
        self.delay_time = AudioParam(self, "delay_time", 0.0)


class WaveShaper(AudioNode):
    kind = NodeKind.WAVE_SHAPER

    def __init__(self, context: "AudioContext"):
        super().__init__(context)
        self.oversample = "none"
        self._curve: Optional[np.ndarray] = None

    @property
    def curve(self) -> Optional[np.ndarray]:
        return self._curve

    @curve.setter
    def curve(self, values: Any) -> None:
        if values is None:
            self._curve = None
            return
        curve = np.asarray(values, dtype=np.float32)
        if curve.ndim != 1 or len(curve) < 2:
            raise EngineError("WaveShaper curve must be a 1-D array of length >= 2")
        self._curve = curve

    def shape(self, samples: Any) -> np.ndarray:
        """Map samples in [-1, 1] through the curve (linear interpolation)."""
        x = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
        if self._curve is None:
            return x
        positions = np.linspace(-1.0, 1.0, len(self._curve), dtype=np.float32)
        return np.interp(x, positions, self._curve).astype(np.float32)


class AudioDestination(AudioNode):
    """Terminal node standing in for the hardware output."""

    def __init__(self, context: "AudioContext", channel_count: int = 2):
        super().__init__(context)
        self.channel_count = channel_count

    def connect(self, target: Target) -> Target:
        raise EngineError("The destination node has no outputs")


class AudioContext:
    """Factory and clock for primitives.

    Constructed once per synth and passed explicitly to the routing graph;
    `current_time` only moves when the host calls advance().
    """

    def __init__(self, sample_rate: float = 44100.0):
        self.sample_rate = sample_rate
        self.current_time = 0.0
        self.destination = AudioDestination(self)

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise EngineError(f"Cannot move the clock backwards ({seconds})")
        self.current_time += seconds
        return self.current_time

    def create_oscillator(self) -> Oscillator:
        return Oscillator(self)

    def create_gain(self) -> Gain:
        return Gain(self)

    def create_delay(self, max_delay_time: float = 1.0) -> Delay:
        return Delay(self, max_delay_time)

    def create_wave_shaper(self) -> WaveShaper:
        return WaveShaper(self)


def make_clipper_curve(threshold: float, size: int = 256) -> np.ndarray:
    """Hard-clip transfer curve over [-1, 1], flat beyond +/-threshold."""
    x = np.arange(size, dtype=np.float32) / (size / 2) - 1.0
    return np.clip(x, -threshold, threshold).astype(np.float32)


def create_clipper(context: AudioContext, threshold: float) -> WaveShaper:
    clipper = context.create_wave_shaper()
    clipper.curve = make_clipper_curve(threshold)
    return clipper
