"""
Synth configuration.

SynthConfig holds the per-operator tuning (frequency ratios, beat
offsets, initial amplitudes) and the smoothing constants used by the
control-rate task. It round-trips through JSON:

    config.json -> load_config() -> SynthConfig -> DroneSynth(config=...)
"""

import json
import numbers
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from fm_drone.core.algorithm import NUM_OPERATORS
from fm_drone.errors import ValidationError

_LIST_FIELDS = ("freq_ratios", "beat_freqs", "initial_amps")


@dataclass
class SynthConfig:
    """Tuning and smoothing constants for a DroneSynth."""

    base_freq: float = 55.0
    freq_ratios: list[float] = field(default_factory=lambda: [1.0, 2.0, 3.0, 4.0])
    beat_freqs: list[float] = field(
        default_factory=lambda: [0.0, 1.5135, 2.3035, 2.46]
    )
    initial_amps: list[float] = field(default_factory=lambda: [0.25] * NUM_OPERATORS)
    mod_depth: float = 1.0
    volume: float = 0.8  # linear master gain
    amp_smoothing: float = 0.1
    volume_smoothing: float = 0.5
    carrier_scale: float = 0.2
    lookahead: float = 0.05  # seconds ahead of current_time for ramps
    time_constant: float = 0.015
    clipper_threshold: float = 0.8

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "SynthConfig":
        """Build a config from a (possibly partial) mapping.

        Raises:
            ValidationError: On unknown keys, non-numeric values or
                per-operator lists of the wrong length.
        """
        if not isinstance(d, dict):
            raise ValidationError("Config must be an object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValidationError(f"Unknown config keys: {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for key, value in d.items():
            if key in _LIST_FIELDS:
                if not isinstance(value, list) or len(value) != NUM_OPERATORS:
                    raise ValidationError(
                        f"'{key}' must be a list of {NUM_OPERATORS} numbers"
                    )
                if not all(_is_number(v) for v in value):
                    raise ValidationError(f"'{key}' must contain only numbers")
                values[key] = [float(v) for v in value]
            else:
                if not _is_number(value):
                    raise ValidationError(f"'{key}' must be a number, got {value!r}")
                values[key] = float(value)

        return cls(**values)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "SynthConfig":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in config: {e}") from e
        return cls.from_dict(data)


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def load_config(json_path: Path) -> SynthConfig:
    """Load a SynthConfig from a JSON file.

    Raises:
        ValidationError: If the file is missing or its content is invalid.
    """
    if not json_path.is_file():
        raise ValidationError(f"Config file not found: {json_path}")
    return SynthConfig.from_json(json_path.read_text(encoding="utf-8"))
