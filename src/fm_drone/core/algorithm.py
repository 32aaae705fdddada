"""
FM routing algorithms.

An algorithm is the declarative description of which operators modulate
which, and which operators reach the master bus:

    {"mod": [[0, 2], [1, 3], [2, 0], [3, 1]], "out": [0, 1, 2, 3]}

Decoding is strict about structure (a malformed descriptor raises
ValidationError) but does not range-check operator indices: the chain
builder skips indices it has no operator for.

Typical flow:
    algorithm.json -> load_algorithm() -> RoutingAlgorithm
    "ring"         -> get_preset()     -> RoutingAlgorithm
    any of the two -> resolve_algorithm()
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from fm_drone.errors import ValidationError

NUM_OPERATORS = 4


@dataclass
class RoutingAlgorithm:
    """Modulation pairs plus output set.

    Attributes:
        mod: Ordered (modulator_index, carrier_index) pairs.
        out: Operator indices routed to the master bus.
    """

    mod: list[tuple[int, int]] = field(default_factory=list)
    out: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mod": [[source, target] for source, target in self.mod],
            "out": list(self.out),
        }

    def to_json(self, indent: Union[int, None] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Any) -> "RoutingAlgorithm":
        return parse_algorithm(data)

    @classmethod
    def from_json(cls, text: str) -> "RoutingAlgorithm":
        return parse_algorithm(text)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_algorithm(data: Union[str, dict[str, Any]]) -> RoutingAlgorithm:
    """Decode an algorithm descriptor.

    Args:
        data: A JSON string or an already-decoded object.

    Returns:
        Parsed RoutingAlgorithm.

    Raises:
        ValidationError: If the JSON is invalid or the structure is wrong.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in algorithm: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError("Algorithm must be an object")

    if "mod" not in data:
        raise ValidationError("Algorithm must contain a 'mod' key")
    if "out" not in data:
        raise ValidationError("Algorithm must contain an 'out' key")

    mod_data = data["mod"]
    if not isinstance(mod_data, list):
        raise ValidationError("'mod' must be an array")

    out_data = data["out"]
    if not isinstance(out_data, list):
        raise ValidationError("'out' must be an array")

    mod: list[tuple[int, int]] = []
    for i, pair in enumerate(mod_data):
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ValidationError(
                f"Modulation {i} must be a [source, target] pair, got: {pair}"
            )
        if not (_is_int(pair[0]) and _is_int(pair[1])):
            raise ValidationError(
                f"Modulation {i}: operator indices must be integers, got: {pair}"
            )
        mod.append((pair[0], pair[1]))

    out: list[int] = []
    for i, index in enumerate(out_data):
        if not _is_int(index):
            raise ValidationError(
                f"Output {i}: operator index must be an integer, got: {index!r}"
            )
        out.append(index)

    return RoutingAlgorithm(mod=mod, out=out)


def load_algorithm(json_path: Path) -> RoutingAlgorithm:
    """Load an algorithm descriptor from a JSON file.

    Raises:
        ValidationError: If the file is missing or the descriptor is malformed.
    """
    if not json_path.is_file():
        raise ValidationError(f"Algorithm file not found: {json_path}")
    return parse_algorithm(json_path.read_text(encoding="utf-8"))


def check_algorithm(
    algorithm: RoutingAlgorithm, num_operators: int = NUM_OPERATORS
) -> list[str]:
    """Report the parts of an algorithm the chain builder will skip.

    Checks for:
    - Operator indices outside [0, num_operators)
    - Repeated modulation pairs (only the first is built)
    - Repeated output indices

    Returns:
        List of warning messages (empty if everything will be built).
    """
    warnings: list[str] = []

    def _in_range(index: int) -> bool:
        return 0 <= index < num_operators

    seen_pairs: set[tuple[int, int]] = set()
    for source, target in algorithm.mod:
        if not (_in_range(source) and _in_range(target)):
            warnings.append(
                f"Modulation [{source}, {target}] references an operator "
                f"outside 0-{num_operators - 1}"
            )
        if (source, target) in seen_pairs:
            warnings.append(f"Modulation [{source}, {target}] is repeated")
        seen_pairs.add((source, target))

    seen_outputs: set[int] = set()
    for index in algorithm.out:
        if not _in_range(index):
            warnings.append(
                f"Output {index} is outside 0-{num_operators - 1}"
            )
        if index in seen_outputs:
            warnings.append(f"Output {index} is repeated")
        seen_outputs.add(index)

    return warnings


# Built-in algorithms, selectable by name.
PRESETS: dict[str, RoutingAlgorithm] = {
    "additive": RoutingAlgorithm(mod=[], out=[0, 1, 2, 3]),
    "stack": RoutingAlgorithm(mod=[(0, 1), (1, 2), (2, 3)], out=[3]),
    "pairs": RoutingAlgorithm(mod=[(0, 1), (2, 3)], out=[1, 3]),
    "fan": RoutingAlgorithm(mod=[(0, 1), (0, 2), (0, 3)], out=[1, 2, 3]),
    "feedback": RoutingAlgorithm(mod=[(0, 1), (1, 0)], out=[0, 1, 2, 3]),
    "ring": RoutingAlgorithm(mod=[(0, 1), (1, 2), (2, 3), (3, 0)], out=[0, 1, 2, 3]),
    "cross": RoutingAlgorithm(
        mod=[(0, 2), (1, 3), (2, 0), (3, 1)], out=[0, 1, 2, 3]
    ),
}


def list_presets() -> list[str]:
    return sorted(PRESETS)


def get_preset(name: str) -> RoutingAlgorithm:
    """Return a copy of a built-in algorithm.

    Raises:
        ValidationError: If the name is not a known preset.
    """
    if name not in PRESETS:
        available = ", ".join(list_presets())
        raise ValidationError(f"Unknown algorithm: '{name}'. Available: {available}")
    preset = PRESETS[name]
    return RoutingAlgorithm(mod=list(preset.mod), out=list(preset.out))


def resolve_algorithm(value: str) -> RoutingAlgorithm:
    """Interpret a command-line algorithm argument.

    Accepts a preset name, a path to a JSON file, or inline JSON.
    """
    if value in PRESETS:
        return get_preset(value)
    if value.lstrip().startswith("{"):
        return parse_algorithm(value)
    return load_algorithm(Path(value))
