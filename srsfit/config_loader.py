from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Sequence, Tuple, TypeVar

from srsfit.defaults import WEIGHT_COUNT
from srsfit.errors import ConfigError
from srsfit.optimal_retention import SimulatorConfig
from srsfit.training import TrainingConfig

_ConfigT = TypeVar("_ConfigT")


def load_weights(
    path: str | Path,
    *,
    expected_len: int | None = WEIGHT_COUNT,
    key: str = "weights",
) -> Tuple[float, ...]:
    """
    Load a weight vector from a JSON object `{"weights": [...]}`.
    """
    path = Path(path)
    data = _read_json(path)
    weights = data.get(key)
    if not isinstance(weights, Sequence) or isinstance(weights, str):
        raise ConfigError(f"{path} missing '{key}' sequence.")
    vector = tuple(float(w) for w in weights)
    if expected_len is not None and len(vector) != expected_len:
        raise ConfigError(
            f"{path} expected {expected_len} weights, got {len(vector)}."
        )
    return vector


def load_training_config(path: str | Path) -> TrainingConfig:
    return _build(TrainingConfig, Path(path))


def load_simulator_config(path: str | Path) -> SimulatorConfig:
    return _build(SimulatorConfig, Path(path))


def _build(cls: type[_ConfigT], path: Path) -> _ConfigT:
    data = _read_json(path)
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"{path} has unknown keys: {', '.join(unknown)}.")
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in data.items()}
    try:
        return cls(**values)
    except (ConfigError, TypeError) as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def _read_json(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object.")
    return data


__all__ = ["load_weights", "load_training_config", "load_simulator_config"]
