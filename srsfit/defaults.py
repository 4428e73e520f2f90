from __future__ import annotations

import dataclasses
from typing import Sequence

from srsfit.errors import ConfigError

WEIGHT_COUNT = 17

DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.4,
    0.6,
    2.4,
    5.8,
    4.93,
    0.94,
    0.86,
    0.01,
    1.49,
    0.14,
    0.94,
    2.18,
    0.05,
    0.34,
    1.26,
    0.29,
    2.61,
)

# Inclusive [min, max] per weight component.
WEIGHT_BOUNDS: tuple[tuple[float, float], ...] = (
    (0.1, 100.0),  # initial stability, again
    (0.1, 100.0),  # initial stability, hard
    (0.1, 100.0),  # initial stability, good
    (0.1, 100.0),  # initial stability, easy
    (1.0, 10.0),  # initial difficulty
    (0.1, 5.0),
    (0.1, 5.0),
    (0.0, 0.5),  # mean reversion
    (0.0, 3.0),
    (0.1, 0.8),
    (0.01, 2.5),
    (0.5, 5.0),
    (0.01, 0.2),
    (0.01, 0.9),
    (0.01, 2.0),
    (0.0, 1.0),  # hard penalty
    (1.0, 10.0),  # easy bonus
)

EPS = 1e-7


@dataclasses.dataclass(frozen=True)
class Bounds:
    s_min: float = 0.1
    s_max: float = 36500.0
    d_min: float = 1.0
    d_max: float = 10.0


def resolve_weights(weights: Sequence[float] | None) -> tuple[float, ...]:
    if weights is None:
        return DEFAULT_WEIGHTS
    resolved = tuple(float(x) for x in weights)
    if len(resolved) != WEIGHT_COUNT:
        raise ConfigError(
            f"Expected {WEIGHT_COUNT} weights, got {len(resolved)}."
        )
    return resolved


__all__ = [
    "WEIGHT_COUNT",
    "DEFAULT_WEIGHTS",
    "WEIGHT_BOUNDS",
    "EPS",
    "Bounds",
    "resolve_weights",
]
