from __future__ import annotations

import dataclasses
import math
from typing import Tuple

from srsfit.defaults import WEIGHT_COUNT, Bounds

# R(t = 9 * S) == 0.5; R(t = S) == 0.9.
CURVE_FACTOR = 9.0


@dataclasses.dataclass(frozen=True)
class FSRSParams:
    weights: Tuple[float, ...]
    bounds: Bounds = Bounds()

    def __post_init__(self) -> None:
        if len(self.weights) != WEIGHT_COUNT:
            raise ValueError(f"FSRSParams expects {WEIGHT_COUNT} weights.")


def forgetting_curve(p: FSRSParams, t: float, s: float) -> float:
    return (1.0 + max(t, 0.0) / (CURVE_FACTOR * max(s, p.bounds.s_min))) ** -1.0


def init_state(p: FSRSParams, rating: int) -> Tuple[float, float]:
    s = p.weights[rating - 1]
    d = _clamp_d(p.bounds, init_difficulty(p, rating))
    return _clamp_s(p.bounds, s), d


def init_difficulty(p: FSRSParams, rating: int) -> float:
    return p.weights[4] - p.weights[5] * (rating - 3)


def next_d(p: FSRSParams, d: float, rating: int) -> float:
    new_d = d - p.weights[6] * (rating - 3)
    new_d = _mean_reversion(p.weights[7], p.weights[4], new_d)
    return _clamp_d(p.bounds, new_d)


def stability_after_success(
    p: FSRSParams, s: float, r: float, d: float, rating: int
) -> float:
    hard_penalty = p.weights[15] if rating == 2 else 1.0
    easy_bonus = p.weights[16] if rating == 4 else 1.0
    inc = (
        math.exp(p.weights[8])
        * (11.0 - d)
        * (s ** (-p.weights[9]))
        * (math.exp((1.0 - r) * p.weights[10]) - 1.0)
    )
    return s * (1.0 + inc * hard_penalty * easy_bonus)


def stability_after_failure(p: FSRSParams, s: float, r: float, d: float) -> float:
    return (
        p.weights[11]
        * (d ** (-p.weights[12]))
        * ((s + 1.0) ** p.weights[13] - 1.0)
        * math.exp((1.0 - r) * p.weights[14])
    )


def step(
    p: FSRSParams, s: float, d: float, rating: int, elapsed: float
) -> Tuple[float, float]:
    """Advance (stability, difficulty) by one review after `elapsed` days."""
    s = max(s, p.bounds.s_min)
    r = forgetting_curve(p, elapsed, s)
    d = next_d(p, d, rating)
    if rating > 1:
        s = stability_after_success(p, s, r, d, rating)
    else:
        s = stability_after_failure(p, s, r, d)
    return _clamp_s(p.bounds, s), d


def next_interval(p: FSRSParams, s: float, desired_retention: float) -> float:
    return max(s, p.bounds.s_min) * CURVE_FACTOR * (1.0 / desired_retention - 1.0)


# --------------------------- shared helpers --------------------------- #


def _mean_reversion(weight: float, init: float, current: float) -> float:
    return weight * init + (1.0 - weight) * current


def _clamp_s(bounds: Bounds, s: float) -> float:
    return max(bounds.s_min, min(s, bounds.s_max))


def _clamp_d(bounds: Bounds, d: float) -> float:
    return max(bounds.d_min, min(d, bounds.d_max))
