from __future__ import annotations

from srsfit.errors import ConfigError


def retention_values(start: float, end: float, step: float) -> list[float]:
    """Retention candidates from `start` to `end` inclusive, rounded to 2 decimals.

    Raises ConfigError when the rounded range is empty or `step` is too small
    to move the rounded value.
    """
    if step <= 0:
        raise ConfigError("retention step must be positive.")
    start = round(start, 2)
    end = round(end, 2)
    if start >= end:
        raise ConfigError(
            f"min_retention must be < max_retention after rounding ({start} >= {end})."
        )
    candidates: list[float] = []
    current = start
    tolerance = step * 1e-6
    while current <= end + tolerance:
        candidates.append(current)
        following = round(current + step, 2)
        if following == current:
            raise ConfigError(f"retention_step {step} vanishes when rounded; use >= 0.01.")
        current = following
    return candidates


__all__ = ["retention_values"]
