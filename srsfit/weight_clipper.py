from __future__ import annotations

from typing import Sequence

import torch

from srsfit.defaults import WEIGHT_BOUNDS


def bounds_tensors(
    device: torch.device | None = None, dtype: torch.dtype = torch.float32
) -> tuple[torch.Tensor, torch.Tensor]:
    lower = torch.tensor([lo for lo, _ in WEIGHT_BOUNDS], device=device, dtype=dtype)
    upper = torch.tensor([hi for _, hi in WEIGHT_BOUNDS], device=device, dtype=dtype)
    return lower, upper


@torch.no_grad()
def clip_weights_(weights: torch.Tensor) -> torch.Tensor:
    """Clamp every component of `weights` into its bound, in place."""
    lower, upper = bounds_tensors(weights.device, weights.dtype)
    weights.copy_(torch.maximum(torch.minimum(weights, upper), lower))
    return weights


def clip_weights(weights: Sequence[float]) -> list[float]:
    return [
        max(lo, min(float(w), hi)) for w, (lo, hi) in zip(weights, WEIGHT_BOUNDS)
    ]


def within_bounds(weights: Sequence[float]) -> bool:
    return len(weights) == len(WEIGHT_BOUNDS) and all(
        lo <= float(w) <= hi for w, (lo, hi) in zip(weights, WEIGHT_BOUNDS)
    )


__all__ = ["clip_weights", "clip_weights_", "within_bounds", "bounds_tensors"]
