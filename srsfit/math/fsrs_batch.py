from __future__ import annotations

import torch

from srsfit.math.fsrs import CURVE_FACTOR


def clamp(values: torch.Tensor, min_value: float, max_value: float) -> torch.Tensor:
    return torch.clamp(values, min=min_value, max=max_value)


def forgetting_curve(t: torch.Tensor, s: torch.Tensor, s_min: float) -> torch.Tensor:
    return torch.pow(
        1.0 + torch.clamp(t, min=0.0) / (CURVE_FACTOR * torch.clamp(s, min=s_min)),
        -1.0,
    )


def init_state(
    weights: torch.Tensor,
    rating: torch.Tensor,
    d_min: float,
    d_max: float,
) -> tuple[torch.Tensor, torch.Tensor]:
    rating_f = rating.to(dtype=weights.dtype)
    idx = torch.clamp(rating.to(torch.int64) - 1, min=0, max=3)
    s = weights[:4][idx]
    d = weights[4] - weights[5] * (rating_f - 3.0)
    return s, clamp(d, d_min, d_max)


def next_d(
    weights: torch.Tensor,
    d: torch.Tensor,
    rating: torch.Tensor,
    d_min: float,
    d_max: float,
) -> torch.Tensor:
    rating_f = rating.to(dtype=weights.dtype)
    new_d = d - weights[6] * (rating_f - 3.0)
    new_d = weights[7] * weights[4] + (1.0 - weights[7]) * new_d
    return clamp(new_d, d_min, d_max)


def stability_after_success(
    weights: torch.Tensor,
    s: torch.Tensor,
    r: torch.Tensor,
    d: torch.Tensor,
    rating: torch.Tensor,
) -> torch.Tensor:
    one = torch.ones_like(s)
    hard_penalty = torch.where(rating == 2, weights[15] * one, one)
    easy_bonus = torch.where(rating == 4, weights[16] * one, one)
    inc = (
        torch.exp(weights[8])
        * (11.0 - d)
        * torch.pow(s, -weights[9])
        * (torch.exp((1.0 - r) * weights[10]) - 1.0)
    )
    return s * (1.0 + inc * hard_penalty * easy_bonus)


def stability_after_failure(
    weights: torch.Tensor, s: torch.Tensor, r: torch.Tensor, d: torch.Tensor
) -> torch.Tensor:
    return (
        weights[11]
        * torch.pow(d, -weights[12])
        * (torch.pow(s + 1.0, weights[13]) - 1.0)
        * torch.exp((1.0 - r) * weights[14])
    )


def step(
    weights: torch.Tensor,
    s: torch.Tensor,
    d: torch.Tensor,
    rating: torch.Tensor,
    elapsed: torch.Tensor,
    s_min: float,
    s_max: float,
    d_min: float,
    d_max: float,
) -> tuple[torch.Tensor, torch.Tensor]:
    s = torch.clamp(s, min=s_min)
    r = forgetting_curve(elapsed, s, s_min)
    new_d = next_d(weights, d, rating, d_min, d_max)
    new_s = torch.where(
        rating > 1,
        stability_after_success(weights, s, r, new_d, rating),
        stability_after_failure(weights, s, r, new_d),
    )
    return clamp(new_s, s_min, s_max), new_d


def next_interval(
    s: torch.Tensor, desired_retention: float, s_min: float
) -> torch.Tensor:
    return torch.clamp(s, min=s_min) * CURVE_FACTOR * (1.0 / desired_retention - 1.0)
