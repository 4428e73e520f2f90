from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Sequence

import torch

from srsfit.dataset import Item
from srsfit.defaults import EPS, WEIGHT_BOUNDS, Bounds, resolve_weights
from srsfit.errors import InvalidItemError
from srsfit.math import fsrs_batch


def _aggregate(
    items: Sequence[Item],
) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]:
    """Collapse two-review items into (rating, delta_t) buckets."""
    counts: dict[tuple[int, int], list[int]] = defaultdict(lambda: [0, 0])
    for item in items:
        if len(item.reviews) != 2:
            raise InvalidItemError(
                f"Pretraining expects items with two reviews, got {len(item.reviews)}."
            )
        first, current = item.reviews
        bucket = counts[(first.rating, current.delta_t)]
        bucket[0] += 1
        bucket[1] += 0 if current.rating == 1 else 1
    keys = sorted(counts)
    ratings = torch.tensor([k[0] for k in keys], dtype=torch.int64)
    delta_ts = torch.tensor([float(k[1]) for k in keys], dtype=torch.float64)
    totals = torch.tensor([float(counts[k][0]) for k in keys], dtype=torch.float64)
    recalls = torch.tensor([float(counts[k][1]) for k in keys], dtype=torch.float64)
    return ratings, delta_ts, totals, recalls


def pretrain(
    items: Sequence[Item],
    weights: Sequence[float] | None = None,
    *,
    steps: int = 200,
    learning_rate: float = 0.1,
    bounds: Bounds = Bounds(),
) -> list[float]:
    """
    Fit the four initial-stability weights on two-review items.

    Every other weight is returned unchanged. Ratings that never appear as a
    first review keep their starting value.
    """
    initial = list(resolve_weights(weights))
    if not items:
        logging.warning("Pretrain set is empty; keeping initial stability weights.")
        return initial

    ratings, delta_ts, totals, recalls = _aggregate(items)
    present = sorted(set(ratings.tolist()))
    missing = [r for r in range(1, 5) if r not in present]
    if missing:
        logging.info("No pretrain data for first ratings %s.", missing)

    lo = min(b[0] for b in WEIGHT_BOUNDS[:4])
    hi = max(b[1] for b in WEIGHT_BOUNDS[:4])
    start = torch.tensor(initial[:4], dtype=torch.float64).clamp(lo, hi)
    log_s = torch.log(start).requires_grad_(True)
    optimizer = torch.optim.Adam([log_s], lr=learning_rate)
    n = totals.sum()

    for _ in range(steps):
        optimizer.zero_grad()
        s = torch.exp(log_s)[ratings - 1]
        p = fsrs_batch.forgetting_curve(delta_ts, s, bounds.s_min)
        p = torch.clamp(p, EPS, 1.0 - EPS)
        log_likelihood = recalls * torch.log(p) + (totals - recalls) * torch.log(1.0 - p)
        loss = -log_likelihood.sum() / n
        loss.backward()
        optimizer.step()
        with torch.no_grad():
            log_s.clamp_(math.log(lo), math.log(hi))

    fitted = torch.exp(log_s.detach()).tolist()
    result = list(initial)
    for rating in present:
        low, high = WEIGHT_BOUNDS[rating - 1]
        result[rating - 1] = max(low, min(float(fitted[rating - 1]), high))
    logging.debug("Pretrained initial stability: %s", result[:4])
    return result


__all__ = ["pretrain"]
