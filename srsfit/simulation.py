from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional, Sequence

import torch

from srsfit.defaults import Bounds, resolve_weights
from srsfit.math import fsrs_batch

if TYPE_CHECKING:
    from srsfit.optimal_retention import SimulatorConfig


@dataclass
class SimulationResult:
    total_cost: float
    memorized: float
    reviews: int
    lapses: int
    learned: int
    daily_cost: list[float] = field(default_factory=list)

    def objective(self, name: str) -> float:
        if name == "total_cost":
            return self.total_cost
        return self.total_cost / max(self.memorized, 1e-9)


def _prefix_count(costs: torch.Tensor, limit: Optional[float]) -> int:
    """Number of leading entries affordable within `limit`."""
    if costs.numel() == 0:
        return 0
    if limit is None or math.isinf(limit):
        return int(costs.numel())
    if limit <= 0.0:
        return 0
    cumulative = torch.cumsum(costs, dim=0)
    allowed = (cumulative - costs) < limit
    return int(allowed.sum().item())


@torch.inference_mode()
def simulate(
    weights: Sequence[float] | None,
    config: "SimulatorConfig",
    desired_retention: float,
    seed: int,
    *,
    bounds: Bounds = Bounds(),
    device: Optional[str | torch.device] = None,
    dtype: torch.dtype = torch.float64,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> SimulationResult:
    """
    Simulate one learner reviewing a deck at a fixed retention target.

    All cards are processed together per day. Due cards are reviewed
    oldest-due first, then new cards are learned, both while the day's cost
    budget lasts.
    """
    torch_device = torch.device(device) if device is not None else torch.device("cpu")
    w = torch.tensor(resolve_weights(weights), device=torch_device, dtype=dtype)
    gen = torch.Generator(device=torch_device)
    gen.manual_seed(seed)

    deck_size = config.deck_size
    days = config.learn_span
    learn_limit = config.resolved_learn_limit()
    max_cost = config.max_cost_perday
    recall_costs = torch.tensor(config.recall_costs, device=torch_device, dtype=dtype)
    review_rating_prob = torch.tensor(
        config.review_rating_prob, device=torch_device, dtype=dtype
    )
    first_rating_prob = torch.tensor(
        config.first_rating_prob, device=torch_device, dtype=dtype
    )

    stability = torch.full((deck_size,), bounds.s_min, device=torch_device, dtype=dtype)
    difficulty = torch.full((deck_size,), bounds.d_min, device=torch_device, dtype=dtype)
    last_review = torch.zeros(deck_size, dtype=torch.int64, device=torch_device)
    due = torch.zeros(deck_size, dtype=torch.int64, device=torch_device)
    learned = torch.zeros(deck_size, dtype=torch.bool, device=torch_device)
    all_ids = torch.arange(deck_size, device=torch_device)

    daily_cost = [0.0 for _ in range(days)]
    total_reviews = 0
    total_lapses = 0
    new_ptr = 0

    def schedule(idx: torch.Tensor, day: int) -> None:
        ivl = fsrs_batch.next_interval(stability[idx], desired_retention, bounds.s_min)
        ivl = torch.clamp(torch.floor(ivl + 0.5), 1.0, float(config.max_ivl))
        last_review[idx] = day
        due[idx] = day + ivl.to(torch.int64)

    if progress_callback is not None:
        progress_callback(0, days)
    for day in range(days):
        cost_today = 0.0

        need_review = learned & (due <= day)
        if need_review.any():
            review_idx = torch.nonzero(need_review, as_tuple=False).squeeze(1)
            key = due[review_idx] * deck_size + all_ids[review_idx]
            review_idx = review_idx[torch.argsort(key)]
            elapsed = (day - last_review[review_idx]).to(dtype)
            r = fsrs_batch.forgetting_curve(elapsed, stability[review_idx], bounds.s_min)

            rand = torch.rand(r.shape, device=torch_device, dtype=dtype, generator=gen)
            forget = rand > r
            success_rating = (
                torch.multinomial(
                    review_rating_prob,
                    num_samples=r.numel(),
                    replacement=True,
                    generator=gen,
                ).view_as(forget)
                + 2
            )
            rating = torch.where(forget, torch.ones_like(success_rating), success_rating)
            cost = torch.where(
                forget,
                torch.full_like(r, config.forget_cost),
                recall_costs[torch.clamp(rating - 2, min=0)],
            )

            count = _prefix_count(cost, max_cost)
            if count > 0:
                exec_idx = review_idx[:count]
                new_s, new_d = fsrs_batch.step(
                    w,
                    stability[exec_idx],
                    difficulty[exec_idx],
                    rating[:count],
                    elapsed[:count],
                    bounds.s_min,
                    bounds.s_max,
                    bounds.d_min,
                    bounds.d_max,
                )
                stability[exec_idx] = new_s
                difficulty[exec_idx] = new_d
                schedule(exec_idx, day)
                total_reviews += count
                total_lapses += int(forget[:count].sum().item())
                cost_today += float(cost[:count].sum().item())
            # Reviews that did not fit stay due and are retried tomorrow.

        remaining = deck_size - new_ptr
        candidate = min(learn_limit, remaining)
        if candidate > 0:
            budget = None if max_cost is None else max_cost - cost_today
            learn_costs = torch.full(
                (candidate,), config.learn_cost, device=torch_device, dtype=dtype
            )
            count = _prefix_count(learn_costs, budget)
            if count > 0:
                ratings = (
                    torch.multinomial(
                        first_rating_prob,
                        num_samples=count,
                        replacement=True,
                        generator=gen,
                    )
                    + 1
                )
                exec_idx = new_ptr + torch.arange(count, device=torch_device)
                s_init, d_init = fsrs_batch.init_state(
                    w, ratings, bounds.d_min, bounds.d_max
                )
                stability[exec_idx] = torch.clamp(s_init, bounds.s_min, bounds.s_max)
                difficulty[exec_idx] = d_init
                learned[exec_idx] = True
                schedule(exec_idx, day)
                new_ptr += count
                cost_today += count * config.learn_cost

        daily_cost[day] = cost_today
        if progress_callback is not None:
            progress_callback(day + 1, days)

    memorized = 0.0
    if learned.any():
        learned_idx = torch.nonzero(learned, as_tuple=False).squeeze(1)
        elapsed_final = (days - last_review[learned_idx]).to(dtype)
        memorized = float(
            fsrs_batch.forgetting_curve(
                elapsed_final, stability[learned_idx], bounds.s_min
            )
            .sum()
            .item()
        )

    return SimulationResult(
        total_cost=float(sum(daily_cost)),
        memorized=memorized,
        reviews=total_reviews,
        lapses=total_lapses,
        learned=new_ptr,
        daily_cost=daily_cost,
    )


__all__ = ["SimulationResult", "simulate"]
