from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import torch

from srsfit.dataset import Item, batch_items
from srsfit.defaults import EPS, Bounds, resolve_weights
from srsfit.errors import ConfigError
from srsfit.math import fsrs as fsrs_math
from srsfit.model import FSRSModel
from srsfit.training import bce_loss

RMSE_BIN_COUNT = 20


@dataclass(frozen=True)
class MemoryState:
    stability: float
    difficulty: float


@dataclass(frozen=True)
class ItemState:
    memory: MemoryState
    interval: float


@dataclass(frozen=True)
class NextStates:
    again: ItemState
    hard: ItemState
    good: ItemState
    easy: ItemState

    def for_rating(self, rating: int) -> ItemState:
        return (self.again, self.hard, self.good, self.easy)[rating - 1]


@dataclass(frozen=True)
class ItemProgress:
    """Items scored so far out of `total` during `FSRS.evaluate`."""

    current: int
    total: int


@dataclass(frozen=True)
class ModelEvaluation:
    log_loss: float
    rmse_bins: float


class FSRS:
    """
    Prediction API over a fitted weight vector.

    Scalar helpers serve schedulers one card at a time; `memory_state` and
    `evaluate` run the batched model over whole item lists.
    """

    def __init__(
        self, weights: Sequence[float] | None = None, bounds: Bounds = Bounds()
    ):
        self.params = fsrs_math.FSRSParams(resolve_weights(weights), bounds)

    @property
    def weights(self) -> tuple[float, ...]:
        return self.params.weights

    def retrievability(self, state: MemoryState | float, elapsed: float) -> float:
        s = state.stability if isinstance(state, MemoryState) else float(state)
        return fsrs_math.forgetting_curve(self.params, float(elapsed), s)

    def next_interval(self, stability: float, desired_retention: float) -> float:
        if not 0.0 < desired_retention < 1.0:
            raise ConfigError("desired_retention must be in (0, 1).")
        return fsrs_math.next_interval(self.params, stability, desired_retention)

    def next_states(
        self,
        state: MemoryState | None,
        elapsed: float,
        desired_retention: float = 0.9,
    ) -> NextStates:
        """States the card would enter for each of the four ratings."""
        candidates = []
        for rating in range(1, 5):
            if state is None:
                s, d = fsrs_math.init_state(self.params, rating)
            else:
                s, d = fsrs_math.step(
                    self.params, state.stability, state.difficulty, rating, elapsed
                )
            candidates.append(
                ItemState(
                    memory=MemoryState(stability=s, difficulty=d),
                    interval=self.next_interval(s, desired_retention),
                )
            )
        return NextStates(*candidates)

    def memory_state(self, item: Item) -> MemoryState | None:
        """Memory state after every review of `item` except the last."""
        if not item.history():
            return None
        s, d = self._forward_states([item])
        return MemoryState(stability=float(s[0]), difficulty=float(d[0]))

    def memory_state_from_reviews(self, item: Item) -> MemoryState:
        """Memory state after all reviews of `item`, including the last."""
        first, *rest = item.reviews
        s, d = fsrs_math.init_state(self.params, first.rating)
        for review in rest:
            s, d = fsrs_math.step(self.params, s, d, review.rating, review.delta_t)
        return MemoryState(stability=s, difficulty=d)

    def _model(self) -> FSRSModel:
        return FSRSModel(self.params.weights, self.params.bounds, dtype=torch.float64)

    @torch.no_grad()
    def _forward_states(
        self, items: Sequence[Item]
    ) -> tuple[list[float], list[float]]:
        model = self._model()
        batch = batch_items(items, dtype=torch.float64)
        output = model(batch)
        return output.stability.tolist(), output.difficulty.tolist()

    @torch.no_grad()
    def evaluate(
        self,
        items: Sequence[Item],
        batch_size: int = 512,
        progress: Optional[Callable[[ItemProgress], None]] = None,
    ) -> ModelEvaluation:
        """
        Log loss and binned RMSE of current-review predictions.

        `progress` receives an `ItemProgress` after every scored batch.
        """
        items = [item for item in items if len(item.reviews) >= 2]
        if not items:
            raise ConfigError("evaluate needs items with at least two reviews.")
        model = self._model()
        preds: list[torch.Tensor] = []
        labels: list[torch.Tensor] = []
        for start in range(0, len(items), batch_size):
            chunk = items[start : start + batch_size]
            batch = batch_items(chunk, dtype=torch.float64)
            preds.append(model(batch).retrievability)
            labels.append(batch.labels)
            if progress is not None:
                progress(ItemProgress(current=start + len(chunk), total=len(items)))
        p = torch.cat(preds)
        y = torch.cat(labels)
        log_loss = float(bce_loss(p, y).item())
        return ModelEvaluation(log_loss=log_loss, rmse_bins=_rmse_bins(p, y))


def _rmse_bins(p: torch.Tensor, y: torch.Tensor) -> float:
    bins = torch.clamp((p * RMSE_BIN_COUNT).to(torch.int64), max=RMSE_BIN_COUNT - 1)
    counts = torch.bincount(bins, minlength=RMSE_BIN_COUNT).to(p.dtype)
    pred_sum = torch.bincount(bins, weights=p, minlength=RMSE_BIN_COUNT)
    real_sum = torch.bincount(bins, weights=y, minlength=RMSE_BIN_COUNT)
    safe = torch.clamp(counts, min=EPS)
    sq_err = counts * (pred_sum / safe - real_sum / safe) ** 2
    return math.sqrt(float(sq_err.sum().item()) / float(counts.sum().item()))


__all__ = [
    "FSRS",
    "MemoryState",
    "ItemProgress",
    "ItemState",
    "NextStates",
    "ModelEvaluation",
]
