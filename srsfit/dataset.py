from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Sequence, Tuple

import numpy as np
import torch

from srsfit.errors import InvalidItemError


@dataclass(frozen=True, slots=True)
class Review:
    """One graded review: `rating` 1-4 after `delta_t` days."""

    rating: int
    delta_t: int

    def __post_init__(self) -> None:
        if not 1 <= self.rating <= 4:
            raise InvalidItemError(f"Review rating must be 1-4, got {self.rating}.")
        if self.delta_t < 0:
            raise InvalidItemError(f"Review delta_t must be >= 0, got {self.delta_t}.")


@dataclass(frozen=True, slots=True)
class Item:
    """
    Chronological reviews of a single card.

    The last review is the one being predicted; everything before it is the
    history fed through the memory model. When used for scheduling, the
    rating of the last review is ignored.
    """

    reviews: Tuple[Review, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.reviews, tuple):
            object.__setattr__(self, "reviews", tuple(self.reviews))
        if not self.reviews:
            raise InvalidItemError("Item must contain at least one review.")

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, int]]) -> "Item":
        """Build from `(rating, delta_t)` pairs."""
        return cls(tuple(Review(rating=r, delta_t=t) for r, t in pairs))

    def history(self) -> Tuple[Review, ...]:
        return self.reviews[:-1]

    def current(self) -> Review:
        return self.reviews[-1]

    def __len__(self) -> int:
        return len(self.reviews)


@dataclass
class Batch:
    t_historys: torch.Tensor  # [seq_len, batch_size]
    r_historys: torch.Tensor  # [seq_len, batch_size]
    mask: torch.Tensor  # [seq_len, batch_size], True for real history steps
    delta_ts: torch.Tensor  # [batch_size]
    labels: torch.Tensor  # [batch_size]

    def __len__(self) -> int:
        return int(self.delta_ts.shape[0])

    def to(self, device: torch.device | str) -> "Batch":
        return Batch(
            t_historys=self.t_historys.to(device),
            r_historys=self.r_historys.to(device),
            mask=self.mask.to(device),
            delta_ts=self.delta_ts.to(device),
            labels=self.labels.to(device),
        )


def batch_items(items: Sequence[Item], dtype: torch.dtype = torch.float64) -> Batch:
    if not items:
        raise InvalidItemError("Cannot build a batch from zero items.")
    pad_size = max(len(item.reviews) for item in items) - 1
    batch_size = len(items)

    t_hist = np.zeros((batch_size, pad_size), dtype=np.float64)
    r_hist = np.zeros((batch_size, pad_size), dtype=np.float64)
    mask = np.zeros((batch_size, pad_size), dtype=bool)
    delta_ts = np.empty(batch_size, dtype=np.float64)
    labels = np.empty(batch_size, dtype=np.float64)
    for i, item in enumerate(items):
        history = item.history()
        n = len(history)
        t_hist[i, :n] = [review.delta_t for review in history]
        r_hist[i, :n] = [review.rating for review in history]
        mask[i, :n] = True
        current = item.current()
        delta_ts[i] = current.delta_t
        labels[i] = 0.0 if current.rating == 1 else 1.0

    return Batch(
        t_historys=torch.from_numpy(t_hist.T.copy()).to(dtype),
        r_historys=torch.from_numpy(r_hist.T.copy()).to(dtype),
        mask=torch.from_numpy(mask.T.copy()),
        delta_ts=torch.from_numpy(delta_ts).to(dtype),
        labels=torch.from_numpy(labels).to(dtype),
    )


class BatchShuffledDataset:
    """
    Length-sorted fixed-size batches whose order is reshuffled every epoch.

    Sorting keeps padding small; the shuffle generator is seeded once, so
    the sequence of epochs is reproducible.
    """

    def __init__(
        self,
        items: Sequence[Item],
        batch_size: int,
        seed: int,
        dtype: torch.dtype = torch.float64,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive.")
        ordered = sorted(items, key=lambda item: len(item.reviews))
        self.batches: List[List[Item]] = [
            ordered[start : start + batch_size]
            for start in range(0, len(ordered), batch_size)
        ]
        self.item_count = len(ordered)
        self.dtype = dtype
        self._gen = torch.Generator()
        self._gen.manual_seed(seed)

    def __len__(self) -> int:
        return len(self.batches)

    def epoch(self) -> Iterator[Batch]:
        order = torch.randperm(len(self.batches), generator=self._gen).tolist()
        for idx in order:
            yield batch_items(self.batches[idx], dtype=self.dtype)


def filter_outlier(items: Sequence[Item]) -> List[Item]:
    """
    Drop the rarest first-interval buckets of each first rating.

    Items are grouped by first rating, then by the delta_t of the second
    review. At most 5% (floored) of a rating group is removed, starting from
    the smallest buckets.
    """
    groups: dict[int, dict[int, List[Item]]] = defaultdict(lambda: defaultdict(list))
    for item in items:
        first_review = item.reviews[0]
        groups[first_review.rating][item.current().delta_t].append(item)

    filtered: List[Item] = []
    removed_total = 0
    for rating in sorted(groups):
        sub_groups = sorted(
            groups[rating].items(), key=lambda entry: (-len(entry[1]), entry[0])
        )
        total = sum(len(sub_group) for _, sub_group in sub_groups)
        budget = total // 20
        has_been_removed = 0
        for _delta_t, sub_group in reversed(sub_groups):
            if has_been_removed + len(sub_group) > budget:
                filtered.extend(sub_group)
            else:
                has_been_removed += len(sub_group)
        removed_total += has_been_removed
    if removed_total:
        logging.info("Removed %d outlier items from the pretrain set.", removed_total)
    return filtered


def split_data(items: Sequence[Item]) -> Tuple[List[Item], List[Item]]:
    """Return `(pretrain_set, train_set)`; only the pretrain set is filtered."""
    pretrain_set: List[Item] = []
    train_set: List[Item] = []
    dropped = 0
    for item in items:
        if len(item.reviews) == 2:
            pretrain_set.append(item)
        elif len(item.reviews) > 2:
            train_set.append(item)
        else:
            dropped += 1
    if dropped:
        logging.warning("Skipping %d items with a single review.", dropped)
    return filter_outlier(pretrain_set), train_set


__all__ = [
    "Review",
    "Item",
    "Batch",
    "batch_items",
    "BatchShuffledDataset",
    "filter_outlier",
    "split_data",
]
