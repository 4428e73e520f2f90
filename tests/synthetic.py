from __future__ import annotations

import random
from typing import Sequence

from srsfit.dataset import Item, Review
from srsfit.inference import FSRS


def make_items(
    card_count: int,
    *,
    weights: Sequence[float] | None = None,
    max_reviews: int = 6,
    seed: int = 0,
) -> list[Item]:
    """Review histories of cards whose recall follows `weights`.

    Every review after the first yields one item: the prefix of the card's
    reviews ending at it.
    """
    rng = random.Random(seed)
    fsrs = FSRS(weights)
    items: list[Item] = []
    for _ in range(card_count):
        rating = rng.choices([1, 2, 3, 4], weights=[0.15, 0.2, 0.6, 0.05])[0]
        reviews = [Review(rating=rating, delta_t=0)]
        state = fsrs.memory_state_from_reviews(Item(tuple(reviews)))
        for _ in range(rng.randint(1, max_reviews - 1)):
            ivl = fsrs.next_interval(state.stability, 0.9)
            delta_t = max(1, int(round(ivl * rng.uniform(0.5, 1.5))))
            if rng.random() < fsrs.retrievability(state, delta_t):
                rating = rng.choices([2, 3, 4], weights=[0.3, 0.6, 0.1])[0]
            else:
                rating = 1
            reviews.append(Review(rating=rating, delta_t=delta_t))
            items.append(Item(tuple(reviews)))
            state = fsrs.memory_state_from_reviews(items[-1])
    return items
