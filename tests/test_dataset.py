import random
import unittest

import torch

from srsfit.dataset import (
    BatchShuffledDataset,
    Item,
    Review,
    batch_items,
    filter_outlier,
    split_data,
)
from srsfit.errors import InvalidItemError


def _item(*pairs):
    return Item.from_pairs(pairs)


def _bucket(rating, delta_t, count):
    return [_item((rating, 0), (3, delta_t)) for _ in range(count)]


class TestItem(unittest.TestCase):
    def test_history_and_current(self):
        item = _item((4, 0), (3, 5), (1, 11))
        self.assertEqual(item.history(), (Review(4, 0), Review(3, 5)))
        self.assertEqual(item.current(), Review(1, 11))

    def test_empty_item_rejected(self):
        with self.assertRaises(InvalidItemError):
            Item(())

    def test_invalid_review_rejected(self):
        with self.assertRaises(InvalidItemError):
            Review(rating=0, delta_t=1)
        with self.assertRaises(InvalidItemError):
            Review(rating=3, delta_t=-1)

    def test_list_reviews_are_frozen_to_tuple(self):
        item = Item([Review(3, 0), Review(3, 2)])
        self.assertIsInstance(item.reviews, tuple)


class TestBatchItems(unittest.TestCase):
    def test_batch_matches_worked_example(self):
        items = [
            _item((4, 0), (3, 5)),
            _item((4, 0), (3, 5), (3, 11)),
            _item((4, 0), (3, 2)),
            _item((4, 0), (3, 2), (3, 6)),
            _item((4, 0), (3, 2), (3, 6), (3, 16)),
            _item((4, 0), (3, 2), (3, 6), (3, 16), (3, 39)),
            _item((1, 0), (1, 1)),
            _item((1, 0), (1, 1), (3, 1)),
        ]
        batch = batch_items(items)

        self.assertEqual(
            batch.t_historys.tolist(),
            [
                [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
                [0.0, 5.0, 0.0, 2.0, 2.0, 2.0, 0.0, 1.0],
                [0.0, 0.0, 0.0, 0.0, 6.0, 6.0, 0.0, 0.0],
                [0.0, 0.0, 0.0, 0.0, 0.0, 16.0, 0.0, 0.0],
            ],
        )
        self.assertEqual(
            batch.r_historys.tolist(),
            [
                [4.0, 4.0, 4.0, 4.0, 4.0, 4.0, 1.0, 1.0],
                [0.0, 3.0, 0.0, 3.0, 3.0, 3.0, 0.0, 1.0],
                [0.0, 0.0, 0.0, 0.0, 3.0, 3.0, 0.0, 0.0],
                [0.0, 0.0, 0.0, 0.0, 0.0, 3.0, 0.0, 0.0],
            ],
        )
        self.assertEqual(
            batch.delta_ts.tolist(), [5.0, 11.0, 2.0, 6.0, 16.0, 39.0, 1.0, 1.0]
        )
        self.assertEqual(batch.labels.tolist(), [1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 0.0, 1.0])
        self.assertEqual(
            batch.mask.sum(dim=0).tolist(), [1, 2, 1, 2, 3, 4, 1, 2]
        )

    def test_padding_beyond_history_is_zero(self):
        items = [_item((3, 0), (3, 3)), _item((2, 0), (3, 1), (1, 4), (3, 2))]
        batch = batch_items(items)
        self.assertEqual(tuple(batch.r_historys.shape), (3, 2))
        self.assertTrue(torch.all(batch.r_historys[1:, 0] == 0))
        self.assertTrue(torch.all(batch.t_historys[1:, 0] == 0))
        self.assertFalse(bool(batch.mask[1:, 0].any()))

    def test_single_review_items_give_empty_history(self):
        batch = batch_items([_item((3, 4)), _item((1, 0))])
        self.assertEqual(tuple(batch.t_historys.shape), (0, 2))
        self.assertEqual(tuple(batch.r_historys.shape), (0, 2))
        self.assertEqual(batch.labels.tolist(), [1.0, 0.0])

    def test_empty_batch_rejected(self):
        with self.assertRaises(InvalidItemError):
            batch_items([])


class TestFilterOutlier(unittest.TestCase):
    def test_rarest_bucket_removed_first(self):
        items = (
            _bucket(3, 1, 60)
            + _bucket(3, 2, 30)
            + _bucket(3, 3, 4)
            + _bucket(3, 4, 3)
            + _bucket(3, 5, 3)
        )
        kept = filter_outlier(items)
        kept_deltas = {item.current().delta_t for item in kept}
        # Budget is 5: the (size 3, delta_t 5) bucket ranks last and goes.
        self.assertEqual(len(kept), 97)
        self.assertEqual(kept_deltas, {1, 2, 3, 4})

    def test_several_small_buckets_removed(self):
        items = (
            _bucket(2, 1, 90)
            + _bucket(2, 2, 6)
            + _bucket(2, 3, 2)
            + _bucket(2, 4, 1)
            + _bucket(2, 5, 1)
        )
        kept = filter_outlier(items)
        self.assertEqual(len(kept), 96)
        self.assertEqual({item.current().delta_t for item in kept}, {1, 2})

    def test_groups_filtered_per_first_rating(self):
        items = _bucket(1, 1, 19) + _bucket(1, 9, 1) + _bucket(4, 1, 10)
        kept = filter_outlier(items)
        # Rating 1: 20 items, budget 1. Rating 4: 10 items, budget 0.
        self.assertEqual(len(kept), 29)
        self.assertNotIn(9, {item.current().delta_t for item in kept})

    def test_removed_count_within_budget(self):
        rng = random.Random(7)
        items = []
        for _ in range(2000):
            rating = rng.randint(1, 4)
            delta_t = int(rng.expovariate(0.3)) + 1
            items.append(_item((rating, 0), (rng.randint(1, 4), delta_t)))
        kept = filter_outlier(items)
        for rating in range(1, 5):
            group = [i for i in items if i.reviews[0].rating == rating]
            kept_group = [i for i in kept if i.reviews[0].rating == rating]
            removed = len(group) - len(kept_group)
            self.assertLessEqual(removed, len(group) // 20)

            sizes: dict[int, int] = {}
            for item in group:
                key = item.current().delta_t
                sizes[key] = sizes.get(key, 0) + 1
            kept_keys = {i.current().delta_t for i in kept_group}
            removed_keys = set(sizes) - kept_keys
            if removed_keys and kept_keys:
                self.assertLessEqual(
                    max(sizes[k] for k in removed_keys),
                    min(sizes[k] for k in kept_keys),
                )


class TestSplitData(unittest.TestCase):
    def test_split_by_length(self):
        two = _bucket(3, 1, 30)
        longer = [_item((3, 0), (3, 2), (3, 5)), _item((1, 0), (3, 1), (3, 3), (1, 7))]
        single = [_item((3, 0))]
        pretrain_set, train_set = split_data(two + longer + single)
        self.assertEqual(len(pretrain_set), 30)
        self.assertEqual(train_set, longer)


class TestBatchShuffledDataset(unittest.TestCase):
    def _items(self):
        return [
            _item(*([(3, 0)] + [(3, d) for d in range(1, n + 1)]))
            for n in range(1, 21)
        ]

    def test_same_seed_same_order(self):
        a = BatchShuffledDataset(self._items(), batch_size=3, seed=11)
        b = BatchShuffledDataset(self._items(), batch_size=3, seed=11)
        for _ in range(3):
            order_a = [batch.delta_ts.tolist() for batch in a.epoch()]
            order_b = [batch.delta_ts.tolist() for batch in b.epoch()]
            self.assertEqual(order_a, order_b)

    def test_every_item_once_per_epoch(self):
        dataset = BatchShuffledDataset(self._items(), batch_size=3, seed=1)
        self.assertEqual(len(dataset), 7)
        seen = sum(len(batch) for batch in dataset.epoch())
        self.assertEqual(seen, 20)


if __name__ == "__main__":
    unittest.main()
