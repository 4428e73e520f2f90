import random
import unittest

import torch

from srsfit.defaults import DEFAULT_WEIGHTS, WEIGHT_BOUNDS
from srsfit.weight_clipper import clip_weights, clip_weights_, within_bounds


class TestWeightClipper(unittest.TestCase):
    def test_defaults_are_valid(self):
        self.assertTrue(within_bounds(DEFAULT_WEIGHTS))
        self.assertEqual(clip_weights(DEFAULT_WEIGHTS), list(DEFAULT_WEIGHTS))

    def test_random_vectors_land_in_bounds(self):
        rng = random.Random(0)
        for _ in range(500):
            raw = [rng.uniform(-50.0, 150.0) for _ in WEIGHT_BOUNDS]
            clipped = clip_weights(raw)
            self.assertTrue(within_bounds(clipped))
            self.assertEqual(clip_weights(clipped), clipped)

    def test_tensor_clip_in_place(self):
        gen = torch.Generator().manual_seed(1)
        lower = torch.tensor([lo for lo, _ in WEIGHT_BOUNDS])
        upper = torch.tensor([hi for _, hi in WEIGHT_BOUNDS])
        for _ in range(100):
            w = torch.randn(len(WEIGHT_BOUNDS), generator=gen) * 100.0
            out = clip_weights_(w)
            self.assertIs(out, w)
            self.assertTrue(torch.all(w >= lower))
            self.assertTrue(torch.all(w <= upper))

    def test_clamps_each_component_independently(self):
        raw = [1000.0] * len(WEIGHT_BOUNDS)
        raw[7] = -1.0
        clipped = clip_weights(raw)
        self.assertEqual(clipped[0], WEIGHT_BOUNDS[0][1])
        self.assertEqual(clipped[7], WEIGHT_BOUNDS[7][0])
        self.assertEqual(clipped[16], WEIGHT_BOUNDS[16][1])

    def test_parameter_clip_keeps_autograd_leaf(self):
        w = torch.nn.Parameter(
            torch.full((len(WEIGHT_BOUNDS),), 50.0, dtype=torch.float64)
        )
        clip_weights_(w.data)
        self.assertTrue(w.requires_grad)
        self.assertTrue(within_bounds(w.detach().tolist()))


if __name__ == "__main__":
    unittest.main()
