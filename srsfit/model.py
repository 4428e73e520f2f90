from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import torch
from torch import Tensor, nn

from srsfit.dataset import Batch
from srsfit.defaults import Bounds, resolve_weights
from srsfit.math import fsrs_batch


@dataclass
class ForwardOutput:
    stability: Tensor
    difficulty: Tensor
    retrievability: Tensor


class FSRSModel(nn.Module):
    """
    FSRS v4 memory model: a two-state recurrence driven by 17 weights.

    `w` is the only parameter. Time steps whose mask is False leave the
    state untouched, so padded positions never perturb it.
    """

    def __init__(
        self,
        weights: Sequence[float] | None = None,
        bounds: Bounds = Bounds(),
        dtype: torch.dtype = torch.float64,
    ) -> None:
        super().__init__()
        self.bounds = bounds
        self.w = nn.Parameter(torch.tensor(resolve_weights(weights), dtype=dtype))

    def init_state(self, batch_size: int) -> tuple[Tensor, Tensor]:
        device = self.w.device
        dtype = self.w.dtype
        s = torch.full((batch_size,), self.bounds.s_min, device=device, dtype=dtype)
        d = torch.full((batch_size,), self.bounds.d_min, device=device, dtype=dtype)
        return s, d

    def step(
        self,
        first: bool,
        delta_t: Tensor,
        rating: Tensor,
        state: tuple[Tensor, Tensor],
    ) -> tuple[Tensor, Tensor]:
        b = self.bounds
        if first:
            return fsrs_batch.init_state(self.w, rating, b.d_min, b.d_max)
        s, d = state
        return fsrs_batch.step(
            self.w, s, d, rating, delta_t, b.s_min, b.s_max, b.d_min, b.d_max
        )

    def memory_states(
        self, t_historys: Tensor, r_historys: Tensor, mask: Tensor
    ) -> tuple[Tensor, Tensor]:
        """Run the recurrence over `[seq_len, batch_size]` history tensors."""
        seq_len, batch_size = r_historys.shape
        s, d = self.init_state(batch_size)
        for i in range(seq_len):
            valid = mask[i]
            if not bool(valid.any()):
                continue
            # Masked-out ratings are replaced so no branch sees the pad value.
            rating = torch.where(valid, r_historys[i], torch.full_like(r_historys[i], 3))
            new_s, new_d = self.step(i == 0, t_historys[i], rating, (s, d))
            s = torch.where(valid, new_s, s)
            d = torch.where(valid, new_d, d)
        return s, d

    def forward(self, batch: Batch) -> ForwardOutput:
        s, d = self.memory_states(batch.t_historys, batch.r_historys, batch.mask)
        r = fsrs_batch.forgetting_curve(batch.delta_ts, s, self.bounds.s_min)
        return ForwardOutput(stability=s, difficulty=d, retrievability=r)

    def weights(self) -> list[float]:
        return [float(x) for x in self.w.detach().cpu().tolist()]


__all__ = ["FSRSModel", "ForwardOutput"]
