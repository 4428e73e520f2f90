from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

import torch
import torch.nn.functional as F
from tqdm import tqdm

from srsfit.dataset import BatchShuffledDataset, Item, split_data
from srsfit.defaults import EPS, resolve_weights
from srsfit.errors import ConfigError
from srsfit.model import FSRSModel
from srsfit.pre_training import pretrain
from srsfit.progress import ProgressCallback, ProgressState
from srsfit.weight_clipper import clip_weights_


@dataclass
class TrainingConfig:
    num_epochs: int = 5
    batch_size: int = 512
    learning_rate: float = 4e-2
    lr_min: float = 0.0
    seed: int = 2023
    pretrain_steps: int = 200
    pretrain_lr: float = 0.1
    # Batches between progress events; 0 reports once per epoch.
    progress_interval: int = 0
    show_progress: bool = False
    device: Optional[str] = None

    def __post_init__(self) -> None:
        if self.num_epochs <= 0:
            raise ConfigError("num_epochs must be positive.")
        if self.batch_size <= 0:
            raise ConfigError("batch_size must be positive.")
        if self.learning_rate <= 0.0 or self.lr_min < 0.0:
            raise ConfigError("learning rates must be positive.")
        if self.lr_min > self.learning_rate:
            raise ConfigError("lr_min must not exceed learning_rate.")
        if self.pretrain_steps < 0 or self.progress_interval < 0:
            raise ConfigError("pretrain_steps and progress_interval must be >= 0.")


@dataclass
class TrainingResult:
    weights: list[float]
    pretrain_weights: list[float]
    epoch_losses: list[float] = field(default_factory=list)
    cancelled: bool = False


def bce_loss(retrievability: torch.Tensor, labels: torch.Tensor) -> torch.Tensor:
    p = torch.clamp(retrievability, EPS, 1.0 - EPS)
    return F.binary_cross_entropy(p, labels)


class Trainer:
    """Full training stage: every weight, Adam + clipper + cosine schedule."""

    def __init__(
        self,
        config: TrainingConfig,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.config = config
        self.progress = progress
        self.cancel_event = cancel_event
        self.last_lr: float | None = None

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _report(self, state: ProgressState) -> None:
        if self.progress is not None:
            self.progress(state)

    def fit(
        self, items: Sequence[Item], weights: Sequence[float] | None = None
    ) -> tuple[list[float], list[float], bool]:
        """Return `(weights, epoch_losses, cancelled)`."""
        config = self.config
        device = torch.device(config.device) if config.device else torch.device("cpu")
        model = FSRSModel(weights).to(device)
        clip_weights_(model.w.data)
        if not items:
            logging.warning("Train set is empty; returning initial weights.")
            return model.weights(), [], False

        dataset = BatchShuffledDataset(items, config.batch_size, config.seed)
        total_steps = config.num_epochs * len(dataset)
        optimizer = torch.optim.Adam(model.parameters(), lr=config.learning_rate)
        scheduler = torch.optim.lr_scheduler.CosineAnnealingLR(
            optimizer, T_max=total_steps, eta_min=config.lr_min
        )

        best_weights: list[float] | None = None
        best_loss = float("inf")
        epoch_losses: list[float] = []
        cancelled = False
        start = time.monotonic()
        progress_bar = None
        if config.show_progress:
            progress_bar = tqdm(total=total_steps, desc="Training", unit="batch")

        try:
            for epoch in range(1, config.num_epochs + 1):
                loss_sum = 0.0
                seen = 0
                for batch_idx, batch in enumerate(dataset.epoch(), start=1):
                    if self._cancelled():
                        cancelled = True
                        break
                    batch = batch.to(device)
                    optimizer.zero_grad()
                    output = model(batch)
                    loss = bce_loss(output.retrievability, batch.labels)
                    loss.backward()
                    optimizer.step()
                    clip_weights_(model.w.data)
                    scheduler.step()

                    loss_sum += float(loss.item()) * len(batch)
                    seen += len(batch)
                    if progress_bar is not None:
                        progress_bar.update(1)
                        progress_bar.set_postfix(loss=f"{loss_sum / seen:.4f}")
                    if (
                        config.progress_interval
                        and batch_idx % config.progress_interval == 0
                    ):
                        self._report(
                            ProgressState(
                                epoch=epoch,
                                epoch_total=config.num_epochs,
                                items_processed=seen,
                                items_total=dataset.item_count,
                                loss=loss_sum / seen,
                                elapsed=time.monotonic() - start,
                            )
                        )
                if cancelled:
                    break
                epoch_loss = loss_sum / max(seen, 1)
                epoch_losses.append(epoch_loss)
                logging.debug(
                    "epoch %d/%d loss %.6f", epoch, config.num_epochs, epoch_loss
                )
                if epoch_loss < best_loss:
                    best_loss = epoch_loss
                    best_weights = model.weights()
                self._report(
                    ProgressState(
                        epoch=epoch,
                        epoch_total=config.num_epochs,
                        items_processed=seen,
                        items_total=dataset.item_count,
                        loss=epoch_loss,
                        elapsed=time.monotonic() - start,
                    )
                )
        finally:
            if progress_bar is not None:
                progress_bar.close()
        self.last_lr = scheduler.get_last_lr()[0]

        if cancelled:
            logging.info("Training cancelled after %d epochs.", len(epoch_losses))
            if best_weights is not None:
                return best_weights, epoch_losses, True
        return model.weights(), epoch_losses, cancelled


def train(
    items: Sequence[Item],
    weights: Sequence[float] | None = None,
    config: TrainingConfig | None = None,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[list[float], list[float], bool]:
    trainer = Trainer(config or TrainingConfig(), progress, cancel_event)
    return trainer.fit(items, weights)


def compute_weights(
    items: Sequence[Item],
    weights: Sequence[float] | None = None,
    config: TrainingConfig | None = None,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
) -> TrainingResult:
    """
    Two-stage fit: initial stability on two-review items, then every weight.

    The full stage trains on the filtered two-review items together with all
    longer histories, starting from the pretrained initial stability.
    """
    config = config or TrainingConfig()
    initial = list(resolve_weights(weights))
    pretrain_set, train_set = split_data(items)
    logging.info(
        "Fitting on %d pretrain items and %d train items.",
        len(pretrain_set),
        len(train_set),
    )
    pretrained = pretrain(
        pretrain_set,
        initial,
        steps=config.pretrain_steps,
        learning_rate=config.pretrain_lr,
    )
    if cancel_event is not None and cancel_event.is_set():
        return TrainingResult(
            weights=list(pretrained), pretrain_weights=pretrained, cancelled=True
        )
    fitted, losses, cancelled = train(
        pretrain_set + train_set, pretrained, config, progress, cancel_event
    )
    return TrainingResult(
        weights=fitted,
        pretrain_weights=pretrained,
        epoch_losses=losses,
        cancelled=cancelled,
    )


__all__ = [
    "TrainingConfig",
    "TrainingResult",
    "Trainer",
    "bce_loss",
    "train",
    "compute_weights",
]
