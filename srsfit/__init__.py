from srsfit.dataset import (
    Batch,
    BatchShuffledDataset,
    Item,
    Review,
    batch_items,
    filter_outlier,
    split_data,
)
from srsfit.defaults import DEFAULT_WEIGHTS, WEIGHT_BOUNDS, Bounds
from srsfit.errors import ConfigError, FSRSError, InvalidItemError
from srsfit.inference import (
    FSRS,
    ItemProgress,
    ItemState,
    MemoryState,
    ModelEvaluation,
    NextStates,
)
from srsfit.model import FSRSModel
from srsfit.optimal_retention import (
    CostEstimate,
    OptimalRetention,
    SimulatorConfig,
    estimate_cost,
    find_optimal_retention,
)
from srsfit.pre_training import pretrain
from srsfit.progress import ProgressChannel, ProgressState
from srsfit.training import TrainingConfig, TrainingResult, compute_weights, train
from srsfit.weight_clipper import clip_weights

__all__ = [
    "Batch",
    "BatchShuffledDataset",
    "Item",
    "Review",
    "batch_items",
    "filter_outlier",
    "split_data",
    "DEFAULT_WEIGHTS",
    "WEIGHT_BOUNDS",
    "Bounds",
    "ConfigError",
    "FSRSError",
    "InvalidItemError",
    "FSRS",
    "ItemProgress",
    "ItemState",
    "MemoryState",
    "ModelEvaluation",
    "NextStates",
    "FSRSModel",
    "CostEstimate",
    "OptimalRetention",
    "SimulatorConfig",
    "estimate_cost",
    "find_optimal_retention",
    "pretrain",
    "ProgressChannel",
    "ProgressState",
    "TrainingConfig",
    "TrainingResult",
    "compute_weights",
    "train",
    "clip_weights",
]
