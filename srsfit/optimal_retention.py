from __future__ import annotations

import logging
import math
import time
from concurrent import futures
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from tqdm import tqdm

from srsfit.errors import ConfigError
from srsfit.retention_grid import retention_values
from srsfit.simulation import SimulationResult, simulate

OBJECTIVES = {"cost_per_memorized", "total_cost"}


@dataclass(frozen=True)
class SimulatorConfig:
    deck_size: int = 10000
    learn_span: int = 365
    max_cost_perday: Optional[float] = 1800.0
    max_ivl: int = 36500
    learn_cost: float = 20.0
    forget_cost: float = 50.0
    # Seconds per successful review, ratings 2..4.
    recall_costs: tuple[float, float, float] = (14.0, 10.0, 6.0)
    # First-review rating distribution, ratings 1..4.
    first_rating_prob: tuple[float, float, float, float] = (0.15, 0.2, 0.6, 0.05)
    # Rating distribution of successful reviews, ratings 2..4.
    review_rating_prob: tuple[float, float, float] = (0.3, 0.6, 0.1)
    # None means ceil(deck_size / learn_span).
    learn_limit_perday: Optional[int] = None
    min_retention: float = 0.75
    max_retention: float = 0.95
    retention_step: float = 0.01
    sample_size: int = 4
    target_stderr: Optional[float] = None
    time_budget: Optional[float] = None
    objective: str = "cost_per_memorized"
    seed: int = 42

    def __post_init__(self) -> None:
        if self.deck_size <= 0 or self.learn_span <= 0:
            raise ConfigError("deck_size and learn_span must be positive.")
        if self.max_ivl < 1:
            raise ConfigError("max_ivl must be >= 1.")
        if self.max_cost_perday is not None and self.max_cost_perday <= 0:
            raise ConfigError("max_cost_perday must be positive.")
        if self.learn_limit_perday is not None and self.learn_limit_perday < 0:
            raise ConfigError("learn_limit_perday must be >= 0.")
        if min(self.learn_cost, self.forget_cost, *self.recall_costs) < 0:
            raise ConfigError("costs must be non-negative.")
        _check_distribution("recall_costs", self.recall_costs, 3, probabilities=False)
        _check_distribution("first_rating_prob", self.first_rating_prob, 4)
        _check_distribution("review_rating_prob", self.review_rating_prob, 3)
        if not 0.0 < self.min_retention < 1.0 or not 0.0 < self.max_retention < 1.0:
            raise ConfigError("retention bounds must lie in (0, 1).")
        if self.min_retention >= self.max_retention:
            raise ConfigError(
                f"min_retention ({self.min_retention}) must be < "
                f"max_retention ({self.max_retention})."
            )
        if self.retention_step <= 0:
            raise ConfigError("retention_step must be positive.")
        if self.sample_size <= 0:
            raise ConfigError("sample_size must be positive.")
        if self.target_stderr is not None and self.target_stderr <= 0:
            raise ConfigError("target_stderr must be positive.")
        if self.time_budget is not None and self.time_budget <= 0:
            raise ConfigError("time_budget must be positive.")
        if self.objective not in OBJECTIVES:
            raise ConfigError(f"Unknown objective '{self.objective}'.")
        # Candidates are rounded to 2 decimals; the rounded range must be non-empty.
        retention_values(self.min_retention, self.max_retention, self.retention_step)

    def resolved_learn_limit(self) -> int:
        if self.learn_limit_perday is not None:
            return self.learn_limit_perday
        return math.ceil(self.deck_size / self.learn_span)


def _check_distribution(
    name: str, values: Sequence[float], length: int, *, probabilities: bool = True
) -> None:
    if len(values) != length:
        raise ConfigError(f"{name} expects {length} values, got {len(values)}.")
    if probabilities and (min(values) < 0 or not sum(values) > 0):
        raise ConfigError(f"{name} must be non-negative and sum to > 0.")


@dataclass
class CostEstimate:
    retention: float
    mean: float
    stderr: float
    samples: list[float] = field(default_factory=list)
    results: list[SimulationResult] = field(default_factory=list)


@dataclass
class OptimalRetention:
    retention: float
    estimates: list[CostEstimate]

    def best(self) -> CostEstimate:
        return next(e for e in self.estimates if e.retention == self.retention)


def standard_error(samples: Sequence[float]) -> float:
    """Standard error of the mean; infinite until two samples exist."""
    n = len(samples)
    if n < 2:
        return math.inf
    mean = sum(samples) / n
    variance = sum((x - mean) ** 2 for x in samples) / (n - 1)
    return math.sqrt(variance / n)


def estimate_cost(
    weights: Sequence[float] | None,
    config: SimulatorConfig,
    retention: float,
    *,
    sample_size: Optional[int] = None,
    deadline: Optional[float] = None,
    seed_offset: int = 0,
) -> CostEstimate:
    """
    Average the objective over repeated simulations at one retention.

    Repeat `i` uses seed `config.seed + seed_offset + i`, so every candidate
    retention sees the same random streams. The standard error shrinks with
    the repeat count in expectation only; adding one sample can raise it.

    Stops early once `target_stderr` is reached or `deadline` (a
    `time.monotonic()` value) passes; at least one simulation always runs.
    """
    n = sample_size if sample_size is not None else config.sample_size
    samples: list[float] = []
    results: list[SimulationResult] = []
    for i in range(n):
        result = simulate(weights, config, retention, config.seed + seed_offset + i)
        results.append(result)
        samples.append(result.objective(config.objective))
        if (
            config.target_stderr is not None
            and standard_error(samples) <= config.target_stderr
        ):
            logging.debug(
                "retention %.2f converged after %d samples", retention, len(samples)
            )
            break
        if deadline is not None and time.monotonic() >= deadline:
            logging.info(
                "Time budget exhausted at retention %.2f after %d samples.",
                retention,
                len(samples),
            )
            break
    return CostEstimate(
        retention=retention,
        mean=sum(samples) / len(samples),
        stderr=standard_error(samples),
        samples=samples,
        results=results,
    )


def find_optimal_retention(
    weights: Sequence[float] | None,
    config: SimulatorConfig | None = None,
    *,
    workers: int = 1,
    progress: bool = False,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> OptimalRetention:
    """Scan the retention grid and return the candidate with the lowest cost."""
    config = config or SimulatorConfig()
    candidates = retention_values(
        config.min_retention, config.max_retention, config.retention_step
    )
    deadline = None
    if config.time_budget is not None:
        deadline = time.monotonic() + config.time_budget

    progress_bar = None
    if progress:
        progress_bar = tqdm(
            total=len(candidates), desc="Retention", unit="candidate", leave=False
        )
    completed = 0

    def _advance() -> None:
        nonlocal completed
        completed += 1
        if progress_bar is not None:
            progress_bar.update(1)
        if progress_callback is not None:
            progress_callback(completed, len(candidates))

    estimates: dict[float, CostEstimate] = {}
    try:
        if workers <= 1:
            for retention in candidates:
                estimates[retention] = estimate_cost(
                    weights, config, retention, deadline=deadline
                )
                _advance()
        else:
            with futures.ThreadPoolExecutor(max_workers=workers) as executor:
                pending = {
                    executor.submit(
                        estimate_cost, weights, config, retention, deadline=deadline
                    ): retention
                    for retention in candidates
                }
                for future in futures.as_completed(pending):
                    estimates[pending[future]] = future.result()
                    _advance()
    finally:
        if progress_bar is not None:
            progress_bar.close()

    ordered = [estimates[r] for r in candidates]
    best = min(ordered, key=lambda e: (e.mean, e.retention))
    logging.info(
        "Optimal retention %.2f (%s %.4f).", best.retention, config.objective, best.mean
    )
    return OptimalRetention(retention=best.retention, estimates=ordered)


__all__ = [
    "SimulatorConfig",
    "CostEstimate",
    "OptimalRetention",
    "standard_error",
    "estimate_cost",
    "find_optimal_retention",
]
