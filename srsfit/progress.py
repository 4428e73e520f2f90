from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressState:
    epoch: int
    epoch_total: int
    items_processed: int
    items_total: int
    loss: float
    elapsed: float

    def to_dict(self) -> dict[str, float | int]:
        return {
            "epoch": self.epoch,
            "epoch_total": self.epoch_total,
            "items_processed": self.items_processed,
            "items_total": self.items_total,
            "loss": self.loss,
            "elapsed": self.elapsed,
        }


ProgressCallback = Callable[[ProgressState], None]


class ProgressChannel:
    """
    Bounded, thread-safe buffer of progress events.

    Publishing never blocks: once `maxsize` events are pending the oldest is
    dropped. The channel also carries the cancellation flag the trainer
    polls between batches.
    """

    def __init__(self, maxsize: int = 64) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive.")
        self._events: deque[ProgressState] = deque(maxlen=maxsize)
        self._lock = threading.Lock()
        self._available = threading.Condition(self._lock)
        self.cancel_event = threading.Event()
        self.dropped = 0

    def __call__(self, state: ProgressState) -> None:
        self.put(state)

    def put(self, state: ProgressState) -> None:
        with self._available:
            if len(self._events) == self._events.maxlen:
                self.dropped += 1
            self._events.append(state)
            self._available.notify_all()

    def get(self, timeout: float | None = None) -> ProgressState | None:
        with self._available:
            if not self._events:
                self._available.wait(timeout)
            if not self._events:
                return None
            return self._events.popleft()

    def drain(self) -> list[ProgressState]:
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def latest(self) -> ProgressState | None:
        with self._lock:
            return self._events[-1] if self._events else None

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


__all__ = [
    "ProgressState",
    "ProgressCallback",
    "ProgressChannel",
]
