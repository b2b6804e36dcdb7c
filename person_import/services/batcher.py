from __future__ import annotations

from ..models.record import Record

"""Fixed-capacity record accumulator. No I/O."""

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "BatchOverflowError",
    "Batcher",
]

DEFAULT_BATCH_SIZE = 1000


class BatchOverflowError(RuntimeError):
    """add() called on a batch that is already full."""


class Batcher:
    def __init__(self, capacity: int = DEFAULT_BATCH_SIZE) -> None:
        if capacity < 1:
            raise ValueError(f"batch capacity must be >= 1 (got {capacity})")
        self.capacity = capacity
        self._records: list[Record] = []

    def add(self, record: Record) -> bool:
        """Append ``record``. Returns True when the batch has reached capacity."""
        if self.is_full:
            raise BatchOverflowError(f"batch already holds {self.capacity} records")
        self._records.append(record)
        return self.is_full

    @property
    def is_full(self) -> bool:
        return len(self._records) >= self.capacity

    def drain(self) -> list[Record]:
        """Hand over the current contents and start a new empty batch."""
        batch, self._records = self._records, []
        return batch

    def __len__(self) -> int:
        return len(self._records)
