from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

"""Backpressure controller.

Single-flight discipline between the source and the sink: the source is
paused before a batch write starts and resumed after it ends, whatever the
outcome. Only one flush may be outstanding at a time.
"""

__all__ = [
    "BackpressureController",
    "BackpressureError",
    "Pausable",
]

logger = logging.getLogger(__name__)


class BackpressureError(RuntimeError):
    """A second flush was started while one is still in flight."""


class Pausable(Protocol):
    def pause(self) -> bool: ...

    def resume(self) -> bool: ...


class BackpressureController:
    def __init__(self, source: Pausable) -> None:
        self._source = source
        self._suspended = False
        self._in_flight = False
        self.cycles = 0  # 完了した suspend/resume 回数

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def suspend(self) -> bool:
        """Pause the source. No-op (returns False) when already suspended."""
        if self._suspended:
            return False
        self._source.pause()
        self._suspended = True
        return True

    def resume(self) -> bool:
        """Resume the source. No-op (returns False) when not suspended."""
        if not self._suspended:
            return False
        self._source.resume()
        self._suspended = False
        return True

    @contextmanager
    def flushing(self, *, suspend: bool = True) -> Iterator[None]:
        """Bracket one batch write.

        ``suspend=False`` is used for the final flush, when the source is
        already exhausted and there is nothing to hold back.
        """
        if self._in_flight:
            raise BackpressureError("batch flush already in flight")
        self._in_flight = True
        paused_here = self.suspend() if suspend else False
        try:
            yield
        finally:
            self._in_flight = False
            if paused_here:
                self.resume()
                self.cycles += 1
                logger.debug("backpressure cycle=%d resumed", self.cycles)
