from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display service with tqdm (TTY only).

Single tqdm instance per run, disabled in non-TTY environments (CI, pipes) to
avoid ANSI control sequence spam. The bar counts rows and is advanced once per
batch flush, with processed/error counts as postfix.
"""

__all__ = [
    "RowProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class RowProgress:
    """Row counter bar for one import run."""

    def __init__(self, total_rows: int | None = None, *, description: str = "Importing") -> None:
        self.description = description
        self.rows_seen = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def advance(self, rows: int, *, processed: int, errors: int) -> None:
        """Advance by ``rows`` and refresh the postfix."""
        self.rows_seen += rows
        if self.enabled and self.pbar is not None:
            self.pbar.update(rows)
            self.pbar.set_postfix(processed=processed, errors=errors)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> RowProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
