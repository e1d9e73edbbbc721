"""
Fog of war - per-cell visibility mask hidden from the player view.
"""

from __future__ import annotations

import numpy as np


class FogOfWar:
    """
    Resizable boolean visibility matrix over grid cells.

    ``True`` means visible. Reads outside the matrix report hidden, writes
    outside it are ignored, so callers can pass raw grid coordinates.

    Usage:
        fog = FogOfWar(20, 15)
        fog.set(3, 4, False)
        fog.get(3, 4)  # False
    """

    def __init__(self, cols: int = 0, rows: int = 0):
        self._cells = np.ones((0, 0), dtype=bool)
        self.resize(cols, rows)

    @property
    def cols(self) -> int:
        return self._cells.shape[1]

    @property
    def rows(self) -> int:
        return self._cells.shape[0]

    @property
    def shape(self) -> tuple[int, int]:
        """(cols, rows)"""
        return (self.cols, self.rows)

    @property
    def cells(self) -> np.ndarray:
        """Read-only view of the matrix, indexed [row, col]."""
        view = self._cells.view()
        view.flags.writeable = False
        return view

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.cols and 0 <= y < self.rows

    def get(self, x: int, y: int) -> bool:
        if not self.in_bounds(x, y):
            return False
        return bool(self._cells[y, x])

    def set(self, x: int, y: int, visible: bool) -> None:
        if self.in_bounds(x, y):
            self._cells[y, x] = visible

    def paint(self, x: int, y: int, visible: bool) -> None:
        """Drag painting; same bounds rules as set()."""
        self.set(x, y, visible)

    def toggle(self, x: int, y: int) -> None:
        if self.in_bounds(x, y):
            self._cells[y, x] = not self._cells[y, x]

    def reveal_all(self) -> None:
        self._cells.fill(True)

    def hide_all(self) -> None:
        self._cells.fill(False)

    def resize(self, cols: int, rows: int) -> None:
        """Reallocate to the given size, fully visible."""
        if cols < 0 or rows < 0:
            raise ValueError(f"Fog dimensions must be non-negative, got {cols}x{rows}")
        self._cells = np.ones((rows, cols), dtype=bool)

    def to_bytes(self) -> bytes:
        """Row-major, one byte (0 or 1) per cell."""
        return self._cells.astype(np.uint8).tobytes()

    def load_cells(self, data: bytes, cols: int, rows: int) -> None:
        """
        Copy a stored row-major matrix into this one.

        Only the region shared by both shapes is copied; stored cells past
        the current bounds are skipped and current cells past the stored
        bounds keep their value. A buffer shorter than ``cols * rows`` is
        treated as ending early: missing cells are left untouched.

        Args:
            data: Stored cells, one byte each, nonzero = visible
            cols, rows: Shape the data was stored with
        """
        if cols <= 0 or rows <= 0 or not data:
            return

        stored = np.frombuffer(data, dtype=np.uint8, count=min(len(data), cols * rows))
        full_rows = len(stored) // cols
        copy_cols = min(cols, self.cols)
        copy_rows = min(full_rows, rows, self.rows)

        if copy_rows > 0 and copy_cols > 0:
            block = stored[:full_rows * cols].reshape(full_rows, cols)
            self._cells[:copy_rows, :copy_cols] = block[:copy_rows, :copy_cols] != 0

        # Trailing partial row
        remainder = len(stored) - full_rows * cols
        if remainder and full_rows < min(rows, self.rows):
            tail = stored[full_rows * cols:]
            n = min(remainder, self.cols)
            self._cells[full_rows, :n] = tail[:n] != 0

    def __repr__(self) -> str:
        return f"FogOfWar(cols={self.cols}, rows={self.rows})"
