"""The caro (gomoku) board and its win detection."""

from __future__ import annotations

import enum
from collections.abc import Iterator

from caroplay.protocol import BOARD_SIZE, WIN_LENGTH

Cell = tuple[int, int]

# Each pair is scanned forward first, then backward, from the cell just played.
_DIRECTIONS: tuple[tuple[Cell, Cell], ...] = (
    ((0, 1), (0, -1)),  # horizontal: right, then left
    ((1, 0), (-1, 0)),  # vertical: down, then up
    ((-1, -1), (1, 1)),  # diagonal: up-left, then down-right
    ((-1, 1), (1, -1)),  # anti-diagonal: up-right, then down-left
)


class Mark(enum.IntEnum):
    """What a board cell holds."""

    EMPTY = 0
    X = 1
    O = 2


class Board:
    """A square grid of marks."""

    def __init__(self, size: int = BOARD_SIZE, win_length: int = WIN_LENGTH) -> None:
        if size < 1 or win_length < 1:
            raise ValueError("board size and win length must be positive")
        self.size = size
        self.win_length = win_length
        self._grid = [[Mark.EMPTY] * size for _ in range(size)]

    def _inside(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def _require_inside(self, row: int, col: int) -> None:
        if not self._inside(row, col):
            raise IndexError(f"cell ({row}, {col}) is off a {self.size}x{self.size} board")

    def __getitem__(self, cell: Cell) -> Mark:
        row, col = cell
        self._require_inside(row, col)
        return self._grid[row][col]

    def __iter__(self) -> Iterator[tuple[Mark, ...]]:
        return (tuple(row) for row in self._grid)

    def clear(self) -> None:
        """Empty every cell."""
        for row in self._grid:
            row[:] = [Mark.EMPTY] * self.size

    def place(self, row: int, col: int, mark: Mark) -> list[Cell] | None:
        """Put a mark on a cell and return the winning line it makes, if any."""
        self._require_inside(row, col)
        self._grid[row][col] = Mark(mark)
        return self.winning_line(row, col)

    def winning_line(self, row: int, col: int) -> list[Cell] | None:
        """Return the cells of a winning line through (row, col), or None.

        The line starts at the given cell, continues forward along the
        direction and then backward, and holds exactly ``win_length`` cells.
        """
        mark = self[row, col]
        if mark is Mark.EMPTY:
            return None
        for pair in _DIRECTIONS:
            line: list[Cell] = [(row, col)]
            for d_row, d_col in pair:
                r, c = row + d_row, col + d_col
                while self._inside(r, c) and self._grid[r][c] == mark:
                    line.append((r, c))
                    if len(line) == self.win_length:
                        return line
                    r, c = r + d_row, c + d_col
        return None