# capture.py

import time

import numpy as np

from config import config
from data_structures import BoardState
from interfaces import Capturer

# Piece planes in the order P N B R Q K (white) then p n b r q k (black).
_START_SQUARES = {
    0: [(f, 1) for f in range(8)],   # white pawns
    1: [(1, 0), (6, 0)],             # white knights
    2: [(2, 0), (5, 0)],
    3: [(0, 0), (7, 0)],
    4: [(3, 0)],
    5: [(4, 0)],
    6: [(f, 6) for f in range(8)],   # black pawns
    7: [(1, 7), (6, 7)],
    8: [(2, 7), (5, 7)],
    9: [(0, 7), (7, 7)],
    10: [(3, 7)],
    11: [(4, 7)],
}


def starting_position() -> np.ndarray:
    board = np.zeros((config.NUM_PIECE_PLANES, config.BOARD_SIZE, config.BOARD_SIZE), dtype=np.float32)
    for plane, squares in _START_SQUARES.items():
        for file, rank in squares:
            board[plane, rank, file] = 1.0
    return board


class SimulatedCapturer(Capturer):
    """
    Stands in for screen capture. Produces seeded board tensors that drift a
    little each call, and can be told to fail a given number of times first.
    """
    def __init__(self, seed=None, fail_first=0, failure_rate=0.0, mutation_rate=0.05):
        self.rng = np.random.default_rng(seed)
        self.fail_first = fail_first
        self.failure_rate = failure_rate
        self.mutation_rate = mutation_rate
        self.attempts = 0
        self._last_grid = None
        self._grid = starting_position()

    def _mutate(self):
        grid = self._grid.copy()
        mask = self.rng.random(grid.shape[1:]) < self.mutation_rate
        if mask.any():
            # Move whatever sits on the masked squares to a random plane (or clear it).
            grid[:, mask] = 0.0
            planes = self.rng.integers(-1, config.NUM_PIECE_PLANES, size=int(mask.sum()))
            ranks, files = np.nonzero(mask)
            for plane, rank, file in zip(planes, ranks, files):
                if plane >= 0:
                    grid[plane, rank, file] = 1.0
        self._grid = grid
        return grid

    def extract_board_state(self) -> BoardState:
        self.attempts += 1
        if self.attempts <= self.fail_first:
            raise RuntimeError(f"simulated capture failure (attempt {self.attempts})")
        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise RuntimeError("simulated capture dropout")

        grid = self._mutate()
        diff_score = float(np.abs(grid - self._last_grid).mean()) if self._last_grid is not None else 1.0
        self._last_grid = grid
        return BoardState(grid=grid, timestamp=time.time(), changed=diff_score > 0, diff_score=diff_score)
