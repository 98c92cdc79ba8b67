# board.py
# Square and move-index arithmetic for the 8x8 board. Squares run a1=0 .. h8=63,
# moves are encoded as from_square * 64 + to_square.

import numpy as np

from config import config
from data_structures import Move, MoveScore

FILES = "abcdefgh"
CENTER_SQUARES = frozenset({27, 28, 35, 36}) # d4, e4, d5, e5

# Tag order is also the priority used when picking tags for explanations.
PATTERN_ORDER = (
    "castling",
    "promotion threat",
    "center control",
    "double pawn push",
    "knight jump",
    "diagonal",
    "vertical",
    "lateral",
    "long range",
)
STRONG_PATTERNS = frozenset({"castling", "promotion threat", "center control"})


def square_coords(square: int):
    """Returns (file, rank), both 0-based."""
    return square % config.BOARD_SIZE, square // config.BOARD_SIZE

def square_name(square: int) -> str:
    file, rank = square_coords(square)
    return f"{FILES[file]}{rank + 1}"

def parse_square(name: str) -> int:
    if len(name) != 2 or name[0] not in FILES or name[1] not in "12345678":
        raise ValueError(f"invalid square: {name!r}")
    return (int(name[1]) - 1) * config.BOARD_SIZE + FILES.index(name[0])

def decode_move(move_index: int) -> str:
    from_sq, to_sq = divmod(move_index, config.NUM_SQUARES)
    return square_name(from_sq) + square_name(to_sq)

def encode_move(notation: str) -> int:
    if len(notation) != 4:
        raise ValueError(f"invalid move format: {notation!r}")
    return parse_square(notation[:2]) * config.NUM_SQUARES + parse_square(notation[2:])

def move_from_index(move_index: int, confidence: float = 0.0) -> Move:
    if not 0 <= move_index < config.ACTION_SPACE_SIZE:
        raise ValueError(f"move index out of range: {move_index}")
    from_sq, to_sq = divmod(move_index, config.NUM_SQUARES)
    return Move(move_index, decode_move(move_index), from_sq, to_sq, float(confidence))

def move_from_notation(notation: str, confidence: float = 0.0) -> Move:
    return move_from_index(encode_move(notation), confidence)


def get_top_k_moves(scores, k: int) -> list:
    """
    Selects the k highest finite scores, highest first. Equal scores keep
    their original index order.
    """
    scores = np.asarray(scores, dtype=np.float64).ravel()
    if k <= 0 or scores.size == 0:
        return []
    candidates = np.flatnonzero(np.isfinite(scores))
    if candidates.size == 0:
        return []
    # Stable sort on the negated scores keeps lower indices first among ties.
    order = candidates[np.argsort(-scores[candidates], kind="stable")]
    return [MoveScore(int(i), float(scores[i])) for i in order[:k]]


def move_patterns(from_square: int, to_square: int) -> tuple:
    """
    Heuristic tags computed purely from the move's geometry. No piece or
    legality information is used.
    """
    from_file, from_rank = square_coords(from_square)
    to_file, to_rank = square_coords(to_square)
    df, dr = to_file - from_file, to_rank - from_rank
    adf, adr = abs(df), abs(dr)
    back_ranks = (0, config.BOARD_SIZE - 1)

    tags = set()
    if from_file == 4 and adf == 2 and dr == 0 and from_rank in back_ranks:
        tags.add("castling")
    if to_rank in back_ranks and from_rank not in back_ranks:
        tags.add("promotion threat")
    if to_square in CENTER_SQUARES:
        tags.add("center control")
    if df == 0 and adr == 2 and from_rank in (1, config.BOARD_SIZE - 2):
        tags.add("double pawn push")
    if {adf, adr} == {1, 2}:
        tags.add("knight jump")
    if adf == adr and adf > 0:
        tags.add("diagonal")
    if df == 0 and dr != 0:
        tags.add("vertical")
    if dr == 0 and df != 0 and "castling" not in tags:
        tags.add("lateral")
    if max(adf, adr) >= 4:
        tags.add("long range")
    return tuple(tag for tag in PATTERN_ORDER if tag in tags)

def has_strong_pattern(tags) -> bool:
    return any(tag in STRONG_PATTERNS for tag in tags)
