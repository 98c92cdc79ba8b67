# data_structures.py

from collections import namedtuple

# A single move in the 4096-index (from_square * 64 + to_square) move space.
Move = namedtuple('Move', [
    'index',           # Move index 0..4095 (int)
    'notation',        # Coordinate notation, e.g. "e2e4" (str)
    'from_square',     # Origin square 0..63, a1=0 .. h8=63 (int)
    'to_square',       # Destination square 0..63 (int)
    'confidence'       # Predictor score in [0, 1] (float)
], defaults=[0.0])

# A Move annotated by the DecisionEngine's ranking pass.
RankedMove = namedtuple('RankedMove', Move._fields + (
    'rank',            # 1-based position in the ranked list (int)
    'explanation',     # Human-readable summary (str)
    'category',        # Excellent/Good/Solid/Fair/Risky/Speculative/Uncertain (str)
    'tags'             # Heuristic pattern tags (tuple of str)
))

# The full result of one decision. Alternatives are ordered by rank.
Decision = namedtuple('Decision', [
    'top_move',         # RankedMove
    'alternatives',     # Tuple of RankedMove, rank-ascending
    'timestamp',        # Unix time the decision was built (float)
    'inference_ms',     # Predictor latency (float)
    'state_snapshot',   # Board tensor the decision was made on (np.ndarray)
    'total_candidates'  # Number of ranked moves (int)
])

# What a Capturer hands to the DecisionEngine.
BoardState = namedtuple('BoardState', [
    'grid',            # Board tensor [12, 8, 8] (np.ndarray)
    'timestamp',       # Capture time (float)
    'changed',         # Whether the board differs from the previous capture (bool)
    'diff_score'       # Mean absolute difference to the previous capture (float)
])

MoveScore = namedtuple('MoveScore', ['move_index', 'score'])

# A condensed Decision for display.
Advice = namedtuple('Advice', [
    'primary_move',    # Notation of the top move (str)
    'alternatives',    # Up to three alternative notations (tuple of str)
    'confidence',      # Top move confidence (float)
    'timestamp',       # Decision timestamp (float)
    'explanation'      # Top move explanation (str)
])

# One recorded (predicted, actual) observation. Reward and correctness are
# filled in by ReplayBuffer.add, which returns a new record via _replace.
ReplayEntry = namedtuple('ReplayEntry', [
    'state_tensor',    # Board tensor [12, 8, 8] (np.ndarray)
    'predicted_move',  # Move
    'actual_move',     # Move
    'reward',          # +1.0 correct, -1.0 incorrect (float)
    'timestamp',       # Unix seconds, 0 means "stamp on insert" (int)
    'game_id',         # Optional game identifier (str or None)
    'position',        # Move number within the game (int)
    'confidence',      # Predictor confidence for predicted_move (float)
    'is_correct',      # reward == +1 (bool)
    'was_in_top_k',    # actual_move appeared in the top-K candidates (bool)
    'top_k_rank'       # 1-based rank of actual_move in top-K, 0 if absent (int)
], defaults=[0.0, 0, None, 0, 0.0, False, False, 0])

# Derived from the buffer on demand.
ReplayStats = namedtuple('ReplayStats', [
    'total_entries',
    'correct_predictions',
    'total_predictions',
    'accuracy',
    'average_reward',
    'top_k_accuracy',
    'recent_accuracy',
    'buffer_utilization'
], defaults=[0, 0, 0, 0.0, 0.0, 0.0, 0.0, 0.0])

# The record shape the Trainer consumes. Targets come from the actual move.
TrainingRecord = namedtuple('TrainingRecord', [
    'state_tensor',    # Board tensor [12, 8, 8] (np.ndarray)
    'from_square',     # Target origin square (int)
    'to_square',       # Target destination square (int)
    'move_index'       # Target move index (int)
])
