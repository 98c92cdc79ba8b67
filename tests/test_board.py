# file: test_board.py

import unittest
import numpy as np
import sys
import os

# --- Path Setup ---
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

# --- Project Imports ---
import board
from config import config


class TestMoveEncoding(unittest.TestCase):

    def test_decode_and_encode(self):
        print("\n--- Running test_decode_and_encode ---")
        e2e4 = 12 * 64 + 28
        self.assertEqual(board.decode_move(e2e4), "e2e4")
        self.assertEqual(board.encode_move("e2e4"), e2e4)
        self.assertEqual(board.decode_move(0), "a1a1")
        self.assertEqual(board.decode_move(config.ACTION_SPACE_SIZE - 1), "h8h8")

    def test_invalid_notation(self):
        print("\n--- Running test_invalid_notation ---")
        for bad in ["e2e", "e2e44", "i2e4", "e9e4", ""]:
            with self.assertRaises(ValueError, msg=bad):
                board.encode_move(bad)

    def test_move_from_index(self):
        print("\n--- Running test_move_from_index ---")
        move = board.move_from_index(12 * 64 + 28, 0.5)
        self.assertEqual((move.from_square, move.to_square), (12, 28))
        self.assertEqual(move.notation, "e2e4")
        self.assertAlmostEqual(move.confidence, 0.5)
        with self.assertRaises(ValueError):
            board.move_from_index(config.ACTION_SPACE_SIZE)


class TestTopK(unittest.TestCase):

    def test_orders_by_score(self):
        print("\n--- Running test_orders_by_score ---")
        scores = np.zeros(config.ACTION_SPACE_SIZE)
        scores[[5, 100, 7]] = [0.2, 0.9, 0.5]
        top = board.get_top_k_moves(scores, 3)
        self.assertEqual([m.move_index for m in top], [100, 7, 5])
        self.assertAlmostEqual(top[0].score, 0.9)

    def test_ties_keep_index_order(self):
        print("\n--- Running test_ties_keep_index_order ---")
        scores = np.zeros(config.ACTION_SPACE_SIZE)
        scores[[40, 3, 900]] = 0.7
        top = board.get_top_k_moves(scores, 3)
        self.assertEqual([m.move_index for m in top], [3, 40, 900])

    def test_skips_non_finite(self):
        print("\n--- Running test_skips_non_finite ---")
        scores = np.full(4, np.nan)
        scores[2] = 0.1
        top = board.get_top_k_moves(scores, 3)
        self.assertEqual([m.move_index for m in top], [2])
        self.assertEqual(board.get_top_k_moves(np.full(4, np.inf), 2), [])
        self.assertEqual(board.get_top_k_moves([], 2), [])
        self.assertEqual(board.get_top_k_moves(scores, 0), [])


class TestMovePatterns(unittest.TestCase):

    def _tags(self, notation):
        return board.move_patterns(board.parse_square(notation[:2]), board.parse_square(notation[2:]))

    def test_castling(self):
        print("\n--- Running test_castling ---")
        self.assertIn("castling", self._tags("e1g1"))
        self.assertIn("castling", self._tags("e8c8"))
        self.assertNotIn("lateral", self._tags("e1g1"))
        self.assertNotIn("castling", self._tags("e2g2"))

    def test_pawn_patterns(self):
        print("\n--- Running test_pawn_patterns ---")
        tags = self._tags("e2e4")
        self.assertIn("double pawn push", tags)
        self.assertIn("center control", tags)
        self.assertIn("vertical", tags)
        self.assertIn("promotion threat", self._tags("a7a8"))
        self.assertIn("promotion threat", self._tags("b2a1"))
        self.assertIn("promotion threat", self._tags("b6c8"))
        self.assertIn("promotion threat", self._tags("h3h1"))
        self.assertNotIn("promotion threat", self._tags("a1a8"))

    def test_geometry(self):
        print("\n--- Running test_geometry ---")
        self.assertIn("knight jump", self._tags("g1f3"))
        self.assertIn("diagonal", self._tags("c1h6"))
        self.assertIn("long range", self._tags("c1h6"))
        self.assertIn("lateral", self._tags("a3d3"))
        self.assertNotIn("long range", self._tags("a3d3"))

    def test_tag_order_and_strength(self):
        print("\n--- Running test_tag_order_and_strength ---")
        tags = self._tags("e2e4")
        self.assertEqual(list(tags), [t for t in board.PATTERN_ORDER if t in tags])
        self.assertTrue(board.has_strong_pattern(tags))
        self.assertFalse(board.has_strong_pattern(self._tags("a3b3")))


if __name__ == '__main__':
    unittest.main(verbosity=2)
