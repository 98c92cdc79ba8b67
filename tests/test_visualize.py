# file: test_visualize.py

import unittest
import shutil
import tempfile
import numpy as np
import sys
import os

# --- Path Setup ---
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

# --- Project Imports ---
from board import encode_move
from config import config
from stats import GraphData
from visualize import move_heatmap, plot_improvement, plot_move_heatmap


class TestVisualize(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_heatmap_grid_orientation(self):
        print("\n--- Running test_heatmap_grid_orientation ---")
        scores = np.zeros(config.ACTION_SPACE_SIZE)
        scores[encode_move("e2e4")] = 0.6
        scores[encode_move("d2e4")] = 0.1
        scores[encode_move("e2e3")] = 0.2
        scores[encode_move("a7a8")] = np.nan
        grid = move_heatmap(scores)
        self.assertEqual(grid.shape, (8, 8))
        # Row 0 is rank 8, so e4 sits on row 4 and e3 on row 5, column 4.
        self.assertAlmostEqual(grid[4, 4], 0.7)
        self.assertAlmostEqual(grid[5, 4], 0.2)
        self.assertEqual(grid[0, 0], 0.0)
        with self.assertRaises(ValueError):
            move_heatmap(np.zeros(10))

    def test_plots_written(self):
        print("\n--- Running test_plots_written ---")
        heatmap_path = os.path.join(self.tmp_dir, "heatmaps", "policy.png")
        plot_move_heatmap(np.random.default_rng(0).random(config.ACTION_SPACE_SIZE), heatmap_path)
        self.assertTrue(os.path.exists(heatmap_path))

        graph = GraphData(cycles=[1, 2, 3], accuracy=[0.4, 0.5, 0.55], rewards=[-0.2, 0.0, 0.1])
        improvement_path = os.path.join(self.tmp_dir, "improvement.png")
        self.assertEqual(plot_improvement(graph, improvement_path), improvement_path)
        self.assertTrue(os.path.exists(improvement_path))

    def test_no_cycles_no_plot(self):
        print("\n--- Running test_no_cycles_no_plot ---")
        path = os.path.join(self.tmp_dir, "empty.png")
        self.assertIsNone(plot_improvement(GraphData(), path))
        self.assertFalse(os.path.exists(path))


if __name__ == '__main__':
    unittest.main(verbosity=2)
