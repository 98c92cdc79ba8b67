# file: test_loss_function.py

import unittest
import numpy as np
import torch
import sys
import os

# --- Path Setup ---
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

# --- Project Imports ---
from loss import calculate_loss
from network import MovePolicyNet
from config import config

# =====================================================================
#                           Loss Test Class
# =====================================================================

class TestLossFunction(unittest.TestCase):

    def setUp(self):
        """Create a model and a sample batch for tests."""
        torch.manual_seed(0)
        self.model = MovePolicyNet(config).to(config.DEVICE)
        self.batch_size = 4
        self.obs_b = torch.randn(self.batch_size, config.NUM_PIECE_PLANES, config.BOARD_SIZE, config.BOARD_SIZE,
                                 device=config.DEVICE)
        self.target_b = torch.randint(0, config.ACTION_SPACE_SIZE, (self.batch_size,), device=config.DEVICE)
        self.model.zero_grad()

    def test_output_shapes(self):
        print("\n--- Running test_output_shapes ---")
        logits = self.model(self.obs_b)
        self.assertEqual(tuple(logits.shape), (self.batch_size, config.ACTION_SPACE_SIZE))
        probs = self.model.move_probabilities(self.obs_b)
        np.testing.assert_allclose(probs.sum(dim=1).cpu().numpy(), np.ones(self.batch_size), rtol=1e-5)

    def test_loss_is_positive_and_counts_correct(self):
        print("\n--- Running test_loss_is_positive_and_counts_correct ---")
        loss, correct = calculate_loss(self.model, (self.obs_b, self.target_b))
        self.assertGreater(loss.item(), 0.0)
        self.assertIsInstance(correct, int)
        self.assertTrue(0 <= correct <= self.batch_size)

    def test_gradient_flow(self):
        """Check if gradients are actually flowing to the model parameters."""
        print("\n--- Running test_gradient_flow ---")
        loss, _ = calculate_loss(self.model, (self.obs_b, self.target_b))
        loss.backward()
        grad = self.model.policy_net.policy_fc.weight.grad
        self.assertIsNotNone(grad, "Policy head has no gradient.")
        self.assertGreater(torch.sum(torch.abs(grad)), 0, "Gradient for policy head is zero.")

    def test_sample_weights(self):
        """Zero-weighted samples must not contribute to the loss."""
        print("\n--- Running test_sample_weights ---")
        # Train-mode BatchNorm uses batch statistics, so the same batch gives the same logits.
        self.model.train()
        with torch.no_grad():
            logits = self.model(self.obs_b)
        per_sample = torch.nn.functional.cross_entropy(logits, self.target_b, reduction='none')

        weights = torch.tensor([1.0, 0.0, 0.0, 0.0], device=config.DEVICE)
        loss, _ = calculate_loss(self.model, (self.obs_b, self.target_b), sample_weights=weights)
        self.assertAlmostEqual(loss.item(), per_sample[0].item(), places=4)


if __name__ == '__main__':
    unittest.main(verbosity=2)
