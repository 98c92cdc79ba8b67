# model_service.py
# One handle that serves both predictions and incremental training from the
# same network, so every training cycle is visible to the next decision.

import logging
import threading

import numpy as np
import torch
import torch.optim as optim

from config import config
from interfaces import Predictor, Trainer
from loss import calculate_loss
from network import MovePolicyNet

logger = logging.getLogger("ModelService")


class ModelService(Predictor, Trainer):
    def __init__(self, config_obj=config, learning_rate=1e-4, device=None, seed=None):
        if seed is not None:
            torch.manual_seed(seed)
        self.config = config_obj
        self.device = device or config_obj.DEVICE
        self.model = MovePolicyNet(config_obj).to(self.device)
        self.optimizer = optim.Adam(self.model.parameters(), lr=learning_rate, weight_decay=config_obj.WEIGHT_DECAY)
        self.train_step_count = 0
        # Training flips the model into train mode; keep inference out while that happens.
        self._lock = threading.Lock()
        self._closed = False

    def _check_open(self):
        if self._closed:
            raise RuntimeError("model service is closed")

    def _to_obs(self, state_tensor):
        state = np.asarray(state_tensor, dtype=np.float32)
        expected = self.model.observation_shape
        if state.size != int(np.prod(expected)):
            raise ValueError(f"state tensor has {state.size} values, expected shape {expected}")
        return state.reshape(expected)

    def predict(self, state_tensor):
        self._check_open()
        obs = torch.from_numpy(self._to_obs(state_tensor)).unsqueeze(0).to(self.device)
        with self._lock:
            probs = self.model.move_probabilities(obs)
        return probs.squeeze(0).cpu().numpy().astype(np.float64)

    def train_on_batch(self, records):
        self._check_open()
        if not records:
            raise ValueError("cannot train on an empty batch")
        obs_b = torch.from_numpy(np.stack([self._to_obs(r.state_tensor) for r in records])).to(self.device)
        target_b = torch.tensor([r.move_index for r in records], dtype=torch.long, device=self.device)

        with self._lock:
            self.optimizer.zero_grad(set_to_none=True)
            loss, correct = calculate_loss(self.model, (obs_b, target_b))
            loss.backward()
            torch.nn.utils.clip_grad_norm_(self.model.parameters(), self.config.GRAD_CLIP_NORM)
            self.optimizer.step()
            self.train_step_count += 1

        loss_value = loss.item()
        logger.debug(f"Train step {self.train_step_count}: loss={loss_value:.4f}, correct={correct}/{len(records)}")
        return loss_value, correct

    def close(self):
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self.model = self.model.cpu()
            self.optimizer = None
        if torch.cuda.is_available():
            torch.cuda.empty_cache()
        logger.info(f"Model service closed after {self.train_step_count} training steps.")
