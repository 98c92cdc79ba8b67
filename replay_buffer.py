import threading
import time
from collections import deque

import numpy as np

from data_structures import ReplayEntry, ReplayStats
from utils import safe_ratio

RECENT_WINDOW = 100


def finalize_entry(entry: ReplayEntry) -> ReplayEntry:
    """Derives reward/correctness from the moves and stamps the entry if needed."""
    is_correct = (entry.predicted_move.from_square == entry.actual_move.from_square and
                  entry.predicted_move.to_square == entry.actual_move.to_square)
    timestamp = entry.timestamp or int(time.time())
    return entry._replace(reward=1.0 if is_correct else -1.0, is_correct=is_correct, timestamp=timestamp)


def _stride(pool, n):
    """Deterministic selection: every len(pool)//n-th element, at most n of them."""
    if n <= 0 or not pool:
        return []
    step = max(1, len(pool) // n)
    return [pool[i] for i in np.arange(0, len(pool), step)[:n]]


class ReplayBuffer:
    """
    Bounded FIFO of replay entries. Lifetime counters (total_added,
    total_predictions, correct_predictions) are never reduced by eviction
    or clear(), so accuracy covers every observation ever added.
    """
    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self.total_added = 0
        self.total_predictions = 0
        self.correct_predictions = 0

    def add(self, entry: ReplayEntry) -> ReplayEntry:
        entry = finalize_entry(entry)
        with self._lock:
            self.total_added += 1
            self.total_predictions += 1
            if entry.is_correct:
                self.correct_predictions += 1
            # deque(maxlen) drops the oldest entry once full.
            self._entries.append(entry)
        return entry

    @property
    def entries(self) -> list:
        with self._lock:
            return list(self._entries)

    def get_recent(self, n: int) -> list:
        with self._lock:
            if n <= 0:
                return []
            return list(self._entries)[-n:]

    def get_stats(self) -> ReplayStats:
        with self._lock:
            entries = list(self._entries)
            total_predictions, correct_predictions = self.total_predictions, self.correct_predictions
        if not entries:
            return ReplayStats()

        rewards = np.array([e.reward for e in entries], dtype=np.float64)
        recent = entries[-min(RECENT_WINDOW, len(entries)):]
        return ReplayStats(
            total_entries=len(entries),
            correct_predictions=correct_predictions,
            total_predictions=total_predictions,
            accuracy=safe_ratio(correct_predictions, total_predictions),
            average_reward=float(rewards.mean()),
            top_k_accuracy=safe_ratio(sum(1 for e in entries if e.was_in_top_k), len(entries)),
            recent_accuracy=safe_ratio(sum(1 for e in recent if e.is_correct), len(recent)),
            buffer_utilization=len(entries) / self.capacity,
        )

    def get_reward_weighted_sample(self, batch_size: int) -> list:
        """
        Positive-reward entries appear twice in the pool, so a strided pass
        over it over-represents them. The selection is deterministic.
        """
        with self._lock:
            entries = list(self._entries)
        if not entries:
            return []
        batch_size = min(batch_size, len(entries))
        pool = []
        for entry in entries:
            pool.append(entry)
            if entry.reward > 0:
                pool.append(entry)
        return _stride(pool, batch_size)

    def get_balanced_sample(self, batch_size: int) -> list:
        with self._lock:
            entries = list(self._entries)
        if not entries or batch_size <= 0:
            return []
        correct = [e for e in entries if e.is_correct]
        incorrect = [e for e in entries if not e.is_correct]
        half = batch_size // 2
        sample = _stride(correct, half)
        # Incorrect entries fill the remaining slots, including any the correct pool left empty.
        sample += _stride(incorrect, batch_size - len(sample))
        return sample

    def clear(self):
        """Drops resident entries. Lifetime counters are kept."""
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def to_dict(self) -> dict:
        from replay_storage import serialize_entry
        with self._lock:
            return {
                'max_size': self.capacity,
                'total_added': self.total_added,
                'total_predictions': self.total_predictions,
                'correct_predictions': self.correct_predictions,
                'entries': [serialize_entry(e) for e in self._entries],
            }

    @classmethod
    def from_dict(cls, data: dict):
        from replay_storage import deserialize_entry
        buffer = cls(data['max_size'])
        buffer._entries.extend(deserialize_entry(e) for e in data.get('entries', []))
        buffer.total_added = data.get('total_added', len(buffer._entries))
        buffer.total_predictions = data.get('total_predictions', len(buffer._entries))
        buffer.correct_predictions = data.get('correct_predictions', 0)
        return buffer
