# self_improver.py

import json
import logging
import math
import time

import numpy as np

from config import ImproverConfig, config
from data_structures import ReplayEntry, TrainingRecord
from errors import EmptyBatch, PartnerError, StorageIOError, TrainingFailed
from replay_buffer import ReplayBuffer
from replay_storage import ReplayStorage
from stats import GraphData, ImprovementMetrics, ImproverStats
from utils import _convert_to_json_serializable, safe_ratio

logger = logging.getLogger("SelfImprover")


def to_training_records(entries) -> list:
    """Targets always come from the move that was actually played."""
    records = []
    for entry in entries:
        index = int(entry.actual_move.index)
        from_sq, to_sq = divmod(index, config.NUM_SQUARES)
        records.append(TrainingRecord(
            state_tensor=np.asarray(entry.state_tensor, dtype=np.float32),
            from_square=from_sq,
            to_square=to_sq,
            move_index=index,
        ))
    return records


class SelfImprover:
    """
    Observes (predicted, actual) pairs, keeps them in a replay buffer and in
    durable storage, and retrains the model once enough samples have arrived
    and the training interval has elapsed.

    Training runs inline on the thread that calls observe_prediction, so the
    trainer is never driven from two threads as long as observations are not
    made concurrently.
    """
    def __init__(self, trainer, improver_config=None, storage=None, clock=time.time):
        self.config = improver_config or ImproverConfig()
        self.trainer = trainer
        self.clock = clock
        self.buffer = ReplayBuffer(self.config.BUFFER_SIZE)
        self.storage = storage if storage is not None else ReplayStorage(self.config.DB_PATH, self.config.JSONL_DIR)
        self.stats = ImproverStats()
        self._baseline_set = False
        self._last_train_time = self.clock()

        if self.config.WARM_START:
            self._warm_start()

        if len(self.buffer) > 0:
            accuracy = self.evaluate_accuracy()
            self._set_baseline(accuracy)
            self.stats.current_accuracy = accuracy
            self.stats.best_accuracy = accuracy

        logger.info(f"SelfImprover ready: {len(self.buffer)} buffered entries, "
                    f"sampling={self.config.sampling_strategy()}, "
                    f"min_samples={self.config.MIN_SAMPLES_FOR_TRAIN}, interval={self.config.TRAIN_INTERVAL_SEC}s")

    def _warm_start(self):
        try:
            entries = self.storage.load_recent(self.config.BUFFER_SIZE)
        except StorageIOError as e:
            logger.warning(f"Failed to load stored replay entries: {e}")
            return
        for entry in entries:
            self.buffer.add(entry)
        logger.info(f"Loaded {len(entries)} stored replay entries into the buffer.")

    def _set_baseline(self, accuracy: float):
        if not self._baseline_set:
            self.stats.baseline_accuracy = accuracy
            self.stats.best_accuracy = max(self.stats.best_accuracy, accuracy)
            self._baseline_set = True

    # ------------------------------------------------------------------
    #  Observation and gating
    # ------------------------------------------------------------------
    def observe_prediction(self, state_tensor, predicted, actual, top_k=(), confidence=0.0,
                           game_id=None, position=0) -> bool:
        """
        Records one observation and trains if the gate opens.
        Returns True when a training cycle ran.
        """
        was_in_top_k, top_k_rank = False, 0
        for i, candidate in enumerate(top_k):
            if candidate.from_square == actual.from_square and candidate.to_square == actual.to_square:
                was_in_top_k, top_k_rank = True, i + 1
                break

        entry = self.buffer.add(ReplayEntry(
            state_tensor=state_tensor,
            predicted_move=predicted,
            actual_move=actual,
            timestamp=int(self.clock()),
            game_id=game_id,
            position=position,
            confidence=confidence,
            was_in_top_k=was_in_top_k,
            top_k_rank=top_k_rank,
        ))
        self.stats.total_samples += 1

        if self.config.AUTO_SAVE:
            try:
                self.storage.store(entry)
            except StorageIOError as e:
                # The buffer insertion stands; persistence is best effort.
                logger.warning(f"Failed to store replay entry: {e}")

        return self.check_and_train()

    def check_and_train(self) -> bool:
        if len(self.buffer) < self.config.MIN_SAMPLES_FOR_TRAIN:
            return False
        if self.clock() - self._last_train_time < self.config.TRAIN_INTERVAL_SEC:
            return False
        try:
            self.train()
        except PartnerError as e:
            logger.error(f"Training cycle aborted: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    #  Training
    # ------------------------------------------------------------------
    def _select_batch(self) -> list:
        strategy = self.config.sampling_strategy()
        if strategy == "reward_weighted":
            return self.buffer.get_reward_weighted_sample(self.config.BATCH_SIZE)
        if strategy == "balanced":
            return self.buffer.get_balanced_sample(self.config.BATCH_SIZE)
        return self.buffer.get_recent(self.config.BATCH_SIZE)

    def train(self):
        """
        Runs one training cycle. Raises EmptyBatch or TrainingFailed without
        touching any statistics.
        """
        cycle = self.stats.total_cycles + 1
        start = self.clock()
        sample = self._select_batch()
        if not sample:
            raise EmptyBatch("no samples available for training")

        n_correct = sum(1 for e in sample if e.is_correct)
        logger.info(f"Starting training cycle {cycle} on {len(sample)} samples "
                    f"(correct: {n_correct}, incorrect: {len(sample) - n_correct}, "
                    f"strategy: {self.config.sampling_strategy()})")

        records = to_training_records(sample)
        old_accuracy = self.evaluate_accuracy() if not self._baseline_set else self.stats.current_accuracy
        try:
            loss, correct = self.trainer.train_on_batch(records)
        except Exception as e:
            raise TrainingFailed(f"trainer failed on cycle {cycle}: {e}") from e

        logger.info(f"Trainer step done: loss={loss:.4f}, batch_accuracy={safe_ratio(correct, len(records)) * 100:.2f}% "
                    f"({correct}/{len(records)} correct)")

        self._set_baseline(old_accuracy)
        new_accuracy = self.evaluate_accuracy()
        now = self.clock()
        duration = max(0.0, now - start)

        self.stats.total_cycles = cycle
        self.stats.current_accuracy = new_accuracy
        self.stats.improvement_delta = new_accuracy - old_accuracy
        self.stats.best_accuracy = max(self.stats.best_accuracy, new_accuracy)
        self.stats.accuracy_history.append(new_accuracy)
        self.stats.reward_history.append(self.buffer.get_stats().average_reward)
        self.stats.avg_train_duration += (duration - self.stats.avg_train_duration) / cycle
        self.stats.last_train_time = now
        self._last_train_time = now

        logger.info(f"Training cycle {cycle} complete: accuracy {old_accuracy * 100:.2f}% -> {new_accuracy * 100:.2f}% "
                    f"(Δ{self.stats.improvement_delta * 100:+.2f}%), duration: {duration:.2f}s")

    def evaluate_accuracy(self) -> float:
        """Recent accuracy of the replay buffer; 0.0 when it is empty."""
        if len(self.buffer) == 0:
            return 0.0
        return self.buffer.get_stats().recent_accuracy

    # ------------------------------------------------------------------
    #  Reporting
    # ------------------------------------------------------------------
    def calculate_improvement(self) -> ImprovementMetrics:
        s = self.stats
        metrics = ImprovementMetrics(
            total_cycles=s.total_cycles,
            baseline_accuracy=s.baseline_accuracy,
            current_accuracy=s.current_accuracy,
            best_accuracy=s.best_accuracy,
            absolute_improvement=s.current_accuracy - s.baseline_accuracy,
            meets_threshold=s.current_accuracy >= self.config.ACCURACY_THRESHOLD,
        )
        if s.baseline_accuracy > 0:
            metrics.relative_improvement = (s.current_accuracy - s.baseline_accuracy) / s.baseline_accuracy

        history = s.accuracy_history
        if len(history) >= 2:
            metrics.recent_trend = history[-1] - history[-2]
        if history:
            mean = sum(history) / len(history)
            metrics.variance = sum((acc - mean) ** 2 for acc in history) / len(history)
            metrics.std_dev = math.sqrt(metrics.variance)
        metrics.is_improving = metrics.recent_trend > 0
        return metrics

    def get_stats(self) -> ImproverStats:
        s = self.stats
        return ImproverStats(
            total_cycles=s.total_cycles,
            total_samples=s.total_samples,
            current_accuracy=s.current_accuracy,
            baseline_accuracy=s.baseline_accuracy,
            best_accuracy=s.best_accuracy,
            improvement_delta=s.improvement_delta,
            last_train_time=s.last_train_time,
            avg_train_duration=s.avg_train_duration,
            accuracy_history=list(s.accuracy_history),
            reward_history=list(s.reward_history),
        )

    def get_buffer_stats(self):
        return self.buffer.get_stats()

    def get_recent_entries(self, n=None) -> list:
        return self.buffer.get_recent(self.config.EVAL_BATCH_SIZE if n is None else n)

    def graph_data(self) -> GraphData:
        return GraphData(
            cycles=list(range(1, len(self.stats.accuracy_history) + 1)),
            accuracy=list(self.stats.accuracy_history),
            rewards=list(self.stats.reward_history),
        )

    def export_metrics(self, name: str):
        """Writes a JSON performance snapshot into the storage metadata under `name`."""
        payload = {
            'stats': self.get_stats(),
            'buffer_stats': self.get_buffer_stats(),
            'config': self.config.to_dict(),
            'timestamp': self.clock(),
            'graph_data': self.graph_data(),
        }
        self.storage.set_metadata(name, json.dumps(_convert_to_json_serializable(payload)))
        logger.debug(f"Exported metrics to metadata key {name!r}.")

    def close(self):
        """Exports final metrics and releases the trainer and storage. Every step is attempted."""
        try:
            self.export_metrics("final_metrics")
        except (PartnerError, TypeError, ValueError) as e:
            logger.warning(f"Failed to export final metrics: {e}")

        if self.trainer is not None:
            try:
                self.trainer.close()
            except Exception as e:
                logger.warning(f"Failed to close trainer: {e}")
            self.trainer = None

        try:
            self.storage.close()
        except StorageIOError as e:
            logger.warning(f"Failed to close replay storage: {e}")
        logger.info(f"SelfImprover closed after {self.stats.total_cycles} cycles and "
                    f"{self.stats.total_samples} samples.")
