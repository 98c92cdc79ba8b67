# interfaces.py
# The contracts the decision/replay/training core consumes. Concrete
# implementations live in capture.py and model_service.py; tests provide fakes.

from abc import ABC, abstractmethod

import board


class Capturer(ABC):
    @abstractmethod
    def extract_board_state(self):
        """
        Captures the current board and returns a BoardState.
        Raises on failure; the DecisionEngine handles retries.
        """
        pass


class Predictor(ABC):
    @abstractmethod
    def predict(self, state_tensor):
        """
        Scores every move index for the given board tensor.
        Returns a 1-D sequence of length ACTION_SPACE_SIZE.
        Must be safe for concurrent read-only calls.
        """
        pass

    def get_top_k_moves(self, scores, k):
        return board.get_top_k_moves(scores, k)

    def decode_move(self, move_index):
        return board.decode_move(move_index)

    def close(self):
        pass


class Trainer(ABC):
    @abstractmethod
    def train_on_batch(self, records):
        """
        Runs one incremental update on a list of TrainingRecord.
        Returns (loss, correct_count). Not safe for concurrent calls.
        """
        pass

    def close(self):
        pass
