# config.py
import torch

class Config:
    def __init__(self):
        # ================================================================
        #                      System & Environment
        # ================================================================
        self.DEVICE = torch.device("cuda" if torch.cuda.is_available() else "cpu")
        self.OUTPUT_DIR = "outputs"
        self.LOG_FILE = "outputs/partner.log"

        # ================================================================
        #                      Board & Move Encoding
        # ================================================================
        self.BOARD_SIZE = 8
        self.NUM_SQUARES = self.BOARD_SIZE * self.BOARD_SIZE
        # from_square * 64 + to_square
        self.ACTION_SPACE_SIZE = self.NUM_SQUARES * self.NUM_SQUARES
        # 6 white + 6 black piece planes
        self.NUM_PIECE_PLANES = 12

        # ================================================================
        #                      Decision Engine
        # ================================================================
        self.TOP_K = 5
        self.CONFIDENCE_THRESHOLD = 0.30
        self.CAPTURE_MAX_ATTEMPTS = 3
        self.CAPTURE_RETRY_DELAY = 0.1 # seconds between capture attempts
        self.DECISION_HISTORY_SIZE = 100

        # ================================================================
        #                      Network (policy over 4096 moves)
        # ================================================================
        self.NUM_RES_BLOCKS = 4
        self.NUM_FILTERS = 64
        self.WEIGHT_DECAY = 1e-5
        self.GRAD_CLIP_NORM = 5.0

        # ================================================================
        #                      Monitoring
        # ================================================================
        self.WEBUI_ENABLED = False
        self.WEBUI_HOST = "127.0.0.1"
        self.WEBUI_PORT = 5000
        self.STATUS_INTERVAL = 1.0

        # ================================================================
        #                      Simulated Observation Loop
        # ================================================================
        self.SIM_SEED = 42
        self.SIM_MATCH_RATE = 0.4   # actual move == top move
        self.SIM_TOP_K_RATE = 0.3   # actual move == one of the alternatives
        self.SIM_STEP_DELAY = 0.05  # seconds between observations
        self.MAX_OBSERVATIONS = 0   # 0 runs until interrupted

        self.CURRENT_CONFIG = "Partner_Observe_Train"

config = Config()


class ImproverConfig:
    """
    Settings for the self-improvement loop. Defaults can be overridden with
    keyword arguments, e.g. ImproverConfig(BUFFER_SIZE=500, AUTO_SAVE=False).
    """
    def __init__(self, **overrides):
        # --- Replay buffer ---
        self.BUFFER_SIZE = 10000
        self.MIN_SAMPLES_FOR_TRAIN = 50

        # --- Training ---
        self.BATCH_SIZE = 32
        self.LEARNING_RATE = 1e-4
        self.TRAIN_INTERVAL_SEC = 300

        # --- Sampling strategy (reward-weighted wins over balanced) ---
        self.USE_REWARD_WEIGHTING = True
        self.USE_BALANCED_SAMPLE = False

        # --- Evaluation ---
        self.EVAL_BATCH_SIZE = 100
        self.ACCURACY_THRESHOLD = 0.6

        # --- Storage ---
        self.DB_PATH = "data/replays/replay.db"
        self.JSONL_DIR = "data/replays"
        self.AUTO_SAVE = True
        # Refill the buffer from storage on startup.
        self.WARM_START = True

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown improver setting: {key}")
            setattr(self, key, value)

    def sampling_strategy(self) -> str:
        if self.USE_REWARD_WEIGHTING:
            return "reward_weighted"
        if self.USE_BALANCED_SAMPLE:
            return "balanced"
        return "recent"

    def to_dict(self) -> dict:
        return {key.lower(): value for key, value in vars(self).items()}

    @classmethod
    def from_dict(cls, data: dict):
        return cls(**{key.upper(): value for key, value in data.items()})
