# errors.py

from typing import Optional


class PartnerError(Exception):
    """Base class for every error raised by the decision/replay/training loop."""
    code = "partner_error"
    message = "Unexpected failure."


class CaptureFailed(PartnerError):
    code = "capture_failed"
    message = "Board capture failed after all attempts."

    def __init__(self, detail: str, attempts: int = 0):
        super().__init__(detail)
        self.attempts = attempts


class InferenceFailed(PartnerError):
    code = "inference_failed"
    message = "Predictor failed to score the board."


class NoValidMoves(PartnerError):
    code = "no_valid_moves"
    message = "Ranking produced no candidate moves."


class EmptyBatch(PartnerError):
    code = "empty_batch"
    message = "No samples available for training."


class StorageIOError(PartnerError):
    code = "storage_io_error"
    message = "Replay storage operation failed."


class TrainingFailed(PartnerError):
    code = "training_failed"
    message = "Trainer rejected the batch."


def format_error(exc: Exception, *, detail: Optional[str] = None) -> dict:
    if isinstance(exc, PartnerError):
        return {"code": exc.code, "message": exc.message, "detail": detail or str(exc)}
    return {"code": PartnerError.code, "message": PartnerError.message, "detail": detail or str(exc)}
