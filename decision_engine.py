# decision_engine.py

import logging
import math
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass

import board
from config import config
from data_structures import Advice, Decision, RankedMove
from errors import CaptureFailed, InferenceFailed, NoValidMoves
from stats import DecisionComparison, EngineStats, HistoryStats
from utils import safe_ratio

logger = logging.getLogger("DecisionEngine")

_CONFIDENCE_BANDS = {
    "Excellent": "high confidence",
    "Good": "strong confidence",
    "Solid": "solid confidence",
    "Fair": "moderate confidence",
    "Risky": "low confidence",
    "Speculative": "very low confidence",
    "Uncertain": "unknown confidence",
}


def categorize_move(confidence: float, tags=()) -> str:
    if confidence is None or not math.isfinite(confidence):
        return "Uncertain"
    if confidence >= 0.90:
        return "Excellent"
    if confidence >= 0.70:
        return "Good" if board.has_strong_pattern(tags) else "Solid"
    if confidence >= 0.50:
        return "Fair"
    if confidence >= 0.30:
        return "Risky"
    return "Speculative"

def explain_move(rank: int, confidence: float, category: str, tags=()) -> str:
    if rank == 1:
        lead = "Top choice"
    elif rank <= 3:
        lead = f"Alternative #{rank}"
    else:
        lead = f"Lower priority option (rank #{rank})"
    pct = f"{confidence * 100:.1f}%" if category != "Uncertain" else "n/a"
    text = f"{lead}, {_CONFIDENCE_BANDS[category]} ({pct})"
    if tags:
        text += ": " + ", ".join(tags[:2])
    return text


@dataclass
class _EngineCounters:
    total_decisions: int = 0
    successful_captures: int = 0
    failed_captures: int = 0
    inference_calls: int = 0
    total_inference_time: float = 0.0


class DecisionEngine:
    """
    Turns a board state into a ranked, annotated Decision. Counters live in a
    single struct behind one lock, so concurrent callers are safe.
    """
    def __init__(self, predictor, capturer=None,
                 confidence_threshold=config.CONFIDENCE_THRESHOLD,
                 top_k=config.TOP_K,
                 max_attempts=config.CAPTURE_MAX_ATTEMPTS,
                 retry_delay=config.CAPTURE_RETRY_DELAY):
        self.predictor = predictor
        self.capturer = capturer
        self.confidence_threshold = confidence_threshold
        self.top_k = top_k
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._counters = _EngineCounters()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    #  Decision paths
    # ------------------------------------------------------------------
    def make_decision(self, timeout=None, cancel_event=None) -> Decision:
        """
        Captures the board (with retries), predicts and ranks. `timeout` bounds
        the whole capture phase in seconds; setting `cancel_event` stops the
        retry loop early. Both end in CaptureFailed.
        """
        start = time.perf_counter()
        with self._lock:
            self._counters.total_decisions += 1

        try:
            board_state = self._capture_with_retry(timeout, cancel_event)
        except CaptureFailed as e:
            with self._lock:
                self._counters.failed_captures += 1
                failures = self._counters.failed_captures
            logger.error(f"Capture failed: {e} (total failures: {failures})")
            raise

        with self._lock:
            self._counters.successful_captures += 1

        decision = self._decide(board_state.grid)
        top = decision.top_move
        if top.confidence < self.confidence_threshold:
            # Still returned; the caller decides whether to act on it.
            logger.warning(f"Low confidence decision: {top.notation} at {top.confidence:.3f} "
                           f"(threshold {self.confidence_threshold:.3f})")

        logger.info(f"Decision made: {top.notation} conf={top.confidence:.3f} rank={top.rank} "
                    f"category={top.category} inference={decision.inference_ms:.2f}ms "
                    f"alternatives={len(decision.alternatives)} total={(time.perf_counter() - start) * 1000:.1f}ms")
        return decision

    def decision_with_context(self, state) -> Decision:
        """Same ranking path as make_decision, on a state the caller already has."""
        with self._lock:
            self._counters.total_decisions += 1
        decision = self._decide(state)
        logger.info(f"Decision from context: {decision.top_move.notation} "
                    f"conf={decision.top_move.confidence:.3f} inference={decision.inference_ms:.2f}ms")
        return decision

    def batch_decisions(self, states) -> list:
        """Skips states that fail; raises only when none succeed."""
        decisions, last_error = [], None
        for i, state in enumerate(states):
            try:
                decisions.append(self.decision_with_context(state))
            except (InferenceFailed, NoValidMoves) as e:
                logger.warning(f"Batch decision {i} failed: {e}")
                last_error = e
        if not decisions:
            if last_error is None:
                raise NoValidMoves("no board states supplied")
            raise type(last_error)(f"all {len(states)} batch decisions failed; last error: {last_error}") from last_error
        return decisions

    def _capture_with_retry(self, timeout, cancel_event):
        if self.capturer is None:
            raise CaptureFailed("no capturer configured", attempts=0)
        deadline = time.monotonic() + timeout if timeout is not None else None
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise CaptureFailed("capture cancelled", attempts=attempt - 1)
            try:
                return self.capturer.extract_board_state()
            except Exception as e:
                last_error = e
                logger.warning(f"Capture attempt {attempt}/{self.max_attempts} failed: {e}")

            if attempt == self.max_attempts:
                break
            delay = self.retry_delay
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CaptureFailed(f"capture deadline exceeded after {attempt} attempt(s): {last_error}",
                                        attempts=attempt) from last_error
                delay = min(delay, remaining)
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise CaptureFailed("capture cancelled", attempts=attempt) from last_error
            elif delay > 0:
                time.sleep(delay)

        raise CaptureFailed(f"all {self.max_attempts} capture attempts failed: {last_error}",
                            attempts=self.max_attempts) from last_error

    def _decide(self, state) -> Decision:
        infer_start = time.perf_counter()
        try:
            scores = self.predictor.predict(state)
        except Exception as e:
            logger.error(f"Inference failed: {e}")
            raise InferenceFailed(f"inference failed: {e}") from e
        finally:
            elapsed = time.perf_counter() - infer_start
            with self._lock:
                self._counters.inference_calls += 1
                self._counters.total_inference_time += elapsed

        try:
            ranked = self.rank_moves(scores)
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid score vector: {e}")
            raise InferenceFailed(f"invalid score vector: {e}") from e
        if not ranked:
            raise NoValidMoves("no valid moves found")
        return Decision(
            top_move=ranked[0],
            alternatives=tuple(ranked[1:]),
            timestamp=time.time(),
            inference_ms=elapsed * 1000,
            state_snapshot=state,
            total_candidates=len(ranked),
        )

    # ------------------------------------------------------------------
    #  Ranking
    # ------------------------------------------------------------------
    def rank_moves(self, scores) -> list:
        ranked = []
        for position, move_score in enumerate(self.predictor.get_top_k_moves(scores, self.top_k)):
            rank = position + 1
            move = board.move_from_index(move_score.move_index, move_score.score)
            tags = board.move_patterns(move.from_square, move.to_square)
            category = categorize_move(move.confidence, tags)
            ranked.append(RankedMove(
                index=move.index,
                notation=self.predictor.decode_move(move.index),
                from_square=move.from_square,
                to_square=move.to_square,
                confidence=move.confidence,
                rank=rank,
                explanation=explain_move(rank, move.confidence, category, tags),
                category=category,
                tags=tags,
            ))
        return ranked

    def get_statistics(self) -> EngineStats:
        with self._lock:
            c = _EngineCounters(**vars(self._counters))
        return EngineStats(
            total_decisions=c.total_decisions,
            successful_captures=c.successful_captures,
            failed_captures=c.failed_captures,
            capture_success_rate=safe_ratio(c.successful_captures, c.successful_captures + c.failed_captures),
            avg_inference_ms=safe_ratio(c.total_inference_time * 1000, c.inference_calls),
            total_inference_sec=c.total_inference_time,
        )


class DecisionHistory:
    """Bounded ring of recent decisions, guarded by its own lock."""
    def __init__(self, max_size=config.DECISION_HISTORY_SIZE):
        self.max_size = max_size
        self._decisions = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def add(self, decision: Decision):
        with self._lock:
            self._decisions.append(decision)

    def get_recent(self, n: int) -> list:
        with self._lock:
            if n <= 0:
                return []
            return list(self._decisions)[-n:]

    def get_stats(self) -> HistoryStats:
        with self._lock:
            decisions = list(self._decisions)
        if not decisions:
            return HistoryStats()
        return HistoryStats(
            total_decisions=len(decisions),
            avg_confidence=sum(d.top_move.confidence for d in decisions) / len(decisions),
            avg_inference_ms=sum(d.inference_ms for d in decisions) / len(decisions),
            category_counts=dict(Counter(d.top_move.category for d in decisions)),
        )

    def clear(self):
        with self._lock:
            self._decisions.clear()

    def __len__(self):
        with self._lock:
            return len(self._decisions)


def compare_decisions(d1: Decision, d2: Decision) -> DecisionComparison:
    return DecisionComparison(
        decision1=d1,
        decision2=d2,
        same_top_move=d1.top_move.index == d2.top_move.index,
        confidence_delta=d1.top_move.confidence - d2.top_move.confidence,
        inference_delta=d1.inference_ms - d2.inference_ms,
        time_delta=d2.timestamp - d1.timestamp,
    )

def format_move(notation: str) -> str:
    if len(notation) != 4:
        return notation
    return f"Move from {notation[:2]} to {notation[2:]}"

def format_decision(decision: Decision, max_alternatives=3) -> str:
    top = decision.top_move
    lines = [
        f"Top Move: {format_move(top.notation)}",
        f"Confidence: {top.confidence * 100:.1f}% ({top.category})",
        f"Explanation: {top.explanation}",
    ]
    if decision.alternatives:
        lines.append("")
        lines.append("Alternatives:")
        for alt in decision.alternatives[:max_alternatives]:
            lines.append(f"  {alt.rank}. {format_move(alt.notation)} ({alt.confidence * 100:.1f}% - {alt.category})")
    lines.append("")
    lines.append(f"Inference Time: {decision.inference_ms:.2f} ms")
    return "\n".join(lines) + "\n"


class Advisor:
    """Pairs an engine with a history and keeps the latest advice around."""
    def __init__(self, engine: DecisionEngine, history_size=config.DECISION_HISTORY_SIZE):
        self.engine = engine
        self.history = DecisionHistory(history_size)
        self._last_advice = None
        self._lock = threading.Lock()

    def get_advice(self, timeout=None, cancel_event=None) -> Advice:
        decision = self.engine.make_decision(timeout=timeout, cancel_event=cancel_event)
        self.history.add(decision)
        advice = Advice(
            primary_move=decision.top_move.notation,
            alternatives=tuple(alt.notation for alt in decision.alternatives[:3]),
            confidence=decision.top_move.confidence,
            timestamp=decision.timestamp,
            explanation=decision.top_move.explanation,
        )
        with self._lock:
            self._last_advice = advice
        return advice

    @property
    def last_advice(self):
        with self._lock:
            return self._last_advice
