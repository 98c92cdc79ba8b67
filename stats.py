# stats.py

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from data_structures import Decision, ReplayStats

# ==================== Decision Engine Reports ====================

@dataclass
class EngineStats:
    """Snapshot of the DecisionEngine's rolling counters."""
    total_decisions: int = 0
    successful_captures: int = 0
    failed_captures: int = 0
    capture_success_rate: float = 0.0
    avg_inference_ms: float = 0.0
    total_inference_sec: float = 0.0

@dataclass
class HistoryStats:
    """Aggregates over the decisions currently held by a DecisionHistory."""
    total_decisions: int = 0
    avg_confidence: float = 0.0
    avg_inference_ms: float = 0.0
    category_counts: Dict[str, int] = field(default_factory=dict)

@dataclass
class DecisionComparison:
    decision1: Decision
    decision2: Decision
    same_top_move: bool
    confidence_delta: float
    inference_delta: float
    time_delta: float

# ==================== Self-Improvement Reports ====================

@dataclass
class ImproverStats:
    """Mutable running statistics owned by the SelfImprover."""
    total_cycles: int = 0
    total_samples: int = 0
    current_accuracy: float = 0.0
    baseline_accuracy: float = 0.0
    best_accuracy: float = 0.0
    improvement_delta: float = 0.0
    last_train_time: Optional[float] = None
    avg_train_duration: float = 0.0
    accuracy_history: List[float] = field(default_factory=list)
    reward_history: List[float] = field(default_factory=list)

@dataclass
class ImprovementMetrics:
    total_cycles: int = 0
    baseline_accuracy: float = 0.0
    current_accuracy: float = 0.0
    best_accuracy: float = 0.0
    relative_improvement: float = 0.0
    absolute_improvement: float = 0.0
    recent_trend: float = 0.0
    variance: float = 0.0
    std_dev: float = 0.0
    is_improving: bool = False
    meets_threshold: bool = False

    def __str__(self):
        trend = "→"
        if self.is_improving:
            trend = "↑"
        elif self.recent_trend < 0:
            trend = "↓"
        return (f"Improvement{{Baseline: {self.baseline_accuracy * 100:.2f}%, "
                f"Current: {self.current_accuracy * 100:.2f}%, "
                f"Best: {self.best_accuracy * 100:.2f}%, "
                f"Δ: {self.absolute_improvement * 100:+.2f}% {trend}}}")

@dataclass
class GraphData:
    """Per-cycle series for plotting."""
    cycles: List[int] = field(default_factory=list)
    accuracy: List[float] = field(default_factory=list)
    rewards: List[float] = field(default_factory=list)


def format_replay_stats(stats: ReplayStats) -> str:
    return (f"ReplayStats{{Entries: {stats.total_entries}, Accuracy: {stats.accuracy * 100:.2f}%, "
            f"Recent: {stats.recent_accuracy * 100:.2f}%, TopK: {stats.top_k_accuracy * 100:.2f}%, "
            f"AvgReward: {stats.average_reward:.2f}}}")
