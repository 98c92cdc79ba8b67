# visualize.py
# Offline plots of the improvement history and of a policy's move scores.

import logging
import os

import numpy as np
import seaborn as sns
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from config import config
from board import FILES

logger = logging.getLogger("Visualizer")


def _prepare_path(path):
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)


def plot_improvement(graph_data, path):
    """Accuracy and average reward per training cycle. Returns the written path, or None with no cycles."""
    if not graph_data.cycles:
        logger.info("No training cycles yet; skipping improvement plot.")
        return None

    _prepare_path(path)
    fig, (ax_acc, ax_rew) = plt.subplots(2, 1, figsize=(8, 6), sharex=True)
    sns.lineplot(x=graph_data.cycles, y=[a * 100 for a in graph_data.accuracy], marker="o", ax=ax_acc)
    ax_acc.set_ylabel("Recent accuracy (%)")
    ax_acc.set_title("Self-improvement progress")
    sns.lineplot(x=graph_data.cycles, y=graph_data.rewards, marker="o", color="tab:orange", ax=ax_rew)
    ax_rew.axhline(0.0, color="grey", linewidth=0.8, linestyle="--")
    ax_rew.set_ylabel("Average reward")
    ax_rew.set_xlabel("Training cycle")
    fig.tight_layout()
    fig.savefig(path); plt.close(fig)
    logger.info(f"Saved improvement plot for {len(graph_data.cycles)} cycles to {path}.")
    return path


def move_heatmap(scores) -> np.ndarray:
    """Sums move scores by destination square into an 8x8 grid, rank 8 on top."""
    scores = np.nan_to_num(np.asarray(scores, dtype=np.float64).ravel(), nan=0.0, posinf=0.0, neginf=0.0)
    if scores.size != config.ACTION_SPACE_SIZE:
        raise ValueError(f"expected {config.ACTION_SPACE_SIZE} scores, got {scores.size}")
    by_destination = scores.reshape(config.NUM_SQUARES, config.NUM_SQUARES).sum(axis=0)
    return by_destination.reshape(config.BOARD_SIZE, config.BOARD_SIZE)[::-1]


def plot_move_heatmap(scores, path, title="Move scores by destination square"):
    grid = move_heatmap(scores)
    _prepare_path(path)
    fig, ax = plt.subplots(figsize=(8, 8)); sns.heatmap(grid, cmap="viridis", ax=ax, square=True,
                                                        xticklabels=list(FILES),
                                                        yticklabels=[str(r) for r in range(config.BOARD_SIZE, 0, -1)])
    ax.set_title(title)
    fig.savefig(path); plt.close(fig)
    logger.info(f"Saved move heatmap to {path}.")
    return path
