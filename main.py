# main.py

# --- Standard Imports ---
import os
import signal
import logging
import threading
import torch.multiprocessing as mp
import time

import numpy as np
from tqdm import tqdm

# --- Project-specific Imports ---
from config import config, ImproverConfig
from board import move_from_index
from capture import SimulatedCapturer
from decision_engine import Advisor, DecisionEngine
from errors import CaptureFailed, PartnerError
from logger_config import setup_worker_logging, logger_process
from model_service import ModelService
from self_improver import SelfImprover
from visualize import plot_improvement

def log_and_display_config(logger, improver_config):
    """Logs the key configuration parameters at startup."""
    header = "="*30
    config_details = f"\n{header} Key Configuration {header}\n"
    config_details += f"[System & Environment]\n  - Device: {config.DEVICE}\n  - Log File: {config.LOG_FILE}\n\n"
    config_details += f"[Decision Engine]\n  - Top-K: {config.TOP_K}\n  - Confidence Threshold: {config.CONFIDENCE_THRESHOLD}\n  - Capture Attempts: {config.CAPTURE_MAX_ATTEMPTS}\n\n"
    config_details += f"[Replay & Training]\n  - Buffer Size: {improver_config.BUFFER_SIZE}\n  - Min Samples: {improver_config.MIN_SAMPLES_FOR_TRAIN}\n  - Train Interval: {improver_config.TRAIN_INTERVAL_SEC}s\n  - Sampling: {improver_config.sampling_strategy()}\n  - Batch Size: {improver_config.BATCH_SIZE}\n  - Learning Rate: {improver_config.LEARNING_RATE}\n\n"
    config_details += f"[Network]\n  - ResNet Blocks: {config.NUM_RES_BLOCKS}\n  - Filters: {config.NUM_FILTERS}\n"
    config_details += header + "===================" + header
    logger.info(config_details)
    print(config_details)

def simulate_actual_move(decision, rng):
    """Picks the move 'actually played': the top move, an alternative, or any move at all."""
    roll = rng.random()
    if roll < config.SIM_MATCH_RATE:
        return move_from_index(decision.top_move.index)
    if roll < config.SIM_MATCH_RATE + config.SIM_TOP_K_RATE and decision.alternatives:
        alt = decision.alternatives[int(rng.integers(len(decision.alternatives)))]
        return move_from_index(alt.index)
    return move_from_index(int(rng.integers(config.ACTION_SPACE_SIZE)))

def start_webui(improver, engine, history, logger):
    from webui import create_app
    app = create_app(improver=improver, engine=engine, history=history)
    thread = threading.Thread(target=app.run, name="WebUI", daemon=True,
                              kwargs={'host': config.WEBUI_HOST, 'port': config.WEBUI_PORT, 'use_reloader': False})
    thread.start()
    logger.info(f"WebUI serving on http://{config.WEBUI_HOST}:{config.WEBUI_PORT}")
    return thread

# =====================================================================
#                      MAIN EXECUTION BLOCK
# =====================================================================
if __name__ == "__main__":
    try:
        mp.set_start_method('spawn', force=True)
    except RuntimeError:
        pass

    # 1. --- Centralized Logging Setup ---
    log_queue = mp.Queue()
    os.makedirs(config.OUTPUT_DIR, exist_ok=True)
    logging_proc = mp.Process(target=logger_process, args=(log_queue, config.LOG_FILE), name="Logger")
    logging_proc.start()

    setup_worker_logging(log_queue)
    logger = logging.getLogger("Main")
    improver_config = ImproverConfig()
    log_and_display_config(logger, improver_config)

    # 2. --- Components ---
    shutdown_event = threading.Event()
    model_service = ModelService(config, learning_rate=improver_config.LEARNING_RATE, seed=config.SIM_SEED)
    improver = SelfImprover(model_service, improver_config)
    engine = DecisionEngine(model_service, SimulatedCapturer(seed=config.SIM_SEED, failure_rate=0.02))
    advisor = Advisor(engine)
    rng = np.random.default_rng(config.SIM_SEED)
    if config.WEBUI_ENABLED:
        start_webui(improver, engine, advisor.history, logger)

    def sigint_handler(signum, frame):
        if not shutdown_event.is_set():
            logger.info("Ctrl+C detected. Initiating graceful shutdown...")
            shutdown_event.set()

    signal.signal(signal.SIGINT, sigint_handler)
    signal.signal(signal.SIGTERM, sigint_handler)

    # 3. --- Observe / Decide / Retrain Loop ---
    status_bar = tqdm(position=0, leave=True, bar_format="{desc}: [{elapsed}] {postfix}", dynamic_ncols=True, desc="Observing")
    observations, last_status = 0, 0.0
    try:
        while not shutdown_event.is_set():
            if config.MAX_OBSERVATIONS and observations >= config.MAX_OBSERVATIONS:
                break
            try:
                advisor.get_advice(cancel_event=shutdown_event)
            except CaptureFailed as e:
                logger.warning(f"Skipping observation: {e}")
                continue
            except PartnerError as e:
                logger.error(f"Decision failed: {e}")
                continue

            decision = advisor.history.get_recent(1)[0]
            ranked = (decision.top_move,) + decision.alternatives
            trained = improver.observe_prediction(
                decision.state_snapshot,
                predicted=move_from_index(decision.top_move.index, decision.top_move.confidence),
                actual=simulate_actual_move(decision, rng),
                top_k=ranked,
                confidence=decision.top_move.confidence,
                game_id="simulated",
                position=observations,
            )
            observations += 1
            if trained:
                logger.info(str(improver.calculate_improvement()))

            now = time.time()
            if now - last_status >= config.STATUS_INTERVAL:
                stats, buffer_stats = improver.get_stats(), improver.get_buffer_stats()
                status_bar.set_postfix_str(f"{observations} obs, cycles={stats.total_cycles}, "
                                           f"acc={buffer_stats.accuracy * 100:.1f}%, top-k={buffer_stats.top_k_accuracy * 100:.1f}%, "
                                           f"buffer={buffer_stats.total_entries}")
                status_bar.refresh()
                last_status = now
            shutdown_event.wait(config.SIM_STEP_DELAY)
    finally:
        status_bar.close()
        logger.info(f"Shutting down after {observations} observations. Engine: {engine.get_statistics()}")
        graph = improver.graph_data()
        improver.close()
        try:
            plot_improvement(graph, os.path.join(config.OUTPUT_DIR, "improvement.png"))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to plot improvement: {e}")

        # Cleanly shut down the logger
        log_queue.put(None)
        logging_proc.join(timeout=5)
        if logging_proc.is_alive():
            logging_proc.terminate()
