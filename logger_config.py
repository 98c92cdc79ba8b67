# logger_config.py
import logging
import logging.handlers
import os
from multiprocessing import Queue
import sys

LOG_FORMAT = '%(asctime)s - %(processName)-18s - %(name)-16s - %(levelname)-8s - %(message)s'

def _ensure_log_dir(log_file: str):
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

def logger_process(log_queue: Queue, log_file: str):
    """Drains log records from every process into a single file until it receives None."""
    _ensure_log_dir(log_file)
    logging.basicConfig(level=logging.INFO,
                        format=LOG_FORMAT,
                        handlers=[logging.FileHandler(log_file, mode='a')])
    while True:
        try:
            record = log_queue.get()
            if record is None: break
            logger = logging.getLogger(record.name)
            logger.handle(record)
        except (KeyboardInterrupt, EOFError):
            break
        except Exception:
            import traceback
            traceback.print_exc(file=sys.stderr)

def setup_worker_logging(log_queue: Queue, level=logging.INFO):
    queue_handler = logging.handlers.QueueHandler(log_queue)
    root = logging.getLogger()
    if root.hasHandlers():
        root.handlers.clear()
    root.addHandler(queue_handler)
    root.setLevel(level)

def setup_logging(log_file: str, level=logging.INFO):
    """Single-process setup: writes straight to log_file, no queue or logger process."""
    _ensure_log_dir(log_file)
    root = logging.getLogger()
    if root.hasHandlers():
        root.handlers.clear()
    handler = logging.FileHandler(log_file, mode='a')
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    return handler
