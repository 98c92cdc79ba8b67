# replay_storage.py
# Durable, append-only log of replay entries plus a small metadata store.
# Entries are kept as JSON documents so they can be exported to JSONL as-is.

import json
import logging
import os
import sqlite3
import threading
import time

import numpy as np

from data_structures import Move, ReplayEntry
from errors import StorageIOError
from utils import _convert_to_json_serializable

logger = logging.getLogger("ReplayStorage")

REPLAYS_TABLE = "replays"
METADATA_TABLE = "metadata"


def serialize_move(move: Move) -> dict:
    return {
        'index': int(move.index),
        'notation': move.notation,
        'from_square': int(move.from_square),
        'to_square': int(move.to_square),
        'confidence': float(move.confidence),
    }

def deserialize_move(data: dict) -> Move:
    return Move(
        index=data.get('index', data['from_square'] * 64 + data['to_square']),
        notation=data.get('notation', ''),
        from_square=data['from_square'],
        to_square=data['to_square'],
        confidence=data.get('confidence', 0.0),
    )

def serialize_entry(entry: ReplayEntry) -> dict:
    """Builds the stored JSON document. Optional fields are omitted when empty."""
    doc = {
        'state_tensor': _convert_to_json_serializable(entry.state_tensor),
        'predicted_move': serialize_move(entry.predicted_move),
        'actual_move': serialize_move(entry.actual_move),
        'reward': float(entry.reward),
        'timestamp': int(entry.timestamp),
    }
    if entry.game_id:
        doc['game_id'] = entry.game_id
    doc['position'] = int(entry.position)
    if entry.confidence:
        doc['confidence'] = float(entry.confidence)
    doc['is_correct'] = bool(entry.is_correct)
    doc['was_in_top_k'] = bool(entry.was_in_top_k)
    if entry.top_k_rank:
        doc['top_k_rank'] = int(entry.top_k_rank)
    return doc

def deserialize_entry(doc: dict) -> ReplayEntry:
    state = doc.get('state_tensor')
    return ReplayEntry(
        state_tensor=np.asarray(state, dtype=np.float32) if state is not None else None,
        predicted_move=deserialize_move(doc['predicted_move']),
        actual_move=deserialize_move(doc['actual_move']),
        reward=doc.get('reward', 0.0),
        timestamp=doc.get('timestamp', 0),
        game_id=doc.get('game_id'),
        position=doc.get('position', 0),
        confidence=doc.get('confidence', 0.0),
        is_correct=doc.get('is_correct', False),
        was_in_top_k=doc.get('was_in_top_k', False),
        top_k_rank=doc.get('top_k_rank', 0),
    )


class ReplayStorage:
    """
    Manages all persistence for the replay subsystem. Every failure surfaces
    as StorageIOError; retrying is left to the caller.
    """
    def __init__(self, db_path="data/replays/replay.db", jsonl_dir="data/replays"):
        self.db_path = db_path
        self.jsonl_dir = jsonl_dir
        self._local = threading.local()
        self._connections = []
        self._conn_lock = threading.Lock()
        self._key_lock = threading.Lock()
        self._last_suffix = 0
        self._closed = False
        try:
            db_dir = os.path.dirname(db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            os.makedirs(jsonl_dir, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            self.close()
            raise StorageIOError(f"failed to open replay storage at {db_path}: {e}") from e

    def _connection(self):
        """Returns this thread's connection, opening it on first use."""
        if self._closed:
            raise StorageIOError("replay storage is closed")
        conn = getattr(self._local, 'connection', None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10)
            conn.execute('PRAGMA journal_mode=WAL;')
            conn.execute('PRAGMA synchronous=NORMAL;')
            self._local.connection = conn
            with self._conn_lock:
                self._connections.append(conn)
        return conn

    def _init_db(self):
        with self._connection() as conn:
            conn.execute(f'''
                CREATE TABLE IF NOT EXISTS {REPLAYS_TABLE} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            ''')
            conn.execute(f'''
                CREATE TABLE IF NOT EXISTS {METADATA_TABLE} (
                    key TEXT PRIMARY KEY,
                    value
                )
            ''')

    def _next_key(self, timestamp: int) -> str:
        # The nano suffix is strictly increasing so keys stay unique within one second.
        with self._key_lock:
            suffix = max(time.time_ns(), self._last_suffix + 1)
            self._last_suffix = suffix
        return f"{int(timestamp)}_{suffix}"

    def _encode(self, entry: ReplayEntry):
        try:
            return self._next_key(entry.timestamp), json.dumps(serialize_entry(entry), separators=(',', ':'))
        except (TypeError, ValueError) as e:
            raise StorageIOError(f"failed to marshal entry: {e}") from e

    def store(self, entry: ReplayEntry):
        key, value = self._encode(entry)
        try:
            with self._connection() as conn:
                conn.execute(f'INSERT INTO {REPLAYS_TABLE} (key, value) VALUES (?, ?)', (key, value))
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to store entry: {e}") from e

    def store_batch(self, entries):
        """Stores all entries in a single transaction; nothing is written if one fails."""
        rows = [self._encode(entry) for entry in entries]
        if not rows:
            return
        try:
            with self._connection() as conn:
                conn.executemany(f'INSERT INTO {REPLAYS_TABLE} (key, value) VALUES (?, ?)', rows)
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to store batch of {len(rows)} entries: {e}") from e

    def load_all(self) -> list:
        """Loads every stored entry, oldest first. Cost grows with the log size."""
        try:
            rows = self._connection().execute(f'SELECT value FROM {REPLAYS_TABLE} ORDER BY rowid ASC').fetchall()
            return [deserialize_entry(json.loads(row[0])) for row in rows]
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to load entries: {e}") from e
        except (ValueError, KeyError) as e:
            raise StorageIOError(f"corrupt replay entry: {e}") from e

    def load_recent(self, n: int) -> list:
        if n <= 0:
            return []
        entries = self.load_all()
        return entries[-n:]

    def count(self) -> int:
        try:
            return self._connection().execute(f'SELECT COUNT(*) FROM {REPLAYS_TABLE}').fetchone()[0]
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to count entries: {e}") from e

    def clear(self):
        try:
            with self._connection() as conn:
                conn.execute(f'DELETE FROM {REPLAYS_TABLE}')
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to clear entries: {e}") from e

    def export_to_jsonl(self, filename: str) -> int:
        """Writes one JSON object per line under jsonl_dir. Returns the number of entries written."""
        entries = self.load_all()
        filepath = os.path.join(self.jsonl_dir, filename)
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                for entry in entries:
                    f.write(json.dumps(serialize_entry(entry), separators=(',', ':')))
                    f.write('\n')
        except OSError as e:
            raise StorageIOError(f"failed to export to {filepath}: {e}") from e
        logger.info(f"Exported {len(entries)} replay entries to {filepath}.")
        return len(entries)

    def import_from_jsonl(self, filename: str) -> int:
        filepath = os.path.join(self.jsonl_dir, filename)
        entries = []
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(deserialize_entry(json.loads(line)))
                    except (ValueError, KeyError) as e:
                        raise StorageIOError(f"failed to decode {filepath}:{line_no}: {e}") from e
        except OSError as e:
            raise StorageIOError(f"failed to open {filepath}: {e}") from e
        self.store_batch(entries)
        logger.info(f"Imported {len(entries)} replay entries from {filepath}.")
        return len(entries)

    def get_metadata(self, key: str, default=None):
        try:
            row = self._connection().execute(f'SELECT value FROM {METADATA_TABLE} WHERE key = ?', (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to read metadata {key!r}: {e}") from e
        return row[0] if row else default

    def set_metadata(self, key: str, value):
        if not isinstance(value, (str, bytes)):
            raise StorageIOError(f"metadata value for {key!r} must be str or bytes")
        try:
            with self._connection() as conn:
                conn.execute(f'INSERT OR REPLACE INTO {METADATA_TABLE} (key, value) VALUES (?, ?)', (key, value))
        except sqlite3.Error as e:
            raise StorageIOError(f"failed to write metadata {key!r}: {e}") from e

    def backup(self, backup_path: str):
        """Copies a consistent snapshot of the database to backup_path."""
        try:
            backup_dir = os.path.dirname(backup_path)
            if backup_dir:
                os.makedirs(backup_dir, exist_ok=True)
            dest = sqlite3.connect(backup_path)
            try:
                self._connection().backup(dest)
            finally:
                dest.close()
        except (OSError, sqlite3.Error) as e:
            raise StorageIOError(f"failed to back up to {backup_path}: {e}") from e
        logger.info(f"Replay storage backed up to {backup_path}.")

    def close(self):
        with self._conn_lock:
            connections, self._connections = self._connections, []
            self._closed = True
        errors = []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                errors.append(e)
        if errors:
            raise StorageIOError(f"failed to close {len(errors)} connection(s): {errors[0]}")
