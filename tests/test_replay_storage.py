# file: test_replay_storage.py

import unittest
import json
import shutil
import sqlite3
import tempfile
import numpy as np
import sys
import os

# --- Path Setup ---
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

# --- Project Imports ---
from board import move_from_index
from data_structures import ReplayEntry
from errors import StorageIOError
from replay_buffer import finalize_entry
from replay_storage import ReplayStorage, serialize_entry


def make_entry(position, correct=True, game_id=None, confidence=0.0, top_k_rank=0):
    state = np.zeros((12, 8, 8), dtype=np.float32)
    state[position % 12, 0, position % 8] = 1.0
    actual = 12 * 64 + 28
    return finalize_entry(ReplayEntry(
        state_tensor=state,
        predicted_move=move_from_index(actual if correct else 1 * 64 + 18, 0.4),
        actual_move=move_from_index(actual),
        timestamp=1700000000 + position,
        game_id=game_id,
        position=position,
        confidence=confidence,
        was_in_top_k=top_k_rank > 0,
        top_k_rank=top_k_rank,
    ))


class TestReplayStorage(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.storage = ReplayStorage(os.path.join(self.tmp_dir, "replay.db"), os.path.join(self.tmp_dir, "jsonl"))

    def tearDown(self):
        self.storage.close()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def assertEntryEqual(self, a, b):
        np.testing.assert_array_equal(a.state_tensor, b.state_tensor)
        for field in ReplayEntry._fields:
            if field != 'state_tensor':
                self.assertEqual(getattr(a, field), getattr(b, field), field)

    def test_store_and_load_in_order(self):
        print("\n--- Running test_store_and_load_in_order ---")
        entries = [make_entry(i, correct=i % 2 == 0) for i in range(5)]
        for entry in entries:
            self.storage.store(entry)
        loaded = self.storage.load_all()
        self.assertEqual(self.storage.count(), 5)
        self.assertEqual([e.position for e in loaded], [0, 1, 2, 3, 4])
        self.assertEntryEqual(loaded[1], entries[1])
        self.assertEqual([e.position for e in self.storage.load_recent(2)], [3, 4])
        self.assertEqual(self.storage.load_recent(0), [])

    def test_batch_keys_are_unique(self):
        print("\n--- Running test_batch_keys_are_unique ---")
        # Same timestamp for every entry; keys must still differ.
        entries = [make_entry(i)._replace(timestamp=1700000000) for i in range(50)]
        self.storage.store_batch(entries)
        self.assertEqual(self.storage.count(), 50)
        conn = sqlite3.connect(self.storage.db_path)
        try:
            keys = [row[0] for row in conn.execute("SELECT key FROM replays")]
        finally:
            conn.close()
        self.assertEqual(len(set(keys)), 50)
        self.assertTrue(all(k.startswith("1700000000_") for k in keys))

    def test_optional_fields_omitted(self):
        print("\n--- Running test_optional_fields_omitted ---")
        doc = serialize_entry(make_entry(0))
        for key in ('game_id', 'confidence', 'top_k_rank'):
            self.assertNotIn(key, doc)
        doc = serialize_entry(make_entry(0, game_id="g1", confidence=0.8, top_k_rank=2))
        self.assertEqual(doc['game_id'], "g1")
        self.assertEqual(doc['top_k_rank'], 2)
        self.assertEqual(set(doc['actual_move']), {'index', 'notation', 'from_square', 'to_square', 'confidence'})

    def test_jsonl_round_trip(self):
        print("\n--- Running test_jsonl_round_trip ---")
        entries = [make_entry(i, correct=i < 2, game_id="g7", confidence=0.25 * i, top_k_rank=i % 3) for i in range(4)]
        self.storage.store_batch(entries)
        self.assertEqual(self.storage.export_to_jsonl("dump.jsonl"), 4)

        with open(os.path.join(self.storage.jsonl_dir, "dump.jsonl")) as f:
            lines = [json.loads(line) for line in f if line.strip()]
        self.assertEqual(len(lines), 4)

        fresh = ReplayStorage(os.path.join(self.tmp_dir, "fresh.db"), self.storage.jsonl_dir)
        try:
            self.assertEqual(fresh.count(), 0)
            self.assertEqual(fresh.import_from_jsonl("dump.jsonl"), 4)
            restored = fresh.load_all()
        finally:
            fresh.close()
        self.assertEqual(len(restored), 4)
        for original, copy in zip(entries, restored):
            self.assertEntryEqual(original, copy)
            expected, actual = serialize_entry(original), serialize_entry(copy)
            self.assertEqual(set(expected), set(actual))
            for key in expected:
                self.assertEqual(expected[key], actual[key], key)
        # The source storage is untouched by the import.
        self.assertEqual(self.storage.count(), 4)

    def test_import_errors(self):
        print("\n--- Running test_import_errors ---")
        with self.assertRaises(StorageIOError):
            self.storage.import_from_jsonl("missing.jsonl")
        with open(os.path.join(self.storage.jsonl_dir, "bad.jsonl"), "w") as f:
            f.write("{not json}\n")
        with self.assertRaises(StorageIOError):
            self.storage.import_from_jsonl("bad.jsonl")
        self.assertEqual(self.storage.count(), 0)

    def test_metadata(self):
        print("\n--- Running test_metadata ---")
        self.assertIsNone(self.storage.get_metadata("missing"))
        self.assertEqual(self.storage.get_metadata("missing", "x"), "x")
        self.storage.set_metadata("final_metrics", '{"a": 1}')
        self.storage.set_metadata("blob", b"\x00\x01")
        self.assertEqual(self.storage.get_metadata("final_metrics"), '{"a": 1}')
        self.assertEqual(self.storage.get_metadata("blob"), b"\x00\x01")
        self.storage.set_metadata("final_metrics", "{}")
        self.assertEqual(self.storage.get_metadata("final_metrics"), "{}")
        with self.assertRaises(StorageIOError):
            self.storage.set_metadata("bad", 3)

    def test_backup(self):
        print("\n--- Running test_backup ---")
        self.storage.store_batch([make_entry(i) for i in range(3)])
        backup_path = os.path.join(self.tmp_dir, "backups", "copy.db")
        self.storage.backup(backup_path)
        copy = ReplayStorage(backup_path, os.path.join(self.tmp_dir, "jsonl"))
        try:
            self.assertEqual(copy.count(), 3)
        finally:
            copy.close()

    def test_closed_storage_raises(self):
        print("\n--- Running test_closed_storage_raises ---")
        self.storage.close()
        with self.assertRaises(StorageIOError):
            self.storage.store(make_entry(0))
        with self.assertRaises(StorageIOError):
            self.storage.count()
        # A second close is harmless.
        self.storage.close()


if __name__ == '__main__':
    unittest.main(verbosity=2)
