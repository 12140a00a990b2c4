"""Tests for the snapshot persistence facade.

save_store() is the only path from the live DocumentStore to disk; these
check immediate and debounced writes, per-path savers and error handling.
"""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

sys.path.append(os.path.dirname(__file__))

from document_store import DocumentStore
from persistence_utils import flush_all_saves, get_save_stats, save_store
from world import room_path


def test_immediate_save(store, tmp_path: Path):
    state_file = tmp_path / "world_state.json"
    save_store(store, str(state_file), debounced=False)
    assert state_file.exists()
    loaded = DocumentStore.load_from_file(str(state_file))
    assert loaded.get(room_path('start'))['name'] == 'The Nexus'


def test_debounced_save_writes_latest_state(store, tmp_path: Path):
    state_file = tmp_path / "world_state.json"
    save_store(store, str(state_file))
    store.update(room_path('start'), {'items': []})
    save_store(store, str(state_file))
    time.sleep(0.3)
    assert state_file.exists()
    loaded = DocumentStore.load_from_file(str(state_file))
    assert loaded.get(room_path('start'))['items'] == []


def test_flush_all_saves(store, tmp_path: Path):
    state_file = tmp_path / "world_state.json"
    save_store(store, str(state_file))
    flush_all_saves()
    assert state_file.exists()


def test_empty_path_is_ignored(store):
    before = get_save_stats()['debounced_calls']
    save_store(store, '')
    assert get_save_stats()['debounced_calls'] == before


def test_stats_structure():
    stats = get_save_stats()
    for key in ('debounced_calls', 'immediate_calls', 'errors', 'last_save_time', 'active_savers'):
        assert key in stats


def test_write_errors_are_counted(store, tmp_path: Path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    before = get_save_stats()['errors']
    save_store(store, str(blocker / "state.json"), debounced=False)
    assert get_save_stats()['errors'] == before + 1
