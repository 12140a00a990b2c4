"""
persistence_utils.py - The one place that writes store snapshots to disk.

Handlers never touch files. After a command commits, the dispatcher calls
save_store(store, state_path) and this module decides whether to write now or
to coalesce through a per-path DebouncedSaver.

Public API:
- save_store(store, state_path, debounced=True)
- flush_all_saves()
- get_save_stats()

Disk failures are logged and counted but never raised: the in-memory store stays
authoritative and the next save retries.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict

from debounced_saver import DebouncedSaver

logger = logging.getLogger(__name__)

_savers: Dict[str, DebouncedSaver] = {}

_stats: Dict[str, Any] = {
    'debounced_calls': 0,
    'immediate_calls': 0,
    'errors': 0,
    'last_save_time': None,
}


def _get_interval_ms() -> int:
    try:
        return int((os.getenv('MUD_SAVE_DEBOUNCE_MS') or '300').strip())
    except ValueError:
        return 300


def save_store(store, state_path: str, debounced: bool = True) -> None:
    """Persist a DocumentStore snapshot to `state_path`."""
    if not state_path:
        return
    if not debounced:
        _stats['immediate_calls'] += 1
        _save_immediate(store, state_path)
        return
    _stats['debounced_calls'] += 1
    s = _savers.get(state_path)
    if s is None:
        s = DebouncedSaver(lambda: _save_immediate(store, state_path), interval_ms=_get_interval_ms())
        _savers[state_path] = s
    s.debounce()


def _save_immediate(store, state_path: str) -> None:
    try:
        store.save_to_file(state_path)
        _stats['last_save_time'] = time.time()
    except Exception as e:
        _stats['errors'] += 1
        logger.warning(f"Saving store snapshot to {state_path} failed: {e}")


def flush_all_saves() -> None:
    for saver in list(_savers.values()):
        saver.flush()


def get_save_stats() -> Dict[str, Any]:
    return {
        **_stats,
        'active_savers': len(_savers),
    }
