"""debounced_saver.py - Coalesce bursts of store snapshot writes.

Combat rounds and movement commit many small transactions; writing the whole
snapshot after each one would be wasteful. debounce() arms a background waiter
that writes once the store has been quiet for `interval_ms`; further calls push
the deadline out. flush() writes immediately and is registered with atexit.
"""

from __future__ import annotations

import atexit
import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DebouncedSaver:
    def __init__(self, save_fn: Callable[[], None], *, interval_ms: int = 300) -> None:
        self._save_fn = save_fn
        self._interval_s = max(0.0, float(interval_ms) / 1000.0)
        self._next_deadline: Optional[float] = None
        self._armed = False
        self._guard = threading.Lock()
        atexit.register(self.flush)

    def debounce(self) -> None:
        with self._guard:
            self._next_deadline = time.time() + self._interval_s
            if self._armed:
                return
            self._armed = True
        t = threading.Thread(target=self._wait_and_flush, name='debounced-saver', daemon=True)
        t.start()

    def _wait_and_flush(self) -> None:
        while True:
            nd = self._next_deadline
            if nd is None:
                break
            dt = nd - time.time()
            if dt <= 0:
                break
            time.sleep(min(0.05, dt))
        self.flush()

    def flush(self) -> None:
        with self._guard:
            self._next_deadline = None
            self._armed = False
        try:
            self._save_fn()
        except Exception:
            logger.exception("Debounced save failed")
