"""
Named locks for the document store commit path.

Under Flask-SocketIO with eventlet many greenlets interleave on I/O, and under
the threading fallback real threads do. The store validates optimistic
transactions while holding a named lock, so a commit (version check plus write)
is never interleaved with another commit on the same store.

    from concurrency_utils import atomic

    with atomic('store:main'):
        ... validate read versions, apply staged writes ...

Locks come from eventlet's Semaphore when eventlet is importable and from
threading.RLock otherwise. Eventlet's Semaphore is not reentrant, so nothing
holding a store lock may take it again.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator

try:  # pragma: no cover - environment dependent
    from eventlet.semaphore import Semaphore as _Lock
except Exception:  # pragma: no cover - runs without eventlet
    from threading import RLock as _Lock  # type: ignore

from threading import RLock as _RegistryLock

_LOCKS: Dict[str, Any] = {}
_LOCKS_GUARD = _RegistryLock()


def get_lock(name: str) -> Any:
    """Return the process-wide lock registered under `name`, creating it once."""
    lk = _LOCKS.get(name)
    if lk is not None:
        return lk
    with _LOCKS_GUARD:
        lk = _LOCKS.get(name)
        if lk is None:
            lk = _Lock()
            _LOCKS[name] = lk
        return lk


@contextmanager
def atomic(name: str) -> Iterator[None]:
    lk = get_lock(name)
    lk.acquire()
    try:
        yield
    finally:
        lk.release()

