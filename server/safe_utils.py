"""
Best-effort call helpers for side effects that must never break a command.

Room broadcasts, news posts, store subscriber callbacks and debounced saves are
all "fire and forget": a failure there should be visible in the logs but must
not abort the command that triggered it. These helpers log the first occurrence
of each (function, exception type) pair and stay quiet afterwards so a flaky
socket does not flood the log.

Set DEBUG_RAISE_EXCEPTIONS to 1/true/yes/on to re-raise after logging. The
variable is read on every call, so tests can flip it with monkeypatch.setenv.

    safe_call(socketio.emit, MESSAGE_OUT, payload, to=room_id)
    entries = safe_call_with_default(news_service.recent_news, [], store)
"""

import logging
import os
from typing import Any, Callable, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

_seen_exceptions: Set[str] = set()


def _debug_raise_enabled() -> bool:
    val = (os.getenv('DEBUG_RAISE_EXCEPTIONS') or '').strip().lower()
    return val in ('1', 'true', 'yes', 'on')


def _fn_label(fn: Callable) -> str:
    return getattr(fn, '__name__', None) or str(fn)


def _log_once(kind: str, fn: Callable, exc: Exception, suffix: str) -> None:
    key = f"{_fn_label(fn)}:{type(exc).__name__}"
    if key in _seen_exceptions:
        return
    _seen_exceptions.add(key)
    logger.warning(
        f"{kind}: {_fn_label(fn)} failed with {type(exc).__name__}: {exc} {suffix}"
    )


def safe_call(fn: Callable[..., T], *args, **kwargs) -> Optional[T]:
    """Run fn(*args, **kwargs); on failure log once and return None."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        _log_once('safe_call', fn, e, f"(later {type(e).__name__} errors from this function are silent)")
        if _debug_raise_enabled():
            raise
        return None


def safe_call_with_default(fn: Callable[..., T], default: T, *args, **kwargs) -> T:
    """Like safe_call but returns `default` instead of None on failure."""
    try:
        return fn(*args, **kwargs)
    except Exception as e:
        _log_once('safe_call_with_default', fn, e, f"(returning default: {default!r})")
        if _debug_raise_enabled():
            raise
        return default


def reset_seen_exceptions() -> None:
    """Forget which exception types were already logged (tests)."""
    _seen_exceptions.clear()
