"""News feed: notable kills, finds and level-ups.

Entries are plain appends to the news collection (no transaction needed) and
are posted only after the command that earned them has committed. Posting is
best-effort; a failed post never fails the command.
"""

from __future__ import annotations

import time
from typing import List, Optional

import constants as C
from document_store import DocumentStore
from safe_utils import safe_call
from service_contract import ServiceReturn, line, success
from world import NewsEntry

NEWS_KIND_KILL = 'kill'
NEWS_KIND_FOUND = 'found'
NEWS_KIND_LEVELUP = 'levelup'


def post_news(store: DocumentStore, kind: str, player_name: str, text: str,
              now: Optional[float] = None) -> Optional[str]:
    entry = {
        'kind': kind,
        'player_name': player_name,
        'text': text,
        'timestamp': time.time() if now is None else now,
    }
    return safe_call(store.add_with_generated_id, C.COL_NEWS, entry)


def recent_news(store: DocumentStore, limit: int = C.NEWS_FEED_LIMIT) -> List[NewsEntry]:
    docs = store.list_collection(C.COL_NEWS)
    entries = [NewsEntry.from_dict(d, doc_id) for doc_id, d in docs.items()]
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    return entries[:limit]


def _time_ago(ts: float, now: float) -> str:
    delta = max(0, int(now - ts))
    if delta < 60:
        return 'just now'
    if delta < 3600:
        return f"{delta // 60}m ago"
    if delta < 86400:
        return f"{delta // 3600}h ago"
    return f"{delta // 86400}d ago"


def show_news(store: DocumentStore, now: Optional[float] = None) -> ServiceReturn:
    now = time.time() if now is None else now
    entries = recent_news(store)
    if not entries:
        return success([line(C.MSG_TYPE_GAME, 'No news to report yet!')])
    emits = [line(C.MSG_TYPE_SYSTEM, '--- Recent News ---')]
    for e in entries:
        emits.append(line(C.MSG_TYPE_GAME, f"{e.player_name} {e.text} ({_time_ago(e.timestamp, now)})"))
    return success(emits)
