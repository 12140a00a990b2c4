"""In-process transactional document store.

Documents are plain dicts addressed by '<collection>/<doc id>'. Every document
carries a version counter that increases on each write (deletes included), which
is what optimistic transactions validate against.

Public surface:
    get(path) -> dict | None
    set(path, doc)
    update(path, fields)             partial merge; the document must exist
    delete(path)
    add_with_generated_id(collection, doc) -> doc id
    list_collection(collection) -> {doc id: doc}
    subscribe(collection, on_change) -> unsubscribe()
    run_transaction(fn)              fn(tx) is re-run on write conflicts

Transactions:
    def _body(tx):
        player = tx.get('players/p1')
        tx.update('players/p1', {'money': player['money'] - 5})
        return player['money'] - 5
    new_money = store.run_transaction(_body)

`tx.get` records the version it saw; writes are staged and only applied at
commit. Commit takes the store's named lock, checks that every document read is
still at the recorded version, and applies all staged writes at once. If any
version moved the body is thrown away and re-run, up to `max_attempts` times;
after that TransactionAbortedError is raised. Because the body may run more than
once it must not have externally visible side effects; collect messages and
return them instead.

Raise ValidationAbort inside a body to stop without committing or retrying.

Subscribers receive (doc_id, doc_or_None) after each committed write, outside
the commit lock. Callbacks get deep copies and may read the store again.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from concurrency_utils import atomic
from safe_utils import safe_call

logger = logging.getLogger(__name__)

ChangeFn = Callable[[str, Optional[dict]], None]

_DELETED = object()


class StoreError(Exception):
    """The store could not complete a read or write."""


class TransactionAbortedError(StoreError):
    """A transaction kept conflicting and ran out of attempts."""


class ValidationAbort(Exception):
    """Raised from a transaction body to abort with a user-facing message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class _WriteConflict(Exception):
    pass


def split_path(path: str) -> Tuple[str, str]:
    parts = (path or '').strip('/').split('/')
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise StoreError(f"Invalid document path: {path!r}")
    return parts[0], parts[1]


def doc_path(collection: str, doc_id: str) -> str:
    return f"{collection}/{doc_id}"


class Transaction:
    def __init__(self, store: 'DocumentStore') -> None:
        self._store = store
        self._read_versions: Dict[str, int] = {}
        self._staged: Dict[str, Any] = {}

    def get(self, path: str) -> Optional[dict]:
        if path in self._staged:
            staged = self._staged[path]
            return None if staged is _DELETED else copy.deepcopy(staged)
        doc, version = self._store._read_with_version(path)
        self._read_versions.setdefault(path, version)
        return doc

    def set(self, path: str, doc: dict) -> None:
        split_path(path)
        self._staged[path] = copy.deepcopy(doc)

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        current = self.get(path)
        if current is None:
            raise StoreError(f"No document at {path}")
        current.update(copy.deepcopy(fields))
        self._staged[path] = current

    def delete(self, path: str) -> None:
        split_path(path)
        self._staged[path] = _DELETED

    def add(self, collection: str, doc: dict) -> str:
        doc_id = self._store.new_id()
        self.set(doc_path(collection, doc_id), doc)
        return doc_id


class DocumentStore:
    def __init__(self, name: str = 'main', *, max_attempts: int = 5) -> None:
        self.name = name
        self.max_attempts = max(1, int(max_attempts))
        # Flip to False to simulate an unreachable backend.
        self.available = True
        self._collections: Dict[str, Dict[str, dict]] = {}
        self._versions: Dict[str, int] = {}
        self._subscribers: Dict[str, List[ChangeFn]] = {}
        self._lock_name = f"store:{name}"

    # --- basic operations -------------------------------------------------

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    def _check_available(self) -> None:
        if not self.available:
            raise StoreError("Document store is unavailable.")

    def _read_with_version(self, path: str) -> Tuple[Optional[dict], int]:
        self._check_available()
        collection, doc_id = split_path(path)
        with atomic(self._lock_name):
            doc = self._collections.get(collection, {}).get(doc_id)
            return (copy.deepcopy(doc) if doc is not None else None), self._versions.get(path, 0)

    def get(self, path: str) -> Optional[dict]:
        return self._read_with_version(path)[0]

    def version(self, path: str) -> int:
        return self._read_with_version(path)[1]

    def set(self, path: str, doc: dict) -> None:
        self._commit({path: copy.deepcopy(doc)}, {})

    def update(self, path: str, fields: Dict[str, Any]) -> None:
        def _body(tx: Transaction) -> None:
            tx.update(path, fields)
        self.run_transaction(_body)

    def delete(self, path: str) -> None:
        self._commit({path: _DELETED}, {})

    def add_with_generated_id(self, collection: str, doc: dict) -> str:
        doc_id = self.new_id()
        self.set(doc_path(collection, doc_id), doc)
        return doc_id

    def list_collection(self, collection: str) -> Dict[str, dict]:
        self._check_available()
        with atomic(self._lock_name):
            return copy.deepcopy(self._collections.get(collection, {}))

    def subscribe(self, collection: str, on_change: ChangeFn) -> Callable[[], None]:
        """Register a change listener; existing documents are delivered first."""
        self._subscribers.setdefault(collection, []).append(on_change)
        for doc_id, doc in self.list_collection(collection).items():
            safe_call(on_change, doc_id, doc)

        def _unsubscribe() -> None:
            listeners = self._subscribers.get(collection, [])
            if on_change in listeners:
                listeners.remove(on_change)
        return _unsubscribe

    # --- transactions -----------------------------------------------------

    def run_transaction(self, fn: Callable[[Transaction], Any]) -> Any:
        for attempt in range(1, self.max_attempts + 1):
            tx = Transaction(self)
            result = fn(tx)
            try:
                self._commit(tx._staged, tx._read_versions)
            except _WriteConflict as conflict:
                logger.debug(f"Transaction conflict on {conflict} (attempt {attempt}/{self.max_attempts})")
                continue
            return result
        logger.warning(f"Transaction aborted after {self.max_attempts} conflicting attempts")
        raise TransactionAbortedError("Transaction aborted after repeated write conflicts.")

    def _commit(self, staged: Dict[str, Any], read_versions: Dict[str, int]) -> None:
        self._check_available()
        changes: List[Tuple[str, str, Optional[dict]]] = []
        with atomic(self._lock_name):
            for path, seen in read_versions.items():
                if self._versions.get(path, 0) != seen:
                    raise _WriteConflict(path)
            for path, doc in staged.items():
                collection, doc_id = split_path(path)
                bucket = self._collections.setdefault(collection, {})
                if doc is _DELETED:
                    if doc_id not in bucket:
                        continue
                    bucket.pop(doc_id, None)
                    changes.append((collection, doc_id, None))
                else:
                    bucket[doc_id] = copy.deepcopy(doc)
                    changes.append((collection, doc_id, copy.deepcopy(doc)))
                self._versions[path] = self._versions.get(path, 0) + 1
        for collection, doc_id, doc in changes:
            self._notify(collection, doc_id, doc)

    def _notify(self, collection: str, doc_id: str, doc: Optional[dict]) -> None:
        for listener in list(self._subscribers.get(collection, [])):
            safe_call(listener, doc_id, copy.deepcopy(doc) if doc is not None else None)

    # --- snapshots --------------------------------------------------------

    def is_empty(self) -> bool:
        return not any(self._collections.values())

    def to_snapshot(self) -> Dict[str, Dict[str, dict]]:
        with atomic(self._lock_name):
            return copy.deepcopy(self._collections)

    def load_snapshot(self, data: Dict[str, Dict[str, dict]]) -> None:
        """Replace all contents; subscribers see every loaded document."""
        if not isinstance(data, dict):
            raise StoreError("Snapshot must be a mapping of collections.")
        staged: Dict[str, Any] = {}
        for collection, docs in self.to_snapshot().items():
            for doc_id in docs:
                staged[doc_path(collection, doc_id)] = _DELETED
        for collection, docs in data.items():
            if not isinstance(docs, dict):
                continue
            for doc_id, doc in docs.items():
                if isinstance(doc, dict):
                    staged[doc_path(collection, str(doc_id))] = doc
        self._commit(staged, {})

    def save_to_file(self, path: str) -> None:
        """Write a JSON snapshot atomically (temp file then replace)."""
        snapshot = self.to_snapshot()
        directory = os.path.dirname(os.path.abspath(path)) or '.'
        fd, tmp = tempfile.mkstemp(prefix='.store-', suffix='.json', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump({'collections': snapshot}, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except Exception:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    @classmethod
    def load_from_file(cls, path: str, **kwargs) -> 'DocumentStore':
        store = cls(**kwargs)
        if not os.path.exists(path):
            return store
        try:
            with open(path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
            store.load_snapshot(data.get('collections', {}))
        except (OSError, ValueError, StoreError) as e:
            logger.warning(f"Could not load store snapshot from {path}: {e}; starting empty")
        return store
