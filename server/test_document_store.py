import os
import sys

import pytest

sys.path.append(os.path.dirname(__file__))

from document_store import (
    DocumentStore, StoreError, TransactionAbortedError, ValidationAbort, doc_path, split_path,
)


def test_set_get_returns_copies():
    s = DocumentStore()
    s.set('players/p1', {'money': 5, 'inventory': []})
    doc = s.get('players/p1')
    doc['inventory'].append('torch')
    assert s.get('players/p1') == {'money': 5, 'inventory': []}


def test_update_merges_and_requires_existing_document():
    s = DocumentStore()
    s.set('players/p1', {'money': 5, 'hp': 10})
    s.update('players/p1', {'money': 7})
    assert s.get('players/p1') == {'money': 7, 'hp': 10}
    with pytest.raises(StoreError):
        s.update('players/missing', {'money': 1})


def test_bad_paths_rejected():
    with pytest.raises(StoreError):
        split_path('players')
    with pytest.raises(StoreError):
        split_path('a/b/c')
    assert doc_path('rooms', 'start') == 'rooms/start'


def test_transaction_commits_all_writes_together():
    s = DocumentStore()
    s.set('players/a', {'money': 10})
    s.set('players/b', {'money': 0})

    def _body(tx):
        a = tx.get('players/a')
        b = tx.get('players/b')
        tx.update('players/a', {'money': a['money'] - 4})
        tx.update('players/b', {'money': b['money'] + 4})
        return 'ok'

    assert s.run_transaction(_body) == 'ok'
    assert s.get('players/a')['money'] == 6
    assert s.get('players/b')['money'] == 4


def test_transaction_retries_on_conflict():
    s = DocumentStore()
    s.set('counters/c', {'n': 0})
    attempts = []

    def _body(tx):
        doc = tx.get('counters/c')
        if not attempts:
            # A concurrent writer sneaks in between read and commit.
            s.set('counters/c', {'n': 100})
        attempts.append(doc['n'])
        tx.update('counters/c', {'n': doc['n'] + 1})

    s.run_transaction(_body)
    assert attempts == [0, 100]
    assert s.get('counters/c')['n'] == 101


def test_transaction_gives_up_after_max_attempts():
    s = DocumentStore(max_attempts=3)
    s.set('counters/c', {'n': 0})
    calls = []

    def _body(tx):
        doc = tx.get('counters/c')
        calls.append(1)
        s.set('counters/c', {'n': doc['n'] + 10})
        tx.update('counters/c', {'n': doc['n'] + 1})

    with pytest.raises(TransactionAbortedError):
        s.run_transaction(_body)
    assert len(calls) == 3


def test_validation_abort_leaves_store_untouched():
    s = DocumentStore()
    s.set('players/a', {'money': 3})

    def _body(tx):
        tx.update('players/a', {'money': 0})
        raise ValidationAbort("You can't afford that.")

    with pytest.raises(ValidationAbort) as exc:
        s.run_transaction(_body)
    assert exc.value.message == "You can't afford that."
    assert s.get('players/a')['money'] == 3


def test_unavailable_store_raises():
    s = DocumentStore()
    s.available = False
    with pytest.raises(StoreError):
        s.get('players/a')
    with pytest.raises(StoreError):
        s.set('players/a', {})


def test_subscribers_see_existing_docs_then_changes():
    s = DocumentStore()
    s.set('rooms/r1', {'name': 'One'})
    seen = []
    unsubscribe = s.subscribe('rooms', lambda doc_id, doc: seen.append((doc_id, doc)))
    s.set('rooms/r2', {'name': 'Two'})
    s.delete('rooms/r1')
    unsubscribe()
    s.set('rooms/r3', {'name': 'Three'})
    assert seen == [('r1', {'name': 'One'}), ('r2', {'name': 'Two'}), ('r1', None)]


def test_snapshot_round_trip(tmp_path):
    path = str(tmp_path / 'state.json')
    s = DocumentStore()
    s.set('rooms/start', {'name': 'Start'})
    s.add_with_generated_id('news', {'text': 'hello'})
    s.save_to_file(path)

    loaded = DocumentStore.load_from_file(path)
    assert loaded.to_snapshot() == s.to_snapshot()


def test_load_from_missing_or_corrupt_file_starts_empty(tmp_path):
    assert DocumentStore.load_from_file(str(tmp_path / 'nope.json')).is_empty()
    bad = tmp_path / 'bad.json'
    bad.write_text('{not json', encoding='utf-8')
    assert DocumentStore.load_from_file(str(bad)).is_empty()
