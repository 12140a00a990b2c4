"""Pytest shared fixtures.

Every test gets a fresh seeded DocumentStore with a World cache bound to it,
and a CommandContext for a player called Ann standing in the Nexus. Dice are
driven by FixedRandom so damage and drops are predictable.

Environment defaults keep the AI off and the debounced saver quiet; tests that
want a model build a TextGenerator around mock_ai.MockAIModel.
"""

from __future__ import annotations

import os
import random
import sys
from typing import List

import pytest

sys.path.append(os.path.dirname(__file__))

import constants as C
from command_context import CommandContext, SessionState
from document_store import DocumentStore
from game_config import GameConfig
from safe_utils import reset_seen_exceptions
from world import Attributes, Player, World, player_path
from world_seed import seed_default_world


class FixedRandom(random.Random):
    """Deterministic stand-in for random.Random.

    randint() always returns the low end plus `offset` (clamped to the range),
    random() returns `value`, choice() returns the first element.
    """

    def __init__(self, offset: int = 0, value: float = 0.0):
        super().__init__(0)
        self.offset = offset
        self.value = value

    def randint(self, a, b):
        return min(b, a + self.offset)

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]


class DummyBroadcaster:
    def __init__(self):
        self.messages = []

    def __call__(self, room_id, payload, exclude_sid=None):
        self.messages.append((room_id, payload, exclude_sid))

    def contents(self, room_id=None) -> List[str]:
        return [p['content'] for r, p, _ in self.messages if room_id is None or r == room_id]


class DummyEmitter:
    def __init__(self):
        self.messages = []

    def __call__(self, ev, payload):
        self.messages.append((ev, payload))

    def contents(self) -> List[str]:
        return [p['content'] for _ev, p in self.messages]


class DummyDirect:
    """Records ctx.send_to_player calls."""

    def __init__(self):
        self.messages = []

    def __call__(self, player_id, payload):
        self.messages.append((player_id, payload))


def contents(emits) -> List[str]:
    return [p['content'] for p in emits]


@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    monkeypatch.setenv('TEST_MODE', '1')
    monkeypatch.setenv('MUD_AI_DISABLED', '1')
    monkeypatch.setenv('MUD_SAVE_DEBOUNCE_MS', '10')
    monkeypatch.delenv('GEMINI_API_KEY', raising=False)
    monkeypatch.delenv('GOOGLE_API_KEY', raising=False)
    reset_seen_exceptions()
    yield


@pytest.fixture
def store():
    s = DocumentStore()
    seed_default_world(s)
    return s


@pytest.fixture
def world(store):
    w = World(store)
    yield w
    w.close()


@pytest.fixture
def make_player(store):
    """Write a player document and return the Player."""
    def _make(player_id='ann', name='Ann', room_id=C.DEFAULT_HOME_ROOM, strength=14, **fields):
        attrs = Attributes(strength=strength)
        player = Player(id=player_id, name=name, room_id=room_id, attributes=attrs,
                        base_attributes=attrs, visited_rooms=[room_id], **fields)
        store.set(player_path(player_id), player.to_dict())
        return player
    return _make


@pytest.fixture
def make_ctx(store, world):
    def _make(player_id='ann', rng=None, config=None, **kwargs):
        return CommandContext(
            store=store,
            world=world,
            session=SessionState(player_id=player_id, sid=f"sid-{player_id}"),
            broadcast_to_room=kwargs.pop('broadcast_to_room', DummyBroadcaster()),
            config=config or GameConfig(),
            rng=rng or FixedRandom(),
            clock=kwargs.pop('clock', lambda: 1000.0),
            **kwargs,
        )
    return _make


@pytest.fixture
def ctx(make_player, make_ctx):
    make_player()
    return make_ctx()
