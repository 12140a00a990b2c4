"""Per-command context handed to every handler.

`SessionState` holds what belongs to one connected player and is never
persisted: which NPC they are talking to and the recent conversation window.
`CommandContext` bundles that session with the shared collaborators (store,
world cache, config, text generator, broadcaster) so handlers take one argument
and tests can build a context without a socket server.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

import constants as C
from game_config import GameConfig
from world import Player, player_path


class BroadcastFn(Protocol):
    def __call__(self, room_id: str, payload: Dict[str, Any], exclude_sid: str | None = None) -> None: ...


EmitFn = Callable[[str, Dict[str, Any]], None]


@dataclass(slots=True)
class SessionState:
    player_id: str
    sid: Optional[str] = None
    last_npc_id: Optional[str] = None
    history: List[Dict[str, str]] = field(default_factory=list)
    history_limit: int = C.DEFAULT_HISTORY_LIMIT
    logout_requested: bool = False

    def start_conversation(self, npc_id: str) -> None:
        self.last_npc_id = npc_id
        self.history = []

    def clear_conversation(self) -> None:
        self.last_npc_id = None
        self.history = []

    def remember(self, speaker: str, text: str) -> None:
        self.history.append({'speaker': speaker, 'text': text})
        if len(self.history) > self.history_limit:
            del self.history[: len(self.history) - self.history_limit]


@dataclass(slots=True)
class CommandContext:
    store: Any                  # DocumentStore
    world: Any                  # World read cache
    session: SessionState
    broadcast_to_room: BroadcastFn
    config: GameConfig = field(default_factory=GameConfig)
    text_generator: Any = None  # ai_utils.TextGenerator
    intent_parser: Any = None   # intent_parser.IntentParser
    rng: Any = field(default_factory=random.Random)
    message_out: str = C.MESSAGE_OUT
    state_path: str = ''
    clock: Callable[[], float] = time.time
    disconnect: Optional[Callable[[], None]] = None
    send_to_player: Optional[Callable[[str, Dict[str, Any]], None]] = None
    online_player_ids: Optional[Callable[[], List[str]]] = None

    @property
    def sid(self) -> Optional[str]:
        return self.session.sid

    @property
    def player_id(self) -> str:
        return self.session.player_id

    def load_player(self) -> Optional[Player]:
        """Authoritative read of the acting player from the store."""
        doc = self.store.get(player_path(self.session.player_id))
        return Player.from_dict(doc, self.session.player_id) if doc is not None else None

    def now(self) -> float:
        return self.clock()
