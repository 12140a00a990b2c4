"""Action registry: one handler per Action.

Every structured intent names an Action. Handlers are registered with the
`registry.command(...)` decorator and looked up by enum member, so a typo in
an action name fails at import time rather than at play time.
`missing_actions()` lists actions with no handler; message_handler checks it
once all handlers are registered.

Handler signature:
    def handler(ctx: CommandContext, intent: Intent) -> ServiceReturn
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional


class Action(str, Enum):
    GO = "go"
    LOOK = "look"
    EXAMINE = "examine"
    GET = "get"
    DROP = "drop"
    INVENTORY = "inventory"
    BUY = "buy"
    SELL = "sell"
    GIVE = "give"
    USE = "use"
    DRINK = "drink"
    EAT = "eat"
    CONSUME = "consume"
    READ = "read"
    ATTACK = "attack"
    CAST = "cast"
    LEARN = "learn"
    SPELLS = "spells"
    TALK = "talk"
    ASK_NPC = "ask_npc"
    REPLY = "reply"
    SAY = "say"
    EMOTE = "emote"
    WHO = "who"
    SCORE = "score"
    STATS = "stats"
    NEWS = "news"
    HELP = "help"
    LOGOUT = "logout"
    UNKNOWN = "unknown"


# Actions that keep an NPC conversation going; anything else ends it.
CONVERSATION_ACTIONS = frozenset({Action.TALK, Action.ASK_NPC, Action.REPLY, Action.UNKNOWN})


@dataclass
class CommandMetadata:
    """Complete metadata for a registered action."""
    action: Action
    description: str
    handler: Callable


class CommandRegistry:
    """Central registry for all MUD actions."""

    def __init__(self):
        self._commands: Dict[Action, CommandMetadata] = {}

    def register_command(self, metadata: CommandMetadata) -> None:
        if metadata.action in self._commands:
            raise ValueError(f"Action '{metadata.action.value}' already has a handler")
        self._commands[metadata.action] = metadata

    def command(self, *actions: Action, description: str = ""):
        """Decorator registering one handler for one or more actions."""
        def decorator(handler_func):
            for action in actions:
                self.register_command(CommandMetadata(
                    action=action,
                    description=description,
                    handler=handler_func,
                ))
            return handler_func
        return decorator

    def handler_for(self, action: Action) -> Optional[Callable]:
        meta = self._commands.get(action)
        return meta.handler if meta else None

    def missing_actions(self) -> List[Action]:
        return [a for a in Action if a not in self._commands]


# Global registry instance
registry = CommandRegistry()
