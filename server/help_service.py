"""Help Service.

Generates the in-game `help` listing and the console quick reference printed
when the server starts.
"""

from __future__ import annotations

from typing import List, Tuple

import constants as C
from service_contract import ServiceReturn, line, success

# Fixed column width for aligned output
CMD_COL_MAX = 28

PLAYER_COMMANDS: List[Tuple[str, str]] = [
    ("look | l", "describe your current room"),
    ("go <direction> | n/s/e/w/u/d", "walk through an exit"),
    ("get <item> | drop <item>", "pick up or put down an item"),
    ("inventory | i", "list what you carry"),
    ("examine <target>", "look closely at an NPC, item or detail"),
    ("buy <item> from <npc>", "purchase from a merchant"),
    ("sell <item> [to <npc>]", "sell to a merchant who stocks it"),
    ("give <item> to <player>", "hand an item to another adventurer"),
    ("use | drink | eat <item>", "consume an item"),
    ("read <item>", "read a scroll, sign or book"),
    ("attack <target> [verb]", "fight (kick, slash, stab...)"),
    ("cast <spell> [at <target>]", "cast a spell you know"),
    ("spells | learn <spell>", "list or learn spells"),
    ("talk to <npc>", "start a conversation"),
    ("ask <npc> about <topic>", "ask about something specific"),
    ("say <message>", "speak to the room (or reply to an NPC)"),
    ("emote <text> | wave, bow...", "social actions"),
    ("who", "list adventurers online"),
    ("score | stats", "your progress and attributes"),
    ("news", "recent deeds across the realm"),
    ("logout", "leave the game"),
]


def _fmt_cmd(s: str, width: int = CMD_COL_MAX) -> str:
    """Return s padded/truncated to exactly width using ASCII ellipsis if needed."""
    if len(s) <= width:
        return s.ljust(width)
    if width <= 3:
        return s[:width]
    return s[: width - 3] + "..."


def _fmt_items(items: List[Tuple[str, str]], indent: int = 0) -> List[str]:
    """Format a list of (command, description) tuples with alignment."""
    prefix = " " * indent
    return [prefix + _fmt_cmd(a) + "  - " + b for a, b in items]


def print_command_help() -> None:
    """Print a quick reference of available in-game commands to the console."""
    lines: List[str] = ["\n=== Server Command Quick Reference ==="]
    lines += _fmt_items(PLAYER_COMMANDS, indent=2)
    lines.append("")
    for text in lines:
        print(text)


def show_help() -> ServiceReturn:
    emits = [line(C.MSG_TYPE_SYSTEM, '--- Help ---')]
    emits += [line(C.MSG_TYPE_GAME, text.rstrip()) for text in _fmt_items(PLAYER_COMMANDS)]
    emits.append(line(C.MSG_TYPE_GAME, "You can also just type what you want to do in plain words."))
    return success(emits)
