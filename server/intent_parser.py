"""Raw player text -> structured Intent.

Common phrasings are recognised locally with a few regexes (directions, buy /
sell / give, talk / ask, attack verbs, cast, single-word commands). Anything else is
sent to the language model with a JSON-only prompt. A missing model, an
exception, unparseable JSON or an action outside the vocabulary all produce
Intent(action=UNKNOWN); the dispatcher decides what unknown means.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import constants as C
from command_registry import Action
from combat_service import ATTACK_VERBS
from dialogue_utils import parse_say

logger = logging.getLogger(__name__)

# Names the model (or older clients) may use for an action.
ACTION_ALIASES: Dict[str, Action] = {
    'take': Action.GET,
    'grab': Action.GET,
    'pick': Action.GET,
    'inv': Action.INVENTORY,
    'i': Action.INVENTORY,
    'l': Action.LOOK,
    'x': Action.EXAMINE,
    'inspect': Action.EXAMINE,
    'purchase': Action.BUY,
    'vendor': Action.SELL,
    'fight': Action.ATTACK,
    'kill': Action.ATTACK,
    'ask': Action.ASK_NPC,
    'reply_npc': Action.REPLY,
    'gesture': Action.EMOTE,
    'quit': Action.LOGOUT,
    'score_board': Action.SCORE,
    'spell': Action.SPELLS,
    'magic': Action.SPELLS,
    'study': Action.LEARN,
}

_ARTICLES = ('the ', 'a ', 'an ', 'some ', 'my ')

_SELL_RE = re.compile(r'^(?:sell|vendor)\s+(.+?)\s+(?:to|from)\s+(.+)$')
_BUY_FROM_RE = re.compile(r'^(?:buy|purchase)\s+(.+?)\s+(?:from|at)\s+(.+)$')
_GIVE_RE = re.compile(r'^(?:give|hand)\s+(.+?)\s+to\s+(.+)$')
_ASK_RE = re.compile(r'^ask\s+(.+?)\s+about\s+(.+)$')
_TALK_RE = re.compile(r'^(?:talk|speak|chat)(?:\s+(?:to|with))?\s+(.+)$')
_CAST_RE = re.compile(r'^cast\s+(.+?)(?:\s+(?:at|on)\s+(.+))?$')
_GO_RE = re.compile(r'^(?:go|walk|move|head|run|climb)\s+(?:to\s+(?:the\s+)?)?(\w+)$')
_LOOK_AT_RE = re.compile(r'^(?:look|l)\s+(?:at\s+)?(.+)$')
_PICK_UP_RE = re.compile(r'^pick\s+up\s+(.+)$')
_PUT_DOWN_RE = re.compile(r'^put\s+down\s+(.+)$')

_SIMPLE_COMMANDS: Dict[str, Action] = {
    'look': Action.LOOK,
    'l': Action.LOOK,
    'inventory': Action.INVENTORY,
    'inv': Action.INVENTORY,
    'i': Action.INVENTORY,
    'who': Action.WHO,
    'score': Action.SCORE,
    'stats': Action.STATS,
    'help': Action.HELP,
    '?': Action.HELP,
    'news': Action.NEWS,
    'spells': Action.SPELLS,
    'spell': Action.SPELLS,
    'magic': Action.SPELLS,
    'logout': Action.LOGOUT,
    'quit': Action.LOGOUT,
}

_TARGET_COMMANDS: Dict[str, Action] = {
    'get': Action.GET,
    'take': Action.GET,
    'grab': Action.GET,
    'drop': Action.DROP,
    'examine': Action.EXAMINE,
    'inspect': Action.EXAMINE,
    'x': Action.EXAMINE,
    'use': Action.USE,
    'drink': Action.DRINK,
    'eat': Action.EAT,
    'consume': Action.CONSUME,
    'read': Action.READ,
    'buy': Action.BUY,
    'purchase': Action.BUY,
    'sell': Action.SELL,
    'learn': Action.LEARN,
    'study': Action.LEARN,
}

_GENERIC_ATTACK_WORDS = ('attack', 'fight', 'kill')


def _strip_article(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    t = text.strip()
    low = t.lower()
    for art in _ARTICLES:
        if low.startswith(art):
            return t[len(art):].strip()
    return t


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class Intent:
    action: Action = Action.UNKNOWN
    target: Optional[str] = None
    npc_target: Optional[str] = None
    topic: Optional[str] = None
    verb: Optional[str] = None
    raw: str = ''

    @staticmethod
    def unknown(raw: str = '') -> "Intent":
        return Intent(action=Action.UNKNOWN, raw=raw)

    @staticmethod
    def from_dict(data: Any, raw: str = '') -> "Intent":
        """Normalise a parser result; bare direction actions become go <direction>."""
        if not isinstance(data, dict):
            return Intent.unknown(raw)
        name = str(data.get('action') or '').strip().lower()
        target = _clean(data.get('target'))
        npc_target = _clean(data.get('npc_target', data.get('npcTarget')))
        topic = _clean(data.get('topic'))
        verb = _clean(data.get('verb'))
        if name in C.DIRECTION_SHORTCUTS or name in C.DIRECTIONS:
            return Intent(action=Action.GO, target=C.DIRECTION_SHORTCUTS.get(name, name), raw=raw)
        try:
            action = Action(name)
        except ValueError:
            action = ACTION_ALIASES.get(name, Action.UNKNOWN)
        if action == Action.GO and target:
            target = C.DIRECTION_SHORTCUTS.get(target.lower(), target.lower())
        if action == Action.LOOK and target:
            action = Action.EXAMINE
        return Intent(action=action, target=_strip_article(target), npc_target=_strip_article(npc_target),
                      topic=topic, verb=verb.lower() if verb else None, raw=raw)


def parse_local(raw: str) -> Optional[Intent]:
    """Rule-based parse of common commands; None when no rule applies."""
    text = (raw or '').strip()
    if not text:
        return None
    low = text.lower()

    if low in C.DIRECTION_SHORTCUTS or low in C.DIRECTIONS:
        return Intent(action=Action.GO, target=C.DIRECTION_SHORTCUTS.get(low, low), raw=raw)
    if low in _SIMPLE_COMMANDS:
        return Intent(action=_SIMPLE_COMMANDS[low], raw=raw)

    is_say, said = parse_say(text)
    if is_say:
        return Intent(action=Action.SAY, topic=said, raw=raw)
    word, _, rest_raw = text.partition(' ')
    word_low = word.lower()
    rest_raw = rest_raw.strip()
    if word_low == 'emote':
        return Intent(action=Action.EMOTE, topic=rest_raw or None, raw=raw)
    if word_low == 'reply':
        return Intent(action=Action.REPLY, topic=rest_raw or None, raw=raw)

    m = _GO_RE.match(low)
    if m and (m.group(1) in C.DIRECTIONS or m.group(1) in C.DIRECTION_SHORTCUTS):
        return Intent(action=Action.GO, target=C.DIRECTION_SHORTCUTS.get(m.group(1), m.group(1)), raw=raw)

    m = _SELL_RE.match(low)
    if m:
        return Intent(action=Action.SELL, target=_strip_article(m.group(1)), npc_target=_strip_article(m.group(2)), raw=raw)
    m = _BUY_FROM_RE.match(low)
    if m:
        return Intent(action=Action.BUY, target=_strip_article(m.group(1)), npc_target=_strip_article(m.group(2)), raw=raw)
    m = _GIVE_RE.match(low)
    if m:
        return Intent(action=Action.GIVE, target=_strip_article(m.group(1)), npc_target=_strip_article(m.group(2)), raw=raw)
    m = _ASK_RE.match(low)
    if m:
        return Intent(action=Action.ASK_NPC, npc_target=_strip_article(m.group(1)), topic=m.group(2).strip(), raw=raw)
    m = _TALK_RE.match(low)
    if m:
        return Intent(action=Action.TALK, npc_target=_strip_article(m.group(1)), raw=raw)
    m = _CAST_RE.match(low)
    if m:
        return Intent(action=Action.CAST, target=_strip_article(m.group(1)), npc_target=_strip_article(m.group(2)), raw=raw)
    m = _PICK_UP_RE.match(low)
    if m:
        return Intent(action=Action.GET, target=_strip_article(m.group(1)), raw=raw)
    m = _PUT_DOWN_RE.match(low)
    if m:
        return Intent(action=Action.DROP, target=_strip_article(m.group(1)), raw=raw)
    m = _LOOK_AT_RE.match(low)
    if m:
        return Intent(action=Action.EXAMINE, target=_strip_article(m.group(1)), raw=raw)

    if rest_raw and (word_low in ATTACK_VERBS or word_low in _GENERIC_ATTACK_WORDS):
        verb = word_low if word_low in ATTACK_VERBS and word_low != 'attack' else None
        return Intent(action=Action.ATTACK, target=_strip_article(rest_raw.lower()), verb=verb, raw=raw)
    if rest_raw and word_low in _TARGET_COMMANDS:
        return Intent(action=_TARGET_COMMANDS[word_low], target=_strip_article(rest_raw.lower()), raw=raw)
    return None


_VOCABULARY = ', '.join(f'"{a.value}"' for a in Action)

PARSER_PROMPT = """You are a text adventure game command parser. Parse this command into JSON format.

Command: "{command}"

Rules:
- The action must be one of: {vocabulary}
- Fields: "action" (required), "target" (item, direction or creature), "npc_target" (a person),
  "topic" (what is asked about or said), "verb" (the attack style, e.g. kick, slash, stab)
- "walk north" -> {{"action": "go", "target": "north"}}
- "pick up the sword" -> {{"action": "get", "target": "sword"}}
- "what am I carrying" -> {{"action": "inventory"}}
- "check out the painting" -> {{"action": "examine", "target": "painting"}}
- "speak with the merchant" -> {{"action": "talk", "npc_target": "merchant"}}
- "what does the guard know about dragons" -> {{"action": "ask_npc", "npc_target": "guard", "topic": "dragons"}}
- "can I buy a potion from the alchemist" -> {{"action": "buy", "target": "potion", "npc_target": "alchemist"}}
- "kick goblin" -> {{"action": "attack", "target": "goblin", "verb": "kick"}}
- "I want to fight the dragon" -> {{"action": "attack", "target": "dragon"}}
- "drink the water" -> {{"action": "drink", "target": "water"}}
- "what does the journal say" -> {{"action": "read", "target": "journal"}}
- "who's online" -> {{"action": "who"}}
- "cast fireball at the goblin" -> {{"action": "cast", "target": "fireball", "npc_target": "goblin"}}
- "study the mend spell" -> {{"action": "learn", "target": "mend"}}
- "what spells do I know" -> {{"action": "spells"}}
- If the command does not fit any action, return {{"action": "unknown"}}.

Respond with the JSON object only."""


def clean_json_text(text: str) -> str:
    """Strip markdown code fences the model sometimes wraps JSON in."""
    t = (text or '').strip()
    if t.startswith('```'):
        t = re.sub(r'^```(?:json)?\s*', '', t)
        t = re.sub(r'\s*```$', '', t)
    return t.strip()


class IntentParser:
    """Local rules first, then the language model."""

    def __init__(self, text_generator: Any = None) -> None:
        self.text_generator = text_generator

    def parse(self, raw: str) -> Intent:
        local = parse_local(raw)
        if local is not None:
            return local
        if not (raw or '').strip():
            return Intent.unknown(raw or '')
        return self._parse_with_model(raw)

    def _parse_with_model(self, raw: str) -> Intent:
        if self.text_generator is None or not getattr(self.text_generator, 'available', False):
            return Intent.unknown(raw)
        prompt = PARSER_PROMPT.format(command=raw.replace('"', "'"), vocabulary=_VOCABULARY)
        text = self.text_generator.generate_json_text(prompt)
        if not text:
            return Intent.unknown(raw)
        try:
            data = json.loads(clean_json_text(text))
        except ValueError:
            logger.warning(f"Intent parser returned non-JSON for {raw!r}")
            return Intent.unknown(raw)
        return Intent.from_dict(data, raw=raw)
