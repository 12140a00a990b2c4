from __future__ import annotations

import re
from typing import List, Optional, Tuple

import constants as C
from service_contract import line

# *action*, "speech", or any run of text containing neither delimiter
_SEGMENT_RE = re.compile(r'(\*[^*]+\*|"[^"]+"|[^"*]+)')
_GIVE_ITEM_RE = re.compile(r'\[GIVE_ITEM:([\w-]+)\]')

SEGMENT_ACTION = 'action'
SEGMENT_SPEECH = 'speech'


def narration_segments(text: str) -> List[Tuple[str, str]]:
    """Split generated NPC text into ordered (kind, text) segments.

    `*waves*` is an action, `"Hello"` is speech; anything matching neither
    delimiter (including an unbalanced quote or asterisk) is narrated as action.
    """
    if not isinstance(text, str):
        return []
    segments: List[Tuple[str, str]] = []
    for part in _SEGMENT_RE.findall(text):
        trimmed = part.strip()
        if not trimmed:
            continue
        if len(trimmed) > 1 and trimmed.startswith('*') and trimmed.endswith('*'):
            segments.append((SEGMENT_ACTION, trimmed[1:-1].strip()))
        elif len(trimmed) > 1 and trimmed.startswith('"') and trimmed.endswith('"'):
            segments.append((SEGMENT_SPEECH, trimmed))
        else:
            stray = trimmed.strip('*"').strip()
            if stray:
                segments.append((SEGMENT_ACTION, stray))
    return segments


def render_npc_reply(npc_name: str, text: str) -> List[dict]:
    """Presentation lines for an NPC reply: actions as 'action', speech as 'npc'."""
    out: List[dict] = []
    for kind, seg in narration_segments(text):
        if kind == SEGMENT_SPEECH:
            out.append(line(C.MSG_TYPE_NPC, f"{npc_name} says, {seg}"))
        else:
            out.append(line(C.MSG_TYPE_ACTION, seg))
    return out


def extract_give_marker(text: str) -> Tuple[Optional[str], str]:
    """Return (item id of the first [GIVE_ITEM:id] marker or None, text without markers)."""
    if not isinstance(text, str):
        return None, ''
    m = _GIVE_ITEM_RE.search(text)
    if not m:
        return None, text
    stripped = _GIVE_ITEM_RE.sub('', text)
    stripped = re.sub(r'[ \t]{2,}', ' ', stripped).strip()
    return m.group(1), stripped


def parse_say(text: str) -> Tuple[bool, Optional[str]]:
    """Parse 'say <message>' and the "'<message>" shorthand.

    Returns: (is_say, message or None). Surrounding quotes are removed.
    """
    if not isinstance(text, str):
        return False, None
    stripped = text.strip()
    if stripped.startswith("'"):
        msg = stripped[1:].strip()
    elif stripped.lower() == 'say':
        return True, None
    elif stripped.lower().startswith('say '):
        msg = stripped[4:].strip()
    else:
        return False, None
    if len(msg) >= 2 and msg[0] == msg[-1] and msg[0] in ('"', "'"):
        msg = msg[1:-1].strip()
    return True, (msg or None)


def render_emote(template: str, player_name: str) -> str:
    """Fill a social template such as '{player} waves.'."""
    try:
        return template.format(player=player_name)
    except (KeyError, IndexError, ValueError):
        return f"{player_name} {template}"
