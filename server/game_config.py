"""Gameplay configuration loaded from MUD_* environment variables.

Every knob has a safe default so the server and the tests run with no
environment at all. The server calls `load_dotenv()` before building the
config, so values may also live in a local .env file.

Knobs that encode a policy choice rather than a tuning value:
  - MUD_PVP_ENABLED      whether players may attack each other (default on)
  - MUD_DROP_CHANCE      probability a monster's configured item drops (1.0 = always)
  - MUD_DISCOVERY_BONUS  score/xp for first entry into a room
  - MUD_NPC_TRIGGER_ITEMS_ONLY  AI NPCs may only hand out their own trigger items (default off)
  - MUD_MP_PER_LEVEL     max MP gained per level (default 5)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

import constants as C


def _env_int(name: str, default: int) -> int:
    try:
        val = os.getenv(name)
        if val is None:
            return default
        return int(str(val).strip())
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        val = os.getenv(name)
        if val is None:
            return default
        return float(str(val).strip())
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in ('1', 'true', 'yes', 'on')


def _env_str(name: str, default: str) -> str:
    val = os.getenv(name)
    return default if val is None or not str(val).strip() else str(val).strip()


def parse_level_overrides(raw: Optional[str]) -> Dict[int, int]:
    """Parse 'level:xp,level:xp' into a dict, skipping malformed pairs."""
    out: Dict[int, int] = {}
    if not raw:
        return out
    for part in raw.split(','):
        if ':' not in part:
            continue
        lvl, xp = part.split(':', 1)
        try:
            out[int(lvl.strip())] = int(xp.strip())
        except ValueError:
            continue
    return out


def _safety_level(raw: str) -> str:
    level = raw.strip().upper()
    return level if level in C.SAFETY_LEVELS else C.DEFAULT_SAFETY_LEVEL


DEFAULT_EMOTES: Dict[str, str] = {
    'wave': '{player} waves.',
    'dance': '{player} dances around joyfully.',
    'laugh': '{player} laughs out loud.',
    'smile': '{player} smiles warmly.',
    'nod': '{player} nods.',
    'bow': '{player} bows gracefully.',
    'clap': '{player} claps enthusiastically.',
    'cheer': '{player} cheers!',
    'cry': '{player} bursts into tears.',
    'sigh': '{player} sighs deeply.',
    'shrug': '{player} shrugs.',
    'grin': '{player} grins mischievously.',
    'frown': '{player} frowns.',
    'wink': '{player} winks.',
    'yawn': '{player} yawns.',
    'stretch': '{player} stretches.',
    'jump': '{player} jumps up and down.',
    'sit': '{player} sits down.',
    'stand': '{player} stands up.',
    'kneel': '{player} kneels.',
    'salute': '{player} salutes.',
    'think': '{player} looks thoughtful.',
    'ponder': '{player} ponders the situation.',
    'scratch': '{player} scratches their head.',
}


@dataclass
class GameConfig:
    home_room_id: str = C.DEFAULT_HOME_ROOM
    discovery_bonus: int = C.DEFAULT_DISCOVERY_BONUS
    death_gold_penalty: float = C.DEFAULT_DEATH_GOLD_PENALTY
    pvp_enabled: bool = True
    drop_chance: float = 1.0
    max_level: int = C.DEFAULT_MAX_LEVEL
    base_xp: int = C.DEFAULT_BASE_XP
    hp_per_level: int = C.DEFAULT_HP_PER_LEVEL
    mp_per_level: int = C.DEFAULT_MP_PER_LEVEL
    level_xp_overrides: Dict[int, int] = field(default_factory=dict)
    sell_rate: float = C.DEFAULT_SELL_RATE
    history_limit: int = C.DEFAULT_HISTORY_LIMIT
    tx_max_attempts: int = 5
    max_message_length: int = C.DEFAULT_MAX_MESSAGE_LENGTH
    safety_level: str = C.DEFAULT_SAFETY_LEVEL
    npc_trigger_items_only: bool = False
    emote_templates: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_EMOTES))

    @classmethod
    def from_env(cls) -> 'GameConfig':
        return cls(
            home_room_id=_env_str('MUD_HOME_ROOM', C.DEFAULT_HOME_ROOM),
            discovery_bonus=_env_int('MUD_DISCOVERY_BONUS', C.DEFAULT_DISCOVERY_BONUS),
            death_gold_penalty=min(1.0, max(0.0, _env_float('MUD_DEATH_GOLD_PENALTY', C.DEFAULT_DEATH_GOLD_PENALTY))),
            pvp_enabled=_env_bool('MUD_PVP_ENABLED', True),
            drop_chance=min(1.0, max(0.0, _env_float('MUD_DROP_CHANCE', 1.0))),
            max_level=max(1, _env_int('MUD_MAX_LEVEL', C.DEFAULT_MAX_LEVEL)),
            base_xp=max(1, _env_int('MUD_BASE_XP', C.DEFAULT_BASE_XP)),
            hp_per_level=_env_int('MUD_HP_PER_LEVEL', C.DEFAULT_HP_PER_LEVEL),
            mp_per_level=max(0, _env_int('MUD_MP_PER_LEVEL', C.DEFAULT_MP_PER_LEVEL)),
            level_xp_overrides=parse_level_overrides(os.getenv('MUD_LEVEL_XP')),
            sell_rate=min(1.0, max(0.0, _env_float('MUD_SELL_RATE', C.DEFAULT_SELL_RATE))),
            history_limit=max(2, _env_int('MUD_HISTORY_LIMIT', C.DEFAULT_HISTORY_LIMIT)),
            tx_max_attempts=max(1, _env_int('MUD_TX_MAX_ATTEMPTS', 5)),
            max_message_length=_env_int('MUD_MAX_MESSAGE_LEN', C.DEFAULT_MAX_MESSAGE_LENGTH),
            safety_level=_safety_level(_env_str('MUD_AI_SAFETY', C.DEFAULT_SAFETY_LEVEL)),
            npc_trigger_items_only=_env_bool('MUD_NPC_TRIGGER_ITEMS_ONLY', False),
        )
