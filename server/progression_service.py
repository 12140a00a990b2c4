"""Experience curve and level-up resolution.

xp_for_level(n) uses an explicit override table when configured and falls back
to floor(base_xp * n ** 1.5). Level 1 always needs 0 xp and levels past the cap
are clamped to the cap.

Max MP grows by mp_per_level per level gained and the gain is added to
current MP.

check_level_up() compares level_from_xp(xp) with the stored level, so calling
it again with no new xp changes nothing. Call it after every xp-granting commit
and before the next xp change is computed.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import constants as C
import news_service
from document_store import DocumentStore
from game_config import GameConfig
from service_contract import line
from world import Attributes, Player, player_path

logger = logging.getLogger(__name__)


def xp_for_level(level: int, config: Optional[GameConfig] = None) -> int:
    config = config or GameConfig()
    if level <= 1:
        return 0
    level = min(level, config.max_level)
    override = config.level_xp_overrides.get(level)
    if override is not None:
        return override
    return int(math.floor(config.base_xp * (level ** 1.5)))


def level_from_xp(xp: int, config: Optional[GameConfig] = None) -> int:
    """Highest level whose threshold is <= xp, scanning down from the cap."""
    config = config or GameConfig()
    for lvl in range(config.max_level, 0, -1):
        if xp >= xp_for_level(lvl, config):
            return lvl
    return 1


def level_bonuses(player: Player, level: int, config: Optional[GameConfig] = None) -> Tuple[int, Attributes]:
    """(max_hp, attributes) a player should have at `level`.

    Max hp grows by hp_per_level per level over the creation value and every
    attribute gains one point per three levels.
    """
    config = config or GameConfig()
    max_hp = player.base_max_hp + (level - 1) * config.hp_per_level
    growth = (level - 1) // 3
    return max_hp, player.base_attributes.plus(growth)


def check_level_up(store: DocumentStore, player_id: str,
                   config: Optional[GameConfig] = None) -> List[dict]:
    """Apply any pending level-ups for a player; returns lines for that player."""
    config = config or GameConfig()

    def _body(tx) -> Optional[Tuple[Player, int, int, int, bool]]:
        doc = tx.get(player_path(player_id))
        if doc is None:
            return None
        player = Player.from_dict(doc, player_id)
        base_max_hp, base_attrs = derive_base_stats(player, config)
        if not _has_field(doc, 'base_max_hp', 'baseMaxHp'):
            player.base_max_hp = base_max_hp
        if not _has_field(doc, 'base_attributes', 'baseAttributes'):
            player.base_attributes = base_attrs
        new_level = min(level_from_xp(player.xp, config), config.max_level)
        if new_level <= player.level:
            return None
        old_level, old_max, old_max_mp = player.level, player.max_hp, player.max_mp
        new_max, new_attrs = level_bonuses(player, new_level, config)
        hp_gain = new_max - old_max
        new_hp = max(0, min(player.hp + max(0, hp_gain), new_max))
        new_max_mp = old_max_mp + (new_level - old_level) * config.mp_per_level
        new_mp = min(player.mp + (new_max_mp - old_max_mp), new_max_mp)
        tx.update(player_path(player_id), {
            'level': new_level,
            'max_hp': new_max,
            'hp': new_hp,
            'max_mp': new_max_mp,
            'mp': new_mp,
            'attributes': new_attrs.to_dict(),
            'base_max_hp': player.base_max_hp,
            'base_attributes': player.base_attributes.to_dict(),
        })
        old_attrs = player.attributes
        player.level, player.max_hp, player.hp, player.attributes = new_level, new_max, new_hp, new_attrs
        player.max_mp, player.mp = new_max_mp, new_mp
        return player, old_max, old_max_mp, old_level, new_attrs != old_attrs

    outcome = store.run_transaction(_body)
    if outcome is None:
        return []
    player, old_max, old_max_mp, old_level, attrs_grew = outcome
    title = C.level_name(player.level)
    logger.info(f"{player.name} levelled up {old_level} -> {player.level}")
    emits = [line(C.MSG_TYPE_SYSTEM, f"LEVEL UP! You are now level {player.level} - {title}!")]
    if player.max_hp > old_max:
        emits.append(line(C.MSG_TYPE_GAME, f"Max HP increased to {player.max_hp}! (+{player.max_hp - old_max})"))
    if player.max_mp > old_max_mp:
        emits.append(line(C.MSG_TYPE_GAME, f"Max MP increased to {player.max_mp}! (+{player.max_mp - old_max_mp})"))
    if attrs_grew:
        emits.append(line(C.MSG_TYPE_GAME, f"Your attributes grow stronger! ({_attr_summary(player.attributes)})"))
    if player.level < config.max_level:
        emits.append(line(C.MSG_TYPE_GAME, f"XP to next level: {xp_for_level(player.level + 1, config) - player.xp}"))
    news_service.post_news(store, news_service.NEWS_KIND_LEVELUP, player.name,
                           f"reached level {player.level} - {title}!")
    return emits


def _attr_summary(attrs: Attributes) -> str:
    return ', '.join(f"{k.upper()} {v}" for k, v in attrs.to_dict().items())


def _has_field(doc: dict, *keys: str) -> bool:
    return any(doc.get(k) for k in keys)


def derive_base_stats(player: Player, config: Optional[GameConfig] = None) -> Tuple[int, Attributes]:
    """Creation-time (max_hp, attributes) recovered by removing the growth of the current level.

    Documents written without base fields already carry their level growth in
    max_hp and attributes.
    """
    config = config or GameConfig()
    base_max_hp = max(1, player.max_hp - (player.level - 1) * config.hp_per_level)
    return base_max_hp, player.attributes.plus(-((player.level - 1) // 3))
