"""Combat service: one attack round per command.

Service contract: functions return (handled: bool, err: str|None, emits: List[dict], broadcasts: List[Tuple[str, dict]])

Round rules:
- Damage = base(str) + 1d4 + best carried weapon damage, where
  base(str) = 1 + max(0, (str - 10) // 2). A str 14 fighter with no weapon deals 4-7.
- Monsters fight back as if their strength were 10 + max_atk, never below min_atk.
- The attacker, the defender and (for monsters) the room are re-read and written in a
  single store transaction. A monster at hp <= 0 is deleted in the same commit that pays
  its xp/gold/drop and stamps the room's spawn slot, so no one can hit a corpse or kill a
  monster without being paid.
- A player who drops to 0 hp respawns in the home room at full hp and mp, losing a fraction
  of their gold (config.death_gold_penalty).
- Player vs player is allowed only when config.pvp_enabled is set.
- Level-ups are checked after the commit; that check is idempotent.

Narration verbs ("kick", "slash", ...) only change the wording, never the numbers.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import constants as C
import news_service
import progression_service
from command_context import CommandContext
from dice_utils import roll
from document_store import ValidationAbort
from safe_utils import safe_call
from service_contract import ServiceReturn, error, line, success
from world import (
    InventoryItem, ItemTemplate, MonsterInstance, MonsterTemplate, Player, Room,
    monster_path, player_path, room_path,
)

logger = logging.getLogger(__name__)

# verb -> (second person, third person)
ATTACK_VERBS = {
    'hit': ('hit', 'hits'),
    'attack': ('attack', 'attacks'),
    'strike': ('strike', 'strikes'),
    'swing': ('swing', 'swings'),
    'slash': ('slash', 'slashes'),
    'stab': ('stab', 'stabs'),
    'kick': ('kick', 'kicks'),
    'punch': ('punch', 'punches'),
    'bite': ('bite', 'bites'),
    'headbutt': ('headbutt', 'headbutts'),
    'claw': ('claw', 'claws'),
}
DEFAULT_VERB = 'hit'

# Verbs that use the body, not the weapon, so never get a weapon phrase.
UNARMED_VERBS = {'kick', 'punch', 'bite', 'headbutt', 'claw'}

COUNTER_PHRASES = ['strikes back', 'retaliates', 'attacks', 'lashes out', 'counter-attacks']


def strength_base(strength: int) -> int:
    return 1 + max(0, (int(strength) - 10) // 2)


def roll_damage(strength: int, weapon_damage: int, rng) -> int:
    return strength_base(strength) + roll('1d4', rng).total + max(0, int(weapon_damage))


def monster_damage(tpl: Optional[MonsterTemplate], rng) -> int:
    if tpl is None:
        return roll_damage(10, 0, rng)
    return max(tpl.min_atk, roll_damage(10 + tpl.max_atk, 0, rng))


@dataclass
class CombatRound:
    """What one committed round did; built inside the transaction body."""
    attacker: Player
    defender_name: str
    damage: int
    defender_hp: int = 0
    defender_max_hp: int = 0
    defender_died: bool = False
    counter_damage: int = 0
    attacker_died: bool = False
    xp_gain: int = 0
    gold_gain: int = 0
    gold_lost: int = 0
    dropped: Optional[ItemTemplate] = None
    newsworthy: bool = False
    defender_id: Optional[str] = None
    defender_gold_lost: int = 0
    weapon: Optional[ItemTemplate] = None


def _respawn(player: Player, home_room_id: str, penalty: float) -> Tuple[dict, int]:
    """Field updates for a defeated player and the gold they lose."""
    kept = int(math.floor(player.money * (1.0 - penalty)))
    lost = player.money - kept
    player.room_id = home_room_id
    player.hp = player.max_hp
    player.mp = player.max_mp
    player.money = kept
    return {'room_id': home_room_id, 'hp': player.max_hp, 'mp': player.max_mp, 'money': kept}, lost


def _verb_forms(verb: Optional[str]) -> Tuple[str, str, str]:
    key = (verb or '').strip().lower()
    if key not in ATTACK_VERBS:
        key = DEFAULT_VERB
    you, they = ATTACK_VERBS[key]
    return key, you, they


def _weapon_phrase(ctx: CommandContext, verb_key: str, weapon: Optional[ItemTemplate], possessive: str) -> str:
    if weapon is None or verb_key in UNARMED_VERBS:
        return ''
    if ctx.rng.random() < 0.5:
        return f" with {possessive} {weapon.name}"
    return ''


def _home_name(ctx: CommandContext) -> str:
    home = ctx.world.room(ctx.config.home_room_id)
    return home.name if home else 'the Nexus'


def attack(ctx: CommandContext, target: Optional[str], verb: Optional[str] = None) -> ServiceReturn:
    """Resolve `attack <target> [verb]` for the acting player."""
    token = (target or '').strip()
    if not token:
        return error("Attack who? Try 'attack [name]'")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return error(C.ERROR_NOWHERE)

    monster = ctx.world.find_monster_in_room(room.id, token)
    if monster is not None:
        if monster.hp <= 0:
            return error(f"The {monster.name} is already dead.")
        return _attack_monster(ctx, player, room, monster, verb)

    victim = ctx.world.find_player_in_room(room.id, token, exclude_id=player.id)
    if victim is not None:
        if not ctx.config.pvp_enabled:
            return error("You cannot attack other adventurers here.")
        if victim.hp <= 0:
            return error(f"{victim.name} is already defeated.")
        return _attack_player(ctx, player, room, victim, verb)

    if ctx.world.find_npc_in_room(room, token) is not None:
        return error("They do not want to fight you.")
    return error(f'There\'s nothing here by the name "{token}" to attack.')


# --- monsters -------------------------------------------------------------

def slay_monster(ctx: CommandContext, tx, killer: Player, monster: MonsterInstance,
                 tpl: Optional[MonsterTemplate], now: float) -> Tuple[int, int, Optional[ItemTemplate]]:
    """Inside a transaction: delete a dead monster, pay `killer` and stamp the spawn slot.

    Returns (xp, gold, dropped item). `killer` is updated in place and its
    xp, score, money and inventory are written.
    """
    tx.delete(monster_path(monster.id))
    xp = tpl.xp_reward if tpl else 0
    gold = tpl.gold_reward if tpl else 0
    killer.xp += xp
    killer.score += xp
    killer.money += gold
    dropped = None
    drop_tpl = ctx.world.items.get(tpl.item_drop) if tpl and tpl.item_drop else None
    if drop_tpl is not None and ctx.rng.random() < ctx.config.drop_chance:
        killer.inventory.append(InventoryItem.from_template(drop_tpl))
        dropped = drop_tpl
    tx.update(player_path(killer.id), {
        'xp': killer.xp,
        'score': killer.score,
        'money': killer.money,
        'inventory': [i.to_dict() for i in killer.inventory],
    })
    r_doc = tx.get(room_path(monster.room_id))
    if r_doc is not None:
        live_room = Room.from_dict(r_doc, monster.room_id)
        stamped = False
        for slot in live_room.monster_spawns:
            if slot.monster_id == monster.monster_id:
                slot.last_defeated_at = now
                stamped = True
        if stamped:
            tx.update(room_path(live_room.id), {
                'monster_spawns': [s.to_dict() for s in live_room.monster_spawns],
            })
    return xp, gold, dropped


def _attack_monster(ctx: CommandContext, player: Player, room: Room,
                    target: MonsterInstance, verb: Optional[str]) -> ServiceReturn:
    world = ctx.world
    config = ctx.config
    now = ctx.now()

    def _body(tx) -> CombatRound:
        a_doc = tx.get(player_path(player.id))
        if a_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        attacker = Player.from_dict(a_doc, player.id)
        m_doc = tx.get(monster_path(target.id))
        if m_doc is None:
            raise ValidationAbort(f"The {target.name} is already dead.")
        monster = MonsterInstance.from_dict(m_doc, target.id)
        if monster.room_id != attacker.room_id:
            raise ValidationAbort(f'There\'s nothing here by the name "{target.name}" to attack.')
        tpl = world.monsters.get(monster.monster_id)

        weapon = attacker.best_weapon(world.items)
        dmg = roll_damage(attacker.attributes.strength, weapon.weapon_damage if weapon else 0, ctx.rng)
        rnd = CombatRound(attacker=attacker, defender_name=monster.name, damage=dmg, weapon=weapon,
                          defender_max_hp=monster.max_hp)
        remaining = monster.hp - dmg

        if remaining <= 0:
            rnd.defender_died = True
            rnd.newsworthy = bool(tpl and tpl.newsworthy)
            rnd.xp_gain, rnd.gold_gain, rnd.dropped = slay_monster(ctx, tx, attacker, monster, tpl, now)
            return rnd

        rnd.defender_hp = remaining
        tx.update(monster_path(monster.id), {'hp': remaining})
        counter = monster_damage(tpl, ctx.rng)
        rnd.counter_damage = counter
        if attacker.hp - counter <= 0:
            rnd.attacker_died = True
            fields, rnd.gold_lost = _respawn(attacker, config.home_room_id, config.death_gold_penalty)
            tx.update(player_path(attacker.id), fields)
        else:
            attacker.hp -= counter
            tx.update(player_path(attacker.id), {'hp': attacker.hp})
        return rnd

    rnd: CombatRound = ctx.store.run_transaction(_body)
    return _render_monster_round(ctx, room, rnd, verb)


def _render_monster_round(ctx: CommandContext, room: Room, rnd: CombatRound, verb: Optional[str]) -> ServiceReturn:
    name = rnd.attacker.name
    verb_key, you, they = _verb_forms(verb)
    phrase = _weapon_phrase(ctx, verb_key, rnd.weapon, 'your')
    emits = [line(C.MSG_TYPE_COMBAT, f"You {you} at the {rnd.defender_name}{phrase} for {rnd.damage} damage!")]
    broadcasts = [(room.id, line(C.MSG_TYPE_COMBAT,
                                 f"{name} {they} at the {rnd.defender_name} for {rnd.damage} damage!"))]

    if rnd.defender_died:
        emits.append(line(C.MSG_TYPE_SYSTEM, f"You have defeated the {rnd.defender_name}!"))
        emits.append(line(C.MSG_TYPE_SYSTEM, f"You gain {rnd.xp_gain} XP and {rnd.gold_gain} gold."))
        if rnd.dropped is not None:
            emits.append(line(C.MSG_TYPE_SYSTEM, f"The {rnd.defender_name} dropped {rnd.dropped.name}!"))
        broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{name} has slain the {rnd.defender_name}!")))
        if rnd.newsworthy:
            news_service.post_news(ctx.store, news_service.NEWS_KIND_KILL, name,
                                   f"defeated the {rnd.defender_name}!", now=ctx.now())
        logger.info(f"{name} killed {rnd.defender_name} in {room.id}")
    else:
        counter_phrase = ctx.rng.choice(COUNTER_PHRASES)
        emits.append(line(C.MSG_TYPE_COMBAT,
                          f"The {rnd.defender_name} {counter_phrase} for {rnd.counter_damage} damage!"))
        if rnd.attacker_died:
            emits.append(line(C.MSG_TYPE_ERROR,
                              f"You have been defeated! You respawn at {_home_name(ctx)}... (lost {rnd.gold_lost} gold)"))
            broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{name} falls to the {rnd.defender_name}!")))
            broadcasts.append((ctx.config.home_room_id,
                               line(C.MSG_TYPE_ACTION, f"{name} materializes, battered and bruised.")))
        else:
            emits.append(line(C.MSG_TYPE_GAME,
                              f"The {rnd.defender_name} has {rnd.defender_hp}/{rnd.defender_max_hp} HP. "
                              f"You have {rnd.attacker.hp}/{rnd.attacker.max_hp} HP."))

    emits.extend(progression_service.check_level_up(ctx.store, rnd.attacker.id, ctx.config))
    return success(emits, broadcasts)


# --- players --------------------------------------------------------------

def _attack_player(ctx: CommandContext, player: Player, room: Room,
                   target: Player, verb: Optional[str]) -> ServiceReturn:
    world = ctx.world
    config = ctx.config

    def _body(tx) -> CombatRound:
        a_doc = tx.get(player_path(player.id))
        d_doc = tx.get(player_path(target.id))
        if a_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        if d_doc is None:
            raise ValidationAbort(f"{target.name} is no longer here.")
        attacker = Player.from_dict(a_doc, player.id)
        defender = Player.from_dict(d_doc, target.id)
        if defender.room_id != attacker.room_id:
            raise ValidationAbort(f"{defender.name} is no longer here.")

        weapon = attacker.best_weapon(world.items)
        dmg = roll_damage(attacker.attributes.strength, weapon.weapon_damage if weapon else 0, ctx.rng)
        rnd = CombatRound(attacker=attacker, defender_name=defender.name, damage=dmg, weapon=weapon,
                          defender_id=defender.id, defender_max_hp=defender.max_hp)
        remaining = defender.hp - dmg

        if remaining <= 0:
            rnd.defender_died = True
            rnd.xp_gain = defender.level * 10
            rnd.gold_gain = int(math.floor(defender.money * 0.1)) or 10
            attacker.xp += rnd.xp_gain
            attacker.score += rnd.xp_gain
            attacker.money += rnd.gold_gain
            tx.update(player_path(attacker.id), {
                'xp': attacker.xp, 'score': attacker.score, 'money': attacker.money,
            })
            fields, rnd.defender_gold_lost = _respawn(defender, config.home_room_id, config.death_gold_penalty)
            tx.update(player_path(defender.id), fields)
            return rnd

        rnd.defender_hp = remaining
        tx.update(player_path(defender.id), {'hp': remaining})
        d_weapon = defender.best_weapon(world.items)
        counter = roll_damage(defender.attributes.strength, d_weapon.weapon_damage if d_weapon else 0, ctx.rng)
        rnd.counter_damage = counter
        if attacker.hp - counter <= 0:
            rnd.attacker_died = True
            fields, rnd.gold_lost = _respawn(attacker, config.home_room_id, config.death_gold_penalty)
            tx.update(player_path(attacker.id), fields)
        else:
            attacker.hp -= counter
            tx.update(player_path(attacker.id), {'hp': attacker.hp})
        return rnd

    rnd: CombatRound = ctx.store.run_transaction(_body)
    return _render_player_round(ctx, room, rnd, verb)


def _render_player_round(ctx: CommandContext, room: Room, rnd: CombatRound, verb: Optional[str]) -> ServiceReturn:
    name = rnd.attacker.name
    victim = rnd.defender_name
    verb_key, you, they = _verb_forms(verb)
    phrase = _weapon_phrase(ctx, verb_key, rnd.weapon, 'your')
    emits = [line(C.MSG_TYPE_COMBAT, f"You {you} at {victim}{phrase} for {rnd.damage} damage!")]
    broadcasts = [(room.id, line(C.MSG_TYPE_COMBAT, f"{name} {they} at {victim} for {rnd.damage} damage!"))]
    home = _home_name(ctx)

    if rnd.defender_died:
        emits.append(line(C.MSG_TYPE_SYSTEM, f"You have defeated {victim}!"))
        emits.append(line(C.MSG_TYPE_SYSTEM, f"You gain {rnd.xp_gain} XP and {rnd.gold_gain} gold."))
        broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{victim} has been defeated by {name}!")))
        tell_player(ctx, rnd.defender_id, line(C.MSG_TYPE_ERROR,
              f"You were defeated by {name}! You respawn at {home} and lost {rnd.defender_gold_lost} gold."))
    else:
        emits.append(line(C.MSG_TYPE_COMBAT, f"{victim} counter-attacks for {rnd.counter_damage} damage!"))
        tell_player(ctx, rnd.defender_id, line(C.MSG_TYPE_COMBAT,
              f"{name} hit you for {rnd.damage} damage! You counter-attacked for {rnd.counter_damage} damage."))
        if rnd.attacker_died:
            emits.append(line(C.MSG_TYPE_ERROR,
                              f"You have been defeated! You respawn at {home}... (lost {rnd.gold_lost} gold)"))
            broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{name} has been defeated by {victim}!")))

    emits.extend(progression_service.check_level_up(ctx.store, rnd.attacker.id, ctx.config))
    return success(emits, broadcasts)


def tell_player(ctx: CommandContext, player_id: Optional[str], payload: dict) -> None:
    if player_id and ctx.send_to_player is not None:
        safe_call(ctx.send_to_player, player_id, payload)
