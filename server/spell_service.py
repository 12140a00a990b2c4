"""Spells: list, learn and cast.

Service contract: functions return (handled: bool, err: str|None, emits: List[dict], broadcasts: List[Tuple[str, dict]])

A spell is a template with an MP cost, a minimum level and a target type:
- self          heal the caster
- single-enemy  damage one monster (named, or the first one in the room)
- single-ally   heal another player in the room, or the caster when no one is named
- all-enemies   damage every monster in the room
- all-allies    heal every player in the room, caster included

Casting re-reads the caster and every target inside one store transaction. The
MP is spent in the same commit that applies the damage or healing, so a cast
either happens completely or not at all. A monster killed by a spell is paid
out and its spawn slot stamped exactly like a melee kill. Monsters do not
strike back at spells.

Players learn a spell once they reach its level; admins may learn any spell.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import constants as C
import news_service
import progression_service
from combat_service import slay_monster, tell_player
from command_context import CommandContext
from document_store import ValidationAbort
from service_contract import ServiceReturn, error, line, success
from world import ItemTemplate, MonsterInstance, Player, Room, SpellTemplate, monster_path, player_path

logger = logging.getLogger(__name__)

SELF_WORDS = ('me', 'self', 'myself')


def _spell_token(text: Optional[str]) -> str:
    """'the mend spell' and 'mend' name the same spell."""
    token = (text or '').strip()
    if token.lower().endswith(' spell'):
        token = token[:-len(' spell')].strip()
    return token


@dataclass
class SpellHit:
    name: str
    damage: int
    hp: int = 0
    max_hp: int = 0
    killed: bool = False
    xp: int = 0
    gold: int = 0
    dropped: Optional[ItemTemplate] = None
    newsworthy: bool = False


@dataclass
class CastResult:
    """What one committed cast did."""
    caster: Player
    spell: SpellTemplate
    hits: List[SpellHit] = field(default_factory=list)
    # (player id, player name, hp restored)
    heals: List[Tuple[str, str, int]] = field(default_factory=list)


def list_spells(ctx: CommandContext) -> ServiceReturn:
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    known = [ctx.world.spells[s] for s in player.known_spells if s in ctx.world.spells]
    if not known:
        return success([
            line(C.MSG_TYPE_GAME, "You don't know any spells yet."),
            line(C.MSG_TYPE_SYSTEM, "Type 'learn <spell>' once you reach the level a spell requires."),
        ])
    emits = [
        line(C.MSG_TYPE_SYSTEM, '--- Your Spells ---'),
        line(C.MSG_TYPE_GAME, f"MP: {player.mp} / {player.max_mp}"),
    ]
    for spell in known:
        emits.append(line(C.MSG_TYPE_GAME, f"{spell.name} - {spell.mp_cost} MP [{spell.target_type}]"))
        if spell.description:
            emits.append(line(C.MSG_TYPE_GAME, f"   {spell.description}"))
        if spell.damage > 0:
            emits.append(line(C.MSG_TYPE_GAME, f"   Damage: {spell.damage}"))
        if spell.healing > 0:
            emits.append(line(C.MSG_TYPE_GAME, f"   Healing: {spell.healing}"))
    emits.append(line(C.MSG_TYPE_SYSTEM, "Cast a spell with: cast <spell> [at <target>]"))
    return success(emits)


def learn_spell(ctx: CommandContext, spell_name: Optional[str]) -> ServiceReturn:
    token = _spell_token(spell_name)
    if not token:
        return error("Learn which spell?")
    spell = ctx.world.find_spell(token)
    if spell is None:
        return error(f'Spell "{token}" not found.')

    def _body(tx) -> Player:
        doc = tx.get(player_path(ctx.player_id))
        if doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        player = Player.from_dict(doc, ctx.player_id)
        if spell.id in player.known_spells:
            raise ValidationAbort(f"You already know {spell.name}.")
        if not player.is_admin and player.level < spell.level_required:
            raise ValidationAbort(f"You must be level {spell.level_required} to learn {spell.name}.")
        player.known_spells.append(spell.id)
        tx.update(player_path(player.id), {'known_spells': list(player.known_spells)})
        return player

    player = ctx.store.run_transaction(_body)
    logger.info(f"{player.name} learned {spell.id}")
    emits = [line(C.MSG_TYPE_SYSTEM, f"You have learned {spell.name}!")]
    if spell.description:
        emits.append(line(C.MSG_TYPE_GAME, spell.description))
    return success(emits)


def cast_spell(ctx: CommandContext, spell_name: Optional[str], target: Optional[str] = None) -> ServiceReturn:
    """Resolve `cast <spell> [at <target>]` for the acting player."""
    token = _spell_token(spell_name)
    if not token:
        return error("Cast which spell? (Type 'spells' to see your known spells)")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return error(C.ERROR_NOWHERE)
    spell = ctx.world.find_spell(token)
    if spell is None or spell.id not in player.known_spells:
        return error(f'You don\'t know the spell "{token}".')
    if player.mp < spell.mp_cost:
        return error(f"You don't have enough MP to cast {spell.name}. (Need {spell.mp_cost}, have {player.mp})")

    who = (target or '').strip()
    kind = spell.target_type
    if kind == C.SPELL_TARGET_SELF and who and who.lower() not in SELF_WORDS:
        return error(f"{spell.name} can only be cast on yourself. Try: cast {spell.name}")

    monsters: List[MonsterInstance] = []
    allies: List[str] = []
    if kind == C.SPELL_TARGET_ENEMY:
        if who:
            found = ctx.world.find_monster_in_room(room.id, who)
        else:
            found = next(iter(ctx.world.monsters_in_room(room.id)), None)
        if found is None:
            return error("There is no such enemy here to target.")
        monsters = [found]
    elif kind == C.SPELL_TARGET_ALL_ENEMIES:
        monsters = ctx.world.monsters_in_room(room.id)
        if not monsters:
            return error("There are no enemies here to target.")
    elif kind == C.SPELL_TARGET_ALLY:
        if not who or who.lower() in SELF_WORDS or who.lower() == player.name.lower():
            allies = [player.id]
        else:
            ally = ctx.world.find_player_in_room(room.id, who, exclude_id=player.id)
            if ally is None:
                return error(f'There is no player named "{who}" here.')
            allies = [ally.id]
    elif kind == C.SPELL_TARGET_ALL_ALLIES:
        allies = [player.id] + [p.id for p in ctx.world.players_in_room(room.id, exclude_id=player.id)]
    else:
        allies = [player.id]

    result: CastResult = ctx.store.run_transaction(
        lambda tx: _cast_body(ctx, tx, spell, room, monsters, allies))
    return _render_cast(ctx, room, result)


def _cast_body(ctx: CommandContext, tx, spell: SpellTemplate, room: Room,
               monsters: List[MonsterInstance], allies: List[str]) -> CastResult:
    doc = tx.get(player_path(ctx.player_id))
    if doc is None:
        raise ValidationAbort(C.ERROR_NOT_CONNECTED)
    caster = Player.from_dict(doc, ctx.player_id)
    if caster.room_id != room.id:
        raise ValidationAbort("Your surroundings have changed; try again.")
    if spell.id not in caster.known_spells:
        raise ValidationAbort(f'You don\'t know the spell "{spell.name}".')
    if caster.mp < spell.mp_cost:
        raise ValidationAbort(f"You don't have enough MP to cast {spell.name}. "
                              f"(Need {spell.mp_cost}, have {caster.mp})")
    result = CastResult(caster=caster, spell=spell)
    now = ctx.now()

    for target in monsters:
        m_doc = tx.get(monster_path(target.id))
        if m_doc is None:
            continue
        monster = MonsterInstance.from_dict(m_doc, target.id)
        if monster.room_id != room.id or monster.hp <= 0:
            continue
        tpl = ctx.world.monsters.get(monster.monster_id)
        hit = SpellHit(name=monster.name, damage=spell.damage, max_hp=monster.max_hp)
        remaining = monster.hp - spell.damage
        if remaining <= 0:
            hit.killed = True
            hit.newsworthy = bool(tpl and tpl.newsworthy)
            hit.xp, hit.gold, hit.dropped = slay_monster(ctx, tx, caster, monster, tpl, now)
        else:
            hit.hp = remaining
            tx.update(monster_path(monster.id), {'hp': remaining})
        result.hits.append(hit)
    if monsters and not result.hits:
        raise ValidationAbort("There is no such enemy here to target.")

    for ally_id in allies:
        if ally_id == caster.id:
            healed = min(caster.hp + spell.healing, caster.max_hp) - caster.hp
            caster.hp += healed
            result.heals.append((caster.id, caster.name, healed))
            continue
        a_doc = tx.get(player_path(ally_id))
        if a_doc is None:
            continue
        ally = Player.from_dict(a_doc, ally_id)
        if ally.room_id != room.id:
            continue
        healed = min(ally.hp + spell.healing, ally.max_hp) - ally.hp
        if healed > 0:
            tx.update(player_path(ally.id), {'hp': ally.hp + healed})
        result.heals.append((ally.id, ally.name, healed))

    if spell.target_type == C.SPELL_TARGET_ALLY and allies != [caster.id]:
        if not result.heals:
            raise ValidationAbort("Your target is no longer here.")
        if result.heals[0][2] <= 0:
            raise ValidationAbort(f"{result.heals[0][1]} is already at full health!")

    caster.mp -= spell.mp_cost
    tx.update(player_path(caster.id), {'mp': caster.mp, 'hp': caster.hp})
    return result


def _render_cast(ctx: CommandContext, room: Room, result: CastResult) -> ServiceReturn:
    caster, spell = result.caster, result.spell
    name = caster.name
    kind = spell.target_type
    emits: List[dict] = []
    broadcasts: List[Tuple[str, dict]] = []

    if kind == C.SPELL_TARGET_ENEMY:
        hit = result.hits[0]
        emits.append(line(C.MSG_TYPE_ACTION, f"You cast {spell.name} at the {hit.name}!"))
        emits.append(line(C.MSG_TYPE_COMBAT, f"{spell.name} deals {hit.damage} damage!"))
        broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{name} casts {spell.name} at the {hit.name}!")))
        if hit.killed:
            emits.append(line(C.MSG_TYPE_SYSTEM, f"The {hit.name} is destroyed by your magic!"))
        else:
            emits.append(line(C.MSG_TYPE_GAME, f"The {hit.name} has {hit.hp}/{hit.max_hp} HP."))
    elif kind == C.SPELL_TARGET_ALL_ENEMIES:
        emits.append(line(C.MSG_TYPE_ACTION, f"You cast {spell.name}!"))
        if spell.description:
            emits.append(line(C.MSG_TYPE_GAME, spell.description))
        broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{name} casts {spell.name}!")))
        for hit in result.hits:
            emits.append(line(C.MSG_TYPE_COMBAT, f"The {hit.name} takes {hit.damage} damage!"))
            if hit.killed:
                emits.append(line(C.MSG_TYPE_SYSTEM, f"The {hit.name} is destroyed!"))
    elif kind == C.SPELL_TARGET_ALL_ALLIES:
        emits.append(line(C.MSG_TYPE_ACTION, f"You cast {spell.name}!"))
        if spell.description:
            emits.append(line(C.MSG_TYPE_GAME, spell.description))
        broadcasts.append((room.id, line(C.MSG_TYPE_ACTION, f"{name} casts {spell.name}, healing everyone nearby!")))
        healed_any = False
        for pid, pname, amount in result.heals:
            if amount <= 0:
                continue
            healed_any = True
            if pid == caster.id:
                emits.append(line(C.MSG_TYPE_SYSTEM, f"You heal yourself for {amount} HP!"))
            else:
                emits.append(line(C.MSG_TYPE_SYSTEM, f"{pname} is healed for {amount} HP!"))
                tell_player(ctx, pid, line(C.MSG_TYPE_SYSTEM, f"{name}'s {spell.name} heals you for {amount} HP!"))
        if not healed_any:
            emits.append(line(C.MSG_TYPE_GAME, "Everyone is already at full health!"))
    elif result.heals and result.heals[0][0] != caster.id:
        pid, pname, amount = result.heals[0]
        emits.append(line(C.MSG_TYPE_ACTION, f"You cast {spell.name} on {pname}!"))
        emits.append(line(C.MSG_TYPE_SYSTEM, f"{pname} is healed for {amount} HP!"))
        tell_player(ctx, pid, line(C.MSG_TYPE_SYSTEM, f"{name} casts {spell.name} on you! You are healed for {amount} HP!"))
        broadcasts.append((room.id, line(C.MSG_TYPE_ACTION, f"{name} casts {spell.name} on {pname}!")))
    else:
        on_self = ' on yourself' if kind == C.SPELL_TARGET_ALLY else ''
        emits.append(line(C.MSG_TYPE_ACTION, f"You cast {spell.name}{on_self}!"))
        if spell.healing > 0:
            amount = result.heals[0][2] if result.heals else 0
            emits.append(line(C.MSG_TYPE_SYSTEM, f"You heal yourself for {amount} HP!"))
        elif spell.description:
            emits.append(line(C.MSG_TYPE_GAME, spell.description))
        broadcasts.append((room.id, line(C.MSG_TYPE_ACTION, f"{name} casts {spell.name}.")))

    kills = [hit for hit in result.hits if hit.killed]
    if kills:
        xp = sum(hit.xp for hit in kills)
        gold = sum(hit.gold for hit in kills)
        emits.append(line(C.MSG_TYPE_SYSTEM, f"You gain {xp} XP and {gold} gold."))
        for hit in kills:
            if hit.dropped is not None:
                emits.append(line(C.MSG_TYPE_SYSTEM, f"The {hit.name} dropped {hit.dropped.name}!"))
            broadcasts.append((room.id, line(C.MSG_TYPE_COMBAT, f"{name} has slain the {hit.name}!")))
            if hit.newsworthy:
                news_service.post_news(ctx.store, news_service.NEWS_KIND_KILL, name,
                                       f"defeated the {hit.name}!", now=ctx.now())
            logger.info(f"{name} killed {hit.name} in {room.id} with {spell.id}")

    if spell.special_effects:
        emits.append(line(C.MSG_TYPE_GAME, spell.special_effects))
    emits.append(line(C.MSG_TYPE_GAME, f"MP: {caster.mp} / {caster.max_mp}"))
    if kills:
        emits.extend(progression_service.check_level_up(ctx.store, caster.id, ctx.config))
    return success(emits, broadcasts)
