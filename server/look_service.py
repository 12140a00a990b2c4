"""Room and character presentation.

describe_room() builds the lines a player sees on `look` and on arrival:
name, description, items, NPCs, monsters with their hp, other adventurers and
exits. The rest (examine, who, score, stats) are read-only views; none of them
writes to the store.
"""

from __future__ import annotations

from typing import List, Optional

import constants as C
import progression_service
from command_context import CommandContext
from service_contract import ServiceReturn, error, line, success
from world import Player, Room, World


def describe_room(world: World, room: Room, viewer_id: Optional[str] = None) -> List[dict]:
    lines = [
        line(C.MSG_TYPE_SYSTEM, room.name),
        line(C.MSG_TYPE_GAME, room.description),
    ]
    if room.items:
        names = ', '.join(world.items[i].name if i in world.items else 'an unknown object' for i in room.items)
        lines.append(line(C.MSG_TYPE_GAME, f"You see here: {names}."))
    if room.npcs:
        names = ', '.join(world.npcs[n].name if n in world.npcs else 'a mysterious figure' for n in room.npcs)
        lines.append(line(C.MSG_TYPE_GAME, f"You see {names} here."))
    for monster in world.monsters_in_room(room.id):
        tpl = world.monsters.get(monster.monster_id)
        desc = tpl.description if tpl and tpl.description else 'A fearsome creature stands before you.'
        lines.append(line(C.MSG_TYPE_COMBAT, f"{monster.name} is here. {desc}"))
        lines.append(line(C.MSG_TYPE_SYSTEM, f"HP: {monster.hp}/{monster.max_hp}"))
    others = world.players_in_room(room.id, exclude_id=viewer_id)
    if others:
        lines.append(line(C.MSG_TYPE_GAME, f"Also here: {', '.join(sorted(p.name for p in others))}."))
    exits = ', '.join(room.exits.keys()) if room.exits else 'none'
    lines.append(line(C.MSG_TYPE_GAME, f"Exits: [ {exits} ]"))
    return lines


def look(ctx: CommandContext) -> ServiceReturn:
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return error(C.ERROR_NOWHERE)
    return success(describe_room(ctx.world, room, viewer_id=player.id))


def examine(ctx: CommandContext, target: Optional[str]) -> ServiceReturn:
    """Look closely at an NPC, a monster, a room detail or an item (room first, then inventory)."""
    token = (target or '').strip()
    if not token:
        return error("Examine what?")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return error(C.ERROR_NOWHERE)

    npc = ctx.world.find_npc_in_room(room, token)
    if npc is not None:
        emits = [line(C.MSG_TYPE_GAME, npc.description or f"You see nothing unusual about {npc.name}.")]
        wares = [ctx.world.items[i] for i in npc.sells if i in ctx.world.items]
        if wares:
            emits.append(line(C.MSG_TYPE_SYSTEM, f"{npc.display_name} is selling:"))
            emits += [line(C.MSG_TYPE_GAME, f"- {w.name} ({w.cost} gold)") for w in wares]
        return success(emits)

    monster = ctx.world.find_monster_in_room(room.id, token)
    if monster is not None:
        tpl = ctx.world.monsters.get(monster.monster_id)
        return success([
            line(C.MSG_TYPE_GAME, tpl.description if tpl and tpl.description else f"A fearsome {monster.name}."),
            line(C.MSG_TYPE_SYSTEM, f"HP: {monster.hp}/{monster.max_hp}"),
        ])

    detail = _room_detail(room, token)
    if detail is not None:
        return success([line(C.MSG_TYPE_GAME, detail)])

    item = ctx.world.find_room_item(room, token)
    if item is None:
        carried = player.find_inventory(token)
        item = ctx.world.items.get(carried.id) if carried else None
    if item is not None:
        emits = [line(C.MSG_TYPE_GAME, item.description or f"It's {item.name}.")]
        if item.is_weapon:
            emits.append(line(C.MSG_TYPE_SYSTEM, f"Weapon damage: +{item.weapon_damage}"))
        return success(emits)

    other = ctx.world.find_player_in_room(room.id, token, exclude_id=player.id)
    if other is not None:
        return success([line(C.MSG_TYPE_GAME,
                             f"{other.name}, a level {other.level} {C.level_name(other.level)}. "
                             f"HP: {other.hp}/{other.max_hp}")])

    return success([line(C.MSG_TYPE_GAME, "You see nothing special about that.")])


def _room_detail(room: Room, token: str) -> Optional[str]:
    t = token.lower()
    for key, text in room.details.items():
        if key.lower() == t:
            return text
    return None


def who(ctx: CommandContext, online_ids: Optional[List[str]] = None) -> ServiceReturn:
    """List players; restricted to `online_ids` when the server knows who is connected."""
    players = list(ctx.world.players.values())
    if online_ids is not None:
        wanted = set(online_ids)
        players = [p for p in players if p.id in wanted]
    emits = [line(C.MSG_TYPE_SYSTEM, '--- Adventurers Online ---')]
    for p in sorted(players, key=lambda p: p.name.lower()):
        room = ctx.world.room(p.room_id)
        where = room.name if room else 'Unknown'
        emits.append(line(C.MSG_TYPE_GAME,
                          f"{p.name} - Level {p.level} {C.level_name(p.level)} - HP: {p.hp}/{p.max_hp} - {where}"))
    return success(emits)


def score(ctx: CommandContext) -> ServiceReturn:
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    config = ctx.config
    emits = [
        line(C.MSG_TYPE_SYSTEM, '--- Player Status ---'),
        line(C.MSG_TYPE_GAME, f"Name: {player.name}"),
        line(C.MSG_TYPE_GAME, f"Level: {player.level} - {C.level_name(player.level)}"),
        line(C.MSG_TYPE_GAME, f"HP: {player.hp} / {player.max_hp}"),
        line(C.MSG_TYPE_GAME, f"MP: {player.mp} / {player.max_mp}"),
    ]
    if player.level >= config.max_level:
        emits.append(line(C.MSG_TYPE_GAME, f"XP: {player.xp} (Maximum level reached!)"))
    else:
        floor_xp = progression_service.xp_for_level(player.level, config)
        next_xp = progression_service.xp_for_level(player.level + 1, config)
        emits.append(line(C.MSG_TYPE_GAME,
                          f"XP: {player.xp} ({player.xp - floor_xp} / {next_xp - floor_xp} to level {player.level + 1})"))
        emits.append(line(C.MSG_TYPE_GAME, f"{max(0, next_xp - player.xp)} XP needed for next level"))
    emits.append(line(C.MSG_TYPE_GAME, f"Gold: {player.money}"))
    emits.append(line(C.MSG_TYPE_GAME, f"Score: {player.score}"))
    return success(emits)


def stats(ctx: CommandContext) -> ServiceReturn:
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    return success(attribute_lines(player))


def attribute_lines(player: Player) -> List[dict]:
    a = player.attributes
    return [
        line(C.MSG_TYPE_SYSTEM, '--- Your Attributes ---'),
        line(C.MSG_TYPE_GAME, f"Level: {player.level} - {C.level_name(player.level)}"),
        line(C.MSG_TYPE_GAME, f"HP: {player.hp} / {player.max_hp}"),
        line(C.MSG_TYPE_GAME, f"STR: {a.strength}"),
        line(C.MSG_TYPE_GAME, f"DEX: {a.dexterity}"),
        line(C.MSG_TYPE_GAME, f"CON: {a.constitution}"),
        line(C.MSG_TYPE_GAME, f"INT: {a.intelligence}"),
        line(C.MSG_TYPE_GAME, f"WIS: {a.wisdom}"),
        line(C.MSG_TYPE_GAME, f"CHA: {a.charisma}"),
    ]
