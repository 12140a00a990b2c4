"""Movement through room exits.

`go` writes the player's new room, the visited-room record and any discovery
bonus in one transaction, so two racing moves cannot both pay the bonus. After
the commit the destination's spawn slots are evaluated and the room is
described.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import constants as C
import progression_service
import spawn_service
from command_context import CommandContext
from document_store import ValidationAbort
from look_service import describe_room
from service_contract import ServiceReturn, error, line, success
from world import Player, player_path

logger = logging.getLogger(__name__)


def normalize_direction(direction: Optional[str]) -> str:
    d = (direction or '').strip().lower()
    return C.DIRECTION_SHORTCUTS.get(d, d)


@dataclass
class _Move:
    player: Player
    source_id: str
    dest_id: str
    discovered: bool


def go(ctx: CommandContext, direction: Optional[str]) -> ServiceReturn:
    way = normalize_direction(direction)
    if not way:
        return error("Go where?")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return error(C.ERROR_NOWHERE)
    dest_id = room.exits.get(way)
    if not dest_id or ctx.world.room(dest_id) is None:
        return error("You can't go that way.")

    bonus = ctx.config.discovery_bonus

    def _body(tx) -> _Move:
        doc = tx.get(player_path(player.id))
        if doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(doc, player.id)
        if current.room_id != room.id:
            # Moved (or respawned) since the command was read.
            raise ValidationAbort("You can't go that way.")
        fields = {'room_id': dest_id}
        discovered = dest_id not in current.visited_rooms
        if discovered:
            current.visited_rooms.append(dest_id)
            current.xp += bonus
            current.score += bonus
            fields.update({
                'visited_rooms': list(current.visited_rooms),
                'xp': current.xp,
                'score': current.score,
            })
        current.room_id = dest_id
        tx.update(player_path(player.id), fields)
        return _Move(player=current, source_id=room.id, dest_id=dest_id, discovered=discovered)

    move: _Move = ctx.store.run_transaction(_body)
    name = move.player.name
    logger.debug(f"{name} moved {way} from {move.source_id} to {move.dest_id}")

    came_from = C.DIRECTION_NAMES.get(C.OPPOSITE_DIRECTIONS.get(way, ''), 'somewhere')
    broadcasts = [
        (move.source_id, line(C.MSG_TYPE_ACTION, f"{name} leaves {way}.")),
        (move.dest_id, line(C.MSG_TYPE_ACTION, f"{name} arrives from {came_from}.")),
    ]
    emits = []
    if move.discovered and bonus > 0:
        emits.append(line(C.MSG_TYPE_SYSTEM, f"You discovered a new area! +{bonus} XP"))
        emits.extend(progression_service.check_level_up(ctx.store, move.player.id, ctx.config))

    _h, _err, appear, spawn_broadcasts = spawn_service.spawn_on_arrival(ctx, move.dest_id)
    broadcasts += spawn_broadcasts

    dest = ctx.world.room(move.dest_id)
    if dest is not None:
        emits = describe_room(ctx.world, dest, viewer_id=move.player.id) + appear + emits
    else:
        emits = appear + emits
    return success(emits, broadcasts)
