"""Lazy monster respawn, evaluated when a player enters a room.

For every spawn slot in the room: if no live instance of that monster exists and
`now - last_defeated_at` exceeds the slot's respawn interval (a never-defeated
slot is eligible at once), one instance is created from the template.

A slot's instance lives at a document id derived from (room id, monster id), so
two players entering together race on the same document: the second
transaction sees the first one's instance on retry and creates nothing. At most
one live instance per slot holds without any locking in the handlers.

Rooms nobody visits never respawn; there is no background timer.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

import constants as C
from command_context import CommandContext
from document_store import DocumentStore
from service_contract import ServiceReturn, line, success
from world import MonsterInstance, MonsterTemplate, Room, World, monster_path, room_path

logger = logging.getLogger(__name__)


def slot_instance_id(room_id: str, monster_id: str) -> str:
    return f"{room_id}--{monster_id}"


def _has_live_legacy_instance(world: World, room_id: str, monster_id: str, slot_id: str) -> bool:
    """Instances created under other ids (imported data) still occupy the slot."""
    return any(
        m.monster_id == monster_id and m.id != slot_id and m.hp > 0
        for m in world.monsters_in_room(room_id)
    )


def spawn_for_room(store: DocumentStore, world: World, room_id: str,
                   now: Optional[float] = None) -> List[MonsterInstance]:
    """Create any due monster instances in `room_id`; returns the new ones."""
    now = time.time() if now is None else now
    cached_room = world.room(room_id)
    if cached_room is None or not cached_room.monster_spawns:
        return []

    candidates: List[Tuple[str, MonsterTemplate]] = []
    for slot in cached_room.monster_spawns:
        tpl = world.monsters.get(slot.monster_id)
        if tpl is None:
            logger.warning(f"Room {room_id} spawns unknown monster {slot.monster_id!r}")
            continue
        slot_id = slot_instance_id(room_id, slot.monster_id)
        if slot_id in world.active_monsters or _has_live_legacy_instance(world, room_id, slot.monster_id, slot_id):
            continue
        candidates.append((slot_id, tpl))
    if not candidates:
        return []

    def _body(tx) -> List[MonsterInstance]:
        room_doc = tx.get(room_path(room_id))
        if room_doc is None:
            return []
        room = Room.from_dict(room_doc, room_id)
        slots = {s.monster_id: s for s in room.monster_spawns}
        created: List[MonsterInstance] = []
        for slot_id, tpl in candidates:
            slot = slots.get(tpl.id)
            if slot is None:
                continue
            if tx.get(monster_path(slot_id)) is not None:
                continue
            if slot.last_defeated_at and now - slot.last_defeated_at <= slot.respawn_seconds:
                continue
            inst = MonsterInstance(id=slot_id, monster_id=tpl.id, room_id=room_id,
                                   name=tpl.name, hp=tpl.hp, max_hp=tpl.hp)
            tx.set(monster_path(slot_id), inst.to_dict())
            created.append(inst)
        return created

    created = store.run_transaction(_body)
    for inst in created:
        logger.debug(f"Spawned {inst.monster_id} in {room_id}")
    return created


def appearance_lines(instances: List[MonsterInstance]) -> List[dict]:
    return [line(C.MSG_TYPE_COMBAT, f"A {inst.name} appears!") for inst in instances]


def spawn_on_arrival(ctx: CommandContext, room_id: str) -> ServiceReturn:
    """Spawn due monsters in `room_id` for an arriving player.

    The appearance lines go to the arriving player and to everyone else in
    the room.
    """
    appear = appearance_lines(spawn_for_room(ctx.store, ctx.world, room_id, now=ctx.now()))
    return success(appear, [(room_id, payload) for payload in appear])
