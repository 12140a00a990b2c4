"""Item handling: get, drop, buy, sell, give, use/drink/eat/consume, read and inventory.

Service contract: functions return (handled: bool, err: str|None, emits: List[dict], broadcasts: List[Tuple[str, dict]])

Every transfer between a room and an inventory (or between gold and an
inventory) re-reads both sides inside one transaction, so two players grabbing
the last torch cannot both get it.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import constants as C
import news_service
from command_context import CommandContext
from document_store import ValidationAbort
from safe_utils import safe_call
from service_contract import ServiceReturn, error, line, success
from world import InventoryItem, ItemTemplate, Player, Room, player_path, room_path

logger = logging.getLogger(__name__)

CONSUME_VERBS = ('use', 'drink', 'eat', 'consume')


def _inventory_index(player: Player, item_id: str) -> int:
    for i, inv in enumerate(player.inventory):
        if inv.id == item_id:
            return i
    return -1


def _actor_and_room(ctx: CommandContext):
    player = ctx.load_player()
    if player is None:
        return None, None, error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return player, None, error(C.ERROR_NOWHERE)
    return player, room, None


def get_item(ctx: CommandContext, target: Optional[str]) -> ServiceReturn:
    token = (target or '').strip()
    if not token:
        return error("Get what?")
    player, room, err = _actor_and_room(ctx)
    if err:
        return err
    tpl = ctx.world.find_room_item(room, token)
    if tpl is None:
        return error("You don't see that here.")
    if not tpl.movable:
        return error("You can't take that.")

    def _body(tx) -> Player:
        p_doc = tx.get(player_path(player.id))
        r_doc = tx.get(room_path(room.id))
        if p_doc is None or r_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(p_doc, player.id)
        live_room = Room.from_dict(r_doc, room.id)
        if current.room_id != live_room.id or tpl.id not in live_room.items:
            raise ValidationAbort("You don't see that here.")
        live_room.items.remove(tpl.id)
        current.inventory.append(InventoryItem.from_template(tpl))
        tx.update(room_path(live_room.id), {'items': list(live_room.items)})
        tx.update(player_path(current.id), {'inventory': [i.to_dict() for i in current.inventory]})
        return current

    current = ctx.store.run_transaction(_body)
    if tpl.newsworthy:
        news_service.post_news(ctx.store, news_service.NEWS_KIND_FOUND, current.name,
                               f"found the {tpl.name}!", now=ctx.now())
    return success(
        [line(C.MSG_TYPE_GAME, f"You take the {tpl.name}.")],
        [(room.id, line(C.MSG_TYPE_ACTION, f"{current.name} picks up the {tpl.name}."))],
    )


def drop_item(ctx: CommandContext, target: Optional[str]) -> ServiceReturn:
    token = (target or '').strip()
    if not token:
        return error("Drop what?")
    player, room, err = _actor_and_room(ctx)
    if err:
        return err
    carried = player.find_inventory(token)
    if carried is None:
        return error("You aren't carrying that.")

    def _body(tx) -> Player:
        p_doc = tx.get(player_path(player.id))
        r_doc = tx.get(room_path(room.id))
        if p_doc is None or r_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(p_doc, player.id)
        live_room = Room.from_dict(r_doc, room.id)
        idx = _inventory_index(current, carried.id)
        if idx < 0 or current.room_id != live_room.id:
            raise ValidationAbort("You aren't carrying that.")
        del current.inventory[idx]
        if carried.id not in live_room.items:
            live_room.items.append(carried.id)
        tx.update(player_path(current.id), {'inventory': [i.to_dict() for i in current.inventory]})
        tx.update(room_path(live_room.id), {'items': list(live_room.items)})
        return current

    current = ctx.store.run_transaction(_body)
    return success(
        [line(C.MSG_TYPE_GAME, f"You drop the {carried.name}.")],
        [(room.id, line(C.MSG_TYPE_ACTION, f"{current.name} drops the {carried.name}."))],
    )


def buy_item(ctx: CommandContext, target: Optional[str], npc_target: Optional[str] = None) -> ServiceReturn:
    """Buy from a named vendor, or from whoever in the room sells the item."""
    token = (target or '').strip()
    if not token:
        return error("Buy what?")
    player, room, err = _actor_and_room(ctx)
    if err:
        return err
    tpl = ctx.world.find_item_by_name(token)

    if npc_target:
        vendor = ctx.world.find_npc_in_room(room, npc_target)
        if vendor is None:
            return error("There's no one here by that name to buy from.")
    else:
        vendors = [ctx.world.npcs[n] for n in room.npcs if n in ctx.world.npcs and ctx.world.npcs[n].sells]
        if not vendors:
            return error("There's no one here by that name to buy from.")
        vendor = next((v for v in vendors if tpl is not None and tpl.id in v.sells), vendors[0])
    if tpl is None or tpl.id not in vendor.sells:
        return error(f"{vendor.display_name} isn't selling that.")

    def _body(tx) -> Player:
        p_doc = tx.get(player_path(player.id))
        if p_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(p_doc, player.id)
        if current.money < tpl.cost:
            raise ValidationAbort("You can't afford that.")
        current.money -= tpl.cost
        current.inventory.append(InventoryItem.from_template(tpl))
        tx.update(player_path(current.id), {
            'money': current.money,
            'inventory': [i.to_dict() for i in current.inventory],
        })
        return current

    current = ctx.store.run_transaction(_body)
    logger.debug(f"{current.name} bought {tpl.id} from {vendor.id} for {tpl.cost}")
    return success([
        line(C.MSG_TYPE_GAME, f"You buy {tpl.name} from {vendor.display_name} for {tpl.cost} gold."),
        line(C.MSG_TYPE_SYSTEM, f"You have {current.money} gold left."),
    ])


def use_item(ctx: CommandContext, target: Optional[str], verb: str = 'use') -> ServiceReturn:
    verb = verb if verb in CONSUME_VERBS else 'use'
    token = (target or '').strip()
    if not token:
        return error(f"{verb.capitalize()} what?")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    carried = player.find_inventory(token)
    if carried is None:
        return error("You don't have that item.")
    tpl = ctx.world.items.get(carried.id)
    if tpl is None:
        return error("That item doesn't exist.")
    if not tpl.consumable:
        return error(f"You can't {verb} that.")

    def _body(tx) -> Player:
        p_doc = tx.get(player_path(player.id))
        if p_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(p_doc, player.id)
        idx = _inventory_index(current, carried.id)
        if idx < 0:
            raise ValidationAbort("You don't have that item.")
        del current.inventory[idx]
        current.hp = min(current.max_hp, current.hp + tpl.hp_restore)
        tx.update(player_path(current.id), {
            'inventory': [i.to_dict() for i in current.inventory],
            'hp': current.hp,
        })
        return current

    current = ctx.store.run_transaction(_body)
    text = f"You {verb} {carried.name}."
    if tpl.hp_restore > 0:
        text += f" It restores {tpl.hp_restore} HP!"
    if tpl.effect:
        text += f" {tpl.effect}"
    emits = [line(C.MSG_TYPE_SYSTEM, text)]
    if tpl.hp_restore > 0:
        emits.append(line(C.MSG_TYPE_GAME, f"Current HP: {current.hp}/{current.max_hp}"))
    return success(emits)


def read_item(ctx: CommandContext, target: Optional[str]) -> ServiceReturn:
    token = (target or '').strip()
    if not token:
        return error("Read what?")
    player, room, err = _actor_and_room(ctx)
    if err:
        return err

    carried = player.find_inventory(token)
    if carried is not None:
        tpl: Optional[ItemTemplate] = ctx.world.items.get(carried.id)
        if tpl is None or not tpl.readable:
            return error(f"There is nothing to read on {carried.name}.")
        return success([
            line(C.MSG_TYPE_SYSTEM, f"You read {tpl.name}:"),
            line(C.MSG_TYPE_GAME, tpl.readable_text or "The text is too faded to read."),
        ])

    for key, text in room.details.items():
        if key.lower() == token.lower():
            return success([
                line(C.MSG_TYPE_SYSTEM, f"You read the {key}:"),
                line(C.MSG_TYPE_GAME, text),
            ])

    if ctx.world.find_room_item(room, token) is not None:
        return error(f'You don\'t have "{token}" to read. You need to pick it up first.')
    return error(f'There is no "{token}" to read.')


def show_inventory(ctx: CommandContext) -> ServiceReturn:
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    if not player.inventory:
        return success([line(C.MSG_TYPE_SYSTEM, "You are not carrying anything.")])
    emits: List[dict] = [line(C.MSG_TYPE_SYSTEM, "You are carrying:")]
    emits += [line(C.MSG_TYPE_GAME, f"- {inv.name}") for inv in player.inventory]
    emits.append(line(C.MSG_TYPE_SYSTEM, f"Gold: {player.money}"))
    return success(emits)


def sell_item(ctx: CommandContext, target: Optional[str], npc_target: Optional[str] = None) -> ServiceReturn:
    """Sell a carried item to a merchant who stocks it, at config.sell_rate of its cost."""
    token = (target or '').strip()
    if not token:
        return error("Sell what?")
    player, room, err = _actor_and_room(ctx)
    if err:
        return err
    carried = player.find_inventory(token)
    if carried is None:
        return error("You aren't carrying that.")
    vendors = [ctx.world.npcs[n] for n in room.npcs if n in ctx.world.npcs and ctx.world.npcs[n].sells]
    if npc_target:
        vendor = ctx.world.find_npc_in_room(room, npc_target)
        if vendor is None:
            return error("There's no one here by that name to sell to.")
    elif vendors:
        vendor = next((v for v in vendors if carried.id in v.sells), vendors[0])
    else:
        return error("There's no one here to sell to.")
    if carried.id not in vendor.sells:
        return error(f"{vendor.display_name} isn't interested in buying {carried.name}.")
    tpl = ctx.world.items.get(carried.id)
    base = tpl.cost if tpl else carried.cost
    price = max(1, round(base * ctx.config.sell_rate)) if base > 0 else 0

    def _body(tx) -> Player:
        p_doc = tx.get(player_path(player.id))
        if p_doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(p_doc, player.id)
        idx = _inventory_index(current, carried.id)
        if idx < 0:
            raise ValidationAbort("You aren't carrying that.")
        del current.inventory[idx]
        current.money += price
        tx.update(player_path(current.id), {
            'money': current.money,
            'inventory': [i.to_dict() for i in current.inventory],
        })
        return current

    current = ctx.store.run_transaction(_body)
    return success([
        line(C.MSG_TYPE_GAME, f"You sell {carried.name} to {vendor.display_name} for {price} gold."),
        line(C.MSG_TYPE_SYSTEM, f"You have {current.money} gold."),
    ])


def give_item(ctx: CommandContext, target: Optional[str], recipient: Optional[str]) -> ServiceReturn:
    """Hand a carried item to another adventurer in the same room."""
    token = (target or '').strip()
    who = (recipient or '').strip()
    if not token or not who:
        return error("Give what to whom? Try 'give [item] to [name]'")
    player, room, err = _actor_and_room(ctx)
    if err:
        return err
    carried = player.find_inventory(token)
    if carried is None:
        return error("You aren't carrying that.")
    other = ctx.world.find_player_in_room(room.id, who, exclude_id=player.id)
    if other is None:
        npc = ctx.world.find_npc_in_room(room, who)
        if npc is not None:
            return error(f"{npc.display_name} politely declines.")
        return error("There's no one here by that name.")

    def _body(tx) -> Player:
        g_doc = tx.get(player_path(player.id))
        r_doc = tx.get(player_path(other.id))
        if g_doc is None or r_doc is None:
            raise ValidationAbort("There's no one here by that name.")
        giver = Player.from_dict(g_doc, player.id)
        taker = Player.from_dict(r_doc, other.id)
        if giver.room_id != taker.room_id:
            raise ValidationAbort(f"{taker.name} is no longer here.")
        idx = _inventory_index(giver, carried.id)
        if idx < 0:
            raise ValidationAbort("You aren't carrying that.")
        taker.inventory.append(giver.inventory.pop(idx))
        tx.update(player_path(giver.id), {'inventory': [i.to_dict() for i in giver.inventory]})
        tx.update(player_path(taker.id), {'inventory': [i.to_dict() for i in taker.inventory]})
        return giver

    giver = ctx.store.run_transaction(_body)
    if ctx.send_to_player is not None:
        safe_call(ctx.send_to_player, other.id, line(C.MSG_TYPE_GAME, f"{giver.name} gives you {carried.name}."))
    return success(
        [line(C.MSG_TYPE_GAME, f"You give {carried.name} to {other.name}.")],
        [(room.id, line(C.MSG_TYPE_ACTION, f"{giver.name} hands something to {other.name}."))],
    )
