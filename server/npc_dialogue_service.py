"""NPC conversations: talk, ask and reply.

Service contract: functions return (handled: bool, err: str|None, emits: List[dict], broadcasts: List[Tuple[str, dict]])

Fixed-dialogue NPCs answer with a random line and never hold a conversation.
AI NPCs get a prompt built from their personality, their item-giving rules and
the session's recent history; the reply is scanned for a [GIVE_ITEM:<id>]
marker. The text generator is called outside any transaction, and the item
grant is its own transaction afterwards.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import constants as C
from command_context import CommandContext
from dialogue_utils import extract_give_marker, render_npc_reply
from document_store import ValidationAbort
from service_contract import ServiceReturn, error, line, success
from world import InventoryItem, ItemTemplate, NpcTemplate, Player, Room, player_path

logger = logging.getLogger(__name__)

KIND_TALK = 'talk'
KIND_ASK = 'ask_npc'
KIND_REPLY = 'reply'

STARTED_CONVERSATION = '[started conversation]'
NOT_TALKING = "You're not talking to anyone right now."


def build_npc_prompt(
    npc: NpcTemplate,
    player_name: str,
    room_name: str,
    kind: str,
    text: Optional[str],
    history: List[Dict[str, str]],
    items: Dict[str, ItemTemplate],
) -> str:
    """Prompt for one AI NPC turn."""
    if isinstance(npc.dialogue, str) and npc.dialogue.strip():
        personality = npc.dialogue.strip()
    elif npc.dialogue_lines():
        personality = ' '.join(npc.dialogue_lines())
    else:
        personality = 'You are a friendly NPC.'

    if kind == KIND_ASK:
        task = f'The player has asked you specifically about "{text}". Formulate a response based on your personality.'
    elif kind == KIND_REPLY:
        task = (f'The player is replying to you. Their reply is: "{text}". '
                'Continue the conversation naturally, keeping context from your previous responses.')
    else:
        task = 'The player has just started a conversation with you. Respond to them based on your personality.'

    triggers = ''
    if npc.triggers:
        rules = ' '.join(
            f"If the player's query mentions '{keyword}', you can give them the "
            f"'{items[item_id].name if item_id in items else item_id}'. "
            f"To do so, you MUST include the tag [GIVE_ITEM:{item_id}] in your response."
            for keyword, item_id in npc.triggers.items()
        )
        triggers = f"You have the ability to give items. Here are the rules: {rules}"

    recent = ''
    if history:
        recent = '\n\nCONVERSATION HISTORY (recent messages):\n' + ''.join(
            f"{h['speaker']}: {h['text']}\n" for h in history
        )

    return (
        f"CONTEXT: You are playing an NPC in a game. Your name is {npc.display_name}. "
        f"The player you are talking to is named {player_name}. "
        f"You are in a location called \"{room_name}\".\n"
        f"PERSONALITY: {personality}\n"
        f"{triggers}{recent}\n"
        f"TASK: {task}\n\n"
        "Wrap physical actions in *asterisks* and spoken words in \"double quotes\". "
        "Remember to stay in character and keep your response coherent with the conversation history above."
    )


def _here(ctx: CommandContext):
    player = ctx.load_player()
    if player is None:
        return None, None, error(C.ERROR_NOT_CONNECTED)
    room = ctx.world.room(player.room_id)
    if room is None:
        return player, None, error(C.ERROR_NOWHERE)
    return player, room, None


def talk(ctx: CommandContext, npc_target: Optional[str]) -> ServiceReturn:
    if not (npc_target or '').strip():
        return error("Talk to whom?")
    player, room, err = _here(ctx)
    if err:
        return err
    npc = ctx.world.find_npc_in_room(room, npc_target)
    if npc is None:
        return error("There's no one here by that name.")
    if npc.use_ai:
        ctx.session.start_conversation(npc.id)
        return _ai_turn(ctx, npc, player, room, KIND_TALK, None)

    ctx.session.clear_conversation()
    lines = npc.dialogue_lines()
    if lines:
        said = ctx.rng.choice(lines)
        return success([line(C.MSG_TYPE_NPC, f'{npc.display_name} says, "{said}"')])
    return success([line(C.MSG_TYPE_GAME, f"{npc.display_name} doesn't seem to have much to say.")])


def ask_npc(ctx: CommandContext, npc_target: Optional[str], topic: Optional[str]) -> ServiceReturn:
    player, room, err = _here(ctx)
    if err:
        return err
    if (npc_target or '').strip():
        npc = ctx.world.find_npc_in_room(room, npc_target)
        if npc is None:
            return error("There is no one here by that name to ask.")
    else:
        npc = ctx.world.npcs.get(ctx.session.last_npc_id) if ctx.session.last_npc_id in room.npcs else None
        if npc is None:
            return error(NOT_TALKING)
    if not (topic or '').strip():
        return error(f"Ask {npc.display_name} about what?")
    if not npc.use_ai:
        ctx.session.clear_conversation()
        return success([line(C.MSG_TYPE_GAME, f"{npc.display_name} doesn't seem to have an answer for that.")])
    if ctx.session.last_npc_id != npc.id:
        ctx.session.start_conversation(npc.id)
    return _ai_turn(ctx, npc, player, room, KIND_ASK, topic.strip())


def reply(ctx: CommandContext, text: Optional[str]) -> ServiceReturn:
    """Continue the active AI conversation with free text."""
    npc = ctx.world.npcs.get(ctx.session.last_npc_id) if ctx.session.last_npc_id else None
    player, room, err = _here(ctx)
    if err:
        return err
    if npc is None or not npc.use_ai or npc.id not in room.npcs:
        ctx.session.clear_conversation()
        return error(NOT_TALKING)
    said = (text or '').strip()
    if not said:
        return error("Say what?")
    return _ai_turn(ctx, npc, player, room, KIND_REPLY, said)


def _ai_turn(ctx: CommandContext, npc: NpcTemplate, player: Player, room: Room,
             kind: str, text: Optional[str]) -> ServiceReturn:
    name = npc.display_name
    emits = [line(C.MSG_TYPE_ACTION, f"{name} is thinking...")]
    prompt = build_npc_prompt(npc, player.name, room.name, kind, text,
                              list(ctx.session.history), ctx.world.items)
    if ctx.text_generator is not None:
        response = ctx.text_generator.generate(prompt)
    else:
        response = C.AI_OFFLINE_TEXT

    item_id, cleaned = extract_give_marker(response)
    ctx.session.remember(player.name, text if kind != KIND_TALK else STARTED_CONVERSATION)
    ctx.session.remember(name, cleaned)

    if item_id is not None:
        given = _grant_item(ctx, npc, player.id, item_id)
        if given is not None:
            emits.append(line(C.MSG_TYPE_SYSTEM, f"{name} gives you {given.name}."))
    emits.extend(render_npc_reply(name, cleaned))
    return success(emits)


def _grant_item(ctx: CommandContext, npc: NpcTemplate, player_id: str, item_id: str) -> Optional[ItemTemplate]:
    """Give any known item to the player; unknown ids are ignored.

    With npc_trigger_items_only set, an NPC may only hand out items named in
    its own triggers.
    """
    tpl = ctx.world.items.get(item_id)
    if tpl is None:
        logger.info(f"{npc.id} tried to give unknown item {item_id!r}")
        return None
    if ctx.config.npc_trigger_items_only and item_id not in npc.triggers.values():
        logger.info(f"{npc.id} tried to give {item_id!r}, which is not one of its trigger items")
        return None

    def _body(tx) -> None:
        doc = tx.get(player_path(player_id))
        if doc is None:
            raise ValidationAbort(C.ERROR_NOT_CONNECTED)
        current = Player.from_dict(doc, player_id)
        current.inventory.append(InventoryItem.from_template(tpl))
        tx.update(player_path(player_id), {'inventory': [i.to_dict() for i in current.inventory]})

    ctx.store.run_transaction(_body)
    return tpl
