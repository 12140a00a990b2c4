"""Message handler for incoming Socket.IO messages.

Every line a player types goes through here: the payload is validated, the
text is turned into an Intent, the Intent's Action picks a registered handler,
and the handler's ServiceReturn is rendered to the actor and the room.

The dispatcher is also the error boundary. Handlers raise ValidationAbort for
"you can't do that" outcomes found inside a transaction, and the store raises
TransactionAbortedError / StoreError; none of these ever reach the socket
layer as an exception.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import constants as C
import combat_service
import help_service
import item_service
import look_service
import movement_service
import news_service
import npc_dialogue_service
import spell_service
from command_context import CommandContext
from command_registry import Action, CONVERSATION_ACTIONS, registry
from dialogue_utils import render_emote
from document_store import StoreError, TransactionAbortedError, ValidationAbort
from intent_parser import Intent, parse_local
from persistence_utils import save_store
from safe_utils import safe_call
from service_contract import ServiceReturn, emit_service_result, error, line, success

logger = logging.getLogger(__name__)


# --- Handlers -----------------------------------------------------------------

@registry.command(Action.GO, description="Move through an exit")
def _go(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return movement_service.go(ctx, intent.target)


@registry.command(Action.LOOK, description="Describe the current room")
def _look(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return look_service.look(ctx)


@registry.command(Action.EXAMINE, description="Look closely at something")
def _examine(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return look_service.examine(ctx, intent.target)


@registry.command(Action.GET, description="Pick up an item")
def _get(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.get_item(ctx, intent.target)


@registry.command(Action.DROP, description="Drop an item")
def _drop(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.drop_item(ctx, intent.target)


@registry.command(Action.INVENTORY, description="List what you carry")
def _inventory(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.show_inventory(ctx)


@registry.command(Action.BUY, description="Buy from a merchant")
def _buy(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.buy_item(ctx, intent.target, intent.npc_target)


@registry.command(Action.SELL, description="Sell to a merchant")
def _sell(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.sell_item(ctx, intent.target, intent.npc_target)


@registry.command(Action.GIVE, description="Hand an item to another player")
def _give(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.give_item(ctx, intent.target, intent.npc_target)


@registry.command(Action.USE, Action.DRINK, Action.EAT, Action.CONSUME, description="Use a consumable")
def _use(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.use_item(ctx, intent.target, intent.action.value)


@registry.command(Action.READ, description="Read a book or note")
def _read(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return item_service.read_item(ctx, intent.target)


@registry.command(Action.ATTACK, description="Attack a monster or player")
def _attack(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return combat_service.attack(ctx, intent.target, intent.verb)


@registry.command(Action.CAST, description="Cast a known spell")
def _cast(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return spell_service.cast_spell(ctx, intent.target, intent.npc_target)


@registry.command(Action.LEARN, description="Learn a spell")
def _learn(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return spell_service.learn_spell(ctx, intent.target)


@registry.command(Action.SPELLS, description="List known spells")
def _spells(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return spell_service.list_spells(ctx)


@registry.command(Action.TALK, description="Start a conversation")
def _talk(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return npc_dialogue_service.talk(ctx, intent.npc_target or intent.target)


@registry.command(Action.ASK_NPC, description="Ask an NPC about a topic")
def _ask(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return npc_dialogue_service.ask_npc(ctx, intent.npc_target or intent.target, intent.topic)


@registry.command(Action.REPLY, description="Answer the NPC you are talking to")
def _reply(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return npc_dialogue_service.reply(ctx, intent.topic or intent.target)


@registry.command(Action.SAY, description="Speak to the room")
def _say(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    message = (intent.topic or intent.target or '').strip()
    if not message:
        return error("Say what?")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    return success(
        [line(C.MSG_TYPE_CHAT, f'You say, "{message}"')],
        [(player.room_id, line(C.MSG_TYPE_CHAT, f'{player.name} says, "{message}"'))],
    )


@registry.command(Action.EMOTE, description="Act out a gesture")
def _emote(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    text = (intent.topic or intent.target or '').strip()
    if not text:
        return error("Emote what?")
    player = ctx.load_player()
    if player is None:
        return error(C.ERROR_NOT_CONNECTED)
    template = ctx.config.emote_templates.get(text.lower())
    shown = render_emote(template, player.name) if template else f"{player.name} {text}"
    payload = line(C.MSG_TYPE_ACTION, shown)
    return success([payload], [(player.room_id, payload)])


@registry.command(Action.WHO, description="List connected players")
def _who(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    online = safe_call(ctx.online_player_ids) if ctx.online_player_ids else None
    return look_service.who(ctx, online)


@registry.command(Action.SCORE, description="Show your score")
def _score(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return look_service.score(ctx)


@registry.command(Action.STATS, description="Show your attributes")
def _stats(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return look_service.stats(ctx)


@registry.command(Action.NEWS, description="Recent notable events")
def _news(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return news_service.show_news(ctx.store, ctx.now())


@registry.command(Action.HELP, description="Command reference")
def _help(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    return help_service.show_help()


@registry.command(Action.LOGOUT, description="Leave the game")
def _logout(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    player = ctx.load_player()
    ctx.session.logout_requested = True
    emits = [line(C.MSG_TYPE_SYSTEM, 'Goodbye! Your progress has been saved.')]
    if player is None:
        return success(emits)
    return success(emits, [(player.room_id, line(C.MSG_TYPE_SYSTEM, f"{player.name} has left the game."))])


@registry.command(Action.UNKNOWN, description="Emote words, conversation replies, or a hint")
def _unknown(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    raw = (intent.raw or '').strip()
    if not raw:
        return error("Please type a command. Type 'help' for a list of commands.")
    words = raw.split()
    if len(words) == 1 and words[0].lower() in ctx.config.emote_templates:
        return _emote(ctx, Intent(action=Action.EMOTE, topic=words[0].lower(), raw=raw))
    if ctx.session.last_npc_id:
        return npc_dialogue_service.reply(ctx, raw)
    return success([
        line(C.MSG_TYPE_GAME, f"You try to {words[0].lower()}, but nothing happens."),
        line(C.MSG_TYPE_SYSTEM, "Type 'help' for a list of commands."),
    ])


_missing = registry.missing_actions()
if _missing:
    raise RuntimeError(f"Actions without a handler: {', '.join(a.value for a in _missing)}")


# --- Dispatch -----------------------------------------------------------------

def parse_intent(ctx: CommandContext, raw: str) -> Intent:
    if ctx.intent_parser is not None:
        return ctx.intent_parser.parse(raw)
    return parse_local(raw) or Intent.unknown(raw)


def _in_ai_conversation(ctx: CommandContext) -> bool:
    npc_id = ctx.session.last_npc_id
    if not npc_id:
        return False
    npc = ctx.world.npcs.get(npc_id)
    player = ctx.load_player()
    room = ctx.world.room(player.room_id) if player else None
    return bool(npc and npc.use_ai and room and npc_id in room.npcs)


def dispatch(ctx: CommandContext, intent: Intent) -> ServiceReturn:
    """Run the handler for `intent` inside the error boundary."""
    try:
        if intent.action == Action.SAY and _in_ai_conversation(ctx):
            intent = Intent(action=Action.REPLY, topic=intent.topic, raw=intent.raw)
        if intent.action not in CONVERSATION_ACTIONS:
            ctx.session.clear_conversation()
        return registry.handler_for(intent.action)(ctx, intent)
    except ValidationAbort as e:
        return error(e.message)
    except TransactionAbortedError as e:
        logger.warning(f"{intent.action.value} for {ctx.player_id} gave up after conflicts: {e}")
        return error(C.ERROR_TRY_AGAIN)
    except StoreError as e:
        logger.error(f"Store unavailable during {intent.action.value}: {e}")
        return error(C.ERROR_STORE_UNAVAILABLE)
    except Exception:
        logger.exception(f"Handler for {intent.action.value} failed on {intent.raw!r}")
        return error(C.ERROR_GENERIC)


def handle_command(ctx: CommandContext, raw: str) -> ServiceReturn:
    """Parse and dispatch one line of player input."""
    try:
        intent = parse_intent(ctx, raw)
    except Exception:
        logger.exception(f"Intent parsing failed for {raw!r}")
        intent = Intent.unknown(raw)
    return dispatch(ctx, intent)


# --- Socket handler -----------------------------------------------------------

class MessageHandlerContext:
    """Dependencies the socket handler needs, supplied once by server.py."""

    def __init__(
        self,
        get_sid: Callable[[], Optional[str]],
        command_context_for: Callable[[Optional[str]], Optional[CommandContext]],
        emit: Callable,
        message_out: str = C.MESSAGE_OUT,
        max_message_length: int = C.DEFAULT_MAX_MESSAGE_LENGTH,
        after_command: Optional[Callable[[CommandContext], None]] = None,
    ):
        self.get_sid = get_sid
        self.command_context_for = command_context_for
        self.emit = emit
        self.message_out = message_out
        self.max_message_length = max_message_length
        self.after_command = after_command


_ctx: Optional[MessageHandlerContext] = None


def init_message_handler(ctx: MessageHandlerContext) -> None:
    global _ctx
    _ctx = ctx


def get_context() -> MessageHandlerContext:
    if _ctx is None:
        raise RuntimeError("Message handler not initialized. Call init_message_handler() first.")
    return _ctx


def process_message(hctx: MessageHandlerContext, data: Any) -> Optional[ServiceReturn]:
    """Validate one client payload, run it, render the result and persist."""
    if not isinstance(data, dict) or not isinstance(data.get('content'), str):
        hctx.emit(hctx.message_out, {
            'type': C.MSG_TYPE_ERROR,
            'content': 'Invalid payload; expected { "content": string }.'
        })
        return None

    player_message = data['content']
    if len(player_message) > hctx.max_message_length:
        hctx.emit(hctx.message_out, {
            'type': C.MSG_TYPE_ERROR,
            'content': f'{C.ERROR_MESSAGE_TOO_LONG} (>{hctx.max_message_length} chars).'
        })
        return None

    sid = hctx.get_sid()
    ctx = hctx.command_context_for(sid)
    if ctx is None:
        hctx.emit(hctx.message_out, {'type': C.MSG_TYPE_ERROR, 'content': C.ERROR_NOT_CONNECTED})
        return None

    logger.info(f"From {ctx.player_id} [sid={sid}]: {player_message}")
    result = handle_command(ctx, player_message)
    emit_service_result(ctx, hctx.emit, result)

    if ctx.state_path:
        save_store(ctx.store, ctx.state_path)
    if hctx.after_command is not None:
        safe_call(hctx.after_command, ctx)
    if ctx.session.logout_requested and ctx.disconnect is not None:
        safe_call(ctx.disconnect)
    return result


def create_message_handler() -> Callable:
    """Create the message event handler.

    Returns a function that can be registered as a Socket.IO event handler.
    """
    def handle_message(data):
        """Triggered when the client emits 'message_to_server'.

        Payload shape from client: { 'content': str }
        """
        process_message(get_context(), data)

    return handle_message
