import os
import sys

sys.path.append(os.path.dirname(__file__))

import constants as C
import look_service
import message_handler
from ai_utils import TextGenerator
from command_registry import Action, registry
from conftest import DummyEmitter, contents
from document_store import TransactionAbortedError
from mock_ai import create_dialogue_mock
from persistence_utils import flush_all_saves
from world import player_path


def test_every_action_has_a_handler():
    assert registry.missing_actions() == []


def test_look_dispatches(ctx):
    _h, err, emits, _b = message_handler.handle_command(ctx, 'look')
    assert err is None
    assert contents(emits)[0] == 'The Nexus'


def test_single_emote_word(ctx):
    _h, err, emits, broadcasts = message_handler.handle_command(ctx, 'wave')
    assert err is None
    assert contents(emits) == ['Ann waves.']
    assert broadcasts == [('start', {'type': 'action', 'content': 'Ann waves.'})]


def test_free_form_emote(ctx):
    _h, _err, emits, _b = message_handler.handle_command(ctx, 'emote scratches his head')
    assert contents(emits) == ['Ann scratches his head']


def test_unknown_command_hint(ctx):
    _h, err, emits, broadcasts = message_handler.handle_command(ctx, 'xyzzy')
    assert err is None and broadcasts == []
    assert contents(emits) == [
        "You try to xyzzy, but nothing happens.",
        "Type 'help' for a list of commands.",
    ]


def test_empty_input(ctx):
    _h, err, _e, _b = message_handler.handle_command(ctx, '   ')
    assert err == "Please type a command. Type 'help' for a list of commands."


def test_say_goes_to_room(ctx):
    _h, err, emits, broadcasts = message_handler.handle_command(ctx, 'say hello all')
    assert err is None
    assert emits == [{'type': 'chat', 'content': 'You say, "hello all"'}]
    assert broadcasts == [('start', {'type': 'chat', 'content': 'Ann says, "hello all"'})]
    assert message_handler.handle_command(ctx, 'say')[1] == "Say what?"


def _market_ctx(make_player, make_ctx):
    make_player(room_id='market')
    return make_ctx(text_generator=TextGenerator(create_dialogue_mock()))


def test_say_during_ai_conversation_becomes_reply(make_player, make_ctx):
    ctx = _market_ctx(make_player, make_ctx)
    message_handler.handle_command(ctx, 'talk to sage')
    assert ctx.session.last_npc_id == 'sage'
    _h, err, emits, broadcasts = message_handler.handle_command(ctx, 'say what is this place')
    assert err is None and broadcasts == []
    assert contents(emits)[-1] == 'Sage says, "Indeed. There is more to learn, if you listen."'


def test_free_text_continues_conversation(make_player, make_ctx):
    ctx = _market_ctx(make_player, make_ctx)
    message_handler.handle_command(ctx, 'talk to sage')
    _h, _err, emits, _b = message_handler.handle_command(ctx, 'hmm interesting indeed')
    assert contents(emits)[-1].startswith('Sage says,')


def test_other_commands_end_conversation(make_player, make_ctx):
    ctx = _market_ctx(make_player, make_ctx)
    message_handler.handle_command(ctx, 'talk to sage')
    message_handler.handle_command(ctx, 'look')
    assert ctx.session.last_npc_id is None
    assert ctx.session.history == []
    _h, _err, emits, _b = message_handler.handle_command(ctx, 'hmm interesting')
    assert contents(emits)[0] == "You try to hmm, but nothing happens."


def test_validation_abort_becomes_error(make_player, make_ctx, store):
    make_player(room_id='market', money=3)
    _h, err, emits, _b = message_handler.handle_command(make_ctx(), 'buy sword')
    assert err == "You can't afford that."
    assert emits == []
    assert store.get(player_path('ann'))['money'] == 3


def test_store_unavailable(ctx, store):
    store.available = False
    _h, err, _e, _b = message_handler.handle_command(ctx, 'look')
    assert err == C.ERROR_STORE_UNAVAILABLE


def test_transaction_aborted(make_player, make_ctx, store, monkeypatch):
    make_player(room_id='market')

    def _always_conflicts(fn):
        raise TransactionAbortedError("conflict")

    monkeypatch.setattr(store, 'run_transaction', _always_conflicts)
    _h, err, _e, _b = message_handler.handle_command(make_ctx(), 'get scroll')
    assert err == C.ERROR_TRY_AGAIN


def test_handler_crash_is_contained(ctx, monkeypatch):
    def _boom(_ctx):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(look_service, 'look', _boom)
    _h, err, _e, _b = message_handler.handle_command(ctx, 'look')
    assert err == C.ERROR_GENERIC


def test_who_uses_online_ids(make_player, make_ctx):
    make_player()
    make_player('bob', 'Bob', room_id='market')
    ctx = make_ctx(online_player_ids=lambda: ['ann'])
    lines = contents(message_handler.handle_command(ctx, 'who')[2])
    assert len(lines) == 2
    assert lines[1].startswith('Ann')


# --- process_message ----------------------------------------------------------

def _hctx(ctx, emitter, **kwargs):
    return message_handler.MessageHandlerContext(
        get_sid=lambda: ctx.sid if ctx else None,
        command_context_for=lambda sid: ctx,
        emit=emitter,
        **kwargs,
    )


def test_rejects_bad_payload(ctx):
    emitter = DummyEmitter()
    hctx = _hctx(ctx, emitter)
    assert message_handler.process_message(hctx, {'content': 5}) is None
    assert message_handler.process_message(hctx, 'look') is None
    assert emitter.contents() == ['Invalid payload; expected { "content": string }.'] * 2


def test_rejects_long_message(ctx):
    emitter = DummyEmitter()
    hctx = _hctx(ctx, emitter, max_message_length=10)
    assert message_handler.process_message(hctx, {'content': 'x' * 11}) is None
    assert emitter.contents() == [f'{C.ERROR_MESSAGE_TOO_LONG} (>10 chars).']


def test_not_connected():
    emitter = DummyEmitter()
    hctx = _hctx(None, emitter)
    message_handler.process_message(hctx, {'content': 'look'})
    assert emitter.contents() == [C.ERROR_NOT_CONNECTED]


def test_emits_errors_alone(make_player, make_ctx):
    make_player(room_id='market', money=3)
    ctx = make_ctx()
    emitter = DummyEmitter()
    message_handler.process_message(_hctx(ctx, emitter), {'content': 'buy sword'})
    assert emitter.messages == [(C.MESSAGE_OUT, {'type': 'error', 'content': "You can't afford that."})]
    assert ctx.broadcast_to_room.messages == []


def test_broadcasts_exclude_actor(ctx):
    emitter = DummyEmitter()
    message_handler.process_message(_hctx(ctx, emitter), {'content': 'say hi'})
    assert emitter.contents() == ['You say, "hi"']
    assert ctx.broadcast_to_room.messages == [
        ('start', {'type': 'chat', 'content': 'Ann says, "hi"'}, 'sid-ann')]


def test_saves_and_runs_after_command(make_player, make_ctx, tmp_path):
    make_player()
    path = str(tmp_path / 'state.json')
    ctx = make_ctx(state_path=path)
    seen = []
    hctx = _hctx(ctx, DummyEmitter(), after_command=seen.append)
    message_handler.process_message(hctx, {'content': 'go north'})
    flush_all_saves()
    assert os.path.exists(path)
    assert seen == [ctx]


def test_logout_disconnects_after_emitting(make_player, make_ctx):
    make_player()
    order = []
    ctx = make_ctx(disconnect=lambda: order.append('disconnect'))
    emitter = lambda ev, payload: order.append(payload['content'])
    message_handler.process_message(_hctx(ctx, emitter), {'content': 'logout'})
    assert order == ['Goodbye! Your progress has been saved.', 'disconnect']
    assert ctx.broadcast_to_room.contents() == ['Ann has left the game.']


def test_create_message_handler_requires_init(monkeypatch):
    monkeypatch.setattr(message_handler, '_ctx', None)
    handler = message_handler.create_message_handler()
    try:
        handler({'content': 'look'})
    except RuntimeError as e:
        assert 'not initialized' in str(e)
    else:
        raise AssertionError('expected RuntimeError')
