import os
import sys

import pytest

sys.path.append(os.path.dirname(__file__))

import constants as C
import npc_dialogue_service as dialogue
from ai_utils import TextGenerator
from conftest import contents
from game_config import GameConfig
from mock_ai import FailingAIModel, MockAIModel, create_dialogue_mock
from world import player_path


@pytest.fixture
def market_ctx(make_player, make_ctx):
    make_player(room_id='market')
    return make_ctx(text_generator=TextGenerator(create_dialogue_mock()))


def _inv(store):
    return [i['id'] for i in store.get(player_path('ann'))['inventory']]


def test_talk_to_fixed_dialogue_npc(market_ctx):
    _h, err, emits, _b = dialogue.talk(market_ctx, 'frank')
    assert err is None
    assert emits == [{'type': 'npc', 'content': 'Frank says, "Finest wares in the realm!"'}]
    assert market_ctx.session.last_npc_id is None


def test_talk_errors(market_ctx):
    assert dialogue.talk(market_ctx, '')[1] == "Talk to whom?"
    assert dialogue.talk(market_ctx, 'king')[1] == "There's no one here by that name."


def test_talk_to_ai_npc_starts_conversation(market_ctx):
    _h, err, emits, _b = dialogue.talk(market_ctx, 'sage')
    assert err is None
    assert emits == [
        {'type': 'action', 'content': 'Sage is thinking...'},
        {'type': 'action', 'content': 'The figure regards you quietly.'},
        {'type': 'npc', 'content': 'Sage says, "Well met, traveler."'},
    ]
    session = market_ctx.session
    assert session.last_npc_id == 'sage'
    assert session.history[0] == {'speaker': 'Ann', 'text': dialogue.STARTED_CONVERSATION}
    assert session.history[1]['speaker'] == 'Sage'


def test_ask_about_trigger_grants_item(market_ctx, store):
    _h, err, emits, _b = dialogue.ask_npc(market_ctx, 'sage', 'light')
    assert err is None
    lines = contents(emits)
    assert 'Sage gives you Torch.' in lines
    assert 'Sage says, "Darkness is no friend. Take this."' in lines
    assert not any('GIVE_ITEM' in l for l in lines)
    assert not any('GIVE_ITEM' in h['text'] for h in market_ctx.session.history)
    assert _inv(store) == ['torch']
    prompt = market_ctx.text_generator.model.get_last_prompt()
    assert "If the player's query mentions 'light', you can give them the 'Torch'." in prompt


def test_any_known_item_marker_is_granted(make_player, make_ctx, store):
    make_player(room_id='market')
    mock = MockAIModel(default_response='"Here." [GIVE_ITEM:sword]')
    ctx = make_ctx(text_generator=TextGenerator(mock))
    _h, _err, emits, _b = dialogue.talk(ctx, 'sage')
    assert _inv(store) == ['sword']
    lines = contents(emits)
    assert 'Sage gives you Iron Sword.' in lines
    assert lines[-1] == 'Sage says, "Here."'


def test_unknown_item_marker_is_ignored(make_player, make_ctx, store):
    make_player(room_id='market')
    mock = MockAIModel(default_response='"Have a crown." [GIVE_ITEM:crown]')
    ctx = make_ctx(text_generator=TextGenerator(mock))
    _h, _err, emits, _b = dialogue.talk(ctx, 'sage')
    assert _inv(store) == []
    assert contents(emits)[-1] == 'Sage says, "Have a crown."'


def test_trigger_items_only_refuses_other_items(make_player, make_ctx, store):
    make_player(room_id='market')
    mock = MockAIModel(default_response='"Have a blade." [GIVE_ITEM:sword]')
    ctx = make_ctx(text_generator=TextGenerator(mock), config=GameConfig(npc_trigger_items_only=True))
    _h, _err, emits, _b = dialogue.talk(ctx, 'sage')
    assert _inv(store) == []
    assert contents(emits)[-1] == 'Sage says, "Have a blade."'


def test_reply_continues_with_history(market_ctx):
    dialogue.talk(market_ctx, 'sage')
    _h, err, emits, _b = dialogue.reply(market_ctx, 'tell me more')
    assert err is None
    assert contents(emits)[-1] == 'Sage says, "Indeed. There is more to learn, if you listen."'
    prompt = market_ctx.text_generator.model.get_last_prompt()
    assert 'CONVERSATION HISTORY' in prompt
    assert 'Their reply is: "tell me more"' in prompt


def test_reply_without_conversation(market_ctx):
    assert dialogue.reply(market_ctx, 'hello')[1] == "You're not talking to anyone right now."


def test_history_is_trimmed(market_ctx):
    dialogue.talk(market_ctx, 'sage')
    for i in range(10):
        dialogue.reply(market_ctx, f'line {i}')
    history = market_ctx.session.history
    assert len(history) == C.DEFAULT_HISTORY_LIMIT
    assert history[-2] == {'speaker': 'Ann', 'text': 'line 9'}


def test_ask_fixed_npc(market_ctx):
    _h, _err, emits, _b = dialogue.ask_npc(market_ctx, 'frank', 'dragons')
    assert contents(emits) == ["Frank doesn't seem to have an answer for that."]


def test_ask_errors(market_ctx):
    assert dialogue.ask_npc(market_ctx, 'king', 'x')[1] == "There is no one here by that name to ask."
    assert dialogue.ask_npc(market_ctx, 'sage', '')[1] == "Ask Sage about what?"


def test_ask_without_target_or_conversation(market_ctx):
    assert dialogue.ask_npc(market_ctx, None, 'dragons')[1] == dialogue.NOT_TALKING
    dialogue.talk(market_ctx, 'sage')
    _h, err, emits, _b = dialogue.ask_npc(market_ctx, None, 'light')
    assert err is None
    assert 'Sage gives you Torch.' in contents(emits)


def test_offline_and_failing_model(make_player, make_ctx):
    make_player(room_id='market')
    offline = make_ctx(text_generator=TextGenerator(None))
    assert contents(dialogue.talk(offline, 'sage')[2])[-1] == C.AI_OFFLINE_TEXT
    failing = make_ctx(text_generator=TextGenerator(FailingAIModel()))
    assert contents(dialogue.talk(failing, 'sage')[2])[-1] == C.AI_SILENT_TEXT
