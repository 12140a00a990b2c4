import os
import sys

import pytest

sys.path.append(os.path.dirname(__file__))

from ai_utils import TextGenerator
from command_registry import Action
from intent_parser import Intent, IntentParser, clean_json_text, parse_local
from mock_ai import FailingAIModel, create_intent_mock


@pytest.mark.parametrize('raw,action,target', [
    ('n', Action.GO, 'north'),
    ('go west', Action.GO, 'west'),
    ('walk to the north', Action.GO, 'north'),
    ('look', Action.LOOK, None),
    ('look at the fountain', Action.EXAMINE, 'fountain'),
    ('i', Action.INVENTORY, None),
    ('get the torch', Action.GET, 'torch'),
    ('pick up sword', Action.GET, 'sword'),
    ('put down sword', Action.DROP, 'sword'),
    ('drink potion', Action.DRINK, 'potion'),
    ('read scroll', Action.READ, 'scroll'),
    ('who', Action.WHO, None),
    ('quit', Action.LOGOUT, None),
    ('spells', Action.SPELLS, None),
    ('learn the mend spell', Action.LEARN, 'mend spell'),
])
def test_local_rules(raw, action, target):
    intent = parse_local(raw)
    assert intent.action == action
    assert intent.target == target
    assert intent.raw == raw


def test_buy_sell_give_split_target_and_npc():
    buy = parse_local('buy a torch from frank')
    assert (buy.action, buy.target, buy.npc_target) == (Action.BUY, 'torch', 'frank')
    sell = parse_local('sell the potion to frank')
    assert (sell.action, sell.target, sell.npc_target) == (Action.SELL, 'potion', 'frank')
    give = parse_local('give potion to bob')
    assert (give.action, give.target, give.npc_target) == (Action.GIVE, 'potion', 'bob')


def test_talk_and_ask():
    talk = parse_local('talk to the sage')
    assert (talk.action, talk.npc_target) == (Action.TALK, 'sage')
    ask = parse_local('ask sage about the light')
    assert (ask.action, ask.npc_target, ask.topic) == (Action.ASK_NPC, 'sage', 'the light')



def test_cast_with_and_without_target():
    cast = parse_local('cast magic missile at the goblin')
    assert (cast.action, cast.target, cast.npc_target) == (Action.CAST, 'magic missile', 'goblin')
    heal = parse_local('cast mend on bob')
    assert (heal.action, heal.target, heal.npc_target) == (Action.CAST, 'mend', 'bob')
    solo = parse_local('cast minor heal')
    assert (solo.action, solo.target, solo.npc_target) == (Action.CAST, 'minor heal', None)
    assert Intent.from_dict({'action': 'magic'}).action == Action.SPELLS


def test_say_and_shorthand():
    assert parse_local("say hello there").topic == 'hello there'
    quoted = parse_local("'\"hi all\"")
    assert (quoted.action, quoted.topic) == (Action.SAY, 'hi all')
    assert parse_local('say').topic is None


def test_attack_verbs():
    kick = parse_local('kick goblin')
    assert (kick.action, kick.target, kick.verb) == (Action.ATTACK, 'goblin', 'kick')
    plain = parse_local('attack the goblin')
    assert (plain.action, plain.target, plain.verb) == (Action.ATTACK, 'goblin', None)
    assert parse_local('kill wolf').verb is None


def test_unmatched_returns_none():
    assert parse_local('ponder the meaning of life') is None
    assert parse_local('   ') is None


def test_from_dict_normalises():
    assert Intent.from_dict({'action': 'n'}).target == 'north'
    look = Intent.from_dict({'action': 'look', 'target': 'the painting'})
    assert (look.action, look.target) == (Action.EXAMINE, 'painting')
    alias = Intent.from_dict({'action': 'take', 'target': 'torch'})
    assert alias.action == Action.GET
    assert Intent.from_dict({'action': 'fly'}).action == Action.UNKNOWN
    assert Intent.from_dict(['not', 'a', 'dict']).action == Action.UNKNOWN


def test_clean_json_text_strips_fences():
    assert clean_json_text('```json\n{"action": "look"}\n```') == '{"action": "look"}'


def test_model_fallback():
    parser = IntentParser(TextGenerator(create_intent_mock()))
    assert parser.parse('what am i holding right now').action == Action.INVENTORY
    chat = parser.parse('have a chat with the sage')
    assert (chat.action, chat.npc_target) == (Action.TALK, 'sage')
    assert parser.parse('smack the goblin').action == Action.ATTACK
    assert parser.parse('garbled nonsense').action == Action.UNKNOWN


def test_local_rules_skip_the_model():
    mock = create_intent_mock()
    IntentParser(TextGenerator(mock)).parse('look')
    assert mock.call_count == 0


def test_no_model_or_failing_model_is_unknown():
    assert IntentParser(None).parse('dance wildly').action == Action.UNKNOWN
    assert IntentParser(TextGenerator(None)).parse('dance wildly').action == Action.UNKNOWN
    assert IntentParser(TextGenerator(FailingAIModel())).parse('dance wildly').action == Action.UNKNOWN
