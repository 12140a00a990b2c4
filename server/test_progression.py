import os
import sys

sys.path.append(os.path.dirname(__file__))

import constants as C
from conftest import contents
from game_config import GameConfig
from progression_service import check_level_up, level_from_xp, xp_for_level
from world import player_path


def test_xp_curve():
    assert xp_for_level(1) == 0
    assert xp_for_level(2) == 282
    assert xp_for_level(4) == 800
    cfg = GameConfig(max_level=5)
    assert xp_for_level(9, cfg) == xp_for_level(5, cfg)


def test_overrides_win():
    cfg = GameConfig(level_xp_overrides={2: 50})
    assert xp_for_level(2, cfg) == 50
    assert level_from_xp(50, cfg) == 2


def test_level_from_xp_boundaries():
    assert level_from_xp(0) == 1
    assert level_from_xp(281) == 1
    assert level_from_xp(282) == 2
    assert level_from_xp(10 ** 9) == C.DEFAULT_MAX_LEVEL


def test_check_level_up_applies_bonuses_once(store, make_player):
    make_player(xp=850, hp=60)
    emits = check_level_up(store, 'ann')
    lines = contents(emits)
    assert lines[0] == f"LEVEL UP! You are now level 4 - {C.level_name(4)}!"
    assert "Max HP increased to 130! (+30)" in lines
    assert any(c.startswith('Your attributes grow stronger!') for c in lines)
    ann = store.get(player_path('ann'))
    assert ann['level'] == 4
    assert ann['max_hp'] == 130
    assert ann['hp'] == 90
    assert ann['attributes']['str'] == 15

    assert check_level_up(store, 'ann') == []
    assert store.get(player_path('ann'))['level'] == 4


def test_level_up_posts_news(store, make_player):
    make_player(xp=300)
    check_level_up(store, 'ann')
    news = list(store.list_collection(C.COL_NEWS).values())
    assert news and news[0]['kind'] == 'levelup'
    assert news[0]['player_name'] == 'Ann'


def test_no_level_up_for_missing_player(store):
    assert check_level_up(store, 'ghost') == []


def test_repeated_level_ups_without_base_fields(store):
    store.set(player_path('bob'), {'name': 'Bob', 'max_hp': 100, 'level': 1,
                                   'attributes': {'str': 10}, 'xp': xp_for_level(4)})
    check_level_up(store, 'bob')
    bob = store.get(player_path('bob'))
    assert (bob['level'], bob['max_hp'], bob['attributes']['str']) == (4, 130, 11)
    assert bob['base_max_hp'] == 100
    assert bob['base_attributes']['str'] == 10

    store.update(player_path('bob'), {'xp': xp_for_level(7)})
    check_level_up(store, 'bob')
    bob = store.get(player_path('bob'))
    assert bob['level'] == 7
    assert bob['max_hp'] == 160
    assert bob['attributes']['str'] == 12


def test_base_is_derived_for_levelled_docs_without_base_fields(store):
    store.set(player_path('cat'), {'name': 'Cat', 'max_hp': 130, 'level': 4,
                                   'attributes': {'str': 11}, 'xp': xp_for_level(7)})
    check_level_up(store, 'cat')
    cat = store.get(player_path('cat'))
    assert cat['max_hp'] == 160
    assert cat['base_max_hp'] == 100
    assert cat['attributes']['str'] == 12


def test_level_up_grows_mp(store, make_player):
    make_player(xp=850, mp=40)
    lines = contents(check_level_up(store, 'ann'))
    assert "Max MP increased to 115! (+15)" in lines
    ann = store.get(player_path('ann'))
    assert (ann['max_mp'], ann['mp']) == (115, 55)

    make_player('bob', 'Bob', xp=300, mp=10)
    check_level_up(store, 'bob', GameConfig(mp_per_level=0))
    bob = store.get(player_path('bob'))
    assert (bob['max_mp'], bob['mp']) == (100, 10)
