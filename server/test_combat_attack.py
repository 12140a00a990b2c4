import os
import sys
import threading

import pytest

sys.path.append(os.path.dirname(__file__))

import combat_service
from conftest import DummyDirect, FixedRandom, contents
from document_store import ValidationAbort
from game_config import GameConfig
from spawn_service import spawn_for_room
from world import monster_path, player_path, room_path

GOBLIN = 'forest--goblin'


@pytest.fixture
def forest(store, world, make_player, make_ctx):
    make_player(room_id='forest')
    spawn_for_room(store, world, 'forest', now=0.0)
    return make_ctx()


def test_damage_formula_bounds():
    # str 14 -> base 3, plus 1d4
    for offset in range(4):
        assert combat_service.roll_damage(14, 0, FixedRandom(offset=offset)) == 4 + offset
    assert combat_service.strength_base(8) == 1
    assert combat_service.roll_damage(10, 3, FixedRandom()) == 1 + 1 + 3


def test_monster_damage_never_below_min_atk():
    class Tpl:
        min_atk = 9
        max_atk = 2
    assert combat_service.monster_damage(Tpl(), FixedRandom()) == 9


def test_attack_requires_a_target(ctx):
    _h, err, _e, _b = combat_service.attack(ctx, '')
    assert err == "Attack who? Try 'attack [name]'"


def test_attack_unknown_target(ctx):
    _h, err, _e, _b = combat_service.attack(ctx, 'dragon')
    assert err == 'There\'s nothing here by the name "dragon" to attack.'


def test_npcs_refuse_to_fight(make_player, make_ctx):
    make_player(room_id='market')
    _h, err, _e, _b = combat_service.attack(make_ctx(), 'frank')
    assert err == "They do not want to fight you."


def test_hit_monster_and_take_counter_damage(forest, store, world):
    handled, err, emits, broadcasts = combat_service.attack(forest, 'goblin', 'kick')
    assert handled and err is None
    lines = contents(emits)
    assert lines[0] == "You kick at the Goblin for 4 damage!"
    assert "The Goblin strikes back for 3 damage!" in lines
    assert "The Goblin has 11/15 HP. You have 97/100 HP." in lines
    assert broadcasts[0] == ('forest', {'type': 'combat', 'content': "Ann kicks at the Goblin for 4 damage!"})
    assert store.get(monster_path(GOBLIN))['hp'] == 11
    assert store.get(player_path('ann'))['hp'] == 97
    assert world.active_monsters[GOBLIN].hp == 11


def test_kill_pays_rewards_and_stamps_slot(forest, store, world):
    store.update(monster_path(GOBLIN), {'hp': 2})
    _h, err, emits, broadcasts = combat_service.attack(forest, 'goblin')
    assert err is None
    lines = contents(emits)
    assert "You have defeated the Goblin!" in lines
    assert "You gain 20 XP and 5 gold." in lines
    assert "The Goblin dropped Rusty Dagger!" in lines
    assert ('forest', {'type': 'combat', 'content': "Ann has slain the Goblin!"}) in broadcasts

    assert store.get(monster_path(GOBLIN)) is None
    assert GOBLIN not in world.active_monsters
    ann = store.get(player_path('ann'))
    assert ann['xp'] == 20 and ann['score'] == 20 and ann['money'] == 5
    assert [i['id'] for i in ann['inventory']] == ['dagger']
    slot = store.get(room_path('forest'))['monster_spawns'][0]
    assert slot['last_defeated_at'] == 1000.0


def test_no_drop_when_roll_misses(store, world, make_player, make_ctx):
    make_player(room_id='forest')
    spawn_for_room(store, world, 'forest', now=0.0)
    store.update(monster_path(GOBLIN), {'hp': 1})
    ctx = make_ctx(rng=FixedRandom(value=0.9), config=GameConfig(drop_chance=0.5))
    _h, _err, emits, _b = combat_service.attack(ctx, 'goblin')
    assert not any('dropped' in c for c in contents(emits))
    assert store.get(player_path('ann'))['inventory'] == []


def test_dead_monster_cannot_be_attacked(forest, store):
    store.update(monster_path(GOBLIN), {'hp': 0})
    _h, err, _e, _b = combat_service.attack(forest, 'goblin')
    assert err == "The Goblin is already dead."


def test_player_death_respawns_home_with_penalty(store, world, make_player, make_ctx):
    make_player(room_id='forest', hp=2, money=100)
    spawn_for_room(store, world, 'forest', now=0.0)
    _h, err, emits, broadcasts = combat_service.attack(make_ctx(), 'goblin')
    assert err is None
    assert "You have been defeated! You respawn at The Nexus... (lost 10 gold)" in contents(emits)
    ann = store.get(player_path('ann'))
    assert ann['room_id'] == 'start'
    assert ann['hp'] == ann['max_hp']
    assert ann['money'] == 90
    assert any(room == 'start' for room, _p in broadcasts)


def test_pvp_kill(make_player, make_ctx, store):
    make_player()
    make_player('bob', 'Bob', strength=10, hp=3, money=50)
    direct = DummyDirect()
    ctx = make_ctx(send_to_player=direct)
    _h, err, emits, broadcasts = combat_service.attack(ctx, 'bob')
    assert err is None
    assert "You have defeated Bob!" in contents(emits)
    assert "You gain 10 XP and 5 gold." in contents(emits)
    assert ('start', {'type': 'combat', 'content': "Bob has been defeated by Ann!"}) in broadcasts
    bob = store.get(player_path('bob'))
    assert bob['hp'] == bob['max_hp'] and bob['money'] == 45
    assert direct.messages[0][0] == 'bob'
    assert "You were defeated by Ann!" in direct.messages[0][1]['content']


def test_pvp_round_with_counter(make_player, make_ctx, store):
    make_player()
    make_player('bob', 'Bob', strength=10)
    _h, err, emits, _b = combat_service.attack(make_ctx(), 'bob', 'punch')
    assert err is None
    assert contents(emits)[:2] == ["You punch at Bob for 4 damage!", "Bob counter-attacks for 2 damage!"]
    assert store.get(player_path('bob'))['hp'] == 96
    assert store.get(player_path('ann'))['hp'] == 98


def test_pvp_disabled(make_player, make_ctx):
    make_player()
    make_player('bob', 'Bob')
    ctx = make_ctx(config=GameConfig(pvp_enabled=False))
    _h, err, _e, _b = combat_service.attack(ctx, 'bob')
    assert err == "You cannot attack other adventurers here."


def test_weapon_adds_damage(make_player, make_ctx, store, world):
    from world import InventoryItem
    make_player(room_id='forest', inventory=[InventoryItem(id='sword', name='Iron Sword', cost=40)])
    spawn_for_room(store, world, 'forest', now=0.0)
    _h, _err, emits, _b = combat_service.attack(make_ctx(), 'goblin', 'slash')
    assert contents(emits)[0] == "You slash at the Goblin with your Iron Sword for 7 damage!"


def test_concurrent_killing_blows_pay_out_once(store, world, make_player, make_ctx):
    make_player(room_id='forest', strength=30)
    make_player('bob', 'Bob', room_id='forest', strength=30)
    spawn_for_room(store, world, 'forest', now=0.0)
    store.update(monster_path(GOBLIN), {'hp': 10})
    ctxs = [make_ctx('ann'), make_ctx('bob')]
    barrier = threading.Barrier(len(ctxs))
    results = {}

    def _swing(ctx):
        barrier.wait()
        try:
            results[ctx.session.player_id] = combat_service.attack(ctx, 'goblin')[1:3]
        except ValidationAbort as exc:
            results[ctx.session.player_id] = (str(exc), [])

    threads = [threading.Thread(target=_swing, args=(c,)) for c in ctxs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [pid for pid, (err, emits) in results.items()
               if err is None and "You have defeated the Goblin!" in contents(emits)]
    assert len(winners) == 1
    assert sorted(store.get(player_path(pid))['xp'] for pid in ('ann', 'bob')) == [0, 20]
    assert sorted(store.get(player_path(pid))['money'] for pid in ('ann', 'bob')) == [0, 5]
    assert store.get(monster_path(GOBLIN)) is None
    assert GOBLIN not in world.active_monsters


def test_hp_stays_in_bounds_across_rounds(store, world, make_player, make_ctx):
    make_player(room_id='forest', strength=10, hp=5)
    spawn_for_room(store, world, 'forest', now=0.0)
    ctx = make_ctx()
    deaths = 0
    for _round in range(30):
        if store.get(monster_path(GOBLIN)) is None:
            break
        if store.get(player_path('ann'))['room_id'] != 'forest':
            deaths += 1
            store.update(player_path('ann'), {'room_id': 'forest'})
        _h, err, _e, _b = combat_service.attack(ctx, 'goblin')
        assert err is None
        ann = store.get(player_path('ann'))
        assert 0 <= ann['hp'] <= ann['max_hp']
        goblin = store.get(monster_path(GOBLIN))
        if goblin is not None:
            assert 0 < goblin['hp'] <= goblin['max_hp']
    assert store.get(monster_path(GOBLIN)) is None
    assert deaths >= 1
    assert store.get(player_path('ann'))['xp'] == 20
